from __future__ import annotations

import logging
from typing import Any, Iterable

from .errors import FetchError
from .models import LayerDescriptor

LOGGER = logging.getLogger(__name__)


def layer_from_manifest_entry(entry: dict[str, Any]) -> LayerDescriptor:
    try:
        digest = str(entry["digest"])
        media_type = str(entry.get("mediaType") or "")
        size = int(entry.get("size") or 0)
    except (KeyError, TypeError, ValueError) as exc:
        raise FetchError(f"Malformed layer descriptor: {entry!r}") from exc
    annotations = entry.get("annotations") or {}
    if not isinstance(annotations, dict):
        raise FetchError(f"Malformed annotations on layer {digest}")
    return LayerDescriptor(
        digest=digest,
        media_type=media_type,
        size=size,
        annotations={str(k): str(v) for k, v in annotations.items()},
    )


def has_annotation(layer: LayerDescriptor, key: str, value: str) -> bool:
    return key in layer.annotations and layer.annotations[key] == value


def select_layers(
    layers: Iterable[LayerDescriptor],
    annotation_key: str,
    annotation_value: str,
) -> list[LayerDescriptor]:
    selected = [layer for layer in layers if has_annotation(layer, annotation_key, annotation_value)]
    LOGGER.debug(
        "Selected %s layer(s) annotated %s=%s", len(selected), annotation_key, annotation_value
    )
    return selected
