from __future__ import annotations

import logging
import time
from typing import Any

from .errors import RegistryError, WriteError
from .layers import select_layers
from .models import (
    AMBIGUOUS,
    EXTRACTED,
    FAILED,
    NOT_FOUND,
    ExtractionOutcome,
    ExtractSettings,
    LayerDescriptor,
    LayerResult,
    ManifestHandle,
    ReferenceResult,
)
from .scanner import scan_layer_blob
from .utils import sanitize_reference
from .writer import write_extracted

LOGGER = logging.getLogger(__name__)


def _overall_status(layers: list[LayerResult]) -> str:
    statuses = {layer.status for layer in layers}
    for status in (FAILED, EXTRACTED, AMBIGUOUS):
        if status in statuses:
            return status
    return NOT_FOUND


def _process_layer(
    reference: str,
    handle: ManifestHandle,
    layer: LayerDescriptor,
    *,
    client: Any,
    settings: ExtractSettings,
) -> LayerResult:
    LOGGER.info(
        "Found %s layer %s in %s (%s, %s bytes)",
        settings.annotation_value,
        layer.digest,
        reference,
        layer.media_type,
        layer.size,
    )
    result = LayerResult(digest=layer.digest, media_type=layer.media_type, status=FAILED)

    phase = "fetch"
    try:
        with client.open_blob(handle, layer.digest) as stream:
            phase = "scan"
            outcome = scan_layer_blob(
                stream,
                layer.media_type,
                file_suffix=settings.file_suffix,
                gzip_marker=settings.gzip_marker,
            )
    except Exception as exc:  # noqa: BLE001
        outcome = ExtractionOutcome.failed(exc)

    result.status = outcome.status
    if outcome.status == FAILED:
        result.error = str(outcome.error)
        result.phase = phase
        LOGGER.error("Layer %s of %s failed during %s: %s", layer.digest, reference, phase, outcome.error)
        return result
    if outcome.status == AMBIGUOUS:
        LOGGER.info("Multiple %s files in layer %s of %s, skipping", settings.file_suffix, layer.digest, reference)
        return result
    if outcome.status == NOT_FOUND:
        LOGGER.info("No %s file in layer %s of %s", settings.file_suffix, layer.digest, reference)
        return result

    result.file_name = outcome.file_name
    try:
        path = write_extracted(settings.output_root, reference, outcome.file_name, outcome.content)
    except WriteError as exc:
        result.status = FAILED
        result.error = str(exc)
        result.phase = "write"
        LOGGER.error("Layer %s of %s failed during write: %s", layer.digest, reference, exc)
        return result
    result.output_path = str(path)
    return result


def process_reference(reference: str, *, client: Any, settings: ExtractSettings) -> ReferenceResult:
    """Resolve one image, scan every annotated layer and write what was found.

    ``client`` needs ``resolve``, ``layers`` and an ``open_blob`` context
    manager (see ``registry.RegistryClient``). Registry, archive and write
    errors end up on the returned result instead of being raised.
    """
    started = time.monotonic()
    result = ReferenceResult(
        reference=reference,
        status=NOT_FOUND,
        sanitized_dir=sanitize_reference(reference),
    )
    LOGGER.info("Starting processing for: %s", reference)

    phase = "resolve"
    try:
        handle = client.resolve(reference)
        phase = "layers"
        layers = client.layers(handle)
    except RegistryError as exc:
        result.status = FAILED
        result.error = str(exc)
        result.phase = phase
        LOGGER.error("Reference %s failed during %s: %s", reference, phase, exc)
    else:
        LOGGER.info("%s has %s layer(s)", reference, len(layers))
        selected = select_layers(layers, settings.annotation_key, settings.annotation_value)
        if not selected:
            LOGGER.info(
                "No layer annotated %s=%s in %s",
                settings.annotation_key,
                settings.annotation_value,
                reference,
            )
        for layer in selected:
            result.layers.append(
                _process_layer(reference, handle, layer, client=client, settings=settings)
            )
        result.status = _overall_status(result.layers)

    result.elapsed_sec = round(time.monotonic() - started, 3)
    LOGGER.info("Completed processing for: %s (%s)", reference, result.status)
    return result
