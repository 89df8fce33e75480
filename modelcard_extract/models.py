from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

EXTRACTED = "extracted"
AMBIGUOUS = "ambiguous"
NOT_FOUND = "not_found"
FAILED = "failed"
OUTCOME_STATUSES = (EXTRACTED, NOT_FOUND, AMBIGUOUS, FAILED)

DEFAULT_ANNOTATION_KEY = "io.opendatahub.modelcar.layer.type"
DEFAULT_ANNOTATION_VALUE = "modelcard"
DEFAULT_FILE_SUFFIX = ".md"
DEFAULT_GZIP_MARKER = "+gzip"


@dataclass(slots=True, frozen=True)
class ImageRef:
    registry: str
    repository: str
    tag: str | None = None
    digest: str | None = None

    @property
    def manifest_ref(self) -> str:
        return self.digest or self.tag or "latest"

    def __str__(self) -> str:
        name = f"{self.registry}/{self.repository}"
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name


@dataclass(slots=True, frozen=True)
class LayerDescriptor:
    digest: str
    media_type: str
    size: int
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ManifestHandle:
    image: ImageRef
    digest: str | None
    media_type: str
    manifest: dict[str, Any]


@dataclass(slots=True, frozen=True)
class ExtractionOutcome:
    status: str
    file_name: str | None = None
    content: bytes | None = None
    error: Exception | None = None

    @classmethod
    def extracted(cls, file_name: str, content: bytes) -> ExtractionOutcome:
        return cls(EXTRACTED, file_name=file_name, content=content)

    @classmethod
    def ambiguous(cls) -> ExtractionOutcome:
        return cls(AMBIGUOUS)

    @classmethod
    def not_found(cls) -> ExtractionOutcome:
        return cls(NOT_FOUND)

    @classmethod
    def failed(cls, error: Exception) -> ExtractionOutcome:
        return cls(FAILED, error=error)


@dataclass(slots=True)
class LayerResult:
    digest: str
    media_type: str
    status: str
    file_name: str | None = None
    output_path: str | None = None
    error: str | None = None
    phase: str | None = None


@dataclass(slots=True)
class ReferenceResult:
    reference: str
    status: str
    sanitized_dir: str
    layers: list[LayerResult] = field(default_factory=list)
    error: str | None = None
    phase: str | None = None
    elapsed_sec: float = 0.0

    @property
    def output_paths(self) -> list[str]:
        return [layer.output_path for layer in self.layers if layer.output_path]


@dataclass(slots=True)
class ExtractSettings:
    output_root: Path = Path("output")
    annotation_key: str = DEFAULT_ANNOTATION_KEY
    annotation_value: str = DEFAULT_ANNOTATION_VALUE
    file_suffix: str = DEFAULT_FILE_SUFFIX
    gzip_marker: str = DEFAULT_GZIP_MARKER

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> ExtractSettings:
        extract = cfg.get("extract") or {}
        paths = cfg.get("paths") or {}

        def _value(key: str, default: str) -> str:
            value = extract.get(key)
            return default if value is None else str(value)

        return cls(
            output_root=Path(str(paths.get("output_root") or "output")),
            annotation_key=_value("annotation_key", DEFAULT_ANNOTATION_KEY),
            annotation_value=_value("annotation_value", DEFAULT_ANNOTATION_VALUE),
            file_suffix=_value("file_suffix", DEFAULT_FILE_SUFFIX),
            gzip_marker=_value("gzip_marker", DEFAULT_GZIP_MARKER),
        )
