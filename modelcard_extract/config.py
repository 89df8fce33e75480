from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

import yaml

from . import __version__
from .models import (
    DEFAULT_ANNOTATION_KEY,
    DEFAULT_ANNOTATION_VALUE,
    DEFAULT_FILE_SUFFIX,
    DEFAULT_GZIP_MARKER,
)

DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "output_root": "output",
    },
    "registry": {
        "timeout_sec": 120,
        "user_agent": f"modelcard-extract/{__version__}",
        "platform_os": "linux",
        "platform_arch": "amd64",
        "insecure_registries": [],
    },
    "extract": {
        "max_workers": 5,
        "annotation_key": DEFAULT_ANNOTATION_KEY,
        "annotation_value": DEFAULT_ANNOTATION_VALUE,
        "file_suffix": DEFAULT_FILE_SUFFIX,
        # Substring of the layer media type that marks a gzip-compressed tar.
        "gzip_marker": DEFAULT_GZIP_MARKER,
    },
    # Image references, or a path to a .txt/.yaml/.json/.csv file listing them.
    "references": [],
    "runtime": {
        "log_level": "INFO",
        "progress": True,
        "report_path": None,
    },
}


def _deep_update(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: str | Path | None) -> dict[str, Any]:
    cfg = json.loads(json.dumps(DEFAULT_CONFIG))
    if not config_path:
        return cfg
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise ValueError("Config root must be a mapping")
    _deep_update(cfg, payload)
    return cfg


def apply_cli_overrides(cfg: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    def _drop_none(value: Any) -> Any:
        if isinstance(value, dict):
            return {k: _drop_none(v) for k, v in value.items() if v is not None}
        if isinstance(value, list):
            return [_drop_none(v) for v in value if v is not None]
        return value

    cleaned = _drop_none(overrides)
    _deep_update(cfg, cleaned)
    return cfg


def parse_annotation(value: str) -> tuple[str, str]:
    key, sep, expected = (value or "").partition("=")
    key = key.strip()
    if not sep or not key:
        raise ValueError(f"Annotation must look like KEY=VALUE, got {value!r}")
    return key, expected.strip()


def load_list_from_value(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    if isinstance(value, str):
        path = Path(value)
        if path.exists() and path.is_file():
            suffix = path.suffix.lower()
            if suffix in {".yaml", ".yml"}:
                payload = yaml.safe_load(path.read_text(encoding="utf-8"))
                if isinstance(payload, list):
                    return [str(v).strip() for v in payload if str(v).strip()]
                if isinstance(payload, dict):
                    out: list[str] = []
                    for v in payload.values():
                        if isinstance(v, list):
                            out.extend([str(i).strip() for i in v if str(i).strip()])
                        elif v is not None and str(v).strip():
                            out.append(str(v).strip())
                    return out
            if suffix == ".json":
                payload = json.loads(path.read_text(encoding="utf-8"))
                if isinstance(payload, list):
                    return [str(v).strip() for v in payload if str(v).strip()]
                if isinstance(payload, dict):
                    return [str(v).strip() for v in payload.values() if str(v).strip()]
            if suffix == ".csv":
                out = []
                with path.open("r", encoding="utf-8") as handle:
                    reader = csv.reader(handle)
                    for row in reader:
                        for cell in row:
                            cell = cell.strip()
                            if cell:
                                out.append(cell)
                return out
            out = []
            for line in path.read_text(encoding="utf-8").splitlines():
                value = line.strip()
                if value and not value.startswith("#"):
                    out.append(value)
            return out
        return [s.strip() for s in value.split(",") if s.strip()]
    return [str(value).strip()]
