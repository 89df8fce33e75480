from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

_UNSAFE_PATH_CHARS = re.compile(r'[/\\:*?"<>|]')
_UNDERSCORE_RUNS = re.compile(r"_+")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def sanitize_reference(reference: str) -> str:
    """Turn an image reference into a single filesystem-safe directory name.

    ``registry.example/repo:1.0`` becomes ``registry.example_repo_1.0``.
    """
    cleaned = _UNSAFE_PATH_CHARS.sub("_", reference)
    cleaned = _UNDERSCORE_RUNS.sub("_", cleaned)
    return cleaned.strip("_")


def member_parts(member_name: str) -> list[str]:
    return [p for p in PurePosixPath(member_name).parts if p not in {"", ".", "/"}]


def ensure_dir(path: Path, mode: int = 0o755) -> Path:
    path.mkdir(mode=mode, parents=True, exist_ok=True)
    return path


def atomic_write_text(path: Path, content: str) -> None:
    ensure_dir(path.parent)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)


def atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    atomic_write_text(path, json.dumps(payload, indent=2, sort_keys=True) + "\n")
