from __future__ import annotations

import logging
import os
from pathlib import Path

from .errors import WriteError
from .utils import ensure_dir, member_parts, sanitize_reference

LOGGER = logging.getLogger(__name__)

FILE_MODE = 0o644
DIR_MODE = 0o755


def build_output_path(output_root: Path, reference: str, file_name: str) -> Path:
    target_dir = output_root / sanitize_reference(reference)
    parts = member_parts(file_name)
    if not parts or ".." in parts:
        raise WriteError(f"Unsafe entry path for {reference}: {file_name!r}")
    return target_dir.joinpath(*parts)


def write_extracted(output_root: Path, reference: str, file_name: str, content: bytes) -> Path:
    dest = build_output_path(output_root, reference, file_name)
    try:
        ensure_dir(dest.parent, mode=DIR_MODE)
        dest.write_bytes(content)
        os.chmod(dest, FILE_MODE)
    except OSError as exc:
        raise WriteError(f"Failed to write {dest}: {exc}") from exc
    LOGGER.info("Wrote %s (%s bytes)", dest, len(content))
    return dest
