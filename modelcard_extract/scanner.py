from __future__ import annotations

import gzip
import logging
import tarfile
import zlib
from contextlib import ExitStack
from typing import BinaryIO

from .errors import ArchiveParseError, DecompressionError
from .models import DEFAULT_FILE_SUFFIX, DEFAULT_GZIP_MARKER, ExtractionOutcome

LOGGER = logging.getLogger(__name__)


def is_gzip_media_type(media_type: str, gzip_marker: str = DEFAULT_GZIP_MARKER) -> bool:
    return bool(gzip_marker) and gzip_marker in (media_type or "")


def _is_candidate(member: tarfile.TarInfo, file_suffix: str) -> bool:
    # tarfile strips the trailing "/" from directory names, so directories are excluded by type.
    return not member.isdir() and member.name.endswith(file_suffix)


def _scan_members(tar: tarfile.TarFile, file_suffix: str) -> ExtractionOutcome:
    match_count = 0
    match_name: str | None = None
    match_content = b""

    for member in tar:
        LOGGER.debug("Found entry in layer: %s (size: %s bytes)", member.name, member.size)
        if not _is_candidate(member, file_suffix):
            # The stream reader skips the payload when advancing to the next header.
            continue
        match_count += 1
        if match_count > 1:
            LOGGER.debug("Second %s entry %s, stopping scan", file_suffix, member.name)
            return ExtractionOutcome.ambiguous()
        match_name = member.name
        if member.isfile():
            source = tar.extractfile(member)
            match_content = source.read() if source is not None else b""

    if match_name is None:
        return ExtractionOutcome.not_found()
    return ExtractionOutcome.extracted(match_name, match_content)


def scan_layer_blob(
    stream: BinaryIO,
    media_type: str,
    *,
    file_suffix: str = DEFAULT_FILE_SUFFIX,
    gzip_marker: str = DEFAULT_GZIP_MARKER,
) -> ExtractionOutcome:
    """Look for exactly one ``file_suffix`` entry in a (possibly gzipped) tar stream.

    The stream is read strictly front to back and only as far as needed: a
    second matching entry ends the scan before its payload is read. Archive and
    gzip errors come back as a ``failed`` outcome. The caller still owns
    ``stream`` and is responsible for closing it.
    """
    compressed = is_gzip_media_type(media_type, gzip_marker)
    try:
        with ExitStack() as stack:
            reader: BinaryIO = stream
            if compressed:
                reader = stack.enter_context(gzip.GzipFile(fileobj=stream, mode="rb"))
            # One block at a time so nothing past the current header is pulled from the registry.
            tar = stack.enter_context(
                tarfile.open(fileobj=reader, mode="r|", bufsize=tarfile.BLOCKSIZE)
            )
            return _scan_members(tar, file_suffix)
    except (gzip.BadGzipFile, EOFError, zlib.error) as exc:
        if compressed:
            return ExtractionOutcome.failed(DecompressionError(f"gzip stream error: {exc}"))
        return ExtractionOutcome.failed(ArchiveParseError(f"unexpected end of archive: {exc}"))
    except (tarfile.TarError, OSError) as exc:
        return ExtractionOutcome.failed(ArchiveParseError(f"tar stream error: {exc}"))
