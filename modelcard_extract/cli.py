from __future__ import annotations

import argparse
import functools
import logging
from pathlib import Path
from typing import Any

from . import __version__
from .config import apply_cli_overrides, load_config, load_list_from_value, parse_annotation
from .dispatcher import run_references
from .errors import RegistryError
from .layers import has_annotation
from .models import FAILED, ExtractSettings
from .pipeline import process_reference
from .registry import RegistryClient
from .summary import build_run_summary, format_run_summary
from .utils import atomic_write_json, sanitize_reference, setup_logging

LOGGER = logging.getLogger(__name__)


def _build_client(cfg: dict[str, Any]) -> RegistryClient:
    reg = cfg.get("registry", {})
    return RegistryClient(
        timeout_sec=int(reg.get("timeout_sec", 120)),
        user_agent=str(reg.get("user_agent") or f"modelcard-extract/{__version__}"),
        platform_os=str(reg.get("platform_os") or "linux"),
        platform_arch=str(reg.get("platform_arch") or "amd64"),
        insecure_registries=load_list_from_value(reg.get("insecure_registries")),
    )


def _collect_references(args: argparse.Namespace, cfg: dict[str, Any]) -> list[str]:
    refs: list[str] = list(args.references or [])
    if args.input:
        if not args.input.is_file():
            raise ValueError(f"Reference list not found: {args.input}")
        refs.extend(load_list_from_value(str(args.input)))
    if not refs:
        refs = load_list_from_value(cfg.get("references"))
    # Keep first occurrence order; duplicates would write the same directory twice.
    return list(dict.fromkeys(refs))


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="modelcard-extract")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd", required=True)

    extract = sub.add_parser("extract", help="Extract model cards from annotated image layers")
    extract.add_argument("references", nargs="*", metavar="REF")
    extract.add_argument("--config", type=Path)
    extract.add_argument("--input", type=Path, help="File listing image references")
    extract.add_argument("--output", type=Path, help="Output root directory (default: output)")
    extract.add_argument("--max-workers", type=int, default=None)
    extract.add_argument("--annotation", help="Target layer annotation as KEY=VALUE")
    extract.add_argument("--suffix", help="File suffix to extract (default: .md)")
    extract.add_argument("--report", type=Path, help="Write a JSON run report here")
    extract.add_argument("--no-progress", action="store_true")

    inspect = sub.add_parser("inspect", help="List the layers of one image reference")
    inspect.add_argument("reference", metavar="REF")
    inspect.add_argument("--config", type=Path)

    return parser


def _command_extract(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    annotation_key, annotation_value = (
        parse_annotation(args.annotation) if args.annotation else (None, None)
    )
    cfg = apply_cli_overrides(
        cfg,
        {
            "paths": {"output_root": str(args.output) if args.output else None},
            "extract": {
                "max_workers": args.max_workers,
                "annotation_key": annotation_key,
                "annotation_value": annotation_value,
                "file_suffix": args.suffix,
            },
            "runtime": {
                "progress": False if args.no_progress else None,
                "report_path": str(args.report) if args.report else None,
            },
        },
    )

    references = _collect_references(args, cfg)
    if not references:
        print("No image references given")
        return 0

    max_workers = int(cfg["extract"]["max_workers"])
    if max_workers < 1:
        raise ValueError(f"--max-workers must be at least 1, got {max_workers}")

    settings = ExtractSettings.from_config(cfg)
    client = _build_client(cfg)
    LOGGER.info(
        "Extracting %s*%s from %s reference(s) into %s with %s worker(s)",
        settings.annotation_value,
        settings.file_suffix,
        len(references),
        settings.output_root,
        max_workers,
    )
    results = run_references(
        references,
        functools.partial(process_reference, client=client, settings=settings),
        max_workers=max_workers,
        show_progress=bool(cfg["runtime"].get("progress", True)),
    )

    report = build_run_summary(results)
    print(format_run_summary(report), end="")
    report_path = cfg["runtime"].get("report_path")
    if report_path:
        atomic_write_json(Path(report_path), report)
        LOGGER.info("Run report written to %s", report_path)
    return 1 if report["counts"][FAILED] else 0


def _command_inspect(args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    settings = ExtractSettings.from_config(cfg)
    client = _build_client(cfg)
    try:
        handle = client.resolve(args.reference)
        layers = client.layers(handle)
    except RegistryError as exc:
        print(f"Failed to inspect {args.reference}: {exc}")
        return 1

    print(f"Reference: {args.reference}")
    print(f"Output dir: {sanitize_reference(args.reference)}")
    print(f"Manifest: {handle.digest or '-'} ({handle.media_type})")
    print(f"Layers: {len(layers)}")
    for idx, layer in enumerate(layers, start=1):
        marker = " *" if has_annotation(layer, settings.annotation_key, settings.annotation_value) else ""
        print(f"  Layer {idx}{marker}: {layer.digest}")
        print(f"    MediaType: {layer.media_type}")
        print(f"    Size: {layer.size} bytes")
        for key, value in sorted(layer.annotations.items()):
            print(f"    {key}={value}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        cfg = load_config(getattr(args, "config", None))
    except (OSError, ValueError) as exc:
        parser.error(str(exc))
        return 2
    setup_logging(cfg.get("runtime", {}).get("log_level", "INFO"))

    try:
        if args.cmd == "extract":
            return _command_extract(args, cfg)
        if args.cmd == "inspect":
            return _command_inspect(args, cfg)
    except ValueError as exc:
        parser.error(str(exc))
        return 2

    parser.error(f"Unhandled command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
