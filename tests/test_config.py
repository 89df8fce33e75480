from pathlib import Path

import pytest

from modelcard_extract.config import apply_cli_overrides, load_config, load_list_from_value, parse_annotation
from modelcard_extract.models import ExtractSettings


def test_apply_cli_overrides_ignores_nested_none_values() -> None:
    cfg = load_config(None)
    merged = apply_cli_overrides(
        cfg,
        {
            "extract": {"max_workers": None, "file_suffix": None},
            "runtime": {"report_path": None},
        },
    )
    assert merged["extract"]["max_workers"] == 5
    assert merged["extract"]["file_suffix"] == ".md"
    assert merged["runtime"]["report_path"] is None


def test_load_config_merges_yaml_over_defaults(tmp_path: Path) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text(
        "paths:\n  output_root: cards\nextract:\n  max_workers: 2\n",
        encoding="utf-8",
    )
    cfg = load_config(path)
    assert cfg["extract"]["max_workers"] == 2
    assert cfg["extract"]["gzip_marker"] == "+gzip"

    settings = ExtractSettings.from_config(cfg)
    assert settings.output_root == Path("cards")
    assert settings.annotation_key == "io.opendatahub.modelcar.layer.type"
    assert settings.annotation_value == "modelcard"


def test_load_config_rejects_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_load_list_from_text_file_skips_comments(tmp_path: Path) -> None:
    path = tmp_path / "refs.txt"
    path.write_text("# header\nreg.example/a:1\n\nreg.example/b:2\n", encoding="utf-8")
    assert load_list_from_value(str(path)) == ["reg.example/a:1", "reg.example/b:2"]


def test_load_list_from_yaml_and_comma_string(tmp_path: Path) -> None:
    path = tmp_path / "refs.yaml"
    path.write_text("- reg.example/a:1\n- reg.example/b:2\n", encoding="utf-8")
    assert load_list_from_value(str(path)) == ["reg.example/a:1", "reg.example/b:2"]
    assert load_list_from_value("a:1, b:2") == ["a:1", "b:2"]


def test_parse_annotation() -> None:
    assert parse_annotation("kind=doc") == ("kind", "doc")
    with pytest.raises(ValueError):
        parse_annotation("kind")


def test_empty_annotation_value_is_kept_exactly() -> None:
    key, value = parse_annotation("io.example/type=")
    cfg = apply_cli_overrides(
        load_config(None),
        {"extract": {"annotation_key": key, "annotation_value": value}},
    )
    settings = ExtractSettings.from_config(cfg)
    assert settings.annotation_key == "io.example/type"
    assert settings.annotation_value == ""


def test_empty_gzip_marker_from_config_is_not_replaced_by_default() -> None:
    cfg = load_config(None)
    cfg["extract"]["gzip_marker"] = ""
    assert ExtractSettings.from_config(cfg).gzip_marker == ""
    assert ExtractSettings.from_config(load_config(None)).gzip_marker == "+gzip"
