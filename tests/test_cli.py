import io
import json
import tarfile
from contextlib import contextmanager
from pathlib import Path

from modelcard_extract import cli
from modelcard_extract.errors import ResolutionError
from modelcard_extract.models import ImageRef, LayerDescriptor, ManifestHandle

TARGET = {"io.opendatahub.modelcar.layer.type": "modelcard"}


def _tar_bytes(members: dict[str, bytes]) -> bytes:
    data = io.BytesIO()
    with tarfile.open(fileobj=data, mode="w:gz") as tar:
        for name, payload in members.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))
    return data.getvalue()


class _FakeClient:
    blob = _tar_bytes({"docs/CARD.md": b"# Title"})

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs

    def resolve(self, reference: str) -> ManifestHandle:
        if "missing" in reference:
            raise ResolutionError(f"manifest unknown: {reference}")
        return ManifestHandle(
            image=ImageRef(registry="reg.example", repository="foo", tag="1.0"),
            digest="sha256:m",
            media_type="application/vnd.oci.image.manifest.v1+json",
            manifest={},
        )

    def layers(self, handle: ManifestHandle) -> list[LayerDescriptor]:
        return [
            LayerDescriptor("sha256:w", "application/vnd.oci.image.layer.v1.tar", 3, {}),
            LayerDescriptor(
                "sha256:c",
                "application/vnd.oci.image.layer.v1.tar+gzip",
                len(self.blob),
                dict(TARGET),
            ),
        ]

    @contextmanager
    def open_blob(self, handle: ManifestHandle, digest: str):
        yield io.BytesIO(self.blob)


def test_extract_writes_cards_and_report(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "RegistryClient", _FakeClient)
    report = tmp_path / "report.json"

    code = cli.main(
        [
            "extract",
            "reg.example/foo:1.0",
            "--output",
            str(tmp_path / "out"),
            "--no-progress",
            "--report",
            str(report),
        ]
    )

    assert code == 0
    assert (tmp_path / "out" / "reg.example_foo_1.0" / "docs" / "CARD.md").read_bytes() == b"# Title"
    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["counts"]["extracted"] == 1
    assert "extracted=1" in capsys.readouterr().out


def test_extract_returns_one_when_any_reference_fails(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "RegistryClient", _FakeClient)
    refs = tmp_path / "refs.txt"
    refs.write_text("reg.example/foo:1.0\nreg.example/missing:1.0\nreg.example/foo:1.0\n", encoding="utf-8")

    code = cli.main(
        ["extract", "--input", str(refs), "--output", str(tmp_path / "out"), "--no-progress", "--max-workers", "2"]
    )

    assert code == 1
    assert (tmp_path / "out" / "reg.example_foo_1.0" / "docs" / "CARD.md").exists()
    assert not (tmp_path / "out" / "reg.example_missing_1.0").exists()


def test_extract_without_references_is_a_noop(monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "RegistryClient", _FakeClient)
    assert cli.main(["extract", "--no-progress"]) == 0
    assert "No image references given" in capsys.readouterr().out


def test_inspect_marks_target_layer(monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "RegistryClient", _FakeClient)

    assert cli.main(["inspect", "reg.example/foo:1.0"]) == 0

    out = capsys.readouterr().out
    assert "Output dir: reg.example_foo_1.0" in out
    assert "Layer 2 *: sha256:c" in out
    assert "Layer 1: sha256:w" in out
    assert "io.opendatahub.modelcar.layer.type=modelcard" in out


def test_config_file_is_loaded_once_per_run(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(cli, "RegistryClient", _FakeClient)
    config = tmp_path / "cfg.yaml"
    config.write_text(f"paths:\n  output_root: {tmp_path / 'cards'}\n", encoding="utf-8")
    calls = []
    real_load = cli.load_config

    def _counting_load(path):
        calls.append(path)
        return real_load(path)

    monkeypatch.setattr(cli, "load_config", _counting_load)

    assert cli.main(["extract", "reg.example/foo:1.0", "--config", str(config), "--no-progress"]) == 0

    assert calls == [config]
    assert (tmp_path / "cards" / "reg.example_foo_1.0" / "docs" / "CARD.md").exists()
