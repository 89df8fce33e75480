from modelcard_extract.models import (
    AMBIGUOUS,
    EXTRACTED,
    FAILED,
    NOT_FOUND,
    LayerResult,
    ReferenceResult,
)
from modelcard_extract.summary import build_run_summary, format_run_summary


def _results() -> list[ReferenceResult]:
    return [
        ReferenceResult(
            reference="r/a:1",
            status=EXTRACTED,
            sanitized_dir="r_a_1",
            layers=[
                LayerResult(
                    digest="sha256:1",
                    media_type="tar",
                    status=EXTRACTED,
                    file_name="README.md",
                    output_path="output/r_a_1/README.md",
                )
            ],
        ),
        ReferenceResult(reference="r/b:1", status=NOT_FOUND, sanitized_dir="r_b_1"),
        ReferenceResult(
            reference="r/c:1",
            status=AMBIGUOUS,
            sanitized_dir="r_c_1",
            layers=[LayerResult(digest="sha256:3", media_type="tar", status=AMBIGUOUS)],
        ),
        ReferenceResult(
            reference="r/d:1",
            status=FAILED,
            sanitized_dir="r_d_1",
            error="registry unreachable",
            phase="resolve",
        ),
        ReferenceResult(
            reference="r/e:1",
            status=FAILED,
            sanitized_dir="r_e_1",
            layers=[
                LayerResult(
                    digest="sha256:5",
                    media_type="tar+gzip",
                    status=FAILED,
                    error="gzip stream error",
                    phase="scan",
                )
            ],
        ),
    ]


def test_build_run_summary_counts_each_status() -> None:
    report = build_run_summary(_results())
    assert report["total"] == 5
    assert report["counts"] == {EXTRACTED: 1, NOT_FOUND: 1, AMBIGUOUS: 1, FAILED: 2}
    assert report["failure_by_phase"] == {"resolve": 1, "scan": 1}
    assert report["written"] == ["output/r_a_1/README.md"]
    assert report["failures"][1]["digest"] == "sha256:5"


def test_format_run_summary_lists_written_files_and_failures() -> None:
    text = format_run_summary(build_run_summary(_results()))
    assert "extracted=1 not_found=1 ambiguous=1 failed=2" in text
    assert "- output/r_a_1/README.md" in text
    assert "- r/d:1 [resolve] -: registry unreachable" in text
    assert "- r/e:1 [scan] sha256:5: gzip stream error" in text


def test_format_run_summary_without_failures() -> None:
    text = format_run_summary(build_run_summary([]))
    assert "References: 0" in text
    assert text.count("- none") == 2
