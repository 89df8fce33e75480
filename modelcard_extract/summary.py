from __future__ import annotations

from collections import Counter
from dataclasses import asdict
from typing import Any, Iterable

from .models import FAILED, OUTCOME_STATUSES, ReferenceResult
from .utils import now_utc_iso


def build_run_summary(results: Iterable[ReferenceResult]) -> dict[str, Any]:
    results = list(results)
    counts = Counter(result.status for result in results)
    failures: list[dict[str, Any]] = []
    for r in results:
        if r.error:
            failures.append({"reference": r.reference, "digest": None, "phase": r.phase, "error": r.error})
        for layer in r.layers:
            if layer.status == FAILED:
                failures.append(
                    {
                        "reference": r.reference,
                        "digest": layer.digest,
                        "phase": layer.phase,
                        "error": layer.error,
                    }
                )
    by_phase = Counter(f["phase"] or "unknown" for f in failures)

    return {
        "finished_at": now_utc_iso(),
        "total": len(results),
        "counts": {status: counts.get(status, 0) for status in OUTCOME_STATUSES},
        "failure_by_phase": dict(by_phase),
        "failures": failures,
        "written": [path for r in results for path in r.output_paths],
        "references": [asdict(r) for r in results],
    }


def format_run_summary(report: dict[str, Any]) -> str:
    lines = []
    lines.append("Model card extraction")
    lines.append("=====================")
    lines.append(
        "References: {total}  extracted={extracted} not_found={not_found} ambiguous={ambiguous} failed={failed}".format(
            total=report["total"], **report["counts"]
        )
    )

    lines.append("\nWritten files:")
    if report["written"]:
        for path in report["written"]:
            lines.append(f"- {path}")
    else:
        lines.append("- none")

    lines.append("\nFailures:")
    if report["failures"]:
        for failure in report["failures"]:
            where = failure.get("digest") or "-"
            lines.append(f"- {failure['reference']} [{failure['phase']}] {where}: {failure['error']}")
    else:
        lines.append("- none")

    return "\n".join(lines) + "\n"
