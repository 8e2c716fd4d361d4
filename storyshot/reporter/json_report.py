"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from storyshot.models.result import RunResult


def generate_json_report(run_result: RunResult, output_path: Path) -> None:
    """Write a machine-readable JSON report."""
    report = run_result.model_dump(mode="json")
    report["has_failures"] = run_result.has_failures
    report["failures"] = [
        {
            "story_id": r.story_id,
            "test_name": r.test_name,
            "browser": r.browser,
            "platform": r.platform,
            "key": r.key,
            "outcome": r.outcome.value,
            "message": r.message,
            "diff_path": r.diff_path,
        }
        for r in run_result.failures
    ]

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
