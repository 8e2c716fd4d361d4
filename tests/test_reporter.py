"""Tests for reporter module: JSON report, HTML report, console summary."""

import json
from io import StringIO
from pathlib import Path

from rich.console import Console

from storyshot.models.config import FrameworkConfig
from storyshot.models.result import ReconciliationOutcome, RunResult, UnitResult
from storyshot.reporter.html_report import _build_unit_card, _embed_image, generate_html_report
from storyshot.reporter.json_report import generate_json_report
from storyshot.reporter.reporter import Reporter, print_summary


# ============================================================================
# Helpers
# ============================================================================

def _make_unit(
    story_id="example-button--primary",
    outcome=ReconciliationOutcome.COMPARISON_PASSED,
    diff_pixels=0,
    diff_path=None,
    message="",
    browser="chromium",
) -> UnitResult:
    return UnitResult(
        story_id=story_id,
        story_title="Example/Button",
        story_name="Primary",
        test_name="Example_Button__Primary",
        browser=browser,
        platform="linux",
        key=f"baselines/linux/{browser}/Example_Button_Primary.png",
        outcome=outcome,
        diff_pixels=diff_pixels,
        total_pixels=1200,
        threshold=0.2,
        max_diff_pixels=100,
        diff_path=diff_path,
        message=message,
        duration_seconds=0.4,
    )


def _make_run_result(unit_results=None, run_id="run_abc123", mode="verify") -> RunResult:
    result = RunResult(
        run_id=run_id,
        mode=mode,
        started_at="2025-01-01T00:00:00Z",
        completed_at="2025-01-01T00:01:00Z",
        storybook_url="http://localhost:6006",
        platform="linux",
        browsers=["chromium"],
        duration_seconds=60.0,
        unit_results=unit_results if unit_results is not None else [_make_unit()],
    )
    result.tally()
    return result


# ============================================================================
# RunResult
# ============================================================================


class TestRunResultTally:
    def test_counts_by_outcome(self):
        result = _make_run_result([
            _make_unit(outcome=ReconciliationOutcome.BASELINE_CREATED),
            _make_unit(outcome=ReconciliationOutcome.COMPARISON_PASSED),
            _make_unit(outcome=ReconciliationOutcome.COMPARISON_FAILED, diff_pixels=150),
            _make_unit(outcome=ReconciliationOutcome.STORAGE_ERROR),
            _make_unit(outcome=ReconciliationOutcome.CAPTURE_ERROR),
            _make_unit(outcome=ReconciliationOutcome.ERROR),
        ])
        assert result.total_units == 6
        assert result.baselines_created == 1
        assert result.passed == 1
        assert result.failed == 1
        assert result.storage_errors == 1
        assert result.capture_errors == 1
        assert result.errors == 1
        assert len(result.failures) == 4

    def test_no_failures(self):
        result = _make_run_result([_make_unit(outcome=ReconciliationOutcome.BASELINE_UPDATED)])
        assert result.has_failures is False
        assert result.baselines_updated == 1

    def test_retryable_outcomes(self):
        assert ReconciliationOutcome.CAPTURE_ERROR.retryable
        assert ReconciliationOutcome.STORAGE_ERROR.retryable
        assert not ReconciliationOutcome.COMPARISON_FAILED.retryable
        assert not ReconciliationOutcome.ERROR.retryable


# ============================================================================
# JSON report
# ============================================================================


class TestJsonReport:
    def test_writes_model_dump_and_failures(self, tmp_path):
        failed = _make_unit(
            story_id="example-button--secondary",
            outcome=ReconciliationOutcome.COMPARISON_FAILED,
            diff_pixels=150,
            diff_path="/tmp/diff.png",
            message="150 of 1200 pixels differ",
        )
        run_result = _make_run_result([_make_unit(), failed])
        path = tmp_path / "report.json"

        generate_json_report(run_result, path)

        data = json.loads(path.read_text())
        assert data["run_id"] == "run_abc123"
        assert data["passed"] == 1
        assert data["failed"] == 1
        assert data["has_failures"] is True
        assert len(data["unit_results"]) == 2
        assert data["unit_results"][1]["outcome"] == "comparison_failed"
        assert data["failures"] == [{
            "story_id": "example-button--secondary",
            "test_name": "Example_Button__Primary",
            "browser": "chromium",
            "platform": "linux",
            "key": "baselines/linux/chromium/Example_Button_Primary.png",
            "outcome": "comparison_failed",
            "message": "150 of 1200 pixels differ",
            "diff_path": "/tmp/diff.png",
        }]


# ============================================================================
# HTML report
# ============================================================================


class TestEmbedImage:
    def test_embeds_existing_png(self, png, tmp_path):
        uri = _embed_image(str(png(tmp_path / "a.png")))
        assert uri.startswith("data:image/png;base64,")

    def test_missing_file(self, tmp_path):
        assert _embed_image(str(tmp_path / "missing.png")) == ""

    def test_none(self):
        assert _embed_image(None) == ""


class TestHtmlReport:
    def test_failed_card_embeds_images(self, png, tmp_path):
        unit = _make_unit(outcome=ReconciliationOutcome.COMPARISON_FAILED, diff_pixels=150,
                          message="150 px differ")
        unit.actual_path = str(png(tmp_path / "actual.png"))
        unit.baseline_path = str(png(tmp_path / "baseline.png"))
        unit.diff_path = str(png(tmp_path / "diff.png", color=(255, 0, 0)))

        card = _build_unit_card(unit)

        assert 'data-status="fail"' in card
        assert card.count("data:image/png;base64,") == 3
        assert "failure-banner" in card
        assert "150 px differ (max 100, threshold 0.2)" in card

    def test_escapes_story_names(self):
        unit = _make_unit()
        unit.story_name = "<script>alert(1)</script>"
        card = _build_unit_card(unit)
        assert "<script>alert(1)</script>" not in card
        assert "&lt;script&gt;" in card

    def test_generate_html_report(self, tmp_path):
        failed = _make_unit(story_id="example-header--logged-in",
                            outcome=ReconciliationOutcome.COMPARISON_FAILED, diff_pixels=150)
        run_result = _make_run_result([_make_unit(), failed])
        path = tmp_path / "reports" / "report.html"

        generate_html_report(run_result, path)

        content = path.read_text()
        assert content.startswith("<!DOCTYPE html>")
        assert "run_abc123" in content
        assert "filterUnits" in content
        # failing units come first
        assert content.index("example-header--logged-in") < content.index("example-button--primary")


# ============================================================================
# Reporter orchestration
# ============================================================================


class TestReporter:
    def test_generates_configured_formats(self, tmp_path):
        config = FrameworkConfig(output_dir=str(tmp_path))
        reports = Reporter(config).generate_reports(_make_run_result())

        assert set(reports) == {"html", "json"}
        assert Path(reports["json"]) == tmp_path / "reports" / "report_run_abc123.json"
        assert all(Path(p).exists() for p in reports.values())

    def test_json_only(self, tmp_path):
        config = FrameworkConfig(output_dir=str(tmp_path), report_formats=["json"])
        reports = Reporter(config).generate_reports(_make_run_result(), output_dir=tmp_path / "custom")

        assert list(reports) == ["json"]
        assert Path(reports["json"]).parent == tmp_path / "custom"


class TestPrintSummary:
    def test_prints_failures_table(self):
        buffer = StringIO()
        console = Console(file=buffer, width=200)
        failed = _make_unit(outcome=ReconciliationOutcome.STORAGE_ERROR, message="bucket unreachable")

        print_summary(_make_run_result([_make_unit(), failed]), console)

        output = buffer.getvalue()
        assert "Results Summary (verify)" in output
        assert "Failures" in output
        assert "storage_error" in output
        assert "bucket unreachable" in output

    def test_update_mode_summary(self):
        buffer = StringIO()
        console = Console(file=buffer, width=200)
        run_result = _make_run_result(
            [_make_unit(outcome=ReconciliationOutcome.BASELINE_UPDATED)], mode="update",
        )

        print_summary(run_result, console)

        output = buffer.getvalue()
        assert "Baselines Updated" in output
        assert "Failures" not in output
