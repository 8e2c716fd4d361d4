"""Reconciliation result data structures produced by the engine."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ReconciliationOutcome(str, Enum):
    BASELINE_CREATED = "baseline_created"
    COMPARISON_PASSED = "comparison_passed"
    COMPARISON_FAILED = "comparison_failed"
    STORAGE_ERROR = "storage_error"
    CAPTURE_ERROR = "capture_error"
    BASELINE_UPDATED = "baseline_updated"
    ERROR = "error"

    @property
    def ok(self) -> bool:
        return self in _OK_OUTCOMES

    @property
    def retryable(self) -> bool:
        return self in (ReconciliationOutcome.CAPTURE_ERROR, ReconciliationOutcome.STORAGE_ERROR)


_OK_OUTCOMES = {
    ReconciliationOutcome.BASELINE_CREATED,
    ReconciliationOutcome.COMPARISON_PASSED,
    ReconciliationOutcome.BASELINE_UPDATED,
}


class UnitResult(BaseModel):
    """Result of reconciling one (story, browser, platform) triple."""
    story_id: str
    story_title: str = ""
    story_name: str = ""
    test_name: str
    browser: str
    platform: str
    key: str = ""
    outcome: ReconciliationOutcome
    diff_pixels: Optional[int] = None
    total_pixels: Optional[int] = None
    threshold: Optional[float] = None
    max_diff_pixels: Optional[int] = None
    actual_path: Optional[str] = None
    baseline_path: Optional[str] = None
    diff_path: Optional[str] = None
    message: str = ""
    error_type: Optional[str] = None
    attempts: int = 1
    duration_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome.ok


class RunResult(BaseModel):
    run_id: str
    mode: str = "verify"  # verify, update
    started_at: str
    completed_at: str = ""
    storybook_url: str = ""
    platform: str = ""
    browsers: list[str] = Field(default_factory=list)
    total_units: int = 0
    baselines_created: int = 0
    baselines_updated: int = 0
    passed: int = 0
    failed: int = 0
    storage_errors: int = 0
    capture_errors: int = 0
    errors: int = 0
    duration_seconds: float = 0.0
    unit_results: list[UnitResult] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return any(not r.passed for r in self.unit_results)

    @property
    def failures(self) -> list[UnitResult]:
        return [r for r in self.unit_results if not r.passed]

    def tally(self) -> None:
        """Recompute the per-outcome counters from ``unit_results``."""
        counts = {outcome: 0 for outcome in ReconciliationOutcome}
        for r in self.unit_results:
            counts[r.outcome] += 1
        self.total_units = len(self.unit_results)
        self.baselines_created = counts[ReconciliationOutcome.BASELINE_CREATED]
        self.baselines_updated = counts[ReconciliationOutcome.BASELINE_UPDATED]
        self.passed = counts[ReconciliationOutcome.COMPARISON_PASSED]
        self.failed = counts[ReconciliationOutcome.COMPARISON_FAILED]
        self.storage_errors = counts[ReconciliationOutcome.STORAGE_ERROR]
        self.capture_errors = counts[ReconciliationOutcome.CAPTURE_ERROR]
        self.errors = counts[ReconciliationOutcome.ERROR]
