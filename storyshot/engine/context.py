"""Run context shared read-only by every unit of a run."""

from __future__ import annotations

import sys
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from storyshot.capture.browser import CaptureAdapter
from storyshot.comparison.comparator import Comparator
from storyshot.models.config import FrameworkConfig
from storyshot.models.story import Story
from storyshot.storage.base import SnapshotStorage


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:8]}"


def utc_timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass(frozen=True)
class RunContext:
    """Everything a unit needs, built once before dispatch."""

    config: FrameworkConfig
    stories: tuple[Story, ...]
    storage: SnapshotStorage
    comparator: Comparator
    capture_factory: Callable[[str], CaptureAdapter]
    platform: str = sys.platform
    run_id: str = field(default_factory=new_run_id)

    @property
    def run_dir(self) -> Path:
        return self.config.runs_dir / self.run_id


@dataclass(frozen=True)
class UnitPaths:
    """Local artifact locations for one (story, browser) unit."""

    unit_dir: Path
    screenshot: Path
    baseline: Path
    temp: Path
    diff: Path

    @classmethod
    def for_unit(cls, run_dir: Path, test_name: str, browser: str) -> "UnitPaths":
        stem = f"{test_name}-{browser}"
        unit_dir = run_dir / stem
        return cls(
            unit_dir=unit_dir,
            screenshot=unit_dir / "screenshots" / f"{stem}.png",
            baseline=unit_dir / "baselines" / f"{stem}-baseline.png",
            temp=unit_dir / "temp" / f"{stem}.png",
            diff=unit_dir / "diffs" / f"{stem}-diff.png",
        )

    def create(self) -> "UnitPaths":
        for path in (self.screenshot, self.baseline, self.temp, self.diff):
            path.parent.mkdir(parents=True, exist_ok=True)
        return self
