"""Reconciliation engine: compares fresh captures with remote baselines.

Per unit the engine captures the story, derives its key and then either
creates the baseline (first sighting) or downloads and compares it. Units run
concurrently up to ``config.workers``; failures are recorded per unit and
never stop sibling units.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

from storyshot.errors import CaptureError, StorageError
from storyshot.models.result import ReconciliationOutcome, RunResult, UnitResult
from storyshot.models.story import Story

from .context import RunContext, UnitPaths, utc_timestamp

logger = logging.getLogger(__name__)

Outcome = ReconciliationOutcome


class UnitEngine(ABC):
    """Shared dispatch, retry and storage plumbing for per-unit workflows."""

    mode = "verify"

    def __init__(self, context: RunContext):
        self.context = context

    async def run(self, browsers: list[str] | None = None) -> RunResult:
        """Process every story x browser unit and collect the results."""
        browsers = browsers or list(self.context.config.browsers)
        units = [(story, browser) for browser in browsers for story in self.context.stories]
        total = len(units)
        started_at = utc_timestamp()
        start_time = time.time()
        logger.info("Starting %s run %s (%d stories x %d browsers on %s)",
                    self.mode, self.context.run_id, len(self.context.stories),
                    len(browsers), self.context.platform)

        semaphore = asyncio.Semaphore(self.context.config.workers)

        async def _run_one(index: int, story: Story, browser: str) -> UnitResult:
            async with semaphore:
                logger.info("Processing [%d/%d]: %s on %s", index + 1, total, story.label, browser)
                return await self.process_with_retries(story, browser)

        unit_results = await asyncio.gather(
            *(_run_one(i, story, browser) for i, (story, browser) in enumerate(units))
        )

        run_result = RunResult(
            run_id=self.context.run_id,
            mode=self.mode,
            started_at=started_at,
            completed_at=utc_timestamp(),
            storybook_url=self.context.config.storybook.url,
            platform=self.context.platform,
            browsers=browsers,
            duration_seconds=round(time.time() - start_time, 2),
            unit_results=list(unit_results),
        )
        run_result.tally()
        return run_result

    async def process_with_retries(self, story: Story, browser: str) -> UnitResult:
        max_attempts = self.context.config.retries + 1
        attempt = 0
        while True:
            attempt += 1
            result = await self.process(story, browser)
            result.attempts = attempt
            if not result.outcome.retryable or attempt >= max_attempts:
                return result
            logger.warning("Retrying %s on %s after %s (attempt %d/%d)",
                           story.id, browser, result.outcome.value, attempt + 1, max_attempts)

    async def process(self, story: Story, browser: str) -> UnitResult:
        """Run one unit, turning any unit-scoped failure into a result."""
        start = time.time()
        test_name = story.test_name
        key = self.context.storage.generate_key(test_name, browser, self.context.platform)
        base: dict[str, Any] = dict(
            story_id=story.id,
            story_title=story.title,
            story_name=story.name,
            test_name=test_name,
            browser=browser,
            platform=self.context.platform,
            key=key,
        )
        try:
            paths = UnitPaths.for_unit(self.context.run_dir, test_name, browser).create()
            fields = await self.handle_unit(story, browser, key, paths)
        except CaptureError as e:
            logger.error("Capture failed for %s on %s: %s", story.id, browser, e)
            fields = dict(outcome=Outcome.CAPTURE_ERROR, message=str(e), error_type=type(e).__name__)
        except StorageError as e:
            logger.error("Storage failed for %s (%s): %s", story.id, key, e)
            fields = dict(outcome=Outcome.STORAGE_ERROR, message=str(e), error_type=type(e).__name__)
        except asyncio.TimeoutError:
            # storage timeouts arrive as StorageError, so this one came from capture
            logger.error("Timed out capturing %s on %s (%s)", story.id, browser, self.context.platform)
            fields = dict(outcome=Outcome.CAPTURE_ERROR, message=f"Timed out capturing {story.id}",
                          error_type="TimeoutError")
        except Exception as e:
            logger.exception("Unexpected error processing %s on %s", story.id, browser)
            fields = dict(outcome=Outcome.ERROR, message=f"{type(e).__name__}: {e}",
                          error_type=type(e).__name__)
        return UnitResult(**base, **fields, duration_seconds=round(time.time() - start, 3))

    @abstractmethod
    async def handle_unit(self, story: Story, browser: str, key: str, paths: UnitPaths) -> dict[str, Any]:
        """Run the mode-specific workflow for one unit and return its result fields."""

    async def capture(self, story: Story, browser: str, output) -> None:
        adapter = self.context.capture_factory(browser)
        await adapter.capture(story, output)

    async def storage_call(self, fn: Callable[..., Any], *args: Any, key: str) -> Any:
        """Run a blocking storage call off the loop.

        The call is awaited to completion so the recorded outcome always
        matches what reached the store. ``storage.timeout_seconds`` is enforced
        by the SDK clients, whose timeout errors the backends raise as
        ``StorageError``.
        """
        logger.debug("Storage %s for %s", getattr(fn, "__name__", "call"), key)
        return await asyncio.to_thread(fn, *args)


class ReconciliationEngine(UnitEngine):
    """Creates missing baselines and compares existing ones."""

    mode = "verify"

    async def handle_unit(self, story: Story, browser: str, key: str, paths: UnitPaths) -> dict[str, Any]:
        storage = self.context.storage
        await self.capture(story, browser, paths.screenshot)

        if not await self.storage_call(storage.exists, key, key=key):
            return await self._create_baseline(story, key, paths)

        found = await self.storage_call(storage.download, key, paths.baseline, key=key)
        if not found:
            logger.warning("Baseline %s disappeared before download; recreating it", key)
            return await self._create_baseline(story, key, paths)

        tolerance = self.context.config.tolerance
        comparison = await asyncio.to_thread(
            self.context.comparator.compare, paths.screenshot, paths.baseline, paths.diff, tolerance,
        )
        fields: dict[str, Any] = dict(
            diff_pixels=comparison.diff_pixels,
            total_pixels=comparison.total_pixels,
            threshold=tolerance.threshold,
            max_diff_pixels=tolerance.max_diff_pixels,
            actual_path=str(paths.screenshot),
            baseline_path=str(paths.baseline),
            diff_path=comparison.diff_path,
            message=comparison.message,
        )
        if comparison.passed:
            logger.info("Visual comparison passed for %s (%s)", story.test_name, comparison.message)
            return dict(outcome=Outcome.COMPARISON_PASSED, **fields)

        logger.warning("Visual regression in %s on %s: %s (diff: %s)",
                       story.id, key, comparison.message, comparison.diff_path)
        return dict(outcome=Outcome.COMPARISON_FAILED, **fields)

    async def _create_baseline(self, story: Story, key: str, paths: UnitPaths) -> dict[str, Any]:
        await self.storage_call(self.context.storage.upload, paths.screenshot, key, key=key)
        logger.info("Baseline snapshot created for %s: %s", story.test_name, key)
        return dict(
            outcome=Outcome.BASELINE_CREATED,
            actual_path=str(paths.screenshot),
            message=f"Baseline snapshot created: {key}",
        )
