"""Baseline update workflow: accept the current renders as the new baselines."""

from __future__ import annotations

import logging
from typing import Any

from storyshot.errors import ConfigurationError
from storyshot.models.result import ReconciliationOutcome, RunResult
from storyshot.models.story import Story

from .context import UnitPaths
from .reconciler import UnitEngine

logger = logging.getLogger(__name__)


class BaselineUpdater(UnitEngine):
    """Captures every eligible story and overwrites its remote baseline.

    No existence check and no comparison take place, so this replaces
    baselines that currently fail. It only runs when ``update_baselines`` is
    enabled in the configuration.
    """

    mode = "update"

    async def run(self, browsers: list[str] | None = None) -> RunResult:
        if not self.context.config.update_baselines:
            raise ConfigurationError(
                "Baseline update not requested. Set UPDATE_BASELINES=true to overwrite baselines"
            )
        result = await super().run(browsers)
        logger.info("Updated %d baselines out of %d units",
                    result.baselines_updated, result.total_units)
        return result

    async def handle_unit(self, story: Story, browser: str, key: str, paths: UnitPaths) -> dict[str, Any]:
        await self.capture(story, browser, paths.temp)
        await self.storage_call(self.context.storage.upload, paths.temp, key, key=key)
        logger.info("Updated baseline for %s: %s", story.test_name, key)
        return dict(
            outcome=ReconciliationOutcome.BASELINE_UPDATED,
            actual_path=str(paths.temp),
            message=f"Baseline snapshot updated: {key}",
        )
