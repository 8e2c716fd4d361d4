"""Run orchestrator: global setup, catalog, engine dispatch and reporting."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Callable

import httpx

from storyshot.capture.browser import BrowserPool
from storyshot.catalog.catalog import StoryCatalog, is_remote
from storyshot.comparison.comparator import Comparator, PixelComparator
from storyshot.engine.context import RunContext
from storyshot.engine.reconciler import ReconciliationEngine, UnitEngine
from storyshot.engine.updater import BaselineUpdater
from storyshot.errors import ConfigurationError
from storyshot.models.config import FrameworkConfig
from storyshot.models.result import RunResult
from storyshot.models.story import Story
from storyshot.reporter.reporter import Reporter
from storyshot.storage.base import SnapshotStorage, create_storage

logger = logging.getLogger(__name__)


async def global_setup(config: FrameworkConfig) -> None:
    """Precondition checked once before any unit runs.

    Raises:
        ConfigurationError: if the Storybook catalog source is unreachable.
    """
    logger.info("Starting global setup")
    for directory in (config.runs_dir, config.reports_dir, config.logs_dir):
        directory.mkdir(parents=True, exist_ok=True)

    source = config.storybook.catalog_source
    if is_remote(source):
        await _check_reachable(source, config.timing.precondition_timeout_seconds)
    elif not Path(source).is_file():
        raise ConfigurationError(
            "Storybook static build required. Run: npm run build-storybook", source=source,
        )
    else:
        logger.info("Found Storybook index at %s", source)

    logger.info("Environment: provider=%s bucket=%s endpoint=%s ci=%s update_baselines=%s",
                config.storage.provider, config.storage.bucket, config.storage.endpoint,
                config.ci, config.update_baselines)
    logger.info("Global setup completed")


async def _check_reachable(url: str, timeout: float) -> None:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise ConfigurationError(
            f"Storybook is not accessible: {e}. Start it with: npm run storybook", url=url,
        ) from e
    logger.info("Storybook is accessible at %s", url)


class Orchestrator:
    """Coordinates a verify or update run."""

    def __init__(
        self,
        config: FrameworkConfig,
        storage: SnapshotStorage | None = None,
        comparator: Comparator | None = None,
        browser_pool_factory: Callable[..., BrowserPool] = BrowserPool,
    ):
        self.config = config
        self._storage = storage
        self.comparator = comparator or PixelComparator()
        self.browser_pool_factory = browser_pool_factory
        self.catalog = StoryCatalog(
            config.storybook.catalog_source,
            visual_tag=config.storybook.visual_check_tag,
            excluded_suffix=config.storybook.excluded_suffix,
            timeout_seconds=config.timing.catalog_timeout_seconds,
        )

    @property
    def storage(self) -> SnapshotStorage:
        if self._storage is None:
            self._storage = create_storage(self.config.storage)
        return self._storage

    def run_verify(self, browsers: list[str] | None = None) -> tuple[RunResult, dict[str, str]]:
        """Compare every eligible story against its baseline."""
        return asyncio.run(self._run(ReconciliationEngine, browsers))

    def run_update(self, browsers: list[str] | None = None) -> tuple[RunResult, dict[str, str]]:
        """Overwrite the baseline of every eligible story. Requires ``update_baselines``."""
        if not self.config.update_baselines:
            raise ConfigurationError(
                "Baseline update not requested. Set UPDATE_BASELINES=true to overwrite baselines"
            )
        return asyncio.run(self._run(BaselineUpdater, browsers))

    def run_check(self) -> None:
        """Run only the global setup precondition."""
        asyncio.run(global_setup(self.config))

    def list_stories(self) -> list[Story]:
        return asyncio.run(self.catalog.load_eligible())

    async def _run(
        self, engine_cls: type[UnitEngine], browsers: list[str] | None
    ) -> tuple[RunResult, dict[str, str]]:
        start = time.time()
        browsers = browsers or list(self.config.browsers)

        logger.info("--- Stage 1: Global setup ---")
        await global_setup(self.config)

        logger.info("--- Stage 2: Discover stories ---")
        stories = await self.catalog.load_eligible()
        logger.info("Prepared %d stories for visual testing", len(stories))
        for i, story in enumerate(stories, 1):
            logger.debug("  %d. %s (%s)", i, story.label, story.id)

        logger.info("--- Stage 3: %s (%d units) ---",
                    "Update baselines" if engine_cls is BaselineUpdater else "Reconcile",
                    len(stories) * len(browsers))
        async with self.browser_pool_factory(self.config, browsers) as pool:
            context = RunContext(
                config=self.config,
                stories=tuple(stories),
                storage=self.storage,
                comparator=self.comparator,
                capture_factory=pool.adapter,
            )
            run_result = await engine_cls(context).run(browsers)
        self._save_run_result(run_result)

        logger.info("--- Stage 4: Report ---")
        reports = Reporter(self.config).generate_reports(run_result)

        logger.info("=== Run %s complete in %.1fs ===", run_result.run_id, time.time() - start)
        return run_result, reports

    def _save_run_result(self, run_result: RunResult) -> None:
        path = self.config.runs_dir / run_result.run_id / "run_result.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Saving run result to %s", path)
        with open(path, "w") as f:
            json.dump(run_result.model_dump(mode="json"), f, indent=2, default=str)
