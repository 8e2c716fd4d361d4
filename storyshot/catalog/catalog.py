"""Story catalog: loads the Storybook index and selects stories for visual checks."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

import httpx
from pydantic import ValidationError

from storyshot.errors import ConfigurationError
from storyshot.models.story import Story, StoryIndex
from storyshot.storage.keys import sanitize_name

logger = logging.getLogger(__name__)

DEFAULT_VISUAL_TAG = "visual:check"
DEFAULT_EXCLUDED_SUFFIX = "--docs"
TEST_ONLY_TAG = "test"
TEST_ONLY_ID_MARKER = "test-stories"


def is_remote(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def is_eligible(
    story: Story,
    visual_tag: str = DEFAULT_VISUAL_TAG,
    excluded_suffix: str = DEFAULT_EXCLUDED_SUFFIX,
) -> bool:
    """Decide eligibility from the story's tags and id only."""
    if visual_tag not in story.tags:
        return False
    if story.id.endswith(excluded_suffix):
        return False
    return TEST_ONLY_TAG not in story.tags and TEST_ONLY_ID_MARKER not in story.id


def filter_stories(
    stories: Iterable[Story],
    visual_tag: str = DEFAULT_VISUAL_TAG,
    excluded_suffix: str = DEFAULT_EXCLUDED_SUFFIX,
) -> list[Story]:
    """Keep stories tagged for visual checks, dropping docs pages and test-only stories."""
    stories = list(stories)
    selected = []
    for story in stories:
        if is_eligible(story, visual_tag, excluded_suffix):
            logger.debug("Including story %s (%s)", story.id, story.label)
            selected.append(story)
        elif visual_tag not in story.tags:
            logger.debug("Skipping story %s: missing '%s' tag", story.id, visual_tag)
        else:
            logger.debug("Skipping story %s: docs page or test-only story", story.id)

    logger.info("Filtered to %d stories with '%s' tag from %d total",
                len(selected), visual_tag, len(stories))
    return selected


def check_key_collisions(stories: Iterable[Story]) -> None:
    """Reject catalogs where distinct stories would share a snapshot key.

    Raises:
        ConfigurationError: naming every colliding group.
    """
    by_name: dict[str, list[str]] = {}
    for story in stories:
        by_name.setdefault(sanitize_name(story.test_name), []).append(story.id)

    collisions = {name: ids for name, ids in by_name.items() if len(ids) > 1}
    if collisions:
        detail = "; ".join(f"{name}: {', '.join(ids)}" for name, ids in sorted(collisions.items()))
        raise ConfigurationError(
            "Distinct stories map to the same snapshot key. Rename one story in each group",
            collisions=detail,
        )


class StoryCatalog:
    """Reads a Storybook ``index.json`` from disk or over HTTP."""

    def __init__(
        self,
        source: str,
        visual_tag: str = DEFAULT_VISUAL_TAG,
        excluded_suffix: str = DEFAULT_EXCLUDED_SUFFIX,
        timeout_seconds: float = 30.0,
    ):
        self.source = source
        self.visual_tag = visual_tag
        self.excluded_suffix = excluded_suffix
        self.timeout_seconds = timeout_seconds

    async def load(self) -> list[Story]:
        """Return every story in index order."""
        raw = await self._fetch_remote() if is_remote(self.source) else self._read_local()
        try:
            index = StoryIndex.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError("Malformed Storybook index", source=self.source) from e

        if not index.entries:
            logger.warning("No entries found in Storybook index %s", self.source)
        stories = [Story.from_entry(story_id, entry) for story_id, entry in index.entries.items()]
        logger.info("Found %d stories in %s", len(stories), self.source)
        return stories

    async def load_eligible(self) -> list[Story]:
        """Load, filter and validate the stories to verify.

        Raises:
            ConfigurationError: if nothing is eligible or two stories collide.
        """
        stories = filter_stories(await self.load(), self.visual_tag, self.excluded_suffix)
        if not stories:
            raise ConfigurationError(
                f"No stories found with '{self.visual_tag}' tag. "
                f"Add tags: ['{self.visual_tag}'] to the stories you want checked",
                source=self.source,
            )
        check_key_collisions(stories)
        return stories

    def _read_local(self) -> dict:
        path = Path(self.source)
        if not path.is_file():
            raise ConfigurationError(
                "Storybook index not found. Build Storybook first (npm run build-storybook)",
                source=self.source,
            )
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Storybook index is not valid JSON: {e}", source=self.source) from e

    async def _fetch_remote(self) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(self.source)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise ConfigurationError(
                f"Failed to fetch Storybook index: HTTP {e.response.status_code}", source=self.source,
            ) from e
        except httpx.HTTPError as e:
            raise ConfigurationError(f"Failed to fetch Storybook index: {e}", source=self.source) from e
        except ValueError as e:
            raise ConfigurationError(f"Storybook index is not valid JSON: {e}", source=self.source) from e
