"""Storybook index and story data structures."""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


class StoryIndexEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    title: str = ""
    name: str = ""
    type: Optional[str] = None  # "story" or "docs"
    tags: Optional[list[str]] = None
    import_path: Optional[str] = Field(default=None, alias="importPath")


class StoryIndex(BaseModel):
    model_config = ConfigDict(extra="ignore")

    v: int = 0
    entries: dict[str, StoryIndexEntry] = Field(default_factory=dict)


class Story(BaseModel):
    """A named, addressable renderable state. Never mutated after catalog load."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    name: str
    tags: tuple[str, ...] = ()
    import_path: Optional[str] = None

    @property
    def kind(self) -> str:
        return self.title

    @property
    def test_name(self) -> str:
        """Human test name, e.g. ``Example_Button__Primary``."""
        return f"{_NON_ALNUM.sub('_', self.title)}__{_NON_ALNUM.sub('_', self.name)}"

    @property
    def label(self) -> str:
        return f"{self.title} - {self.name}"

    @classmethod
    def from_entry(cls, story_id: str, entry: StoryIndexEntry) -> "Story":
        return cls(
            id=story_id,
            title=entry.title,
            name=entry.name,
            tags=tuple(entry.tags or ()),
            import_path=entry.import_path,
        )
