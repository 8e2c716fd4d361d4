"""Pytest configuration and shared fixtures."""

import json
import shutil
import time
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from storyshot.comparison.comparator import PixelComparator
from storyshot.engine.context import RunContext
from storyshot.errors import CaptureError, StorageError
from storyshot.models.config import (
    FrameworkConfig,
    StorageConfig,
    StorybookConfig,
    ToleranceConfig,
)
from storyshot.models.story import Story
from storyshot.storage.base import SnapshotStorage

IMAGE_SIZE = (40, 30)
PLATFORM = "linux"


# ============================================================================
# Image helpers
# ============================================================================


def make_png(
    path: Path,
    size: tuple[int, int] = IMAGE_SIZE,
    color: tuple[int, int, int] = (255, 255, 255),
    diff_pixels: int = 0,
) -> Path:
    """Write a solid PNG with the first ``diff_pixels`` pixels (row-major) painted black."""
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGB", size, color)
    width = size[0]
    for n in range(diff_pixels):
        img.putpixel((n % width, n // width), (0, 0, 0))
    img.save(path)
    return path


# ============================================================================
# Storage fakes
# ============================================================================


class FakeBackend:
    """In-memory object store implementing the backend capability."""

    def __init__(self, bucket: str = "visual-test-snapshots"):
        self.bucket = bucket
        self.objects: dict[str, bytes] = {}
        self.bucket_exists = False
        self.calls: dict[str, int] = {"ensure": 0, "head": 0, "put": 0, "get": 0}
        self.errors: dict[str, Exception] = {}
        self.missing_on_get: set[str] = set()
        self.put_delay: float = 0.0

    def _maybe_fail(self, op: str) -> None:
        if op in self.errors:
            raise self.errors[op]

    def ensure_bucket(self) -> None:
        self.calls["ensure"] += 1
        self._maybe_fail("ensure")
        self.bucket_exists = True

    def head_object(self, key: str) -> bool:
        self.calls["head"] += 1
        self._maybe_fail("head")
        return key in self.objects

    def put_object(self, key: str, local_path: Path) -> None:
        self.calls["put"] += 1
        if self.put_delay:
            time.sleep(self.put_delay)
        self._maybe_fail("put")
        self.objects[key] = Path(local_path).read_bytes()

    def get_object(self, key: str, local_path: Path) -> bool:
        self.calls["get"] += 1
        self._maybe_fail("get")
        if key not in self.objects or key in self.missing_on_get:
            return False
        Path(local_path).write_bytes(self.objects[key])
        return True


class FakeCapture:
    """Capture adapter that copies a prepared image for each story."""

    def __init__(self, images: dict[str, Path], default: Path):
        self.images = images
        self.default = default
        self.failures: dict[str, int] = {}
        self.calls: list[str] = []

    async def capture(self, story: Story, output_path: Path) -> Path:
        self.calls.append(story.id)
        remaining = self.failures.get(story.id, 0)
        if remaining:
            self.failures[story.id] = remaining - 1
            raise CaptureError("Story root never appeared", story_id=story.id)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.images.get(story.id, self.default), output_path)
        return output_path


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def story_index_data() -> dict:
    """A Storybook index with three visual stories and several ineligible entries."""
    def entry(story_id: str, title: str, name: str, tags: Optional[list], type_: str = "story") -> dict:
        return {"id": story_id, "title": title, "name": name, "type": type_, "tags": tags,
                "importPath": f"./src/{title.lower()}.stories.tsx"}

    entries = [
        entry("example-button--primary", "Example/Button", "Primary", ["dev", "visual:check"]),
        entry("example-button--secondary", "Example/Button", "Secondary", ["visual:check"]),
        entry("example-header--logged-in", "Example/Header", "Logged In", ["visual:check"]),
        entry("example-button--docs", "Example/Button", "Docs", ["visual:check"], type_="docs"),
        entry("example-page--plain", "Example/Page", "Plain", ["dev"]),
        entry("internal-test-stories--grid", "Internal", "Grid", ["visual:check"]),
        entry("example-form--empty", "Example/Form", "Empty", ["visual:check", "test"]),
        entry("example-footer--untagged", "Example/Footer", "Untagged", None),
    ]
    return {"v": 5, "entries": {e["id"]: e for e in entries}}


@pytest.fixture
def index_file(tmp_path: Path, story_index_data: dict) -> Path:
    path = tmp_path / "storybook-static" / "index.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps(story_index_data))
    return path


@pytest.fixture
def framework_config(tmp_path: Path, index_file: Path) -> FrameworkConfig:
    """Create a test framework configuration pointing at a local index."""
    return FrameworkConfig(
        storage=StorageConfig(access_key="minioadmin", secret_key="minioadmin", timeout_seconds=5),
        tolerance=ToleranceConfig(threshold=0.2, max_diff_pixels=100),
        storybook=StorybookConfig(index_path=str(index_file)),
        browsers=["chromium"],
        workers=2,
        output_dir=str(tmp_path / "results"),
    )


# ============================================================================
# Story Fixtures
# ============================================================================


@pytest.fixture
def stories() -> list[Story]:
    return [
        Story(id="example-button--primary", title="Example/Button", name="Primary",
              tags=("visual:check",)),
        Story(id="example-button--secondary", title="Example/Button", name="Secondary",
              tags=("visual:check",)),
        Story(id="example-header--logged-in", title="Example/Header", name="Logged In",
              tags=("visual:check",)),
    ]


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def snapshot_storage(fake_backend: FakeBackend) -> SnapshotStorage:
    return SnapshotStorage(fake_backend)


@pytest.fixture
def base_image(tmp_path: Path) -> Path:
    return make_png(tmp_path / "fixtures" / "base.png")


@pytest.fixture
def fake_capture(base_image: Path) -> FakeCapture:
    return FakeCapture(images={}, default=base_image)


@pytest.fixture
def make_context(
    framework_config: FrameworkConfig,
    stories: list[Story],
    snapshot_storage: SnapshotStorage,
    fake_capture: FakeCapture,
) -> Callable[..., RunContext]:
    """Factory for run contexts; keyword overrides are applied to the config."""
    def _make(**overrides) -> RunContext:
        config = framework_config.model_copy(update=overrides) if overrides else framework_config
        return RunContext(
            config=config,
            stories=tuple(stories),
            storage=snapshot_storage,
            comparator=PixelComparator(),
            capture_factory=lambda browser: fake_capture,
            platform=PLATFORM,
        )
    return _make


# ============================================================================
# Playwright Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright page."""
    page = AsyncMock()
    page.url = "http://localhost:6006/iframe.html"
    page.locator = MagicMock(return_value=AsyncMock())
    return page


@pytest.fixture
def mock_context(mock_page: AsyncMock) -> AsyncMock:
    """Create a mock Playwright browser context."""
    context = AsyncMock()
    context.new_page.return_value = mock_page
    return context


@pytest.fixture
def mock_browser(mock_context: AsyncMock) -> AsyncMock:
    """Create a mock Playwright browser."""
    browser = AsyncMock()
    browser.new_context.return_value = mock_context
    return browser


@pytest.fixture
def storage_error() -> StorageError:
    return StorageError("MinIO stat object failed: connection refused", provider="minio")


@pytest.fixture
def png() -> Callable[..., Path]:
    """The ``make_png`` helper as a fixture."""
    return make_png
