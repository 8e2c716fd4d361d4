"""Playwright capture adapter: renders a story and produces a deterministic PNG."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from storyshot.errors import CaptureError, ConfigurationError
from storyshot.models.config import DEVICE_PROFILES, FrameworkConfig, browser_engine
from storyshot.models.story import Story

logger = logging.getLogger(__name__)

DISABLE_ANIMATIONS_CSS = """
*, *::before, *::after {
  animation-duration: 0s !important;
  animation-delay: 0s !important;
  transition-duration: 0s !important;
  transition-delay: 0s !important;
  scroll-behavior: auto !important;
  caret-color: transparent !important;
}
"""


class CaptureAdapter(Protocol):
    """Produces a raster image of one story."""

    async def capture(self, story: Story, output_path: Path) -> Path: ...


async def launch_browser(playwright: Playwright, browser_name: str, headless: bool = True) -> Browser:
    """Launch one of chromium, firefox or webkit."""
    browser_type = getattr(playwright, browser_name)
    return await browser_type.launch(headless=headless)


async def prepare_page_for_visual_test(page: Page) -> None:
    """Freeze animations and transitions so consecutive renders match."""
    await page.add_style_tag(content=DISABLE_ANIMATIONS_CSS)


class PlaywrightCapture:
    """Captures stories from a running Storybook in a fresh browser context each time."""

    def __init__(self, browser: Browser, config: FrameworkConfig, device: dict[str, Any] | None = None):
        self.browser = browser
        self.config = config
        self.device = device

    def context_options(self) -> dict[str, Any]:
        """Device descriptor when emulating a device, else the configured desktop viewport."""
        if self.device:
            # the engine is already chosen by the pool
            options = {k: v for k, v in self.device.items() if k != "default_browser_type"}
        else:
            options = {"viewport": {"width": self.config.viewport.width, "height": self.config.viewport.height}}
        options["ignore_https_errors"] = True
        return options

    async def capture(self, story: Story, output_path: Path) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        context = await self.browser.new_context(**self.context_options())
        try:
            page = await context.new_page()
            await self.navigate_to_story(page, story)
            await prepare_page_for_visual_test(page)
            await page.wait_for_timeout(self.config.timing.animation_settle_ms)
            await self.take_story_screenshot(page, output_path)
        except PlaywrightTimeoutError as e:
            raise CaptureError(f"Timed out capturing story: {e.message}", story_id=story.id) from e
        except PlaywrightError as e:
            raise CaptureError(f"Failed to capture story: {e.message}", story_id=story.id) from e
        finally:
            await context.close()
        logger.debug("Captured %s to %s", story.id, output_path)
        return output_path

    async def navigate_to_story(self, page: Page, story: Story) -> None:
        storybook = self.config.storybook
        timing = self.config.timing
        url = storybook.story_url(story.id)
        logger.debug("Navigating to story %s at %s", story.id, url)

        await page.goto(url, timeout=timing.navigation_timeout_ms)
        await page.wait_for_load_state("networkidle", timeout=timing.network_idle_timeout_ms)
        await page.wait_for_selector(storybook.root_selector, timeout=timing.selector_timeout_ms)

    async def take_story_screenshot(self, page: Page, output_path: Path) -> None:
        """Screenshot the story root with animations off, caret hidden and dynamic parts masked."""
        storybook = self.config.storybook
        root = page.locator(storybook.root_selector)
        await root.screenshot(
            path=str(output_path),
            animations="disabled",
            caret="hide",
            mask=[page.locator(selector) for selector in storybook.mask_selectors],
            timeout=self.config.timing.selector_timeout_ms,
        )


class BrowserPool:
    """Launches each required engine once per run and hands out capture adapters.

    Device profiles such as ``mobile-chrome`` share the engine they run on and
    get a capture adapter that emulates the device.
    """

    def __init__(self, config: FrameworkConfig, browsers: list[str] | None = None):
        self.config = config
        self.browser_names = browsers or list(config.browsers)
        self._playwright_cm = None
        self._browsers: dict[str, Browser] = {}
        self._devices: dict[str, dict[str, Any]] = {}

    async def __aenter__(self) -> "BrowserPool":
        self._playwright_cm = async_playwright()
        playwright = await self._playwright_cm.__aenter__()
        engines = list(dict.fromkeys(browser_engine(name) for name in self.browser_names))
        try:
            for engine in engines:
                logger.debug("Launching %s (headless=%s)", engine, self.config.headless)
                self._browsers[engine] = await launch_browser(playwright, engine, self.config.headless)
        except PlaywrightError as e:
            await self.__aexit__(None, None, None)
            raise ConfigurationError(
                f"Failed to launch browser: {e.message}. Run: playwright install", browser=engine,
            ) from e

        for name in self.browser_names:
            if name in DEVICE_PROFILES:
                device_name = DEVICE_PROFILES[name][1]
                self._devices[name] = dict(playwright.devices[device_name])
                logger.debug("Emulating %s for %s", device_name, name)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        for name, browser in self._browsers.items():
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.warning("Failed to close %s: %s", name, e)
        self._browsers.clear()
        self._devices.clear()
        if self._playwright_cm is not None:
            await self._playwright_cm.__aexit__(exc_type, exc, tb)
            self._playwright_cm = None

    def adapter(self, browser_name: str) -> CaptureAdapter:
        browser = self._browsers[browser_engine(browser_name)]
        return PlaywrightCapture(browser, self.config, self._devices.get(browser_name))
