"""Tests for the Playwright capture adapter."""

from unittest.mock import AsyncMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from storyshot.capture.browser import (
    DISABLE_ANIMATIONS_CSS,
    BrowserPool,
    PlaywrightCapture,
    prepare_page_for_visual_test,
)
from storyshot.errors import CaptureError, ConfigurationError
from storyshot.models.story import Story


@pytest.fixture
def story() -> Story:
    return Story(id="example-button--primary", title="Example/Button", name="Primary",
                 tags=("visual:check",))


class TestDisableAnimationsCss:
    def test_disables_animations_and_caret(self):
        assert "animation-duration: 0s" in DISABLE_ANIMATIONS_CSS
        assert "transition-duration: 0s" in DISABLE_ANIMATIONS_CSS
        assert "caret-color: transparent" in DISABLE_ANIMATIONS_CSS


@pytest.mark.asyncio
class TestPrepare:
    async def test_injects_animation_killer(self, mock_page):
        await prepare_page_for_visual_test(mock_page)
        mock_page.add_style_tag.assert_awaited_once_with(content=DISABLE_ANIMATIONS_CSS)


@pytest.mark.asyncio
class TestPlaywrightCapture:
    """Tests for PlaywrightCapture with mocked Playwright objects."""

    async def test_capture_flow(self, mock_browser, mock_context, mock_page, framework_config, story, tmp_path):
        output = tmp_path / "shots" / "primary.png"

        result = await PlaywrightCapture(mock_browser, framework_config).capture(story, output)

        assert result == output
        assert output.parent.is_dir()
        mock_browser.new_context.assert_awaited_once_with(
            viewport={"width": 1280, "height": 720}, ignore_https_errors=True,
        )
        mock_page.goto.assert_awaited_once_with(
            "http://localhost:6006/iframe.html?id=example-button--primary&viewMode=story",
            timeout=30000,
        )
        mock_page.wait_for_load_state.assert_awaited_once_with("networkidle", timeout=10000)
        mock_page.wait_for_selector.assert_awaited_once_with("#storybook-root", timeout=10000)
        mock_page.wait_for_timeout.assert_awaited_once_with(500)
        mock_context.close.assert_awaited_once()

    async def test_screenshot_options(self, mock_browser, mock_page, framework_config, story, tmp_path):
        output = tmp_path / "primary.png"

        await PlaywrightCapture(mock_browser, framework_config).capture(story, output)

        root = mock_page.locator.return_value
        kwargs = root.screenshot.await_args.kwargs
        assert kwargs["path"] == str(output)
        assert kwargs["animations"] == "disabled"
        assert kwargs["caret"] == "hide"
        assert len(kwargs["mask"]) == 2
        mock_page.locator.assert_any_call("#storybook-root")
        mock_page.locator.assert_any_call('[data-testid="timestamp"]')

    async def test_timeout_becomes_capture_error(
        self, mock_browser, mock_context, mock_page, framework_config, story, tmp_path
    ):
        mock_page.wait_for_selector.side_effect = PlaywrightTimeoutError("Timeout 10000ms exceeded")

        with pytest.raises(CaptureError, match="Timed out") as exc_info:
            await PlaywrightCapture(mock_browser, framework_config).capture(story, tmp_path / "a.png")

        assert exc_info.value.context["story_id"] == story.id
        mock_context.close.assert_awaited_once()

    async def test_navigation_error_becomes_capture_error(
        self, mock_browser, mock_context, mock_page, framework_config, story, tmp_path
    ):
        mock_page.goto.side_effect = PlaywrightError("net::ERR_CONNECTION_REFUSED")

        with pytest.raises(CaptureError, match="ERR_CONNECTION_REFUSED"):
            await PlaywrightCapture(mock_browser, framework_config).capture(story, tmp_path / "a.png")
        mock_context.close.assert_awaited_once()

    async def test_device_profile_context(self, mock_browser, framework_config, story, tmp_path):
        device = {
            "user_agent": "Mozilla/5.0 (Linux; Android 11; Pixel 5)",
            "viewport": {"width": 393, "height": 727},
            "device_scale_factor": 2.75,
            "is_mobile": True,
            "has_touch": True,
            "default_browser_type": "chromium",
        }

        await PlaywrightCapture(mock_browser, framework_config, device).capture(story, tmp_path / "m.png")

        mock_browser.new_context.assert_awaited_once_with(
            user_agent="Mozilla/5.0 (Linux; Android 11; Pixel 5)",
            viewport={"width": 393, "height": 727},
            device_scale_factor=2.75,
            is_mobile=True,
            has_touch=True,
            ignore_https_errors=True,
        )


@pytest.mark.asyncio
class TestBrowserPool:
    async def test_launch_failure_is_configuration_error(self, framework_config):
        playwright = AsyncMock()
        playwright.chromium.launch.side_effect = PlaywrightError("Executable doesn't exist")
        playwright_cm = AsyncMock()
        playwright_cm.__aenter__.return_value = playwright

        with patch("storyshot.capture.browser.async_playwright", return_value=playwright_cm):
            with pytest.raises(ConfigurationError, match="playwright install"):
                async with BrowserPool(framework_config):
                    pass
        playwright_cm.__aexit__.assert_awaited_once()

    async def test_adapters_share_launched_browser(self, framework_config):
        playwright = AsyncMock()
        browser = AsyncMock()
        playwright.firefox.launch.return_value = browser
        playwright_cm = AsyncMock()
        playwright_cm.__aenter__.return_value = playwright

        with patch("storyshot.capture.browser.async_playwright", return_value=playwright_cm):
            async with BrowserPool(framework_config, ["firefox"]) as pool:
                adapter = pool.adapter("firefox")
                assert isinstance(adapter, PlaywrightCapture)
                assert adapter.browser is browser

        playwright.firefox.launch.assert_awaited_once_with(headless=True)
        browser.close.assert_awaited_once()

    async def test_device_profiles_share_engine(self, framework_config):
        pixel = {"viewport": {"width": 393, "height": 727}, "is_mobile": True,
                 "default_browser_type": "chromium"}
        playwright = AsyncMock()
        playwright.devices = {"Pixel 5": pixel}
        chromium = AsyncMock()
        playwright.chromium.launch.return_value = chromium
        playwright_cm = AsyncMock()
        playwright_cm.__aenter__.return_value = playwright

        with patch("storyshot.capture.browser.async_playwright", return_value=playwright_cm):
            async with BrowserPool(framework_config, ["chromium", "mobile-chrome"]) as pool:
                desktop = pool.adapter("chromium")
                mobile = pool.adapter("mobile-chrome")
                assert desktop.browser is chromium and mobile.browser is chromium
                assert desktop.device is None
                assert mobile.device == pixel

        playwright.chromium.launch.assert_awaited_once_with(headless=True)
        chromium.close.assert_awaited_once()
