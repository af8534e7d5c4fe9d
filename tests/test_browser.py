"""Unit tests for the browser lifecycle helpers."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fakes import FakePage, playwright_error
from scraper.browser import open_page, save_screenshot
from sync.config import SyncConfig
from sync.errors import BrowserUnavailableError


def fake_playwright(launch_error=None, close_error=None):
    page = MagicMock()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock(side_effect=close_error)
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    driver = MagicMock()
    driver.chromium.launch = AsyncMock(return_value=browser, side_effect=launch_error)
    driver.stop = AsyncMock()
    starter = MagicMock()
    starter.start = AsyncMock(return_value=driver)
    return starter, driver, browser, context, page


class TestOpenPage:
    """Test cases for open_page."""

    def test_page_configured_and_closed(self, config):
        starter, driver, browser, context, page = fake_playwright()

        async def scenario():
            async with open_page(config) as opened:
                assert opened is page

        with patch('scraper.browser.async_playwright', return_value=starter):
            asyncio.run(scenario())

        driver.chromium.launch.assert_awaited_once_with(headless=True, timeout=60000)
        page.set_default_timeout.assert_called_once_with(60000)
        page.set_default_navigation_timeout.assert_called_once_with(60000)
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        driver.stop.assert_awaited_once()

    def test_closed_when_body_raises(self, config):
        starter, driver, browser, context, page = fake_playwright()

        async def scenario():
            async with open_page(config):
                raise RuntimeError('scrape failed')

        with patch('scraper.browser.async_playwright', return_value=starter):
            with pytest.raises(RuntimeError):
                asyncio.run(scenario())

        browser.close.assert_awaited_once()
        driver.stop.assert_awaited_once()

    def test_launch_failure(self, config):
        starter, driver, browser, context, page = fake_playwright(launch_error=playwright_error())

        async def scenario():
            async with open_page(config):
                pass

        with patch('scraper.browser.async_playwright', return_value=starter):
            with pytest.raises(BrowserUnavailableError):
                asyncio.run(scenario())

        browser.close.assert_not_awaited()
        driver.stop.assert_awaited_once()

    def test_close_failure_is_logged(self, config):
        starter, driver, browser, context, page = fake_playwright(close_error=playwright_error())

        async def scenario():
            async with open_page(config):
                pass

        with patch('scraper.browser.async_playwright', return_value=starter):
            asyncio.run(scenario())

        browser.close.assert_awaited_once()
        driver.stop.assert_awaited_once()


class TestSaveScreenshot:
    """Test cases for save_screenshot."""

    def test_disabled_without_directory(self, config, clock):
        assert asyncio.run(save_screenshot(FakePage([]), config, clock, 'failure')) is None

    def test_saved_to_directory(self, clock, tmp_path):
        config = SyncConfig(screenshot_dir=str(tmp_path))
        page = FakePage([])

        path = asyncio.run(save_screenshot(page, config, clock, 'failure'))

        assert path == str(tmp_path / 'mysideline-failure-20250601T093000.png')
        assert page.screenshots == [path]
