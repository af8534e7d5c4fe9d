"""Headless Chromium lifecycle for the MySideline scraper."""
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from sync.clock import Clock
from sync.config import SyncConfig
from sync.errors import BrowserUnavailableError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_page(config: SyncConfig) -> AsyncIterator[Page]:
    """
    Launch Chromium and yield a page configured with the action timeouts.

    The context and the browser are closed on every exit path, including
    cancellation.

    Raises:
        BrowserUnavailableError: If the browser cannot be launched
    """
    playwright = None
    browser = None
    context = None

    try:
        try:
            playwright = await async_playwright().start()
            logger.info(f"Launching Chromium (headless={config.headless})")
            browser = await playwright.chromium.launch(
                headless=config.headless,
                timeout=config.request_timeout_ms,
            )
            context = await browser.new_context()
            page = await context.new_page()
        except PlaywrightError as e:
            raise BrowserUnavailableError(f"Could not launch browser: {e}") from e

        page.set_default_timeout(config.request_timeout_ms)
        page.set_default_navigation_timeout(config.request_timeout_ms)
        yield page

    finally:
        await _close(context, browser, playwright)


async def _close(context, browser, playwright) -> None:
    """Release context, browser and driver; close failures are logged."""
    for name, resource, method in (
        ('context', context, 'close'),
        ('browser', browser, 'close'),
        ('playwright', playwright, 'stop'),
    ):
        if resource is None:
            continue
        try:
            await getattr(resource, method)()
        except PlaywrightError as e:
            logger.warning(f"Error closing {name}: {e}")
    logger.info("Browser cleanup completed")


async def save_screenshot(
    page: Page,
    config: SyncConfig,
    clock: Clock,
    label: str,
) -> Optional[str]:
    """
    Save a full-page screenshot when a screenshot directory is configured.

    Returns:
        Path of the screenshot, or None if none was taken
    """
    if not config.screenshot_dir:
        return None

    path = os.path.join(
        config.screenshot_dir,
        f"mysideline-{label}-{clock.now().strftime('%Y%m%dT%H%M%S')}.png",
    )
    try:
        await page.screenshot(path=path, full_page=True)
    except PlaywrightError as e:
        logger.warning(f"Could not save screenshot: {e}")
        return None

    logger.info(f"Debug screenshot saved to {path}")
    return path
