"""Drive the MySideline search page and extract every carnival card."""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from processor.models import NormalisedEvent
from scraper.browser import open_page, save_screenshot
from scraper.card_extractor import extract_event
from sync.clock import Clock
from sync.config import SyncConfig
from sync.errors import (
    BrowserUnavailableError,
    StructuralMismatchError,
    TransientNetworkError,
)
from sync.retry import retry_async

logger = logging.getLogger(__name__)


CARD_SELECTOR = '.el-card.is-always-shadow, [id^="clubsearch_"]'
EXPAND_SELECTOR = '.click-expand'
READY_TOKENS = ['masters', 'rugby', 'league', 'tournament', 'carnival']
MIN_RELEVANT_CARDS = 2

# Composite readiness check evaluated in the page: body present, at least one
# card rendered, and enough cards mentioning carnival vocabulary.
READY_PREDICATE = """
({ selector, tokens, minimum }) => {
    if (!document.body) {
        return false;
    }
    const cards = document.querySelectorAll(selector);
    if (cards.length === 0) {
        return false;
    }
    let relevant = 0;
    for (const card of cards) {
        const text = (card.textContent || '').toLowerCase();
        if (tokens.some(token => text.includes(token))) {
            relevant++;
        }
    }
    return relevant >= minimum;
}
"""


class ScrapeState(str, Enum):
    IDLE = 'idle'
    NAVIGATING = 'navigating'
    WAITING_FOR_READY = 'waiting_for_ready'
    ITERATING = 'iterating'
    DRAINING = 'draining'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class ScrapeOutcome:
    """Events extracted from one page run plus card counters."""
    events: List[NormalisedEvent] = field(default_factory=list)
    cards_found: int = 0
    cards_rejected: int = 0
    card_errors: int = 0
    partial: bool = False
    state: ScrapeState = ScrapeState.IDLE


async def navigate(page: Page, config: SyncConfig) -> None:
    """
    Open the search URL, waiting for DOM content loaded.

    Raises:
        TransientNetworkError: If every navigation attempt fails
    """
    try:
        await retry_async(
            lambda: page.goto(
                config.search_url,
                wait_until='domcontentloaded',
                timeout=config.request_timeout_ms,
            ),
            attempts=config.retry_attempts,
            initial_delay=config.request_delay_ms / 1000,
            retry_on=(PlaywrightError,),
            description=f"navigation to {config.search_url}",
        )
    except PlaywrightError as e:
        raise TransientNetworkError(f"Could not load {config.search_url}: {e}") from e


async def wait_for_ready(page: Page, config: SyncConfig) -> bool:
    """
    Block until the search results are rendered or the ready timeout elapses.

    Returns:
        True if the page became ready, False on timeout
    """
    try:
        await page.wait_for_function(
            READY_PREDICATE,
            arg={
                'selector': CARD_SELECTOR,
                'tokens': READY_TOKENS,
                'minimum': MIN_RELEVANT_CARDS,
            },
            timeout=config.ready_timeout_ms,
        )
    except PlaywrightError as e:
        logger.warning(f"Search results did not become ready: {e}")
        return False

    logger.info("MySideline content loaded and ready for extraction")
    return True


def _should_stop(cancel_event: Optional[asyncio.Event], deadline: Optional[float]) -> bool:
    if cancel_event is not None and cancel_event.is_set():
        logger.warning("Cancel requested; stopping before the next card")
        return True
    if deadline is not None and asyncio.get_running_loop().time() >= deadline:
        logger.warning("Soft deadline reached; stopping before the next card")
        return True
    return False


async def _click(locator, card_index: int, action: str) -> None:
    try:
        await locator.click()
    except PlaywrightError as e:
        logger.warning(f"Card {card_index + 1}: could not {action}: {e}")


async def run_page(
    page: Page,
    config: SyncConfig,
    clock: Clock,
    cancel_event: Optional[asyncio.Event] = None,
    deadline: Optional[float] = None,
) -> ScrapeOutcome:
    """
    Navigate, wait for results and extract each card in DOM order.

    Each card is expanded, extracted and collapsed, with a pause between
    cards. Card-level failures are logged and never abort the run. When the
    cancel event is set or the soft deadline (an event loop time) passes,
    the in-flight card is finished and the outcome is marked partial.

    Args:
        page: Browser page to drive
        config: Configuration snapshot for the run
        clock: Clock used to timestamp extracted events
        cancel_event: External cancel signal
        deadline: Soft deadline as ``loop.time()`` value

    Returns:
        ScrapeOutcome with the extracted events

    Raises:
        TransientNetworkError: If the page cannot be loaded
        StructuralMismatchError: If the page has no document body
        BrowserUnavailableError: If the page is closed mid-run
    """
    outcome = ScrapeOutcome()

    try:
        outcome.state = ScrapeState.NAVIGATING
        logger.info(f"Navigating to MySideline search URL: {config.search_url}")
        await navigate(page, config)

        outcome.state = ScrapeState.WAITING_FOR_READY
        await wait_for_ready(page, config)

        if await page.locator('body').count() == 0:
            await save_screenshot(page, config, clock, 'no-body')
            raise StructuralMismatchError('Search page has no document body')

        if not config.headless:
            await save_screenshot(page, config, clock, 'page')

        outcome.state = ScrapeState.ITERATING
        cards = page.locator(CARD_SELECTOR)
        outcome.cards_found = await cards.count()
        logger.info(f"Found {outcome.cards_found} MySideline cards to process")

        for card_index in range(outcome.cards_found):
            if _should_stop(cancel_event, deadline):
                outcome.partial = True
                break

            card = cards.nth(card_index)
            expander = card.locator(EXPAND_SELECTOR)

            await _click(expander, card_index, 'expand card')
            try:
                event = await extract_event(card, config, clock, card_index)
            except Exception as e:
                if page.is_closed():
                    raise BrowserUnavailableError(f"Browser page closed during card {card_index + 1}") from e
                logger.warning(f"Error processing card {card_index + 1}: {e}")
                outcome.card_errors += 1
                event = None
            else:
                if event is None:
                    outcome.cards_rejected += 1

            if event is not None:
                outcome.events.append(event)

            await _click(expander, card_index, 'collapse card')

            if card_index < outcome.cards_found - 1 and config.card_pause_ms:
                await asyncio.sleep(config.card_pause_ms / 1000)

        outcome.state = ScrapeState.DRAINING
        logger.info(
            f"Card processing completed: {len(outcome.events)} events extracted "
            f"from {outcome.cards_found} cards"
        )
        outcome.state = ScrapeState.DONE
        return outcome

    except BaseException:
        outcome.state = ScrapeState.FAILED
        raise


class MySidelineScraper:
    """Scraper for the MySideline club search page."""

    def __init__(self, config: SyncConfig, clock: Clock):
        """
        Initialize the scraper.

        Args:
            config: Configuration snapshot for the run
            clock: Clock used to timestamp extracted events
        """
        self.config = config
        self.clock = clock

    async def fetch_events(
        self,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> ScrapeOutcome:
        """
        Launch a browser, scrape the search page and release the browser.

        Returns:
            ScrapeOutcome with the extracted events
        """
        logger.info("Scraping MySideline masters events from search page")
        async with open_page(self.config) as page:
            return await run_page(page, self.config, self.clock, cancel_event, deadline)
