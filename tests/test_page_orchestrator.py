"""Unit tests for the page orchestrator."""
import asyncio
from dataclasses import replace
from unittest.mock import patch

import pytest

from fakes import FakePage, make_card
from scraper import page_orchestrator
from scraper.page_orchestrator import (
    EXPAND_SELECTOR,
    MySidelineScraper,
    ScrapeState,
    navigate,
    run_page,
    wait_for_ready,
)
from sync.errors import BrowserUnavailableError, StructuralMismatchError, TransientNetworkError


def run(page, config, clock, **kwargs):
    return asyncio.run(run_page(page, config, clock, **kwargs))


class TestNavigate:
    """Test cases for navigation and readiness."""

    def test_navigates_with_dom_content_loaded(self, config):
        page = FakePage()

        asyncio.run(navigate(page, config))

        assert page.goto_calls == [{
            'url': 'https://mysideline.example/search',
            'wait_until': 'domcontentloaded',
            'timeout': 60000,
        }]

    def test_retries_then_succeeds(self, config):
        page = FakePage(goto_failures=2)

        asyncio.run(navigate(page, config))

        assert len(page.goto_calls) == 3

    def test_gives_up_after_retry_attempts(self, config):
        page = FakePage(goto_failures=5)

        with pytest.raises(TransientNetworkError):
            asyncio.run(navigate(page, config))

        assert len(page.goto_calls) == 3

    def test_ready(self, config):
        assert asyncio.run(wait_for_ready(FakePage(), config)) is True

    def test_ready_timeout(self, config):
        assert asyncio.run(wait_for_ready(FakePage(ready=False), config)) is False


class TestRunPage:
    """Test cases for run_page."""

    def test_empty_site(self, config, clock):
        """Test a page with zero cards completes with nothing extracted."""
        outcome = run(FakePage(cards=[], ready=False), config, clock)

        assert outcome.events == []
        assert outcome.cards_found == 0
        assert outcome.partial is False
        assert outcome.state == ScrapeState.DONE

    def test_cards_extracted_in_dom_order(self, config, clock):
        cards = [
            make_card(title='QLD Masters Carnival 20 Sep 2025', address=['Brisbane QLD']),
            make_card(title='Bondi Masters Carnival 15/08/2025', address=['Bondi NSW 2026']),
        ]

        outcome = run(FakePage(cards=cards), config, clock)

        assert [event.title for event in outcome.events] == [
            'QLD Masters Carnival', 'Bondi Masters Carnival'
        ]
        assert [event.state for event in outcome.events] == ['QLD', 'NSW']
        assert outcome.cards_found == 2

    def test_cards_expanded_and_collapsed(self, config, clock):
        card = make_card()

        run(FakePage(cards=[card]), config, clock)

        assert card.children[EXPAND_SELECTOR][0].clicks == 2

    def test_rejected_cards_counted(self, config, clock):
        cards = [
            make_card(title='Touch Masters Carnival', event_type='Touch'),
            make_card(title=None),
            make_card(),
        ]

        outcome = run(FakePage(cards=cards), config, clock)

        assert len(outcome.events) == 1
        assert outcome.cards_rejected == 2
        assert outcome.card_errors == 0

    def test_card_error_does_not_abort_run(self, config, clock):
        cards = [make_card(), make_card(title='Bondi Masters Carnival')]

        with patch.object(page_orchestrator, 'extract_event',
                          side_effect=[RuntimeError('detached'), None]) as extract:
            outcome = run(FakePage(cards=cards), config, clock)

        assert extract.call_count == 2
        assert outcome.card_errors == 1
        assert outcome.cards_rejected == 1
        assert outcome.state == ScrapeState.DONE

    def test_closed_page_aborts_run(self, config, clock):
        page = FakePage(cards=[make_card(), make_card()])
        page.closed = True

        with patch.object(page_orchestrator, 'extract_event', side_effect=RuntimeError('closed')):
            with pytest.raises(BrowserUnavailableError):
                run(page, config, clock)

    def test_missing_body_is_structural_mismatch(self, config, clock):
        with pytest.raises(StructuralMismatchError):
            run(FakePage(has_body=False), config, clock)

    def test_navigation_failure_propagates(self, config, clock):
        with pytest.raises(TransientNetworkError):
            run(FakePage(goto_failures=3), config, clock)

    def test_cancel_stops_before_next_card(self, config, clock):
        cards = [make_card(), make_card(), make_card()]

        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            return await run_page(FakePage(cards=cards), config, clock, cancel_event=cancel)

        outcome = asyncio.run(scenario())

        assert outcome.partial is True
        assert outcome.events == []
        assert outcome.state == ScrapeState.DONE

    def test_soft_deadline_stops_iteration(self, config, clock):
        cards = [make_card(), make_card()]

        async def scenario():
            deadline = asyncio.get_running_loop().time() - 1
            return await run_page(FakePage(cards=cards), config, clock, deadline=deadline)

        outcome = asyncio.run(scenario())

        assert outcome.partial is True
        assert outcome.events == []

    def test_screenshot_when_headed(self, config, clock, tmp_path):
        headed = replace(config, headless=False, screenshot_dir=str(tmp_path))
        page = FakePage(cards=[])

        run(page, headed, clock)

        assert len(page.screenshots) == 1
        assert page.screenshots[0].startswith(str(tmp_path))

    def test_no_screenshot_when_headless(self, config, clock, tmp_path):
        page = FakePage(cards=[])

        run(page, replace(config, screenshot_dir=str(tmp_path)), clock)

        assert page.screenshots == []


class TestMySidelineScraper:
    """Test cases for MySidelineScraper."""

    def test_fetch_events_uses_browser_page(self, config, clock):
        page = FakePage(cards=[make_card()])

        class FakeOpenPage:
            def __init__(self, cfg):
                self.cfg = cfg
                self.closed = False

            async def __aenter__(self):
                return page

            async def __aexit__(self, *exc):
                self.closed = True

        opened = []

        def fake_open_page(cfg):
            context = FakeOpenPage(cfg)
            opened.append(context)
            return context

        with patch.object(page_orchestrator, 'open_page', side_effect=fake_open_page):
            outcome = asyncio.run(MySidelineScraper(config, clock).fetch_events())

        assert len(outcome.events) == 1
        assert opened[0].cfg is config
        assert opened[0].closed is True

    def test_browser_released_on_failure(self, config, clock):
        page = FakePage(goto_failures=10)
        released = []

        class FakeOpenPage:
            async def __aenter__(self):
                return page

            async def __aexit__(self, *exc):
                released.append(exc[0])

        with patch.object(page_orchestrator, 'open_page', return_value=FakeOpenPage()):
            with pytest.raises(TransientNetworkError):
                asyncio.run(MySidelineScraper(config, clock).fetch_events())

        assert released == [TransientNetworkError]
