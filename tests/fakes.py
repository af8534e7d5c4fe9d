"""In-memory stand-ins for the parts of the Playwright page API the scraper uses.

A FakeNode maps each selector the scraper asks for to the child nodes it
should match, so cards are described by what the extractor reads rather
than by real HTML.
"""
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from processor.models import NormalisedEvent, Organiser, Social
from scraper import card_extractor as ce
from scraper.page_orchestrator import CARD_SELECTOR, EXPAND_SELECTOR


class FakeNode:
    def __init__(self, text: str = '', attrs: Optional[Dict[str, str]] = None,
                 children: Optional[Dict[str, Union[List['FakeNode'], Exception]]] = None,
                 visible: bool = True):
        self.text = text
        self.attrs = attrs or {}
        self.children = children or {}
        self.visible = visible
        self.clicks = 0


class FakeLocator:
    def __init__(self, nodes: List[FakeNode], error: Optional[Exception] = None):
        self.nodes = nodes
        self.error = error

    def _check(self):
        if self.error is not None:
            raise self.error

    def locator(self, selector: str) -> 'FakeLocator':
        if self.error is not None:
            return FakeLocator([], self.error)
        matched = []
        for node in self.nodes:
            children = node.children.get(selector, [])
            if isinstance(children, Exception):
                return FakeLocator([], children)
            matched.extend(children)
        return FakeLocator(matched)

    @property
    def first(self) -> 'FakeLocator':
        return FakeLocator(self.nodes[:1], self.error)

    def nth(self, index: int) -> 'FakeLocator':
        return FakeLocator(self.nodes[index:index + 1], self.error)

    async def count(self) -> int:
        self._check()
        return len(self.nodes)

    async def all(self) -> List['FakeLocator']:
        self._check()
        return [FakeLocator([node]) for node in self.nodes]

    async def text_content(self) -> Optional[str]:
        self._check()
        return self.nodes[0].text if self.nodes else None

    async def get_attribute(self, name: str) -> Optional[str]:
        self._check()
        return self.nodes[0].attrs.get(name) if self.nodes else None

    async def all_text_contents(self) -> List[str]:
        self._check()
        return [node.text for node in self.nodes]

    async def is_visible(self) -> bool:
        self._check()
        return bool(self.nodes) and self.nodes[0].visible

    async def click(self) -> None:
        self._check()
        for node in self.nodes[:1]:
            node.clicks += 1


class FakePage:
    def __init__(self, cards: Optional[List[FakeNode]] = None, ready: bool = True,
                 has_body: bool = True, goto_failures: int = 0):
        self.cards = cards or []
        self.ready = ready
        self.has_body = has_body
        self.goto_failures = goto_failures
        self.goto_calls = []
        self.screenshots = []
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append({'url': url, 'wait_until': wait_until, 'timeout': timeout})
        if len(self.goto_calls) <= self.goto_failures:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded navigating to {url}")

    async def wait_for_function(self, expression, arg=None, timeout=None):
        if not self.ready:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded")

    def locator(self, selector: str) -> FakeLocator:
        if selector == 'body':
            return FakeLocator([FakeNode()] if self.has_body else [])
        if selector == CARD_SELECTOR:
            return FakeLocator(self.cards)
        return FakeLocator([])

    def is_closed(self) -> bool:
        return self.closed

    async def screenshot(self, path=None, full_page=False):
        self.screenshots.append(path)


def make_card(title: Optional[str] = 'QLD Masters Carnival 20 Sep 2025',
              subtitle: str = '',
              logo: Optional[Dict[str, str]] = None,
              address: Optional[List[str]] = None,
              maps_url: str = 'https://maps.google.com/?q=Brisbane',
              schedule: str = '',
              contact_name: str = '',
              phone: str = '',
              email: str = '',
              facebook: str = '',
              website: str = '',
              event_type: Optional[str] = 'League',
              registration: bool = True,
              failures: Optional[Dict[str, Exception]] = None) -> FakeNode:
    """Build a card node exposing each field under the selector the extractor reads."""
    children = {EXPAND_SELECTOR: [FakeNode()]}

    if title is not None:
        children[ce.TITLE_SELECTOR] = [FakeNode(title)]
    if subtitle:
        children[ce.SUBTITLE_SELECTOR] = [FakeNode(subtitle)]
    if logo:
        children[ce.LOGO_SELECTOR] = [FakeNode(attrs=logo)]

    paragraphs = []
    if address is not None:
        link = FakeNode(
            attrs={'href': maps_url},
            children={ce.ADDRESS_PART_SELECTOR: [FakeNode(part) for part in address]},
        )
        children[ce.MAPS_LINK_SELECTOR] = [link]
    if schedule:
        paragraphs.append(FakeNode(schedule))

    if contact_name or phone or email or facebook or website:
        text = 'Club Contact'
        if contact_name:
            text += f' Name: {contact_name}'
        if phone:
            text += f' Number: {phone}'
        if email:
            text += f' {email}'
        contact_children = {}
        if phone:
            contact_children[ce.PHONE_SELECTOR] = [FakeNode(phone, {'href': f'tel:{phone}'})]
        if email:
            contact_children[ce.EMAIL_SELECTOR] = [FakeNode(email, {'href': f'mailto:{email}'})]
        if facebook:
            contact_children[ce.FACEBOOK_SELECTOR] = [FakeNode('Facebook', {'href': facebook})]
        if website:
            contact_children[ce.WEBSITE_SELECTOR] = [FakeNode('Website', {'href': website})]
        contact = FakeNode(text, children=contact_children)
        children[ce.CONTACT_SELECTOR] = [contact]
        paragraphs.append(contact)
    children[ce.PARAGRAPH_SELECTOR] = paragraphs

    if event_type is not None:
        children[ce.DESCRIPTOR_ITEM_SELECTOR] = [
            FakeNode(children={
                ce.DESCRIPTOR_LABEL_SELECTOR: [FakeNode('Gender')],
                ce.DESCRIPTOR_VALUE_SELECTOR: [FakeNode('Mixed')],
            }),
            FakeNode(children={
                ce.DESCRIPTOR_LABEL_SELECTOR: [FakeNode('Type')],
                ce.DESCRIPTOR_VALUE_SELECTOR: [FakeNode(event_type)],
            }),
        ]

    if registration:
        children[ce.REGISTER_BUTTON_SELECTOR] = [FakeNode('Register')]

    children.update(failures or {})
    return FakeNode(children=children)


def playwright_error(message: str = 'Element is not attached to the DOM') -> PlaywrightError:
    return PlaywrightError(message)


def make_event(title: str = 'QLD Masters Carnival', event_date=date(2025, 9, 20),
               state: Optional[str] = 'QLD', scraped_at: Optional[datetime] = None,
               **kwargs) -> NormalisedEvent:
    """NormalisedEvent for the fresh-import card used across the storage tests."""
    values = {
        'raw_title': f'{title} 20 Sep 2025',
        'address_parts': ['Brisbane QLD'],
        'composed_address': 'Brisbane QLD',
        'maps_url': 'https://maps.google.com/?q=Brisbane',
        'organiser': Organiser(name='Jane Citizen', phone='0400 000 000',
                               email='jane@broncosmasters.com.au'),
        'social': Social(),
        'logo_url': 'https://cdn.mysideline.example/qld.png',
        'is_active': True,
        'registration_link': 'https://mysideline.example/register/QLD%20Masters%20Carnival',
    }
    values.update(kwargs)
    return NormalisedEvent(
        title=title,
        date=event_date,
        state=state,
        scraped_at=scraped_at or datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc),
        **values
    )


class RecordingAuditSink:
    """Audit sink keeping every event in memory."""

    def __init__(self):
        self.events = []

    def emit(self, kind, payload):
        self.events.append((kind, payload))

    def kinds(self):
        return [kind.value for kind, _ in self.events]

    def payloads(self, kind):
        return [payload for emitted, payload in self.events if emitted.value == kind]
