"""Extract structured carnival records from rendered MySideline cards."""
import logging
import re
from typing import Awaitable, Optional, TypeVar
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator

from processor.models import NormalisedEvent, Organiser, ScrapedCard, Social
from processor.state_resolver import resolve_state
from processor.title_date_parser import extract_and_strip_date
from sync.clock import Clock
from sync.config import SyncConfig

logger = logging.getLogger(__name__)

T = TypeVar('T')


LOGO_SELECTOR = '.image__wrapper img'
TITLE_SELECTOR = 'h3.title'
SUBTITLE_SELECTOR = 'h4.subtitle, h4#subtitle'
MAPS_LINK_SELECTOR = 'a[href*="maps.google.com"]'
ADDRESS_PART_SELECTOR = 'p'
PARAGRAPH_SELECTOR = 'p:not(a > p)'
CONTACT_SELECTOR = 'p:has-text("Club Contact")'
PHONE_SELECTOR = 'a[href^="tel:"]'
EMAIL_SELECTOR = 'a[href^="mailto:"]'
FACEBOOK_SELECTOR = 'a[href*="facebook.com"]'
WEBSITE_SELECTOR = 'a[href^="http"]:not([href*="facebook.com"])'
DESCRIPTOR_ITEM_SELECTOR = '.item'
DESCRIPTOR_LABEL_SELECTOR = '.list-item'
DESCRIPTOR_VALUE_SELECTOR = '.right'
REGISTER_BUTTON_SELECTOR = 'button#cardButton, button.el-button--primary'

MAX_ADDRESS_PARTS = 4
MIN_SCHEDULE_LENGTH = 20
CONTACT_MARKER = 'Club Contact'

_CONTACT_NAME = re.compile(r'Name:\s*(.*?)\s*(?:Number:|$)', re.DOTALL)


async def _read(awaitable: Awaitable[T], field: str, default: T) -> T:
    """Await a single field read; a failed read leaves the field at ``default``."""
    try:
        return await awaitable
    except PlaywrightError as e:
        logger.warning(f"Could not read card field '{field}': {e}")
        return default


async def _text(locator: Locator) -> str:
    """Trimmed text of the first element matched, or '' when nothing matches."""
    if await locator.count() == 0:
        return ''
    return ((await locator.first.text_content()) or '').strip()


async def _attribute(locator: Locator, name: str) -> str:
    if await locator.count() == 0:
        return ''
    return ((await locator.first.get_attribute(name)) or '').strip()


async def _logo_url(card: Locator) -> str:
    logo = card.locator(LOGO_SELECTOR)
    return await _attribute(logo, 'data-url') or await _attribute(logo, 'src')


async def _address(card: Locator) -> tuple:
    link = card.locator(MAPS_LINK_SELECTOR)
    if await link.count() == 0:
        return '', []
    maps_url = await _attribute(link, 'href')
    texts = await link.first.locator(ADDRESS_PART_SELECTOR).all_text_contents()
    parts = [text.strip() for text in texts if text and text.strip()]
    return maps_url, parts


async def _schedule_text(card: Locator) -> str:
    for paragraph in await card.locator(PARAGRAPH_SELECTOR).all():
        text = ((await paragraph.text_content()) or '').strip()
        if len(text) > MIN_SCHEDULE_LENGTH and CONTACT_MARKER not in text:
            return text
    return ''


async def _contact(card: Locator) -> tuple:
    """Read the organiser and social links from the "Club Contact" paragraph."""
    paragraph = card.locator(CONTACT_SELECTOR)
    if await paragraph.count() == 0:
        return Organiser(), Social()
    paragraph = paragraph.first

    contact_text = (await paragraph.text_content()) or ''
    name_match = _CONTACT_NAME.search(contact_text)
    name = name_match.group(1).strip() if name_match else ''

    phone = await _read(_text(paragraph.locator(PHONE_SELECTOR)), 'organiser.phone', '')
    email = await _read(_text(paragraph.locator(EMAIL_SELECTOR)), 'organiser.email', '')
    facebook = await _read(
        _attribute(paragraph.locator(FACEBOOK_SELECTOR), 'href'), 'social.facebook', ''
    )
    website = await _read(
        _attribute(paragraph.locator(WEBSITE_SELECTOR), 'href'), 'social.website', ''
    )

    return (
        Organiser(name=name or None, phone=phone or None, email=email or None),
        Social(facebook=facebook or None, website=website or None),
    )


async def _event_type(card: Locator) -> str:
    for item in await card.locator(DESCRIPTOR_ITEM_SELECTOR).all():
        label = await _text(item.locator(DESCRIPTOR_LABEL_SELECTOR))
        if label == 'Type':
            return await _text(item.locator(DESCRIPTOR_VALUE_SELECTOR))
    return ''


async def _has_registration_button(card: Locator) -> bool:
    for button in await card.locator(REGISTER_BUTTON_SELECTOR).all():
        if await button.is_visible():
            return True
    return False


async def extract_card(card: Locator, card_index: int = 0) -> Optional[ScrapedCard]:
    """
    Extract one card that the orchestrator has already expanded.

    Every field is read independently; a failed read leaves that field empty.
    The card is rejected (None) when the title cannot be read or is empty, or
    when the card describes a Touch event.

    Args:
        card: Locator scoped to a single search result card
        card_index: Position of the card, used in log messages

    Returns:
        ScrapedCard or None if the card is not extractable
    """
    try:
        raw_title = await _text(card.locator(TITLE_SELECTOR))
    except PlaywrightError as e:
        logger.warning(f"Card {card_index + 1}: title could not be read: {e}")
        return None

    if not raw_title:
        logger.info(f"Card {card_index + 1}: no title found, skipping")
        return None

    logo_url = await _read(_logo_url(card), 'logoUrl', '')
    subtitle = await _read(_text(card.locator(SUBTITLE_SELECTOR)), 'subtitle', '')
    maps_url, address_parts = await _read(_address(card), 'address', ('', []))
    schedule_text = await _read(_schedule_text(card), 'scheduleText', '')
    organiser, social = await _read(_contact(card), 'organiser', (Organiser(), Social()))
    event_type = await _read(_event_type(card), 'eventType', '')
    has_registration = await _read(_has_registration_button(card), 'registration', False)

    if event_type == 'Touch':
        logger.info(f"Card {card_index + 1}: skipping Touch event '{raw_title}'")
        return None

    address_lines = address_parts[:MAX_ADDRESS_PARTS]
    return ScrapedCard(
        raw_title=raw_title,
        subtitle=subtitle or None,
        logo_url=logo_url or None,
        address_lines=address_lines,
        composed_address=', '.join(address_parts),
        maps_url=maps_url or None,
        schedule_text=schedule_text or None,
        event_type=event_type or None,
        organiser=organiser,
        social=social,
        has_registration_button=has_registration,
    )


def registration_link(event_url_prefix: str, title: str) -> str:
    """Registration link derived from the event URL prefix and the clean title."""
    return f"{event_url_prefix}{quote(title, safe='')}"


def normalise_card(card: ScrapedCard, config: SyncConfig, clock: Clock) -> NormalisedEvent:
    """
    Turn a scraped card into a NormalisedEvent.

    The title has its embedded date stripped, the state is resolved from the
    full composed address, and the registration link is derived from the title.
    """
    clean_title, extracted_date = extract_and_strip_date(card.raw_title)
    title = clean_title or card.raw_title.strip()

    return NormalisedEvent(
        title=title,
        date=extracted_date,
        state=resolve_state(card.composed_address),
        scraped_at=clock.now(),
        raw_title=card.raw_title,
        subtitle=card.subtitle,
        address_parts=list(card.address_lines),
        composed_address=card.composed_address,
        maps_url=card.maps_url,
        schedule_details=card.schedule_text,
        organiser=card.organiser,
        social=card.social,
        logo_url=card.logo_url,
        is_active=card.has_registration_button,
        registration_link=registration_link(config.event_url_prefix, title),
    )


async def extract_event(
    card: Locator,
    config: SyncConfig,
    clock: Clock,
    card_index: int = 0,
) -> Optional[NormalisedEvent]:
    """Extract and normalise one card; None when the card is rejected."""
    scraped = await extract_card(card, card_index)
    if scraped is None:
        return None

    event = normalise_card(scraped, config, clock)
    logger.info(
        f"Card {card_index + 1}: extracted '{event.title}' "
        f"({event.date.isoformat() if event.date else 'no date'}, {event.state or 'no state'})"
    )
    return event
