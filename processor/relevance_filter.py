"""Accept or reject normalised events against the masters rugby league rules."""
import logging
from typing import Iterable, List, Tuple

from processor.models import NormalisedEvent

logger = logging.getLogger(__name__)


MIN_TITLE_LENGTH = 5
EXCLUDED_TOKEN = 'touch'


def is_relevant(event: NormalisedEvent) -> bool:
    """
    Decide whether an event is a masters rugby league carnival.

    Touch football events share the MySideline search results, so any event
    mentioning "touch" in its title, subtitle, organiser email or social links
    is rejected, as is any event with a title shorter than five characters.
    """
    if not event.title or len(event.title) < MIN_TITLE_LENGTH:
        return False

    candidates = (
        event.title,
        event.subtitle,
        event.organiser.email,
        event.social.facebook,
        event.social.website,
    )
    return not any(EXCLUDED_TOKEN in (value or '').lower() for value in candidates)


def filter_events(events: Iterable[NormalisedEvent]) -> Tuple[List[NormalisedEvent], int]:
    """
    Split events into accepted ones and a rejected count.

    Returns:
        Tuple of (accepted events, number rejected)
    """
    accepted = []
    rejected = 0
    for event in events:
        if is_relevant(event):
            accepted.append(event)
        else:
            rejected += 1
            logger.info(f"Filtering out non-masters event: '{event.title}'")
    return accepted, rejected
