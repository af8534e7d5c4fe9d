"""Deterministic mock carnivals used when MYSIDELINE_USE_MOCK is enabled.

The fixture holds six carnivals, two per state (NSW, QLD, VIC):

=====  ======================================  ==============  ============
State  Title                                   Venue           Month offset
=====  ======================================  ==============  ============
NSW    NSW Masters Rugby League Carnival       Sydney          +2
NSW    NSW Over 35s Masters Championship       Newcastle       +4
QLD    QLD Masters Rugby League Carnival       Brisbane        +2
QLD    QLD Over 35s Masters Championship       Gold Coast      +4
VIC    VIC Masters Rugby League Carnival       Melbourne       +2
VIC    VIC Over 35s Masters Championship       Geelong         +4
=====  ======================================  ==============  ============

Every carnival falls on the 15th of the month that is ``offset`` months after
the clock's current month, so the same clock always yields the same events.
"""
from datetime import date
from typing import List

from processor.models import NormalisedEvent, Organiser, Social
from scraper.card_extractor import registration_link
from sync.clock import Clock
from sync.config import SyncConfig


MOCK_TEMPLATES = [
    ('{state} Masters Rugby League Carnival', 2, {
        'NSW': 'Sydney', 'QLD': 'Brisbane', 'VIC': 'Melbourne',
    }),
    ('{state} Over 35s Masters Championship', 4, {
        'NSW': 'Newcastle', 'QLD': 'Gold Coast', 'VIC': 'Geelong',
    }),
]

MOCK_STATES = ['NSW', 'QLD', 'VIC']


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    return date(day.year + month_index // 12, month_index % 12 + 1, 15)


def generate_mock_events(config: SyncConfig, clock: Clock) -> List[NormalisedEvent]:
    """
    Build the mock carnival fixture.

    Args:
        config: Configuration supplying the registration link prefix
        clock: Clock the carnival dates are derived from

    Returns:
        List of six NormalisedEvent objects
    """
    now = clock.now()
    events = []

    for state in MOCK_STATES:
        for index, (title_template, month_offset, venues) in enumerate(MOCK_TEMPLATES):
            title = title_template.format(state=state)
            venue = venues[state]
            address_parts = [f"{venue} Sports Complex", state]
            events.append(NormalisedEvent(
                title=title,
                date=_add_months(now.date(), month_offset),
                state=state,
                scraped_at=now,
                raw_title=title,
                address_parts=address_parts,
                composed_address=', '.join(address_parts),
                schedule_details=(
                    f"Day-long tournament starting at {8 + index}:00 AM. "
                    f"Multiple age divisions available."
                ),
                organiser=Organiser(
                    name=f"{state} Rugby League Masters",
                    phone=f"0{index + 2} 5550 {1000 + index:04d}",
                    email=f"masters@{state.lower()}rl.com.au",
                ),
                social=Social(),
                is_active=True,
                registration_link=registration_link(config.event_url_prefix, title),
            ))

    return events
