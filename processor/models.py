"""Data models for MySideline carnival ingestion."""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


SOURCE_ID = 'mysideline'

EVENT_TYPES = ('Touch', 'League', 'Masters', 'Other')


@dataclass
class Organiser:
    """Club contact block printed on a card."""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass
class Social:
    """Social links printed on a card."""
    facebook: Optional[str] = None
    website: Optional[str] = None


@dataclass
class ScrapedCard:
    """Raw record extracted from one rendered search result card."""
    raw_title: str
    subtitle: Optional[str] = None
    logo_url: Optional[str] = None
    address_lines: List[str] = field(default_factory=list)
    composed_address: str = ''
    maps_url: Optional[str] = None
    schedule_text: Optional[str] = None
    event_type: Optional[str] = None
    organiser: Organiser = field(default_factory=Organiser)
    social: Social = field(default_factory=Social)
    has_registration_button: bool = False


@dataclass
class NormalisedEvent:
    """Validated carnival ready for reconciliation."""
    title: str
    date: Optional[date]
    state: Optional[str]
    scraped_at: datetime
    raw_title: Optional[str] = None
    subtitle: Optional[str] = None
    address_parts: List[str] = field(default_factory=list)
    composed_address: str = ''
    maps_url: Optional[str] = None
    schedule_details: Optional[str] = None
    organiser: Organiser = field(default_factory=Organiser)
    social: Social = field(default_factory=Social)
    logo_url: Optional[str] = None
    is_active: bool = False
    registration_link: Optional[str] = None
    club_id: Optional[str] = None
    source_id: str = SOURCE_ID


@dataclass
class StoredEvent:
    """Carnival row as held in the event store."""
    id: str
    title: str
    date: Optional[str] = None
    state: Optional[str] = None
    is_manually_entered: bool = False
    claimed_at: Optional[str] = None
    last_mysideline_sync: Optional[str] = None
    created_by_user_id: Optional[str] = None
    club_id: Optional[str] = None
    is_active: bool = False
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReconcileResult:
    """Outcome of reconciling one event against the store."""
    action: str
    id: Optional[str]
    fields_written: List[str] = field(default_factory=list)


@dataclass
class SyncResult:
    """Result of a pipeline run."""
    success: bool
    carnivals_processed: int = 0
    carnivals_created: int = 0
    carnivals_updated: int = 0
    skipped: int = 0
    duration_ms: int = 0
    partial: bool = False
    mock: bool = False
    busy: bool = False
    message: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Render the summary with the keys exposed to callers."""
        return {
            'success': self.success,
            'carnivalsProcessed': self.carnivals_processed,
            'carnivalsCreated': self.carnivals_created,
            'carnivalsUpdated': self.carnivals_updated,
            'skipped': self.skipped,
            'durationMs': self.duration_ms,
            'partial': self.partial,
            'mock': self.mock,
            'busy': self.busy,
            'message': self.message,
            'errors': self.errors,
        }
