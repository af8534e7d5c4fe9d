"""Idempotent upsert of scraped carnivals into the event store."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict

from processor.models import NormalisedEvent, ReconcileResult
from storage.audit_sink import AuditKind, AuditSink
from storage.event_store import EventStore, dedup_key, utc_day
from sync.clock import Clock
from sync.errors import StoreTransientError
from sync.retry import retry_async

logger = logging.getLogger(__name__)


ACTION_INSERTED = 'inserted'
ACTION_UPDATED = 'updated'
ACTION_UPDATED_CLAIMED = 'updated_claimed'
ACTION_SKIPPED_MANUAL = 'skipped_manual'


class KeyedLocks:
    """Per-key asyncio locks; a key's lock is dropped once nobody holds or awaits it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._holders.get(key, 0) - 1
            if remaining > 0:
                self._holders[key] = remaining
            else:
                self._holders.pop(key, None)
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)

    def close(self) -> None:
        self._locks.clear()
        self._holders.clear()


class Reconciler:
    """
    Three-way merge of scraped carnivals into the event store.

    No match inserts a new carnival. A match against a manually entered
    carnival is left untouched and reported as a conflict. An unclaimed
    imported carnival is refreshed from the scraped data. A claimed carnival
    only receives fields its owner has not edited since the claim.
    """

    def __init__(
        self,
        store: EventStore,
        audit: AuditSink,
        clock: Clock,
        locks: KeyedLocks = None,
        attempts: int = 3,
        initial_delay: float = 0.5,
        factor: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.audit = audit
        self.clock = clock
        self.locks = locks or KeyedLocks()
        self.attempts = attempts
        self.initial_delay = initial_delay
        self.factor = factor
        self.sleep = sleep

    async def reconcile(self, event: NormalisedEvent) -> ReconcileResult:
        """
        Upsert one event while holding the lock for its duplicate key.

        Raises:
            StoreTransientError: If the store keeps failing after all retries
        """
        key = dedup_key(event.title, event.date, event.state, event.club_id)
        async with self.locks.hold(key):
            return await retry_async(
                lambda: self._reconcile_once(event, key),
                attempts=self.attempts,
                initial_delay=self.initial_delay,
                factor=self.factor,
                retry_on=(StoreTransientError,),
                description=f"reconcile of '{event.title}'",
                sleep=self.sleep,
            )

    async def _reconcile_once(self, event: NormalisedEvent, key: str) -> ReconcileResult:
        now = self.clock.now()
        candidate = await asyncio.to_thread(
            self.store.find_by_key, event.title, event.date, event.state, event.club_id
        )
        summary = {
            'title': event.title,
            'date': utc_day(event.date),
            'state': event.state,
            'sourceId': event.source_id,
        }

        if candidate is None:
            event_id = await asyncio.to_thread(self.store.insert, event, now)
            self.audit.emit(AuditKind.EVENT_IMPORTED, {**summary, 'eventId': event_id})
            return ReconcileResult(ACTION_INSERTED, event_id)

        if candidate.is_manually_entered:
            logger.info(
                f"'{event.title}' duplicates manually entered carnival {candidate.id}; leaving it untouched"
            )
            self.audit.emit(AuditKind.EVENT_CONFLICT_MANUAL, {
                **summary,
                'eventId': candidate.id,
                'incomingKey': key,
            })
            return ReconcileResult(ACTION_SKIPPED_MANUAL, candidate.id)

        if candidate.claimed_at is None:
            fields = await asyncio.to_thread(self.store.update_whole, candidate.id, event, now)
            self.audit.emit(AuditKind.EVENT_UPDATED, {
                **summary,
                'eventId': candidate.id,
                'fieldsWritten': fields,
            })
            return ReconcileResult(ACTION_UPDATED, candidate.id, fields)

        fields = await asyncio.to_thread(
            self.store.update_claimed, candidate.id, event, candidate.claimed_at, now
        )
        self.audit.emit(AuditKind.EVENT_UPDATED_CLAIMED, {
            **summary,
            'eventId': candidate.id,
            'claimedAt': candidate.claimed_at,
            'fieldsWritten': fields,
        })
        return ReconcileResult(ACTION_UPDATED_CLAIMED, candidate.id, fields)
