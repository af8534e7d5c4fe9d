"""Entry point that runs one MySideline sync end to end."""
import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from processor.models import NormalisedEvent, SyncResult
from processor.relevance_filter import filter_events
from scraper.mock_data import generate_mock_events
from scraper.page_orchestrator import MySidelineScraper
from storage.audit_sink import AuditKind, AuditSink, LoggingAuditSink
from storage.event_store import EventStore
from storage.logo_store import LogoStore
from storage.sync_log import SyncLog
from sync.clock import Clock, SystemClock, isoformat_utc
from sync.config import SyncConfig
from sync.errors import ConfigError, MySidelineSyncError, StoreTransientError, SyncBusyError
from sync.reconciler import (
    ACTION_INSERTED,
    ACTION_SKIPPED_MANUAL,
    ACTION_UPDATED,
    ACTION_UPDATED_CLAIMED,
    KeyedLocks,
    Reconciler,
)

logger = logging.getLogger(__name__)


class MySidelineSyncController:
    """
    Runs MySideline syncs one at a time.

    A run reads a fresh configuration snapshot, scrapes the search page (or
    builds the mock fixture), filters the events and reconciles each one
    into the event store. Every outcome is reported as a SyncResult; errors
    never escape to the caller.
    """

    def __init__(
        self,
        store: EventStore,
        audit: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        config_factory: Callable[[], SyncConfig] = SyncConfig.from_env,
        scraper_factory: Callable[[SyncConfig, Clock], MySidelineScraper] = MySidelineScraper,
        sync_log: Optional[SyncLog] = None,
        logo_store: Optional[LogoStore] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the controller.

        Args:
            store: Event store the carnivals are reconciled into
            audit: Audit sink (default: log only)
            clock: Clock used for timestamps (default: system UTC clock)
            config_factory: Returns the configuration snapshot for a run
            scraper_factory: Builds the page scraper for a configuration
            sync_log: Optional run history
            logo_store: Optional logo mirror, used for inserted and updated carnivals
            sleep: Awaitable sleep used between store retries
        """
        self.store = store
        self.audit = audit or LoggingAuditSink()
        self.clock = clock or SystemClock()
        self.config_factory = config_factory
        self.scraper_factory = scraper_factory
        self.sync_log = sync_log
        self.logo_store = logo_store
        self.sleep = sleep
        self.locks = KeyedLocks()

        self._running = False
        self._correlation_id: Optional[str] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._last_sync: Optional[str] = None
        self._last_result: Optional[SyncResult] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def sync_mysideline_carnivals(self) -> SyncResult:
        """
        Run one sync and wait for it to finish.

        Returns:
            SyncResult summary; ``busy`` is set when another run is active
        """
        try:
            correlation_id = self._begin()
        except SyncBusyError as e:
            return self._busy_result(str(e))
        return await self._execute(correlation_id)

    def start_background_sync(self) -> Dict[str, Any]:
        """
        Schedule a sync on the running event loop and return immediately.

        Returns:
            Dictionary with ``started``, ``busy`` and ``correlationId``
        """
        try:
            correlation_id = self._begin()
        except SyncBusyError as e:
            self._busy_result(str(e))
            return {'started': False, 'busy': True, 'correlationId': self._correlation_id}

        self._task = asyncio.get_running_loop().create_task(self._execute(correlation_id))
        return {'started': True, 'busy': False, 'correlationId': correlation_id}

    async def wait(self) -> Optional[SyncResult]:
        """Wait for the background run, if any, and return its result."""
        if self._task is not None:
            return await self._task
        return self._last_result

    def cancel(self) -> bool:
        """
        Ask the active run to stop after the in-flight card.

        Returns:
            True if a run was active
        """
        if not self._running or self._cancel_event is None:
            return False
        logger.info(f"Cancelling MySideline sync {self._correlation_id}")
        self._cancel_event.set()
        return True

    def get_sync_status(self) -> Dict[str, Any]:
        return {
            'isRunning': self._running,
            'correlationId': self._correlation_id,
            'lastSync': self._last_sync,
            'lastResult': self._last_result.to_dict() if self._last_result else None,
        }

    def close(self) -> None:
        self.locks.close()

    def _begin(self) -> str:
        if self._running:
            raise SyncBusyError(
                f"MySideline sync {self._correlation_id} is already in progress"
            )
        self._running = True
        self._correlation_id = str(uuid.uuid4())
        self._cancel_event = asyncio.Event()
        return self._correlation_id

    def _busy_result(self, message: str) -> SyncResult:
        logger.warning(message)
        self.audit.emit(AuditKind.SYNC_BUSY, {'correlationId': self._correlation_id})
        return SyncResult(success=False, busy=True, message=message)

    async def _execute(self, correlation_id: str) -> SyncResult:
        started = time.monotonic()
        try:
            result = await self._run(correlation_id, self._cancel_event)
        finally:
            self._running = False
            self._cancel_event = None
        result.duration_ms = int((time.monotonic() - started) * 1000)
        self._last_sync = isoformat_utc(self.clock.now())
        self._last_result = result
        logger.info(
            f"MySideline sync {correlation_id} finished: success={result.success} "
            f"processed={result.carnivals_processed} created={result.carnivals_created} "
            f"updated={result.carnivals_updated} skipped={result.skipped} "
            f"in {result.duration_ms}ms"
        )
        return result

    async def _run(self, correlation_id: str, cancel_event: asyncio.Event) -> SyncResult:
        try:
            config = self.config_factory()
            config.validate()
        except ConfigError as e:
            logger.error(f"Invalid MySideline configuration: {e}")
            self.audit.emit(AuditKind.SYNC_FAILED, {'correlationId': correlation_id, 'error': str(e)})
            return SyncResult(success=False, message=str(e), errors=[str(e)])

        if not config.use_mock_data and not config.enable_scraping:
            logger.info("MySideline scraping is disabled")
            return SyncResult(success=True, message='MySideline scraping is disabled')

        mock = config.use_mock_data
        self.audit.emit(AuditKind.SYNC_STARTED, {'correlationId': correlation_id, 'mock': mock})
        sync_id = await self._start_sync_log(correlation_id, mock)
        result = SyncResult(success=True, mock=mock)

        try:
            await self._deactivate_past_events()

            if mock:
                logger.info("Using mock MySideline data")
                events = generate_mock_events(config, self.clock)
            else:
                events = await self._scrape(config, cancel_event, result)

            accepted, rejected = filter_events(events)
            result.skipped += rejected
            logger.info(f"{len(accepted)} MySideline events passed the relevance filter, {rejected} rejected")

            reconciler = Reconciler(self.store, self.audit, self.clock, locks=self.locks, sleep=self.sleep)
            for event in accepted:
                await self._process_event(reconciler, event, result)
        except asyncio.CancelledError:
            logger.warning(f"MySideline sync {correlation_id} was cancelled")
            await self._fail(correlation_id, sync_id, result, 'Sync task was cancelled')
            raise
        except MySidelineSyncError as e:
            logger.error(f"MySideline sync {correlation_id} failed: {e}", exc_info=True)
            return await self._fail(correlation_id, sync_id, result, str(e))
        except Exception as e:
            logger.error(f"Unexpected error in MySideline sync {correlation_id}: {e}", exc_info=True)
            return await self._fail(correlation_id, sync_id, result, f"Unexpected error: {e}")

        result.message = (
            f"Processed {result.carnivals_processed} carnivals from MySideline"
            + (' (partial run)' if result.partial else '')
        )
        self.audit.emit(AuditKind.SYNC_COMPLETED, {
            'correlationId': correlation_id,
            'processed': result.carnivals_processed,
            'created': result.carnivals_created,
            'updated': result.carnivals_updated,
            'skipped': result.skipped,
            'partial': result.partial,
            'mock': mock,
        })
        if sync_id:
            await self._sync_log_call(self.sync_log.mark_completed, sync_id, result.to_dict())
        return result

    async def _scrape(self, config: SyncConfig, cancel_event: asyncio.Event,
                      result: SyncResult) -> List[NormalisedEvent]:
        deadline = None
        if config.soft_deadline_seconds:
            deadline = asyncio.get_running_loop().time() + config.soft_deadline_seconds

        scraper = self.scraper_factory(config, self.clock)
        outcome = await scraper.fetch_events(cancel_event=cancel_event, deadline=deadline)

        result.skipped += outcome.cards_rejected
        result.partial = outcome.partial
        if outcome.card_errors:
            result.errors.append(f"{outcome.card_errors} cards could not be read")
        logger.info(
            f"Scraped {len(outcome.events)} events from {outcome.cards_found} cards "
            f"({outcome.cards_rejected} dropped, {outcome.card_errors} failed)"
        )
        return outcome.events

    async def _process_event(self, reconciler: Reconciler, event: NormalisedEvent,
                             result: SyncResult) -> None:
        result.carnivals_processed += 1
        try:
            outcome = await reconciler.reconcile(event)
        except StoreTransientError:
            raise
        except Exception as e:
            logger.warning(f"Failed to reconcile '{event.title}': {e}", exc_info=True)
            result.errors.append(f"{event.title}: {e}")
            return

        if outcome.action == ACTION_INSERTED:
            result.carnivals_created += 1
        elif outcome.action in (ACTION_UPDATED, ACTION_UPDATED_CLAIMED):
            result.carnivals_updated += 1
        elif outcome.action == ACTION_SKIPPED_MANUAL:
            result.skipped += 1

        if self.logo_store and event.logo_url and outcome.action in (ACTION_INSERTED, ACTION_UPDATED):
            await asyncio.to_thread(self._mirror_logo, outcome.id, event.logo_url)

    def _mirror_logo(self, event_id: str, logo_url: str) -> None:
        try:
            stored = self.store.get(event_id)
            if stored and stored.attributes.get('logoMirrorSource') == logo_url:
                return
            mirror_url = self.logo_store.mirror_logo(event_id, logo_url)
            if mirror_url:
                self.store.set_logo_mirror(event_id, mirror_url, logo_url)
        except (ClientError, StoreTransientError) as e:
            logger.warning(f"Could not record mirrored logo for carnival {event_id}: {e}")

    async def _deactivate_past_events(self) -> None:
        now = self.clock.now()
        try:
            count = await asyncio.to_thread(self.store.deactivate_past_events, now.date(), now)
        except (ClientError, StoreTransientError) as e:
            logger.warning(f"Could not deactivate past carnivals: {e}")
            return
        if count:
            logger.info(f"Deactivated {count} past MySideline carnivals")

    async def _fail(self, correlation_id: str, sync_id: Optional[str],
                    result: SyncResult, message: str) -> SyncResult:
        result.success = False
        result.message = message
        result.errors.append(message)
        self.audit.emit(AuditKind.SYNC_FAILED, {'correlationId': correlation_id, 'error': message})
        if sync_id:
            await self._sync_log_call(self.sync_log.mark_failed, sync_id, message)
        return result

    async def _start_sync_log(self, correlation_id: str, mock: bool) -> Optional[str]:
        if self.sync_log is None:
            return None
        return await self._sync_log_call(
            self.sync_log.start_sync, {'correlationId': correlation_id, 'mock': mock}
        )

    async def _sync_log_call(self, method, *args):
        try:
            return await asyncio.to_thread(method, *args)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error writing MySideline sync log: {e}")
            return None
