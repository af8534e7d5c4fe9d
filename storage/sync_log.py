"""History of MySideline sync runs kept in DynamoDB."""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Key

from sync.clock import Clock, SystemClock, isoformat_utc

logger = logging.getLogger(__name__)


SYNC_TYPE = 'mysideline'
STATUS_INDEX = 'status-completed-index'


class SyncLog:
    """
    Records each sync run as started, completed or failed.

    Table layout: hash key ``sync_id``; global secondary index
    ``status-completed-index`` on (``sync_status``, ``completed_at``), where
    ``sync_status`` is ``<type>#<status>``.
    """

    def __init__(self, table_name: str, clock: Optional[Clock] = None, dynamodb=None):
        self.table_name = table_name
        self.clock = clock or SystemClock()
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)

    def start_sync(self, metadata: Optional[Dict[str, Any]] = None,
                   sync_type: str = SYNC_TYPE) -> str:
        """
        Create a sync log entry for a new run.

        Returns:
            Id of the sync log entry
        """
        sync_id = str(uuid.uuid4())
        self.table.put_item(Item={
            'sync_id': sync_id,
            'sync_type': sync_type,
            'sync_status': f"{sync_type}#started",
            'started_at': isoformat_utc(self.clock.now()),
            'metadata': dict(metadata or {}),
        })
        return sync_id

    def mark_completed(self, sync_id: str, results: Dict[str, int],
                       sync_type: str = SYNC_TYPE) -> None:
        """Mark a run completed with its counters."""
        self.table.update_item(
            Key={'sync_id': sync_id},
            UpdateExpression=(
                'SET sync_status = :status, completed_at = :completed, '
                'carnivals_processed = :processed, carnivals_created = :created, '
                'carnivals_updated = :updated'
            ),
            ExpressionAttributeValues={
                ':status': f"{sync_type}#completed",
                ':completed': isoformat_utc(self.clock.now()),
                ':processed': results.get('carnivalsProcessed', 0),
                ':created': results.get('carnivalsCreated', 0),
                ':updated': results.get('carnivalsUpdated', 0),
            },
        )

    def mark_failed(self, sync_id: str, error_message: str,
                    sync_type: str = SYNC_TYPE) -> None:
        """Mark a run failed with its error message."""
        self.table.update_item(
            Key={'sync_id': sync_id},
            UpdateExpression=(
                'SET sync_status = :status, completed_at = :completed, error_message = :error'
            ),
            ExpressionAttributeValues={
                ':status': f"{sync_type}#failed",
                ':completed': isoformat_utc(self.clock.now()),
                ':error': error_message,
            },
        )

    def get_last_successful_sync(self, sync_type: str = SYNC_TYPE) -> Optional[Dict[str, Any]]:
        """Most recent completed run, or None."""
        response = self.table.query(
            IndexName=STATUS_INDEX,
            KeyConditionExpression=Key('sync_status').eq(f"{sync_type}#completed"),
            ScanIndexForward=False,
            Limit=1,
        )
        items = response.get('Items', [])
        return items[0] if items else None

    def should_run_sync(self, interval_hours: int = 24, sync_type: str = SYNC_TYPE) -> bool:
        """
        Decide whether a scheduled run is due.

        Returns:
            True if no run completed within ``interval_hours``
        """
        last_sync = self.get_last_successful_sync(sync_type)
        if not last_sync:
            logger.info("No previous MySideline sync found")
            return True

        completed_at = datetime.strptime(
            last_sync['completed_at'], '%Y-%m-%dT%H:%M:%S.%fZ'
        ).replace(tzinfo=timezone.utc)
        age = self.clock.now() - completed_at
        hours = age.total_seconds() / 3600

        if age >= timedelta(hours=interval_hours):
            logger.info(f"Last MySideline sync was {hours:.1f} hours ago; sync is due")
            return True

        logger.info(f"MySideline sync skipped - recent sync found ({hours:.1f} hours ago)")
        return False
