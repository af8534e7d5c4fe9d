"""Audit events emitted by the MySideline sync."""
import json
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from sync.clock import Clock, SystemClock, isoformat_utc

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger('audit')


class AuditKind(str, Enum):
    SYNC_STARTED = 'SYNC_STARTED'
    SYNC_COMPLETED = 'SYNC_COMPLETED'
    SYNC_FAILED = 'SYNC_FAILED'
    SYNC_BUSY = 'SYNC_BUSY'
    EVENT_IMPORTED = 'EVENT_IMPORTED'
    EVENT_UPDATED = 'EVENT_UPDATED'
    EVENT_UPDATED_CLAIMED = 'EVENT_UPDATED_CLAIMED'
    EVENT_CONFLICT_MANUAL = 'EVENT_CONFLICT_MANUAL'


class AuditSink(Protocol):
    def emit(self, kind: AuditKind, payload: Dict[str, Any]) -> None:
        ...


class LoggingAuditSink:
    """Writes each audit event as one line on the ``audit`` logger."""

    def emit(self, kind: AuditKind, payload: Dict[str, Any]) -> None:
        audit_logger.info(
            f"{kind.value} {json.dumps(payload, default=str, sort_keys=True)}",
            extra={'audit_kind': kind.value},
        )


class DynamoDBAuditSink:
    """Stores audit events in a DynamoDB table and mirrors them to the log."""

    def __init__(self, table_name: str, clock: Optional[Clock] = None, dynamodb=None):
        """
        Initialize DynamoDB table reference.

        Args:
            table_name: Name of the audit table (hash key ``audit_id``)
            clock: Clock used to timestamp entries
            dynamodb: Optional boto3 DynamoDB resource
        """
        self.table_name = table_name
        self.clock = clock or SystemClock()
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self.log_sink = LoggingAuditSink()

    def emit(self, kind: AuditKind, payload: Dict[str, Any]) -> None:
        """
        Store one audit event.

        A failed write is logged and does not interrupt the sync.
        """
        self.log_sink.emit(kind, payload)
        item = {
            'audit_id': str(uuid.uuid4()),
            'kind': kind.value,
            'created_at': isoformat_utc(self.clock.now()),
            'payload': json.dumps(payload, default=str, sort_keys=True),
        }
        try:
            self.table.put_item(Item=item)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error writing audit event {kind.value} to {self.table_name}: {e}")
