"""AWS Lambda handler for the MySideline carnival sync."""
import asyncio
import json
import logging
import time
from typing import Dict, Any

from botocore.exceptions import ClientError

from storage.audit_sink import DynamoDBAuditSink, LoggingAuditSink
from storage.event_store import DynamoDBEventStore
from storage.logo_store import LogoStore
from storage.sync_log import SyncLog
from sync.clock import SystemClock
from sync.config import SyncConfig
from sync.controller import MySidelineSyncController


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        audit_kind = getattr(record, 'audit_kind', None)
        if audit_kind:
            log_data['audit_kind'] = audit_kind

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def is_forced(event: Dict[str, Any]) -> bool:
    """True for manual invocations, which skip the sync interval check."""
    event = event or {}
    return event.get('trigger') == 'manual' or bool(event.get('force'))


def build_controller(config: SyncConfig) -> MySidelineSyncController:
    """
    Wire the controller to its DynamoDB tables and optional S3 bucket.

    Args:
        config: Configuration snapshot for this invocation

    Returns:
        Controller ready to run a sync
    """
    clock = SystemClock()
    if config.audit_table:
        audit = DynamoDBAuditSink(table_name=config.audit_table, clock=clock)
    else:
        audit = LoggingAuditSink()

    logo_store = LogoStore(bucket=config.logo_bucket) if config.logo_bucket else None

    return MySidelineSyncController(
        store=DynamoDBEventStore(table_name=config.carnivals_table),
        audit=audit,
        clock=clock,
        config_factory=lambda: config,
        sync_log=SyncLog(table_name=config.sync_log_table, clock=clock),
        logo_store=logo_store,
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the MySideline sync.

    Args:
        event: EventBridge schedule payload, or ``{"trigger": "manual"}``
            / ``{"force": true}`` to run regardless of the sync interval
        context: Lambda context object

    Returns:
        Response dict with statusCode and the sync summary
    """
    start_time = time.time()

    try:
        config = SyncConfig.from_env()
    except Exception as e:
        setup_logging('INFO')
        logging.getLogger(__name__).error(f"Invalid configuration: {e}", exc_info=True)
        return _response(500, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__,
        })

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    logger.info(
        "Lambda execution started",
        extra={
            'carnivals_table': config.carnivals_table,
            'use_mock_data': config.use_mock_data,
            'enable_scraping': config.enable_scraping,
        }
    )

    try:
        controller = build_controller(config)

        if not is_forced(event):
            try:
                due = controller.sync_log.should_run_sync(config.sync_interval_hours)
            except ClientError as e:
                logger.warning(f"Could not read sync history, running anyway: {e}")
                due = True
            if not due:
                return _response(200, {
                    'message': 'Sync skipped - recent sync found',
                    'skipped': True,
                    'duration_seconds': round(time.time() - start_time, 2),
                })

        try:
            result = asyncio.run(controller.sync_mysideline_carnivals())
        finally:
            controller.close()

        duration = time.time() - start_time
        logger.info(
            "Lambda execution completed",
            extra={
                'duration_seconds': round(duration, 2),
                'success': result.success,
                'carnivals_processed': result.carnivals_processed,
                'carnivals_created': result.carnivals_created,
                'carnivals_updated': result.carnivals_updated,
            }
        )

        if result.busy:
            status_code = 409
        elif result.success:
            status_code = 200
        else:
            status_code = 500

        return _response(status_code, {
            'message': result.message,
            'statistics': result.to_dict(),
            'duration_seconds': round(duration, 2),
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
