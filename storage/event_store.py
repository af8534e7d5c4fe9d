"""DynamoDB event store for carnival records."""
import logging
import re
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.models import NormalisedEvent, StoredEvent
from sync.clock import isoformat_utc
from sync.errors import StoreTransientError

logger = logging.getLogger(__name__)


DEDUP_INDEX = 'dedup-key-index'

RETRYABLE_ERROR_CODES = {
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
    'InternalServerError',
    'ServiceUnavailable',
    'TransactionConflictException',
}

# Attributes written from scraped data.
SYNCABLE_FIELDS = [
    'title',
    'mySidelineTitle',
    'date',
    'state',
    'locationAddress',
    'locationAddressPart1',
    'locationAddressPart2',
    'locationAddressPart3',
    'locationAddressPart4',
    'mapsUrl',
    'scheduleDetails',
    'organiserContactName',
    'organiserContactPhone',
    'organiserContactEmail',
    'socialMediaFacebook',
    'socialMediaWebsite',
    'logoUrl',
    'registrationLink',
    'isActive',
]

# Written to claimed carnivals only while the stored value is empty.
FILL_WHEN_EMPTY_FIELDS = ['logoUrl', 'mapsUrl']

LAST_SYNC_FIELD = 'lastMySidelineSync'

_NON_ALPHANUMERIC = re.compile(r'[^0-9a-z]+')


class EventStore(Protocol):
    def find_by_key(self, title: str, event_date: Optional[date] = None,
                    state: Optional[str] = None,
                    club_id: Optional[str] = None) -> Optional[StoredEvent]:
        ...

    def insert(self, event: NormalisedEvent, now: datetime) -> str:
        ...

    def update_whole(self, event_id: str, event: NormalisedEvent, now: datetime) -> List[str]:
        ...

    def update_claimed(self, event_id: str, event: NormalisedEvent,
                       claimed_at: str, now: datetime) -> List[str]:
        ...


def normalise_title(title: str) -> str:
    """Lower-case a title and reduce punctuation and whitespace to single spaces."""
    return _NON_ALPHANUMERIC.sub(' ', (title or '').lower()).strip()


def utc_day(value) -> Optional[str]:
    """Bucket a date, datetime or ISO string to its UTC calendar day."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def dedup_key(title: str, event_date=None, state: Optional[str] = None,
              club_id: Optional[str] = None) -> str:
    """
    Duplicate-detection key for a carnival.

    Dated carnivals match on (title, UTC day, state). Undated carnivals match
    on (title, state, club) instead.
    """
    day = utc_day(event_date)
    state_code = (state or '').upper()
    if day:
        return f"d|{normalise_title(title)}|{day}|{state_code}"
    return f"n|{normalise_title(title)}|{state_code}|{club_id or ''}"


def event_to_attributes(event: NormalisedEvent) -> Dict[str, Any]:
    """Map a NormalisedEvent onto the stored attribute names."""
    parts = list(event.address_parts[:4]) + [None] * (4 - min(len(event.address_parts), 4))
    return {
        'title': event.title,
        'mySidelineTitle': event.raw_title,
        'date': utc_day(event.date),
        'state': event.state,
        'locationAddress': event.composed_address or None,
        'locationAddressPart1': parts[0],
        'locationAddressPart2': parts[1],
        'locationAddressPart3': parts[2],
        'locationAddressPart4': parts[3],
        'mapsUrl': event.maps_url,
        'scheduleDetails': event.schedule_details,
        'organiserContactName': event.organiser.name,
        'organiserContactPhone': event.organiser.phone,
        'organiserContactEmail': event.organiser.email,
        'socialMediaFacebook': event.social.facebook,
        'socialMediaWebsite': event.social.website,
        'logoUrl': event.logo_url,
        'registrationLink': event.registration_link,
        'isActive': event.is_active,
    }


def _is_empty(value) -> bool:
    return value is None or value == ''


def _preferred_candidate(items: List[dict]) -> dict:
    """Manual entries first, then claimed carnivals, then the newest sync."""
    newest_first = sorted(items, key=lambda item: item.get(LAST_SYNC_FIELD) or '', reverse=True)
    return sorted(
        newest_first,
        key=lambda item: (
            0 if item.get('isManuallyEntered') else 1,
            0 if item.get('claimedAt') else 1,
        ),
    )[0]


class DynamoDBEventStore:
    """Carnival store backed by a DynamoDB table."""

    def __init__(self, table_name: str, dynamodb=None):
        """
        Initialize DynamoDB table reference.

        Args:
            table_name: Name of the carnivals table
            dynamodb: Optional boto3 DynamoDB resource
        """
        self.table_name = table_name
        self.dynamodb = dynamodb or boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def _call(self, operation: str, method, **kwargs):
        """Run a table call, translating throttling into StoreTransientError."""
        try:
            return method(**kwargs)
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code in RETRYABLE_ERROR_CODES:
                raise StoreTransientError(f"{operation} on {self.table_name} failed: {code}") from e
            raise

    def _get_item(self, event_id: str) -> Optional[dict]:
        response = self._call('get_item', self.table.get_item, Key={'id': event_id})
        return response.get('Item')

    def _update(self, event_id: str, values: Dict[str, Any], condition: str,
                condition_names: Dict[str, str], condition_values: Dict[str, Any]) -> bool:
        """
        SET ``values`` on one item under ``condition``.

        Returns:
            False if the condition did not hold
        """
        names = dict(condition_names)
        expression_values = dict(condition_values)
        assignments = []
        for index, (name, value) in enumerate(values.items()):
            names[f'#f{index}'] = name
            expression_values[f':v{index}'] = value
            assignments.append(f'#f{index} = :v{index}')

        try:
            self._call(
                'update_item',
                self.table.update_item,
                Key={'id': event_id},
                UpdateExpression='SET ' + ', '.join(assignments),
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=expression_values,
            )
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                return False
            raise
        return True

    def get(self, event_id: str) -> Optional[StoredEvent]:
        """Fetch one carnival by id."""
        item = self._get_item(event_id)
        return self._item_to_stored_event(item) if item else None

    def find_by_key(self, title: str, event_date=None, state: Optional[str] = None,
                    club_id: Optional[str] = None) -> Optional[StoredEvent]:
        """
        Find the stored carnival matching the duplicate-detection key.

        When several rows share a key, a manual entry wins, then a claimed
        carnival, then the most recently synced one.

        Returns:
            StoredEvent or None if no carnival matches
        """
        key = dedup_key(title, event_date, state, club_id)
        response = self._call(
            'query',
            self.table.query,
            IndexName=DEDUP_INDEX,
            KeyConditionExpression=Key('dedupKey').eq(key),
        )
        items = response.get('Items', [])

        while 'LastEvaluatedKey' in response:
            response = self._call(
                'query',
                self.table.query,
                IndexName=DEDUP_INDEX,
                KeyConditionExpression=Key('dedupKey').eq(key),
                ExclusiveStartKey=response['LastEvaluatedKey'],
            )
            items.extend(response.get('Items', []))

        if not items:
            return None
        if len(items) > 1:
            logger.warning(f"{len(items)} carnivals share duplicate key '{key}'")

        return self._item_to_stored_event(_preferred_candidate(items))

    def insert(self, event: NormalisedEvent, now: datetime) -> str:
        """
        Insert an imported carnival.

        Returns:
            Id of the new carnival
        """
        event_id = str(uuid.uuid4())
        timestamp = isoformat_utc(now)
        item = event_to_attributes(event)
        item.update({
            'id': event_id,
            'dedupKey': dedup_key(event.title, event.date, event.state, event.club_id),
            'source': event.source_id,
            'isManuallyEntered': False,
            'createdByUserId': None,
            LAST_SYNC_FIELD: timestamp,
            'createdAt': timestamp,
            'updatedAt': timestamp,
        })
        self._call(
            'put_item',
            self.table.put_item,
            Item=item,
            ConditionExpression='attribute_not_exists(#id)',
            ExpressionAttributeNames={'#id': 'id'},
        )
        logger.info(f"Created carnival {event_id}: '{event.title}'")
        return event_id

    def update_whole(self, event_id: str, event: NormalisedEvent, now: datetime) -> List[str]:
        """
        Refresh an unclaimed imported carnival from scraped data.

        Only values that differ are written. The write is dropped if the
        carnival was claimed meanwhile or a newer sync is already recorded.

        Returns:
            Attribute names written, including lastMySidelineSync
        """
        item = self._get_item(event_id)
        if item is None:
            logger.warning(f"Carnival {event_id} disappeared before update")
            return []

        incoming = event_to_attributes(event)
        changes = {
            name: value for name, value in incoming.items()
            if item.get(name) != value
        }
        timestamp = isoformat_utc(now)
        values = dict(changes)
        values[LAST_SYNC_FIELD] = timestamp
        values['updatedAt'] = timestamp
        values['dedupKey'] = dedup_key(
            incoming['title'], incoming['date'], incoming['state'], event.club_id
        )

        written = self._update(
            event_id,
            values,
            condition=(
                'attribute_exists(#id) AND attribute_not_exists(#claimedAt) '
                'AND #manual = :false '
                'AND (attribute_not_exists(#lastSync) OR #lastSync <= :now)'
            ),
            condition_names={
                '#id': 'id',
                '#claimedAt': 'claimedAt',
                '#manual': 'isManuallyEntered',
                '#lastSync': LAST_SYNC_FIELD,
            },
            condition_values={':false': False, ':now': timestamp},
        )
        if not written:
            logger.warning(
                f"Skipped update of carnival {event_id}: claimed meanwhile or a newer sync exists"
            )
            return []

        return list(changes) + [LAST_SYNC_FIELD]

    def update_claimed(self, event_id: str, event: NormalisedEvent, claimed_at: str,
                       now: datetime) -> List[str]:
        """
        Refresh a claimed carnival without overwriting the owner's edits.

        A field is written only while its stored value still equals the value
        recorded in ``claimSnapshot`` (i.e. nobody edited it since the claim);
        the snapshot advances with every such write. ``logoUrl`` and
        ``mapsUrl`` are also filled when empty.

        Returns:
            Attribute names written, including lastMySidelineSync
        """
        item = self._get_item(event_id)
        if item is None:
            logger.warning(f"Carnival {event_id} disappeared before update")
            return []

        snapshot = dict(item.get('claimSnapshot') or {})
        incoming = event_to_attributes(event)
        changes = {}

        for name, value in incoming.items():
            stored = item.get(name)
            if stored == value:
                continue
            untouched_since_claim = name in snapshot and snapshot[name] == stored
            fill_empty = name in FILL_WHEN_EMPTY_FIELDS and _is_empty(stored)
            if untouched_since_claim or fill_empty:
                changes[name] = value
                snapshot[name] = value

        timestamp = isoformat_utc(now)
        values = dict(changes)
        values[LAST_SYNC_FIELD] = timestamp
        if changes:
            values['claimSnapshot'] = snapshot
            values['updatedAt'] = timestamp
            values['dedupKey'] = dedup_key(
                values.get('title', item.get('title')),
                values.get('date', item.get('date')),
                values.get('state', item.get('state')),
                event.club_id,
            )

        written = self._update(
            event_id,
            values,
            condition=(
                '#claimedAt = :claimedAt '
                'AND (attribute_not_exists(#lastSync) OR #lastSync <= :now)'
            ),
            condition_names={'#claimedAt': 'claimedAt', '#lastSync': LAST_SYNC_FIELD},
            condition_values={':claimedAt': claimed_at, ':now': timestamp},
        )
        if not written:
            logger.warning(
                f"Skipped update of claimed carnival {event_id}: ownership changed or a newer sync exists"
            )
            return []

        return list(changes) + [LAST_SYNC_FIELD]

    def claim_event(self, event_id: str, user_id: str, now: datetime,
                    club_id: Optional[str] = None,
                    contact: Optional[Dict[str, Optional[str]]] = None) -> bool:
        """
        Give a local user ownership of an imported carnival.

        A carnival can be claimed once, only if it was imported. The imported
        values are recorded in ``claimSnapshot`` before the claimer's contact
        details are applied, so the new contact counts as an owner edit.

        Args:
            event_id: Carnival to claim
            user_id: Claiming user
            now: Claim time
            club_id: Club of the claiming user
            contact: Replacement organiser contact attributes

        Returns:
            True if the claim succeeded
        """
        item = self._get_item(event_id)
        if item is None:
            logger.warning(f"Cannot claim carnival {event_id}: not found")
            return False

        timestamp = isoformat_utc(now)
        values = {
            'claimedAt': timestamp,
            'createdByUserId': user_id,
            'claimSnapshot': {name: item.get(name) for name in SYNCABLE_FIELDS},
            'originalMySidelineContactEmail': item.get('organiserContactEmail'),
            'updatedAt': timestamp,
        }
        if club_id is not None:
            values['clubId'] = club_id
        for name, value in (contact or {}).items():
            values[name] = value

        claimed = self._update(
            event_id,
            values,
            condition=(
                'attribute_not_exists(#claimedAt) AND #manual = :false '
                'AND attribute_exists(#lastSync)'
            ),
            condition_names={
                '#claimedAt': 'claimedAt',
                '#manual': 'isManuallyEntered',
                '#lastSync': LAST_SYNC_FIELD,
            },
            condition_values={':false': False},
        )
        if claimed:
            logger.info(f"Carnival {event_id} claimed by user {user_id}")
        else:
            logger.warning(f"Carnival {event_id} cannot be claimed by user {user_id}")
        return claimed

    def update_fields(self, event_id: str, changes: Dict[str, Any], now: datetime) -> bool:
        """
        Apply edits made by a local user.

        Returns:
            False if the carnival does not exist
        """
        if not changes:
            return True
        item = self._get_item(event_id)
        if item is None:
            return False

        values = dict(changes)
        values['updatedAt'] = isoformat_utc(now)
        if {'title', 'date', 'state'} & set(changes):
            values['dedupKey'] = dedup_key(
                values.get('title', item.get('title')),
                values.get('date', item.get('date')),
                values.get('state', item.get('state')),
                values.get('clubId', item.get('clubId')),
            )
        return self._update(
            event_id,
            values,
            condition='attribute_exists(#id)',
            condition_names={'#id': 'id'},
            condition_values={},
        )

    def save_manual_event(self, title: str, event_date, state: Optional[str],
                          created_by_user_id: str, now: datetime,
                          attributes: Optional[Dict[str, Any]] = None) -> str:
        """
        Store a carnival entered by a local user.

        Returns:
            Id of the new carnival
        """
        event_id = str(uuid.uuid4())
        timestamp = isoformat_utc(now)
        item = dict(attributes or {})
        item.update({
            'id': event_id,
            'title': title,
            'date': utc_day(event_date),
            'state': state,
            'dedupKey': dedup_key(title, event_date, state, item.get('clubId')),
            'isManuallyEntered': True,
            'isActive': item.get('isActive', True),
            'createdByUserId': created_by_user_id,
            'createdAt': timestamp,
            'updatedAt': timestamp,
        })
        self._call('put_item', self.table.put_item, Item=item)
        return event_id

    def set_logo_mirror(self, event_id: str, mirror_url: str, source_url: str) -> bool:
        """Record where a carnival's logo was mirrored to."""
        return self._update(
            event_id,
            {'logoMirrorUrl': mirror_url, 'logoMirrorSource': source_url},
            condition='attribute_exists(#id)',
            condition_names={'#id': 'id'},
            condition_values={},
        )

    def deactivate_past_events(self, today: date, now: datetime) -> int:
        """
        Mark imported carnivals dated before ``today`` as inactive.

        Manually entered carnivals are left alone.

        Returns:
            Number of carnivals deactivated
        """
        scan_filter = (
            Attr('isActive').eq(True)
            & Attr('isManuallyEntered').eq(False)
            & Attr('date').attribute_type('S')
            & Attr('date').lt(today.isoformat())
        )
        response = self._call('scan', self.table.scan, FilterExpression=scan_filter)
        items = response.get('Items', [])
        while 'LastEvaluatedKey' in response:
            response = self._call(
                'scan',
                self.table.scan,
                FilterExpression=scan_filter,
                ExclusiveStartKey=response['LastEvaluatedKey'],
            )
            items.extend(response.get('Items', []))

        deactivated = 0
        for item in items:
            if self._update(
                item['id'],
                {'isActive': False, 'updatedAt': isoformat_utc(now)},
                condition='#manual = :false',
                condition_names={'#manual': 'isManuallyEntered'},
                condition_values={':false': False},
            ):
                deactivated += 1
                logger.info(f"Deactivated past carnival '{item.get('title')}' ({item.get('date')})")

        return deactivated

    def _item_to_stored_event(self, item: dict) -> StoredEvent:
        """
        Convert DynamoDB item to StoredEvent object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            StoredEvent object
        """
        return StoredEvent(
            id=item['id'],
            title=item.get('title', ''),
            date=item.get('date'),
            state=item.get('state'),
            is_manually_entered=bool(item.get('isManuallyEntered', False)),
            claimed_at=item.get('claimedAt'),
            last_mysideline_sync=item.get(LAST_SYNC_FIELD),
            created_by_user_id=item.get('createdByUserId'),
            club_id=item.get('clubId'),
            is_active=bool(item.get('isActive', False)),
            attributes=item,
        )
