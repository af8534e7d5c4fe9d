"""Shared fixtures: AWS credentials for moto and mocked DynamoDB tables."""
import os
from datetime import datetime, timezone
from unittest.mock import patch

import boto3
import pytest
from moto import mock_aws

from sync.clock import FixedClock
from sync.config import SyncConfig


@pytest.fixture(autouse=True)
def aws_credentials():
    """Fake credentials so boto3 never reaches a real account."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1',
    }
    with patch.dict(os.environ, env_vars):
        yield


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def config():
    """Live-scrape configuration with no waiting between retries or cards."""
    return SyncConfig(
        search_url='https://mysideline.example/search',
        event_url_prefix='https://mysideline.example/register/',
        request_delay_ms=0,
        card_pause_ms=0,
    )


def create_carnivals_table(dynamodb, table_name='test-carnivals'):
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[
            {'AttributeName': 'id', 'KeyType': 'HASH'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'id', 'AttributeType': 'S'},
            {'AttributeName': 'dedupKey', 'AttributeType': 'S'}
        ],
        GlobalSecondaryIndexes=[
            {
                'IndexName': 'dedup-key-index',
                'KeySchema': [
                    {'AttributeName': 'dedupKey', 'KeyType': 'HASH'}
                ],
                'Projection': {'ProjectionType': 'ALL'}
            }
        ],
        BillingMode='PAY_PER_REQUEST'
    )


def create_sync_log_table(dynamodb, table_name='test-sync-log'):
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[
            {'AttributeName': 'sync_id', 'KeyType': 'HASH'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'sync_id', 'AttributeType': 'S'},
            {'AttributeName': 'sync_status', 'AttributeType': 'S'},
            {'AttributeName': 'completed_at', 'AttributeType': 'S'}
        ],
        GlobalSecondaryIndexes=[
            {
                'IndexName': 'status-completed-index',
                'KeySchema': [
                    {'AttributeName': 'sync_status', 'KeyType': 'HASH'},
                    {'AttributeName': 'completed_at', 'KeyType': 'RANGE'}
                ],
                'Projection': {'ProjectionType': 'ALL'}
            }
        ],
        BillingMode='PAY_PER_REQUEST'
    )


@pytest.fixture
def dynamodb():
    """Mocked DynamoDB resource, alive for the duration of the test."""
    with mock_aws():
        yield boto3.resource('dynamodb', region_name='us-east-1')


@pytest.fixture
def carnivals_table(dynamodb):
    return create_carnivals_table(dynamodb)


@pytest.fixture
def sync_log_table(dynamodb):
    return create_sync_log_table(dynamodb)
