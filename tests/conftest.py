"""Fixtures shared by every app's tests."""

from typing import Final

import boto3
import pytest
from django.core.cache import cache
from moto import mock_aws

# Default bucket names from server/settings/components/storages.py
_BUCKETS: Final = (
    'lab-materials',
    'lab-materials-large',
    'experiment-files',
    'experiment-files-large',
    'contribution-quarantine',
)


@pytest.fixture(autouse=True)
def _clear_cache():
    """Start every test with an empty tree cache."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def mock_s3():
    """Mock S3 service with every tier bucket.

    Yields:
        boto3 S3 resource with all buckets created.
    """
    with mock_aws():
        conn = boto3.resource('s3', region_name='us-east-1')

        for bucket in _BUCKETS:
            conn.create_bucket(Bucket=bucket)

        yield conn


@pytest.fixture
def lab_id():
    """Id of the lab under test."""
    return 'lab-00000001'


@pytest.fixture
def other_lab_id():
    """Id of a second lab for isolation tests."""
    return 'lab-00000002'


@pytest.fixture
def actor_id():
    """Id of the user performing operations."""
    return 'user-00000001'


@pytest.fixture
def other_actor_id():
    """Id of a second user."""
    return 'user-00000002'


@pytest.fixture
def bucket_keys(mock_s3):
    """List object keys stored in a mocked bucket.

    Returns:
        Function taking a bucket name and returning its sorted keys.
    """
    def _keys(bucket: str) -> list[str]:
        return sorted(
            summary.key for summary in mock_s3.Bucket(bucket).objects.all()
        )
    return _keys
