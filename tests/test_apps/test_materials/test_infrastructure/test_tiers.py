"""Tests for tier routing and key layout."""

import pytest
from django.test import override_settings

from server.apps.materials.infrastructure.tiers import (
    build_storage_key,
    key_embeds_filename,
    key_embeds_folder,
    select_tier,
    tier_from_storage_key,
)
from server.apps.materials.models import StorageTier

_MB = 1024 * 1024


@pytest.mark.parametrize(('size_bytes', 'expected'), [
    (0, StorageTier.PRIMARY),
    (49 * _MB, StorageTier.PRIMARY),
    (50 * _MB, StorageTier.PRIMARY),
    (int(50.0001 * _MB), StorageTier.LARGE),
    (50 * _MB + 1, StorageTier.LARGE),
    (51 * _MB, StorageTier.LARGE),
])
def test_select_tier_threshold(size_bytes, expected):
    """Test files up to and including 50 MB stay on the primary tier."""
    assert select_tier(size_bytes) == expected


@override_settings(MATERIALS_TIER_THRESHOLD_BYTES=10)
def test_select_tier_threshold_from_settings():
    """Test the threshold is read from settings."""
    assert select_tier(10) == StorageTier.PRIMARY
    assert select_tier(11) == StorageTier.LARGE


def test_build_storage_key_primary():
    """Test primary keys are tier/lab/filename."""
    key = build_storage_key('primary', 'lab-00000001', 'Results', 'data.csv')

    assert key == 'primary/lab-00000001/data.csv'


def test_build_storage_key_large_is_folder_independent():
    """Test large keys use a random name with the extension."""
    key = build_storage_key('large', 'lab-00000001', 'Results', 'scan.TIFF')

    assert key.startswith('large/lab-00000001/')
    assert key.endswith('.tiff')
    assert 'Results' not in key
    assert key != build_storage_key(
        'large',
        'lab-00000001',
        'Results',
        'scan.TIFF',
    )


def test_key_layout_flags():
    """Test default layouts: filename on primary, nothing on large."""
    assert key_embeds_filename('primary')
    assert not key_embeds_folder('primary')
    assert not key_embeds_filename('large')
    assert not key_embeds_folder('large')


@override_settings(MATERIALS_TIER_KEY_LAYOUTS={
    'primary': '{scope}/{folder}/{filename}',
    'large': '{scope}/{uuid}{ext}',
})
def test_key_layout_with_folder():
    """Test a layout embedding the folder is detected."""
    assert key_embeds_folder('primary')
    assert build_storage_key(
        'primary',
        'lab-00000001',
        'Results',
        'data.csv',
    ) == 'primary/lab-00000001/Results/data.csv'


def test_tier_from_storage_key():
    """Test the tier is read back from the key namespace."""
    assert tier_from_storage_key('large/lab/abc.tiff') == StorageTier.LARGE
    assert tier_from_storage_key('primary/lab/a.csv') == StorageTier.PRIMARY

    with pytest.raises(ValueError, match='archive'):
        tier_from_storage_key('archive/lab/a.csv')
