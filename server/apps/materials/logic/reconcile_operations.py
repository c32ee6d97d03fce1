"""Reconciliation between metadata rows and stored objects.

Operations that touch both storage and metadata are not atomic. A
crash or tolerated failure can leave either a record whose object is
gone or an object no record points at. This sweep finds both, plus
records whose key namespace disagrees with their ``tier`` column.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import final

from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

from server.apps.materials.infrastructure.tiers import tier_from_storage_key
from server.apps.materials.models import BaseFileRecord, StorageTier
from server.apps.materials.spaces import FileSpace

logger = logging.getLogger(__name__)


@final
@dataclass(frozen=True)
class OrphanBlob:
    """Object in a tier bucket that no record references."""

    tier: str
    storage_key: str


def default_orphan_min_age() -> timedelta:
    """Minimum age of an object before it may count as orphaned."""
    return timedelta(hours=settings.MATERIALS_ORPHAN_MIN_AGE_HOURS)


def _stored_records(space: FileSpace) -> QuerySet[BaseFileRecord]:
    return space.record_model.objects.exclude(
        storage_key__isnull=True,
    ).order_by('pk')


def find_missing_blobs(space: FileSpace) -> list[BaseFileRecord]:
    """Find records whose object is absent from storage.

    Placeholders have no object and are skipped.

    Args:
        space: File space to check.

    Returns:
        Records pointing at missing objects.
    """
    missing = []
    for record in _stored_records(space).iterator():
        if not space.storage(record.tier).exists(record.storage_key):
            logger.warning(
                'Record %d points at missing object: %s',
                record.pk,
                record.storage_key,
            )
            missing.append(record)
    return missing


def find_tier_mismatches(space: FileSpace) -> list[BaseFileRecord]:
    """Find records whose key namespace disagrees with their tier.

    Args:
        space: File space to check.

    Returns:
        Records with an unknown key prefix or one naming another tier.
    """
    mismatched = []
    for record in _stored_records(space).iterator():
        try:
            key_tier = tier_from_storage_key(record.storage_key)
        except ValueError:
            key_tier = None
        if key_tier != record.tier:
            logger.warning(
                'Record %d is on tier %s but its key is %s',
                record.pk,
                record.tier,
                record.storage_key,
            )
            mismatched.append(record)
    return mismatched


def find_orphan_blobs(
    space: FileSpace,
    min_age: timedelta | None = None,
) -> list[OrphanBlob]:
    """Find objects in the space's buckets without a record.

    Only keys under a tier's own prefix are considered. Objects newer
    than ``min_age`` are skipped: an upload is written before its
    record, and a copy before the record points at it.

    Args:
        space: File space to check.
        min_age: Minimum object age, ``MATERIALS_ORPHAN_MIN_AGE_HOURS``
            when omitted.

    Returns:
        Orphaned objects, grouped by tier.
    """
    if min_age is None:
        min_age = default_orphan_min_age()
    cutoff = timezone.now() - min_age

    known_keys = set(
        _stored_records(space).values_list('storage_key', flat=True),
    )
    orphans = []
    for tier in StorageTier:
        tier_keys = space.storage(tier).iter_keys(
            prefix=f'{tier}/',
            modified_before=cutoff,
        )
        for key in tier_keys:
            if key not in known_keys:
                logger.warning('Orphaned object in %s tier: %s', tier, key)
                orphans.append(OrphanBlob(tier=tier, storage_key=key))
    return orphans


def delete_orphan_blob(space: FileSpace, orphan: OrphanBlob) -> None:
    """Remove an orphaned object.

    Raises:
        Exception: If the storage delete fails.
    """
    logger.info('Deleting orphaned object: %s', orphan.storage_key)
    space.storage(orphan.tier).remove(orphan.storage_key)
