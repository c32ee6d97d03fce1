"""Tier routing and object key layout.

Tier A (``primary``) holds small files, Tier B (``large``) holds files
above ``MATERIALS_TIER_THRESHOLD_BYTES``. Every key starts with the tier
name, so a key alone identifies its tier.
"""

import uuid
from pathlib import Path
from typing import Final

from django.conf import settings

from server.apps.materials.models import StorageTier

_KEY_SEPARATOR: Final = '/'


def select_tier(size_bytes: int) -> StorageTier:
    """Pick the tier for a file of the given size.

    Sizes up to and including the threshold stay on the primary tier.

    Args:
        size_bytes: File size in bytes.

    Returns:
        StorageTier for the file.
    """
    if size_bytes > settings.MATERIALS_TIER_THRESHOLD_BYTES:
        return StorageTier.LARGE
    return StorageTier.PRIMARY


def _key_layout(tier: str) -> str:
    return settings.MATERIALS_TIER_KEY_LAYOUTS[tier]


def key_embeds_filename(tier: str) -> bool:
    """Whether renaming a file on this tier needs a blob copy."""
    return '{filename}' in _key_layout(tier)


def key_embeds_folder(tier: str) -> bool:
    """Whether moving a file on this tier needs a blob copy."""
    return '{folder}' in _key_layout(tier)


def build_storage_key(
    tier: str,
    scope_id: str,
    folder: str,
    filename: str,
) -> str:
    """Build the object key for a file.

    Args:
        tier: StorageTier value.
        scope_id: Lab or experiment id.
        folder: Logical folder name.
        filename: File name with extension.

    Returns:
        Key such as 'primary/<lab>/data.csv'.
    """
    relative_key = _key_layout(tier).format(
        scope=scope_id,
        folder=folder,
        filename=filename,
        uuid=uuid.uuid4().hex,
        ext=Path(filename).suffix.lower(),
    )
    return f'{tier}{_KEY_SEPARATOR}{relative_key}'


def tier_from_storage_key(storage_key: str) -> StorageTier:
    """Read the tier from a key's namespace.

    Args:
        storage_key: Object key.

    Returns:
        StorageTier encoded in the key.

    Raises:
        ValueError: If the key does not start with a known tier.
    """
    prefix = storage_key.split(_KEY_SEPARATOR, 1)[0]
    return StorageTier(prefix)
