"""Lab materials settings."""

from server.settings.components import config

# Files larger than this go to the large-object tier (50 MiB)
MATERIALS_TIER_THRESHOLD_BYTES = config(
    'MATERIALS_TIER_THRESHOLD_BYTES',
    cast=int,
    default=50 * 1024 * 1024,
)

# Lab, experiment and actor ids shorter than this are rejected
MATERIALS_MIN_IDENTIFIER_LENGTH = config(
    'MATERIALS_MIN_IDENTIFIER_LENGTH',
    cast=int,
    default=8,
)

# Object key layout per tier. Available placeholders:
# {scope}, {folder}, {filename}, {uuid}, {ext}
# Keys are always prefixed with the tier name.
MATERIALS_TIER_KEY_LAYOUTS = {
    'primary': config(
        'MATERIALS_PRIMARY_KEY_LAYOUT',
        default='{scope}/{filename}',
    ),
    'large': config(
        'MATERIALS_LARGE_KEY_LAYOUT',
        default='{scope}/{uuid}{ext}',
    ),
}

# Seconds a cached folder tree stays valid without invalidation
MATERIALS_TREE_CACHE_TIMEOUT = config(
    'MATERIALS_TREE_CACHE_TIMEOUT',
    cast=int,
    default=300,
)

# Objects without a record are only deleted once they are this old, so
# uploads whose record is not written yet survive the sweep
MATERIALS_ORPHAN_MIN_AGE_HOURS = config(
    'MATERIALS_ORPHAN_MIN_AGE_HOURS',
    cast=int,
    default=24,
)
