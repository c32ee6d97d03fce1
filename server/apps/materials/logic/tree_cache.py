"""Cache keys for folder trees.

Every write to a file space must invalidate the cached tree of the
lab or experiment it touched. ORM saves and deletes are covered by
signal handlers; queryset ``update()`` calls invalidate explicitly.
"""

import logging

from django.core.cache import cache

logger = logging.getLogger(__name__)


def tree_cache_key(space_name: str, scope_id: str) -> str:
    """Cache key of one folder tree."""
    return f'materials:tree:{space_name}:{scope_id}'


def invalidate_tree(space_name: str, scope_id: str) -> None:
    """Drop the cached tree of one lab or experiment.

    Args:
        space_name: FileSpace name.
        scope_id: Lab or experiment id.
    """
    logger.debug('Invalidating tree cache: %s/%s', space_name, scope_id)
    cache.delete(tree_cache_key(space_name, scope_id))
