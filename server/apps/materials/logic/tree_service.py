"""Cached folder trees with a single entry point for changes."""

import logging
from typing import final

from django.conf import settings
from django.core.cache import cache

from server.apps.materials.logic.commands import TreeCommand
from server.apps.materials.logic.folder_operations import FolderTree, list_tree
from server.apps.materials.logic.results import OperationResult
from server.apps.materials.logic.tree_cache import invalidate_tree, tree_cache_key
from server.apps.materials.spaces import FileSpace

logger = logging.getLogger(__name__)


@final
class FileTreeService:
    """Serve folder trees from cache and run commands against them.

    Cache contract:
    - ``get_tree`` returns the cached tree, building it from metadata
      on a miss.
    - ``dispatch`` writes the command's optimistic view into the cache
      before running it, so readers see the expected outcome.
    - After a run the cached tree is always dropped; the next read
      rebuilds it from metadata. On failure the command compensates
      its optimistic change first.
    - ORM saves and deletes drop the cache through model signals.
    """

    def __init__(self, timeout: int | None = None) -> None:
        """Initialize FileTreeService.

        Args:
            timeout: Cache timeout in seconds, from settings by default.
        """
        if timeout is None:
            timeout = settings.MATERIALS_TREE_CACHE_TIMEOUT
        self.timeout = timeout

    def get_tree(self, space: FileSpace, scope_id: str) -> FolderTree:
        """Get the folder tree of a lab or experiment.

        Args:
            space: File space to read.
            scope_id: Lab or experiment id.

        Returns:
            FolderTree, possibly from cache.
        """
        key = tree_cache_key(space.name, scope_id)
        tree = cache.get(key)
        if tree is None:
            logger.debug('Tree cache miss: %s', key)
            tree = list_tree(space, scope_id)
            cache.set(key, tree, self.timeout)
        return tree

    def dispatch(self, command: TreeCommand) -> OperationResult:
        """Run a command with optimistic update and compensation.

        Args:
            command: Operation to run.

        Returns:
            The command's result, or a FAILURE result carrying the
            compensated tree as ``value`` if the command raised.
        """
        space = command.space
        scope_id = command.scope_id
        tree = self.get_tree(space, scope_id)

        try:
            command.apply_optimistic(tree)
            cache.set(tree_cache_key(space.name, scope_id), tree, self.timeout)
            result = command.execute()
        except Exception as exc:
            logger.exception(
                '%s failed in %s/%s, compensating',
                type(command).__name__,
                space.name,
                scope_id,
            )
            command.compensate(tree)
            invalidate_tree(space.name, scope_id)
            failure = OperationResult.hard_failure(exc)
            failure.value = tree
            return failure

        invalidate_tree(space.name, scope_id)
        if not result.ok:
            logger.warning(
                '%s finished with status %s: %d failures',
                type(command).__name__,
                result.status,
                len(result.failures),
            )
        return result
