"""Low-level record helpers shared by file and folder operations."""

import logging
from typing import Any

from django.db.models import F
from django.utils import timezone

from server.apps.materials.exceptions import StaleRecordError
from server.apps.materials.logic.tree_cache import invalidate_tree
from server.apps.materials.models import (
    PLACEHOLDER_FILENAME,
    ROOT_FOLDER,
    BaseFileRecord,
)
from server.apps.materials.spaces import FileSpace

logger = logging.getLogger(__name__)


def check_current(
    space: FileSpace,
    record: BaseFileRecord,
    **expected: Any,
) -> None:
    """Fail early if a record moved past the version the caller loaded.

    Args:
        space: File space of the record.
        record: Record as loaded by the caller.
        expected: Extra column values the row must still have.

    Raises:
        StaleRecordError: If the row's version moved on or it is gone.
    """
    current = space.record_model.objects.filter(
        pk=record.pk,
        version=record.version,
        **expected,
    )
    if not current.exists():
        raise StaleRecordError(
            space.record_model.__name__,
            record.pk,
            record.version,
        )


def write_record(
    space: FileSpace,
    record: BaseFileRecord,
    actor_id: str,
    **changes: Any,
) -> BaseFileRecord:
    """Apply changes to a record if nobody changed it meanwhile.

    The update is conditional on the version the caller loaded. On
    success the in-memory instance is updated to match the row.

    Args:
        space: File space of the record.
        record: Record as loaded by the caller.
        actor_id: Id of the user making the change.
        changes: Field values to write.

    Returns:
        The updated record.

    Raises:
        StaleRecordError: If the row's version moved on.
    """
    now = timezone.now()
    updated = space.record_model.objects.filter(
        pk=record.pk,
        version=record.version,
    ).update(
        last_updated_by=actor_id,
        last_updated=now,
        version=F('version') + 1,
        **changes,
    )
    if updated == 0:
        logger.warning(
            'Stale write rejected: %s %s at version %d',
            space.record_model.__name__,
            record.pk,
            record.version,
        )
        raise StaleRecordError(
            space.record_model.__name__,
            record.pk,
            record.version,
        )

    for field_name, field_value in changes.items():
        setattr(record, field_name, field_value)
    record.last_updated_by = actor_id
    record.last_updated = now
    record.version += 1
    invalidate_tree(space.name, record.scope_id)
    return record


def create_record(
    space: FileSpace,
    scope_id: str,
    actor_id: str,
    **fields: Any,
) -> BaseFileRecord:
    """Insert a record scoped to a lab or experiment."""
    return space.record_model.objects.create(
        created_by=actor_id,
        last_updated_by=actor_id,
        **{space.scope_field: scope_id},
        **fields,
    )


def folder_exists(space: FileSpace, scope_id: str, name: str) -> bool:
    """Check if a folder exists.

    The root always exists. Other folders exist if they have a folder
    entity or any record (placeholder included) carries their name.

    Args:
        space: File space to look in.
        scope_id: Lab or experiment id.
        name: Folder name.

    Returns:
        True if the folder exists.
    """
    if name == ROOT_FOLDER:
        return True
    if space.folders(scope_id).filter(name=name).exists():
        return True
    return space.records(scope_id).filter(folder=name).exists()


def ensure_placeholder(
    space: FileSpace,
    scope_id: str,
    folder: str,
    actor_id: str,
) -> None:
    """Keep an emptied folder alive with a placeholder record.

    Args:
        space: File space of the folder.
        scope_id: Lab or experiment id.
        folder: Folder that may have lost its last record.
        actor_id: Id of the user whose operation emptied it.
    """
    # Only non-root folders need markers
    if folder == ROOT_FOLDER:
        return
    if space.records(scope_id).filter(folder=folder).exists():
        return

    logger.debug('Creating folder placeholder: %s/%s', scope_id, folder)
    create_record(
        space,
        scope_id,
        actor_id,
        filename=PLACEHOLDER_FILENAME,
        folder=folder,
        storage_key=None,
        file_size=0,
    )
