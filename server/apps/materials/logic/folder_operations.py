"""Business logic for folders.

Object storage has no directories. A folder exists because records
carry its name in their ``folder`` column; an empty folder is kept
alive by a hidden ``.folder`` placeholder record. Folder entities give
each folder an id and version on top of that.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Final, final

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F

from server.apps.activity.logic import record_activity
from server.apps.activity.models import ActivityType
from server.apps.materials.exceptions import (
    FolderNotFoundError,
    StaleRecordError,
)
from server.apps.materials.infrastructure.metadata import (
    NAME_MAX_LENGTH,
    validate_identifier,
    validate_identifiers,
    validate_name,
)
from server.apps.materials.infrastructure.tiers import (
    build_storage_key,
    key_embeds_folder,
)
from server.apps.materials.logic.record_operations import (
    check_current,
    create_record,
    folder_exists,
    write_record,
)
from server.apps.materials.logic.results import OperationResult
from server.apps.materials.logic.tree_cache import invalidate_tree
from server.apps.materials.models import (
    PLACEHOLDER_FILENAME,
    ROOT_FOLDER,
    BaseFileRecord,
    BaseFolder,
)
from server.apps.materials.spaces import FileSpace

logger = logging.getLogger(__name__)

_MAX_NAME_ATTEMPTS: Final = 1000


@final
@dataclass(frozen=True)
class FileEntry:
    """Read-only view of a visible file in a folder tree."""

    id: int
    filename: str
    file_type: str
    file_size: int
    folder: str
    file_tag: str
    tier: str
    last_updated_by: str
    last_updated: datetime
    version: int

    @classmethod
    def from_record(cls, record: BaseFileRecord) -> 'FileEntry':
        """Build an entry from a file record."""
        return cls(
            id=record.pk,
            filename=record.filename,
            file_type=record.file_type,
            file_size=record.file_size,
            folder=record.folder,
            file_tag=record.file_tag,
            tier=record.tier,
            last_updated_by=record.last_updated_by,
            last_updated=record.last_updated,
            version=record.version,
        )


@final
@dataclass
class FolderTree:
    """Files of one lab or experiment grouped by folder.

    ``root`` holds top-level files; ``folders`` maps every folder name
    to its visible files, so an empty folder maps to an empty list.
    """

    root: list[FileEntry] = field(default_factory=list)
    folders: dict[str, list[FileEntry]] = field(default_factory=dict)

    def files_in(self, folder: str) -> list[FileEntry]:
        """Visible files of a folder (``root`` for top level)."""
        if folder == ROOT_FOLDER:
            return self.root
        return self.folders.get(folder, [])

    def find(self, file_id: int) -> FileEntry | None:
        """Find a file anywhere in the tree."""
        for files in (self.root, *self.folders.values()):
            for entry in files:
                if entry.id == file_id:
                    return entry
        return None

    def remove_entry(self, file_id: int) -> FileEntry | None:
        """Remove a file from the tree and return it."""
        entry = self.find(file_id)
        if entry is None:
            return None
        files = self.files_in(entry.folder)
        files[:] = [other for other in files if other.id != file_id]
        return entry

    def put_entry(self, entry: FileEntry) -> None:
        """Insert a file under its ``folder``."""
        if entry.folder == ROOT_FOLDER:
            self.root.append(entry)
        else:
            self.folders.setdefault(entry.folder, []).append(entry)

    def move_entry(self, file_id: int, folder: str) -> FileEntry | None:
        """Move a file to another folder, returning its previous entry."""
        entry = self.remove_entry(file_id)
        if entry is not None:
            self.put_entry(replace(entry, folder=folder))
        return entry

    def rename_entry(self, file_id: int, filename: str) -> FileEntry | None:
        """Rename a file in place, returning its previous entry."""
        entry = self.find(file_id)
        if entry is None:
            return None
        files = self.files_in(entry.folder)
        files[:] = [
            replace(other, filename=filename) if other.id == file_id else other
            for other in files
        ]
        return entry


def list_tree(space: FileSpace, scope_id: str) -> FolderTree:
    """Build the folder tree of a lab or experiment from metadata.

    Args:
        space: File space to read.
        scope_id: Lab or experiment id.

    Returns:
        FolderTree with placeholders hidden and folders sorted by name.
    """
    validate_identifier(scope_id, 'Scope id')

    folders: dict[str, list[FileEntry]] = {
        name: []
        for name in space.folders(scope_id).values_list('name', flat=True)
    }
    tree = FolderTree()

    for record in space.records(scope_id).order_by('folder', 'filename'):
        if record.folder == ROOT_FOLDER:
            if not record.is_placeholder:
                tree.root.append(FileEntry.from_record(record))
            continue

        files = folders.setdefault(record.folder, [])
        if not record.is_placeholder:
            files.append(FileEntry.from_record(record))

    tree.folders = dict(sorted(folders.items()))
    logger.debug(
        'Listed tree %s/%s: %d root files, %d folders',
        space.name,
        scope_id,
        len(tree.root),
        len(tree.folders),
    )
    return tree


def list_folder_names(space: FileSpace, scope_id: str) -> list[str]:
    """Names of every folder of a lab or experiment, sorted."""
    entity_names = set(
        space.folders(scope_id).values_list('name', flat=True),
    )
    record_names = set(
        space.records(scope_id).exclude(
            folder=ROOT_FOLDER,
        ).values_list('folder', flat=True),
    )
    return sorted(entity_names | record_names)


def _available_folder_name(space: FileSpace, scope_id: str, name: str) -> str:
    """Pick a folder name that is not taken.

    'DATA' becomes 'DATA (1)', then 'DATA (2)' and so on. The root
    sentinel is always taken. A long name is cut short so the suffix
    still fits the column.
    """
    taken = set(list_folder_names(space, scope_id))
    taken.add(ROOT_FOLDER)
    if name not in taken:
        return name

    for attempt in range(1, _MAX_NAME_ATTEMPTS):
        suffix = f' ({attempt})'
        candidate = name[:NAME_MAX_LENGTH - len(suffix)].rstrip() + suffix
        if candidate not in taken:
            logger.info(
                'Folder name conflict, renamed to: %s',
                candidate,
            )
            return candidate
    raise ValidationError(f'No free folder name for {name!r}')


def _get_or_create_entity(
    space: FileSpace,
    scope_id: str,
    name: str,
    actor_id: str,
) -> BaseFolder:
    """Folder entity for a folder that may only exist through records."""
    folder, created = space.folder_model.objects.get_or_create(
        name=name,
        defaults={'created_by': actor_id},
        **{space.scope_field: scope_id},
    )
    if created:
        logger.info('Created missing folder entity: %s/%s', scope_id, name)
    return folder


def create_folder(
    space: FileSpace,
    scope_id: str,
    actor_id: str,
    name: str,
) -> BaseFolder:
    """Create an empty folder.

    A taken name gets a ' (n)' suffix. The folder entity and its
    placeholder record are inserted together.

    Args:
        space: File space to create the folder in.
        scope_id: Lab or experiment id.
        actor_id: Id of the user creating the folder.
        name: Requested folder name.

    Returns:
        Created folder entity (its ``name`` is the final name).

    Raises:
        ValidationError: If ids or the name are invalid.
    """
    validate_identifiers(scope_id, actor_id)
    name = validate_name(name, 'Folder name')

    with transaction.atomic():
        final_name = _available_folder_name(space, scope_id, name)
        folder = space.folder_model.objects.create(
            name=final_name,
            created_by=actor_id,
            **{space.scope_field: scope_id},
        )
        create_record(
            space,
            scope_id,
            actor_id,
            filename=PLACEHOLDER_FILENAME,
            folder=final_name,
            storage_key=None,
            file_size=0,
        )

    logger.info('Folder created: %s/%s', scope_id, final_name)
    record_activity(
        f'Created folder {final_name}',
        ActivityType.FOLDER_CREATED,
        actor_id,
        scope_id,
    )
    return folder


def _check_folder(space: FileSpace, scope_id: str, name: str) -> None:
    if name == ROOT_FOLDER:
        raise ValidationError('The root folder cannot be changed')
    if not folder_exists(space, scope_id, name):
        raise FolderNotFoundError(scope_id, name)


def _relocate_blob(
    space: FileSpace,
    record: BaseFileRecord,
    actor_id: str,
    new_folder: str,
) -> None:
    """Move one member whose object key embeds its folder.

    Copy the blob, point the record at the copy, then drop the old
    blob. A failed metadata write removes the copy again.
    """
    check_current(space, record)
    storage = space.storage(record.tier)
    old_key = record.storage_key
    new_key = storage.copy_object(
        old_key,
        build_storage_key(
            record.tier,
            record.scope_id,
            new_folder,
            record.filename,
        ),
    )
    try:
        write_record(
            space,
            record,
            actor_id,
            folder=new_folder,
            storage_key=new_key,
        )
    except Exception:
        storage.rollback_upload(new_key)
        raise

    try:
        storage.remove(old_key)
    except Exception:
        logger.warning('Old object orphaned after folder rename: %s', old_key)


def rename_folder(
    space: FileSpace,
    scope_id: str,
    actor_id: str,
    old_name: str,
    new_name: str,
) -> OperationResult:
    """Rename a folder and every record in it.

    Records whose keys do not embed the folder are rewritten in one
    transaction together with the folder entity. Records on tiers whose
    key layout embeds the folder have their blobs moved one at a time
    afterwards; a failed blob move leaves that record in the old folder
    and is reported in the result. The rename is therefore not atomic
    across storage. Each record write is conditional on the version listed,
    so a file moved out of the folder meanwhile stays where it went.

    Args:
        space: File space of the folder.
        scope_id: Lab or experiment id.
        actor_id: Id of the user renaming the folder.
        old_name: Current folder name.
        new_name: Requested folder name (made unique if taken).

    Returns:
        OperationResult with the final name as ``value`` and renamed
        filenames in ``succeeded``.

    Raises:
        ValidationError: If ids or names are invalid.
        FolderNotFoundError: If the folder does not exist.
        StaleRecordError: If the folder entity changed concurrently.
    """
    validate_identifiers(scope_id, actor_id)
    new_name = validate_name(new_name, 'Folder name')
    _check_folder(space, scope_id, old_name)

    if new_name == old_name:
        return OperationResult(value=old_name)

    with transaction.atomic():
        members = list(
            space.records(scope_id).filter(folder=old_name).order_by('pk'),
        )
        target_name = _available_folder_name(space, scope_id, new_name)
        folder = _get_or_create_entity(space, scope_id, old_name, actor_id)
        updated = space.folder_model.objects.filter(
            pk=folder.pk,
            version=folder.version,
        ).update(name=target_name, version=F('version') + 1)
        if updated == 0:
            raise StaleRecordError(
                space.folder_model.__name__,
                folder.pk,
                folder.version,
            )

        blob_members = []
        renamed = []
        for record in members:
            if record.storage_key and key_embeds_folder(record.tier):
                blob_members.append(record)
                continue
            try:
                write_record(space, record, actor_id, folder=target_name)
            except StaleRecordError:
                # Moved or changed since it was listed; leave it alone
                logger.info(
                    'Skipping %s, changed during folder rename',
                    record.filename,
                )
                continue
            if not record.is_placeholder:
                renamed.append(record.filename)
    invalidate_tree(space.name, scope_id)

    result = OperationResult(value=target_name)
    result.succeeded.extend(renamed)

    for record in blob_members:
        try:
            _relocate_blob(space, record, actor_id, target_name)
        except Exception as exc:
            logger.exception(
                'Failed to move %s into renamed folder %s',
                record.storage_key,
                target_name,
            )
            result.add_failure(record.filename, exc)
        else:
            result.succeeded.append(record.filename)

    logger.info(
        'Folder renamed: %s/%s -> %s (%d moved, %d failed)',
        scope_id,
        old_name,
        target_name,
        len(result.succeeded),
        len(result.failures),
    )
    record_activity(
        f'Renamed folder {old_name} to {target_name}',
        ActivityType.FOLDER_RENAMED,
        actor_id,
        scope_id,
    )
    return result


def delete_folder(
    space: FileSpace,
    scope_id: str,
    actor_id: str,
    name: str,
) -> OperationResult:
    """Delete a folder with all of its files.

    Blobs are deleted first, one by one and best-effort. A file moved
    out of the folder after it was listed is skipped. Metadata rows
    are then deleted regardless, so a failed blob delete leaves an
    orphaned object; it is reported in the result and picked up by the
    reconciliation sweep.

    Args:
        space: File space of the folder.
        scope_id: Lab or experiment id.
        actor_id: Id of the user deleting the folder.
        name: Folder name.

    Returns:
        OperationResult with deleted filenames in ``succeeded`` and
        orphaned keys in ``failures``.

    Raises:
        ValidationError: If ids are invalid or the folder is root.
        FolderNotFoundError: If the folder does not exist.
    """
    validate_identifiers(scope_id, actor_id)
    _check_folder(space, scope_id, name)

    members = list(space.records(scope_id).filter(folder=name).order_by('pk'))
    result = OperationResult(value=name)

    removed = []
    for record in members:
        try:
            check_current(space, record, folder=name)
        except StaleRecordError:
            # Moved or changed since it was listed; it is not ours to delete
            logger.info(
                'Skipping %s, changed during folder delete',
                record.filename,
            )
            continue
        removed.append(record)
        if not record.storage_key:
            continue
        try:
            space.storage(record.tier).remove(record.storage_key)
        except Exception as exc:
            logger.exception(
                'Failed to delete object, orphaned: %s',
                record.storage_key,
            )
            result.add_failure(record.storage_key, exc)
        else:
            result.succeeded.append(record.filename)

    with transaction.atomic():
        space.record_model.objects.filter(
            pk__in=[record.pk for record in removed],
            folder=name,
        ).delete()
        space.folders(scope_id).filter(name=name).delete()
    invalidate_tree(space.name, scope_id)

    logger.info(
        'Folder deleted: %s/%s (%d records, %d orphaned objects)',
        scope_id,
        name,
        len(removed),
        len(result.failures),
    )
    record_activity(
        f'Deleted folder {name}',
        ActivityType.FOLDER_DELETED,
        actor_id,
        scope_id,
    )
    return result
