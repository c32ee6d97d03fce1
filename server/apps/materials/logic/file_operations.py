"""Business logic for file operations."""

import logging
from typing import BinaryIO

from django.core.exceptions import ValidationError
from django.core.files.base import ContentFile
from django.db import transaction

from server.apps.activity.logic import record_activity
from server.apps.activity.models import ActivityType
from server.apps.materials.exceptions import (
    FolderNotFoundError,
    StaleRecordError,
)
from server.apps.materials.infrastructure.metadata import (
    apply_base_name,
    calculate_checksum,
    derive_file_tag,
    get_file_extension,
    get_file_size,
    validate_identifiers,
    validate_name,
)
from server.apps.materials.infrastructure.tiers import (
    build_storage_key,
    key_embeds_filename,
    key_embeds_folder,
    select_tier,
)
from server.apps.materials.logic.record_operations import (
    check_current,
    create_record,
    ensure_placeholder,
    folder_exists,
    write_record,
)
from server.apps.materials.models import (
    PLACEHOLDER_FILENAME,
    ROOT_FOLDER,
    BaseFileRecord,
    StorageTier,
)
from server.apps.materials.spaces import FileSpace

logger = logging.getLogger(__name__)


def _check_visible(record: BaseFileRecord) -> None:
    if record.is_placeholder:
        raise ValidationError('Folder placeholders cannot be changed')


def _store_file(  # noqa: WPS211
    space: FileSpace,
    scope_id: str,
    actor_id: str,
    filename: str,
    file_obj: BinaryIO,
    folder: str,
    tag: str | None,
    activity_type: ActivityType,
) -> BaseFileRecord:
    """Upload a blob to its tier and insert its record.

    Transaction safety: Upload to storage first, then create the DB
    record. If the DB write fails, the uploaded blob is deleted again
    (rollback).
    """
    validate_identifiers(scope_id, actor_id)
    filename = validate_name(filename, 'File name')
    if filename == PLACEHOLDER_FILENAME:
        raise ValidationError(f'{PLACEHOLDER_FILENAME} is a reserved name')
    folder = folder or ROOT_FOLDER
    if not folder_exists(space, scope_id, folder):
        raise FolderNotFoundError(scope_id, folder)
    file_tag = derive_file_tag(filename, tag)

    # Calculate metadata
    logger.info('Calculating metadata for file: %s/%s', scope_id, filename)
    checksum = calculate_checksum(file_obj)
    file_size = get_file_size(file_obj)
    tier = select_tier(file_size)
    storage = space.storage(tier)

    # Step 1: Upload to storage first
    storage_key = storage.upload(
        build_storage_key(tier, scope_id, folder, filename),
        file_obj,
    )

    # Step 2: Create database record (in transaction)
    try:
        with transaction.atomic():
            record = create_record(
                space,
                scope_id,
                actor_id,
                filename=filename,
                file_type=get_file_extension(filename),
                file_size=file_size,
                folder=folder,
                storage_key=storage_key,
                tier=tier,
                checksum_sha256=checksum,
                file_tag=file_tag,
            )
    except Exception:
        # Rollback: Delete blob from storage since DB transaction failed
        logger.exception(
            'Database transaction failed, rolling back storage upload: %s',
            storage_key,
        )
        storage.rollback_upload(storage_key)
        raise

    logger.info(
        'File record created: %s (ID: %d, tier: %s)',
        storage_key,
        record.pk,
        tier,
    )
    record_activity(
        f'Added {filename} to {folder}',
        activity_type,
        actor_id,
        scope_id,
    )
    return record


def upload_file(  # noqa: WPS211
    space: FileSpace,
    scope_id: str,
    actor_id: str,
    filename: str,
    file_obj: BinaryIO,
    folder: str = ROOT_FOLDER,
    tag: str | None = None,
    activity_type: ActivityType = ActivityType.FILE_UPLOADED,
) -> BaseFileRecord:
    """Upload a file into a lab's or experiment's tree.

    The tier is chosen from the file size and stored on the record.

    Args:
        space: File space to upload into.
        scope_id: Lab or experiment id.
        actor_id: Id of the uploading user.
        filename: File name with extension.
        file_obj: File-like object to upload.
        folder: Target folder, ``root`` by default.
        tag: Explicit FileTag, derived from the extension when omitted.
        activity_type: Kind of the recorded activity event.

    Returns:
        Created record.

    Raises:
        ValidationError: If ids, name or tag are invalid.
        FolderNotFoundError: If the target folder does not exist.
        Exception: If upload or DB operation fails.
    """
    return _store_file(
        space,
        scope_id,
        actor_id,
        filename,
        file_obj,
        folder,
        tag,
        activity_type,
    )


def create_file(  # noqa: WPS211
    space: FileSpace,
    scope_id: str,
    actor_id: str,
    filename: str,
    content: str | bytes,
    folder: str = ROOT_FOLDER,
    tag: str | None = None,
) -> BaseFileRecord:
    """Create a file from editor content (document, code or table).

    Args:
        space: File space to create the file in.
        scope_id: Lab or experiment id.
        actor_id: Id of the user creating the file.
        filename: File name with extension.
        content: Serialized editor content.
        folder: Target folder, ``root`` by default.
        tag: Explicit FileTag, derived from the extension when omitted.

    Returns:
        Created record.
    """
    if isinstance(content, str):
        content = content.encode('utf-8')
    return _store_file(
        space,
        scope_id,
        actor_id,
        filename,
        ContentFile(content, name=filename),
        folder,
        tag,
        ActivityType.FILE_CREATED,
    )


def move_file(
    space: FileSpace,
    record: BaseFileRecord,
    actor_id: str,
    dest_folder: str,
) -> BaseFileRecord:
    """Move a file to another folder.

    The object key does not depend on the folder on default layouts,
    so a move is a single conditional metadata write. Only tiers whose
    key layout embeds the folder copy the blob, update the record and
    then delete the old blob.

    A source folder left without records keeps a placeholder so it
    does not disappear from the tree.

    Args:
        space: File space of the record.
        record: File to move, as loaded by the caller.
        actor_id: Id of the user moving the file.
        dest_folder: Target folder (``root`` for top level).

    Returns:
        Updated record.

    Raises:
        ValidationError: If ids are invalid or the record is a placeholder.
        FolderNotFoundError: If the destination does not exist.
        StaleRecordError: If the record changed since it was loaded.
    """
    validate_identifiers(record.scope_id, actor_id)
    _check_visible(record)
    dest_folder = dest_folder or ROOT_FOLDER
    source_folder = record.folder
    if dest_folder == source_folder:
        return record
    if not folder_exists(space, record.scope_id, dest_folder):
        raise FolderNotFoundError(record.scope_id, dest_folder)

    logger.info(
        'Moving file %d from %s to %s',
        record.pk,
        source_folder,
        dest_folder,
    )

    if record.storage_key and key_embeds_folder(record.tier):
        _copy_then_write(
            space,
            record,
            actor_id,
            build_storage_key(
                record.tier,
                record.scope_id,
                dest_folder,
                record.filename,
            ),
            folder=dest_folder,
        )
    else:
        write_record(space, record, actor_id, folder=dest_folder)

    ensure_placeholder(space, record.scope_id, source_folder, actor_id)
    record_activity(
        f'Moved {record.filename} to {dest_folder}',
        ActivityType.FILE_MOVED,
        actor_id,
        record.scope_id,
    )
    return record


def _copy_then_write(
    space: FileSpace,
    record: BaseFileRecord,
    actor_id: str,
    requested_key: str,
    **changes: str,
) -> None:
    """Server-side copy, conditional metadata write, old blob delete."""
    check_current(space, record)
    storage = space.storage(record.tier)
    old_key = record.storage_key

    # Step 1: Copy blob in storage
    new_key = storage.copy_object(old_key, requested_key)

    # Step 2: Update database record
    try:
        write_record(space, record, actor_id, storage_key=new_key, **changes)
    except Exception:
        # Rollback: Delete the new copy
        logger.exception('Database update failed, rolling back copy')
        storage.rollback_upload(new_key)
        raise

    # Step 3: Delete old blob from storage (best effort)
    _remove_old_blob(space, record.tier, old_key)


def _remove_old_blob(space: FileSpace, tier: str, old_key: str) -> None:
    try:
        space.storage(tier).remove(old_key)
    except Exception:
        # Metadata already points at the new blob; the old one is orphaned
        logger.exception('Failed to delete old object (orphaned): %s', old_key)


def rename_file(
    space: FileSpace,
    record: BaseFileRecord,
    actor_id: str,
    new_base_name: str,
) -> BaseFileRecord:
    """Rename a file, keeping its extension.

    On tiers whose key does not embed the filename only the metadata
    changes. Otherwise there is no native rename: the blob is
    downloaded, uploaded under the new key, the record is updated and
    the old key is deleted. A failed delete of the old key leaves an
    orphan and the rename still succeeds.

    Args:
        space: File space of the record.
        record: File to rename, as loaded by the caller.
        actor_id: Id of the user renaming the file.
        new_base_name: New name; the original extension is kept.

    Returns:
        Updated record.

    Raises:
        ValidationError: If ids or the new name are invalid.
        StaleRecordError: If the record changed since it was loaded; the
            new blob copy is removed again.
    """
    validate_identifiers(record.scope_id, actor_id)
    _check_visible(record)
    new_filename = apply_base_name(record.filename, new_base_name)
    if new_filename == PLACEHOLDER_FILENAME:
        raise ValidationError(f'{PLACEHOLDER_FILENAME} is a reserved name')
    old_filename = record.filename
    if new_filename == old_filename:
        return record

    logger.info('Renaming file %d: %s -> %s', record.pk, old_filename, new_filename)

    if record.storage_key and key_embeds_filename(record.tier):
        check_current(space, record)
        storage = space.storage(record.tier)
        old_key = record.storage_key

        # Step 1: Download, Step 2: upload under the new key
        payload = storage.download(old_key)
        new_key = storage.upload(
            build_storage_key(
                record.tier,
                record.scope_id,
                record.folder,
                new_filename,
            ),
            ContentFile(payload, name=new_filename),
        )

        # Step 3: Update database record
        try:
            write_record(
                space,
                record,
                actor_id,
                filename=new_filename,
                storage_key=new_key,
            )
        except StaleRecordError:
            logger.warning('Rename lost a race, removing copy: %s', new_key)
            storage.rollback_upload(new_key)
            raise
        except Exception:
            logger.exception('Database update failed, rolling back upload')
            storage.rollback_upload(new_key)
            raise

        # Step 4: Delete old key (fail-open)
        _remove_old_blob(space, record.tier, old_key)
    else:
        write_record(space, record, actor_id, filename=new_filename)

    record_activity(
        f'Renamed {old_filename} to {new_filename}',
        ActivityType.FILE_RENAMED,
        actor_id,
        record.scope_id,
    )
    return record


def delete_file(
    space: FileSpace,
    record: BaseFileRecord,
    actor_id: str,
) -> None:
    """Delete a file from storage and metadata.

    Ordering: the blob is removed first, then the metadata row. A crash
    between the two leaves a row pointing at a missing blob, which the
    reconciliation sweep detects; the opposite order could leave a blob
    that no row mentions.

    Args:
        space: File space of the record.
        record: File to delete, as loaded by the caller.
        actor_id: Id of the user deleting the file.

    Raises:
        ValidationError: If ids are invalid or the record is a placeholder.
        StaleRecordError: If the record changed since it was loaded.
        Exception: If storage deletion fails (nothing is changed then).
    """
    validate_identifiers(record.scope_id, actor_id)
    _check_visible(record)
    check_current(space, record)
    file_id = record.pk
    logger.info(
        'Deleting file: ID=%d, key=%s',
        file_id,
        record.storage_key,
    )

    # Step 1: Remove blob
    if record.storage_key:
        space.storage(record.tier).remove(record.storage_key)

    # Step 2: Remove metadata row
    deleted, _ = space.record_model.objects.filter(
        pk=file_id,
        version=record.version,
    ).delete()
    if deleted == 0:
        raise StaleRecordError(
            space.record_model.__name__,
            file_id,
            record.version,
        )
    logger.info('File record deleted from database: ID=%d', file_id)

    ensure_placeholder(space, record.scope_id, record.folder, actor_id)
    record_activity(
        f'Deleted {record.filename}',
        ActivityType.FILE_DELETED,
        actor_id,
        record.scope_id,
    )


def download_file(space: FileSpace, record: BaseFileRecord) -> bytes:
    """Read a file's bytes for viewing or editing.

    Args:
        space: File space of the record.
        record: File to read.

    Returns:
        File content.
    """
    _check_visible(record)
    return space.storage(record.tier).download(record.storage_key)


def get_public_url(space: FileSpace, record: BaseFileRecord) -> str | None:
    """Get a download URL for a file.

    Returns:
        URL, or None if the record has no blob.
    """
    if record.is_placeholder or not record.storage_key:
        return None
    return space.storage(record.tier).public_url(record.storage_key)


def migrate_tier(
    space: FileSpace,
    record: BaseFileRecord,
    actor_id: str,
    target_tier: str,
) -> BaseFileRecord:
    """Move a file's blob to another tier.

    This is the only operation that changes a record's tier. The blob
    is copied to the target tier, the record switched over, and the
    source blob deleted best-effort.

    Args:
        space: File space of the record.
        record: File to migrate.
        actor_id: Id of the user requesting the migration.
        target_tier: StorageTier value to move to.

    Returns:
        Updated record.

    Raises:
        ValidationError: If ids or the tier are invalid.
        StaleRecordError: If the record changed since it was loaded.
    """
    validate_identifiers(record.scope_id, actor_id)
    _check_visible(record)
    if target_tier not in StorageTier.values:
        raise ValidationError(f'Unknown storage tier: {target_tier}')
    target = StorageTier(target_tier)
    source_tier = record.tier
    if target == source_tier:
        return record

    check_current(space, record)
    old_key = record.storage_key
    source_storage = space.storage(source_tier)
    target_storage = space.storage(target)

    logger.info('Migrating file %d: %s -> %s', record.pk, source_tier, target)
    payload = source_storage.download(old_key)
    new_key = target_storage.upload(
        build_storage_key(
            target,
            record.scope_id,
            record.folder,
            record.filename,
        ),
        ContentFile(payload, name=record.filename),
    )
    try:
        write_record(
            space,
            record,
            actor_id,
            tier=target,
            storage_key=new_key,
        )
    except Exception:
        logger.exception('Database update failed, rolling back migration')
        target_storage.rollback_upload(new_key)
        raise

    _remove_old_blob(space, source_tier, old_key)
    record_activity(
        f'Moved {record.filename} from {source_tier} to {target} storage',
        ActivityType.FILE_TIER_MIGRATED,
        actor_id,
        record.scope_id,
    )
    return record
