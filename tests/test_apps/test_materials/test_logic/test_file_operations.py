"""Tests for file operations business logic."""

import pytest
from django.core.exceptions import ValidationError
from django.core.files.base import ContentFile
from django.db.models import F
from django.test import override_settings

from server.apps.activity.models import ActivityEvent, ActivityType
from server.apps.materials.exceptions import (
    FolderNotFoundError,
    StaleRecordError,
)
from server.apps.materials.logic import file_operations
from server.apps.materials.logic.file_operations import (
    create_file,
    delete_file,
    download_file,
    get_public_url,
    migrate_tier,
    move_file,
    rename_file,
    upload_file,
)
from server.apps.materials.logic.folder_operations import list_tree
from server.apps.materials.models import FileRecord, StorageTier


@pytest.mark.django_db
def test_upload_file_success(space, lab_id, actor_id, data_file, bucket_keys):
    """Test successful file upload (S3 + DB)."""
    assert data_file.pk is not None
    assert data_file.lab_id == lab_id
    assert data_file.folder == 'root'
    assert data_file.file_type == 'csv'
    assert data_file.file_tag == 'DATASET'
    assert data_file.tier == StorageTier.PRIMARY
    assert data_file.storage_key == f'primary/{lab_id}/data.csv'
    assert data_file.file_size > 0
    assert len(data_file.checksum_sha256) == 64
    assert data_file.created_by == actor_id

    assert bucket_keys('lab-materials') == [data_file.storage_key]
    assert ActivityEvent.objects.filter(
        scope=lab_id,
        activity_type=ActivityType.FILE_UPLOADED,
    ).count() == 1


@pytest.mark.django_db
@override_settings(MATERIALS_TIER_THRESHOLD_BYTES=10)
def test_upload_large_file_goes_to_large_tier(
    space,
    lab_id,
    actor_id,
    mock_s3,
    bucket_keys,
):
    """Test files above the threshold land in the large bucket."""
    record = upload_file(
        space,
        lab_id,
        actor_id,
        'scan.tiff',
        ContentFile(b'x' * 11, name='scan.tiff'),
    )

    assert record.tier == StorageTier.LARGE
    assert record.storage_key.startswith(f'large/{lab_id}/')
    assert record.storage_key.endswith('.tiff')
    assert bucket_keys('lab-materials-large') == [record.storage_key]
    assert bucket_keys('lab-materials') == []


@pytest.mark.django_db
@override_settings(MATERIALS_TIER_THRESHOLD_BYTES=10)
def test_upload_at_threshold_stays_primary(space, lab_id, actor_id, mock_s3):
    """Test a file exactly at the threshold stays on the primary tier."""
    record = upload_file(
        space,
        lab_id,
        actor_id,
        'exact.bin',
        ContentFile(b'x' * 10, name='exact.bin'),
    )

    assert record.tier == StorageTier.PRIMARY


@pytest.mark.django_db
@pytest.mark.parametrize(('scope', 'actor'), [
    ('', 'user-00000001'),
    ('lab-00000001', ''),
    ('lab', 'user-00000001'),
])
def test_upload_file_invalid_ids(
    space,
    mock_s3,
    bucket_keys,
    csv_content,
    scope,
    actor,
):
    """Test uploads with missing or short ids touch nothing."""
    with pytest.raises(ValidationError):
        upload_file(space, scope, actor, 'data.csv', csv_content)

    assert FileRecord.objects.count() == 0
    assert bucket_keys('lab-materials') == []


@pytest.mark.django_db
def test_upload_file_reserved_name(space, lab_id, actor_id, mock_s3):
    """Test the placeholder name cannot be uploaded."""
    with pytest.raises(ValidationError, match='reserved'):
        upload_file(
            space,
            lab_id,
            actor_id,
            '.folder',
            ContentFile(b'x', name='.folder'),
        )


@pytest.mark.django_db
def test_upload_file_missing_folder(space, lab_id, actor_id, mock_s3, csv_content):
    """Test uploads into unknown folders are rejected."""
    with pytest.raises(FolderNotFoundError):
        upload_file(
            space,
            lab_id,
            actor_id,
            'data.csv',
            csv_content,
            folder='Nope',
        )


@pytest.mark.django_db
def test_upload_file_rolls_back_blob_on_db_failure(
    space,
    lab_id,
    actor_id,
    mock_s3,
    bucket_keys,
    csv_content,
    monkeypatch,
):
    """Test the uploaded blob is removed when the insert fails."""
    def failing_create(*args, **kwargs):
        raise RuntimeError('database down')

    monkeypatch.setattr(file_operations, 'create_record', failing_create)

    with pytest.raises(RuntimeError, match='database down'):
        upload_file(space, lab_id, actor_id, 'data.csv', csv_content)

    assert bucket_keys('lab-materials') == []


@pytest.mark.django_db
def test_create_file_from_text(space, lab_id, actor_id, mock_s3):
    """Test creating a file from editor content."""
    record = create_file(
        space,
        lab_id,
        actor_id,
        'analysis.py',
        'print("hello")\n',
    )

    assert record.file_tag == 'CODE'
    assert download_file(space, record) == b'print("hello")\n'
    assert ActivityEvent.objects.filter(
        activity_type=ActivityType.FILE_CREATED,
    ).exists()


@pytest.mark.django_db
def test_move_file_into_folder(
    space,
    lab_id,
    actor_id,
    data_file,
    results_folder,
):
    """Test a moved file is listed under the destination only."""
    old_key = data_file.storage_key

    move_file(space, data_file, actor_id, 'Results')

    tree = list_tree(space, lab_id)
    assert [entry.id for entry in tree.files_in('Results')] == [data_file.pk]
    assert tree.find(data_file.pk).folder == 'Results'
    assert tree.root == []

    data_file.refresh_from_db()
    assert data_file.folder == 'Results'
    # Metadata-only move: the blob key does not change
    assert data_file.storage_key == old_key
    assert data_file.version == 2


@pytest.mark.django_db
def test_move_file_keeps_source_folder(
    space,
    lab_id,
    actor_id,
    data_file,
    results_folder,
):
    """Test moving the last file out of a folder keeps the folder."""
    move_file(space, data_file, actor_id, 'Results')
    move_file(space, data_file, actor_id, 'root')

    tree = list_tree(space, lab_id)
    assert tree.folders['Results'] == []
    assert [entry.id for entry in tree.root] == [data_file.pk]


@pytest.mark.django_db
def test_move_file_to_missing_folder(space, actor_id, data_file):
    """Test moves into unknown folders are rejected."""
    with pytest.raises(FolderNotFoundError):
        move_file(space, data_file, actor_id, 'Nope')


@pytest.mark.django_db
@override_settings(MATERIALS_TIER_KEY_LAYOUTS={
    'primary': '{scope}/{folder}/{filename}',
    'large': '{scope}/{uuid}{ext}',
})
def test_move_file_copies_blob_when_key_embeds_folder(
    space,
    lab_id,
    actor_id,
    data_file,
    results_folder,
    bucket_keys,
):
    """Test folder-keyed tiers move the blob as well."""
    move_file(space, data_file, actor_id, 'Results')

    data_file.refresh_from_db()
    assert data_file.storage_key == f'primary/{lab_id}/Results/data.csv'
    assert bucket_keys('lab-materials') == [data_file.storage_key]


@pytest.mark.django_db
def test_rename_file_keeps_extension(
    space,
    lab_id,
    actor_id,
    data_file,
    bucket_keys,
):
    """Test data.csv renamed to 'report' becomes report.csv."""
    content = download_file(space, data_file)

    rename_file(space, data_file, actor_id, 'report')

    data_file.refresh_from_db()
    assert data_file.filename == 'report.csv'
    # Primary keys embed the filename, so the blob was re-keyed
    assert data_file.storage_key == f'primary/{lab_id}/report.csv'
    assert bucket_keys('lab-materials') == [data_file.storage_key]
    assert download_file(space, data_file) == content
    assert ActivityEvent.objects.filter(
        activity_type=ActivityType.FILE_RENAMED,
        activity_name='Renamed data.csv to report.csv',
    ).exists()


@pytest.mark.django_db
@override_settings(MATERIALS_TIER_THRESHOLD_BYTES=1)
def test_rename_file_on_large_tier_is_metadata_only(
    space,
    lab_id,
    actor_id,
    mock_s3,
    csv_content,
):
    """Test renaming a file whose key has no filename keeps the key."""
    record = upload_file(space, lab_id, actor_id, 'data.csv', csv_content)
    assert record.tier == StorageTier.LARGE
    old_key = record.storage_key

    rename_file(space, record, actor_id, 'report')

    record.refresh_from_db()
    assert record.filename == 'report.csv'
    assert record.storage_key == old_key


@pytest.mark.django_db
def test_rename_file_tolerates_old_key_delete_failure(
    space,
    lab_id,
    actor_id,
    data_file,
    bucket_keys,
    monkeypatch,
):
    """Test a failed delete of the old key leaves an orphan, not an error."""
    storage = space.storage(data_file.tier)

    def failing_remove(key):
        raise RuntimeError('storage down')

    monkeypatch.setattr(storage, 'remove', failing_remove)

    rename_file(space, data_file, actor_id, 'report')

    data_file.refresh_from_db()
    assert data_file.filename == 'report.csv'
    assert bucket_keys('lab-materials') == sorted([
        f'primary/{lab_id}/data.csv',
        f'primary/{lab_id}/report.csv',
    ])


@pytest.mark.django_db
@pytest.mark.parametrize('first_name, second_name', [
    ('alpha', 'beta'),
    ('beta', 'alpha'),
])
def test_concurrent_renames_end_with_one_candidate(
    space,
    actor_id,
    other_actor_id,
    data_file,
    bucket_keys,
    first_name,
    second_name,
):
    """Test two renames from the same version: one wins, one is stale."""
    first_copy = FileRecord.objects.get(pk=data_file.pk)
    second_copy = FileRecord.objects.get(pk=data_file.pk)

    rename_file(space, first_copy, actor_id, first_name)
    with pytest.raises(StaleRecordError):
        rename_file(space, second_copy, other_actor_id, second_name)

    data_file.refresh_from_db()
    assert data_file.filename in {'alpha.csv', 'beta.csv'}
    assert data_file.version == 2
    assert bucket_keys('lab-materials') == [data_file.storage_key]


@pytest.mark.django_db
def test_rename_losing_race_after_copy_removes_copy(
    space,
    lab_id,
    actor_id,
    data_file,
    bucket_keys,
    monkeypatch,
):
    """Test a rename that loses after copying compensates the copy."""
    storage = space.storage(data_file.tier)
    real_download = storage.download

    def download_then_concurrent_write(key):
        payload = real_download(key)
        # Another writer updates the record while the blob is copied
        FileRecord.objects.filter(pk=data_file.pk).update(
            version=F('version') + 1,
        )
        return payload

    monkeypatch.setattr(storage, 'download', download_then_concurrent_write)

    with pytest.raises(StaleRecordError):
        rename_file(space, data_file, actor_id, 'report')

    assert bucket_keys('lab-materials') == [f'primary/{lab_id}/data.csv']
    assert FileRecord.objects.get(pk=data_file.pk).filename == 'data.csv'


@pytest.mark.django_db
def test_delete_file_removes_blob_and_record(
    space,
    lab_id,
    actor_id,
    data_file,
    bucket_keys,
):
    """Test deleting a file removes blob and row."""
    file_id = data_file.pk

    delete_file(space, data_file, actor_id)

    assert not FileRecord.objects.filter(pk=file_id).exists()
    assert bucket_keys('lab-materials') == []
    assert ActivityEvent.objects.filter(
        activity_type=ActivityType.FILE_DELETED,
    ).count() == 1


@pytest.mark.django_db
def test_delete_last_file_keeps_folder(
    space,
    lab_id,
    actor_id,
    data_file,
    results_folder,
):
    """Test deleting a folder's last file leaves it listed as empty."""
    move_file(space, data_file, actor_id, 'Results')

    delete_file(space, data_file, actor_id)

    assert list_tree(space, lab_id).folders == {'Results': []}


@pytest.mark.django_db
def test_delete_file_storage_failure_keeps_record(
    space,
    actor_id,
    data_file,
    monkeypatch,
):
    """Test a failed blob delete leaves the metadata untouched."""
    storage = space.storage(data_file.tier)

    def failing_remove(key):
        raise RuntimeError('storage down')

    monkeypatch.setattr(storage, 'remove', failing_remove)

    with pytest.raises(RuntimeError, match='storage down'):
        delete_file(space, data_file, actor_id)

    assert FileRecord.objects.filter(pk=data_file.pk).exists()


@pytest.mark.django_db
def test_delete_file_stale(space, actor_id, data_file, bucket_keys):
    """Test deleting from an outdated copy does not touch the blob."""
    stale_copy = FileRecord.objects.get(pk=data_file.pk)
    FileRecord.objects.filter(pk=data_file.pk).update(version=5)

    with pytest.raises(StaleRecordError):
        delete_file(space, stale_copy, actor_id)

    assert bucket_keys('lab-materials') == [data_file.storage_key]


@pytest.mark.django_db
def test_placeholders_cannot_be_deleted(
    space,
    lab_id,
    actor_id,
    results_folder,
):
    """Test placeholder records are not user-visible files."""
    placeholder = FileRecord.objects.get(lab_id=lab_id, folder='Results')

    with pytest.raises(ValidationError, match='placeholder'):
        delete_file(space, placeholder, actor_id)


@pytest.mark.django_db
def test_get_public_url(space, data_file):
    """Test a URL is returned for stored files."""
    url = get_public_url(space, data_file)

    assert data_file.storage_key in url


@pytest.mark.django_db
def test_get_public_url_missing_blob(space, data_file):
    """Test no URL is returned when the blob is gone."""
    space.storage(data_file.tier).remove(data_file.storage_key)

    assert get_public_url(space, data_file) is None


@pytest.mark.django_db
def test_migrate_tier(space, lab_id, actor_id, data_file, bucket_keys):
    """Test migrating a file to the large tier moves its blob."""
    content = download_file(space, data_file)

    migrate_tier(space, data_file, actor_id, StorageTier.LARGE)

    data_file.refresh_from_db()
    assert data_file.tier == StorageTier.LARGE
    assert data_file.storage_key.startswith(f'large/{lab_id}/')
    assert bucket_keys('lab-materials') == []
    assert bucket_keys('lab-materials-large') == [data_file.storage_key]
    assert download_file(space, data_file) == content
    assert ActivityEvent.objects.filter(
        activity_type=ActivityType.FILE_TIER_MIGRATED,
    ).exists()


@pytest.mark.django_db
def test_migrate_tier_unknown(space, actor_id, data_file):
    """Test unknown tiers are rejected."""
    with pytest.raises(ValidationError, match='Unknown storage tier'):
        migrate_tier(space, data_file, actor_id, 'archive')
