"""Tests for the cached file tree service and its commands."""

import pytest
from django.core.cache import cache

from server.apps.materials.logic.commands import (
    CreateFolderCommand,
    DeleteFileCommand,
    DeleteFolderCommand,
    MoveFileCommand,
    RenameFileCommand,
    RenameFolderCommand,
)
from server.apps.materials.logic.file_operations import move_file
from server.apps.materials.logic.folder_operations import FolderTree
from server.apps.materials.logic.results import ResultStatus
from server.apps.materials.logic.tree_cache import tree_cache_key
from server.apps.materials.logic.tree_service import FileTreeService
from server.apps.materials.models import FileRecord


@pytest.fixture
def service():
    """File tree service with the default timeout."""
    return FileTreeService()


@pytest.mark.django_db
def test_get_tree_is_cached(service, space, lab_id, results_folder):
    """Test the tree is served from cache after the first read."""
    tree = service.get_tree(space, lab_id)

    assert tree.folders == {'Results': []}
    assert cache.get(tree_cache_key(space.name, lab_id)) is not None


@pytest.mark.django_db
def test_orm_writes_invalidate_cache(
    service,
    space,
    lab_id,
    actor_id,
    results_folder,
):
    """Test saving a record through the ORM drops the cached tree."""
    service.get_tree(space, lab_id)

    FileRecord.objects.create(
        lab_id=lab_id,
        filename='.folder',
        folder='Other',
        created_by=actor_id,
        last_updated_by=actor_id,
    )

    assert cache.get(tree_cache_key(space.name, lab_id)) is None
    assert 'Other' in service.get_tree(space, lab_id).folders


@pytest.mark.django_db
def test_dispatch_move(service, space, lab_id, actor_id, data_file, results_folder):
    """Test a dispatched move is visible in the next tree."""
    result = service.dispatch(MoveFileCommand(
        space=space,
        record=data_file,
        actor_id=actor_id,
        dest_folder='Results',
    ))

    assert result.ok
    tree = service.get_tree(space, lab_id)
    assert [entry.id for entry in tree.files_in('Results')] == [data_file.pk]
    assert tree.root == []


@pytest.mark.django_db
def test_move_to_blank_folder_means_root(
    service,
    space,
    lab_id,
    actor_id,
    data_file,
    results_folder,
):
    """Test a blank destination lands the file at top level."""
    moved = move_file(space, data_file, actor_id, 'Results')
    command = MoveFileCommand(
        space=space,
        record=moved,
        actor_id=actor_id,
        dest_folder='',
    )

    tree = service.get_tree(space, lab_id)
    command.apply_optimistic(tree)
    assert [entry.id for entry in tree.root] == [data_file.pk]
    assert tree.folders == {'Results': []}

    result = service.dispatch(command)

    assert result.ok
    tree = service.get_tree(space, lab_id)
    assert [entry.id for entry in tree.root] == [data_file.pk]
    assert '' not in tree.folders


@pytest.mark.django_db
def test_dispatch_rename_file(service, space, lab_id, actor_id, data_file):
    """Test a dispatched rename keeps the extension."""
    result = service.dispatch(RenameFileCommand(
        space=space,
        record=data_file,
        actor_id=actor_id,
        new_base_name='report',
    ))

    assert result.value.filename == 'report.csv'
    assert [
        entry.filename for entry in service.get_tree(space, lab_id).root
    ] == ['report.csv']


@pytest.mark.django_db
def test_dispatch_failure_compensates(
    service,
    space,
    lab_id,
    actor_id,
    data_file,
):
    """Test a failed command undoes its optimistic change."""
    stale_copy = FileRecord.objects.get(pk=data_file.pk)
    FileRecord.objects.filter(pk=data_file.pk).update(version=7)
    service.get_tree(space, lab_id)

    result = service.dispatch(DeleteFileCommand(
        space=space,
        record=stale_copy,
        actor_id=actor_id,
    ))

    assert result.status == ResultStatus.FAILURE
    assert 'changed since version 1' in result.error
    # The returned tree has the file back after compensation
    assert isinstance(result.value, FolderTree)
    assert result.value.find(data_file.pk) is not None
    # Cache was dropped so the next read refetches
    assert cache.get(tree_cache_key(space.name, lab_id)) is None
    assert service.get_tree(space, lab_id).find(data_file.pk) is not None


@pytest.mark.django_db
def test_dispatch_validation_failure(service, space, lab_id, actor_id, data_file):
    """Test invalid input becomes a failure result, not an exception."""
    result = service.dispatch(RenameFileCommand(
        space=space,
        record=data_file,
        actor_id=actor_id,
        new_base_name='a/b',
    ))

    assert result.status == ResultStatus.FAILURE
    data_file.refresh_from_db()
    assert data_file.filename == 'data.csv'


@pytest.mark.django_db
def test_dispatch_folder_commands(service, space, lab_id, actor_id, mock_s3):
    """Test create, rename and delete folder through the service."""
    created = service.dispatch(CreateFolderCommand(
        space=space,
        scope_id=lab_id,
        actor_id=actor_id,
        name='Results',
    ))
    assert created.value == 'Results'
    assert service.get_tree(space, lab_id).folders == {'Results': []}

    renamed = service.dispatch(RenameFolderCommand(
        space=space,
        scope_id=lab_id,
        actor_id=actor_id,
        name='Results',
        new_name='Final',
    ))
    assert renamed.ok
    assert service.get_tree(space, lab_id).folders == {'Final': []}

    deleted = service.dispatch(DeleteFolderCommand(
        space=space,
        scope_id=lab_id,
        actor_id=actor_id,
        name='Final',
    ))
    assert deleted.ok
    assert service.get_tree(space, lab_id).folders == {}


def test_folder_command_compensation():
    """Test folder commands restore the tree they changed."""
    tree = FolderTree(folders={'Results': []})
    command = RenameFolderCommand(
        space=None,
        scope_id='lab-00000001',
        actor_id='user-00000001',
        name='Results',
        new_name='Final',
    )

    command.apply_optimistic(tree)
    assert list(tree.folders) == ['Final']

    command.compensate(tree)
    assert list(tree.folders) == ['Results']
