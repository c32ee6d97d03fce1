"""Tree-changing operations as command objects.

Each command knows how to run itself, how to show its effect on a
cached folder tree before it runs, and how to take that effect back
when it fails. ``FileTreeService.dispatch`` drives the three steps.
"""

import abc
from dataclasses import dataclass, field, replace
from typing import final, override

from server.apps.materials.infrastructure.metadata import apply_base_name
from server.apps.materials.logic import file_operations, folder_operations
from server.apps.materials.logic.folder_operations import FileEntry, FolderTree
from server.apps.materials.logic.results import OperationResult
from server.apps.materials.models import ROOT_FOLDER, BaseFileRecord
from server.apps.materials.spaces import FileSpace


class TreeCommand(abc.ABC):
    """Base class for operations dispatched through the tree service."""

    space: FileSpace
    scope_id: str
    actor_id: str

    @abc.abstractmethod
    def execute(self) -> OperationResult:
        """Run the operation against metadata and storage."""

    @abc.abstractmethod
    def apply_optimistic(self, tree: FolderTree) -> None:
        """Show the expected outcome on a tree before running."""

    @abc.abstractmethod
    def compensate(self, tree: FolderTree) -> None:
        """Undo ``apply_optimistic`` after a failed run."""


@dataclass
class _FileCommand(TreeCommand):
    space: FileSpace
    record: BaseFileRecord
    actor_id: str
    _previous: FileEntry | None = field(default=None, init=False, repr=False)

    @property
    def scope_id(self) -> str:
        return self.record.scope_id

    @override
    def compensate(self, tree: FolderTree) -> None:
        if self._previous is None:
            return
        tree.remove_entry(self._previous.id)
        tree.put_entry(self._previous)


@final
@dataclass
class MoveFileCommand(_FileCommand):
    """Move a file to another folder."""

    dest_folder: str = ''

    @override
    def execute(self) -> OperationResult:
        record = file_operations.move_file(
            self.space,
            self.record,
            self.actor_id,
            self.dest_folder,
        )
        return OperationResult(succeeded=[record.filename], value=record)

    @override
    def apply_optimistic(self, tree: FolderTree) -> None:
        self._previous = tree.move_entry(
            self.record.pk,
            self.dest_folder or ROOT_FOLDER,
        )


@final
@dataclass
class RenameFileCommand(_FileCommand):
    """Rename a file, keeping its extension."""

    new_base_name: str = ''

    @override
    def execute(self) -> OperationResult:
        record = file_operations.rename_file(
            self.space,
            self.record,
            self.actor_id,
            self.new_base_name,
        )
        return OperationResult(succeeded=[record.filename], value=record)

    @override
    def apply_optimistic(self, tree: FolderTree) -> None:
        self._previous = tree.rename_entry(
            self.record.pk,
            apply_base_name(self.record.filename, self.new_base_name),
        )


@final
@dataclass
class DeleteFileCommand(_FileCommand):
    """Delete a file."""

    @override
    def execute(self) -> OperationResult:
        filename = self.record.filename
        file_operations.delete_file(self.space, self.record, self.actor_id)
        return OperationResult(succeeded=[filename])

    @override
    def apply_optimistic(self, tree: FolderTree) -> None:
        self._previous = tree.remove_entry(self.record.pk)


@dataclass
class _FolderCommand(TreeCommand):
    space: FileSpace
    scope_id: str
    actor_id: str
    name: str
    _snapshot: list[FileEntry] | None = field(
        default=None,
        init=False,
        repr=False,
    )


@final
@dataclass
class CreateFolderCommand(_FolderCommand):
    """Create an empty folder."""

    @override
    def execute(self) -> OperationResult:
        folder = folder_operations.create_folder(
            self.space,
            self.scope_id,
            self.actor_id,
            self.name,
        )
        return OperationResult(succeeded=[folder.name], value=folder.name)

    @override
    def apply_optimistic(self, tree: FolderTree) -> None:
        if self.name not in tree.folders:
            tree.folders[self.name] = []
            self._snapshot = []

    @override
    def compensate(self, tree: FolderTree) -> None:
        if self._snapshot is not None:
            tree.folders.pop(self.name, None)


@final
@dataclass
class RenameFolderCommand(_FolderCommand):
    """Rename a folder with everything in it."""

    new_name: str = ''

    @override
    def execute(self) -> OperationResult:
        return folder_operations.rename_folder(
            self.space,
            self.scope_id,
            self.actor_id,
            self.name,
            self.new_name,
        )

    @override
    def apply_optimistic(self, tree: FolderTree) -> None:
        if self.name not in tree.folders or self.new_name in tree.folders:
            return
        self._snapshot = tree.folders.pop(self.name)
        tree.folders[self.new_name] = [
            replace(entry, folder=self.new_name) for entry in self._snapshot
        ]

    @override
    def compensate(self, tree: FolderTree) -> None:
        if self._snapshot is None:
            return
        tree.folders.pop(self.new_name, None)
        tree.folders[self.name] = self._snapshot


@final
@dataclass
class DeleteFolderCommand(_FolderCommand):
    """Delete a folder with all of its files."""

    @override
    def execute(self) -> OperationResult:
        return folder_operations.delete_folder(
            self.space,
            self.scope_id,
            self.actor_id,
            self.name,
        )

    @override
    def apply_optimistic(self, tree: FolderTree) -> None:
        self._snapshot = tree.folders.pop(self.name, None)

    @override
    def compensate(self, tree: FolderTree) -> None:
        if self._snapshot is not None:
            tree.folders[self.name] = self._snapshot
