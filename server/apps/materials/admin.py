"""Django admin configuration for materials app."""

from django.contrib import admin
from django.http import HttpRequest

from server.apps.materials.models import (
    BaseFileRecord,
    ExperimentFileRecord,
    ExperimentFolder,
    FileRecord,
    Folder,
)


def _format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 KB').
    """
    if size_bytes < 1024:
        return f'{size_bytes} B'
    if size_bytes < 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / 1024:.1f} KB'
    if size_bytes < 1024 * 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / (1024 * 1024):.1f} MB'
    return f'{size_bytes / (1024 * 1024 * 1024):.1f} GB'


class _FileRecordAdmin(admin.ModelAdmin[BaseFileRecord]):
    """Shared admin for file records of both spaces.

    Records are changed through the file operations only, which keep
    blobs and metadata in step, so the admin is read-only.
    """

    list_display = [
        'filename',
        'folder',
        'size_display',
        'tier',
        'file_tag',
        'last_updated_by',
        'last_updated',
    ]

    list_filter = [
        'tier',
        'file_tag',
        'last_updated',
    ]

    search_fields = [
        'filename',
        'folder',
        'storage_key',
        'checksum_sha256',
    ]

    readonly_fields = [
        'storage_key',
        'tier',
        'file_size',
        'checksum_sha256',
        'version',
        'created_at',
        'last_updated',
    ]

    def size_display(self, obj: BaseFileRecord) -> str:
        """Display file size in human-readable format.

        Args:
            obj: File record.

        Returns:
            Formatted size string.
        """
        return _format_bytes(obj.file_size)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def has_change_permission(
        self,
        request: HttpRequest,
        obj: BaseFileRecord | None = None,
    ) -> bool:
        return False

    def has_delete_permission(
        self,
        request: HttpRequest,
        obj: BaseFileRecord | None = None,
    ) -> bool:
        return False


@admin.register(FileRecord)
class FileRecordAdmin(_FileRecordAdmin):
    """Admin interface for lab files."""

    list_display = ['lab_id', *_FileRecordAdmin.list_display]
    search_fields = ['lab_id', *_FileRecordAdmin.search_fields]


@admin.register(ExperimentFileRecord)
class ExperimentFileRecordAdmin(_FileRecordAdmin):
    """Admin interface for experiment files."""

    list_display = ['experiment_id', *_FileRecordAdmin.list_display]
    search_fields = ['experiment_id', *_FileRecordAdmin.search_fields]


@admin.register(Folder)
class FolderAdmin(admin.ModelAdmin[Folder]):
    """Admin interface for lab folders."""

    list_display = ['name', 'lab_id', 'created_by', 'created_at', 'version']
    search_fields = ['name', 'lab_id']
    readonly_fields = ['name', 'version', 'created_at']


@admin.register(ExperimentFolder)
class ExperimentFolderAdmin(admin.ModelAdmin[ExperimentFolder]):
    """Admin interface for experiment folders."""

    list_display = [
        'name',
        'experiment_id',
        'created_by',
        'created_at',
        'version',
    ]
    search_fields = ['name', 'experiment_id']
    readonly_fields = ['name', 'version', 'created_at']
