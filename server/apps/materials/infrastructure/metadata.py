"""Metadata extraction and validation utilities for files."""

import hashlib
from pathlib import Path
from typing import BinaryIO, Final

from django.conf import settings
from django.core.exceptions import ValidationError

from server.apps.materials.models import FileTag

_CHUNK_SIZE: Final = 8192  # 8KB chunks for checksum calculation

# Matches the filename and folder column widths
NAME_MAX_LENGTH: Final = 255

_DATASET_EXTENSIONS: Final = frozenset(('csv', 'xlsx', 'json', 'fits'))
_CODE_EXTENSIONS: Final = frozenset((
    'py', 'js', 'ts', 'r', 'c', 'cpp', 'java', 'php', 'rb', 'go', 'rust',
))


def calculate_checksum(file_obj: BinaryIO) -> str:
    """Calculate SHA256 checksum of file.

    Reads file in chunks to handle large files efficiently.
    Resets file pointer to beginning after calculation.

    Args:
        file_obj: File-like object to checksum.

    Returns:
        Hex-encoded SHA256 hash string.
    """
    sha256_hash = hashlib.sha256()

    file_obj.seek(0)

    # Read in chunks to handle large files
    for chunk in iter(lambda: file_obj.read(_CHUNK_SIZE), b''):
        sha256_hash.update(chunk)

    # Reset file pointer to beginning for subsequent operations
    file_obj.seek(0)

    return sha256_hash.hexdigest()


def get_file_size(file_obj: BinaryIO) -> int:
    """Get file size from file object.

    Args:
        file_obj: File-like object.

    Returns:
        File size in bytes.
    """
    size = getattr(file_obj, 'size', None)
    if size is not None:
        return size
    file_obj.seek(0)
    file_size = len(file_obj.read())
    file_obj.seek(0)
    return file_size


def get_file_extension(filename: str) -> str:
    """Get file extension from filename.

    Args:
        filename: Filename (e.g., 'document.pdf').

    Returns:
        Extension without dot, lowercase (e.g., 'pdf').
        Returns empty string if no extension.
    """
    extension = Path(filename).suffix
    return extension.lstrip('.').lower()


def derive_file_tag(filename: str, explicit_tag: str | None = None) -> str:
    """Classify a file for display.

    An explicit tag always wins. Otherwise tabular formats are datasets
    and source files are code.

    Args:
        filename: Filename with extension.
        explicit_tag: Tag chosen by the uploader, if any.

    Returns:
        FileTag value, or empty string when nothing applies.

    Raises:
        ValidationError: If the explicit tag is not a known FileTag.
    """
    if explicit_tag:
        tag = explicit_tag.upper()
        if tag not in FileTag.values:
            raise ValidationError(f'Unknown file tag: {explicit_tag}')
        return tag

    extension = get_file_extension(filename)
    if extension in _DATASET_EXTENSIONS:
        return FileTag.DATASET
    if extension in _CODE_EXTENSIONS:
        return FileTag.CODE
    return ''


def apply_base_name(filename: str, new_base_name: str) -> str:
    """Rename a file while keeping its extension.

    Example: ('data.csv', 'report') -> 'report.csv'

    A new name that already ends with the original extension is used
    as is, so 'report.csv' does not become 'report.csv.csv'.

    Args:
        filename: Current filename.
        new_base_name: New name chosen by the user.

    Returns:
        New filename.

    Raises:
        ValidationError: If the new name is blank, contains a slash or
            is too long once the extension is kept.
    """
    new_base_name = new_base_name.strip()
    if not new_base_name:
        raise ValidationError('New file name cannot be empty')
    if '/' in new_base_name:
        raise ValidationError('File name cannot contain "/"')

    extension = Path(filename).suffix
    if not extension or new_base_name.lower().endswith(extension.lower()):
        new_filename = new_base_name
    else:
        new_filename = f'{new_base_name}{extension}'
    return validate_name(new_filename, 'File name')


def validate_identifier(identifier: str | None, label: str) -> None:
    """Validate a lab, experiment or actor id.

    Runs before any destructive step so a missing id can never turn
    into an unscoped bulk operation.

    Args:
        identifier: Value to check.
        label: Name used in the error message.

    Raises:
        ValidationError: If the id is empty or too short.
    """
    min_length = settings.MATERIALS_MIN_IDENTIFIER_LENGTH
    if not identifier or not str(identifier).strip():
        raise ValidationError(f'{label} cannot be empty')
    if len(str(identifier).strip()) < min_length:
        raise ValidationError(
            f'{label} must be at least {min_length} characters',
        )


def validate_identifiers(scope_id: str | None, actor_id: str | None) -> None:
    """Validate scope and actor ids together.

    Args:
        scope_id: Lab or experiment id.
        actor_id: Id of the user performing the operation.

    Raises:
        ValidationError: If either id is invalid.
    """
    validate_identifier(scope_id, 'Scope id')
    validate_identifier(actor_id, 'Actor id')


def validate_name(
    name: str,
    label: str = 'Name',
    max_length: int = NAME_MAX_LENGTH,
) -> str:
    """Normalize and validate a file or folder name.

    Args:
        name: Raw name.
        label: Name used in the error message.
        max_length: Longest accepted name.

    Returns:
        Stripped name.

    Raises:
        ValidationError: If the name is blank, too long or contains a slash.
    """
    cleaned = (name or '').strip()
    if not cleaned:
        raise ValidationError(f'{label} cannot be empty')
    if '/' in cleaned:
        raise ValidationError(f'{label} cannot contain "/"')
    if len(cleaned) > max_length:
        raise ValidationError(
            f'{label} cannot be longer than {max_length} characters',
        )
    return cleaned
