"""Database models for materials app."""

from typing import ClassVar, Final, final, override

from django.db import models

# Constants for field max lengths
_FILENAME_MAX_LENGTH: Final = 255
_FILE_TYPE_MAX_LENGTH: Final = 32
_FOLDER_MAX_LENGTH: Final = 255
_STORAGE_KEY_MAX_LENGTH: Final = 1024
_IDENTIFIER_MAX_LENGTH: Final = 64
_CHECKSUM_MAX_LENGTH: Final = 64  # SHA256 hex length
_TAG_MAX_LENGTH: Final = 32

# Folder value of files that live at the top level of the tree
ROOT_FOLDER: Final = 'root'

# Filename of the hidden record that keeps an empty folder alive
PLACEHOLDER_FILENAME: Final = '.folder'


class StorageTier(models.TextChoices):
    """Blob storage tier a file lives in."""

    PRIMARY = 'primary', 'Tier A (primary)'
    LARGE = 'large', 'Tier B (large objects)'


class FileTag(models.TextChoices):
    """Classification shown next to a file."""

    DATASET = 'DATASET', 'Dataset'
    CODE = 'CODE', 'Code'
    PROTOCOL = 'PROTOCOL', 'Protocol'
    PUBLICATION = 'PUBLICATION', 'Publication'
    EXPERIMENT = 'EXPERIMENT', 'Experiment'


class BaseFileRecord(models.Model):
    """Metadata row for one blob in a file space.

    The physical ``storage_key`` does not depend on the logical ``folder``
    unless the tier's key layout says so, which makes a move a metadata
    write. Placeholder records (filename ``.folder``) have no blob and
    no storage key.

    ``version`` is bumped by every update and is checked by conditional
    writes, so concurrent writers cannot silently overwrite each other.
    """

    scope_field: ClassVar[str]

    filename = models.CharField(max_length=_FILENAME_MAX_LENGTH)

    file_type = models.CharField(
        max_length=_FILE_TYPE_MAX_LENGTH,
        blank=True,
        default='',
        help_text='Lowercase extension without dot',
    )

    file_size = models.BigIntegerField(
        default=0,
        help_text='File size in bytes',
    )

    folder = models.CharField(
        max_length=_FOLDER_MAX_LENGTH,
        default=ROOT_FOLDER,
        db_index=True,
    )

    storage_key = models.CharField(
        max_length=_STORAGE_KEY_MAX_LENGTH,
        unique=True,
        null=True,
        blank=True,
        help_text='Object key inside the tier bucket: {tier}/...',
    )

    tier = models.CharField(
        max_length=16,
        choices=StorageTier.choices,
        default=StorageTier.PRIMARY,
    )

    checksum_sha256 = models.CharField(
        max_length=_CHECKSUM_MAX_LENGTH,
        blank=True,
        default='',
    )

    file_tag = models.CharField(
        max_length=_TAG_MAX_LENGTH,
        blank=True,
        default='',
    )

    created_by = models.CharField(max_length=_IDENTIFIER_MAX_LENGTH)
    last_updated_by = models.CharField(max_length=_IDENTIFIER_MAX_LENGTH)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    last_updated = models.DateTimeField(auto_now=True)

    version = models.PositiveIntegerField(default=1)

    class Meta:
        """Model metadata."""

        abstract = True
        ordering = ['folder', 'filename']

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.scope_id}:{self.folder}/{self.filename}'

    @property
    def scope_id(self) -> str:
        """Lab or experiment id this record belongs to."""
        return getattr(self, self.scope_field)

    @property
    def is_placeholder(self) -> bool:
        """Whether this is the hidden record of an empty folder."""
        return self.filename == PLACEHOLDER_FILENAME


class BaseFolder(models.Model):
    """First-class folder entity.

    Folder membership is still the ``folder`` column of file records;
    this row gives the folder its own id and version so renames and
    deletes can be checked against concurrent changes.
    """

    scope_field: ClassVar[str]

    name = models.CharField(max_length=_FOLDER_MAX_LENGTH)

    created_by = models.CharField(max_length=_IDENTIFIER_MAX_LENGTH)
    created_at = models.DateTimeField(auto_now_add=True)

    version = models.PositiveIntegerField(default=1)

    class Meta:
        """Model metadata."""

        abstract = True
        ordering = ['name']

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.scope_id}:{self.name}'

    @property
    def scope_id(self) -> str:
        """Lab or experiment id this folder belongs to."""
        return getattr(self, self.scope_field)


@final
class FileRecord(BaseFileRecord):
    """File in a lab's materials tree."""

    scope_field = 'lab_id'

    lab_id = models.CharField(
        max_length=_IDENTIFIER_MAX_LENGTH,
        db_index=True,
    )

    class Meta(BaseFileRecord.Meta):
        """Model metadata."""

        verbose_name = 'Lab File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Lab Files'  # type: ignore[mutable-override]

        indexes = [
            # Optimize tree listing queries
            models.Index(
                fields=['lab_id', 'folder'],
                name='materials_lab_folder_idx',
            ),
        ]


@final
class Folder(BaseFolder):
    """Folder in a lab's materials tree."""

    scope_field = 'lab_id'

    lab_id = models.CharField(
        max_length=_IDENTIFIER_MAX_LENGTH,
        db_index=True,
    )

    class Meta(BaseFolder.Meta):
        """Model metadata."""

        verbose_name = 'Lab Folder'  # type: ignore[mutable-override]
        verbose_name_plural = 'Lab Folders'  # type: ignore[mutable-override]

        constraints = [
            # Folder names are unique inside a lab
            models.UniqueConstraint(
                fields=['lab_id', 'name'],
                name='materials_lab_folder_unique',
            ),
        ]


@final
class ExperimentFileRecord(BaseFileRecord):
    """File attached to an experiment.

    Same shape as ``FileRecord``, kept in its own table and buckets.
    """

    scope_field = 'experiment_id'

    experiment_id = models.CharField(
        max_length=_IDENTIFIER_MAX_LENGTH,
        db_index=True,
    )

    class Meta(BaseFileRecord.Meta):
        """Model metadata."""

        verbose_name = 'Experiment File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Experiment Files'  # type: ignore[mutable-override]

        indexes = [
            models.Index(
                fields=['experiment_id', 'folder'],
                name='materials_exp_folder_idx',
            ),
        ]


@final
class ExperimentFolder(BaseFolder):
    """Folder inside an experiment's files."""

    scope_field = 'experiment_id'

    experiment_id = models.CharField(
        max_length=_IDENTIFIER_MAX_LENGTH,
        db_index=True,
    )

    class Meta(BaseFolder.Meta):
        """Model metadata."""

        verbose_name = 'Experiment Folder'  # type: ignore[mutable-override]
        verbose_name_plural = 'Experiment Folders'  # type: ignore[mutable-override]

        constraints = [
            models.UniqueConstraint(
                fields=['experiment_id', 'name'],
                name='materials_exp_folder_unique',
            ),
        ]
