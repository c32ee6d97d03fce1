"""Database models for contributions app."""

from typing import Final, final, override

from django.db import models

from server.apps.materials.models import FileRecord

_TITLE_MAX_LENGTH: Final = 255
_FILENAME_MAX_LENGTH: Final = 255
_STORAGE_KEY_MAX_LENGTH: Final = 1024
_IDENTIFIER_MAX_LENGTH: Final = 64


class ContributionStatus(models.TextChoices):
    """Review state of a contribution request."""

    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'


class ContributionFileState(models.TextChoices):
    """Where one contributed file currently is."""

    QUARANTINED = 'quarantined', 'In quarantine'
    PROMOTED = 'promoted', 'Added to lab materials'
    FAILED = 'failed', 'Failed'


@final
class ContributionRequest(models.Model):
    """Files submitted to a lab from outside, waiting for review.

    ``status`` moves from pending to accepted or rejected exactly once.
    """

    title = models.CharField(max_length=_TITLE_MAX_LENGTH)
    description = models.TextField(blank=True, default='')

    submitted_by = models.CharField(max_length=_IDENTIFIER_MAX_LENGTH)

    lab_from = models.CharField(
        max_length=_IDENTIFIER_MAX_LENGTH,
        db_index=True,
        help_text='Lab the contribution is submitted to',
    )

    status = models.CharField(
        max_length=16,
        choices=ContributionStatus.choices,
        default=ContributionStatus.PENDING,
        db_index=True,
    )

    reviewed_by = models.CharField(
        max_length=_IDENTIFIER_MAX_LENGTH,
        blank=True,
        default='',
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)

    reject_reason = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'Contribution Request'  # type: ignore[mutable-override]
        verbose_name_plural = 'Contribution Requests'  # type: ignore[mutable-override]
        ordering = ['-created_at']

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.title} ({self.status})'

    @property
    def is_pending(self) -> bool:
        """Whether the request can still be accepted or rejected."""
        return self.status == ContributionStatus.PENDING


@final
class ContributionFile(models.Model):
    """One file attached to a contribution request."""

    request = models.ForeignKey(
        ContributionRequest,
        on_delete=models.CASCADE,
        related_name='files',
    )

    filename = models.CharField(max_length=_FILENAME_MAX_LENGTH)

    file_size = models.BigIntegerField(
        default=0,
        help_text='File size in bytes',
    )

    quarantine_key = models.CharField(
        max_length=_STORAGE_KEY_MAX_LENGTH,
        unique=True,
    )

    state = models.CharField(
        max_length=16,
        choices=ContributionFileState.choices,
        default=ContributionFileState.QUARANTINED,
    )

    file_record = models.ForeignKey(
        FileRecord,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text='Lab file created when the contribution was accepted',
    )

    error = models.TextField(blank=True, default='')

    class Meta:
        """Model metadata."""

        verbose_name = 'Contribution File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Contribution Files'  # type: ignore[mutable-override]
        ordering = ['pk']

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.filename} ({self.state})'
