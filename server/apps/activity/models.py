"""Database models for activity app."""

import uuid
from typing import Any, Final, final, override

from django.db import models

from server.apps.activity.exceptions import AppendOnlyError

_NAME_MAX_LENGTH: Final = 255
_TYPE_MAX_LENGTH: Final = 64
_IDENTIFIER_MAX_LENGTH: Final = 64


class ActivityType(models.TextChoices):
    """Kinds of mutation recorded in the trail."""

    FILE_UPLOADED = 'file_uploaded', 'File uploaded'
    FILE_CREATED = 'file_created', 'File created'
    FILE_MOVED = 'file_moved', 'File moved'
    FILE_RENAMED = 'file_renamed', 'File renamed'
    FILE_DELETED = 'file_deleted', 'File deleted'
    FILE_TIER_MIGRATED = 'file_tier_migrated', 'File tier migrated'
    FOLDER_CREATED = 'folder_created', 'Folder created'
    FOLDER_RENAMED = 'folder_renamed', 'Folder renamed'
    FOLDER_DELETED = 'folder_deleted', 'Folder deleted'
    CONTRIBUTION_SUBMITTED = 'contribution_submitted', 'Contribution submitted'
    CONTRIBUTION_FILE_ACCEPTED = (
        'contribution_file_accepted',
        'Contribution file accepted',
    )
    CONTRIBUTION_ACCEPTED = 'contribution_accepted', 'Contribution accepted'
    CONTRIBUTION_REJECTED = 'contribution_rejected', 'Contribution rejected'


@final
class ActivityEvent(models.Model):
    """One entry of the append-only audit trail.

    Every mutating materials or contribution operation emits exactly one
    event. Events are never updated or deleted; ``save`` on an existing
    row and ``delete`` both raise ``AppendOnlyError``.
    """

    activity_id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    activity_name = models.CharField(max_length=_NAME_MAX_LENGTH)

    activity_type = models.CharField(
        max_length=_TYPE_MAX_LENGTH,
        choices=ActivityType.choices,
        db_index=True,
        help_text='Machine-readable kind, e.g. file_deleted',
    )

    performed_by = models.CharField(max_length=_IDENTIFIER_MAX_LENGTH)

    scope = models.CharField(
        max_length=_IDENTIFIER_MAX_LENGTH,
        db_index=True,
        help_text='Lab or experiment id the event belongs to',
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'Activity Event'  # type: ignore[mutable-override]
        verbose_name_plural = 'Activity Events'  # type: ignore[mutable-override]
        ordering = ['-created_at']

        indexes = [
            models.Index(
                fields=['scope', '-created_at'],
                name='activity_scope_recent_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.scope}:{self.activity_type}:{self.activity_name}'

    @override
    def save(self, *args: Any, **kwargs: Any) -> None:
        """Insert the event; refuse to overwrite an existing one."""
        if not self._state.adding:
            raise AppendOnlyError(self.activity_id)
        kwargs['force_insert'] = True
        super().save(*args, **kwargs)

    @override
    def delete(self, *args: Any, **kwargs: Any) -> Any:
        """Events cannot be deleted."""
        raise AppendOnlyError(self.activity_id)
