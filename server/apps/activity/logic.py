"""Business logic for recording and reading the activity trail."""

import logging

from django.db import transaction
from django.db.models import QuerySet

from server.apps.activity.models import ActivityEvent

logger = logging.getLogger(__name__)


def record_activity(
    activity_name: str,
    activity_type: str,
    performed_by: str,
    scope: str,
) -> ActivityEvent | None:
    """Append one event to the activity trail.

    The trail is best-effort: a failure here is logged and swallowed so
    it never blocks or rolls back the operation being recorded.

    Args:
        activity_name: Human-readable description of what happened.
        activity_type: Machine-readable kind (e.g. ``file_moved``).
        performed_by: Actor id.
        scope: Lab or experiment id.

    Returns:
        Created ActivityEvent, or None if recording failed.
    """
    try:
        with transaction.atomic():
            event = ActivityEvent.objects.create(
                activity_name=activity_name,
                activity_type=activity_type,
                performed_by=performed_by,
                scope=scope,
            )
    except Exception:
        logger.exception(
            'Failed to record activity %s for scope %s',
            activity_type,
            scope,
        )
        return None

    logger.debug(
        'Recorded activity %s (%s) in scope %s',
        activity_type,
        event.activity_id,
        scope,
    )
    return event


def list_activity(scope: str) -> QuerySet[ActivityEvent]:
    """List events for a lab or experiment, newest first.

    Args:
        scope: Lab or experiment id.

    Returns:
        QuerySet of ActivityEvent objects.
    """
    return ActivityEvent.objects.filter(scope=scope).order_by('-created_at')
