"""Business logic for contribution intake.

Submitted files wait in the quarantine bucket until a lab member
reviews the request. Accepting promotes every file into the lab's
materials at the tree root; rejecting deletes them. Either way the
request leaves ``pending`` once and for all.
"""

import logging
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import Final

from django.core.files import File
from django.core.files.base import ContentFile
from django.core.files.storage import storages
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from server.apps.activity.logic import record_activity
from server.apps.activity.models import ActivityType
from server.apps.contributions.exceptions import InvalidTransitionError
from server.apps.contributions.models import (
    ContributionFile,
    ContributionFileState,
    ContributionRequest,
    ContributionStatus,
)
from server.apps.materials.infrastructure.metadata import (
    get_file_size,
    validate_identifiers,
    validate_name,
)
from server.apps.materials.infrastructure.storage import TierStorage
from server.apps.materials.logic.file_operations import upload_file
from server.apps.materials.logic.results import OperationResult
from server.apps.materials.spaces import LAB_MATERIALS

logger = logging.getLogger(__name__)

QUARANTINE_STORAGE_ALIAS: Final = 'quarantine'

# Reported as the current status of a pending request under review
_IN_REVIEW: Final = 'in review'


def _quarantine() -> TierStorage:
    return storages[QUARANTINE_STORAGE_ALIAS]  # type: ignore[return-value]


def submit_contribution(  # noqa: WPS211
    lab_id: str,
    actor_id: str,
    title: str,
    description: str,
    files: Sequence[File],
) -> ContributionRequest:
    """Submit files to a lab for review.

    Transaction safety: every file is uploaded to quarantine first. If
    an upload or the DB insert fails, the files uploaded so far are
    deleted again (rollback).

    Args:
        lab_id: Lab the contribution is for.
        actor_id: Id of the submitting user.
        title: Short title of the contribution.
        description: Free-text description.
        files: Django File objects; ``name`` is used as filename.

    Returns:
        Created pending ContributionRequest.

    Raises:
        ValidationError: If ids, title or filenames are invalid.
        Exception: If upload or DB operation fails.
    """
    validate_identifiers(lab_id, actor_id)
    title = validate_name(title, 'Title')
    filenames = [
        validate_name(Path(file_obj.name or '').name, 'File name')
        for file_obj in files
    ]

    storage = _quarantine()
    batch = uuid.uuid4().hex
    uploaded: list[tuple[str, str, int]] = []

    try:
        for filename, file_obj in zip(filenames, files, strict=True):
            key = storage.upload(f'{lab_id}/{batch}/{filename}', file_obj)
            uploaded.append((filename, key, get_file_size(file_obj)))

        with transaction.atomic():
            request = ContributionRequest.objects.create(
                title=title,
                description=description,
                submitted_by=actor_id,
                lab_from=lab_id,
            )
            ContributionFile.objects.bulk_create([
                ContributionFile(
                    request=request,
                    filename=filename,
                    quarantine_key=key,
                    file_size=file_size,
                )
                for filename, key, file_size in uploaded
            ])
    except Exception:
        logger.exception(
            'Contribution submission failed, rolling back %d uploads',
            len(uploaded),
        )
        for _filename, key, _size in uploaded:
            storage.rollback_upload(key)
        raise

    logger.info(
        'Contribution submitted: %d to %s with %d files',
        request.pk,
        lab_id,
        len(uploaded),
    )
    record_activity(
        f'Submitted contribution {title}',
        ActivityType.CONTRIBUTION_SUBMITTED,
        actor_id,
        lab_id,
    )
    return request


def list_contributions(
    lab_id: str,
    status: str | None = None,
) -> QuerySet[ContributionRequest]:
    """List contribution requests of a lab, newest first.

    Args:
        lab_id: Lab id.
        status: Optional ContributionStatus filter.

    Returns:
        QuerySet of ContributionRequest objects with files prefetched.
    """
    requests = ContributionRequest.objects.filter(lab_from=lab_id)
    if status:
        requests = requests.filter(status=status)
    return requests.prefetch_related('files').order_by('-created_at')


def _get_pending(
    request_id: int,
    lab_id: str,
    target_status: str,
) -> ContributionRequest:
    request = ContributionRequest.objects.get(pk=request_id, lab_from=lab_id)
    if not request.is_pending:
        raise InvalidTransitionError(request_id, request.status, target_status)
    return request


def _claim_review(
    request: ContributionRequest,
    reviewer_id: str,
    target_status: str,
) -> None:
    """Take a pending request for review before any blob is touched.

    Only one review of a request can run at a time; a second accept
    or reject (e.g. a double-clicked button) fails here without side
    effects.

    Raises:
        InvalidTransitionError: If the request is reviewed or being
            reviewed already.
    """
    claimed = ContributionRequest.objects.filter(
        pk=request.pk,
        status=ContributionStatus.PENDING,
        reviewed_by='',
    ).update(reviewed_by=reviewer_id, reviewed_at=timezone.now())
    if claimed == 0:
        request.refresh_from_db(fields=['status'])
        current_status = request.status
        if request.is_pending:
            current_status = _IN_REVIEW
        raise InvalidTransitionError(request.pk, current_status, target_status)
    request.reviewed_by = reviewer_id


def _release_claim(request: ContributionRequest, reviewer_id: str) -> None:
    """Give a claimed request back after an unexpected failure."""
    ContributionRequest.objects.filter(
        pk=request.pk,
        status=ContributionStatus.PENDING,
        reviewed_by=reviewer_id,
    ).update(reviewed_by='', reviewed_at=None)
    request.reviewed_by = ''


def _finish_review(
    request: ContributionRequest,
    reviewer_id: str,
    target_status: str,
    reject_reason: str = '',
) -> None:
    """Flip a claimed request out of pending."""
    now = timezone.now()
    updated = ContributionRequest.objects.filter(
        pk=request.pk,
        status=ContributionStatus.PENDING,
        reviewed_by=reviewer_id,
    ).update(
        status=target_status,
        reviewed_by=reviewer_id,
        reviewed_at=now,
        reject_reason=reject_reason,
    )
    if updated == 0:
        request.refresh_from_db(fields=['status'])
        raise InvalidTransitionError(request.pk, request.status, target_status)

    request.status = target_status
    request.reviewed_by = reviewer_id
    request.reviewed_at = now
    request.reject_reason = reject_reason


def _promote_file(
    contribution_file: ContributionFile,
    lab_id: str,
    reviewer_id: str,
) -> None:
    """Copy one quarantined file into the lab's materials root.

    Raises:
        Exception: If download, upload or the record insert fails; the
            quarantined blob is left untouched then.
    """
    storage = _quarantine()
    payload = storage.download(contribution_file.quarantine_key)
    record = upload_file(
        LAB_MATERIALS,
        lab_id,
        reviewer_id,
        contribution_file.filename,
        ContentFile(payload, name=contribution_file.filename),
        activity_type=ActivityType.CONTRIBUTION_FILE_ACCEPTED,
    )

    contribution_file.state = ContributionFileState.PROMOTED
    contribution_file.file_record = record
    contribution_file.error = ''
    contribution_file.save(update_fields=['state', 'file_record', 'error'])

    try:
        storage.remove(contribution_file.quarantine_key)
    except Exception:
        # The lab file exists; the quarantine copy is only left behind
        logger.exception(
            'Failed to delete quarantined object (orphaned): %s',
            contribution_file.quarantine_key,
        )


def _promote_files(
    request: ContributionRequest,
    lab_id: str,
    reviewer_id: str,
    result: OperationResult,
) -> None:
    pending_files = request.files.filter(
        state=ContributionFileState.QUARANTINED,
    )
    for contribution_file in pending_files:
        try:
            _promote_file(contribution_file, lab_id, reviewer_id)
        except Exception as exc:
            logger.exception(
                'Failed to accept contribution file %s of request %d',
                contribution_file.filename,
                request.pk,
            )
            contribution_file.state = ContributionFileState.FAILED
            contribution_file.error = str(exc)
            contribution_file.save(update_fields=['state', 'error'])
            result.add_failure(contribution_file.filename, exc)
        else:
            result.succeeded.append(contribution_file.filename)


def accept_contribution(
    request_id: int,
    lab_id: str,
    reviewer_id: str,
) -> OperationResult:
    """Accept a contribution and add its files to the lab.

    Every file is processed on its own: a file that fails is marked
    failed on its ContributionFile, its quarantined blob stays, and the
    remaining files continue. Once all files were tried the request is
    accepted, even when some failed.

    Args:
        request_id: Contribution request id.
        lab_id: Lab the request belongs to.
        reviewer_id: Id of the reviewing lab member.

    Returns:
        OperationResult with promoted filenames in ``succeeded``, failed
        ones in ``failures`` and the request as ``value``.

    Raises:
        ValidationError: If ids are invalid.
        ContributionRequest.DoesNotExist: If the lab has no such request.
        InvalidTransitionError: If the request is not pending or another
            review of it is running.
    """
    validate_identifiers(lab_id, reviewer_id)
    request = _get_pending(request_id, lab_id, ContributionStatus.ACCEPTED)
    _claim_review(request, reviewer_id, ContributionStatus.ACCEPTED)
    result = OperationResult(value=request)

    try:
        _promote_files(request, lab_id, reviewer_id, result)
        _finish_review(request, reviewer_id, ContributionStatus.ACCEPTED)
    except Exception:
        _release_claim(request, reviewer_id)
        raise

    logger.info(
        'Contribution %d accepted into %s: %d files added, %d failed',
        request.pk,
        lab_id,
        len(result.succeeded),
        len(result.failures),
    )
    record_activity(
        f'Accepted contribution {request.title}',
        ActivityType.CONTRIBUTION_ACCEPTED,
        reviewer_id,
        lab_id,
    )
    return result


def _remove_quarantined(
    request: ContributionRequest,
    result: OperationResult,
) -> list[int]:
    """Delete the quarantined blobs of a request, best-effort.

    Returns:
        Ids of the ContributionFiles whose blob is gone.
    """
    storage = _quarantine()
    removed = []
    for contribution_file in request.files.all():
        try:
            storage.remove(contribution_file.quarantine_key)
        except Exception as exc:
            logger.exception(
                'Failed to delete quarantined object (orphaned): %s',
                contribution_file.quarantine_key,
            )
            contribution_file.state = ContributionFileState.FAILED
            contribution_file.error = str(exc)
            contribution_file.save(update_fields=['state', 'error'])
            result.add_failure(contribution_file.quarantine_key, exc)
        else:
            removed.append(contribution_file.pk)
            result.succeeded.append(contribution_file.filename)
    return removed


def reject_contribution(
    request_id: int,
    lab_id: str,
    reviewer_id: str,
    reason: str = '',
) -> OperationResult:
    """Reject a contribution and delete its quarantined files.

    Blob deletes are best-effort. Files whose blob was deleted are
    removed from the request; a file whose delete failed stays listed
    as failed so its object can still be found.

    Args:
        request_id: Contribution request id.
        lab_id: Lab the request belongs to.
        reviewer_id: Id of the reviewing lab member.
        reason: Optional explanation shown to the contributor.

    Returns:
        OperationResult with deleted filenames in ``succeeded`` and the
        request as ``value``.

    Raises:
        ValidationError: If ids are invalid.
        ContributionRequest.DoesNotExist: If the lab has no such request.
        InvalidTransitionError: If the request is not pending or another
            review of it is running.
    """
    validate_identifiers(lab_id, reviewer_id)
    request = _get_pending(request_id, lab_id, ContributionStatus.REJECTED)
    _claim_review(request, reviewer_id, ContributionStatus.REJECTED)
    result = OperationResult(value=request)

    try:
        removed = _remove_quarantined(request, result)
        with transaction.atomic():
            _finish_review(
                request,
                reviewer_id,
                ContributionStatus.REJECTED,
                reject_reason=reason,
            )
            ContributionFile.objects.filter(pk__in=removed).delete()
    except Exception:
        _release_claim(request, reviewer_id)
        raise

    logger.info(
        'Contribution %d rejected in %s (%d objects not deleted)',
        request.pk,
        lab_id,
        len(result.failures),
    )
    record_activity(
        f'Rejected contribution {request.title}',
        ActivityType.CONTRIBUTION_REJECTED,
        reviewer_id,
        lab_id,
    )
    return result
