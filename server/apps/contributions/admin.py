"""Django admin configuration for contributions app."""

from django.contrib import admin

from server.apps.contributions.models import (
    ContributionFile,
    ContributionRequest,
)


class ContributionFileInline(admin.TabularInline):  # type: ignore[type-arg]
    """Files of a contribution request."""

    model = ContributionFile
    extra = 0
    can_delete = False
    readonly_fields = [
        'filename',
        'file_size',
        'quarantine_key',
        'state',
        'file_record',
        'error',
    ]


@admin.register(ContributionRequest)
class ContributionRequestAdmin(admin.ModelAdmin[ContributionRequest]):
    """Admin interface for contribution requests.

    Status changes go through accept/reject so quarantined files are
    handled; the status is read-only here.
    """

    list_display = [
        'title',
        'lab_from',
        'submitted_by',
        'status',
        'reviewed_by',
        'created_at',
    ]

    list_filter = [
        'status',
        'created_at',
    ]

    search_fields = [
        'title',
        'lab_from',
        'submitted_by',
    ]

    readonly_fields = [
        'status',
        'reviewed_by',
        'reviewed_at',
        'reject_reason',
        'created_at',
    ]

    inlines = [ContributionFileInline]
