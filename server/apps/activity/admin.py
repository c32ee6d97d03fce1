"""Django admin configuration for activity app."""

from django.contrib import admin
from django.http import HttpRequest

from server.apps.activity.models import ActivityEvent


@admin.register(ActivityEvent)
class ActivityEventAdmin(admin.ModelAdmin[ActivityEvent]):
    """Read-only admin for the append-only activity trail."""

    list_display = [
        'activity_name',
        'activity_type',
        'performed_by',
        'scope',
        'created_at',
    ]

    list_filter = [
        'activity_type',
        'created_at',
    ]

    search_fields = [
        'activity_name',
        'performed_by',
        'scope',
    ]

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def has_change_permission(
        self,
        request: HttpRequest,
        obj: ActivityEvent | None = None,
    ) -> bool:
        return False

    def has_delete_permission(
        self,
        request: HttpRequest,
        obj: ActivityEvent | None = None,
    ) -> bool:
        return False
