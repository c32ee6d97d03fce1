"""Django app configuration for materials app."""

from typing import override

from django.apps import AppConfig


class MaterialsConfig(AppConfig):
    """Configuration for materials app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'server.apps.materials'
    verbose_name = 'Lab Materials'

    @override
    def ready(self) -> None:
        """Import signal handlers when app is ready."""
        from server.apps.materials import signals  # noqa: F401
