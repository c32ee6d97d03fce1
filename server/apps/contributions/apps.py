"""Django app configuration for contributions app."""

from django.apps import AppConfig


class ContributionsConfig(AppConfig):
    """Configuration for contributions app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'server.apps.contributions'
    verbose_name = 'Contributions'
