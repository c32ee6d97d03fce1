"""Cache configuration used by the file tree service."""

from server.settings.components import config

CACHES = {
    'default': {
        'BACKEND': config(
            'DJANGO_CACHE_BACKEND',
            default='django.core.cache.backends.locmem.LocMemCache',
        ),
        'LOCATION': config('DJANGO_CACHE_LOCATION', default='lab-materials'),
    },
}
