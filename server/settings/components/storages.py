"""Django storage configuration for S3-compatible backends.

This module configures django-storages to work with:
- MinIO for local development
- Cloudflare R2 for production

Every tier is a separate bucket behind the same ``TierStorage`` backend:
- ``materials_primary`` / ``materials_large``: lab materials, Tier A / Tier B
- ``experiments_primary`` / ``experiments_large``: experiment files
- ``quarantine``: files attached to contributions awaiting review
"""

from typing import Any, Final

from boto3.s3.transfer import TransferConfig

from server.settings.components import config

_TIER_STORAGE_BACKEND: Final = (
    'server.apps.materials.infrastructure.storage.TierStorage'
)

# Large objects are sent as multipart uploads, so an interrupted transfer
# only re-sends the failed parts.
_LARGE_TRANSFER_CONFIG: Final = TransferConfig(
    multipart_threshold=config(
        'AWS_S3_MULTIPART_THRESHOLD',
        cast=int,
        default=8 * 1024 * 1024,
    ),
    multipart_chunksize=config(
        'AWS_S3_MULTIPART_CHUNKSIZE',
        cast=int,
        default=8 * 1024 * 1024,
    ),
)


def _bucket_options(bucket_env: str, default_bucket: str) -> dict[str, Any]:
    """Build S3Storage options for one bucket.

    Args:
        bucket_env: Environment variable holding the bucket name.
        default_bucket: Bucket name used when the variable is unset.

    Returns:
        OPTIONS dictionary for the STORAGES setting.
    """
    return {
        'bucket_name': config(bucket_env, default=default_bucket),
        'access_key': config('AWS_ACCESS_KEY_ID', default='testing'),
        'secret_key': config('AWS_SECRET_ACCESS_KEY', default='testing'),
        'endpoint_url': config(
            'AWS_S3_ENDPOINT_URL',
            default=None,
        ),
        'region_name': config(
            'AWS_S3_REGION_NAME',
            default='us-east-1',
        ),
        'file_overwrite': False,  # Prevent accidental overwrites
        'default_acl': None,  # Inherit bucket ACL
        'querystring_auth': config(
            'AWS_QUERYSTRING_AUTH',
            cast=bool,
            default=True,
        ),
    }


def _large_bucket_options(bucket_env: str, default_bucket: str) -> dict[str, Any]:
    options = _bucket_options(bucket_env, default_bucket)
    options['transfer_config'] = _LARGE_TRANSFER_CONFIG
    return options


STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': {
        'BACKEND': _TIER_STORAGE_BACKEND,
        'OPTIONS': _bucket_options(
            'MATERIALS_PRIMARY_BUCKET',
            'lab-materials',
        ),
    },
    'materials_primary': {
        'BACKEND': _TIER_STORAGE_BACKEND,
        'OPTIONS': _bucket_options(
            'MATERIALS_PRIMARY_BUCKET',
            'lab-materials',
        ),
    },
    'materials_large': {
        'BACKEND': _TIER_STORAGE_BACKEND,
        'OPTIONS': _large_bucket_options(
            'MATERIALS_LARGE_BUCKET',
            'lab-materials-large',
        ),
    },
    'experiments_primary': {
        'BACKEND': _TIER_STORAGE_BACKEND,
        'OPTIONS': _bucket_options(
            'EXPERIMENTS_PRIMARY_BUCKET',
            'experiment-files',
        ),
    },
    'experiments_large': {
        'BACKEND': _TIER_STORAGE_BACKEND,
        'OPTIONS': _large_bucket_options(
            'EXPERIMENTS_LARGE_BUCKET',
            'experiment-files-large',
        ),
    },
    'quarantine': {
        'BACKEND': _TIER_STORAGE_BACKEND,
        'OPTIONS': _bucket_options(
            'QUARANTINE_BUCKET',
            'contribution-quarantine',
        ),
    },
    'staticfiles': {
        # Keep static files separate from user files
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}
