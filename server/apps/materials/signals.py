"""Signal handlers for materials app."""

import logging

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from server.apps.materials.logic.tree_cache import invalidate_tree
from server.apps.materials.models import (
    ExperimentFileRecord,
    ExperimentFolder,
    FileRecord,
    Folder,
)
from server.apps.materials.spaces import EXPERIMENT_FILES, LAB_MATERIALS

logger = logging.getLogger(__name__)

_SPACE_NAMES = {
    FileRecord: LAB_MATERIALS.name,
    Folder: LAB_MATERIALS.name,
    ExperimentFileRecord: EXPERIMENT_FILES.name,
    ExperimentFolder: EXPERIMENT_FILES.name,
}


@receiver(post_save, sender=FileRecord)
@receiver(post_save, sender=Folder)
@receiver(post_save, sender=ExperimentFileRecord)
@receiver(post_save, sender=ExperimentFolder)
@receiver(post_delete, sender=FileRecord)
@receiver(post_delete, sender=Folder)
@receiver(post_delete, sender=ExperimentFileRecord)
@receiver(post_delete, sender=ExperimentFolder)
def invalidate_cached_tree(
    sender: type,
    instance: FileRecord | Folder | ExperimentFileRecord | ExperimentFolder,
    **kwargs: object,
) -> None:
    """Drop the cached tree when a record or folder changes.

    Covers writes made through the ORM, including the admin. Blob
    cleanup is not done here: metadata deleted outside the file
    operations leaves orphaned objects for the reconciliation sweep.

    Args:
        sender: Model class.
        instance: Saved or deleted instance.
        **kwargs: Additional signal arguments.
    """
    invalidate_tree(_SPACE_NAMES[sender], instance.scope_id)
