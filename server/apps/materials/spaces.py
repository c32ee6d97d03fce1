"""File spaces: a record table, a folder table and a bucket pair.

Lab materials and experiment files share every operation; they differ
only in which tables and buckets they use and which id scopes them.
"""

from dataclasses import dataclass
from typing import Final, final

from django.core.files.storage import storages
from django.db.models import QuerySet

from server.apps.materials.infrastructure.storage import TierStorage
from server.apps.materials.models import (
    BaseFileRecord,
    BaseFolder,
    ExperimentFileRecord,
    ExperimentFolder,
    FileRecord,
    Folder,
    StorageTier,
)


@final
@dataclass(frozen=True)
class FileSpace:
    """Tables and buckets one family of files lives in."""

    name: str
    record_model: type[BaseFileRecord]
    folder_model: type[BaseFolder]
    storage_aliases: dict[str, str]

    @property
    def scope_field(self) -> str:
        """Name of the id column scoping records and folders."""
        return self.record_model.scope_field

    def records(self, scope_id: str) -> QuerySet[BaseFileRecord]:
        """All records of one lab or experiment, placeholders included."""
        return self.record_model.objects.filter(
            **{self.scope_field: scope_id},
        )

    def folders(self, scope_id: str) -> QuerySet[BaseFolder]:
        """All folder entities of one lab or experiment."""
        return self.folder_model.objects.filter(
            **{self.scope_field: scope_id},
        )

    def storage(self, tier: str) -> TierStorage:
        """Storage backend for a tier of this space.

        Args:
            tier: StorageTier value.

        Returns:
            Configured TierStorage instance.
        """
        return storages[self.storage_aliases[tier]]  # type: ignore[return-value]


LAB_MATERIALS: Final = FileSpace(
    name='lab',
    record_model=FileRecord,
    folder_model=Folder,
    storage_aliases={
        StorageTier.PRIMARY: 'materials_primary',
        StorageTier.LARGE: 'materials_large',
    },
)

EXPERIMENT_FILES: Final = FileSpace(
    name='experiment',
    record_model=ExperimentFileRecord,
    folder_model=ExperimentFolder,
    storage_aliases={
        StorageTier.PRIMARY: 'experiments_primary',
        StorageTier.LARGE: 'experiments_large',
    },
)

SPACES: Final = {
    LAB_MATERIALS.name: LAB_MATERIALS,
    EXPERIMENT_FILES.name: EXPERIMENT_FILES,
}
