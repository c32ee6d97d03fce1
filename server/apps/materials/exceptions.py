"""Exceptions for materials app."""


class StaleRecordError(Exception):
    """Raised when a conditional write finds the row changed underneath.

    Records and folders carry a version token. A write that expected
    ``expected_version`` but found another one lost a race with a
    concurrent writer; the caller should refetch and retry.
    """

    def __init__(
        self,
        model_name: str,
        pk: object,
        expected_version: int,
    ) -> None:
        """Initialize StaleRecordError.

        Args:
            model_name: Name of the model that was written.
            pk: Primary key of the row.
            expected_version: Version the writer started from.
        """
        self.model_name = model_name
        self.pk = pk
        self.expected_version = expected_version
        super().__init__(
            f'{model_name} {pk} changed since version {expected_version}',
        )


class FolderNotFoundError(Exception):
    """Raised when an operation names a folder that does not exist."""

    def __init__(self, scope_id: str, name: str) -> None:
        """Initialize FolderNotFoundError.

        Args:
            scope_id: Lab or experiment id.
            name: Folder name that was looked up.
        """
        self.scope_id = scope_id
        self.name = name
        super().__init__(f'Folder {name!r} not found in {scope_id}')
