"""Exceptions for activity app."""


class AppendOnlyError(Exception):
    """Raised when an existing activity event would be changed or removed."""

    def __init__(self, activity_id: object) -> None:
        """Initialize AppendOnlyError.

        Args:
            activity_id: Identifier of the event that was touched.
        """
        self.activity_id = activity_id
        super().__init__(
            f'Activity event {activity_id} is append-only',
        )
