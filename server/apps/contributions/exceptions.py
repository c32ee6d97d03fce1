"""Exceptions for contributions app."""


class InvalidTransitionError(Exception):
    """Raised when a contribution request is not pending any more.

    Accepted and rejected are terminal states; a request transitions
    once and never again.
    """

    def __init__(
        self,
        request_id: int,
        current_status: str,
        target_status: str,
    ) -> None:
        """Initialize InvalidTransitionError.

        Args:
            request_id: Contribution request id.
            current_status: Status the request is in.
            target_status: Status the caller tried to move it to.
        """
        self.request_id = request_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f'Contribution {request_id} is {current_status}, '
            f'cannot become {target_status}',
        )
