"""Structured outcome of materials and contribution operations.

Batch operations (folder rename/delete, contribution acceptance) keep
going when one item fails. The result tells callers exactly which
items succeeded and which failed, instead of a single pass/fail flag.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, final


class ResultStatus(enum.StrEnum):
    """Overall outcome of an operation."""

    SUCCESS = 'success'
    PARTIAL_FAILURE = 'partial_failure'
    FAILURE = 'failure'


@final
@dataclass(frozen=True)
class ItemFailure:
    """One item a batch operation could not process."""

    item: str
    error: str


@final
@dataclass
class OperationResult:
    """Outcome of one operation."""

    succeeded: list[Any] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    error: str = ''
    value: Any = None

    @property
    def status(self) -> ResultStatus:
        """Derive the status from what succeeded and failed."""
        if self.error:
            return ResultStatus.FAILURE
        if not self.failures:
            return ResultStatus.SUCCESS
        if self.succeeded:
            return ResultStatus.PARTIAL_FAILURE
        return ResultStatus.FAILURE

    @property
    def ok(self) -> bool:
        """Whether everything succeeded."""
        return self.status == ResultStatus.SUCCESS

    def add_failure(self, item: str, error: BaseException | str) -> None:
        """Record a failed item.

        Args:
            item: Identifier of the item (filename, key, id).
            error: Exception or message.
        """
        self.failures.append(ItemFailure(item=item, error=str(error)))

    @classmethod
    def hard_failure(cls, error: BaseException | str) -> 'OperationResult':
        """Build a result for an operation that failed as a whole."""
        return cls(error=str(error) or type(error).__name__)
