"""Outcome of a pipeline stage.

A ServiceTaskResult is one of three variants:
- empty: the stage finished without producing a value
- value: the stage produced a payload (any Python object, including None)
- failure: the stage, or something before it, raised an error

Stages that need a payload call task_value(), which re-raises a stored
failure and raises NoResultValueError for an empty result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from servicekit.errors import NoResultValueError


class ResultKind(str, Enum):
    """Variant tag for ServiceTaskResult."""

    EMPTY = "empty"
    VALUE = "value"
    FAILURE = "failure"


@dataclass(frozen=True)
class ServiceTaskResult:
    """Tagged result value.

    Attributes:
        kind: Which variant this is.
        payload: The value for VALUE results, otherwise None.
        error: The error for FAILURE results, otherwise None.
    """

    kind: ResultKind
    payload: Any = None
    error: BaseException | None = None

    @classmethod
    def empty(cls) -> ServiceTaskResult:
        """Create an empty result."""
        return cls(kind=ResultKind.EMPTY)

    @classmethod
    def value(cls, payload: Any) -> ServiceTaskResult:
        """Create a result carrying a payload."""
        return cls(kind=ResultKind.VALUE, payload=payload)

    @classmethod
    def failure(cls, error: BaseException) -> ServiceTaskResult:
        """Create a failed result."""
        return cls(kind=ResultKind.FAILURE, error=error)

    @property
    def is_empty(self) -> bool:
        return self.kind is ResultKind.EMPTY

    @property
    def is_value(self) -> bool:
        return self.kind is ResultKind.VALUE

    @property
    def is_failure(self) -> bool:
        return self.kind is ResultKind.FAILURE

    def task_value(self) -> Any:
        """Extract the payload.

        Returns:
            The payload of a VALUE result.

        Raises:
            NoResultValueError: If the result is empty.
            BaseException: The stored error if the result is a failure.
        """
        if self.kind is ResultKind.VALUE:
            return self.payload
        if self.kind is ResultKind.FAILURE and self.error is not None:
            raise self.error
        raise NoResultValueError()


def as_result(returned: Any) -> ServiceTaskResult:
    """Coerce a handler's return value into a ServiceTaskResult.

    Handlers may return a ServiceTaskResult directly, or a plain value:
    None becomes an empty result, anything else becomes a value.
    """
    if isinstance(returned, ServiceTaskResult):
        return returned
    if returned is None:
        return ServiceTaskResult.empty()
    return ServiceTaskResult.value(returned)
