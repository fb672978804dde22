"""Tests for ServiceTaskResult."""

from __future__ import annotations

import pytest

from servicekit.errors import NoResultValueError
from servicekit.result import ResultKind, ServiceTaskResult, as_result


class TestServiceTaskResult:
    """Tests for the tagged result variants."""

    def test_value_returns_payload(self):
        result = ServiceTaskResult.value({"zip": "15217"})

        assert result.is_value is True
        assert result.kind is ResultKind.VALUE
        assert result.task_value() == {"zip": "15217"}

    def test_value_may_hold_none(self):
        result = ServiceTaskResult.value(None)

        assert result.is_value is True
        assert result.task_value() is None

    def test_empty_raises_no_value(self):
        result = ServiceTaskResult.empty()

        assert result.is_empty is True
        with pytest.raises(NoResultValueError):
            result.task_value()

    def test_failure_reraises_stored_error(self):
        error = KeyError("zip")
        result = ServiceTaskResult.failure(error)

        assert result.is_failure is True
        with pytest.raises(KeyError) as exc_info:
            result.task_value()
        assert exc_info.value is error

    def test_results_are_immutable(self):
        result = ServiceTaskResult.value(1)

        with pytest.raises(AttributeError):
            result.payload = 2  # type: ignore[misc]


class TestAsResult:
    """Tests for coercing handler return values."""

    def test_result_passes_through(self):
        result = ServiceTaskResult.failure(ValueError("bad"))
        assert as_result(result) is result

    def test_none_becomes_empty(self):
        assert as_result(None).is_empty is True

    def test_plain_value_becomes_value(self):
        result = as_result([1, 2, 3])

        assert result.is_value is True
        assert result.payload == [1, 2, 3]

    def test_falsy_value_is_still_a_value(self):
        assert as_result(0).is_value is True
        assert as_result("").is_value is True
