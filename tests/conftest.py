"""Pytest fixtures for servicekit tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from servicekit.dispatch import ImmediateDispatcher
from servicekit.request import Request
from servicekit.task import ServiceTask
from servicekit.testing import RecordingDelegate, StubSession


@pytest.fixture
def zip_payload() -> dict[str, Any]:
    """Sample JSON document returned by the stub network."""
    return {"zip": "15217"}


@pytest.fixture
def stub_session(zip_payload: dict[str, Any]) -> StubSession:
    """Session that completes every task with the zip payload."""
    return StubSession.json(zip_payload)


@pytest.fixture
def manual_session(zip_payload: dict[str, Any]) -> StubSession:
    """Session whose tasks complete only when the test says so."""
    return StubSession.json(zip_payload, auto_complete=False)


@pytest.fixture
def recording_delegate() -> RecordingDelegate:
    return RecordingDelegate()


@pytest.fixture
def make_task(recording_delegate: RecordingDelegate) -> Callable[..., ServiceTask]:
    """Factory building a GET task on the given session.

    The recording delegate is attached unless ``delegate=None`` is passed.
    """

    def factory(
        session: StubSession,
        *,
        url: str = "https://api.example.com/zip",
        delegate: Any = recording_delegate,
        **kwargs: Any,
    ) -> ServiceTask:
        kwargs.setdefault("dispatcher", ImmediateDispatcher())
        return ServiceTask(
            Request("GET", url),
            session,
            passthrough_delegate=delegate,
            **kwargs,
        )

    return factory
