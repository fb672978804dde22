"""Tests for WebService."""

from __future__ import annotations

import pytest

from servicekit.config import ServiceKitSettings
from servicekit.dispatch import ImmediateDispatcher
from servicekit.service import WebService
from servicekit.session import HTTPXSession
from servicekit.testing import RecordingDelegate, StubSession, resume_and_wait

WAIT_TIMEOUT = 5.0


@pytest.fixture
def service(stub_session):
    return WebService(
        "https://api.example.com/v1",
        session=stub_session,
        dispatcher=ImmediateDispatcher(),
        default_headers={"Accept": "application/json"},
    )


class TestWebService:
    """Tests for task creation."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("zip", "https://api.example.com/v1/zip"),
            ("/zip", "https://api.example.com/v1/zip"),
            ("", "https://api.example.com/v1"),
            ("https://other.example.com/x", "https://other.example.com/x"),
        ],
    )
    def test_absolute_url(self, service, path, expected):
        assert service.absolute_url(path) == expected

    def test_absolute_url_without_base(self):
        assert WebService(session=StubSession()).absolute_url("/zip") == "/zip"

    @pytest.mark.parametrize("verb", ["get", "post", "put", "patch", "delete", "head"])
    def test_verb_helpers(self, service, verb):
        task = getattr(service, verb)("zip")

        assert task.request.method == verb.upper()
        assert task.url == "https://api.example.com/v1/zip"

    def test_default_headers_are_copied_per_task(self, service):
        first = service.get("a").set_header_value("1", "X-Trace")
        second = service.get("b")

        assert first.request.headers == {"Accept": "application/json", "X-Trace": "1"}
        assert second.request.headers == {"Accept": "application/json"}

    def test_tasks_share_session_and_delegate(self, stub_session, zip_payload):
        delegate = RecordingDelegate()
        service = WebService(
            "https://api.example.com",
            session=stub_session,
            dispatcher=ImmediateDispatcher(),
            passthrough_delegate=delegate,
        )
        seen = []

        resume_and_wait(service.get("/zip").response_json(lambda json, response: json).update_ui(seen.append))
        resume_and_wait(service.get("/zip").response_json(lambda json, response: json).update_ui(seen.append))

        assert seen == [zip_payload, zip_payload]
        assert len(stub_session.tasks) == 2
        assert delegate.count("request_sent") == 2

    def test_from_settings_builds_owned_session(self):
        settings = ServiceKitSettings(
            base_url="https://api.example.com",
            timeout=3.0,
            follow_redirects=False,
            default_headers={"X-Key": "1"},
        )

        with WebService.from_settings(settings) as service:
            assert isinstance(service.session, HTTPXSession)
            assert service.session.client.timeout.read == 3.0
            assert service.session.client.follow_redirects is False
            assert service.default_headers == {"X-Key": "1"}
            assert service.base_url == "https://api.example.com"

        assert service.session.client.is_closed is True

    def test_close_leaves_injected_session_alone(self):
        session = HTTPXSession()
        WebService(session=session).close()

        assert session.client.is_closed is False
        session.close()
