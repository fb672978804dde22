"""WebService - front door that builds ServiceTasks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from servicekit.delegate import PassthroughDelegate
from servicekit.dispatch import Dispatcher
from servicekit.request import Request
from servicekit.session import HTTPXSession, Session
from servicekit.task import ServiceTask

if TYPE_CHECKING:
    from servicekit.config import ServiceKitSettings

logger = logging.getLogger(__name__)


class WebService:
    """Creates ServiceTasks for paths relative to a base URL.

    Args:
        base_url: Prefix for relative paths. Absolute URLs are used as-is.
        session: Network provider shared by all tasks. When omitted an
            HTTPXSession is created and owned by the service.
        dispatcher: UI dispatcher handed to every task.
        passthrough_delegate: Observer attached to every task. The service
            keeps it alive; tasks only hold a weak reference.
        default_headers: Headers copied into every new request.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        session: Session | None = None,
        dispatcher: Dispatcher | None = None,
        passthrough_delegate: PassthroughDelegate | None = None,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self.base_url = base_url
        self._owns_session = session is None
        self.session: Session = session or HTTPXSession()
        self.dispatcher = dispatcher
        self.passthrough_delegate = passthrough_delegate
        self.default_headers = dict(default_headers or {})

    @classmethod
    def from_settings(cls, settings: ServiceKitSettings, **kwargs: object) -> WebService:
        """Build a service whose owned session follows ``settings``."""
        session = HTTPXSession(
            timeout=settings.timeout,
            follow_redirects=settings.follow_redirects,
            max_workers=settings.max_workers,
        )
        service = cls(
            settings.base_url,
            session=session,
            default_headers=settings.default_headers,
            **kwargs,  # type: ignore[arg-type]
        )
        service._owns_session = True
        return service

    def absolute_url(self, path: str) -> str:
        """Resolve ``path`` against the base URL."""
        if not self.base_url or httpx.URL(path).is_absolute_url:
            return path
        if not path:
            return self.base_url
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def request(self, method: str, path: str) -> ServiceTask:
        """Create a task for ``method`` and ``path``."""
        request = Request(
            method=method,
            url=self.absolute_url(path),
            headers=dict(self.default_headers),
        )
        logger.debug(f"Created task for {request.method} {request.url}")
        return ServiceTask(
            request,
            self.session,
            dispatcher=self.dispatcher,
            passthrough_delegate=self.passthrough_delegate,
        )

    def get(self, path: str) -> ServiceTask:
        return self.request("GET", path)

    def post(self, path: str) -> ServiceTask:
        return self.request("POST", path)

    def put(self, path: str) -> ServiceTask:
        return self.request("PUT", path)

    def patch(self, path: str) -> ServiceTask:
        return self.request("PATCH", path)

    def delete(self, path: str) -> ServiceTask:
        return self.request("DELETE", path)

    def head(self, path: str) -> ServiceTask:
        return self.request("HEAD", path)

    def close(self) -> None:
        """Close the session if this service created it."""
        if self._owns_session and isinstance(self.session, HTTPXSession):
            self.session.close()

    def __enter__(self) -> WebService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
