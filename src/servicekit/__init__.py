"""servicekit: chainable response-processing pipelines over HTTP data tasks."""

__version__ = "0.1.0"

from servicekit.config import ServiceKitSettings
from servicekit.delegate import LoggingPassthroughDelegate, PassthroughDelegate
from servicekit.dispatch import Dispatcher, ImmediateDispatcher, SerialDispatcher, main_dispatcher
from servicekit.errors import (
    BodyProviderError,
    ConfigError,
    HTTPError,
    JSONSerializationError,
    NoResultValueError,
    RequestLockedError,
    ServiceError,
    TimeoutError,
)
from servicekit.metrics import ServiceTaskMetrics
from servicekit.pipeline import HandlerPipeline
from servicekit.request import CachePolicy, ContentType, ParameterEncoding, Request
from servicekit.result import ResultKind, ServiceTaskResult
from servicekit.service import WebService
from servicekit.session import AsyncDataTask, DataTask, HTTPXSession, Session, TaskState
from servicekit.task import ServiceTask, asyncify

__all__ = [
    # Core
    "ServiceTask",
    "WebService",
    "asyncify",
    # Results and metrics
    "ResultKind",
    "ServiceTaskResult",
    "ServiceTaskMetrics",
    # Requests
    "CachePolicy",
    "ContentType",
    "ParameterEncoding",
    "Request",
    # Network providers
    "AsyncDataTask",
    "DataTask",
    "HTTPXSession",
    "Session",
    "TaskState",
    # Pipeline and dispatch
    "Dispatcher",
    "HandlerPipeline",
    "ImmediateDispatcher",
    "SerialDispatcher",
    "main_dispatcher",
    # Observers
    "LoggingPassthroughDelegate",
    "PassthroughDelegate",
    # Configuration
    "ServiceKitSettings",
    # Errors
    "BodyProviderError",
    "ConfigError",
    "HTTPError",
    "JSONSerializationError",
    "NoResultValueError",
    "RequestLockedError",
    "ServiceError",
    "TimeoutError",
]
