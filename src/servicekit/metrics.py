"""Timing metrics captured during a service task's lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

METRIC_FIELDS = (
    "fetch_start_date",
    "response_end_date",
    "response_json_start_date",
    "response_json_end_date",
    "update_ui_start_date",
    "update_ui_end_date",
)


@dataclass(frozen=True)
class ServiceTaskMetrics:
    """Timestamps recorded while a task runs.

    Instances are immutable; the owning task swaps in a new instance each time
    it records a milestone, so observers always hold a stable snapshot.

    Attributes:
        fetch_start_date: When the task was first resumed.
        response_end_date: When the network completion arrived.
        response_json_start_date: When the first JSON decode began.
        response_json_end_date: When the first JSON stage finished.
        update_ui_start_date: When the first UI update began.
        update_ui_end_date: When the first UI update finished.
    """

    fetch_start_date: datetime | None = None
    response_end_date: datetime | None = None
    response_json_start_date: datetime | None = None
    response_json_end_date: datetime | None = None
    update_ui_start_date: datetime | None = None
    update_ui_end_date: datetime | None = None

    def record(self, name: str, when: datetime) -> ServiceTaskMetrics:
        """Return a copy with ``name`` set, unless it was already recorded."""
        if name not in METRIC_FIELDS:
            raise ValueError(f"Unknown metric: {name}")
        if getattr(self, name) is not None:
            return self
        return replace(self, **{name: when})

    @property
    def fetch_duration(self) -> float | None:
        """Seconds between fetch start and response end."""
        return _seconds_between(self.fetch_start_date, self.response_end_date)

    @property
    def json_duration(self) -> float | None:
        """Seconds spent decoding and handling JSON."""
        return _seconds_between(self.response_json_start_date, self.response_json_end_date)

    @property
    def update_ui_duration(self) -> float | None:
        """Seconds spent in the UI update handler."""
        return _seconds_between(self.update_ui_start_date, self.update_ui_end_date)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display or logging."""
        result: dict[str, Any] = {
            name: value.isoformat()
            for name in METRIC_FIELDS
            if (value := getattr(self, name)) is not None
        }
        for name in ("fetch_duration", "json_duration", "update_ui_duration"):
            duration = getattr(self, name)
            if duration is not None:
                result[name] = round(duration, 6)
        return result


def _seconds_between(start: datetime | None, end: datetime | None) -> float | None:
    if start is None or end is None:
        return None
    return (end - start).total_seconds()
