"""Tests for ServiceTaskMetrics."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from servicekit.metrics import ServiceTaskMetrics

START = datetime(2024, 1, 15, 12, 0, 0, tzinfo=UTC)


class TestRecord:
    """Tests for recording milestones."""

    def test_record_returns_new_instance(self):
        metrics = ServiceTaskMetrics()

        updated = metrics.record("fetch_start_date", START)

        assert metrics.fetch_start_date is None
        assert updated.fetch_start_date == START

    def test_record_keeps_first_value(self):
        metrics = ServiceTaskMetrics().record("fetch_start_date", START)

        again = metrics.record("fetch_start_date", START + timedelta(seconds=5))

        assert again.fetch_start_date == START
        assert again is metrics

    def test_unknown_metric_raises(self):
        with pytest.raises(ValueError, match="Unknown metric"):
            ServiceTaskMetrics().record("bogus", START)

    def test_metrics_are_read_only(self):
        metrics = ServiceTaskMetrics()

        with pytest.raises(AttributeError):
            metrics.fetch_start_date = START  # type: ignore[misc]


class TestDurations:
    """Tests for derived durations."""

    def test_fetch_duration(self):
        metrics = ServiceTaskMetrics(
            fetch_start_date=START,
            response_end_date=START + timedelta(milliseconds=250),
        )

        assert metrics.fetch_duration == pytest.approx(0.25)

    def test_missing_end_gives_none(self):
        metrics = ServiceTaskMetrics(fetch_start_date=START)

        assert metrics.fetch_duration is None
        assert metrics.json_duration is None
        assert metrics.update_ui_duration is None

    def test_to_dict_includes_recorded_fields_only(self):
        metrics = ServiceTaskMetrics(
            fetch_start_date=START,
            response_end_date=START + timedelta(seconds=1),
        )

        result = metrics.to_dict()

        assert result["fetch_start_date"] == START.isoformat()
        assert result["fetch_duration"] == 1.0
        assert "response_json_start_date" not in result
        assert "json_duration" not in result
