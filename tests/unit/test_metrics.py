"""
Name: Metrics Unit Tests

Responsibilities:
  - Validate HTTP counters and latency with low-cardinality labels
  - Validate gate outcomes and rejected transitions are counted
"""

import pytest

from trustgate.audit import emit_security_event
from trustgate.crosscutting.metrics import (
    _normalize_endpoint,
    _status_bucket,
    get_metrics_response,
    get_sample_value,
    record_request_metrics,
)
from trustgate.domain.audit import SecurityAction

pytestmark = pytest.mark.unit


class TestRequestMetrics:
    def test_request_counted_and_timed(self):
        """R: Should increment the counter and observe latency per endpoint."""
        labels = {"endpoint": "/sessions", "method": "POST", "status": "2xx"}
        before = get_sample_value("trustgate_requests_total", labels)
        observed = get_sample_value(
            "trustgate_request_latency_seconds_count",
            {"endpoint": "/sessions", "method": "POST"},
        )

        record_request_metrics("/sessions", "POST", 201, 0.012)

        assert get_sample_value("trustgate_requests_total", labels) == before + 1
        assert (
            get_sample_value(
                "trustgate_request_latency_seconds_count",
                {"endpoint": "/sessions", "method": "POST"},
            )
            == observed + 1
        )

    @pytest.mark.parametrize(
        "code,bucket",
        [(200, "2xx"), (201, "2xx"), (401, "4xx"), (422, "4xx"), (503, "5xx"), (302, "other")],
    )
    def test_status_bucket(self, code, bucket):
        """R: Should group status codes by class."""
        assert _status_bucket(code) == bucket

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/sessions/current/access/admin", "/sessions/current/access/{role}"),
            ("/sessions/current", "/sessions/current"),
            ("/sessions/" + "a" * 43, "/sessions/{id}"),
            ("/items/42", "/items/{id}"),
        ],
    )
    def test_normalize_endpoint(self, path, expected):
        """R: Should collapse roles and opaque ids into placeholders."""
        assert _normalize_endpoint(path) == expected

    def test_metrics_response_is_prometheus_text(self):
        """R: Should render the registry in the exposition format."""
        record_request_metrics("/healthz", "GET", 200, 0.001)

        body, content_type = get_metrics_response()

        assert content_type.startswith("text/plain")
        assert b"trustgate_requests_total" in body


class TestSecurityMetrics:
    def test_security_event_counted_without_repository(self):
        """R: Should count gate outcomes even when no repository is wired."""
        labels = {"action": "captcha_blocked", "risk": "high"}
        before = get_sample_value("trustgate_security_events_total", labels)

        emit_security_event(None, action=SecurityAction.CAPTCHA_BLOCKED)

        assert get_sample_value("trustgate_security_events_total", labels) == before + 1

    def test_rejected_transition_counted(self, machine):
        """R: Should count a failed transition by its error code."""
        labels = {"transition": "submit_credentials", "code": "INVALID_CREDENTIALS"}
        before = get_sample_value("trustgate_transition_errors_total", labels)

        result = machine.submit_credentials("ana@corp.test", "wrong")

        assert not result.ok
        assert get_sample_value("trustgate_transition_errors_total", labels) == before + 1
