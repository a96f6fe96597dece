"""
Unit tests for AuditLogger.
"""

import pytest
from loguru import logger

from resource_server.services.audit import (
    MASK,
    AuditLogger,
    AuditOptions,
    mask_sensitive,
)
from resource_server.services.classifier import FaultContext, classify
from resource_server.services.errors import UpstreamError


@pytest.fixture
def records():
    """Capture audit records emitted through loguru."""
    captured: list[dict] = []
    handler_id = logger.add(
        lambda message: captured.append(message.record),
        filter=lambda record: record["extra"].get("audit") is True,
        level="DEBUG",
    )
    yield captured
    logger.remove(handler_id)


class TestAuditLogger:
    """Test cases for audit events."""

    def test_access_event(self, records):
        AuditLogger().log_access(
            "Machine", "abc123", "read", "req-1", user_id="u1", ip_address="10.0.0.1"
        )

        assert len(records) == 1
        record = records[0]
        assert record["level"].name == "INFO"
        assert record["extra"]["module"] == "AuditLog"
        payload = record["extra"]["audit_record"]
        assert payload["event_type"] == "resource_access"
        assert payload["resource_type"] == "Machine"
        assert payload["status"] == "success"
        assert payload["user_id"] == "u1"
        assert record["message"] == "resource_access: read Machine (abc123) - success"

    def test_state_is_omitted_by_default(self, records):
        AuditLogger().log_access(
            "Machine", "abc123", "read", "req-1", snapshot={"system_id": "abc123"}
        )
        assert "after_state" not in records[0]["extra"]["audit_record"]

    def test_state_is_masked(self, records):
        audit = AuditLogger(AuditOptions(include_resource_state=True))
        audit.log_access(
            "Machine",
            "abc123",
            "read",
            "req-1",
            snapshot={"hostname": "n1", "power": {"power_pass": "x", "api_token": "t"}},
        )
        state = records[0]["extra"]["audit_record"]["after_state"]
        assert state["hostname"] == "n1"
        assert state["power"]["api_token"] == MASK
        assert state["power"]["power_pass"] == "x"

    def test_failure_event(self, records):
        error = classify(UpstreamError(404, "not_found"), FaultContext("Machine", "abc123"))
        AuditLogger().log_failure("Machine", "abc123", "read", "req-1", error)

        record = records[0]
        assert record["level"].name == "ERROR"
        details = record["extra"]["audit_record"]["error_details"]
        assert details["type"] == "ClassifiedError"
        assert details["kind"] == "resource_not_found"
        assert details["http_status"] == 404

    def test_cache_operation_event(self, records):
        AuditLogger().log_cache_op("Machines", "invalidate_all", "req-2", meta={"count": 3})
        payload = records[0]["extra"]["audit_record"]
        assert payload["event_type"] == "cache_operation"
        assert payload["action"] == "invalidate_all"
        assert payload["details"] == {"count": 3}

    def test_set_options(self):
        audit = AuditLogger()
        audit.set_options(include_resource_state=True)
        assert audit.options.include_resource_state is True


class TestMaskSensitive:
    def test_nested_keys_are_masked(self):
        value = {"password": "p", "items": [{"secret_key": "s", "name": "a"}]}
        masked = mask_sensitive(value, ["password", "secret"])
        assert masked == {"password": MASK, "items": [{"secret_key": MASK, "name": "a"}]}
        assert value["password"] == "p"

    def test_match_is_case_insensitive(self):
        assert mask_sensitive({"AuthToken": "t"}, ["token"]) == {"AuthToken": MASK}
