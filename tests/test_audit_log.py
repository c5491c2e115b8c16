# Tests for the structured audit logger

import json
import logging

from lockbox.core import AuditLogger, EventSeverity, EventType, get_audit_logger
from lockbox.core.audit_log import AUDIT_LOGGER_NAME


def _read_events(audit):
    return [json.loads(line) for line in audit.log_file.read_text().splitlines()]


class TestAuditLogger:
    def test_creates_log_dir(self, tmp_path):
        audit = AuditLogger(tmp_path / "nested" / "logs")
        assert (tmp_path / "nested" / "logs").is_dir()
        assert audit.log_file.name.startswith("audit_")
        assert audit.log_file.suffix == ".log"

    def test_event_is_one_json_line(self, audit):
        event_id = audit.log_event(
            EventType.VAULT_ERROR,
            EventSeverity.CRITICAL,
            "Something failed",
            details={"entry_id": "abc"},
        )
        (event,) = _read_events(audit)
        assert event["event_id"] == event_id
        assert event["event_type"] == "vault.error"
        assert event["severity"] == "critical"
        assert event["details"] == {"entry_id": "abc"}
        assert "hostname" in event["user_context"]

    def test_vault_event_prefix_and_default_severity(self, audit):
        audit.log_vault_event(EventType.VAULT_CREATED, "Vault initialized")
        (event,) = _read_events(audit)
        assert event["message"] == "Vault: Vault initialized"
        assert event["severity"] == "info"

    def test_custom_user_context(self, audit):
        audit.log_event(
            EventType.IDENTITY_CREATED, EventSeverity.INFO, "Identity generated",
            user_context={"os_user": "tester"},
        )
        (event,) = _read_events(audit)
        assert event["user_context"] == {"os_user": "tester"}

    def test_does_not_propagate(self, audit):
        assert logging.getLogger(AUDIT_LOGGER_NAME).propagate is False

    def test_event_ids_unique(self, audit):
        ids = {audit.log_vault_event(EventType.VAULT_ENTRY_LISTED, "x") for _ in range(5)}
        assert len(ids) == 5


class TestGlobalAuditLogger:
    def test_singleton_uses_configured_log_dir(self, tmp_path):
        first = get_audit_logger()
        assert first is get_audit_logger()
        assert first.log_dir == tmp_path / "audit_logs"
