"""
Shared pytest fixtures for the Lockbox test suite.

Autouse fixtures below isolate tests from the live environment:
  - LOCKBOX_* variables -> cleared, home and log dir under tmp_path
  - Audit logger        -> temp directory (no events in the real audit log)
"""

import pytest


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path, monkeypatch):
    """Clear LOCKBOX_* settings and point home/logs at the test's temp dir.

    Also changes into ``tmp_path`` so python-dotenv never picks up a
    developer's ``.env`` file.
    """
    import os

    for name in list(os.environ):
        if name.startswith("LOCKBOX_"):
            monkeypatch.delenv(name, raising=False)

    monkeypatch.setenv("LOCKBOX_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("LOCKBOX_LOG_DIR", str(tmp_path / "audit_logs"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Reset the global AuditLogger singleton for every test.

    The next ``get_audit_logger()`` call builds a fresh instance that writes
    to the temp log directory configured above.
    """
    import lockbox.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    yield

    audit_mod._audit_logger = old_logger


@pytest.fixture
def audit(tmp_path):
    """AuditLogger writing to a temp directory."""
    from lockbox.core import AuditLogger

    return AuditLogger(tmp_path / "audit_logs")
