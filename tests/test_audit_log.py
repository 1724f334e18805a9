"""Tests for the change audit log."""
import pytest

from vyos_config_engine.config_engine import CommandBatch, CommandError, CommitError, ExecuteResult
from vyos_config_engine.utils.audit_log import (
    ChangeRecord,
    audit_logger,
    get_recent_changes,
    record_execution,
    setup_audit_logging,
)


@pytest.fixture
def audit_file(tmp_path):
    path = setup_audit_logging(str(tmp_path))
    yield path
    for handler in list(audit_logger.handlers):
        handler.close()
        audit_logger.removeHandler(handler)
    audit_logger.propagate = True


def batch(*statements, description="apply interface"):
    return CommandBatch(statements=list(statements), description=description)


class TestChangeRecord:
    """Tests for ChangeRecord serialization."""

    def test_json(self):
        record = ChangeRecord(
            timestamp="2026-01-01T00:00:00+00:00",
            device_id="edge-1",
            operation="execute",
            user="ops",
            success=True,
            statements=["set system host-name 'edge-1'"],
        )
        assert ChangeRecord.from_json(record.to_json()) == record


class TestRecordExecution:
    """Tests for writing and reading audit records."""

    def test_success_written(self, audit_file):
        result = ExecuteResult(device_id="edge-1", success=True, state="done",
                               transcript="vyos@edge-1# ")
        record_execution(result, batch("set system host-name 'edge-1'"), user="ops")

        records = get_recent_changes(str(audit_file))
        assert len(records) == 1
        assert records[0].device_id == "edge-1"
        assert records[0].user == "ops"
        assert records[0].success is True
        assert records[0].statements == ["set system host-name 'edge-1'"]
        assert records[0].checksum is not None
        assert records[0].description == "apply interface"

    def test_failure_fields(self, audit_file):
        error = CommitError("Commit failed", statement="commit")
        result = ExecuteResult(device_id="edge-1", success=False, state="rolled_back",
                               rollback_performed=True, error=error)
        record = record_execution(result, batch("set interfaces ethernet eth1 mtu '9000'"))

        assert record.error_kind == "commit"
        assert record.rollback_performed is True
        assert get_recent_changes(str(audit_file))[0].error_kind == "commit"

    def test_filters_and_order(self, audit_file):
        for device_id in ("edge-1", "edge-2", "edge-1"):
            record_execution(ExecuteResult(device_id=device_id, success=True), batch(device_id))

        recent = get_recent_changes(str(audit_file), device_id="edge-1")
        assert len(recent) == 2
        assert get_recent_changes(str(audit_file), limit=1)[0].statements == ["edge-1"]
        assert get_recent_changes(str(audit_file), operation="rollback") == []

    def test_malformed_lines_skipped(self, audit_file):
        record_execution(ExecuteResult(device_id="edge-1", success=True), batch())
        with open(audit_file, "a", encoding="utf-8") as f:
            f.write("not json\n\n")
        assert len(get_recent_changes(str(audit_file))) == 1

    def test_missing_file(self, tmp_path):
        assert get_recent_changes(str(tmp_path / "missing.log")) == []

    def test_operation_recorded(self, audit_file):
        record_execution(ExecuteResult(device_id="edge-1", success=True), batch("rollback 3"),
                         operation="rollback")
        assert get_recent_changes(str(audit_file), operation="rollback")[0].statements == ["rollback 3"]

    def test_secrets_masked(self, audit_file):
        statement = "set system login user ops authentication plaintext-password 'hunter2'"
        error = CommandError(f"'{statement}' rejected: Error: weak password", statement=statement)
        result = ExecuteResult(
            device_id="edge-1",
            success=False,
            error=error,
            transcript=f"vyos@edge-1# {statement}\r\nError: weak password\r\nvyos@edge-1# ",
        )
        record = record_execution(result, batch(statement))

        assert "hunter2" not in audit_file.read_text()
        assert record.statements == [
            "set system login user ops authentication plaintext-password '****'"
        ]
        assert "'****'" in record.output
        assert "'****'" in record.error

    def test_checksum_over_real_statements(self, audit_file):
        """Masking does not change which batch the checksum identifies."""
        first = record_execution(ExecuteResult(device_id="edge-1", success=True),
                                 batch("set system login user ops authentication plaintext-password 'a'"))
        second = record_execution(ExecuteResult(device_id="edge-1", success=True),
                                  batch("set system login user ops authentication plaintext-password 'b'"))
        assert first.statements == second.statements
        assert first.checksum != second.checksum
