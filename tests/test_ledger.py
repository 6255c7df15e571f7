"""
Tests for the NDJSON operation ledger.
"""

import json

from src.persistence.ledger import OperationLedger


class TestOperationLedger:
    """Tests for OperationLedger."""

    def test_emit_appends_line(self, tmp_path):
        path = tmp_path / "ledger.ndjson"
        ledger = OperationLedger(path)

        event_id = ledger.emit("optimize_start", details={"country": "DE"})

        lines = path.read_text().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["event_id"] == event_id
        assert entry["type"] == "optimize_start"
        assert entry["level"] == "info"
        assert entry["details"] == {"country": "DE"}
        assert entry["ts_iso"].endswith("Z")

    def test_append_only(self, tmp_path):
        ledger = OperationLedger(tmp_path / "ledger.ndjson")
        first = ledger.emit("a")
        second = ledger.emit("b", level="warning")

        events = ledger.read_events()
        assert [e["event_id"] for e in events] == [first, second]
        assert events[1]["level"] == "warning"

    def test_filter_by_type(self, tmp_path):
        ledger = OperationLedger(tmp_path / "ledger.ndjson")
        ledger.emit("restore")
        ledger.emit("backup_created")
        ledger.emit("restore")
        assert len(ledger.read_events("restore")) == 2

    def test_disabled(self, tmp_path):
        ledger = OperationLedger(None)
        assert ledger.emit("anything") is None
        assert ledger.read_events() == []

    def test_unwritable_is_not_fatal(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        ledger = OperationLedger(blocker / "ledger.ndjson")
        assert ledger.emit("optimize_start") is None

    def test_bad_lines_skipped(self, tmp_path):
        path = tmp_path / "ledger.ndjson"
        path.write_text('{"type": "a"}\nnot json\n\n{"type": "b"}\n')
        assert [e["type"] for e in OperationLedger(path).read_events()] == ["a", "b"]

    def test_non_json_details_stringified(self, tmp_path):
        ledger = OperationLedger(tmp_path / "ledger.ndjson")
        ledger.emit("backup_created", details={"path": tmp_path})
        assert ledger.read_events()[0]["details"]["path"] == str(tmp_path)
