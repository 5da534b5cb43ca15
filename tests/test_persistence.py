"""
Tests for persistence — install receipt and audit ledger.
"""

import json
from pathlib import Path

from formula_runner.core.models.install import InstallReceipt
from formula_runner.core.persistence.audit import AuditEntry, AuditWriter
from formula_runner.core.persistence.receipt_file import load_receipt, save_receipt


class TestReceiptFile:
    """Tests for INSTALL_RECEIPT.json persistence."""

    def test_save_and_load(self, tmp_path: Path):
        """Receipt roundtrips through save/load."""
        path = tmp_path / "keg" / "INSTALL_RECEIPT.json"
        receipt = InstallReceipt(
            name="texlive-core",
            version="2018.01pre",
            patch_status="applied",
            pruned=["bin/allcm"],
        )

        save_receipt(receipt, path)
        loaded = load_receipt(path)

        assert loaded is not None
        assert loaded.name == "texlive-core"
        assert loaded.pruned == ["bin/allcm"]

    def test_load_missing(self, tmp_path: Path):
        assert load_receipt(tmp_path / "nope.json") is None

    def test_load_corrupt(self, tmp_path: Path):
        """A half-written or hand-edited receipt counts as no receipt."""
        path = tmp_path / "INSTALL_RECEIPT.json"
        path.write_text("{not json")
        assert load_receipt(path) is None

    def test_load_wrong_shape(self, tmp_path: Path):
        path = tmp_path / "INSTALL_RECEIPT.json"
        path.write_text(json.dumps({"version": "1"}))
        assert load_receipt(path) is None

    def test_save_is_readable_json_without_leftovers(self, tmp_path: Path):
        path = tmp_path / "INSTALL_RECEIPT.json"
        save_receipt(InstallReceipt(name="demo", version="1.0"), path)

        data = json.loads(path.read_text())
        assert data["schema_version"] == 2
        assert list(tmp_path.glob(".receipt_*")) == []


class TestAuditWriter:
    """Tests for the NDJSON audit ledger."""

    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path / ".state")
        writer.write(AuditEntry(operation_id="op-1", operation="install", formula="demo", status="ok"))
        writer.write(AuditEntry(operation_id="op-2", operation="test", formula="demo", status="failed"))

        entries = writer.read_all()
        assert [e.operation_id for e in entries] == ["op-1", "op-2"]
        assert writer.path == tmp_path / ".state" / "audit.ndjson"

    def test_one_line_per_entry(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        for i in range(3):
            writer.write(AuditEntry(operation_id=f"op-{i}"))
        lines = path.read_text().splitlines()
        assert len(lines) == 3
        assert json.loads(lines[0])["operation_id"] == "op-0"

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        for i in range(5):
            writer.write(AuditEntry(operation_id=f"op-{i}"))
        assert [e.operation_id for e in writer.read_recent(2)] == ["op-3", "op-4"]

    def test_corrupt_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry(operation_id="op-1"))
        with path.open("a") as f:
            f.write("garbage\n\n")
        writer.write(AuditEntry(operation_id="op-2"))

        assert [e.operation_id for e in writer.read_all()] == ["op-1", "op-2"]

    def test_read_missing(self, tmp_path: Path):
        assert AuditWriter(tmp_path / "none.ndjson").read_all() == []

    def test_write_failure_does_not_raise(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        AuditWriter(blocker / "audit.ndjson").write(AuditEntry(operation_id="op-1"))
