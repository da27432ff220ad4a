"""Unit tests for kevwatch.state — notification ledger and ledger store."""

import datetime as dt
import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from kevwatch.errors import PersistenceError
from kevwatch.models import NotificationState, VulnerabilityRecord
from kevwatch.state import Ledger, LedgerStore

T1 = dt.datetime(2024, 6, 1, 12, 0, tzinfo=dt.timezone.utc)
T2 = dt.datetime(2024, 6, 2, 12, 0, tzinfo=dt.timezone.utc)


def _rec(cve_id: str) -> VulnerabilityRecord:
    return VulnerabilityRecord(id=cve_id, date_added=dt.date(2024, 1, 1))


# ── Ledger ───────────────────────────────────────────────────────────────────


class TestLedger:
    def test_lookup_unseen_default(self):
        ledger = Ledger()
        state = ledger.lookup("CVE-1")
        assert state.record_id == "CVE-1"
        assert state.sent is False
        assert state.sent_at is None

    def test_lookup_does_not_track(self):
        ledger = Ledger()
        ledger.lookup("CVE-1")
        assert "CVE-1" not in ledger
        assert len(ledger) == 0

    def test_merge_counts_new(self):
        ledger = Ledger()
        assert ledger.merge([_rec("CVE-1"), _rec("CVE-2")]) == 2
        assert ledger.merge([_rec("CVE-2"), _rec("CVE-3")]) == 1
        assert len(ledger) == 3

    def test_merge_keeps_sent_state(self):
        ledger = Ledger()
        ledger.mark_sent("CVE-1", T1)
        ledger.merge([_rec("CVE-1")])
        assert ledger.lookup("CVE-1").sent is True

    def test_merge_duplicate_ids_in_batch(self):
        ledger = Ledger()
        assert ledger.merge([_rec("CVE-1"), _rec("CVE-1")]) == 1

    def test_mark_sent(self):
        ledger = Ledger()
        ledger.merge([_rec("CVE-1")])
        assert ledger.mark_sent("CVE-1", T1) is True
        state = ledger.lookup("CVE-1")
        assert state.sent is True
        assert state.sent_at == T1

    def test_mark_sent_is_idempotent(self, caplog):
        ledger = Ledger()
        ledger.mark_sent("CVE-1", T1)
        with caplog.at_level(logging.DEBUG, logger="kevwatch.state"):
            assert ledger.mark_sent("CVE-1", T2) is False
        assert ledger.lookup("CVE-1").sent_at == T1
        assert "already marked sent" in caplog.text

    def test_mark_sent_unseen_tracks_it(self):
        ledger = Ledger()
        assert ledger.mark_sent("CVE-1", T1) is True
        assert "CVE-1" in ledger
        assert ledger.lookup("CVE-1").sent_at == T1
        assert ledger.merge([_rec("CVE-1")]) == 0

    def test_duplicate_unsent_entry_does_not_unsend(self):
        ledger = Ledger(
            [
                NotificationState(record_id="CVE-1", sent=True, sent_at=T1),
                NotificationState(record_id="CVE-1"),
            ]
        )
        assert ledger.lookup("CVE-1").sent is True
        assert ledger.lookup("CVE-1").sent_at == T1
        assert len(ledger) == 1

    def test_duplicate_sent_entry_upgrades_unsent(self):
        ledger = Ledger(
            [
                NotificationState(record_id="CVE-1"),
                NotificationState(record_id="CVE-1", sent=True, sent_at=T1),
            ]
        )
        assert ledger.lookup("CVE-1").sent is True

    def test_snapshot_insertion_order(self):
        ledger = Ledger()
        ledger.merge([_rec("CVE-3"), _rec("CVE-1"), _rec("CVE-2")])
        ledger.mark_sent("CVE-1", T1)
        ids = [rid for rid, _ in ledger.snapshot()]
        assert ids == ["CVE-3", "CVE-1", "CVE-2"]

    def test_stats(self):
        ledger = Ledger()
        ledger.merge([_rec("CVE-1"), _rec("CVE-2")])
        ledger.mark_sent("CVE-2", T1)
        assert ledger.stats() == {"tracked": 2, "sent": 1}

    def test_init_from_states(self):
        ledger = Ledger([NotificationState(record_id="CVE-1", sent=True, sent_at=T1)])
        assert ledger.lookup("CVE-1").sent_at == T1


# ── LedgerStore ──────────────────────────────────────────────────────────────


class TestLedgerStore:
    def test_missing_file_is_empty(self, tmp_path: Path):
        ledger = LedgerStore(tmp_path / "ledger.json").load()
        assert len(ledger) == 0

    def test_save_and_load(self, tmp_path: Path):
        store = LedgerStore(tmp_path / "state" / "ledger.json")
        ledger = Ledger()
        ledger.merge([_rec("CVE-1"), _rec("CVE-2")])
        ledger.mark_sent("CVE-2", T1)
        store.save(ledger)

        loaded = store.load()
        assert loaded.snapshot() == ledger.snapshot()
        assert loaded.lookup("CVE-1").sent_at is None
        assert loaded.lookup("CVE-2").sent_at == T1

    def test_file_layout(self, tmp_path: Path):
        path = tmp_path / "ledger.json"
        ledger = Ledger()
        ledger.merge([_rec("CVE-1")])
        ledger.mark_sent("CVE-2", T1)
        LedgerStore(path).save(ledger)

        data = json.loads(path.read_text())
        assert data["schema_version"] == LedgerStore.SCHEMA_VERSION
        assert data["records"][0] == {"id": "CVE-1", "sent": False, "sent_at": None}
        assert data["records"][1]["id"] == "CVE-2"
        assert data["records"][1]["sent"] is True
        assert data["records"][1]["sent_at"].startswith("2024-06-01T12:00:00")

    def test_round_trip_byte_identical(self, tmp_path: Path):
        path = tmp_path / "ledger.json"
        store = LedgerStore(path)
        ledger = Ledger()
        ledger.merge([_rec("CVE-1"), _rec("CVE-2")])
        ledger.mark_sent("CVE-1", T1)
        store.save(ledger)
        first = path.read_bytes()

        store.save(store.load())
        assert path.read_bytes() == first

    def test_no_tmp_left_behind(self, tmp_path: Path):
        store = LedgerStore(tmp_path / "ledger.json")
        store.save(Ledger())
        assert [p.name for p in tmp_path.iterdir()] == ["ledger.json"]

    def test_corrupt_file_raises(self, tmp_path: Path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError):
            LedgerStore(path).load()

    def test_schema_mismatch_raises(self, tmp_path: Path):
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"schema_version": 99, "records": []}))
        with pytest.raises(PersistenceError, match="schema version"):
            LedgerStore(path).load()

    def test_invalid_record_raises(self, tmp_path: Path):
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"schema_version": 1, "records": [{"id": "CVE-1", "sent": True}]}))
        with pytest.raises(PersistenceError, match="invalid record"):
            LedgerStore(path).load()

    def test_duplicate_rows_keep_sent(self, tmp_path: Path):
        path = tmp_path / "ledger.json"
        rows = [
            {"id": "CVE-1", "sent": True, "sent_at": "2024-06-01T12:00:00Z"},
            {"id": "CVE-1", "sent": False, "sent_at": None},
        ]
        path.write_text(json.dumps({"schema_version": 1, "records": rows}))
        state = LedgerStore(path).load().lookup("CVE-1")
        assert state.sent is True
        assert state.sent_at == T1

    def test_load_or_empty_degrades(self, tmp_path: Path):
        path = tmp_path / "ledger.json"
        path.write_text("garbage")
        ledger = LedgerStore(path).load_or_empty()
        assert len(ledger) == 0

    def test_failed_save_keeps_previous_file(self, tmp_path: Path):
        path = tmp_path / "ledger.json"
        store = LedgerStore(path)
        original = Ledger()
        original.mark_sent("CVE-1", T1)
        store.save(original)
        before = path.read_bytes()

        updated = Ledger()
        updated.merge([_rec("CVE-9")])
        with patch("kevwatch.state.os.fsync", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError, match="disk full"):
                store.save(updated)

        assert path.read_bytes() == before
        assert not (tmp_path / "ledger.json.tmp").exists()
