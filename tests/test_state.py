"""
Tests for restockradar.state module.

Tests state management including:
- Loading and saving snapshot files
- Cold start and corrupted files
- Atomic replacement and temp file cleanup
- Retry behavior of StateStore
"""

from __future__ import annotations

import json

import pytest

from restockradar.exceptions import Cancelled, StorageError
from restockradar.models import snapshot_from_products
from restockradar.retry import RetryPolicy
from restockradar.state import StateStore, read_snapshot, write_snapshot
import restockradar.state.store as store_module

NO_WAIT = RetryPolicy(max_attempts=2, initial_delay=0.0, max_delay=0.0, backoff_multiplier=1.0)


def _leftover_temp_files(directory):
    return [p.name for p in directory.iterdir() if p.name.endswith(".tmp")]


class TestSnapshotFileOperations:
    """Tests for read_snapshot and write_snapshot."""

    def test_save_and_load_round_trip(self, tmp_path, make_product):
        """Test that a snapshot survives a save/load cycle unchanged."""
        state_file = tmp_path / "state.json"
        snapshot = snapshot_from_products(
            [
                make_product("whey", True, 12, name="Amul Whey Protein"),
                make_product("lassi", False, 0, name="Amul Protein Lassi"),
            ]
        )

        write_snapshot(snapshot, state_file)
        loaded = read_snapshot(state_file)

        assert loaded == snapshot

    def test_round_trip_ignores_insertion_order(self, tmp_path, make_product):
        """Test equality regardless of the order products were added."""
        products = [make_product(k, True, i) for i, k in enumerate(("c", "a", "b"), 1)]
        forward = tmp_path / "forward.json"
        backward = tmp_path / "backward.json"

        write_snapshot(snapshot_from_products(products), forward)
        write_snapshot(snapshot_from_products(reversed(products)), backward)

        assert read_snapshot(forward) == read_snapshot(backward)
        assert forward.read_text(encoding="utf-8") == backward.read_text(encoding="utf-8")

    def test_file_format(self, tmp_path, make_product):
        """Test pretty-printed list of records sorted by key."""
        state_file = tmp_path / "state.json"
        write_snapshot(
            snapshot_from_products([make_product("b", False, 0), make_product("a", True, 3)]),
            state_file,
        )

        content = state_file.read_text(encoding="utf-8")
        records = json.loads(content)

        assert content.endswith("\n")
        assert '\n  {\n    "name"' in content
        assert [r["key"] for r in records] == ["a", "b"]
        assert set(records[0]) == {"name", "key", "available", "quantity"}

    def test_save_creates_parent_directory(self, tmp_path, make_product):
        """Test that save creates parent directories if needed."""
        state_file = tmp_path / "nested" / "dir" / "state.json"

        write_snapshot(snapshot_from_products([make_product("a")]), state_file)

        assert state_file.exists()

    def test_empty_file_is_empty_snapshot(self, tmp_path):
        """Test that a zero-byte file loads as empty."""
        state_file = tmp_path / "state.json"
        state_file.write_text("", encoding="utf-8")

        assert read_snapshot(state_file) == {}

    def test_invalid_json_is_not_retryable(self, tmp_path):
        """Test that a corrupted file raises a terminal StorageError."""
        state_file = tmp_path / "state.json"
        state_file.write_text("This is not JSON", encoding="utf-8")

        with pytest.raises(StorageError) as exc_info:
            read_snapshot(state_file)

        assert not exc_info.value.retryable

    def test_non_list_top_level_is_rejected(self, tmp_path):
        """Test that an object at the top level is treated as corrupted."""
        state_file = tmp_path / "state.json"
        state_file.write_text('{"key": "a"}', encoding="utf-8")

        with pytest.raises(StorageError):
            read_snapshot(state_file)

    def test_oversized_file_is_rejected(self, tmp_path, monkeypatch):
        """Test the file size limit."""
        monkeypatch.setattr(store_module, "MAX_STATE_FILE_BYTES", 10)
        state_file = tmp_path / "state.json"
        state_file.write_text("[" + " " * 20 + "]", encoding="utf-8")

        with pytest.raises(StorageError) as exc_info:
            read_snapshot(state_file)

        assert "too large" in str(exc_info.value)
        assert not exc_info.value.retryable

    def test_bad_records_are_skipped(self, tmp_path, recording_logger):
        """Test that invalid records are dropped one by one."""
        state_file = tmp_path / "state.json"
        state_file.write_text(
            json.dumps(
                [
                    {"name": "Good", "key": "good", "available": True, "quantity": 2},
                    {"name": "No key", "available": True, "quantity": 2},
                    "not a record",
                    {"name": "Legacy", "alias": "legacy", "available": False, "inventoryQuantity": 0},
                ]
            ),
            encoding="utf-8",
        )

        snapshot = read_snapshot(state_file, logger=recording_logger)

        assert sorted(snapshot) == ["good", "legacy"]
        assert len(recording_logger.messages("warning")) == 2

    def test_failed_replace_keeps_previous_file(self, tmp_path, make_product, monkeypatch):
        """Test that an interrupted save leaves the old content and no temp file."""
        state_file = tmp_path / "state.json"
        write_snapshot(snapshot_from_products([make_product("old", True, 1)]), state_file)
        before = state_file.read_text(encoding="utf-8")

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(store_module.os, "replace", broken_replace)

        with pytest.raises(StorageError) as exc_info:
            write_snapshot(snapshot_from_products([make_product("new", True, 9)]), state_file)

        assert exc_info.value.retryable
        assert state_file.read_text(encoding="utf-8") == before
        assert _leftover_temp_files(tmp_path) == []

    def test_interrupted_first_save_leaves_no_file(self, tmp_path, make_product, monkeypatch):
        """Test that a crash before the rename leaves no state file at all."""
        state_file = tmp_path / "state.json"

        def crash(fd):
            raise KeyboardInterrupt

        monkeypatch.setattr(store_module.os, "fsync", crash)

        with pytest.raises(KeyboardInterrupt):
            write_snapshot(snapshot_from_products([make_product("a")]), state_file)

        assert not state_file.exists()
        assert _leftover_temp_files(tmp_path) == []


class TestStateStore:
    """Tests for StateStore."""

    def test_missing_file_is_cold_start(self, tmp_path):
        """Test that a missing file loads as an empty snapshot."""
        store = StateStore(tmp_path / "missing.json", NO_WAIT)

        assert store.load() == {}

    def test_corrupted_file_degrades_to_empty(self, tmp_path, recording_logger):
        """Test that a corrupted file yields an empty snapshot with a warning."""
        state_file = tmp_path / "state.json"
        state_file.write_text("{broken", encoding="utf-8")
        store = StateStore(state_file, NO_WAIT, logger=recording_logger)

        assert store.load() == {}
        assert any("Failed to load state" in w for w in recording_logger.messages("warning"))

    def test_load_retries_transient_errors(self, tmp_path, make_product, monkeypatch):
        """Test that a transient read failure is retried."""
        state_file = tmp_path / "state.json"
        snapshot = snapshot_from_products([make_product("a", True, 2)])
        write_snapshot(snapshot, state_file)

        real_read = store_module.read_snapshot
        calls = {"count": 0}

        def flaky_read(path, *, logger=None):
            calls["count"] += 1
            if calls["count"] == 1:
                raise StorageError("file locked")
            return real_read(path, logger=logger)

        monkeypatch.setattr(store_module, "read_snapshot", flaky_read)

        assert StateStore(state_file, NO_WAIT).load() == snapshot
        assert calls["count"] == 2

    def test_save_returns_true(self, tmp_path, make_product):
        """Test a successful save."""
        state_file = tmp_path / "state.json"
        store = StateStore(state_file, NO_WAIT)
        snapshot = snapshot_from_products([make_product("a")])

        assert store.save(snapshot) is True
        assert store.load() == snapshot

    def test_save_failure_returns_false(self, tmp_path, make_product, monkeypatch, recording_logger):
        """Test that save reports failure instead of raising after retries."""
        state_file = tmp_path / "state.json"
        calls = {"count": 0}

        def broken_replace(src, dst):
            calls["count"] += 1
            raise PermissionError("read-only")

        monkeypatch.setattr(store_module.os, "replace", broken_replace)
        store = StateStore(state_file, NO_WAIT, logger=recording_logger)

        assert store.save(snapshot_from_products([make_product("a")])) is False
        assert calls["count"] == 2
        assert not state_file.exists()
        assert _leftover_temp_files(tmp_path) == []
        assert recording_logger.messages("error")

    def test_save_propagates_cancellation(self, tmp_path, make_product):
        """Test that Cancelled is not swallowed by save."""
        import threading

        event = threading.Event()
        event.set()
        store = StateStore(tmp_path / "state.json", NO_WAIT, cancel_event=event)

        with pytest.raises(Cancelled):
            store.save(snapshot_from_products([make_product("a")]))


class TestCorruptedRecords:
    """Tests for records whose values cannot be represented."""

    def test_infinite_quantity_is_skipped(self, tmp_path, recording_logger):
        """Test that a quantity overflowing to infinity drops only that record."""
        state_file = tmp_path / "state.json"
        state_file.write_text(
            '[{"name": "A", "key": "a", "available": true, "quantity": 1e400},'
            ' {"name": "B", "key": "b", "available": true, "quantity": 2}]',
            encoding="utf-8",
        )

        snapshot = StateStore(state_file, NO_WAIT, logger=recording_logger).load()

        assert list(snapshot) == ["b"]
        assert any("#0" in w for w in recording_logger.messages("warning"))

    def test_string_availability(self, tmp_path):
        """Test that "false" strings are read as unavailable."""
        state_file = tmp_path / "state.json"
        state_file.write_text(
            '[{"name": "A", "key": "a", "available": "false", "quantity": 3}]',
            encoding="utf-8",
        )

        assert read_snapshot(state_file)["a"].available is False
