"""
Unit tests for the snapshot file helpers.
Run: pytest tests/unit/test_snapshot.py -v
"""
import json

import pytest

from playerstats.core.snapshot import SnapshotError, read_snapshot, write_snapshot


class TestReadSnapshot:
    """Tests for read_snapshot."""

    def test_missing_file(self, snapshot_path):
        assert read_snapshot(snapshot_path) is None

    def test_valid_object(self, snapshot_path):
        snapshot_path.write_text('{"updatedAt": "2024-01-15T12:00:00Z", "servers": {}}')
        assert read_snapshot(snapshot_path)["servers"] == {}

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]", '"text"', ""])
    def test_bad_content_raises(self, snapshot_path, content):
        snapshot_path.write_text(content)
        with pytest.raises(SnapshotError):
            read_snapshot(snapshot_path)


class TestWriteSnapshot:
    """Tests for write_snapshot."""

    def test_writes_and_replaces(self, snapshot_path):
        write_snapshot(snapshot_path, {"version": 1})
        write_snapshot(snapshot_path, {"version": 2})

        assert json.loads(snapshot_path.read_text()) == {"version": 2}

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "data.json"
        write_snapshot(path, {"ok": True})
        assert path.exists()

    def test_no_temp_files_left_behind(self, snapshot_path):
        write_snapshot(snapshot_path, {"ok": True})
        assert [item.name for item in snapshot_path.parent.iterdir()] == ["data.json"]

    def test_unserializable_payload_keeps_previous_file(self, snapshot_path):
        write_snapshot(snapshot_path, {"version": 1})

        with pytest.raises(TypeError):
            write_snapshot(snapshot_path, {"bad": object()})

        assert json.loads(snapshot_path.read_text()) == {"version": 1}
        assert [item.name for item in snapshot_path.parent.iterdir()] == ["data.json"]
