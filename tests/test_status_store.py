"""
Tests for StatusStore.
"""

import json
import pytest

from core.exceptions import StatusStoreError
from core.status_store import StatusStore


@pytest.fixture
def store(tmp_path):
    """Store rooted in a temp directory."""
    return StatusStore(root=tmp_path)


class TestStatusStore:
    """Tests for snapshot read/write."""

    def test_missing_snapshot_is_empty(self, store):
        """No snapshot reads as an empty dict."""
        assert store.read("wrk-api") == {}

    def test_write_creates_directory(self, store, tmp_path):
        """The status directory is created on demand."""
        path = store.write("wrk-api", {"height": 10})

        assert path == tmp_path / "status" / "wrk-api.json"
        assert json.loads(path.read_text(encoding="utf-8")) == {"height": 10}

    def test_write_then_read(self, store):
        """The last write wins."""
        store.write("wrk-api", {"height": 10, "hash": "a"})
        store.write("wrk-api", {"height": 11})

        assert store.read("wrk-api") == {"height": 11}

    def test_prefixes_are_separate(self, store):
        """Each worker type has its own snapshot."""
        store.write("wrk-a", {"n": 1})

        assert store.read("wrk-b") == {}

    def test_malformed_snapshot_is_empty(self, store, tmp_path):
        """Unparseable snapshots are ignored."""
        (tmp_path / "status").mkdir()
        (tmp_path / "status" / "wrk-api.json").write_text("{oops", encoding="utf-8")

        assert store.read("wrk-api") == {}

    def test_non_object_snapshot_is_empty(self, store, tmp_path):
        """Snapshots must be JSON objects."""
        (tmp_path / "status").mkdir()
        (tmp_path / "status" / "wrk-api.json").write_text("[1, 2]", encoding="utf-8")

        assert store.read("wrk-api") == {}

    def test_unserializable_status(self, store):
        """Values JSON cannot encode raise StatusStoreError."""
        store.write("wrk-api", {"height": 10})

        with pytest.raises(StatusStoreError):
            store.write("wrk-api", {"bad": object()})

        assert store.read("wrk-api") == {"height": 10}
        assert list(store.path_for("wrk-api").parent.iterdir()) == [store.path_for("wrk-api")]
