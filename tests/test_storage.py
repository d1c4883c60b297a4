"""Tests for key-value stores, the persistence adapter and the saver."""

import json

import pytest

from printstack.errors import PersistenceError, SchemaError
from printstack.schema import Snapshot
from printstack.storage import JsonFileStore, MemoryStore, PersistenceAdapter, SnapshotSaver

from conftest import make_cube, make_filament


class BrokenStore(MemoryStore):
    """Store that fails every operation once ``broken`` is set."""

    def __init__(self, broken: bool = True):
        super().__init__()
        self.broken = broken

    def _check(self):
        if self.broken:
            raise OSError("quota exceeded")

    def get_item(self, key):
        self._check()
        return super().get_item(key)

    def set_item(self, key, value):
        self._check()
        super().set_item(key, value)

    def remove_item(self, key):
        self._check()
        super().remove_item(key)

    def keys(self):
        self._check()
        return super().keys()


class FlakyStore(MemoryStore):
    """Store failing ``failures`` writes after the first removal, then recovering."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures
        self.ready = False

    def set_item(self, key, value):
        if self.ready and self.failures > 0:
            self.failures -= 1
            raise OSError("disk full")
        super().set_item(key, value)

    def remove_item(self, key):
        super().remove_item(key)
        self.ready = True


def sample_snapshot() -> Snapshot:
    return Snapshot(
        filaments=[make_filament()],
        models=[make_cube()],
        categories=["Functional", "Other"],
    )


class TestJsonFileStore:
    """Tests for the file-backed store."""

    def test_persists_across_instances(self, tmp_path):
        """Test values survive reopening."""
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        store.set_item("a", "1")
        store.set_item("b", "2")
        store.remove_item("a")

        reopened = JsonFileStore(path)
        assert reopened.get_item("a") is None
        assert reopened.get_item("b") == "2"
        assert reopened.keys() == ["b"]

    def test_missing_file_is_empty(self, tmp_path):
        """Test a missing file starts empty."""
        assert JsonFileStore(tmp_path / "none.json").keys() == []

    def test_non_object_refuses_writes(self, tmp_path):
        """Test a file not holding an object is kept and never overwritten."""
        path = tmp_path / "store.json"
        path.write_text("[1, 2]")
        store = JsonFileStore(path)

        assert store.load_error is not None
        assert store.keys() == []
        with pytest.raises(OSError):
            store.set_item("a", "1")
        assert path.read_text() == "[1, 2]"

    def test_corrupt_file_uses_memory(self, tmp_path):
        """Test a truncated file leaves the adapter on the in-memory store."""
        path = tmp_path / "store.json"
        path.write_text("{truncated")
        adapter = PersistenceAdapter(JsonFileStore(path))

        assert adapter.using_fallback
        assert adapter.load() is None
        adapter.save(sample_snapshot())
        assert adapter.load().filaments == [make_filament()]
        assert path.read_text() == "{truncated"

    def test_write_replaces_file(self, tmp_path):
        """Test writes leave no temporary files behind."""
        path = tmp_path / "store" / "store.json"
        store = JsonFileStore(path)
        store.set_item("a", "1")
        store.set_item("b", "2")

        assert [p.name for p in path.parent.iterdir()] == ["store.json"]
        assert json.loads(path.read_text()) == {"a": "1", "b": "2"}


class TestNamespacing:
    """Tests for environment key prefixes."""

    def test_namespace_from_settings(self):
        """Test the test environment namespace."""
        adapter = PersistenceAdapter(MemoryStore())
        assert adapter.namespace == "printstack_test_"

    def test_namespaced_key(self):
        """Test base and legacy keys map into the namespace once."""
        adapter = PersistenceAdapter(MemoryStore(), namespace="printstack_development_")

        assert adapter.namespaced_key("filaments") == "printstack_development_filaments"
        assert adapter.namespaced_key("printstack_models") == "printstack_development_models"
        assert adapter.namespaced_key("printstack_production_prints") == "printstack_production_prints"

    def test_strip_namespace(self):
        """Test environment prefixes are removed."""
        adapter = PersistenceAdapter(MemoryStore())
        assert adapter.strip_namespace("printstack_production_filaments") == "filaments"
        assert adapter.strip_namespace("other") == "other"


class TestFallback:
    """Tests for the in-memory fallback store."""

    def test_no_store(self):
        """Test missing store uses memory."""
        adapter = PersistenceAdapter()
        assert adapter.using_fallback

    def test_store_rejecting_writes(self):
        """Test a store rejecting writes is not used."""
        adapter = PersistenceAdapter(BrokenStore())

        assert adapter.using_fallback
        adapter.save(sample_snapshot())
        assert adapter.load().filaments == [make_filament()]

    def test_failed_write_keeps_snapshot_in_memory(self):
        """Test a store failing later raises while the fallback holds the snapshot."""
        store = BrokenStore(broken=False)
        adapter = PersistenceAdapter(store)
        assert not adapter.using_fallback

        store.broken = True
        with pytest.raises(PersistenceError):
            adapter.save(sample_snapshot())

        assert adapter.using_fallback
        assert adapter.primary is store
        assert "printstack_test_snapshot" in adapter.fallback.data
        assert adapter.load().filaments == [make_filament()]

    def test_recovered_store_used_again(self):
        """Test the next save goes to a store that failed once."""
        store = FlakyStore(failures=1)
        adapter = PersistenceAdapter(store)

        with pytest.raises(PersistenceError):
            adapter.save(sample_snapshot())
        adapter.save(Snapshot(filaments=[make_filament(), make_filament(id=3, color_name="Blue", color_hex="#0000FF")]))

        assert not adapter.using_fallback
        reopened = PersistenceAdapter(store)
        assert [f.id for f in reopened.load().filaments] == [1, 3]

    def test_both_failing_raises(self):
        """Test PersistenceError when the fallback also fails."""
        adapter = PersistenceAdapter(MemoryStore())
        broken = BrokenStore()
        adapter.primary = broken
        adapter.fallback = broken

        with pytest.raises(PersistenceError):
            adapter.save(sample_snapshot())


class TestSaveLoad:
    """Tests for snapshot documents and mirrors."""

    def test_empty_store_loads_nothing(self):
        """Test nothing stored returns None."""
        assert PersistenceAdapter(MemoryStore()).load() is None

    def test_round_trip(self):
        """Test saved snapshot loads back."""
        store = MemoryStore()
        adapter = PersistenceAdapter(store)
        original = sample_snapshot()

        saved_at = adapter.save(original)
        loaded = PersistenceAdapter(store).load()

        assert loaded.filaments == original.filaments
        assert loaded.models == original.models
        assert loaded.categories == original.categories
        assert loaded.material_types == original.material_types
        assert loaded.saved_at == saved_at

    def test_mirror_keys_written(self):
        """Test per-entity mirrors accompany the document."""
        store = MemoryStore()
        PersistenceAdapter(store).save(sample_snapshot())

        document = json.loads(store.data["printstack_test_snapshot"])
        assert document["version"] == "2.0"
        assert document["savedAt"]
        assert json.loads(store.data["printstack_test_filaments"])[0]["brand"] == "Acme"
        assert json.loads(store.data["printstack_test_models"])[0]["name"] == "Cube"
        assert json.loads(store.data["printstack_test_prints"]) == []
        assert json.loads(store.data["printstack_test_modelCategories"]) == ["Functional", "Other"]

    def test_rebuild_from_mirrors(self):
        """Test a missing snapshot key is rebuilt from mirrors."""
        store = MemoryStore({
            "printstack_test_filaments": json.dumps([make_filament().to_dict()]),
            "printstack_test_modelCategories": json.dumps(["Functional"]),
        })
        snapshot = PersistenceAdapter(store).load()

        assert snapshot.filaments == [make_filament()]
        assert snapshot.categories == ["Functional", "Other"]

    def test_corrupt_snapshot_uses_mirrors(self):
        """Test unreadable snapshot falls back to mirrors."""
        store = MemoryStore({
            "printstack_test_snapshot": "{broken",
            "printstack_test_filaments": json.dumps([make_filament().to_dict()]),
        })
        snapshot = PersistenceAdapter(store).load()
        assert snapshot.filaments == [make_filament()]

    def test_corrupt_snapshot_without_mirrors_raises(self):
        """Test unreadable snapshot with nothing else raises."""
        store = MemoryStore({"printstack_test_snapshot": "{broken"})
        with pytest.raises(SchemaError):
            PersistenceAdapter(store).load()

    def test_migration_report_kept(self):
        """Test migration warnings are exposed after load."""
        store = MemoryStore({
            "printstack_test_snapshot": json.dumps({
                "filaments": [{"id": 1, "material": "PLA", "color": "Red"}],
            }),
        })
        adapter = PersistenceAdapter(store)
        snapshot = adapter.load()

        assert snapshot.filaments[0].nominal_weight == 1000.0
        assert adapter.migration_report

    def test_export_document(self):
        """Test export is indented JSON with metadata."""
        adapter = PersistenceAdapter(MemoryStore())
        text = adapter.export(sample_snapshot())
        document = json.loads(text)

        assert "\n  " in text
        assert document["application"] == "PrintStack"
        assert document["metadata"]["totalModels"] == 1


class TestLegacyRescue:
    """Tests for adopting keys written by earlier releases."""

    def test_legacy_keys_moved(self):
        """Test un-namespaced keys move into the namespace."""
        store = MemoryStore({
            "printstack_filaments": json.dumps([{"id": 1, "brand": "Ab", "material": "PLA", "color": "Red"}]),
            "models": json.dumps([]),
        })
        adapter = PersistenceAdapter(store)
        snapshot = adapter.load()

        assert "printstack_filaments" not in store.data
        assert "models" not in store.data
        assert "printstack_test_filaments" in store.data
        assert "printstack_test_models" in store.data
        assert snapshot.filaments[0].brand == "Ab"

    def test_existing_target_not_overwritten(self):
        """Test a legacy key is skipped when the namespaced key exists."""
        store = MemoryStore({
            "printstack_filaments": "[]",
            "printstack_test_filaments": json.dumps([make_filament().to_dict()]),
        })
        result = PersistenceAdapter(store).rescue_legacy_keys()

        assert result.skipped == ["printstack_filaments"]
        assert result.migrated == []
        assert store.data["printstack_filaments"] == "[]"

    def test_other_environments_untouched(self):
        """Test keys of other environments are not rescued."""
        store = MemoryStore({"printstack_production_filaments": "[]"})
        result = PersistenceAdapter(store).rescue_legacy_keys()

        assert result.migrated == []
        assert "printstack_production_filaments" in store.data


class TestMaintenance:
    """Tests for clearing and statistics."""

    def test_clear_namespace(self):
        """Test only the current namespace is cleared."""
        store = MemoryStore({"printstack_production_filaments": "[]"})
        adapter = PersistenceAdapter(store)
        adapter.save(sample_snapshot())

        removed = adapter.clear_namespace()

        assert removed == 6
        assert store.keys() == ["printstack_production_filaments"]

    def test_stats(self):
        """Test key count and size of the namespace."""
        adapter = PersistenceAdapter(MemoryStore({"unrelated": "x"}))
        adapter.save(sample_snapshot())
        stats = adapter.stats()

        assert stats.namespace == "printstack_test_"
        assert stats.key_count == 6
        assert "snapshot" in stats.keys
        assert stats.total_bytes > 0
        assert stats.using_fallback is False
        assert stats.to_dict()["keyCount"] == 6


class FakeAdapter:
    """Adapter double recording saves."""

    def __init__(self):
        self.fail = False
        self.saves = []

    def save(self, snapshot):
        if self.fail:
            raise PersistenceError("disk full")
        self.saves.append(snapshot)
        return f"2024-01-01T00:00:0{len(self.saves)}+00:00"


class TestSnapshotSaver:
    """Tests for coalesced saving."""

    def test_flush_writes_latest(self):
        """Test pending revisions collapse into one write."""
        adapter = FakeAdapter()
        saver = SnapshotSaver(adapter, Snapshot)
        saver.mark_dirty(1)
        saver.mark_dirty(3)
        saver.mark_dirty(2)

        assert saver.flush() is True
        assert len(adapter.saves) == 1
        assert saver.saved_revision == 3
        assert not saver.dirty

    def test_flush_without_pending(self):
        """Test clean saver does not write."""
        adapter = FakeAdapter()
        assert SnapshotSaver(adapter, Snapshot).flush() is True
        assert adapter.saves == []

    def test_failure_retried(self):
        """Test a failed save stays pending until a later flush."""
        adapter = FakeAdapter()
        adapter.fail = True
        saver = SnapshotSaver(adapter, Snapshot)

        saver.on_revision(1)
        assert saver.dirty
        assert isinstance(saver.last_error, PersistenceError)

        adapter.fail = False
        assert saver.flush() is True
        assert saver.last_error is None
        assert saver.saved_revision == 1
        assert saver.last_saved_at == "2024-01-01T00:00:01+00:00"
