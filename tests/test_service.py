"""End-to-end tests for the inventory service."""

import json

import pytest

from printstack.schema import Snapshot
from printstack.service import InventoryService
from printstack.storage import MemoryStore, PersistenceAdapter

from conftest import make_cube, make_filament


class FailingStore(MemoryStore):
    """Store rejecting every write."""

    def set_item(self, key, value):
        raise OSError("read-only file system")


def seeded_service(store=None, **filament_overrides):
    """Service over a store holding spool 1 and model Cube."""
    store = store if store is not None else MemoryStore()
    PersistenceAdapter(store).save(Snapshot(
        filaments=[make_filament(**filament_overrides)],
        models=[make_cube()],
        categories=["Functional", "Other"],
    ))
    return InventoryService(PersistenceAdapter(store))


def cube_print(weight):
    return {"modelName": "Cube", "printDate": "2024-03-01", "filamentUsages": [{"filamentRef": 1, "actualWeight": weight}]}


class TestPrintWorkflow:
    """Tests for recording prints through the service."""

    def test_happy_path(self):
        """Test print stored, stock debited and printability refreshed."""
        service = seeded_service()
        assert service.can_print_model("Cube").can_print_count == 25

        result = service.record_print(cube_print(22))

        assert result.success
        variance = result.value.usage_variance
        assert (variance.expected_total, variance.actual_total, variance.variance_percent) == (20.0, 22.0, 10.0)
        assert service.repository.get_filament(1).remaining_weight == 478.0
        assert service.can_print_model("Cube").can_print_count == 23
        assert service.can_print_model(2).can_print is True

    def test_insufficient_stock(self):
        """Test shortfall leaves state unchanged."""
        service = seeded_service(remaining_weight=10.0)
        result = service.record_print(cube_print(25))

        assert result.error_code == "INSUFFICIENT_STOCK"
        assert result.error.deficits[0].deficit == 15.0
        assert service.repository.get_filament(1).remaining_weight == 10.0
        assert service.list_prints() == []

    def test_print_assessment(self):
        """Test variance quality uses the model tolerance."""
        service = seeded_service()
        stored = service.record_print(cube_print(22)).value

        assessment = service.print_assessment(stored.id)
        assert assessment.quality.value == "excellent"
        assert assessment.tolerance_percent == 10.0
        assert service.print_assessment("missing") is None

    def test_usage_and_cost(self):
        """Test usage and cost queries."""
        service = seeded_service(purchase_price=30.0)
        service.record_print(cube_print(22))

        assert service.filament_usage(1) == 22.0
        assert service.filament_usage("missing") is None
        assert service.estimated_model_cost("Cube").total == 0.6
        assert service.can_print_model("Nothing") is None

    def test_statistics_refreshed(self):
        """Test cached statistics follow mutations."""
        service = seeded_service()
        assert service.statistics().total_prints == 0

        service.record_print(cube_print(22))

        assert service.statistics().total_prints == 1
        assert service.inventory_summary().remaining_grams == 478.0


class TestFilamentWorkflow:
    """Tests for filament commands through the service."""

    def test_delete_blocked_then_retire(self):
        """Test referenced spool can only be retired."""
        service = seeded_service()

        refused = service.delete_filament(1)
        assert refused.error_code == "REFERENTIAL_INTEGRITY"
        assert [(b.kind, b.name) for b in refused.error.blockers] == [("model", "Cube")]

        assert service.delete_filament(1, soft_retire=True).success
        check = service.can_print_model("Cube")
        assert check.can_print is False
        assert check.missing_requirements == ["Acme PLA (Red) - Out of Stock"]

    def test_duplicate_merge(self):
        """Test merging a duplicate spool."""
        service = seeded_service(remaining_weight=400.0, notes="Opened")
        spool = {
            "brand": "acme",
            "materialType": "PLA",
            "colorName": "Red",
            "colorHex": "#112233",
            "nominalWeight": 1000,
            "remainingWeight": 1000,
            "notes": "New roll",
        }

        assert service.add_filament(spool).error_code == "DUPLICATE_CANDIDATE"
        result = service.add_filament(spool, on_duplicate="merge")

        merged = result.value
        assert merged.nominal_weight == 2000.0
        assert merged.remaining_weight == 1400.0
        assert merged.notes == "Opened\nNew roll"


class TestPersistence:
    """Tests for saving and loading through the adapter."""

    def test_mutations_saved(self):
        """Test a new service sees earlier changes."""
        store = MemoryStore()
        service = seeded_service(store)
        service.record_print(cube_print(22))
        service.add_category("Decor")

        reopened = InventoryService(PersistenceAdapter(store))
        assert reopened.repository.get_filament(1).remaining_weight == 478.0
        assert len(reopened.list_prints()) == 1
        assert "Decor" in reopened.get_categories()
        assert not service.saver.dirty

    def test_legacy_snapshot_migrated(self):
        """Test a legacy flat snapshot loads migrated."""
        store = MemoryStore({
            "printstack_test_snapshot": json.dumps({
                "filaments": [{"id": 1, "material": "PLA", "color": "Red", "weight": 1000}],
                "models": [{"id": 2, "name": "X", "requirements": [{"material": "PLA", "color": "Red"}]}],
                "prints": [{"id": 3, "modelName": "X", "color": "Red", "weight": 15}],
            }),
        })
        service = InventoryService(PersistenceAdapter(store))

        assert service.repository.get_filament(1).brand == "Unknown"
        assert service.repository.get_model(2).requirements[0].filament_ref == 1
        assert service.repository.get_print(3).usage_variance.variance_percent == -25.0
        assert service.migration_report

    def test_failed_save_warns(self):
        """Test a command succeeds with a warning when saving fails."""
        service = seeded_service()
        broken = FailingStore()
        service.adapter.primary = broken
        service.adapter.fallback = broken

        result = service.add_category("Decor")

        assert result.success
        assert any("not saved" in w for w in result.warnings)
        assert service.saver.dirty
        assert "Decor" in service.get_categories()

    def test_save_retried_after_store_recovers(self):
        """Test a store failing once receives the next save in full."""
        store = MemoryStore()
        service = seeded_service(store)
        store_write = store.set_item
        failures = [OSError("disk full")]

        def flaky_write(key, value):
            if failures:
                raise failures.pop()
            store_write(key, value)

        store.set_item = flaky_write
        first = service.add_category("Decor")
        second = service.add_category("Garden")

        assert any("not saved" in w for w in first.warnings)
        assert second.warnings == []
        assert not service.saver.dirty
        assert not service.adapter.using_fallback
        reopened = InventoryService(PersistenceAdapter(store))
        assert {"Decor", "Garden"} <= set(reopened.get_categories())

    def test_reload(self):
        """Test reload replaces memory with the stored state."""
        store = MemoryStore()
        service = seeded_service(store)
        other = InventoryService(PersistenceAdapter(store))
        other.add_category("Decor")

        result = service.reload()

        assert result.success
        assert "Decor" in service.get_categories()

    def test_clear(self):
        """Test clear empties memory and the namespace."""
        store = MemoryStore({"printstack_production_filaments": "[]"})
        service = seeded_service(store)

        removed = service.clear()

        assert removed == 6
        assert service.list_filaments() == []
        assert "Functional" in service.get_categories()
        assert list(store.data) == ["printstack_production_filaments"]

    def test_storage_stats(self):
        """Test namespace statistics."""
        service = seeded_service()
        assert service.storage_stats().key_count == 6


class TestImportExport:
    """Tests for import and export through the service."""

    def test_export_import(self):
        """Test export of one service imports into another."""
        source = seeded_service()
        source.record_print(cube_print(22))

        target = InventoryService(PersistenceAdapter(MemoryStore()))
        result = target.import_data(source.export(), "replace")

        assert result.success
        assert result.value.imported == {"filaments": 1, "models": 1, "prints": 1}
        assert target.repository.to_snapshot() == source.repository.to_snapshot()

    def test_merge_import(self):
        """Test add mode keeps current models and skips same-name ones."""
        service = seeded_service()
        incoming = Snapshot(models=[make_cube(id="x", name="cube"), make_cube(id="y", name="Gear")])
        result = service.import_data(json.dumps(incoming.to_document("PrintStack")), "add")

        assert result.success
        assert sorted(m.name for m in service.list_models()) == ["Cube", "Gear"]


class TestSubscriptions:
    """Tests for revision callbacks."""

    def test_callback_receives_revision(self):
        """Test subscribers see each revision."""
        service = seeded_service()
        seen = []
        unsubscribe = service.on_revision_change(seen.append)

        service.add_category("Decor")
        unsubscribe()
        service.add_category("Garden")

        assert seen == [1]
        assert service.revision == 2


@pytest.mark.parametrize("label", ["Nylon", "ASA"])
def test_material_type_round_trip(label):
    """Test material types can be added and removed."""
    service = InventoryService(PersistenceAdapter(MemoryStore()))

    assert service.add_material_type(label).success
    assert label in service.get_material_types()
    assert service.remove_material_type(label).success
    assert label not in service.get_material_types()
