"""Shared fixtures for PrintStack tests."""

import pytest

from printstack.config import Settings, configure
from printstack.inventory import InventoryRepository
from printstack.schema import Filament, Model, Requirement, Snapshot


@pytest.fixture(autouse=True)
def test_settings(tmp_path):
    """Isolate every test in the test namespace and a temporary data dir."""
    settings = Settings(environment="test", data_dir=tmp_path / "data", log_level="WARNING")
    configure(settings)
    yield settings
    configure(None)


def make_filament(**overrides) -> Filament:
    values = dict(
        id=1,
        brand="Acme",
        material_type="PLA",
        color_name="Red",
        color_hex="#112233",
        nominal_weight=1000.0,
        remaining_weight=500.0,
        in_stock=True,
    )
    values.update(overrides)
    return Filament(**values)


def make_cube(filament_ref=1, expected_weight=20.0, **overrides) -> Model:
    values = dict(
        id=2,
        name="Cube",
        requirements=[
            Requirement(
                filament_ref=filament_ref,
                expected_weight=expected_weight,
                tolerance_percent=10.0,
                required_count=1,
                material_type="PLA",
                color_name="Red",
            )
        ],
        category="Functional",
        added_date="2024-01-01",
    )
    values.update(overrides)
    return Model(**values)


@pytest.fixture
def cube_repository():
    """Repository holding spool 1 (500g of red PLA) and model Cube needing 20g of it."""
    snapshot = Snapshot(
        filaments=[make_filament()],
        models=[make_cube()],
        categories=["Functional", "Other"],
    )
    return InventoryRepository(snapshot)
