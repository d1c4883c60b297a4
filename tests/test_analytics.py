"""Tests for variance, printability, statistics and the derivation cache."""

import pytest

from printstack.analytics import (
    DerivationCache,
    VarianceQuality,
    assess_variance,
    can_print_model,
    compute_statistics,
    compute_variance,
    estimated_model_cost,
    filament_usage,
    model_tolerance,
    summarize_inventory,
)
from printstack.inventory import InventoryRepository
from printstack.schema import FilamentUsage, Print, QualityRating, Requirement, Snapshot

from conftest import make_cube, make_filament


def make_print(print_id, model_name, weight, filament_ref=1, rating=QualityRating.UNSET, **usage):
    usage_values = dict(filament_ref=filament_ref, material_type="PLA", color_name="Red", actual_weight=weight)
    usage_values.update(usage)
    return Print(
        id=print_id,
        model_name=model_name,
        print_date="2024-03-01",
        filament_usages=[FilamentUsage(**usage_values)],
        quality_rating=rating,
    )


class TestVariance:
    """Tests for expected versus actual usage."""

    def test_compute(self):
        """Test variance percent against the plan."""
        variance = compute_variance(make_cube(), 22.0)
        assert variance.expected_total == 20.0
        assert variance.variance_percent == 10.0

    def test_required_count_in_plan(self):
        """Test planned weight multiplies by count."""
        model = make_cube()
        model.requirements[0].required_count = 3
        assert compute_variance(model, 60.0).variance_percent == 0.0

    def test_no_model(self):
        """Test no variance without a model."""
        assert compute_variance(None, 10.0) is None
        assert compute_variance(make_cube(requirements=[]), 10.0) is None

    def test_zero_plan(self):
        """Test zero planned weight has no percent."""
        variance = compute_variance(make_cube(expected_weight=0.0), 10.0)
        assert variance.variance_percent is None

    @pytest.mark.parametrize("percent,quality", [
        (4.0, VarianceQuality.EXCELLENT),
        (-5.0, VarianceQuality.EXCELLENT),
        (9.9, VarianceQuality.GOOD),
        (-20.0, VarianceQuality.FAIR),
        (25.0, VarianceQuality.POOR),
        (None, VarianceQuality.UNKNOWN),
    ])
    def test_assess(self, percent, quality):
        """Test quality bands."""
        assert assess_variance(percent, tolerance=5.0).quality == quality

    def test_assess_summary(self):
        """Test summary wording."""
        assessment = assess_variance(-12.5, tolerance=10.0)
        assert assessment.summary == "Used 12.5% less than expected"
        assert assessment.within_tolerance is False

    def test_model_tolerance(self):
        """Test tolerance weighted by planned grams."""
        model = make_cube(requirements=[
            Requirement(filament_ref=1, expected_weight=30.0, tolerance_percent=10.0),
            Requirement(filament_ref=2, expected_weight=10.0, tolerance_percent=20.0),
        ])
        assert model_tolerance(model) == pytest.approx(12.5)


class TestPrintability:
    """Tests for printability checks."""

    def test_count(self, cube_repository):
        """Test count from remaining stock."""
        check = can_print_model(cube_repository, cube_repository.get_model(2))

        assert check.can_print is True
        assert check.missing_requirements == []
        assert check.can_print_count == 25

    def test_count_after_print(self, cube_repository):
        """Test count follows stock."""
        cube_repository.record_print({
            "modelName": "Cube",
            "filamentUsages": [{"filamentRef": 1, "actualWeight": 22}],
        })
        assert can_print_model(cube_repository, cube_repository.get_model(2)).can_print_count == 23

    def test_out_of_stock(self, cube_repository):
        """Test retired spool blocks printing."""
        cube_repository.delete_filament(1, soft_retire=True)
        check = can_print_model(cube_repository, cube_repository.get_model(2))

        assert check.can_print is False
        assert check.missing_requirements == ["Acme PLA (Red) - Out of Stock"]
        assert check.can_print_count == 0

    def test_missing_filament(self):
        """Test dangling reference."""
        repository = InventoryRepository(Snapshot(models=[make_cube(filament_ref="gone")]))
        check = can_print_model(repository, repository.get_model(2))

        assert check.missing_requirements == ["Red PLA - Filament not found"]

    def test_no_requirements(self, cube_repository):
        """Test model without requirements."""
        check = can_print_model(cube_repository, make_cube(requirements=[]))
        assert check.can_print is False
        assert check.missing_requirements == ["No filament requirements"]

    def test_zero_expected_weight(self, cube_repository):
        """Test unplanned requirement counts as one print."""
        check = can_print_model(cube_repository, make_cube(expected_weight=0.0))
        assert check.can_print is True
        assert check.can_print_count == 1

    def test_limited_by_scarcest(self):
        """Test minimum over requirements."""
        repository = InventoryRepository(Snapshot(
            filaments=[make_filament(), make_filament(id=3, color_name="Blue", remaining_weight=45.0)],
        ))
        model = make_cube(requirements=[
            Requirement(filament_ref=1, expected_weight=20.0),
            Requirement(filament_ref=3, expected_weight=10.0, required_count=2),
        ])
        assert can_print_model(repository, model).can_print_count == 2


class TestCost:
    """Tests for estimated model cost."""

    def test_priced(self):
        """Test cost from price per gram."""
        repository = InventoryRepository(Snapshot(filaments=[make_filament(purchase_price=25.0)]))
        cost = estimated_model_cost(repository, make_cube())

        assert cost.total == 0.5
        assert cost.partial is False

    def test_partial(self):
        """Test unpriced spools mark the cost partial."""
        repository = InventoryRepository(Snapshot(
            filaments=[make_filament(purchase_price=25.0), make_filament(id=3, color_name="Blue")],
        ))
        model = make_cube(requirements=[
            Requirement(filament_ref=1, expected_weight=20.0),
            Requirement(filament_ref=3, expected_weight=10.0),
        ])
        cost = estimated_model_cost(repository, model)

        assert cost.total == 0.5
        assert cost.partial is True
        assert cost.priced_requirements == 1


class TestFilamentUsage:
    """Tests for per-spool consumption."""

    def test_by_reference_and_snapshot(self):
        """Test usages matched by ref, or by color and material without one."""
        repository = InventoryRepository(Snapshot(
            filaments=[make_filament(), make_filament(id=3, color_name="Blue")],
            prints=[
                make_print(1, "Cube", 10.0),
                make_print(2, "Cube", 5.5, filament_ref=None),
                make_print(3, "Cube", 7.0, filament_ref=3),
                make_print(4, "Cube", 3.0, filament_ref=None, color_name="Blue"),
            ],
        ))

        assert filament_usage(repository, repository.get_filament(1)) == 15.5
        assert filament_usage(repository, repository.get_filament(3)) == 10.0


class TestStatistics:
    """Tests for aggregate statistics."""

    @pytest.fixture
    def repository(self):
        return InventoryRepository(Snapshot(
            filaments=[
                make_filament(purchase_price=20.0),
                make_filament(id=3, material_type="PETG", color_name="Blue", remaining_weight=50.0),
                make_filament(id=4, brand="Ab", in_stock=False),
            ],
            models=[make_cube()],
            prints=[
                make_print(1, "Cube", 22.0, rating=QualityRating.GOOD),
                make_print(2, "Cube", 18.0, rating=QualityRating.EXCELLENT),
                make_print(3, "Vase", 30.0, filament_ref=3, material_type="PETG", color_name="Blue"),
            ],
        ))

    def test_totals(self, repository):
        """Test print count and weights."""
        stats = compute_statistics(repository)

        assert stats.total_prints == 3
        assert stats.total_weight == 70.0
        assert stats.usage_by_color == {"Red": 40.0, "Blue": 30.0}
        assert stats.usage_by_model == {"Cube": 40.0, "Vase": 30.0}

    def test_quality_distribution(self, repository):
        """Test every rating is reported."""
        distribution = compute_statistics(repository).quality_distribution

        assert set(distribution) == {"excellent", "good", "fair", "poor", "unset"}
        assert distribution["good"] == {"count": 1, "percent": 33.3}
        assert distribution["unset"]["count"] == 1
        assert distribution["poor"] == {"count": 0, "percent": 0.0}

    def test_material_consumption(self, repository):
        """Test materials sorted by weight."""
        consumption = compute_statistics(repository).material_consumption

        assert [c.material_type for c in consumption] == ["PLA", "PETG"]
        assert consumption[0].print_count == 2
        assert consumption[0].average_per_print == 20.0

    def test_top_models(self, repository):
        """Test most printed models."""
        top = compute_statistics(repository, top_n=1).top_models
        assert top == [{"modelName": "Cube", "printCount": 2, "totalWeight": 40.0}]

    def test_empty(self):
        """Test statistics of an empty inventory."""
        stats = compute_statistics(InventoryRepository())

        assert stats.total_prints == 0
        assert stats.average_variance is None
        assert stats.quality_distribution["good"]["percent"] == 0.0
        assert stats.to_dict()["topModels"] == []

    def test_inventory_summary(self, repository):
        """Test stock overview."""
        summary = summarize_inventory(repository.list_filaments(), low_stock_threshold=100.0)

        assert summary.total_spools == 3
        assert summary.in_stock == 2
        assert summary.out_of_stock == 1
        assert summary.low_stock == 1
        assert summary.remaining_grams == 550.0
        assert summary.remaining_value == 10.0
        assert summary.by_brand == {"Acme": 2, "Ab": 1}


class TestDerivationCache:
    """Tests for memoized derivations."""

    def test_hit_and_miss(self):
        """Test second read is a hit."""
        cache = DerivationCache()
        calls = []

        def compute():
            calls.append(1)
            return 42

        assert cache.get_or_compute("printability", 2, compute) == 42
        assert cache.get_or_compute("printability", "2", compute) == 42
        assert len(calls) == 1
        assert (cache.hits, cache.misses) == (1, 1)

    def test_invalidated_by_revision(self, cube_repository):
        """Test a mutation clears cached values."""
        cache = DerivationCache()
        cache.bind(cube_repository)
        cache.get_or_compute("statistics", None, lambda: "stale")

        cube_repository.add_category("Decor")

        assert len(cache) == 0
        assert cache.revision == 1

    def test_unbind(self, cube_repository):
        """Test an unbound cache keeps its entries."""
        cache = DerivationCache()
        cache.bind(cube_repository)
        cache.unbind()
        cache.get_or_compute("statistics", None, lambda: "kept")

        cube_repository.add_category("Decor")
        assert len(cache) == 1
