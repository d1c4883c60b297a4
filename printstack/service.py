"""Inventory service.

The single entry point a presenter talks to. It wires the repository, the
derivation cache, the persistence adapter and the debounced saver, and
saves after every successful mutation.
"""

from typing import Any, Callable, Dict, List, Optional, Union

from printstack.analytics.cache import DerivationCache
from printstack.analytics.derivations import (
    ModelCost,
    Printability,
    can_print_model,
    estimated_model_cost,
    filament_usage,
)
from printstack.analytics.statistics import InventorySummary, Statistics, compute_statistics, summarize_inventory
from printstack.analytics.variance import VarianceAssessment, assess_variance, model_tolerance
from printstack.config import Settings, get_settings
from printstack.inventory.repository import InventoryRepository
from printstack.inventory.results import DuplicateDisposition, OperationResult
from printstack.schema.entities import EntityId, Filament, Model, Print, Snapshot
from printstack.storage.adapter import PersistenceAdapter, StorageStats
from printstack.storage.saver import SnapshotSaver
from printstack.transfer.exchange import export_snapshot, import_snapshot
from printstack.utils import get_logger

logger = get_logger("service")


class InventoryService:
    """
    Queries, commands and change subscription over one inventory.

    Commands return ``OperationResult`` values; queries return plain values.
    """

    def __init__(
        self,
        adapter: Optional[PersistenceAdapter] = None,
        settings: Optional[Settings] = None,
        autoload: bool = True,
    ):
        """
        Initialize the service.

        Args:
            adapter: Persistence adapter (default: in-memory store under the
                configured namespace)
            settings: Settings (default: global settings)
            autoload: Load the stored snapshot on start

        Raises:
            SchemaError: If stored data exists but cannot be recognised
        """
        self.settings = settings or get_settings()
        self.adapter = adapter or PersistenceAdapter(namespace=self.settings.namespace)

        snapshot = self.adapter.load() if autoload else None
        self.migration_report: List[str] = list(self.adapter.migration_report)
        self.repository = InventoryRepository(snapshot)

        self.cache = DerivationCache()
        self.cache.bind(self.repository)
        self.saver = SnapshotSaver(self.adapter, self.repository.to_snapshot)
        self.repository.on_revision_change(self.saver.on_revision)

        counts = self.repository.counts()
        logger.info(
            f"Inventory ready: {counts['filaments']} filaments, "
            f"{counts['models']} models, {counts['prints']} prints"
        )

    @property
    def revision(self) -> int:
        return self.repository.revision

    # -- queries --------------------------------------------------------------

    def list_filaments(self) -> List[Filament]:
        return self.repository.list_filaments()

    def list_models(self) -> List[Model]:
        return self.repository.list_models()

    def list_prints(self) -> List[Print]:
        return self.repository.list_prints()

    def get_material_types(self) -> List[str]:
        return self.repository.list_material_types()

    def get_categories(self) -> List[str]:
        return self.repository.list_categories()

    def resolve_model(self, model_ref: Union[EntityId, str]) -> Optional[Model]:
        """Find a model by identity, falling back to its name."""
        model = self.repository.get_model(model_ref)
        if model is None and isinstance(model_ref, str):
            model = self.repository.find_model(model_ref)
        return model

    def can_print_model(self, model_ref: Union[EntityId, str]) -> Optional[Printability]:
        """Printability of a model given by identity or name."""
        model = self.resolve_model(model_ref)
        if model is None:
            return None
        return self.cache.get_or_compute(
            "printability", model.id, lambda: can_print_model(self.repository, model)
        )

    def estimated_model_cost(self, model_ref: Union[EntityId, str]) -> Optional[ModelCost]:
        model = self.resolve_model(model_ref)
        if model is None:
            return None
        return self.cache.get_or_compute(
            "cost", model.id, lambda: estimated_model_cost(self.repository, model)
        )

    def filament_usage(self, filament_id: EntityId) -> Optional[float]:
        """Grams of a filament consumed across all prints."""
        filament = self.repository.get_filament(filament_id)
        if filament is None:
            return None
        return self.cache.get_or_compute(
            "usage", filament.id, lambda: filament_usage(self.repository, filament)
        )

    def print_assessment(self, print_id: EntityId) -> Optional[VarianceAssessment]:
        """Quality band of a print's usage variance."""
        print_record = self.repository.get_print(print_id)
        if print_record is None:
            return None
        model = self.repository.find_model(print_record.model_name)
        tolerance = model_tolerance(model, self.settings.variance_tolerance_percent) if model else self.settings.variance_tolerance_percent
        percent = print_record.usage_variance.variance_percent if print_record.usage_variance else None
        return assess_variance(percent, tolerance)

    def statistics(self) -> Statistics:
        return self.cache.get_or_compute(
            "statistics",
            None,
            lambda: compute_statistics(
                self.repository,
                top_n=self.settings.top_models_limit,
                low_stock_threshold=self.settings.low_stock_threshold_grams,
            ),
        )

    def inventory_summary(self) -> InventorySummary:
        return self.cache.get_or_compute(
            "inventory",
            None,
            lambda: summarize_inventory(
                self.repository.list_filaments(), self.settings.low_stock_threshold_grams
            ),
        )

    def storage_stats(self) -> StorageStats:
        return self.adapter.stats()

    # -- commands -------------------------------------------------------------

    def _saved(self, result: OperationResult) -> OperationResult:
        """Report a failed save without failing the command."""
        if result.success and self.saver.last_error is not None:
            result.warnings.append(f"Changes kept in memory but not saved: {self.saver.last_error}")
        return result

    def add_filament(
        self,
        data: Dict[str, Any],
        on_duplicate: Optional[Union[DuplicateDisposition, str]] = None,
    ) -> OperationResult:
        return self._saved(self.repository.add_filament(data, on_duplicate=on_duplicate))

    def update_filament(self, filament_id: EntityId, patch: Dict[str, Any]) -> OperationResult:
        return self._saved(self.repository.update_filament(filament_id, patch))

    def delete_filament(self, filament_id: EntityId, soft_retire: bool = False) -> OperationResult:
        return self._saved(self.repository.delete_filament(filament_id, soft_retire=soft_retire))

    def add_model(self, data: Dict[str, Any]) -> OperationResult:
        return self._saved(self.repository.add_model(data))

    def update_model(self, model_id: EntityId, patch: Dict[str, Any]) -> OperationResult:
        return self._saved(self.repository.update_model(model_id, patch))

    def delete_model(self, model_id: EntityId) -> OperationResult:
        return self._saved(self.repository.delete_model(model_id))

    def record_print(self, data: Dict[str, Any], allow_negative: bool = False) -> OperationResult:
        return self._saved(self.repository.record_print(data, allow_negative=allow_negative))

    def update_print(self, print_id: EntityId, patch: Dict[str, Any]) -> OperationResult:
        return self._saved(self.repository.update_print(print_id, patch))

    def delete_print(self, print_id: EntityId) -> OperationResult:
        return self._saved(self.repository.delete_print(print_id))

    def add_material_type(self, label: str) -> OperationResult:
        return self._saved(self.repository.add_material_type(label))

    def remove_material_type(self, label: str) -> OperationResult:
        return self._saved(self.repository.remove_material_type(label))

    def add_category(self, label: str) -> OperationResult:
        return self._saved(self.repository.add_category(label))

    def rename_category(self, old: str, new: str) -> OperationResult:
        return self._saved(self.repository.rename_category(old, new))

    def delete_category(self, label: str) -> OperationResult:
        return self._saved(self.repository.delete_category(label))

    def import_data(self, blob: Any, mode: str = "replace") -> OperationResult:
        """Import a foreign snapshot ("replace" or "add")."""
        return self._saved(import_snapshot(self.repository, blob, mode))

    def export(self) -> str:
        """Current inventory as an export document."""
        return export_snapshot(self.repository.to_snapshot(), self.settings.application_name)

    # -- subscription and lifecycle -------------------------------------------

    def on_revision_change(self, callback: Callable[[int], None]) -> Callable[[], None]:
        return self.repository.on_revision_change(callback)

    def save(self) -> bool:
        """Flush any pending save."""
        return self.saver.flush()

    def reload(self) -> OperationResult:
        """Replace in-memory state with the stored snapshot."""
        snapshot = self.adapter.load()
        self.migration_report = list(self.adapter.migration_report)
        if snapshot is None:
            return OperationResult.ok(self.repository.counts(), warnings=["Nothing stored"])
        revision = self.repository.restore(snapshot, reason="Reloaded snapshot")
        return OperationResult.ok(self.repository.counts(), warnings=self.migration_report, revision=revision)

    def clear(self) -> int:
        """
        Empty the inventory and remove its stored keys.

        Returns:
            Number of keys removed
        """
        self.repository.restore(
            Snapshot(
                material_types=list(self.settings.default_material_types),
                categories=list(self.settings.default_categories),
            ),
            reason="Cleared inventory",
        )
        removed = self.adapter.clear_namespace()
        self.saver.pending_revision = None
        return removed
