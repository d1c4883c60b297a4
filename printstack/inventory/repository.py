"""Authoritative in-memory inventory state.

The repository owns filaments, models, prints and the two label sets. It
changes them only through commands that validate input, keep references
consistent and bump a revision counter exactly once on success.
"""

import copy
from typing import Any, Callable, Dict, List, Optional, Union

from printstack.analytics.variance import compute_variance, match_model
from printstack.config import get_settings
from printstack.errors import (
    Blocker,
    DuplicateCandidateError,
    EntityNotFoundError,
    InsufficientStockError,
    InvariantViolationError,
    ReferentialIntegrityError,
    StockDeficit,
    ValidationError,
)
from printstack.inventory.results import DuplicateDisposition, OperationResult
from printstack.schema.entities import (
    CURRENT_VERSION,
    OTHER,
    Difficulty,
    EntityId,
    Filament,
    FilamentUsage,
    Model,
    Print,
    QualityRating,
    Requirement,
    Snapshot,
)
from printstack.schema.identity import IdGenerator
from printstack.utils import get_logger, today, utc_now
from printstack.validation import (
    IMPORT,
    INPUT,
    ValidationContext,
    validate_filament,
    validate_label,
    validate_model,
    validate_print,
)

logger = get_logger("inventory.repository")

RevisionCallback = Callable[[int], None]

# Fields callers may not change through update commands
_FILAMENT_FIXED = ("id", "createdAt")
_MODEL_FIXED = ("id", "addedDate", "tags")
_PRINT_FIXED = ("id", "timestamp", "totalWeight", "usageVariance")


def _key(identifier: EntityId) -> str:
    return str(identifier)


def _same_label(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def _join_notes(first: Optional[str], second: Optional[str]) -> Optional[str]:
    parts = [n.strip() for n in (first, second) if n and n.strip()]
    return "\n".join(parts) or None


class InventoryRepository:
    """
    In-memory inventory with transactional commands.

    Entities returned by queries are the live objects; callers must treat
    them as read-only and change state through the commands.
    """

    def __init__(
        self,
        snapshot: Optional[Snapshot] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        """
        Initialize the repository.

        Args:
            snapshot: Initial state (default: empty inventory with default labels)
            id_generator: Identity source for new entities
        """
        settings = get_settings()
        self.id_generator = id_generator or IdGenerator()
        self.revision = 0
        self._observers: List[RevisionCallback] = []

        self._filaments: Dict[str, Filament] = {}
        self._models: Dict[str, Model] = {}
        self._prints: Dict[str, Print] = {}
        self._material_types: List[str] = [m for m in settings.default_material_types if m != OTHER]
        self._categories: List[str] = list(settings.default_categories)
        if OTHER not in self._categories:
            self._categories.append(OTHER)

        if snapshot is not None:
            self._replace(snapshot)

    # -- queries ------------------------------------------------------------

    def list_filaments(self) -> List[Filament]:
        return list(self._filaments.values())

    def list_models(self) -> List[Model]:
        return list(self._models.values())

    def list_prints(self) -> List[Print]:
        return list(self._prints.values())

    def list_material_types(self) -> List[str]:
        return list(self._material_types)

    def list_categories(self) -> List[str]:
        return list(self._categories)

    def get_filament(self, filament_id: EntityId) -> Optional[Filament]:
        return self._filaments.get(_key(filament_id))

    def get_model(self, model_id: EntityId) -> Optional[Model]:
        return self._models.get(_key(model_id))

    def get_print(self, print_id: EntityId) -> Optional[Print]:
        return self._prints.get(_key(print_id))

    def find_model(self, name: str) -> Optional[Model]:
        """Find a model by name, exact match first, then case-insensitive."""
        return match_model(self._models.values(), name)

    def counts(self) -> Dict[str, int]:
        return {
            "filaments": len(self._filaments),
            "models": len(self._models),
            "prints": len(self._prints),
        }

    def validation_context(self, mode: str = INPUT, creating: bool = True) -> ValidationContext:
        """Validation context reflecting the current state."""
        return ValidationContext(
            material_types=list(self._material_types),
            categories=list(self._categories),
            filament_ids=set(self._filaments),
            mode=mode,
            creating=creating,
        )

    def filament_blockers(self, filament_id: EntityId) -> List[Blocker]:
        """Models and prints that reference a filament."""
        key = _key(filament_id)
        blockers = []
        for model in self._models.values():
            if any(r.filament_ref is not None and _key(r.filament_ref) == key for r in model.requirements):
                blockers.append(Blocker(kind="model", id=model.id, name=model.name))
        for print_record in self._prints.values():
            if any(u.filament_ref is not None and _key(u.filament_ref) == key for u in print_record.filament_usages):
                blockers.append(
                    Blocker(kind="print", id=print_record.id, name=f"{print_record.model_name} ({print_record.print_date})")
                )
        return blockers

    # -- revisions and observers --------------------------------------------

    def on_revision_change(self, callback: RevisionCallback) -> Callable[[], None]:
        """
        Register a callback receiving the new revision after each mutation.

        Returns:
            Function that unregisters the callback
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _commit(self, message: str) -> int:
        self.revision += 1
        logger.info(f"{message} (revision {self.revision})")
        for callback in list(self._observers):
            try:
                callback(self.revision)
            except Exception as e:
                logger.error(f"Revision observer failed: {e}")
        return self.revision

    def _new_id(self, taken: Dict[str, Any]) -> str:
        return self.id_generator.next_unused(taken.keys())

    # -- filaments ----------------------------------------------------------

    def _canonical_material(self, label: str) -> str:
        for existing in self._material_types:
            if _same_label(existing, label):
                return existing
        return label

    def _resolve_material(self, values: Dict[str, Any]) -> str:
        material = values["materialType"]
        if _same_label(material, OTHER):
            return values["customMaterialType"]
        return self._canonical_material(material)

    def _adopt_material(self, material: str) -> None:
        if not any(_same_label(m, material) for m in self._material_types):
            self._material_types.append(material)
            logger.info(f"Added material type {material}")

    def find_duplicate_filament(self, brand: str, material_type: str, color_hex: str) -> Optional[Filament]:
        """Existing filament with the same brand, material and color (case-insensitive)."""
        for filament in self._filaments.values():
            if (
                _same_label(filament.brand, brand)
                and _same_label(filament.material_type, material_type)
                and _same_label(filament.color_hex, color_hex)
            ):
                return filament
        return None

    def add_filament(
        self,
        data: Dict[str, Any],
        on_duplicate: Optional[Union[DuplicateDisposition, str]] = None,
    ) -> OperationResult:
        """
        Add a filament spool.

        Args:
            data: camelCase filament fields
            on_duplicate: Disposition when a duplicate candidate exists; without
                one the command returns ``DuplicateCandidateError``

        Returns:
            Result carrying the new (or merged) filament
        """
        result = validate_filament(data, self.validation_context(creating=True))
        if not result.valid:
            return OperationResult.fail(result.to_error())
        values = result.values
        material = self._resolve_material(values)

        duplicate = self.find_duplicate_filament(values["brand"], material, values["colorHex"])
        if duplicate is not None:
            if on_duplicate is None:
                return OperationResult.fail(DuplicateCandidateError(duplicate, data))
            if DuplicateDisposition(on_duplicate) == DuplicateDisposition.MERGE:
                return self._merge_filament(duplicate, values)

        nominal = values["nominalWeight"]
        remaining = values.get("remainingWeight")
        now = utc_now()
        filament = Filament(
            id=self._new_id(self._filaments),
            brand=values["brand"],
            material_type=material,
            color_name=values["colorName"],
            color_hex=values["colorHex"],
            nominal_weight=nominal,
            remaining_weight=nominal if remaining is None else remaining,
            diameter=values.get("diameter") or 1.75,
            purchase_price=values.get("purchasePrice"),
            location=values.get("location"),
            temp_min=values.get("tempMin"),
            temp_max=values.get("tempMax"),
            in_stock=values["inStock"] if values.get("inStock") is not None else True,
            notes=values.get("notes"),
            created_at=now,
            updated_at=now,
        )
        self._adopt_material(material)
        self._filaments[_key(filament.id)] = filament
        revision = self._commit(f"Added filament {filament.id}: {filament.label}")
        return OperationResult.ok(filament, revision=revision)

    def _merge_filament(self, existing: Filament, values: Dict[str, Any]) -> OperationResult:
        nominal = values["nominalWeight"]
        remaining = values.get("remainingWeight")
        existing.nominal_weight = round(existing.nominal_weight + nominal, 2)
        existing.remaining_weight = round(existing.remaining_weight + (nominal if remaining is None else remaining), 2)
        existing.notes = _join_notes(existing.notes, values.get("notes"))
        existing.in_stock = True
        existing.updated_at = utc_now()
        revision = self._commit(f"Merged new spool into filament {existing.id}: {existing.label}")
        return OperationResult.ok(
            existing,
            warnings=[f"Merged into existing filament {existing.label}"],
            revision=revision,
        )

    def update_filament(self, filament_id: EntityId, patch: Dict[str, Any]) -> OperationResult:
        """Apply a partial update to a filament; the identity never changes."""
        existing = self.get_filament(filament_id)
        if existing is None:
            return OperationResult.fail(EntityNotFoundError("filament", filament_id))

        record = existing.to_dict()
        record.update({k: v for k, v in patch.items() if k not in _FILAMENT_FIXED})
        result = validate_filament(record, self.validation_context(creating=False))
        if not result.valid:
            return OperationResult.fail(result.to_error())
        values = result.values
        material = self._resolve_material(values)

        updated = Filament(
            id=existing.id,
            brand=values["brand"],
            material_type=material,
            color_name=values["colorName"],
            color_hex=values["colorHex"],
            nominal_weight=values["nominalWeight"],
            remaining_weight=values["remainingWeight"] if values.get("remainingWeight") is not None else existing.remaining_weight,
            diameter=values.get("diameter") or existing.diameter,
            purchase_price=values.get("purchasePrice"),
            location=values.get("location"),
            temp_min=values.get("tempMin"),
            temp_max=values.get("tempMax"),
            in_stock=values["inStock"] if values.get("inStock") is not None else existing.in_stock,
            notes=values.get("notes"),
            deletion_blocked=bool(record.get("deletionBlocked", existing.deletion_blocked)),
            created_at=existing.created_at,
            updated_at=utc_now(),
        )
        self._adopt_material(material)
        self._filaments[_key(existing.id)] = updated

        # Keep rebinding hints of requirements in step with the spool
        for model in self._models.values():
            for requirement in model.requirements:
                if requirement.filament_ref is not None and _key(requirement.filament_ref) == _key(existing.id):
                    requirement.material_type = updated.material_type
                    requirement.color_name = updated.color_name

        revision = self._commit(f"Updated filament {updated.id}: {updated.label}")
        return OperationResult.ok(updated, revision=revision)

    def delete_filament(self, filament_id: EntityId, soft_retire: bool = False) -> OperationResult:
        """
        Delete a filament, or retire it.

        Deletion is refused while any model requirement or print usage
        references the filament. With ``soft_retire`` the filament is instead
        marked out of stock and blocked from deletion.
        """
        filament = self.get_filament(filament_id)
        if filament is None:
            return OperationResult.fail(EntityNotFoundError("filament", filament_id))

        if soft_retire:
            filament.in_stock = False
            filament.deletion_blocked = True
            filament.updated_at = utc_now()
            revision = self._commit(f"Retired filament {filament.id}: {filament.label}")
            return OperationResult.ok(filament, warnings=[f"{filament.label} retired instead of deleted"], revision=revision)

        blockers = self.filament_blockers(filament.id)
        if blockers:
            return OperationResult.fail(ReferentialIntegrityError(filament.label, blockers))

        del self._filaments[_key(filament.id)]
        revision = self._commit(f"Deleted filament {filament.id}: {filament.label}")
        return OperationResult.ok(filament, revision=revision)

    # -- models ---------------------------------------------------------------

    def _canonical_category(self, label: Optional[str]) -> str:
        if not label:
            return OTHER
        for existing in self._categories:
            if _same_label(existing, label):
                return existing
        return label

    def _build_requirements(self, items: List[Dict[str, Any]]) -> List[Requirement]:
        requirements = []
        for item in items:
            filament = self.get_filament(item["filamentRef"]) if item.get("filamentRef") is not None else None
            requirements.append(
                Requirement(
                    filament_ref=filament.id if filament is not None else item.get("filamentRef"),
                    expected_weight=item["expectedWeight"],
                    tolerance_percent=item["tolerancePercent"] if item.get("tolerancePercent") is not None else 10.0,
                    required_count=item["requiredCount"] if item.get("requiredCount") is not None else 1,
                    material_type=filament.material_type if filament is not None else item.get("materialType"),
                    color_name=filament.color_name if filament is not None else item.get("colorName"),
                )
            )
        return requirements

    def _build_model(self, model_id: EntityId, values: Dict[str, Any], added_date: Optional[str]) -> Model:
        difficulty = values.get("difficulty") or Difficulty.MEDIUM.value
        return Model(
            id=model_id,
            name=values["name"],
            requirements=self._build_requirements(values["requirements"]),
            category=self._canonical_category(values.get("category")),
            difficulty=Difficulty(difficulty.capitalize()),
            external_link=values.get("externalLink"),
            estimated_print_time=values.get("estimatedPrintTime"),
            layer_height=values.get("layerHeight"),
            infill_percent=values.get("infillPercent"),
            supports_required=bool(values.get("supportsRequired")),
            notes=values.get("notes"),
            added_date=added_date or today(),
            updated_at=utc_now(),
        )

    def add_model(self, data: Dict[str, Any]) -> OperationResult:
        """Add a model; every requirement must reference an existing filament."""
        result = validate_model(data, self.validation_context(creating=True))
        if not result.valid:
            return OperationResult.fail(result.to_error())

        model = self._build_model(self._new_id(self._models), result.values, None)
        self._models[_key(model.id)] = model
        revision = self._commit(f"Added model {model.id}: {model.name}")
        return OperationResult.ok(model, revision=revision)

    def update_model(self, model_id: EntityId, patch: Dict[str, Any]) -> OperationResult:
        """Apply a partial update to a model; recorded prints keep their model name."""
        existing = self.get_model(model_id)
        if existing is None:
            return OperationResult.fail(EntityNotFoundError("model", model_id))

        record = existing.to_dict()
        record.update({k: v for k, v in patch.items() if k not in _MODEL_FIXED})
        result = validate_model(record, self.validation_context(creating=False))
        if not result.valid:
            return OperationResult.fail(result.to_error())

        model = self._build_model(existing.id, result.values, existing.added_date)
        self._models[_key(existing.id)] = model
        revision = self._commit(f"Updated model {model.id}: {model.name}")
        return OperationResult.ok(model, revision=revision)

    def delete_model(self, model_id: EntityId) -> OperationResult:
        """Delete a model; prints naming it are kept."""
        model = self.get_model(model_id)
        if model is None:
            return OperationResult.fail(EntityNotFoundError("model", model_id))

        del self._models[_key(model.id)]
        kept = sum(1 for p in self._prints.values() if _same_label(p.model_name, model.name))
        warnings = [f"{kept} recorded prints of '{model.name}' kept"] if kept else []
        revision = self._commit(f"Deleted model {model.id}: {model.name}")
        return OperationResult.ok(model, warnings=warnings, revision=revision)

    # -- prints ---------------------------------------------------------------

    def _usage_snapshot(self, item: Dict[str, Any], filament: Optional[Filament]) -> FilamentUsage:
        if filament is not None:
            return FilamentUsage(
                filament_ref=filament.id,
                material_type=filament.material_type,
                color_name=filament.color_name,
                actual_weight=item["actualWeight"],
                color_hex=filament.color_hex,
            )
        return FilamentUsage(
            filament_ref=item.get("filamentRef"),
            material_type=item.get("materialType") or "",
            color_name=item.get("colorName") or "",
            actual_weight=item["actualWeight"],
            color_hex=item.get("colorHex") or "#cccccc",
        )

    def record_print(self, data: Dict[str, Any], allow_negative: bool = False) -> OperationResult:
        """
        Record a completed print and debit the filaments it used.

        The command runs in two phases. The pre-check projects the remaining
        weight of every referenced filament (usages of the same filament are
        summed) and returns ``InsufficientStockError`` if any projection is
        negative, unless ``allow_negative`` is set. The commit then debits all
        filaments and inserts the print together; with ``allow_negative`` an
        over-debited filament is clamped to 0 and reported in the warnings.

        Args:
            data: camelCase print fields with ``filamentUsages``
            allow_negative: Record even if stock runs out

        Returns:
            Result carrying the stored print
        """
        result = validate_print(data, self.validation_context(creating=True))
        if not result.valid:
            return OperationResult.fail(result.to_error())
        values = result.values

        # Phase 1: project stock per filament
        totals: Dict[str, float] = {}
        for item in values["filamentUsages"]:
            key = _key(item["filamentRef"])
            totals[key] = totals.get(key, 0.0) + item["actualWeight"]

        deficits = []
        for key, requested in totals.items():
            filament = self._filaments[key]
            if filament.remaining_weight - requested < 0:
                deficits.append(
                    StockDeficit(
                        filament_ref=filament.id,
                        label=filament.label,
                        available=filament.remaining_weight,
                        requested=round(requested, 2),
                    )
                )
        if deficits and not allow_negative:
            return OperationResult.fail(InsufficientStockError(deficits))

        warnings = []
        debits: Dict[str, float] = {}
        for key, requested in totals.items():
            filament = self._filaments[key]
            remaining = round(filament.remaining_weight - requested, 2)
            if remaining < 0:
                over = round(-remaining, 2)
                message = f"Over-debit on {filament.label}: {over:g}g more than remaining, clamped to 0"
                logger.warning(message)
                warnings.append(message)
                remaining = 0.0
            debits[key] = remaining

        usages = [self._usage_snapshot(item, self._filaments[_key(item["filamentRef"])]) for item in values["filamentUsages"]]
        print_record = Print(
            id=self._new_id(self._prints),
            model_name=values["modelName"],
            print_date=values.get("printDate") or today(),
            filament_usages=usages,
            quality_rating=QualityRating(values.get("qualityRating") or QualityRating.UNSET.value),
            print_notes=values.get("printNotes"),
            duration_hours=values.get("durationHours"),
            timestamp=utc_now(),
        )
        model = self.find_model(print_record.model_name)
        print_record.usage_variance = compute_variance(model, print_record.total_weight)
        if model is None:
            warnings.append(f"No model named '{print_record.model_name}'; usage variance not computed")

        self._check_debits(debits)

        # Phase 2: apply debits and insert together
        previous = {key: self._filaments[key].remaining_weight for key in debits}
        now = utc_now()
        try:
            for key, remaining in debits.items():
                self._filaments[key].remaining_weight = remaining
                self._filaments[key].updated_at = now
            self._prints[_key(print_record.id)] = print_record
        except Exception:
            for key, remaining in previous.items():
                self._filaments[key].remaining_weight = remaining
            self._prints.pop(_key(print_record.id), None)
            raise

        revision = self._commit(
            f"Recorded print {print_record.id} of '{print_record.model_name}' ({print_record.total_weight:g}g)"
        )
        return OperationResult.ok(print_record, warnings=warnings, revision=revision)

    def _check_debits(self, debits: Dict[str, float]) -> None:
        for key, remaining in debits.items():
            if remaining < 0:
                message = f"Filament {key} would be left with negative stock ({remaining:g}g)"
                logger.critical(message)
                raise InvariantViolationError(message)

    def update_print(self, print_id: EntityId, patch: Dict[str, Any]) -> OperationResult:
        """
        Apply a partial update to a print.

        Total weight and variance are recomputed; filament stock is never
        adjusted by an edit.
        """
        existing = self.get_print(print_id)
        if existing is None:
            return OperationResult.fail(EntityNotFoundError("print", print_id))

        record = existing.to_dict()
        record.update({k: v for k, v in patch.items() if k not in _PRINT_FIXED})
        # Historical usages may reference filaments that are gone
        result = validate_print(record, self.validation_context(mode=IMPORT, creating=False))
        if not result.valid:
            return OperationResult.fail(result.to_error())
        values = result.values

        usages = []
        for item in values["filamentUsages"]:
            filament = self.get_filament(item["filamentRef"]) if item.get("filamentRef") is not None else None
            if filament is not None and item.get("materialType"):
                # Keep the stored snapshot rather than the spool's current state
                filament = None
            usages.append(self._usage_snapshot(item, filament))

        updated = Print(
            id=existing.id,
            model_name=values["modelName"],
            print_date=values.get("printDate") or existing.print_date,
            filament_usages=usages,
            quality_rating=QualityRating(values.get("qualityRating") or QualityRating.UNSET.value),
            print_notes=values.get("printNotes"),
            duration_hours=values.get("durationHours"),
            timestamp=existing.timestamp,
        )
        updated.usage_variance = compute_variance(self.find_model(updated.model_name), updated.total_weight)
        self._prints[_key(existing.id)] = updated
        revision = self._commit(f"Updated print {updated.id} of '{updated.model_name}'")
        return OperationResult.ok(updated, revision=revision)

    def delete_print(self, print_id: EntityId) -> OperationResult:
        """Delete a print; consumed filament is not credited back."""
        print_record = self.get_print(print_id)
        if print_record is None:
            return OperationResult.fail(EntityNotFoundError("print", print_id))

        del self._prints[_key(print_record.id)]
        revision = self._commit(f"Deleted print {print_record.id} of '{print_record.model_name}'")
        return OperationResult.ok(print_record, revision=revision)

    # -- material types -------------------------------------------------------

    def add_material_type(self, label: str) -> OperationResult:
        result = validate_label(label, "materialType")
        if not result.valid:
            return OperationResult.fail(result.to_error())
        material = result.values["materialType"]
        if _same_label(material, OTHER):
            return OperationResult.fail(ValidationError({"materialType": "Other is reserved"}))
        if any(_same_label(m, material) for m in self._material_types):
            return OperationResult.fail(ValidationError({"materialType": f"{material} already exists"}))

        self._material_types.append(material)
        revision = self._commit(f"Added material type {material}")
        return OperationResult.ok(material, revision=revision)

    def remove_material_type(self, label: str) -> OperationResult:
        """Remove a material type; refused while any filament uses it."""
        material = next((m for m in self._material_types if _same_label(m, label)), None)
        if material is None:
            return OperationResult.fail(EntityNotFoundError("material type", label))

        blockers = [
            Blocker(kind="filament", id=f.id, name=f.label)
            for f in self._filaments.values()
            if _same_label(f.material_type, material)
        ]
        if blockers:
            return OperationResult.fail(ReferentialIntegrityError(f"Material type {material}", blockers))

        self._material_types.remove(material)
        revision = self._commit(f"Removed material type {material}")
        return OperationResult.ok(material, revision=revision)

    # -- categories -----------------------------------------------------------

    def add_category(self, label: str) -> OperationResult:
        result = validate_label(label, "category")
        if not result.valid:
            return OperationResult.fail(result.to_error())
        category = result.values["category"]
        if any(_same_label(c, category) for c in self._categories):
            return OperationResult.fail(ValidationError({"category": f"{category} already exists"}))

        self._categories.append(category)
        revision = self._commit(f"Added category {category}")
        return OperationResult.ok(category, revision=revision)

    def rename_category(self, old: str, new: str) -> OperationResult:
        """Rename a category and every model filed under it."""
        current = next((c for c in self._categories if _same_label(c, old)), None)
        if current is None:
            return OperationResult.fail(EntityNotFoundError("category", old))
        if current == OTHER:
            return OperationResult.fail(ValidationError({"category": "Other cannot be renamed"}))

        result = validate_label(new, "category")
        if not result.valid:
            return OperationResult.fail(result.to_error())
        renamed = result.values["category"]
        if any(_same_label(c, renamed) and c != current for c in self._categories):
            return OperationResult.fail(ValidationError({"category": f"{renamed} already exists"}))

        self._categories[self._categories.index(current)] = renamed
        moved = 0
        for model in self._models.values():
            if _same_label(model.category, current):
                model.category = renamed
                moved += 1

        revision = self._commit(f"Renamed category {current} to {renamed} ({moved} models)")
        return OperationResult.ok(renamed, revision=revision)

    def delete_category(self, label: str) -> OperationResult:
        """Delete a category; its models move to Other."""
        current = next((c for c in self._categories if _same_label(c, label)), None)
        if current is None:
            return OperationResult.fail(EntityNotFoundError("category", label))
        if current == OTHER:
            return OperationResult.fail(ValidationError({"category": "Other cannot be deleted"}))

        self._categories.remove(current)
        moved = 0
        for model in self._models.values():
            if _same_label(model.category, current):
                model.category = OTHER
                moved += 1

        warnings = [f"{moved} models moved to {OTHER}"] if moved else []
        revision = self._commit(f"Deleted category {current}")
        return OperationResult.ok(moved, warnings=warnings, revision=revision)

    # -- snapshots ------------------------------------------------------------

    def to_snapshot(self) -> Snapshot:
        """Copy of the current state."""
        return Snapshot(
            version=CURRENT_VERSION,
            filaments=copy.deepcopy(list(self._filaments.values())),
            models=copy.deepcopy(list(self._models.values())),
            prints=copy.deepcopy(list(self._prints.values())),
            material_types=list(self._material_types),
            categories=list(self._categories),
        )

    def _replace(self, snapshot: Snapshot) -> None:
        filaments = {_key(f.id): f for f in copy.deepcopy(snapshot.filaments)}
        models = {_key(m.id): m for m in copy.deepcopy(snapshot.models)}
        prints = {_key(p.id): p for p in copy.deepcopy(snapshot.prints)}
        if len(filaments) != len(snapshot.filaments) or len(models) != len(snapshot.models) or len(prints) != len(snapshot.prints):
            message = "Snapshot contains repeated identities"
            logger.critical(message)
            raise InvariantViolationError(message)

        self._filaments = filaments
        self._models = models
        self._prints = prints
        self._material_types = [m for m in snapshot.material_types if m != OTHER]
        self._categories = list(snapshot.categories)
        if OTHER not in self._categories:
            self._categories.append(OTHER)

    def restore(self, snapshot: Snapshot, reason: str = "Restored snapshot") -> int:
        """
        Replace the whole state with a snapshot as a single revision.

        Raises:
            InvariantViolationError: If the snapshot repeats an identity
        """
        self._replace(snapshot)
        return self._commit(f"{reason}: {self.counts()}")
