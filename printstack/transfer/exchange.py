"""Snapshot export and import.

Import runs a foreign document through migration and validation, then either
replaces the current collections or merges into them. The repository
changes in a single revision.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from printstack.analytics.variance import compute_variance, match_model
from printstack.config import get_settings
from printstack.errors import ImportFailedError, SchemaError
from printstack.inventory.repository import InventoryRepository
from printstack.inventory.results import OperationResult
from printstack.schema.entities import OTHER, Filament, Model, Print, Snapshot
from printstack.schema.migration import LEGACY_FLAT, UNKNOWN, SnapshotMigrator, detect_version, parse_blob
from printstack.utils import get_logger, utc_now
from printstack.validation import IMPORT, ValidationContext, validate_filament, validate_model, validate_print

logger = get_logger("transfer.exchange")

ENTITY_KINDS = ("filaments", "models", "prints")


class ImportMode(str, Enum):
    """How imported entities combine with the current ones."""
    REPLACE = "replace"
    ADD = "add"


@dataclass
class RejectedEntity:
    """An imported entity that failed validation."""
    kind: str
    id: Any
    name: str
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"kind": self.kind, "id": self.id, "name": self.name, "errors": dict(self.errors)}


@dataclass
class ImportSummary:
    """Outcome of an import."""
    mode: ImportMode
    imported: Dict[str, int] = field(default_factory=dict)
    rejected: List[RejectedEntity] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "mode": self.mode.value,
            "imported": dict(self.imported),
            "rejected": [r.to_dict() for r in self.rejected],
            "warnings": list(self.warnings),
            "skipped": self.skipped,
        }


def export_snapshot(
    snapshot: Snapshot,
    application: Optional[str] = None,
    exported_at: Optional[str] = None,
) -> str:
    """
    Serialize a snapshot as an export document.

    Args:
        snapshot: Snapshot to export
        application: Application identifier (default: from settings)
        exported_at: Export timestamp (default: now)

    Returns:
        JSON text
    """
    application = application or get_settings().application_name
    document = snapshot.to_document(application, exported_at=exported_at or utc_now())
    return json.dumps(document, indent=2)


def _present_kinds(data: Dict[str, Any]) -> Set[str]:
    """Collections the document actually carries."""
    version = detect_version(data)
    body = data if version == LEGACY_FLAT else data.get("data", {})
    present = {kind for kind in ENTITY_KINDS if isinstance(body.get(kind), list)}
    if isinstance(body.get("materialTypes"), list):
        present.add("materialTypes")
    if isinstance(body.get("categories"), list) or isinstance(body.get("modelCategories"), list):
        present.add("categories")
    return present


def _merge_labels(*groups: List[str]) -> List[str]:
    labels: List[str] = []
    for group in groups:
        for label in group:
            if label and label.lower() not in {existing.lower() for existing in labels}:
                labels.append(label)
    return labels


def _validate(
    snapshot: Snapshot,
    repository: InventoryRepository,
) -> Dict[str, Any]:
    """Split imported entities into valid ones and rejections."""
    current = repository.to_snapshot()
    context = ValidationContext(
        material_types=_merge_labels(current.material_types, snapshot.material_types),
        categories=_merge_labels(current.categories, snapshot.categories),
        filament_ids={str(f.id) for f in current.filaments + snapshot.filaments},
        mode=IMPORT,
        creating=True,
    )

    valid: Dict[str, list] = {kind: [] for kind in ENTITY_KINDS}
    rejected: List[RejectedEntity] = []
    checks = (
        ("filaments", "filament", snapshot.filaments, validate_filament, lambda f: f.label),
        ("models", "model", snapshot.models, validate_model, lambda m: m.name),
        ("prints", "print", snapshot.prints, validate_print, lambda p: f"{p.model_name} ({p.print_date})"),
    )
    for kind, singular, entities, validator, describe in checks:
        for entity in entities:
            result = validator(entity.to_dict(), context)
            if result.valid:
                valid[kind].append(entity)
            else:
                rejected.append(RejectedEntity(singular, entity.id, describe(entity), result.errors))
    return {"valid": valid, "rejected": rejected}


def _reidentify(
    entities: List[Any],
    taken: Set[str],
    repository: InventoryRepository,
    kind: str,
    warnings: List[str],
) -> Dict[str, Any]:
    """Give colliding entities fresh identities; returns old -> new ids."""
    remap: Dict[str, Any] = {}
    for entity in entities:
        if str(entity.id) in taken:
            new_id = repository.id_generator.next_unused(taken)
            warnings.append(f"Imported {kind} {entity.id!r} collided with an existing id; stored as {new_id}")
            remap[str(entity.id)] = new_id
            entity.id = new_id
        taken.add(str(entity.id))
    return remap


def _merge(
    current: Snapshot,
    valid: Dict[str, list],
    repository: InventoryRepository,
    summary: ImportSummary,
) -> Snapshot:
    filaments: List[Filament] = valid["filaments"]
    models: List[Model] = valid["models"]
    prints: List[Print] = valid["prints"]

    remap = _reidentify(filaments, {str(f.id) for f in current.filaments}, repository, "filament", summary.warnings)
    for model in models:
        for requirement in model.requirements:
            if requirement.filament_ref is not None and str(requirement.filament_ref) in remap:
                requirement.filament_ref = remap[str(requirement.filament_ref)]
    for print_record in prints:
        for usage in print_record.filament_usages:
            if usage.filament_ref is not None and str(usage.filament_ref) in remap:
                usage.filament_ref = remap[str(usage.filament_ref)]

    names = {m.name.strip().lower() for m in current.models}
    kept_models = []
    for model in models:
        key = model.name.strip().lower()
        if key in names:
            summary.skipped += 1
            summary.warnings.append(f"Skipped model '{model.name}': a model with that name already exists")
            continue
        names.add(key)
        kept_models.append(model)
    _reidentify(kept_models, {str(m.id) for m in current.models}, repository, "model", summary.warnings)
    _reidentify(prints, {str(p.id) for p in current.prints}, repository, "print", summary.warnings)

    valid["models"] = kept_models
    return Snapshot(
        filaments=current.filaments + filaments,
        models=current.models + kept_models,
        prints=current.prints + prints,
        material_types=current.material_types,
        categories=current.categories,
    )


def _replace(current: Snapshot, imported: Snapshot, valid: Dict[str, list], present: Set[str]) -> Snapshot:
    return Snapshot(
        filaments=valid["filaments"] if "filaments" in present else current.filaments,
        models=valid["models"] if "models" in present else current.models,
        prints=valid["prints"] if "prints" in present else current.prints,
        material_types=imported.material_types if "materialTypes" in present else current.material_types,
        categories=imported.categories if "categories" in present else current.categories,
    )


def _rebind(models: List[Model], filaments: List[Filament], warnings: List[str]) -> None:
    """Bind dangling requirement references by color and material."""
    ids = {str(f.id) for f in filaments}
    for model in models:
        for requirement in model.requirements:
            if requirement.filament_ref is not None and str(requirement.filament_ref) in ids:
                continue
            match = None
            if requirement.color_name and requirement.material_type:
                color = requirement.color_name.strip().lower()
                material = requirement.material_type.strip().lower()
                match = next(
                    (
                        f for f in filaments
                        if f.color_name.strip().lower() == color and f.material_type.strip().lower() == material
                    ),
                    None,
                )
            if match is not None:
                requirement.filament_ref = match.id
            else:
                warnings.append(f"Model '{model.name}' requires a filament that does not exist")


def import_snapshot(
    repository: InventoryRepository,
    blob: Any,
    mode: Any = ImportMode.REPLACE,
) -> OperationResult:
    """
    Import a foreign snapshot into the repository.

    Args:
        repository: Repository to change
        blob: JSON text, bytes or decoded document
        mode: "replace" (per collection present in the document) or "add"

    Returns:
        Result carrying an ``ImportSummary``, or ``ImportFailedError`` when
        the document cannot be read or nothing in it is valid
    """
    try:
        mode = ImportMode(mode)
    except ValueError:
        return OperationResult.fail(ImportFailedError("mode", f"Unknown import mode {mode!r}"))

    try:
        data = parse_blob(blob)
    except SchemaError as e:
        return OperationResult.fail(ImportFailedError("parse", f"Could not read import file: {e}"))
    if detect_version(data) == UNKNOWN:
        return OperationResult.fail(ImportFailedError("schema", "Import file is not a recognised inventory export"))

    migrator = SnapshotMigrator(repository.id_generator)
    try:
        imported = migrator.migrate(data)
    except SchemaError as e:
        return OperationResult.fail(ImportFailedError("schema", str(e)))

    summary = ImportSummary(mode=mode, warnings=list(migrator.report))
    present = _present_kinds(data)
    checked = _validate(imported, repository)
    valid = checked["valid"]
    summary.rejected = checked["rejected"]

    total = sum(len(getattr(imported, kind)) for kind in ENTITY_KINDS)
    accepted = sum(len(valid[kind]) for kind in ENTITY_KINDS)
    if total and not accepted:
        return OperationResult.fail(
            ImportFailedError("empty", "No valid entities in import file", summary.rejected),
            warnings=summary.warnings,
        )

    current = repository.to_snapshot()
    if mode == ImportMode.ADD:
        result = _merge(current, valid, repository, summary)
        result.material_types = _merge_labels(
            current.material_types, imported.material_types if "materialTypes" in present else []
        )
        result.categories = _merge_labels(
            current.categories, imported.categories if "categories" in present else []
        )
        touched = valid["models"]
    else:
        result = _replace(current, imported, valid, present)
        touched = result.models if "models" in present else []

    _rebind(touched, result.filaments, summary.warnings)
    for print_record in valid["prints"]:
        if print_record.usage_variance is None:
            model = match_model(result.models, print_record.model_name)
            print_record.usage_variance = compute_variance(model, print_record.total_weight)

    result.material_types = _merge_labels(
        [m for m in result.material_types if m != OTHER],
        [f.material_type for f in result.filaments],
    )
    result.categories = _merge_labels(result.categories, [m.category for m in result.models], [OTHER])

    summary.imported = {kind: len(valid[kind]) for kind in ENTITY_KINDS}
    repository.restore(result, reason=f"Imported snapshot ({mode.value})")
    for rejected in summary.rejected:
        logger.warning(f"Rejected {rejected.kind} {rejected.id!r}: {rejected.errors}")
    return OperationResult.ok(summary, warnings=summary.warnings, revision=repository.revision)
