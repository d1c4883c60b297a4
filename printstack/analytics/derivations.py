"""Printability, cost and usage derivations.

All functions are pure: they read an inventory view and return new values.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from printstack.schema.entities import EntityId, Filament, FilamentUsage, Model, Print, Requirement


class InventoryView(Protocol):
    """Read-only access to inventory state."""

    def get_filament(self, filament_id: EntityId) -> Optional[Filament]:
        ...

    def list_filaments(self) -> List[Filament]:
        ...

    def list_models(self) -> List[Model]:
        ...

    def list_prints(self) -> List[Print]:
        ...


@dataclass
class Printability:
    """Whether a model can be printed with current stock."""

    can_print: bool
    missing_requirements: List[str] = field(default_factory=list)
    can_print_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "canPrint": self.can_print,
            "missingRequirements": list(self.missing_requirements),
            "canPrintCount": self.can_print_count,
        }


@dataclass
class ModelCost:
    """Estimated material cost of one unit of a model."""

    total: float
    partial: bool  # True when some requirement has no known price
    priced_requirements: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "partial": self.partial,
            "pricedRequirements": self.priced_requirements,
        }


def _lookup(view: InventoryView, requirement: Requirement) -> Optional[Filament]:
    if requirement.filament_ref is None:
        return None
    return view.get_filament(requirement.filament_ref)


def _describe_requirement(requirement: Requirement) -> str:
    parts = [p for p in (requirement.color_name, requirement.material_type) if p]
    return " ".join(parts) if parts else f"Filament {requirement.filament_ref}"


def can_print_model(view: InventoryView, model: Model) -> Printability:
    """
    Check a model against current stock.

    A requirement is missing when its filament does not exist or is out of
    stock. The printable count is the minimum over requirements of
    ``floor(remaining / expected / count)``; if any requirement plans 0g the
    count is 1 when nothing is missing.

    Args:
        view: Inventory to read filaments from
        model: Model to check

    Returns:
        Printability of the model
    """
    if not model.requirements:
        return Printability(can_print=False, missing_requirements=["No filament requirements"], can_print_count=0)

    missing: List[str] = []
    counts: List[int] = []
    unplanned = False

    for requirement in model.requirements:
        filament = _lookup(view, requirement)
        if filament is None:
            missing.append(f"{_describe_requirement(requirement)} - Filament not found")
            counts.append(0)
            continue
        if not filament.in_stock:
            missing.append(f"{filament.label} - Out of Stock")
            counts.append(0)
            continue
        if requirement.expected_weight <= 0:
            unplanned = True
            continue
        per_unit = requirement.expected_weight * max(requirement.required_count, 1)
        counts.append(max(math.floor(filament.remaining_weight / per_unit), 0))

    if unplanned:
        count = 0 if missing else 1
    else:
        count = min(counts) if counts else 0

    return Printability(can_print=not missing, missing_requirements=missing, can_print_count=count)


def estimated_model_cost(view: InventoryView, model: Model) -> ModelCost:
    """
    Material cost of one unit of a model.

    Requirements whose filament is missing or has no price add nothing and
    mark the cost as partial.
    """
    total = 0.0
    priced = 0
    for requirement in model.requirements:
        filament = _lookup(view, requirement)
        per_gram = filament.cost_per_gram if filament is not None else None
        if per_gram is None:
            continue
        total += per_gram * requirement.expected_weight * requirement.required_count
        priced += 1
    return ModelCost(
        total=round(total, 2),
        partial=priced < len(model.requirements),
        priced_requirements=priced,
    )


def usage_matches(usage: FilamentUsage, filament: Filament) -> bool:
    """Match by reference when present, otherwise by color and material snapshot."""
    if usage.filament_ref is not None:
        return str(usage.filament_ref) == str(filament.id)
    return (
        usage.color_name.strip().lower() == filament.color_name.strip().lower()
        and usage.material_type.strip().lower() == filament.material_type.strip().lower()
    )


def filament_usage(view: InventoryView, filament: Filament) -> float:
    """Grams of a filament consumed across all prints."""
    total = 0.0
    for print_record in view.list_prints():
        for usage in print_record.filament_usages:
            if usage_matches(usage, filament):
                total += usage.actual_weight
    return round(total, 2)
