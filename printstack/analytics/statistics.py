"""Aggregate statistics over prints and stock.

Every aggregate is a single pass over the prints or filaments, so the cost
stays linear in the size of the inventory.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from printstack.analytics.derivations import InventoryView
from printstack.schema.entities import Filament, QualityRating
from printstack.utils import get_logger

logger = get_logger("analytics.statistics")


@dataclass
class MaterialConsumption:
    """Consumption of one material type."""
    material_type: str
    count: int  # number of usages
    total_weight: float
    print_count: int
    average_per_print: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "materialType": self.material_type,
            "count": self.count,
            "totalWeight": self.total_weight,
            "printCount": self.print_count,
            "averagePerPrint": self.average_per_print,
        }


@dataclass
class InventorySummary:
    """Stock overview."""
    total_spools: int = 0
    in_stock: int = 0
    out_of_stock: int = 0
    low_stock: int = 0
    remaining_grams: float = 0.0
    remaining_value: float = 0.0
    by_material: Dict[str, int] = field(default_factory=dict)
    by_brand: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "totalSpools": self.total_spools,
            "inStock": self.in_stock,
            "outOfStock": self.out_of_stock,
            "lowStock": self.low_stock,
            "remainingGrams": self.remaining_grams,
            "remainingValue": self.remaining_value,
            "byMaterial": dict(self.by_material),
            "byBrand": dict(self.by_brand),
        }


@dataclass
class Statistics:
    """
    Aggregate statistics of the inventory.

    Weights are in grams, percentages in percent with one decimal.
    """

    total_prints: int = 0
    total_weight: float = 0.0
    usage_by_color: Dict[str, float] = field(default_factory=dict)
    usage_by_model: Dict[str, float] = field(default_factory=dict)
    quality_distribution: Dict[str, Dict[str, float]] = field(default_factory=dict)
    average_variance: Optional[float] = None
    prints_with_variance: int = 0
    material_consumption: List[MaterialConsumption] = field(default_factory=list)
    top_models: List[Dict[str, Any]] = field(default_factory=list)
    inventory: InventorySummary = field(default_factory=InventorySummary)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "totalPrints": self.total_prints,
            "totalWeight": self.total_weight,
            "usageByColor": dict(self.usage_by_color),
            "usageByModel": dict(self.usage_by_model),
            "qualityDistribution": {k: dict(v) for k, v in self.quality_distribution.items()},
            "averageVariance": self.average_variance,
            "printsWithVariance": self.prints_with_variance,
            "materialConsumption": [m.to_dict() for m in self.material_consumption],
            "topModels": [dict(m) for m in self.top_models],
            "inventory": self.inventory.to_dict(),
        }


def summarize_inventory(filaments: List[Filament], low_stock_threshold: float = 100.0) -> InventorySummary:
    """
    Summarize spools in stock.

    Args:
        filaments: Spools to summarize
        low_stock_threshold: Remaining grams under which an in-stock spool is low

    Returns:
        Inventory summary
    """
    summary = InventorySummary(total_spools=len(filaments))
    remaining = 0.0
    value = 0.0
    for filament in filaments:
        summary.by_material[filament.material_type] = summary.by_material.get(filament.material_type, 0) + 1
        summary.by_brand[filament.brand] = summary.by_brand.get(filament.brand, 0) + 1
        if not filament.in_stock:
            summary.out_of_stock += 1
            continue
        summary.in_stock += 1
        if filament.remaining_weight < low_stock_threshold:
            summary.low_stock += 1
        remaining += filament.remaining_weight
        value += filament.remaining_value
    summary.remaining_grams = round(remaining, 2)
    summary.remaining_value = round(value, 2)
    return summary


def compute_statistics(
    view: InventoryView,
    top_n: int = 5,
    low_stock_threshold: float = 100.0,
) -> Statistics:
    """
    Compute aggregate statistics.

    Args:
        view: Inventory to read
        top_n: Number of most printed models to report
        low_stock_threshold: Threshold for the inventory summary

    Returns:
        Statistics over all prints and filaments
    """
    prints = view.list_prints()
    stats = Statistics(total_prints=len(prints))

    by_color: Dict[str, float] = {}
    by_model: Dict[str, float] = {}
    model_counts: Dict[str, int] = {}
    quality_counts = {q.value: 0 for q in QualityRating}
    materials: Dict[str, Dict[str, Any]] = {}
    variances = []
    total_weight = 0.0

    for print_record in prints:
        weight = print_record.total_weight
        total_weight += weight
        by_model[print_record.model_name] = by_model.get(print_record.model_name, 0.0) + weight
        model_counts[print_record.model_name] = model_counts.get(print_record.model_name, 0) + 1
        quality_counts[print_record.quality_rating.value] += 1

        variance = print_record.usage_variance
        if variance is not None and variance.variance_percent is not None:
            variances.append(variance.variance_percent)

        for usage in print_record.filament_usages:
            color = usage.color_name or "Unknown"
            by_color[color] = by_color.get(color, 0.0) + usage.actual_weight

            material = usage.material_type or "Unknown"
            entry = materials.setdefault(material, {"count": 0, "weight": 0.0, "prints": set()})
            entry["count"] += 1
            entry["weight"] += usage.actual_weight
            entry["prints"].add(str(print_record.id))

    stats.total_weight = round(total_weight, 2)
    stats.usage_by_color = {k: round(v, 2) for k, v in by_color.items()}
    stats.usage_by_model = {k: round(v, 2) for k, v in by_model.items()}

    total = len(prints)
    stats.quality_distribution = {
        rating: {
            "count": count,
            "percent": round(count / total * 100, 1) if total else 0.0,
        }
        for rating, count in quality_counts.items()
    }

    stats.prints_with_variance = len(variances)
    if variances:
        stats.average_variance = round(sum(variances) / len(variances), 2)

    for material, entry in sorted(materials.items(), key=lambda item: -item[1]["weight"]):
        print_count = len(entry["prints"])
        stats.material_consumption.append(
            MaterialConsumption(
                material_type=material,
                count=entry["count"],
                total_weight=round(entry["weight"], 2),
                print_count=print_count,
                average_per_print=round(entry["weight"] / print_count, 2) if print_count else 0.0,
            )
        )

    ranked = sorted(model_counts.items(), key=lambda item: (-item[1], item[0].lower()))
    stats.top_models = [
        {"modelName": name, "printCount": count, "totalWeight": stats.usage_by_model[name]}
        for name, count in ranked[:top_n]
    ]

    stats.inventory = summarize_inventory(view.list_filaments(), low_stock_threshold)
    logger.debug(f"Computed statistics over {total} prints")
    return stats
