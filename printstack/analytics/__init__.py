"""Derived views of the inventory.

Provides printability, cost, usage, variance and aggregate statistics.
"""

from printstack.analytics.variance import (
    VarianceQuality,
    VarianceAssessment,
    total_expected_usage,
    match_model,
    compute_variance,
    variance_for_print,
    model_tolerance,
    assess_variance,
)
from printstack.analytics.derivations import (
    InventoryView,
    Printability,
    ModelCost,
    can_print_model,
    estimated_model_cost,
    filament_usage,
    usage_matches,
)
from printstack.analytics.statistics import (
    Statistics,
    MaterialConsumption,
    InventorySummary,
    compute_statistics,
    summarize_inventory,
)
from printstack.analytics.cache import DerivationCache

__all__ = [
    "VarianceQuality",
    "VarianceAssessment",
    "total_expected_usage",
    "match_model",
    "compute_variance",
    "variance_for_print",
    "model_tolerance",
    "assess_variance",
    "InventoryView",
    "Printability",
    "ModelCost",
    "can_print_model",
    "estimated_model_cost",
    "filament_usage",
    "usage_matches",
    "Statistics",
    "MaterialConsumption",
    "InventorySummary",
    "compute_statistics",
    "summarize_inventory",
    "DerivationCache",
]
