"""Expected versus actual material usage.

Variance is ``(actual - expected) / expected * 100`` for a print against the
model it names; quality bands follow the tolerance of the model's requirements.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from printstack.schema.entities import Model, Print, UsageVariance


class VarianceQuality(str, Enum):
    """How close a print came to the planned consumption."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNKNOWN = "unknown"


@dataclass
class VarianceAssessment:
    """Quality band for one variance figure."""
    quality: VarianceQuality
    within_tolerance: bool
    tolerance_percent: float
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "quality": self.quality.value,
            "withinTolerance": self.within_tolerance,
            "tolerancePercent": self.tolerance_percent,
            "summary": self.summary,
        }


def total_expected_usage(model: Model) -> float:
    """Planned grams for one unit of the model."""
    return sum(r.expected_weight * r.required_count for r in model.requirements)


def match_model(models: Iterable[Model], name: str) -> Optional[Model]:
    """Find a model by name, exact match first, then case-insensitive."""
    models = list(models)
    for model in models:
        if model.name == name:
            return model
    wanted = (name or "").strip().lower()
    for model in models:
        if model.name.strip().lower() == wanted:
            return model
    return None


def compute_variance(model: Optional[Model], actual_total: float) -> Optional[UsageVariance]:
    """
    Variance of an actual consumption against a model's plan.

    Args:
        model: Model the print names, if any
        actual_total: Grams actually consumed

    Returns:
        None when there is no model or it has no requirements; a variance with
        ``variance_percent=None`` when the planned total is zero.
    """
    if model is None or not model.requirements:
        return None

    expected = round(total_expected_usage(model), 2)
    actual = round(actual_total, 2)
    if expected <= 0:
        return UsageVariance(expected_total=expected, actual_total=actual, variance_percent=None)

    percent = round((actual - expected) / expected * 100, 2)
    return UsageVariance(expected_total=expected, actual_total=actual, variance_percent=percent)


def variance_for_print(print_record: Print, model: Optional[Model]) -> Optional[UsageVariance]:
    """Variance of a print against the model it names."""
    return compute_variance(model, print_record.total_weight)


def model_tolerance(model: Model, default: float = 10.0) -> float:
    """Requirement tolerances averaged by planned weight."""
    weights = [(r.tolerance_percent, r.expected_weight * r.required_count) for r in model.requirements]
    total = sum(w for _, w in weights)
    if total <= 0:
        return default
    return sum(t * w for t, w in weights) / total


def assess_variance(variance_percent: Optional[float], tolerance: float = 5.0) -> VarianceAssessment:
    """
    Classify a variance figure.

    Bands are excellent within the tolerance, good within twice, fair within
    four times and poor beyond.
    """
    if variance_percent is None:
        return VarianceAssessment(
            quality=VarianceQuality.UNKNOWN,
            within_tolerance=False,
            tolerance_percent=tolerance,
            summary="No expected weight data available for analysis",
        )

    magnitude = abs(variance_percent)
    if magnitude <= tolerance:
        quality = VarianceQuality.EXCELLENT
    elif magnitude <= tolerance * 2:
        quality = VarianceQuality.GOOD
    elif magnitude <= tolerance * 4:
        quality = VarianceQuality.FAIR
    else:
        quality = VarianceQuality.POOR

    direction = "less" if variance_percent < 0 else "more"
    summary = f"Used {magnitude:.1f}% {direction} than expected"
    return VarianceAssessment(
        quality=quality,
        within_tolerance=magnitude <= tolerance,
        tolerance_percent=tolerance,
        summary=summary,
    )
