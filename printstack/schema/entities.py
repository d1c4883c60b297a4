"""Canonical inventory entities.

Entities serialize to the camelCase vocabulary of the persisted snapshot
document, so the same dictionaries flow through input validation, import and
storage.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

EntityId = Union[int, str]

CURRENT_VERSION = "2.0"
OTHER = "Other"
DEFAULT_COLOR_HEX = "#cccccc"
APPLICATION_ID = "PrintStack"
DEFAULT_MATERIAL_TYPES = ["PLA", "PETG", "ABS", "TPU"]
DEFAULT_CATEGORIES = [
    "Functional",
    "Artistic",
    "Educational",
    "Prototype",
    "Replacement Part",
    "Toy/Gift",
    OTHER,
]

_TAG_PATTERN = re.compile(r"#([A-Za-z0-9][A-Za-z0-9_\-]*)")


class Difficulty(str, Enum):
    """How hard a model is to print."""
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class QualityRating(str, Enum):
    """User rating of a finished print."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNSET = "unset"


def extract_tags(notes: Optional[str]) -> List[str]:
    """Collect ``#tag`` tokens from free text, lower-cased and de-duplicated."""
    if not notes:
        return []
    tags: List[str] = []
    for match in _TAG_PATTERN.finditer(notes):
        tag = match.group(1).lower()
        if tag not in tags:
            tags.append(tag)
    return tags


@dataclass
class Filament:
    """A physical spool of filament."""

    id: EntityId
    brand: str
    material_type: str
    color_name: str
    color_hex: str
    nominal_weight: float  # Spool weight when full, grams
    remaining_weight: float  # Current remaining weight, grams
    diameter: float = 1.75  # mm
    purchase_price: Optional[float] = None
    location: Optional[str] = None
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    in_stock: bool = True
    notes: Optional[str] = None
    deletion_blocked: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def label(self) -> str:
        """Short human-readable description."""
        return f"{self.brand} {self.material_type} ({self.color_name})"

    @property
    def display_hex(self) -> str:
        """Color hex normalized to uppercase."""
        return self.color_hex.upper()

    @property
    def remaining_percent(self) -> float:
        """Get remaining material as percentage."""
        if self.nominal_weight <= 0:
            return 0
        return (self.remaining_weight / self.nominal_weight) * 100

    @property
    def cost_per_gram(self) -> Optional[float]:
        """Purchase price spread over the nominal weight, if known."""
        if self.purchase_price is None or self.nominal_weight <= 0:
            return None
        return self.purchase_price / self.nominal_weight

    @property
    def remaining_value(self) -> float:
        """Get value of remaining material."""
        per_gram = self.cost_per_gram
        if per_gram is None:
            return 0.0
        return per_gram * self.remaining_weight

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "brand": self.brand,
            "materialType": self.material_type,
            "colorName": self.color_name,
            "colorHex": self.color_hex,
            "diameter": self.diameter,
            "nominalWeight": self.nominal_weight,
            "remainingWeight": self.remaining_weight,
            "purchasePrice": self.purchase_price,
            "location": self.location,
            "tempMin": self.temp_min,
            "tempMax": self.temp_max,
            "inStock": self.in_stock,
            "notes": self.notes,
            "deletionBlocked": self.deletion_blocked,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Filament":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            brand=data["brand"],
            material_type=data["materialType"],
            color_name=data["colorName"],
            color_hex=data["colorHex"],
            diameter=float(data.get("diameter", 1.75)),
            nominal_weight=float(data["nominalWeight"]),
            remaining_weight=float(data["remainingWeight"]),
            purchase_price=_optional_float(data.get("purchasePrice")),
            location=data.get("location") or None,
            temp_min=_optional_float(data.get("tempMin")),
            temp_max=_optional_float(data.get("tempMax")),
            in_stock=bool(data.get("inStock", True)),
            notes=data.get("notes") or None,
            deletion_blocked=bool(data.get("deletionBlocked", False)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class Requirement:
    """Quantity of one filament needed to print one unit of a model."""

    filament_ref: Optional[EntityId]
    expected_weight: float  # grams per piece
    tolerance_percent: float = 10.0
    required_count: int = 1
    # Snapshot of the filament at save time, used to rebind dangling refs
    material_type: Optional[str] = None
    color_name: Optional[str] = None

    @property
    def total_weight(self) -> float:
        return self.expected_weight * self.required_count

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "filamentRef": self.filament_ref,
            "expectedWeight": self.expected_weight,
            "tolerancePercent": self.tolerance_percent,
            "requiredCount": self.required_count,
            "materialType": self.material_type,
            "colorName": self.color_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Requirement":
        """Create from dictionary."""
        return cls(
            filament_ref=data.get("filamentRef"),
            expected_weight=float(data.get("expectedWeight", 0)),
            tolerance_percent=float(data.get("tolerancePercent", 10)),
            required_count=int(data.get("requiredCount", 1)),
            material_type=data.get("materialType"),
            color_name=data.get("colorName"),
        )


@dataclass
class Model:
    """A printable artifact blueprint."""

    id: EntityId
    name: str
    requirements: List[Requirement] = field(default_factory=list)
    category: str = OTHER
    difficulty: Difficulty = Difficulty.MEDIUM
    external_link: Optional[str] = None
    estimated_print_time: Optional[float] = None  # minutes
    layer_height: Optional[float] = None  # mm
    infill_percent: Optional[float] = None
    supports_required: bool = False
    notes: Optional[str] = None
    added_date: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def tags(self) -> List[str]:
        """Tags written as ``#tag`` in the notes."""
        return extract_tags(self.notes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "externalLink": self.external_link,
            "category": self.category,
            "difficulty": self.difficulty.value,
            "estimatedPrintTime": self.estimated_print_time,
            "layerHeight": self.layer_height,
            "infillPercent": self.infill_percent,
            "supportsRequired": self.supports_required,
            "notes": self.notes,
            "tags": self.tags,
            "addedDate": self.added_date,
            "requirements": [r.to_dict() for r in self.requirements],
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Model":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            name=data["name"],
            requirements=[Requirement.from_dict(r) for r in data.get("requirements", [])],
            category=data.get("category") or OTHER,
            difficulty=Difficulty(data.get("difficulty", Difficulty.MEDIUM.value)),
            external_link=data.get("externalLink") or None,
            estimated_print_time=_optional_float(data.get("estimatedPrintTime")),
            layer_height=_optional_float(data.get("layerHeight")),
            infill_percent=_optional_float(data.get("infillPercent")),
            supports_required=bool(data.get("supportsRequired", False)),
            notes=data.get("notes") or None,
            added_date=data.get("addedDate"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class FilamentUsage:
    """Filament consumed by a print, with a snapshot of the spool."""

    filament_ref: Optional[EntityId]
    material_type: str
    color_name: str
    actual_weight: float
    color_hex: str = DEFAULT_COLOR_HEX

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "filamentRef": self.filament_ref,
            "materialType": self.material_type,
            "colorName": self.color_name,
            "actualWeight": self.actual_weight,
            "colorHex": self.color_hex,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilamentUsage":
        """Create from dictionary."""
        return cls(
            filament_ref=data.get("filamentRef"),
            material_type=data.get("materialType") or "",
            color_name=data.get("colorName") or "",
            actual_weight=float(data.get("actualWeight", 0)),
            color_hex=data.get("colorHex") or DEFAULT_COLOR_HEX,
        )


@dataclass
class UsageVariance:
    """Expected versus actual consumption of one print."""

    expected_total: float
    actual_total: float
    variance_percent: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "expectedTotal": self.expected_total,
            "actualTotal": self.actual_total,
            "variancePercent": self.variance_percent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageVariance":
        """Create from dictionary."""
        return cls(
            expected_total=float(data.get("expectedTotal", 0)),
            actual_total=float(data.get("actualTotal", 0)),
            variance_percent=_optional_float(data.get("variancePercent")),
        )


@dataclass
class Print:
    """A completed print event."""

    id: EntityId
    model_name: str
    print_date: str  # YYYY-MM-DD
    filament_usages: List[FilamentUsage] = field(default_factory=list)
    quality_rating: QualityRating = QualityRating.UNSET
    print_notes: Optional[str] = None
    duration_hours: Optional[float] = None
    usage_variance: Optional[UsageVariance] = None
    timestamp: Optional[str] = None

    @property
    def total_weight(self) -> float:
        """Sum of the actual weight of all usages."""
        return round(sum(u.actual_weight for u in self.filament_usages), 2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "modelName": self.model_name,
            "printDate": self.print_date,
            "qualityRating": self.quality_rating.value,
            "printNotes": self.print_notes,
            "durationHours": self.duration_hours,
            "filamentUsages": [u.to_dict() for u in self.filament_usages],
            "totalWeight": self.total_weight,
            "usageVariance": self.usage_variance.to_dict() if self.usage_variance else None,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Print":
        """Create from dictionary."""
        variance = data.get("usageVariance")
        return cls(
            id=data["id"],
            model_name=data.get("modelName") or "",
            print_date=data["printDate"],
            filament_usages=[FilamentUsage.from_dict(u) for u in data.get("filamentUsages", [])],
            quality_rating=QualityRating(data.get("qualityRating", QualityRating.UNSET.value)),
            print_notes=data.get("printNotes") or None,
            duration_hours=_optional_float(data.get("durationHours")),
            usage_variance=UsageVariance.from_dict(variance) if variance else None,
            timestamp=data.get("timestamp"),
        )


@dataclass
class Snapshot:
    """Serializable, versioned aggregate of the whole inventory."""

    version: str = CURRENT_VERSION
    filaments: List[Filament] = field(default_factory=list)
    models: List[Model] = field(default_factory=list)
    prints: List[Print] = field(default_factory=list)
    material_types: List[str] = field(default_factory=lambda: list(DEFAULT_MATERIAL_TYPES))
    categories: List[str] = field(default_factory=lambda: [OTHER])
    saved_at: Optional[str] = None

    def counts(self) -> Dict[str, int]:
        """Number of entities per kind."""
        return {
            "filaments": len(self.filaments),
            "models": len(self.models),
            "prints": len(self.prints),
        }

    def metadata(self) -> Dict[str, Any]:
        """Summary block written next to the data in exports."""
        return {
            "totalFilaments": len(self.filaments),
            "totalModels": len(self.models),
            "totalPrints": len(self.prints),
            "materialTypes": sorted({f.material_type for f in self.filaments}),
            "brands": sorted({f.brand for f in self.filaments}),
        }

    def to_document(self, application: str, exported_at: Optional[str] = None) -> Dict[str, Any]:
        """Build the persisted/exported document."""
        return {
            "version": self.version,
            "exportDate": exported_at or self.saved_at,
            "application": application,
            "data": {
                "filaments": [f.to_dict() for f in self.filaments],
                "models": [m.to_dict() for m in self.models],
                "prints": [p.to_dict() for p in self.prints],
                "materialTypes": list(self.material_types),
                "categories": list(self.categories),
            },
            "metadata": self.metadata(),
        }


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)
