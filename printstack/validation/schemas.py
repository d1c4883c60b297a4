"""Pydantic schemas of filament, model and print records.

Records arrive as camelCase dictionaries. Field bounds live on the schemas;
rules that depend on the current inventory read the ``ValidationContext``
passed to ``model_validate`` as ``context={"inventory": ...}``.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from printstack.schema.entities import OTHER, Difficulty, QualityRating
from printstack.validation.context import ValidationContext

BRAND_PATTERN = r"^[A-Za-z0-9 &.,-]+$"
COLOR_HEX_PATTERN = r"^#[0-9A-Fa-f]{6}$"
DATE_PATTERN = r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$"
URL_PATTERN = r"(?i)^https?://[^\s/$.?#]\S*$"

DIAMETERS = (1.75, 2.85)
LEGACY_DIAMETER = 3.0

MAX_LABEL_LENGTH = 50


def rule_error(message: str) -> PydanticCustomError:
    """Error whose message is shown as is."""
    return PydanticCustomError("printstack", message)


def inventory(info: ValidationInfo) -> ValidationContext:
    context = info.context or {}
    return context.get("inventory") or ValidationContext()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def check_filament_ref(value: Any, info: ValidationInfo) -> Any:
    """A usable filament reference; must resolve outside import mode."""
    context = inventory(info)
    if value is None:
        if context.importing:
            return None
        raise rule_error("Select a filament")
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise rule_error("Filament must be an identifier")
    if not context.importing and not context.has_filament(value):
        raise rule_error(f"Filament {value!r} does not exist")
    return value


class RecordSchema(BaseModel):
    """Base of camelCase records; blank values count as absent."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
        allow_inf_nan=False,
        protected_namespaces=(),
    )

    @model_validator(mode="before")
    @classmethod
    def drop_blank_values(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            key: value.strip() if isinstance(value, str) else value
            for key, value in data.items()
            if not is_blank(value)
        }


class FilamentSchema(RecordSchema):
    """Fields of a filament spool."""

    brand: str = Field(min_length=2, max_length=100, pattern=BRAND_PATTERN)
    custom_material_type: Optional[str] = Field(None, max_length=MAX_LABEL_LENGTH)
    material_type: str
    color_name: str = Field(min_length=2, max_length=50)
    color_hex: str = Field(pattern=COLOR_HEX_PATTERN)
    diameter: Optional[float] = None
    nominal_weight: float = Field(ge=0.1, le=10000)
    remaining_weight: Optional[float] = Field(None, ge=0)
    purchase_price: Optional[float] = Field(None, ge=0, le=1000)
    location: Optional[str] = Field(None, max_length=200)
    temp_min: Optional[float] = Field(None, ge=150, le=350)
    temp_max: Optional[float] = Field(None, ge=150, le=350)
    in_stock: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("material_type")
    @classmethod
    def known_material(cls, value: str, info: ValidationInfo) -> str:
        allowed = {m.lower() for m in inventory(info).material_types} | {OTHER.lower()}
        if value.lower() not in allowed:
            raise rule_error("Material type must be a known material or Other")
        if value.lower() == OTHER.lower() and not info.data.get("custom_material_type"):
            raise rule_error("Enter a custom material type when selecting Other")
        return value

    @field_validator("diameter")
    @classmethod
    def supported_diameter(cls, value: Optional[float], info: ValidationInfo) -> Optional[float]:
        allowed = DIAMETERS + (LEGACY_DIAMETER,) if inventory(info).importing else DIAMETERS
        if value is not None and value not in allowed:
            raise rule_error("Diameter must be 1.75 or 2.85 mm")
        return value

    @field_validator("remaining_weight")
    @classmethod
    def within_nominal(cls, value: Optional[float], info: ValidationInfo) -> Optional[float]:
        context = inventory(info)
        nominal = info.data.get("nominal_weight")
        if not context.creating or context.importing or nominal is None or value is None:
            return value
        if value > nominal:
            raise rule_error("Remaining weight cannot exceed the spool weight")
        return value

    @field_validator("temp_max")
    @classmethod
    def above_minimum(cls, value: Optional[float], info: ValidationInfo) -> Optional[float]:
        low = info.data.get("temp_min")
        if value is not None and low is not None and value <= low:
            raise rule_error("Maximum temperature must be greater than minimum temperature")
        return value


class RequirementSchema(RecordSchema):
    """One filament requirement of a model."""

    filament_ref: Any = Field(None, validate_default=True)
    expected_weight: float = Field(gt=0)
    tolerance_percent: Optional[float] = Field(None, ge=0, le=100)
    required_count: Optional[int] = Field(None, ge=1, le=100)
    material_type: Optional[str] = Field(None, max_length=MAX_LABEL_LENGTH)
    color_name: Optional[str] = Field(None, max_length=50)

    @field_validator("filament_ref")
    @classmethod
    def resolvable_ref(cls, value: Any, info: ValidationInfo) -> Any:
        return check_filament_ref(value, info)


class ModelSchema(RecordSchema):
    """Fields of a printable model."""

    name: str = Field(min_length=1, max_length=100)
    external_link: Optional[str] = Field(None, max_length=500, pattern=URL_PATTERN)
    category: Optional[str] = None
    difficulty: Optional[str] = None
    estimated_print_time: Optional[float] = Field(None, ge=0, le=1440)
    layer_height: Optional[float] = Field(None, ge=0.05, le=1.0)
    infill_percent: Optional[float] = Field(None, ge=0, le=100)
    supports_required: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=1000)
    requirements: List[RequirementSchema] = Field(min_length=1)

    @field_validator("category")
    @classmethod
    def known_category(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is not None and value.lower() not in {c.lower() for c in inventory(info).categories}:
            raise rule_error("Category must be one of the model categories")
        return value

    @field_validator("difficulty")
    @classmethod
    def known_difficulty(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        for difficulty in Difficulty:
            if difficulty.value.lower() == value.lower():
                return difficulty.value
        raise rule_error(f"Difficulty must be one of {', '.join(d.value for d in Difficulty)}")


class UsageSchema(RecordSchema):
    """Filament consumed by a print."""

    filament_ref: Any = Field(None, validate_default=True)
    actual_weight: float = Field(gt=0)
    material_type: Optional[str] = Field(None, max_length=MAX_LABEL_LENGTH)
    color_name: Optional[str] = Field(None, max_length=50)
    color_hex: Optional[str] = Field(None, pattern=COLOR_HEX_PATTERN)

    @field_validator("filament_ref")
    @classmethod
    def resolvable_ref(cls, value: Any, info: ValidationInfo) -> Any:
        return check_filament_ref(value, info)


class PrintSchema(RecordSchema):
    """Fields of a recorded print."""

    model_name: str = Field(max_length=100)
    print_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    quality_rating: Optional[str] = None
    print_notes: Optional[str] = Field(None, max_length=500)
    duration_hours: Optional[float] = Field(None, ge=0, le=168)
    filament_usages: List[UsageSchema] = Field(min_length=1)

    @field_validator("print_date")
    @classmethod
    def calendar_date(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            datetime.strptime(value, "%Y-%m-%d")
        except ValueError:
            raise rule_error("Print date is not a valid calendar date")
        return value

    @field_validator("quality_rating")
    @classmethod
    def known_rating(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        for rating in QualityRating:
            if rating.value == value.lower():
                return rating.value
        raise rule_error(f"Quality rating must be one of {', '.join(q.value for q in QualityRating)}")


class LabelSchema(BaseModel):
    """A material type or category label."""

    model_config = ConfigDict(str_strip_whitespace=True)

    label: str = Field(min_length=1, max_length=MAX_LABEL_LENGTH)
