"""Entity validators shared by interactive input and bulk import.

Each validator runs a record through its schema and turns pydantic errors
into a ``{field: message}`` map. Nested fields are reported as
``requirements[0].expectedWeight``; only the first error of a field is kept.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Type, Union

import pydantic

from printstack.errors import ValidationError
from printstack.validation.context import ValidationContext
from printstack.validation.schemas import (
    MAX_LABEL_LENGTH,
    FilamentSchema,
    LabelSchema,
    ModelSchema,
    PrintSchema,
    RecordSchema,
)

LABELS = {
    "brand": "Brand",
    "materialType": "Material type",
    "customMaterialType": "Custom material type",
    "colorName": "Color name",
    "colorHex": "Color",
    "diameter": "Diameter",
    "nominalWeight": "Weight",
    "remainingWeight": "Remaining weight",
    "purchasePrice": "Purchase price",
    "location": "Location",
    "tempMin": "Minimum temperature",
    "tempMax": "Maximum temperature",
    "inStock": "In stock",
    "notes": "Notes",
    "name": "Model name",
    "externalLink": "Link",
    "category": "Category",
    "difficulty": "Difficulty",
    "estimatedPrintTime": "Print time",
    "layerHeight": "Layer height",
    "infillPercent": "Infill",
    "supportsRequired": "Supports required",
    "requirements": "Filament requirements",
    "filamentRef": "Filament",
    "expectedWeight": "Expected weight",
    "tolerancePercent": "Tolerance",
    "requiredCount": "Required count",
    "modelName": "Model name",
    "printDate": "Print date",
    "qualityRating": "Quality rating",
    "printNotes": "Notes",
    "durationHours": "Duration",
    "filamentUsages": "Filament usages",
    "actualWeight": "Weight used",
}

ITEM_LABELS = {
    "requirements": "filament requirement",
    "filamentUsages": "filament usage",
}

MISSING_MESSAGES = {
    "requirements": "At least one filament requirement is required",
    "filamentUsages": "At least one filament usage is required",
}

PATTERN_MESSAGES = {
    "brand": "Brand may only contain letters, numbers, spaces and - & . ,",
    "colorHex": "Color must be a hex value like #RRGGBB",
    "externalLink": "Link must be an http or https URL",
    "printDate": "Print date must be YYYY-MM-DD",
}

TEMPLATES = {
    "string_type": "{label} must be text",
    "float_type": "{label} must be a number",
    "float_parsing": "{label} must be a number",
    "int_type": "{label} must be a number",
    "int_parsing": "{label} must be a number",
    "finite_number": "{label} must be a number",
    "int_from_float": "{label} must be a whole number",
    "bool_type": "{label} must be true or false",
    "bool_parsing": "{label} must be true or false",
    "greater_than": "{label} must be greater than {gt}",
    "greater_than_equal": "{label} must be at least {ge}",
    "less_than_equal": "{label} must be no more than {le}",
    "string_too_short": "{label} must be at least {min_length} characters",
    "string_too_long": "{label} cannot exceed {max_length} characters",
    "list_type": "{label} must be a list",
}


@dataclass
class ValidationResult:
    """Coerced values and field-indexed errors of one record."""

    values: Dict[str, Any] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_error(self) -> Optional[ValidationError]:
        if self.valid:
            return None
        return ValidationError(self.errors)


def error_key(loc: Sequence[Union[str, int]]) -> str:
    """Field key of an error location, e.g. ``requirements[0].expectedWeight``."""
    key = ""
    for part in loc:
        if isinstance(part, int):
            key += f"[{part}]"
        else:
            key += f".{part}" if key else part
    return key


def _number(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:g}"
    return value


def error_message(error: Dict[str, Any]) -> str:
    """User-facing message of one pydantic error."""
    loc = error["loc"]
    names = [part for part in loc if isinstance(part, str)]
    name = names[-1] if names else ""
    label = LABELS.get(name, name)
    kind = error["type"]

    if loc and isinstance(loc[-1], int):
        return f"Invalid {ITEM_LABELS.get(name, name)}"
    if kind in ("missing", "too_short"):
        return MISSING_MESSAGES.get(name, f"{label} is required")
    if kind == "string_pattern_mismatch":
        return PATTERN_MESSAGES.get(name, f"{label} has an invalid format")
    template = TEMPLATES.get(kind)
    if template is None:
        return error["msg"]
    context = {key: _number(value) for key, value in (error.get("ctx") or {}).items()}
    return template.format(label=label, **context)


def _validate(schema: Type[RecordSchema], record: Any, context: ValidationContext) -> ValidationResult:
    try:
        parsed = schema.model_validate(record, context={"inventory": context})
    except pydantic.ValidationError as e:
        errors: Dict[str, str] = {}
        for error in e.errors():
            errors.setdefault(error_key(error["loc"]), error_message(error))
        return ValidationResult(errors=errors)
    return ValidationResult(values=parsed.model_dump(by_alias=True))


def validate_filament(record: Dict[str, Any], context: ValidationContext) -> ValidationResult:
    """
    Validate a filament record.

    Args:
        record: camelCase filament fields
        context: Inventory state and validation mode

    Returns:
        Coerced values and errors
    """
    return _validate(FilamentSchema, record, context)


def validate_model(record: Dict[str, Any], context: ValidationContext) -> ValidationResult:
    """
    Validate a model record including its requirements.

    In input mode every requirement must reference an existing filament;
    import mode leaves unresolved references to be rebound afterwards.
    """
    return _validate(ModelSchema, record, context)


def validate_print(record: Dict[str, Any], context: ValidationContext) -> ValidationResult:
    """Validate a print record including its filament usages."""
    return _validate(PrintSchema, record, context)


def validate_label(value: Any, kind: str = "label") -> ValidationResult:
    """Validate a material type or category label."""
    try:
        parsed = LabelSchema.model_validate({"label": value})
    except pydantic.ValidationError as e:
        if e.errors()[0]["type"] == "string_too_long":
            message = f"{kind.capitalize()} name cannot exceed {MAX_LABEL_LENGTH} characters"
        else:
            message = f"{kind.capitalize()} name is required"
        return ValidationResult(errors={kind: message})
    return ValidationResult(values={kind: parsed.label})
