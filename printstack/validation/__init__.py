"""Field and entity validation for PrintStack."""

from printstack.validation.context import INPUT, IMPORT, ValidationContext
from printstack.validation.schemas import (
    FilamentSchema,
    ModelSchema,
    PrintSchema,
    RequirementSchema,
    UsageSchema,
)
from printstack.validation.validators import (
    ValidationResult,
    error_key,
    validate_filament,
    validate_model,
    validate_print,
    validate_label,
)

__all__ = [
    "INPUT",
    "IMPORT",
    "ValidationContext",
    "FilamentSchema",
    "ModelSchema",
    "PrintSchema",
    "RequirementSchema",
    "UsageSchema",
    "ValidationResult",
    "error_key",
    "validate_filament",
    "validate_model",
    "validate_print",
    "validate_label",
]
