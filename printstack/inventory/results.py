"""Result values returned by inventory commands."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from printstack.errors import PrintStackError


class DuplicateDisposition(str, Enum):
    """What to do when a new filament matches an existing one."""
    MERGE = "merge"
    SEPARATE = "separate"


@dataclass
class OperationResult:
    """
    Outcome of a repository or service command.

    Expected problems (invalid input, refused deletes, stock shortfalls,
    duplicate candidates) are reported through ``error`` rather than raised.
    """

    success: bool
    value: Any = None
    error: Optional[PrintStackError] = None
    warnings: List[str] = field(default_factory=list)
    revision: Optional[int] = None

    @classmethod
    def ok(cls, value: Any = None, warnings: Optional[List[str]] = None, revision: Optional[int] = None) -> "OperationResult":
        return cls(success=True, value=value, warnings=list(warnings or []), revision=revision)

    @classmethod
    def fail(cls, error: PrintStackError, warnings: Optional[List[str]] = None) -> "OperationResult":
        return cls(success=False, error=error, warnings=list(warnings or []))

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        value = self.value.to_dict() if hasattr(self.value, "to_dict") else self.value
        return {
            "success": self.success,
            "value": value,
            "error": self.error.to_dict() if self.error is not None else None,
            "warnings": list(self.warnings),
            "revision": self.revision,
        }
