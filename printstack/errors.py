"""Typed error kinds for the PrintStack core.

Every error carries a machine-readable ``code`` plus the structured data a
presenter needs to build a message or ask the user for a decision.

Repository and service commands hand these back inside an
``OperationResult`` instead of raising them; only schema, persistence and
invariant failures are raised.

    PrintStackError
    +-- ValidationError            field-indexed message map
    +-- ReferentialIntegrityError  blockers of a refused delete
    +-- InsufficientStockError     per-filament deficits
    +-- DuplicateCandidateError    disposition request, not fatal
    +-- EntityNotFoundError
    +-- SchemaError                unrecognised snapshot shape
    +-- PersistenceError           store write failed
    +-- ImportFailedError          parse or total import failure
    +-- InvariantViolationError    fatal, state left untouched
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class PrintStackError(Exception):
    """Base class for all PrintStack errors."""

    code: str = "PRINTSTACK_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"code": self.code, "message": self.message}


class ValidationError(PrintStackError):
    """One or more fields failed validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        if message is None:
            fields = ", ".join(sorted(self.errors))
            message = f"Validation failed for: {fields}"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = dict(self.errors)
        return data


@dataclass
class Blocker:
    """An entity whose reference prevents a delete."""

    kind: str  # "model", "print" or "filament"
    id: Any
    name: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"kind": self.kind, "id": self.id, "name": self.name}


class ReferentialIntegrityError(PrintStackError):
    """A delete was refused because other entities still reference the target."""

    code = "REFERENTIAL_INTEGRITY"

    def __init__(self, target: str, blockers: List[Blocker]):
        self.target = target
        self.blockers = list(blockers)
        names = ", ".join(f"{b.kind} '{b.name}'" for b in self.blockers)
        super().__init__(f"{target} is still referenced by {names}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["blockers"] = [b.to_dict() for b in self.blockers]
        return data


@dataclass
class StockDeficit:
    """Shortfall of one filament for a proposed print."""

    filament_ref: Any
    label: str
    available: float
    requested: float

    @property
    def deficit(self) -> float:
        return round(self.requested - self.available, 2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "filamentRef": self.filament_ref,
            "label": self.label,
            "available": self.available,
            "requested": self.requested,
            "deficit": self.deficit,
        }


class InsufficientStockError(PrintStackError):
    """Recording a print would take one or more spools below zero."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, deficits: List[StockDeficit]):
        self.deficits = list(deficits)
        parts = ", ".join(f"{d.label} short by {d.deficit:g}g" for d in self.deficits)
        super().__init__(f"Insufficient stock: {parts}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["deficits"] = [d.to_dict() for d in self.deficits]
        return data


class DuplicateCandidateError(PrintStackError):
    """A new filament matches an existing one; the caller must pick merge or separate."""

    code = "DUPLICATE_CANDIDATE"

    def __init__(self, existing: Any, proposed: Dict[str, Any]):
        self.existing = existing
        self.proposed = dict(proposed)
        super().__init__(
            f"A filament {existing.brand} {existing.material_type} {existing.color_hex} already exists"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["existing"] = self.existing.to_dict()
        data["proposed"] = dict(self.proposed)
        return data


class EntityNotFoundError(PrintStackError):
    """The addressed entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: Any):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier!r} not found")


class SchemaError(PrintStackError):
    """A snapshot could not be parsed or recognised."""

    code = "SCHEMA_ERROR"


class PersistenceError(PrintStackError):
    """A snapshot could not be written to the key-value store."""

    code = "PERSISTENCE_ERROR"


class ImportFailedError(PrintStackError):
    """An import could not be applied at all."""

    code = "IMPORT_FAILED"

    def __init__(self, reason: str, message: str, rejected: Optional[List[Any]] = None):
        self.reason = reason  # "parse", "schema" or "empty"
        self.rejected = list(rejected or [])
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason
        data["rejected"] = [r.to_dict() if hasattr(r, "to_dict") else r for r in self.rejected]
        return data


class InvariantViolationError(PrintStackError):
    """An operation would leave the inventory in an impossible state."""

    code = "INVARIANT_VIOLATION"
