"""Authoritative inventory state and command results."""

from printstack.inventory.results import (
    DuplicateDisposition,
    OperationResult,
)
from printstack.inventory.repository import InventoryRepository

__all__ = [
    "DuplicateDisposition",
    "OperationResult",
    "InventoryRepository",
]
