"""Inventory state that validation runs against."""

from dataclasses import dataclass, field
from typing import Any, Collection

INPUT = "input"
IMPORT = "import"


@dataclass
class ValidationContext:
    """
    Inventory state a record is validated against.

    Input mode is used for interactive commands: every filament reference
    must resolve. Import mode skips reference resolution, leaving dangling
    references to be rebound after the import, and accepts legacy values.
    """

    material_types: Collection[str] = field(default_factory=list)
    categories: Collection[str] = field(default_factory=list)
    filament_ids: Collection[str] = field(default_factory=set)
    mode: str = INPUT  # "input" or "import"
    creating: bool = True

    @property
    def importing(self) -> bool:
        return self.mode == IMPORT

    def has_filament(self, ref: Any) -> bool:
        return ref is not None and str(ref) in {str(i) for i in self.filament_ids}
