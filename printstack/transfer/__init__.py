"""Import and export of inventory snapshots."""

from printstack.transfer.exchange import (
    ImportMode,
    ImportSummary,
    RejectedEntity,
    export_snapshot,
    import_snapshot,
)

__all__ = [
    "ImportMode",
    "ImportSummary",
    "RejectedEntity",
    "export_snapshot",
    "import_snapshot",
]
