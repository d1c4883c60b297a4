"""Shared utilities for PrintStack."""

import logging
from datetime import date, datetime, timezone

from rich.console import Console
from rich.logging import RichHandler

# Rich console for pretty output
console = Console()


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Set up logging with Rich handler."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    return logging.getLogger("printstack")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module."""
    return logging.getLogger(f"printstack.{name}")


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def today() -> str:
    """Today's date as YYYY-MM-DD."""
    return date.today().isoformat()


def format_weight(grams: float) -> str:
    """Format a weight in grams as a human-readable string."""
    if abs(grams) >= 1000:
        return f"{grams / 1000:.1f} kg"
    return f"{grams:.1f} g"


def format_size(size_bytes: float) -> str:
    """Format byte size as human-readable string."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"
