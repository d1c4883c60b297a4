"""PrintStack: filament inventory, model library and print history core."""

__version__ = "2.0.0"
