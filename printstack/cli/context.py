"""Service construction for CLI commands."""

import click

from printstack.config import get_settings
from printstack.service import InventoryService
from printstack.storage.adapter import PersistenceAdapter
from printstack.storage.kv import JsonFileStore


def get_service(ctx: click.Context) -> InventoryService:
    """Get (or build) the inventory service over the file-backed store."""
    ctx.ensure_object(dict)
    if "service" not in ctx.obj:
        settings = get_settings()
        store = JsonFileStore(settings.store_path)
        adapter = PersistenceAdapter(store, namespace=settings.namespace)
        ctx.obj["service"] = InventoryService(adapter, settings=settings)
    return ctx.obj["service"]
