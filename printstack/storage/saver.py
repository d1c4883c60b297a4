"""Debounced snapshot saving.

Mutations only mark the inventory dirty; a flush writes the newest state.
Older pending revisions are superseded, so at most one write happens per
flush no matter how many mutations preceded it.
"""

from typing import Callable, Optional

from printstack.errors import PersistenceError
from printstack.schema.entities import Snapshot
from printstack.storage.adapter import PersistenceAdapter
from printstack.utils import get_logger

logger = get_logger("storage.saver")


class SnapshotSaver:
    """Writes the latest snapshot revision through a persistence adapter."""

    def __init__(self, adapter: PersistenceAdapter, source: Callable[[], Snapshot]):
        """
        Initialize the saver.

        Args:
            adapter: Adapter to write through
            source: Returns the current snapshot when a write happens
        """
        self.adapter = adapter
        self.source = source
        self.pending_revision: Optional[int] = None
        self.saved_revision: Optional[int] = None
        self.last_error: Optional[PersistenceError] = None
        self.last_saved_at: Optional[str] = None
        self._in_flight = False

    @property
    def dirty(self) -> bool:
        return self.pending_revision is not None

    def mark_dirty(self, revision: int) -> None:
        """Record that ``revision`` needs saving."""
        if self.pending_revision is None or revision > self.pending_revision:
            self.pending_revision = revision

    def flush(self) -> bool:
        """
        Write the pending revision, if any.

        A failed write leaves the revision pending so the next flush retries
        it; the error is kept in ``last_error``.

        Returns:
            True if nothing is left pending
        """
        if self.pending_revision is None:
            return True
        if self._in_flight:
            return False

        revision = self.pending_revision
        self._in_flight = True
        try:
            self.last_saved_at = self.adapter.save(self.source())
        except PersistenceError as e:
            self.last_error = e
            logger.error(f"Save of revision {revision} failed, will retry: {e}")
            return False
        finally:
            self._in_flight = False

        self.last_error = None
        self.saved_revision = revision
        if self.pending_revision == revision:
            self.pending_revision = None
        return self.pending_revision is None

    def on_revision(self, revision: int) -> None:
        """Revision observer: mark dirty and flush."""
        self.mark_dirty(revision)
        self.flush()
