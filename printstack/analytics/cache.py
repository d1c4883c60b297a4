"""Memoization of derivations keyed by entity and revision."""

from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from printstack.utils import get_logger

logger = get_logger("analytics.cache")


class DerivationCache:
    """
    Memo table for derived values.

    Entries are keyed by ``(kind, identity)``. Binding the cache to a
    repository clears it on every revision change, so a value read at
    revision N never reflects an older state.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, Hashable], Any] = {}
        self.revision: Optional[int] = None
        self.hits = 0
        self.misses = 0
        self._unsubscribe: Optional[Callable[[], None]] = None

    def bind(self, repository: Any) -> None:
        """Clear the cache whenever the repository's revision changes."""
        self.unbind()
        self.revision = repository.revision
        self._unsubscribe = repository.on_revision_change(self.invalidate)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def invalidate(self, revision: Optional[int] = None) -> None:
        """Drop every entry."""
        self._entries.clear()
        self.revision = revision

    def get_or_compute(self, kind: str, identity: Hashable, compute: Callable[[], Any]) -> Any:
        """
        Get a memoized value, computing it on a miss.

        Args:
            kind: Derivation kind (e.g. "printability")
            identity: Entity identity, or None for inventory-wide values
            compute: Produces the value

        Returns:
            Cached or freshly computed value
        """
        key = (kind, str(identity) if identity is not None else None)
        if key in self._entries:
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        value = compute()
        self._entries[key] = value
        return value

    def __len__(self) -> int:
        return len(self._entries)
