"""Identity generation for inventory entities."""

import random
import time
from typing import Iterable, Optional, Set

from printstack.schema.entities import EntityId

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_DIGITS[rem])
    return "".join(reversed(digits))


class IdGenerator:
    """
    Monotonic identity source.

    The counter is seeded with wall-clock milliseconds shifted left and a
    random salt, so identities issued by separate sessions rarely collide and
    identities from one generator never do.
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = int(time.time() * 1000) * 1000 + random.randrange(1000)
        self._counter = seed

    def next_id(self) -> str:
        """Issue a fresh identity."""
        self._counter += 1
        return _base36(self._counter)

    def next_unused(self, taken: Iterable[EntityId]) -> str:
        """Issue an identity that is not in ``taken``."""
        taken_set: Set[str] = {str(t) for t in taken}
        candidate = self.next_id()
        while candidate in taken_set:
            candidate = self.next_id()
        return candidate
