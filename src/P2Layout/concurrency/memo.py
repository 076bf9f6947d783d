"""Per-key memoisation with one lock per key."""

from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class _Slot(Generic[V]):
    __slots__ = ("lock", "done", "value")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.done = False
        self.value: Optional[V] = None


class KeyedMemo(Generic[K, V]):
    """Compute-once cache whose computations only serialise per key.

    Concurrent callers asking for the same key wait for a single computation;
    callers asking for different keys never block each other beyond the
    brief lookup of their slot. A computation that raises leaves the key
    uncomputed so a later call retries it.

    Examples:
        >>> memo = KeyedMemo()
        >>> memo.get_or_compute("a", lambda: 1)
        1
        >>> memo.get_or_compute("a", lambda: 2)
        1
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: Dict[K, _Slot[V]] = {}

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> V:
        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                slot = _Slot()
                self._slots[key] = slot
        with slot.lock:
            if not slot.done:
                slot.value = compute()
                slot.done = True
            return slot.value  # type: ignore[return-value]

    def items(self) -> List[Tuple[K, V]]:
        """Return computed ``(key, value)`` pairs."""

        with self._lock:
            slots = list(self._slots.items())
        return [(key, slot.value) for key, slot in slots if slot.done]  # type: ignore[misc]

    def values(self) -> List[V]:
        return [value for _, value in self.items()]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            slot = self._slots.get(key)  # type: ignore[arg-type]
        return slot is not None and slot.done

    def __len__(self) -> int:
        return len(self.items())

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()
