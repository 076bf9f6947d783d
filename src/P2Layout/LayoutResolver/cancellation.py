"""Cooperative cancellation for batch transfers.

The connector runs artifact and metadata downloads on a worker pool. A
:class:`CancellationToken` is handed to each download so it can stop before
touching the network, and :class:`CancellationTokenGroup` broadcasts a
cancellation across every download of one batch. Threads are never
interrupted; downloads check their token between steps.
"""

from __future__ import annotations

import threading
from typing import List, Set


class CancellationToken:
    """Thread-safe flag checked by a single download.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()


class CancellationTokenGroup:
    """Tokens of one batch, cancelled together.

    Tokens created after :meth:`cancel_all` start out cancelled, so a batch
    that is stopped while it is still scheduling never starts new work.
    """

    def __init__(self) -> None:
        self._tokens: List[CancellationToken] = []
        self._started: Set[int] = set()
        self._lock = threading.Lock()
        self._cancelled = False

    def create_token(self) -> CancellationToken:
        """Create a new token that belongs to this group."""

        token = CancellationToken()
        with self._lock:
            self._tokens.append(token)
            if self._cancelled:
                token.cancel()
        return token

    def remove_token(self, token: CancellationToken) -> None:
        """Release ``token`` once its download has finished."""

        with self._lock:
            if token in self._tokens:
                self._tokens.remove(token)
            self._started.discard(id(token))

    def mark_started(self, token: CancellationToken) -> None:
        """Record that the download holding ``token`` left the queue."""

        with self._lock:
            if token in self._tokens:
                self._started.add(id(token))

    def cancel_all(self) -> None:
        """Cancel every current and future token of the group."""

        with self._lock:
            self._cancelled = True
            for token in self._tokens:
                token.cancel()

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def __len__(self) -> int:
        """Return the number of tokens still held, running or queued."""

        with self._lock:
            return len(self._tokens)

    @property
    def in_flight(self) -> int:
        """Number of held tokens whose download has started running."""

        with self._lock:
            return len(self._started)


# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver.cancellation",
#   "purpose": "Cooperative cancellation tokens shared by batch transfers",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"},
#     {"id": "group", "name": "CancellationTokenGroup", "anchor": "GRP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
