# === NAVMAP v1 ===
# {
#   "module": "P2Layout.concurrency.__init__",
#   "purpose": "Concurrency helpers shared across P2Layout components.",
#   "sections": []
# }
# === /NAVMAP ===

"""
Concurrency helpers shared across P2Layout components.

Exposes :class:`KeyedMemo`, the per-key compute-once cache used by layout
sessions, and :func:`create_executor`, the bounded thread pool factory used
for batch transfers.
"""

from .executors import create_executor
from .memo import KeyedMemo

__all__ = ["KeyedMemo", "create_executor"]
