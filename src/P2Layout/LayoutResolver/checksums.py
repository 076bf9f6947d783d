"""Checksum normalisation and verification for downloaded artifacts.

p2 repositories declare digests as ``download.checksum.<algorithm>`` bundle
properties using Java-style algorithm names (``sha-256``, ``md5``). These
helpers map them onto :mod:`hashlib`, stream files through the digest, and
compare the result with the side file the layout published.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

from .errors import ChecksumFailureError, TransferError

__all__ = ["file_digest", "normalize_algorithm", "read_declared_digest", "verify_checksum"]

_DIGEST_PATTERN = re.compile(r"(?i)\b([0-9a-f]{8,128})\b")
_CHECKSUM_STREAM_CHUNK_SIZE = 1 << 16


def normalize_algorithm(algorithm: str) -> str:
    """Return the :mod:`hashlib` name for a p2 algorithm name.

    Examples:
        >>> normalize_algorithm("SHA-256")
        'sha256'

    Raises:
        TransferError: If :mod:`hashlib` does not provide the algorithm.
    """

    candidate = algorithm.strip().replace("-", "").lower()
    if candidate not in hashlib.algorithms_available:
        raise TransferError(f"Unsupported checksum algorithm {algorithm!r}")
    return candidate


def file_digest(path: Path, algorithm: str) -> str:
    """Return the hex digest of ``path`` computed with ``algorithm``."""

    hasher = hashlib.new(normalize_algorithm(algorithm))
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHECKSUM_STREAM_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def read_declared_digest(checksum_path: Path) -> str:
    """Return the digest stored in a checksum side file, lower-cased."""

    text = checksum_path.read_text(encoding="utf-8", errors="replace")
    match = _DIGEST_PATTERN.search(text)
    return match.group(1).lower() if match else text.strip().lower()


def verify_checksum(artifact_path: Path, checksum_path: Path, algorithm: str) -> str:
    """Compare ``artifact_path`` with the digest declared in ``checksum_path``.

    Returns:
        The verified hex digest.

    Raises:
        ChecksumFailureError: If the computed digest differs from the declared one.
    """

    expected = read_declared_digest(checksum_path)
    actual = file_digest(artifact_path, algorithm)
    if expected != actual:
        raise ChecksumFailureError(
            f"Checksum mismatch for {artifact_path.name}: {algorithm} expected {expected}, got {actual}",
            algorithm=algorithm,
            expected=expected,
            actual=actual,
            uri=artifact_path.as_uri(),
        )
    return actual
