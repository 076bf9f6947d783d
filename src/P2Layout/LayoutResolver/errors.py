"""Exception hierarchy shared across repository indexing, synthesis, and transfer.

Resolving a Maven coordinate against a p2 repository spans configuration
parsing, descriptor retrieval, XML parsing, and jar transfers. This module
groups the failure modes into a small hierarchy so callers can react to
high-level categories (an unusable repository URL vs. a single broken
transfer) while still distinguishing "not found" from "corrupt download".

Absence of a remote resource is never represented here: fetch helpers return
``None`` for it and only the connector boundary converts it into one of the
``*NotFoundError`` types.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "LayoutResolverError",
    "ConfigurationError",
    "ConfigurationUnresolvedError",
    "UserConfigError",
    "MalformedDocumentError",
    "TransferError",
    "ArtifactTransferError",
    "ArtifactNotFoundError",
    "MetadataTransferError",
    "MetadataNotFoundError",
    "ChecksumFailureError",
    "NoRepositoryLayoutError",
    "NoRepositoryConnectorError",
    "ConnectorClosedError",
]


class LayoutResolverError(RuntimeError):
    """Base exception for p2 layout resolution failures."""


class ConfigurationError(LayoutResolverError):
    """Raised when repository configuration inputs are invalid."""


class ConfigurationUnresolvedError(ConfigurationError):
    """Raised when a repository URL still carries an uninterpolated placeholder."""

    def __init__(self, url: str, reason: str = "unresolved placeholder") -> None:
        super().__init__(f"Cannot interpret repository URL {url!r}: {reason}")
        self.url = url
        self.reason = reason


class UserConfigError(RuntimeError):
    """Raised when CLI arguments or YAML configuration inputs are invalid."""


class MalformedDocumentError(LayoutResolverError):
    """Raised when a repository descriptor is present but cannot be parsed."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class TransferError(LayoutResolverError):
    """Raised when an I/O error interrupts an actual data transfer."""

    def __init__(
        self,
        message: str,
        *,
        uri: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.uri = uri
        self.status_code = status_code


class ArtifactTransferError(TransferError):
    """Raised when an artifact download fails for a reason other than absence."""


class ArtifactNotFoundError(ArtifactTransferError):
    """Raised when the requested artifact does not exist in the repository."""


class MetadataTransferError(TransferError):
    """Raised when a metadata download fails for a reason other than absence."""


class MetadataNotFoundError(MetadataTransferError):
    """Raised when the requested metadata does not exist in the repository."""


class ChecksumFailureError(TransferError):
    """Raised when downloaded content does not match its declared checksum."""

    def __init__(
        self,
        message: str,
        *,
        algorithm: str,
        expected: str,
        actual: str,
        uri: Optional[str] = None,
    ) -> None:
        super().__init__(message, uri=uri)
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual


class NoRepositoryLayoutError(LayoutResolverError):
    """Raised when a remote repository does not declare the ``p2`` content type."""


class NoRepositoryConnectorError(LayoutResolverError):
    """Raised when a connector is requested for a non-``p2`` repository."""


class ConnectorClosedError(LayoutResolverError):
    """Raised when a closed connector receives further transfer requests."""
