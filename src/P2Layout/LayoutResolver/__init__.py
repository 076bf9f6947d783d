# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver",
#   "purpose": "Package initialization for P2Layout.LayoutResolver",
#   "sections": []
# }
# === /NAVMAP ===

"""Public API for resolving Maven coordinates against p2 update sites.

The facade exposes the layout session that maps coordinates onto bundles and
synthesized POM/metadata files, the connector that performs batch transfers,
the factory functions a host resolver calls, and the shared repository
registry that memoises p2 repository indexes.
"""

from __future__ import annotations

from .connector import ArtifactDownload, MetadataDownload, RepositoryConnector
from .errors import (
    ArtifactNotFoundError,
    ArtifactTransferError,
    ChecksumFailureError,
    ConfigurationUnresolvedError,
    ConnectorClosedError,
    LayoutResolverError,
    MalformedDocumentError,
    MetadataNotFoundError,
    MetadataTransferError,
    NoRepositoryConnectorError,
    NoRepositoryLayoutError,
    TransferError,
)
from .factory import new_connector, new_layout
from .layout import RepositoryLayout
from .model import (
    ArtifactCoordinate,
    BundleEntry,
    Checksum,
    MetadataCoordinate,
    RemoteRepository,
    RepositoryLocation,
)
from .repository import BundleIndex, IndexState, RepositoryRegistry, default_registry
from .settings import ResolvedConfig, get_default_config, load_config

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ArtifactCoordinate",
    "ArtifactDownload",
    "ArtifactNotFoundError",
    "ArtifactTransferError",
    "BundleEntry",
    "BundleIndex",
    "Checksum",
    "ChecksumFailureError",
    "ConfigurationUnresolvedError",
    "ConnectorClosedError",
    "IndexState",
    "LayoutResolverError",
    "MalformedDocumentError",
    "MetadataCoordinate",
    "MetadataDownload",
    "MetadataNotFoundError",
    "MetadataTransferError",
    "NoRepositoryConnectorError",
    "NoRepositoryLayoutError",
    "RemoteRepository",
    "RepositoryConnector",
    "RepositoryLayout",
    "RepositoryLocation",
    "RepositoryRegistry",
    "ResolvedConfig",
    "TransferError",
    "default_registry",
    "get_default_config",
    "load_config",
    "new_connector",
    "new_layout",
]
