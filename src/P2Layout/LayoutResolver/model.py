"""Value types shared by the repository index and the layout engine.

:class:`RepositoryLocation` is the normalised identity of one p2 repository
root, :class:`BundleEntry` is one ``osgi.bundle`` artifact record from its
``artifacts`` descriptor, and the coordinate types describe what a Maven
resolver asks for.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional
from urllib.parse import urljoin, urlsplit

from .errors import ConfigurationUnresolvedError

__all__ = [
    "CHECKSUM_PROPERTY_PREFIX",
    "ArtifactCoordinate",
    "BundleEntry",
    "Checksum",
    "MetadataCoordinate",
    "RemoteRepository",
    "RepositoryLocation",
    "concat_path",
]

CHECKSUM_PROPERTY_PREFIX = "download.checksum."

_PLACEHOLDER = re.compile(r"\$\{[^}]*\}?")


def concat_path(separator: str, *parts: Optional[str]) -> str:
    """Join ``parts`` with exactly one ``separator`` between neighbours.

    Empty parts are skipped, and a separator at the seam of two parts is
    collapsed so ``concat_path("/", "a/", "/b")`` yields ``"a/b"``.
    """

    path = ""
    for part in parts:
        if not part:
            continue
        if not path:
            path = part
            continue
        head = path[:-1] if path.endswith(separator) else path
        tail = part[1:] if part.startswith(separator) else part
        path = f"{head}{separator}{tail}"
    return path


@dataclass(frozen=True)
class RepositoryLocation:
    """Normalised, trailing-slash-terminated base URI of a p2 repository."""

    uri: str

    @classmethod
    def parse(cls, value: str) -> "RepositoryLocation":
        """Normalise ``value`` into a location.

        Raises:
            ConfigurationUnresolvedError: If ``value`` still contains a
                ``${...}`` placeholder or is not an absolute URI.
        """

        text = (value or "").strip()
        if _PLACEHOLDER.search(text):
            raise ConfigurationUnresolvedError(value)
        parts = urlsplit(text)
        if not parts.scheme or (parts.scheme not in {"file"} and not parts.netloc):
            raise ConfigurationUnresolvedError(value, "not an absolute URI")
        if not text.endswith("/"):
            text += "/"
        return cls(text)

    def resolve(self, reference: str) -> "RepositoryLocation":
        """Resolve ``reference`` (possibly relative) against this location."""

        return RepositoryLocation.parse(urljoin(self.uri, reference.strip()))

    def child(self, name: str) -> str:
        """Return the URI of ``name`` directly below this location."""

        return concat_path("/", self.uri, name)

    def __str__(self) -> str:
        return self.uri


@dataclass(frozen=True)
class BundleEntry:
    """One binary bundle listed in a repository's ``artifacts`` descriptor."""

    id: str
    version: str
    location: RepositoryLocation = field(compare=True)
    properties: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    def uri(self, classifier: Optional[str] = None) -> str:
        """Return the download URI of this bundle or one of its variants.

        ``sources`` maps to the ``.source`` bundle and every other non-empty
        classifier (``javadoc`` included) is appended verbatim.
        """

        name = self.id
        if classifier == "sources":
            name += ".source"
        elif classifier:
            name += f".{classifier}"
        return f"{self.location.uri}plugins/{name}_{self.version}.jar"

    def checksums(self) -> Dict[str, str]:
        """Return declared ``download.checksum.<algorithm>`` values by algorithm."""

        return {
            key[len(CHECKSUM_PROPERTY_PREFIX) :]: value
            for key, value in self.properties.items()
            if key.startswith(CHECKSUM_PROPERTY_PREFIX) and len(key) > len(CHECKSUM_PROPERTY_PREFIX)
        }

    def __str__(self) -> str:
        return f"{self.id}:{self.version}"


@dataclass(frozen=True)
class ArtifactCoordinate:
    """Maven artifact coordinate as requested by a resolver."""

    group_id: str
    artifact_id: str
    version: str
    classifier: str = ""
    extension: str = "jar"

    @classmethod
    def parse(cls, text: str) -> "ArtifactCoordinate":
        """Parse ``group:artifact:version[:extension[:classifier]]``."""

        parts = text.split(":")
        if len(parts) < 3 or len(parts) > 5 or not all(parts[:3]):
            raise ValueError(
                f"Invalid coordinate {text!r}; expected group:artifact:version[:extension[:classifier]]"
            )
        extension = parts[3] if len(parts) > 3 and parts[3] else "jar"
        classifier = parts[4] if len(parts) > 4 else ""
        return cls(parts[0], parts[1], parts[2], classifier, extension)

    def file_name(self, *, ignore_classifier: bool = False) -> str:
        """Return the p2-style file name ``<artifact>[.<classifier>]_<version>.<ext>``."""

        name = self.artifact_id
        if not ignore_classifier and self.classifier:
            name += ".source" if self.classifier == "sources" else f".{self.classifier}"
        return f"{name}_{self.version}.{self.extension}"

    def __str__(self) -> str:
        text = f"{self.group_id}:{self.artifact_id}:{self.extension}"
        if self.classifier:
            text += f":{self.classifier}"
        return f"{text}:{self.version}"


@dataclass(frozen=True)
class MetadataCoordinate:
    """Repository metadata request, normally ``maven-metadata.xml`` of an artifact."""

    group_id: str
    artifact_id: str
    version: Optional[str] = None
    type: str = "maven-metadata.xml"

    def __str__(self) -> str:
        parts = [self.group_id, self.artifact_id]
        if self.version:
            parts.append(self.version)
        return ":".join(parts) + f"/{self.type}"


@dataclass(frozen=True)
class Checksum:
    """Checksum advertised for an artifact: algorithm plus side-file location.

    ``location`` is the side-file name relative to the directory of the
    artifact location it accompanies.
    """

    algorithm: str
    location: str


@dataclass(frozen=True)
class RemoteRepository:
    """A repository declared to a Maven resolver; only ``content_type="p2"`` is served."""

    id: str
    url: str
    content_type: str = "default"

    def __str__(self) -> str:
        return f"{self.id} ({self.url}, {self.content_type})"
