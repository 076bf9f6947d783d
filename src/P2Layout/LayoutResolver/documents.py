"""Parsing of p2 repository descriptors.

Two documents matter to the layout resolver:

* ``artifacts.xml`` lists artifact records as
  ``/repository/artifacts/artifact[@id][@version][@classifier]`` with nested
  ``properties/property[@name][@value]``. Only ``osgi.bundle`` records that
  do not carry a ``processing`` element (packed or otherwise not directly
  downloadable) become :class:`~P2Layout.LayoutResolver.model.BundleEntry`.
* ``compositeArtifacts.xml`` lists child repositories as
  ``/repository/children/child[@location]``, relative to the composite.

Both functions accept any readable binary stream, so container handling
(plain, XZ, jar) stays in :mod:`P2Layout.LayoutResolver.repository`.
"""

from __future__ import annotations

import lzma
import xml.etree.ElementTree as ET
from typing import BinaryIO, List, Optional
from urllib.parse import urljoin

from .errors import MalformedDocumentError
from .model import BundleEntry, RepositoryLocation

__all__ = [
    "BUNDLE_CLASSIFIER",
    "parse_artifacts",
    "parse_composite_children",
    "parse_document",
]

BUNDLE_CLASSIFIER = "osgi.bundle"


def parse_document(stream: BinaryIO, *, source: Optional[str] = None) -> ET.Element:
    """Parse ``stream`` into an element tree root.

    Raises:
        MalformedDocumentError: If the content is not well-formed XML.
    """

    try:
        return ET.parse(stream).getroot()
    except ET.ParseError as exc:
        raise MalformedDocumentError(
            f"Unparsable repository descriptor{f' {source}' if source else ''}: {exc}",
            source=source,
        ) from exc
    except (EOFError, lzma.LZMAError) as exc:
        raise MalformedDocumentError(
            f"Corrupt or truncated repository descriptor{f' {source}' if source else ''}",
            source=source,
        ) from exc


def parse_artifacts(
    stream: BinaryIO,
    location: RepositoryLocation,
    *,
    source: Optional[str] = None,
) -> List[BundleEntry]:
    """Return the downloadable bundles declared by an ``artifacts`` descriptor."""

    root = parse_document(stream, source=source)
    if root.tag != "repository":
        return []

    bundles: List[BundleEntry] = []
    for artifact in root.findall("./artifacts/artifact"):
        if artifact.get("classifier") != BUNDLE_CLASSIFIER:
            continue
        if artifact.find(".//processing") is not None:
            continue
        properties = {
            prop.get("name", ""): prop.get("value", "")
            for prop in artifact.iter("property")
            if prop.get("name") is not None
        }
        bundles.append(
            BundleEntry(
                id=artifact.get("id", ""),
                version=artifact.get("version", ""),
                location=location,
                properties=properties,
            )
        )
    return bundles


def parse_composite_children(
    stream: BinaryIO,
    location: RepositoryLocation,
    *,
    source: Optional[str] = None,
) -> List[str]:
    """Return child repository URIs of a composite, resolved against ``location``."""

    root = parse_document(stream, source=source)
    if root.tag != "repository":
        return []
    children: List[str] = []
    for child in root.findall("./children/child"):
        reference = child.get("location")
        if reference is None or not reference.strip():
            continue
        children.append(urljoin(location.uri, reference.strip()))
    return children
