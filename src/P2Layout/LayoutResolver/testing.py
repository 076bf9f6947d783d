"""Test harness helpers for the p2 layout resolver.

Builds p2 repositories on disk (plain, XZ and jarred descriptors, composite
trees, bundle jars with manifests) and installs mock HTTPX transports into
the shared client, so tests run without network access.
"""

from __future__ import annotations

import contextlib
import io
import lzma
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    import httpx

__all__ = [
    "ArtifactSpec",
    "artifacts_document",
    "bundle_jar_bytes",
    "composite_document",
    "use_mock_http_client",
    "write_artifacts",
    "write_bundle_jar",
    "write_composite",
]


@contextlib.contextmanager
def use_mock_http_client(transport: "httpx.BaseTransport", **client_kwargs) -> Iterator["httpx.Client"]:
    """Temporarily install an HTTPX client backed by ``transport``."""

    import httpx

    from .net import configure_http_client, reset_http_client

    default_config = client_kwargs.pop("default_config", None)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client, default_config=default_config)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


@dataclass
class ArtifactSpec:
    """One ``artifact`` record of an ``artifacts`` descriptor."""

    id: str
    version: str
    classifier: str = "osgi.bundle"
    properties: Mapping[str, str] = field(default_factory=dict)
    processing: bool = False


def _serialize(root: ET.Element) -> bytes:
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def artifacts_document(artifacts: Sequence[ArtifactSpec]) -> bytes:
    """Return the XML of an ``artifacts`` descriptor listing ``artifacts``."""

    repository = ET.Element("repository", {"name": "test", "type": "simple", "version": "1"})
    container = ET.SubElement(repository, "artifacts", {"size": str(len(artifacts))})
    for spec in artifacts:
        artifact = ET.SubElement(
            container,
            "artifact",
            {"classifier": spec.classifier, "id": spec.id, "version": spec.version},
        )
        if spec.processing:
            steps = ET.SubElement(artifact, "processing", {"size": "1"})
            ET.SubElement(steps, "step", {"id": "org.eclipse.equinox.p2.processing.Pack200Unpacker"})
        properties = ET.SubElement(artifact, "properties", {"size": str(len(spec.properties))})
        for name, value in spec.properties.items():
            ET.SubElement(properties, "property", {"name": name, "value": value})
    return _serialize(repository)


def composite_document(children: Sequence[str]) -> bytes:
    """Return the XML of a ``compositeArtifacts`` descriptor listing ``children``."""

    repository = ET.Element("repository", {"name": "composite", "type": "composite", "version": "1"})
    container = ET.SubElement(repository, "children", {"size": str(len(children))})
    for location in children:
        ET.SubElement(container, "child", {"location": location})
    return _serialize(repository)


def _write_descriptor(root: Path, name: str, document: bytes, form: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    if form == "xml":
        target = root / f"{name}.xml"
        target.write_bytes(document)
    elif form == "xz":
        target = root / f"{name}.xml.xz"
        target.write_bytes(lzma.compress(document))
    elif form == "jar":
        target = root / f"{name}.jar"
        with zipfile.ZipFile(target, "w") as jar:
            jar.writestr(f"{name}.xml", document)
    else:
        raise ValueError(f"unknown descriptor form {form!r}")
    return target


def write_artifacts(root: Path, artifacts: Sequence[ArtifactSpec], *, form: str = "xml") -> Path:
    """Write an ``artifacts`` descriptor below ``root`` as ``xml``, ``xz`` or ``jar``."""

    return _write_descriptor(root, "artifacts", artifacts_document(artifacts), form)


def write_composite(root: Path, children: Sequence[str], *, form: str = "xml") -> Path:
    """Write a ``compositeArtifacts`` descriptor below ``root``."""

    return _write_descriptor(root, "compositeArtifacts", composite_document(children), form)


def bundle_jar_bytes(
    headers: Optional[Mapping[str, str]] = None,
    entries: Optional[Mapping[str, bytes]] = None,
) -> bytes:
    """Return a jar whose manifest carries ``headers`` plus the given extra entries."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as jar:
        if headers is not None:
            lines: List[str] = ["Manifest-Version: 1.0"]
            lines.extend(f"{name}: {value}" for name, value in headers.items())
            jar.writestr("META-INF/MANIFEST.MF", "\r\n".join(lines) + "\r\n\r\n")
        for name, data in (entries or {}).items():
            jar.writestr(name, data)
    return buffer.getvalue()


def write_bundle_jar(
    root: Path,
    bundle_id: str,
    version: str,
    headers: Optional[Mapping[str, str]] = None,
    entries: Optional[Dict[str, bytes]] = None,
    *,
    suffix: str = "",
) -> Path:
    """Write ``plugins/<id><suffix>_<version>.jar`` below ``root``."""

    target = root / "plugins" / f"{bundle_id}{suffix}_{version}.jar"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(bundle_jar_bytes(headers, entries))
    return target
