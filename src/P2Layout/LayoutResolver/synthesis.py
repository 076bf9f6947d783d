# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver.synthesis",
#   "purpose": "Synthesize Maven POM and maven-metadata.xml documents from p2 bundle data",
#   "sections": [
#     {"id": "build-pom", "name": "build_pom", "anchor": "function-build-pom", "kind": "function"},
#     {"id": "build-metadata", "name": "build_metadata", "anchor": "function-build-metadata", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Synthesis of Maven documents for bundles that never shipped them.

:func:`build_pom` produces the ``project`` descriptor of one bundle. Only the
coordinate is required; when the bundle jar was available its manifest adds
human-readable metadata and a dependency list derived from ``Require-Bundle``
and ``Bundle-ClassPath``. :func:`build_metadata` produces the
``maven-metadata.xml`` listing every version of one artifact.

Both builders are pure: the same inputs give byte-identical output, and the
only time-dependent part (the generation timestamp) can be pinned through
their ``generated_at``/``last_updated`` arguments.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from .manifest import BundleManifest
from .model import ArtifactCoordinate, BundleEntry
from .osgi import Version, VersionRange, max_version, parse_header

__all__ = [
    "POM_NAMESPACE",
    "POM_SCHEMA_LOCATION",
    "XSI_NAMESPACE",
    "build_metadata",
    "build_pom",
    "embedded_classifier",
]

LOGGER = logging.getLogger("P2Layout.LayoutResolver.synthesis")

POM_NAMESPACE = "http://maven.apache.org/POM/4.0.0"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
POM_SCHEMA_LOCATION = f"{POM_NAMESPACE} http://maven.apache.org/xsd/maven-4.0.0.xsd"

_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def _comment_text(text: str) -> str:
    # "--" may not appear inside an XML comment.
    return f" {text.replace('--', '- -')} "


def _child(parent: ET.Element, tag: str, text: Optional[str] = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if text is not None:
        element.text = text
    return element


def _serialize(root: ET.Element, leading_comments: Sequence[str] = ()) -> bytes:
    ET.indent(root, space="  ")
    parts: List[str] = [_XML_DECLARATION]
    for comment in leading_comments:
        parts.append(f"<!--{_comment_text(comment)}-->\n")
    parts.append(ET.tostring(root, encoding="unicode"))
    parts.append("\n")
    return "".join(parts).encode("utf-8")


def embedded_classifier(entry: str) -> str:
    """Turn a ``Bundle-ClassPath`` entry into a classifier token.

    Examples:
        >>> embedded_classifier("lib/commons-io.jar")
        'lib$commons-io'
    """

    if entry.lower().endswith(".jar"):
        entry = entry[:-4]
    return entry.replace("/", "$")


def _add_bundle_metadata(project: ET.Element, manifest: BundleManifest) -> None:
    name = manifest.get("Bundle-Name")
    if name:
        _child(project, "name", name)
    description = manifest.get("Bundle-Description")
    if description:
        _child(project, "description", description)
    license_url = manifest.get("Bundle-License")
    if license_url:
        license_element = _child(_child(project, "licenses"), "license")
        _child(license_element, "url", license_url)
    vendor = manifest.get("Bundle-Vendor")
    if vendor:
        _child(_child(project, "organization"), "name", vendor)
    copyright_notice = manifest.get("Bundle-Copyright")
    if copyright_notice:
        project.append(ET.Comment(_comment_text(f"Copyright: {copyright_notice}")))
    doc_url = manifest.get("Bundle-DocURL")
    if doc_url:
        _child(project, "url", doc_url)
    source_reference = manifest.get("Eclipse-SourceReferences")
    if source_reference:
        first = source_reference.split(",")[0].strip()
        _child(_child(project, "scm"), "url", first)


def _matches(bundle: BundleEntry, name: str, version_range: Optional[VersionRange]) -> bool:
    if bundle.id != name:
        return False
    if version_range is None:
        return True
    try:
        return version_range.includes(Version.parse(bundle.version))
    except ValueError:
        return False


def _required_bundles(
    manifest: BundleManifest, candidates: Sequence[BundleEntry]
) -> Iterable[BundleEntry]:
    for clause in parse_header(manifest.get("Require-Bundle")):
        spec = clause.attribute("bundle-version")
        version_range: Optional[VersionRange] = None
        if spec:
            try:
                version_range = VersionRange.parse(spec)
            except ValueError:
                LOGGER.warning(
                    "Ignoring invalid bundle-version %r on Require-Bundle %s", spec, clause.value
                )
        match = next(
            (bundle for bundle in candidates if _matches(bundle, clause.value, version_range)),
            None,
        )
        if match is None:
            LOGGER.debug(
                "required bundle not in repository",
                extra={"stage": "pom", "extra_fields": {"bundle": clause.value, "range": spec}},
            )
            continue
        yield match


def _add_dependencies(
    project: ET.Element,
    coordinate: ArtifactCoordinate,
    manifest: BundleManifest,
    candidates: Sequence[BundleEntry],
) -> None:
    dependencies: Optional[ET.Element] = None

    if manifest.get("Require-Bundle"):
        dependencies = _child(project, "dependencies")
        for required in _required_bundles(manifest, candidates):
            dependency = _child(dependencies, "dependency")
            _child(dependency, "groupId", coordinate.group_id)
            _child(dependency, "artifactId", required.id)
            _child(dependency, "version", required.version)

    class_path = manifest.get("Bundle-ClassPath")
    if class_path:
        if dependencies is None:
            dependencies = _child(project, "dependencies")
        for clause in parse_header(class_path):
            entry = clause.value
            if not entry or entry == ".":
                continue
            dependency = _child(dependencies, "dependency")
            _child(dependency, "groupId", coordinate.group_id)
            _child(dependency, "artifactId", coordinate.artifact_id)
            _child(dependency, "version", coordinate.version)
            _child(dependency, "classifier", embedded_classifier(entry))


def build_pom(
    coordinate: ArtifactCoordinate,
    bundle: BundleEntry,
    manifest: Optional[BundleManifest] = None,
    *,
    candidates: Sequence[BundleEntry] = (),
    generator: str = "P2Layout.LayoutResolver",
    generated_at: Optional[datetime] = None,
) -> bytes:
    """Return the serialized POM for ``coordinate``.

    Args:
        coordinate: Requested artifact; its group becomes the group of every
            dependency emitted.
        bundle: Repository entry backing the artifact.
        manifest: Manifest of the downloaded bundle jar, if it could be fetched.
        candidates: Repository bundles ``Require-Bundle`` clauses are matched
            against, in index order.
        generator: Name recorded in the leading comment.
        generated_at: Timestamp recorded in the leading comment; now (UTC)
            when omitted.

    Returns:
        UTF-8 encoded XML with declaration and two-space indentation.
    """

    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    project = ET.Element("project")
    _child(project, "modelVersion", "4.0.0")
    _child(project, "groupId", coordinate.group_id)
    _child(project, "artifactId", coordinate.artifact_id)
    _child(project, "version", coordinate.version)

    if manifest is not None:
        _add_bundle_metadata(project, manifest)
        _add_dependencies(project, coordinate, manifest, candidates)

    project.set("xmlns", POM_NAMESPACE)
    project.set("xmlns:xsi", XSI_NAMESPACE)
    project.set("xsi:schemaLocation", POM_SCHEMA_LOCATION)

    return _serialize(
        project,
        (
            f"Synthesized by {generator} at {stamp}",
            f"Source: {bundle.uri()}",
        ),
    )


def build_metadata(
    group_id: str,
    artifact_id: str,
    versions: Sequence[str],
    *,
    last_updated: Optional[datetime] = None,
) -> bytes:
    """Return a ``maven-metadata.xml`` listing ``versions`` in the given order.

    ``latest`` and ``release`` both name the greatest version by OSGi
    ordering, spelled exactly as the repository spells it.
    """

    latest = max_version(versions)
    stamp = (last_updated or datetime.now(timezone.utc)).astimezone(timezone.utc)

    metadata = ET.Element("metadata")
    _child(metadata, "groupId", group_id)
    _child(metadata, "artifactId", artifact_id)
    versioning = _child(metadata, "versioning")
    listing = _child(versioning, "versions")
    for version in versions:
        _child(listing, "version", version)
    if latest is not None:
        _child(versioning, "latest", latest)
        _child(versioning, "release", latest)
    _child(versioning, "lastUpdated", stamp.strftime("%Y%m%d%H%M%S"))
    return _serialize(metadata)
