# === NAVMAP v1 ===
# {
#   "module": "tests.layout_resolver.test_layout",
#   "purpose": "Exercises RepositoryLayout lookups, synthesized files, checksum side files and session cleanup.",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Exercises RepositoryLayout lookups, synthesized files, checksum side files and session cleanup."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from P2Layout.LayoutResolver import net
from P2Layout.LayoutResolver.errors import TransferError
from P2Layout.LayoutResolver.layout import RepositoryLayout
from P2Layout.LayoutResolver.model import ArtifactCoordinate, Checksum, MetadataCoordinate
from P2Layout.LayoutResolver.net import file_uri_to_path
from P2Layout.LayoutResolver.synthesis import POM_NAMESPACE
from P2Layout.LayoutResolver.testing import ArtifactSpec, write_artifacts

NS = {"m": POM_NAMESPACE}


@pytest.fixture
def layout(sample_repository, registry, config):
    session = RepositoryLayout(sample_repository.repository_id, sample_repository.url, registry=registry, config=config)
    yield session
    session.close()


def _coordinate(layout, artifact_id="org.example.core", version="1.0.0", **kwargs) -> ArtifactCoordinate:
    return ArtifactCoordinate(layout.repository_id, artifact_id, version, **kwargs)


def _read_uri(uri: str) -> bytes:
    stream = net.open_uri(uri)
    assert stream is not None, uri
    with stream:
        return stream.read()


def _assert_placeholder(layout: RepositoryLayout, uri: str) -> None:
    path = file_uri_to_path(uri)
    assert path.parent == layout.scratch_dir
    assert not path.exists()


# --- session -----------------------------------------------------------------


def test_scratch_directory_is_private_to_the_session(layout, config, sample_repository, registry):
    assert not layout.inert
    assert layout.scratch_dir.parent == config.layout.scratch_root
    assert layout.scratch_dir.name.startswith("p2layout-p2.example-metadata-")

    other = RepositoryLayout(sample_repository.repository_id, sample_repository.url, registry=registry, config=config)
    try:
        assert other.scratch_dir != layout.scratch_dir
        assert other.index is layout.index
    finally:
        other.close()


def test_unresolved_url_makes_layout_inert(registry, config, caplog):
    with caplog.at_level(logging.WARNING, logger="P2Layout.LayoutResolver.layout"):
        inert = RepositoryLayout("p2.example", "${p2.site.url}", registry=registry, config=config)
    assert inert.inert
    assert inert.scratch_dir is None
    assert any("Skipping initialization" in record.getMessage() for record in caplog.records)

    assert inert.locate_artifact(ArtifactCoordinate("p2.example", "a", "1")) is None
    assert inert.locate_artifact(ArtifactCoordinate("p2.example", "a", "1", extension="pom")) is None
    assert inert.locate_metadata(MetadataCoordinate("p2.example", "a")) is None
    assert inert.checksums(ArtifactCoordinate("p2.example", "a", "1")) == []
    assert len(registry) == 0
    inert.close()
    inert.close()


def test_uploads_and_metadata_checksums_are_unsupported(layout):
    assert layout.locate_upload(_coordinate(layout)) is None
    assert layout.checksums_for_metadata(MetadataCoordinate(layout.repository_id, "org.example.core")) == []


# --- jars ----------------------------------------------------------------------


def test_plain_jar_is_copied_into_scratch(layout, sample_repository):
    uri = layout.locate_artifact(_coordinate(layout))
    path = file_uri_to_path(uri)
    assert path.parent == layout.scratch_dir
    assert path.name == "org.example.core_1.0.0.jar"
    assert path.read_bytes() == sample_repository.core_jar
    assert layout.locate_artifact(_coordinate(layout)) == uri


@pytest.mark.parametrize(
    "artifact_id, version",
    [("org.example.core", "1.9.0"), ("org.example.core", "7.0.0"), ("org.unknown", "1.0.0")],
)
def test_missing_jar_yields_nonexistent_placeholder(layout, artifact_id, version):
    uri = layout.locate_artifact(_coordinate(layout, artifact_id, version))
    _assert_placeholder(layout, uri)


@pytest.mark.parametrize("classifier, suffix", [("sources", ".source"), ("javadoc", ".javadoc")])
def test_variant_classifiers_point_at_remote_bundles(layout, sample_repository, classifier, suffix):
    uri = layout.locate_artifact(_coordinate(layout, classifier=classifier))
    assert uri == f"{sample_repository.url}plugins/org.example.core{suffix}_1.0.0.jar"

    missing = layout.locate_artifact(_coordinate(layout, "org.unknown", classifier=classifier))
    _assert_placeholder(layout, missing)


def test_unclassified_non_jar_extensions_are_not_served(layout):
    assert layout.locate_artifact(_coordinate(layout, extension="zip")) is None


# --- embedded entries -------------------------------------------------------------


@pytest.mark.parametrize(
    "classifier, extension, entry, content",
    [
        ("docs$html", "txt", "docs/html.txt", b"embedded documentation"),
        ("readme", "txt", "readme.txt", b"top-level readme"),
    ],
)
def test_classified_artifacts_resolve_to_jar_entries(layout, classifier, extension, entry, content):
    uri = layout.locate_artifact(_coordinate(layout, classifier=classifier, extension=extension))
    assert uri.startswith("jar:file:")
    assert uri.endswith(f"!/{entry}")
    assert _read_uri(uri) == content


def test_embedded_class_path_jar_resolves(layout):
    uri = layout.locate_artifact(_coordinate(layout, classifier="lib$helper"))
    assert uri.endswith("!/lib/helper.jar")


def test_missing_embedded_entry_yields_placeholder(layout):
    _assert_placeholder(layout, layout.locate_artifact(_coordinate(layout, classifier="nothing", extension="txt")))
    _assert_placeholder(
        layout, layout.locate_artifact(_coordinate(layout, "org.example.core", "1.9.0", classifier="docs$html"))
    )


def test_corrupt_bundle_jar_raises_transfer_error(tmp_path, url_for, registry, config):
    root = tmp_path / "corrupt"
    write_artifacts(root, [ArtifactSpec("org.broken", "1.0.0")])
    (root / "plugins").mkdir()
    (root / "plugins" / "org.broken_1.0.0.jar").write_bytes(b"not a zip archive")

    with RepositoryLayout("broken", url_for(root), registry=registry, config=config) as session:
        with pytest.raises(TransferError):
            session.locate_artifact(ArtifactCoordinate("broken", "org.broken", "1.0.0", classifier="x", extension="txt"))
        with pytest.raises(TransferError):
            session.locate_artifact(ArtifactCoordinate("broken", "org.broken", "1.0.0", extension="pom"))


# --- poms --------------------------------------------------------------------------


def test_pom_is_synthesized_from_localised_manifest(layout):
    uri = layout.locate_artifact(_coordinate(layout, extension="pom"))
    path = file_uri_to_path(uri)
    assert path.name == "org.example.core-1.0.0.pom"
    project = ET.parse(path).getroot()

    assert project.findtext("m:name", namespaces=NS) == "Example Core"
    assert project.findtext("m:organization/m:name", namespaces=NS) == "Example Corp"
    assert project.findtext("m:scm/m:url", namespaces=NS) == "scm:git:https://example.org/core.git;path=core"
    dependencies = [
        (
            node.findtext("m:groupId", namespaces=NS),
            node.findtext("m:artifactId", namespaces=NS),
            node.findtext("m:version", namespaces=NS),
            node.findtext("m:classifier", namespaces=NS),
        )
        for node in project.findall("m:dependencies/m:dependency", NS)
    ]
    assert dependencies == [
        ("p2.example", "org.example.util", "2.0.0.v2024", None),
        ("p2.example", "org.example.core", "1.0.0", "lib$helper"),
    ]
    assert b"Synthesized by P2Layout.LayoutResolver.layout.RepositoryLayout" in path.read_bytes()


def test_pom_is_written_once(layout):
    first = file_uri_to_path(layout.locate_artifact(_coordinate(layout, extension="pom")))
    content = first.read_bytes()
    second = file_uri_to_path(layout.locate_artifact(_coordinate(layout, extension="pom")))
    assert first == second
    assert second.read_bytes() == content


def test_pom_without_jar_carries_coordinates_only(layout):
    path = file_uri_to_path(layout.locate_artifact(_coordinate(layout, version="1.9.0", extension="pom")))
    project = ET.parse(path).getroot()
    assert project.findtext("m:version", namespaces=NS) == "1.9.0"
    assert project.find("m:name", NS) is None
    assert project.find("m:dependencies", NS) is None


def test_pom_for_foreign_group_or_unknown_bundle_does_not_exist(layout):
    foreign = layout.locate_artifact(ArtifactCoordinate("other.group", "org.example.core", "1.0.0", extension="pom"))
    assert not file_uri_to_path(foreign).exists()
    unknown = layout.locate_artifact(_coordinate(layout, "org.unknown", extension="pom"))
    assert not file_uri_to_path(unknown).exists()


# --- metadata ------------------------------------------------------------------------


def test_metadata_lists_every_version(layout):
    uri = layout.locate_metadata(MetadataCoordinate(layout.repository_id, "org.example.core"))
    path = file_uri_to_path(uri)
    assert path.name == "maven-metadata-org.example.core.xml"
    metadata = ET.parse(path).getroot()
    assert [node.text for node in metadata.iterfind("versioning/versions/version")] == ["1.0.0", "1.10.0", "1.9.0"]
    assert metadata.findtext("versioning/latest") == "1.10.0"
    assert metadata.findtext("groupId") == layout.repository_id


def test_metadata_for_foreign_group_or_unknown_artifact_does_not_exist(layout):
    assert not file_uri_to_path(layout.locate_metadata(MetadataCoordinate("other", "org.example.core"))).exists()
    assert not file_uri_to_path(layout.locate_metadata(MetadataCoordinate(layout.repository_id, "nope"))).exists()


# --- checksums ------------------------------------------------------------------------


def test_checksums_are_published_as_side_files(layout, sample_repository):
    coordinate = _coordinate(layout)
    checksums = layout.checksums(coordinate)
    assert checksums == [
        Checksum("sha-256", "org.example.core_1.0.0.jar.sha256"),
        Checksum("md5", "org.example.core_1.0.0.jar.md5"),
    ]
    side_file = layout.scratch_dir / "org.example.core_1.0.0.jar.sha256"
    assert side_file.read_text(encoding="utf-8") == sample_repository.core_sha256
    assert layout.checksums(coordinate) == checksums


def test_checksums_only_apply_to_plain_jars(layout):
    assert layout.checksums(_coordinate(layout, extension="pom")) == []
    assert layout.checksums(_coordinate(layout, classifier="sources")) == []
    assert layout.checksums(_coordinate(layout, version="1.9.0")) == []
    assert layout.checksums(_coordinate(layout, "org.unknown")) == []


# --- close -------------------------------------------------------------------------------


def test_close_removes_every_created_file(sample_repository, registry, config):
    session = RepositoryLayout(sample_repository.repository_id, sample_repository.url, registry=registry, config=config)
    created = [
        file_uri_to_path(session.locate_artifact(_coordinate(session))),
        file_uri_to_path(session.locate_artifact(_coordinate(session, extension="pom"))),
        file_uri_to_path(session.locate_metadata(MetadataCoordinate(session.repository_id, "org.example.core"))),
    ]
    session.checksums(_coordinate(session))
    created.append(session.scratch_dir / "org.example.core_1.0.0.jar.sha256")
    assert all(path.exists() for path in created)
    scratch: Path = session.scratch_dir

    session.close()
    assert session.closed
    assert not any(path.exists() for path in created)
    assert not scratch.exists()
    session.close()

    assert session.locate_artifact(_coordinate(session)) is None
    assert session.checksums(_coordinate(session)) == []


def test_context_manager_closes_session(sample_repository, registry, config):
    with RepositoryLayout(sample_repository.repository_id, sample_repository.url, registry=registry, config=config) as session:
        scratch = session.scratch_dir
        assert scratch.exists()
    assert session.closed
    assert not scratch.exists()
