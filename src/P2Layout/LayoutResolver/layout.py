# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver.layout",
#   "purpose": "Map Maven coordinates onto p2 bundles, synthesizing POMs, metadata and checksums",
#   "sections": [
#     {"id": "repositorylayout", "name": "RepositoryLayout", "anchor": "class-repositorylayout", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Maven view over a p2 repository.

A :class:`RepositoryLayout` is one resolution session: it answers "where is
this coordinate?" for a single repository id and base URL, creating whatever
Maven-side files are missing in a private scratch directory:

* ``pom`` requests return a POM synthesized from the bundle manifest.
* ``jar`` requests without classifier return a local copy of the bundle.
* ``sources``/``javadoc`` jars return the remote variant bundle URI.
* Any other classifier names a file inside the bundle jar and returns a
  ``jar:<local jar>!/<entry>`` URI.
* Metadata requests return a synthesized ``maven-metadata.xml``.

Missing content yields a location that does not exist, so callers run their
regular "not found" handling instead of catching exceptions. A layout whose
URL still contains an unresolved ``${...}`` placeholder is inert and returns
``None`` for every lookup.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
import uuid
import zipfile
from pathlib import Path
from typing import List, Optional, Tuple

from P2Layout.concurrency import KeyedMemo

from .errors import ConfigurationUnresolvedError, TransferError
from .manifest import BundleManifest
from .model import ArtifactCoordinate, BundleEntry, Checksum, MetadataCoordinate, RepositoryLocation
from .net import download_to_path
from .repository import BundleIndex, RepositoryRegistry, default_registry
from .settings import ResolvedConfig, get_default_config
from .synthesis import build_metadata, build_pom

__all__ = ["RepositoryLayout", "VARIANT_CLASSIFIERS"]

LOGGER = logging.getLogger("P2Layout.LayoutResolver.layout")

VARIANT_CLASSIFIERS = frozenset({"sources", "javadoc"})


class RepositoryLayout:
    """Resolution session for one p2 repository exposed under a Maven group id.

    Attributes:
        repository_id: Maven group id served by this layout.
        url: Repository base URL as configured.
        scratch_dir: Private directory for synthesized files, ``None`` when inert.

    Examples:
        >>> with RepositoryLayout("p2.example", "https://example.org/p2/") as layout:  # doctest: +SKIP
        ...     layout.locate_artifact(ArtifactCoordinate("p2.example", "org.example.core", "1.0.0"))
    """

    def __init__(
        self,
        repository_id: str,
        url: str,
        *,
        registry: Optional[RepositoryRegistry] = None,
        config: Optional[ResolvedConfig] = None,
    ) -> None:
        self.repository_id = repository_id
        self.url = url
        self._config = config or get_default_config()
        self._registry = registry or default_registry()
        self._index: Optional[BundleIndex] = None
        self.scratch_dir: Optional[Path] = None
        self._closed = False
        self._close_lock = threading.Lock()

        self._poms: KeyedMemo[Tuple[str, str], Path] = KeyedMemo()
        self._metadata: KeyedMemo[str, Path] = KeyedMemo()
        self._local_jars: KeyedMemo[BundleEntry, Optional[Path]] = KeyedMemo()
        self._checksums: KeyedMemo[ArtifactCoordinate, List[Checksum]] = KeyedMemo()

        try:
            location = RepositoryLocation.parse(url)
        except ConfigurationUnresolvedError as exc:
            LOGGER.warning(
                "Skipping initialization of repository layout %s: %s",
                repository_id,
                exc,
                extra={"stage": "layout", "repository_id": repository_id},
            )
            return

        self._index = self._registry.resolve(location)
        scratch_root = self._config.layout.scratch_root
        if scratch_root is not None:
            scratch_root.mkdir(parents=True, exist_ok=True)
        self.scratch_dir = Path(
            tempfile.mkdtemp(
                prefix=f"p2layout-{repository_id}-metadata-",
                dir=str(scratch_root) if scratch_root is not None else None,
            )
        )
        LOGGER.debug(
            "layout session opened",
            extra={
                "stage": "layout",
                "repository_id": repository_id,
                "extra_fields": {"url": url, "scratch_dir": str(self.scratch_dir)},
            },
        )

    # ------------------------------------------------------------------ state

    @property
    def inert(self) -> bool:
        """``True`` when the URL could not be resolved into a repository location."""

        return self._index is None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def index(self) -> Optional[BundleIndex]:
        return self._index

    def _active(self) -> bool:
        return self._index is not None and not self._closed

    def _scratch(self) -> Path:
        assert self.scratch_dir is not None
        return self.scratch_dir

    def _placeholder(self) -> str:
        return (self._scratch() / f"missing-{uuid.uuid4().hex}").as_uri()

    def _log_request(self, kind: str, coordinate: object) -> None:
        LOGGER.debug(
            "locating %s %s",
            kind,
            coordinate,
            extra={"stage": "locate", "repository_id": self.repository_id},
        )

    # ---------------------------------------------------------------- lookups

    def locate_artifact(self, coordinate: ArtifactCoordinate) -> Optional[str]:
        """Return the location of ``coordinate``.

        Returns:
            A URI string. It points at a nonexistent scratch file when the
            repository lacks the content, and is ``None`` for unsupported
            requests or when the layout is inert or closed.

        Raises:
            TransferError: If downloading the bundle jar fails for a reason
                other than absence.
        """

        self._log_request("artifact", coordinate)
        if not self._active():
            return None

        extension = coordinate.extension
        classifier = coordinate.classifier
        if extension == "pom":
            return self._pom(coordinate).as_uri()
        if extension == "jar" and not classifier:
            local_jar = self._local_jar(coordinate)
            return local_jar.as_uri() if local_jar is not None else self._placeholder()
        if extension == "jar" and classifier in VARIANT_CLASSIFIERS:
            bundle = self._find_bundle(coordinate.artifact_id, coordinate.version)
            return bundle.uri(classifier) if bundle is not None else self._placeholder()
        if classifier:
            return self._embedded_entry(coordinate) or self._placeholder()
        return None

    def locate_metadata(self, coordinate: MetadataCoordinate) -> Optional[str]:
        """Return the location of a synthesized ``maven-metadata.xml``.

        The file only exists when ``coordinate`` names this layout's group and
        at least one bundle with its artifact id.
        """

        self._log_request("metadata", coordinate)
        if not self._active():
            return None
        return self._metadata_file(coordinate).as_uri()

    def locate_upload(self, coordinate: object) -> None:
        """p2 repositories are read-only; uploads resolve to no location."""

        LOGGER.debug(
            "ignoring upload request for %s",
            coordinate,
            extra={"stage": "upload", "repository_id": self.repository_id},
        )
        return None

    def checksums(self, coordinate: ArtifactCoordinate) -> List[Checksum]:
        """Return checksums declared by the repository for a plain ``jar`` artifact.

        Every ``download.checksum.<algorithm>`` property of the bundle is
        written to ``<artifactId>_<version>.jar.<algorithm>`` (hyphens removed
        from the algorithm) next to the local jar. Other artifacts, and
        inert or closed layouts, have no checksums.
        """

        if not self._active():
            return []
        if coordinate.extension != "jar" or coordinate.classifier:
            return []
        return list(self._checksums.get_or_compute(coordinate, lambda: self._write_checksums(coordinate)))

    def checksums_for_metadata(self, coordinate: MetadataCoordinate) -> List[Checksum]:
        return []

    # ------------------------------------------------------------ internals

    def _find_bundle(self, artifact_id: str, version: Optional[str]) -> Optional[BundleEntry]:
        assert self._index is not None
        return self._index.find(artifact_id, version)

    def _local_jar(self, coordinate: ArtifactCoordinate) -> Optional[Path]:
        bundle = self._find_bundle(coordinate.artifact_id, coordinate.version)
        if bundle is None:
            return None
        return self._local_jars.get_or_compute(bundle, lambda: self._download_bundle(bundle))

    def _download_bundle(self, bundle: BundleEntry) -> Optional[Path]:
        destination = self._scratch() / f"{bundle.id}_{bundle.version}.jar"
        uri = bundle.uri()
        if not download_to_path(uri, destination, config=self._config.http):
            LOGGER.info(
                "bundle jar not found at %s",
                uri,
                extra={"stage": "download", "repository_id": self.repository_id},
            )
            return None
        LOGGER.debug(
            "downloaded bundle jar",
            extra={
                "stage": "download",
                "repository_id": self.repository_id,
                "extra_fields": {"uri": uri, "path": str(destination)},
            },
        )
        return destination

    def _embedded_entry(self, coordinate: ArtifactCoordinate) -> Optional[str]:
        local_jar = self._local_jar(coordinate)
        if local_jar is None:
            return None
        candidates = [f"{coordinate.classifier}.{coordinate.extension}"]
        nested = f"{coordinate.classifier.replace('$', '/')}.{coordinate.extension}"
        if nested not in candidates:
            candidates.append(nested)
        try:
            with zipfile.ZipFile(local_jar) as jar:
                names = set(jar.namelist())
        except zipfile.BadZipFile as exc:
            raise TransferError(
                f"Downloaded bundle {local_jar.name} is not a readable jar: {exc}",
                uri=local_jar.as_uri(),
            ) from exc
        for name in candidates:
            if name in names:
                return f"jar:{local_jar.as_uri()}!/{name}"
        return None

    def _read_manifest(self, local_jar: Path) -> BundleManifest:
        try:
            return BundleManifest.read(local_jar, locale=self._config.layout.locale)
        except zipfile.BadZipFile as exc:
            raise TransferError(
                f"Downloaded bundle {local_jar.name} is not a readable jar: {exc}",
                uri=local_jar.as_uri(),
            ) from exc

    def _pom(self, coordinate: ArtifactCoordinate) -> Path:
        key = (coordinate.artifact_id, coordinate.version)
        return self._poms.get_or_compute(key, lambda: self._write_pom(coordinate))

    def _write_pom(self, coordinate: ArtifactCoordinate) -> Path:
        target = self._scratch() / f"{coordinate.artifact_id}-{coordinate.version}.pom"
        if target.exists() or coordinate.group_id != self.repository_id:
            return target
        bundle = self._find_bundle(coordinate.artifact_id, coordinate.version)
        if bundle is None:
            return target

        pom_coordinate = ArtifactCoordinate(
            coordinate.group_id, coordinate.artifact_id, coordinate.version, extension="pom"
        )
        local_jar = self._local_jar(pom_coordinate)
        manifest = self._read_manifest(local_jar) if local_jar is not None else None
        assert self._index is not None
        target.write_bytes(
            build_pom(
                pom_coordinate,
                bundle,
                manifest,
                candidates=self._index.list_bundles(),
                generator=self._config.layout.generator_name,
            )
        )
        LOGGER.debug(
            "synthesized pom",
            extra={
                "stage": "pom",
                "repository_id": self.repository_id,
                "extra_fields": {"coordinate": str(coordinate), "path": str(target)},
            },
        )
        return target

    def _metadata_file(self, coordinate: MetadataCoordinate) -> Path:
        return self._metadata.get_or_compute(
            coordinate.artifact_id, lambda: self._write_metadata(coordinate)
        )

    def _write_metadata(self, coordinate: MetadataCoordinate) -> Path:
        target = self._scratch() / f"maven-metadata-{coordinate.artifact_id}.xml"
        if target.exists() or coordinate.group_id != self.repository_id:
            return target
        assert self._index is not None
        bundles = self._index.find_all(coordinate.artifact_id)
        if not bundles:
            return target
        target.write_bytes(
            build_metadata(
                self.repository_id,
                coordinate.artifact_id,
                [bundle.version for bundle in bundles],
            )
        )
        return target

    def _write_checksums(self, coordinate: ArtifactCoordinate) -> List[Checksum]:
        bundle = self._find_bundle(coordinate.artifact_id, coordinate.version)
        if bundle is None:
            return []
        checksums: List[Checksum] = []
        for algorithm, value in bundle.checksums().items():
            name = f"{coordinate.artifact_id}_{coordinate.version}.jar.{algorithm.replace('-', '')}"
            (self._scratch() / name).write_text(value, encoding="utf-8")
            checksums.append(Checksum(algorithm, name))
        return checksums

    # -------------------------------------------------------------- lifecycle

    def _created_files(self) -> List[Path]:
        files: List[Path] = []
        files.extend(self._poms.values())
        files.extend(self._metadata.values())
        files.extend(path for path in self._local_jars.values() if path is not None)
        for checksums in self._checksums.values():
            files.extend(self._scratch() / checksum.location for checksum in checksums)
        return files

    def close(self) -> None:
        """Delete every file this session created and its scratch directory.

        Deletion failures are logged and ignored; calling ``close`` again is a
        no-op.
        """

        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        if self.scratch_dir is None:
            return
        for path in self._created_files():
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.debug("could not delete %s: %s", path, exc, extra={"stage": "close"})
        shutil.rmtree(self.scratch_dir, ignore_errors=True)
        LOGGER.debug(
            "layout session closed",
            extra={"stage": "close", "repository_id": self.repository_id},
        )

    def __enter__(self) -> "RepositoryLayout":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.repository_id!r}, {self.url!r})"
