# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver.connector",
#   "purpose": "Batch artifact and metadata transfers from a p2 repository through its Maven layout",
#   "sections": [
#     {"id": "artifactdownload", "name": "ArtifactDownload", "anchor": "class-artifactdownload", "kind": "class"},
#     {"id": "metadatadownload", "name": "MetadataDownload", "anchor": "class-metadatadownload", "kind": "class"},
#     {"id": "repositoryconnector", "name": "RepositoryConnector", "anchor": "class-repositoryconnector", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Batch transfers for p2 repositories.

:class:`RepositoryConnector` copies what a :class:`RepositoryLayout` locates
into caller-chosen files. Each request runs on a bounded worker pool and
records its own failure on ``download.exception``; one missing or corrupt
artifact never affects the others in the batch. Uploads are accepted and
ignored because p2 repositories are read-only here.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Union
from urllib.parse import urljoin

from P2Layout.concurrency import create_executor

from .cancellation import CancellationToken, CancellationTokenGroup
from .checksums import verify_checksum
from .errors import (
    ArtifactNotFoundError,
    ArtifactTransferError,
    ChecksumFailureError,
    ConnectorClosedError,
    MetadataNotFoundError,
    MetadataTransferError,
    TransferError,
)
from .layout import RepositoryLayout
from .model import ArtifactCoordinate, MetadataCoordinate, RemoteRepository
from .net import download_to_path
from .repository import RepositoryRegistry
from .settings import ResolvedConfig, get_default_config

__all__ = ["ArtifactDownload", "MetadataDownload", "RepositoryConnector"]

LOGGER = logging.getLogger("P2Layout.LayoutResolver.connector")


@dataclass
class ArtifactDownload:
    """Request to copy one artifact to ``file``; ``exception`` is set on failure."""

    artifact: ArtifactCoordinate
    file: Path
    exception: Optional[TransferError] = field(default=None, compare=False)


@dataclass
class MetadataDownload:
    """Request to copy one metadata document to ``file``; ``exception`` is set on failure."""

    metadata: MetadataCoordinate
    file: Path
    exception: Optional[TransferError] = field(default=None, compare=False)


Download = Union[ArtifactDownload, MetadataDownload]


class RepositoryConnector:
    """Transfer front end for one ``p2`` remote repository."""

    def __init__(
        self,
        repository: RemoteRepository,
        *,
        layout: Optional[RepositoryLayout] = None,
        registry: Optional[RepositoryRegistry] = None,
        config: Optional[ResolvedConfig] = None,
    ) -> None:
        self.repository = repository
        self._config = config or get_default_config()
        self.layout = layout or RepositoryLayout(
            repository.id, repository.url, registry=registry, config=self._config
        )
        self._closed = False
        self._lock = threading.Lock()
        self._active_groups: Set[CancellationTokenGroup] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_closed(self) -> None:
        if self._closed:
            raise ConnectorClosedError(f"Connector for {self.repository.id} is closed")

    # ---------------------------------------------------------------- get

    def get(
        self,
        artifact_downloads: Optional[Iterable[ArtifactDownload]] = None,
        metadata_downloads: Optional[Iterable[MetadataDownload]] = None,
        *,
        cancellation_group: Optional[CancellationTokenGroup] = None,
    ) -> None:
        """Perform every download, recording failures on the requests themselves.

        Args:
            artifact_downloads: Artifacts to copy, with their checksums verified.
            metadata_downloads: Metadata documents to copy.
            cancellation_group: Group used to stop the batch; a fresh one is
                created when omitted and can be cancelled through :meth:`cancel`.

        Raises:
            ConnectorClosedError: If the connector was closed.
        """

        self._check_closed()
        jobs: List[Tuple[Download, Callable[[CancellationToken], None]]] = []
        for artifact_download in artifact_downloads or ():
            jobs.append((artifact_download, self._job(self._fetch_artifact, artifact_download)))
        for metadata_download in metadata_downloads or ():
            jobs.append((metadata_download, self._job(self._fetch_metadata, metadata_download)))
        if not jobs:
            return

        group = (
            cancellation_group if cancellation_group is not None else CancellationTokenGroup()
        )
        workers = max(1, min(self._config.http.concurrent_downloads, len(jobs)))
        LOGGER.debug(
            "starting batch",
            extra={
                "stage": "batch",
                "repository_id": self.repository.id,
                "extra_fields": {"downloads": len(jobs), "workers": workers},
            },
        )

        with self._lock:
            self._active_groups.add(group)
        executor = create_executor(workers)
        futures: Dict[Future[None], Download] = {}
        try:
            for download, job in jobs:
                token = group.create_token()
                futures[executor.submit(self._run, job, download, token, group)] = download
            for future in as_completed(futures):
                future.result()
        except KeyboardInterrupt:
            self._cancel_group(group)
            executor.shutdown(wait=True, cancel_futures=True)
            for future, download in futures.items():
                if future.cancelled():
                    download.exception = self._cancelled_error(download)
            raise
        finally:
            executor.shutdown(wait=True)
            with self._lock:
                self._active_groups.discard(group)

        failed = sum(1 for download, _ in jobs if download.exception is not None)
        LOGGER.debug(
            "batch finished",
            extra={
                "stage": "batch",
                "repository_id": self.repository.id,
                "extra_fields": {"downloads": len(jobs), "failed": failed},
            },
        )

    @staticmethod
    def _job(
        fetch: Callable[[Download, CancellationToken], None], download: Download
    ) -> Callable[[CancellationToken], None]:
        return lambda token: fetch(download, token)

    def _run(
        self,
        job: Callable[[CancellationToken], None],
        download: Download,
        token: CancellationToken,
        group: CancellationTokenGroup,
    ) -> None:
        group.mark_started(token)
        try:
            if token.is_cancelled():
                download.exception = self._cancelled_error(download)
                return
            job(token)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "unexpected failure while transferring %s",
                self._describe(download),
                exc_info=True,
                extra={"stage": "error", "repository_id": self.repository.id},
            )
            download.exception = self._wrap(download, exc)
        finally:
            group.remove_token(token)

    def _fetch_artifact(self, download: ArtifactDownload, token: CancellationToken) -> None:
        artifact = download.artifact
        http = self._config.http
        try:
            source = self.layout.locate_artifact(artifact)
            if source is None or not download_to_path(source, download.file, config=http):
                raise ArtifactNotFoundError(
                    f"Could not find artifact {artifact} in {self.repository.id}", uri=source
                )
            for checksum in self.layout.checksums(artifact):
                if token.is_cancelled():
                    raise self._cancelled_error(download)
                suffix = checksum.algorithm.replace("-", "")
                checksum_path = download.file.with_name(f"{download.file.name}.{suffix}")
                checksum_uri = urljoin(source, checksum.location)
                if not download_to_path(checksum_uri, checksum_path, config=http):
                    raise ArtifactTransferError(
                        f"Checksum file {checksum.location} for {artifact} is missing",
                        uri=checksum_uri,
                    )
                verify_checksum(download.file, checksum_path, checksum.algorithm)
        except (ArtifactTransferError, ChecksumFailureError) as exc:
            download.exception = exc
        except TransferError as exc:
            download.exception = self._wrap(download, exc)
        else:
            LOGGER.debug(
                "downloaded artifact",
                extra={
                    "stage": "get",
                    "repository_id": self.repository.id,
                    "extra_fields": {"artifact": str(artifact), "file": str(download.file)},
                },
            )
            return
        LOGGER.info(
            "artifact %s failed: %s",
            artifact,
            download.exception,
            extra={"stage": "get", "repository_id": self.repository.id},
        )

    def _fetch_metadata(self, download: MetadataDownload, token: CancellationToken) -> None:
        metadata = download.metadata
        try:
            source = self.layout.locate_metadata(metadata)
            if source is None or not download_to_path(
                source, download.file, config=self._config.http
            ):
                raise MetadataNotFoundError(
                    f"Could not find metadata {metadata} in {self.repository.id}", uri=source
                )
        except MetadataTransferError as exc:
            download.exception = exc
        except TransferError as exc:
            download.exception = self._wrap(download, exc)

    # ------------------------------------------------------------ failures

    @staticmethod
    def _describe(download: Download) -> str:
        if isinstance(download, ArtifactDownload):
            return f"artifact {download.artifact}"
        return f"metadata {download.metadata}"

    def _wrap(self, download: Download, exc: Exception) -> TransferError:
        error_cls = ArtifactTransferError if isinstance(download, ArtifactDownload) else MetadataTransferError
        wrapped = error_cls(
            f"Error transferring {self._describe(download)} from {self.repository.id}: {exc}",
            uri=getattr(exc, "uri", None),
            status_code=getattr(exc, "status_code", None),
        )
        wrapped.__cause__ = exc
        return wrapped

    def _cancelled_error(self, download: Download) -> TransferError:
        error_cls = ArtifactTransferError if isinstance(download, ArtifactDownload) else MetadataTransferError
        return error_cls(f"Transfer of {self._describe(download)} was cancelled")

    def _cancel_group(self, group: CancellationTokenGroup) -> None:
        running = group.in_flight
        queued = len(group) - running
        group.cancel_all()
        LOGGER.warning(
            "Cancelling transfers from %s: %d running, %d queued",
            self.repository.id,
            running,
            queued,
            extra={"stage": "cancel", "repository_id": self.repository.id},
        )

    def cancel(self) -> None:
        """Stop every running batch: queued downloads fail as cancelled."""

        with self._lock:
            groups = list(self._active_groups)
        for group in groups:
            self._cancel_group(group)

    # -------------------------------------------------------------- put

    def put(
        self,
        artifact_uploads: Optional[Iterable[object]] = None,
        metadata_uploads: Optional[Iterable[object]] = None,
    ) -> None:
        """Accept and ignore uploads; p2 repositories are read-only."""

        self._check_closed()
        LOGGER.debug(
            "ignoring uploads",
            extra={"stage": "put", "repository_id": self.repository.id},
        )

    # ------------------------------------------------------------ lifecycle

    def close(self) -> None:
        """Cancel running batches, close the layout and refuse further requests."""

        if self._closed:
            return
        self.cancel()
        self.layout.close()
        self._closed = True

    def __enter__(self) -> "RepositoryConnector":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.repository.id!r})"
