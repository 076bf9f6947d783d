# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver.repository",
#   "purpose": "Resolve p2 repositories (plain and composite) into memoised bundle indexes",
#   "sections": [
#     {"id": "first-success", "name": "first_success", "anchor": "function-first-success", "kind": "function"},
#     {"id": "find-descriptor", "name": "find_descriptor", "anchor": "function-find-descriptor", "kind": "function"},
#     {"id": "bundleindex", "name": "BundleIndex", "anchor": "class-bundleindex", "kind": "class"},
#     {"id": "repositoryregistry", "name": "RepositoryRegistry", "anchor": "class-repositoryregistry", "kind": "class"},
#     {"id": "default-registry", "name": "default_registry", "anchor": "function-default-registry", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Bundle indexes for p2 repositories.

A :class:`BundleIndex` turns one repository location into the ordered list of
bundles it offers. Population happens once per process:

1. ``compositeArtifacts`` is looked up through the descriptor fallback chain
   (``.xml``, then ``.xml.xz``, then ``.jar``). When present, every declared
   child is resolved through the same :class:`RepositoryRegistry` and its
   bundles are appended in declaration order.
2. ``artifacts`` is looked up the same way and its downloadable
   ``osgi.bundle`` records are appended.

Both steps always run; a repository may be composite and plain at once. A
descriptor that exists but cannot be parsed is logged and contributes
nothing. A child that is already being resolved further up the current
chain contributes nothing either, which stops self-referencing composites.

Indexes are memoised per normalised location by an explicit
:class:`RepositoryRegistry`; concurrent callers receive the same instance and
only one of them performs the network work. The registry tracks which thread
resolves which location, so two threads entering a composite cycle from
opposite ends do not wait on each other: the later one treats the location
as part of the cycle and skips it.
"""

from __future__ import annotations

import enum
import io
import logging
import lzma
import threading
import zipfile
from dataclasses import dataclass
from typing import BinaryIO, Callable, Dict, List, Optional, Set, Tuple, TypeVar, Union

from .documents import parse_artifacts, parse_composite_children
from .errors import ConfigurationError, MalformedDocumentError
from .model import BundleEntry, RepositoryLocation
from .net import open_uri
from .settings import HttpConfiguration

__all__ = [
    "ARTIFACTS_DESCRIPTOR",
    "COMPOSITE_DESCRIPTOR",
    "BundleIndex",
    "Descriptor",
    "IndexState",
    "RepositoryRegistry",
    "default_registry",
    "find_descriptor",
    "first_success",
]

LOGGER = logging.getLogger("P2Layout.LayoutResolver.repository")

ARTIFACTS_DESCRIPTOR = "artifacts"
COMPOSITE_DESCRIPTOR = "compositeArtifacts"

T = TypeVar("T")


def first_success(*lookups: Callable[[], Optional[T]]) -> Optional[T]:
    """Return the first non-``None`` result of ``lookups``, evaluated lazily."""

    for lookup in lookups:
        result = lookup()
        if result is not None:
            return result
    return None


@dataclass
class Descriptor:
    """An opened repository descriptor and the URI it was read from."""

    stream: BinaryIO
    uri: str

    def close(self) -> None:
        self.stream.close()

    def __enter__(self) -> "Descriptor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _read_all(uri: str, config: Optional[HttpConfiguration]) -> Optional[bytes]:
    stream = open_uri(uri, config=config)
    if stream is None:
        return None
    with stream:
        return stream.read()


def _plain(uri: str, config: Optional[HttpConfiguration]) -> Optional[Descriptor]:
    stream = open_uri(uri, config=config)
    return Descriptor(stream, uri) if stream is not None else None


def _xz(uri: str, config: Optional[HttpConfiguration]) -> Optional[Descriptor]:
    data = _read_all(uri, config)
    if data is None:
        return None
    try:
        return Descriptor(io.BytesIO(lzma.decompress(data)), uri)
    except lzma.LZMAError as exc:
        raise MalformedDocumentError(f"Cannot decompress {uri}: {exc}", source=uri) from exc


def _jar(uri: str, config: Optional[HttpConfiguration]) -> Optional[Descriptor]:
    data = _read_all(uri, config)
    if data is None:
        return None
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as jar:
            for info in jar.infolist():
                if info.is_dir() or info.filename.upper().startswith("META-INF/"):
                    continue
                return Descriptor(io.BytesIO(jar.read(info)), f"jar:{uri}!/{info.filename}")
    except zipfile.BadZipFile as exc:
        raise MalformedDocumentError(f"Cannot open {uri} as a jar: {exc}", source=uri) from exc
    raise MalformedDocumentError(f"{uri} does not contain a descriptor entry", source=uri)


def find_descriptor(
    location: RepositoryLocation,
    name: str,
    *,
    config: Optional[HttpConfiguration] = None,
) -> Optional[Descriptor]:
    """Open ``<name>.xml``, ``<name>.xml.xz`` or ``<name>.jar`` below ``location``.

    Returns:
        The first variant that exists, or ``None`` when none of them does.

    Raises:
        MalformedDocumentError: If the variant found cannot be unwrapped.
        TransferError: If a transfer fails for a reason other than absence.
    """

    return first_success(
        lambda: _plain(location.child(f"{name}.xml"), config),
        lambda: _xz(location.child(f"{name}.xml.xz"), config),
        lambda: _jar(location.child(f"{name}.jar"), config),
    )


class IndexState(enum.Enum):
    """Lifecycle of a :class:`BundleIndex`; it moves to ``RESOLVED`` exactly once."""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"


class _Claim(enum.Enum):
    OWNER = "owner"
    RESOLVED = "resolved"
    CYCLE = "cycle"


class BundleIndex:
    """Lazily populated, never refreshed list of bundles for one location."""

    def __init__(self, location: RepositoryLocation, registry: "RepositoryRegistry") -> None:
        self.location = location
        self._registry = registry
        self._state = IndexState.UNRESOLVED
        self._bundles: Tuple[BundleEntry, ...] = ()

    @property
    def state(self) -> IndexState:
        return self._state

    def list_bundles(self) -> Tuple[BundleEntry, ...]:
        """Return every bundle of this repository, resolving it on first use."""

        return self._list_bundles(())

    def find(self, bundle_id: str, version: Optional[str] = None) -> Optional[BundleEntry]:
        """Return the first bundle named ``bundle_id`` (and ``version``, if given)."""

        for bundle in self.list_bundles():
            if bundle.id == bundle_id and (version is None or bundle.version == version):
                return bundle
        return None

    def find_all(self, bundle_id: str) -> List[BundleEntry]:
        """Return every bundle named ``bundle_id`` in index order."""

        return [bundle for bundle in self.list_bundles() if bundle.id == bundle_id]

    def _list_bundles(self, chain: Tuple[RepositoryLocation, ...]) -> Tuple[BundleEntry, ...]:
        if self._state is IndexState.RESOLVED:
            return self._bundles
        claim = self._registry._claim(self)
        if claim is _Claim.RESOLVED:
            return self._bundles
        if claim is _Claim.CYCLE:
            LOGGER.warning(
                "Composite repository cycle: %s is being resolved by a thread that waits on this one",
                self.location,
            )
            return ()

        bundles: Optional[Tuple[BundleEntry, ...]] = None
        try:
            bundles = tuple(self._resolve(chain + (self.location,)))
            self._bundles = bundles
        finally:
            self._registry._release(self, resolved=bundles is not None)
        LOGGER.debug(
            "resolved p2 repository",
            extra={
                "stage": "index",
                "extra_fields": {"location": self.location.uri, "bundles": len(bundles)},
            },
        )
        return bundles

    def _resolve(self, chain: Tuple[RepositoryLocation, ...]) -> List[BundleEntry]:
        config = self._registry.config
        bundles: List[BundleEntry] = []

        try:
            composite = find_descriptor(self.location, COMPOSITE_DESCRIPTOR, config=config)
            if composite is not None:
                with composite:
                    children = parse_composite_children(
                        composite.stream, self.location, source=composite.uri
                    )
                for child_uri in children:
                    bundles.extend(self._child_bundles(child_uri, chain))
        except MalformedDocumentError as exc:
            LOGGER.warning("Ignoring composite descriptor of %s: %s", self.location, exc)

        try:
            artifacts = find_descriptor(self.location, ARTIFACTS_DESCRIPTOR, config=config)
            if artifacts is not None:
                with artifacts:
                    bundles.extend(
                        parse_artifacts(artifacts.stream, self.location, source=artifacts.uri)
                    )
        except MalformedDocumentError as exc:
            LOGGER.warning("Ignoring artifacts descriptor of %s: %s", self.location, exc)

        return bundles

    def _child_bundles(
        self, child_uri: str, chain: Tuple[RepositoryLocation, ...]
    ) -> Tuple[BundleEntry, ...]:
        try:
            child = RepositoryLocation.parse(child_uri)
        except ConfigurationError as exc:
            LOGGER.warning("Skipping child of %s: %s", self.location, exc)
            return ()
        if child in chain:
            LOGGER.warning(
                "Composite repository cycle: %s is already being resolved (via %s)",
                child,
                " -> ".join(str(item) for item in chain),
            )
            return ()
        return self._registry.resolve(child)._list_bundles(chain)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.location.uri!r}, state={self._state.value})"


class RepositoryRegistry:
    """Process-wide memo of :class:`BundleIndex` instances keyed by location.

    The registry is an explicit object handed to every layout; tests and
    embedders can create isolated registries instead of sharing the default.
    """

    def __init__(self, config: Optional[HttpConfiguration] = None) -> None:
        self.config = config
        self._indexes: Dict[RepositoryLocation, BundleIndex] = {}
        self._lock = threading.Lock()
        # Resolution ownership: location -> resolving thread, thread -> awaited location.
        self._resolving = threading.Condition()
        self._owners: Dict[RepositoryLocation, int] = {}
        self._waiting: Dict[int, RepositoryLocation] = {}

    def resolve(self, location: Union[RepositoryLocation, str]) -> BundleIndex:
        """Return the shared index for ``location``, creating it if needed.

        Raises:
            ConfigurationUnresolvedError: If ``location`` is a string that
                cannot be normalised.
        """

        key = location if isinstance(location, RepositoryLocation) else RepositoryLocation.parse(location)
        with self._lock:
            index = self._indexes.get(key)
            if index is None:
                index = BundleIndex(key, self)
                self._indexes[key] = index
            return index

    def _claim(self, index: BundleIndex) -> _Claim:
        """Wait until ``index`` is resolved or hand its resolution to the caller.

        A thread never blocks on a location whose owner is, directly or
        through other owners, waiting on the calling thread; that wait would
        close a composite cycle across threads and is reported as
        :attr:`_Claim.CYCLE` instead.
        """

        me = threading.get_ident()
        with self._resolving:
            while index.state is IndexState.UNRESOLVED:
                owner = self._owners.get(index.location)
                if owner is None:
                    self._owners[index.location] = me
                    return _Claim.OWNER
                if self._waits_on(owner, me):
                    return _Claim.CYCLE
                self._waiting[me] = index.location
                try:
                    self._resolving.wait()
                finally:
                    del self._waiting[me]
            return _Claim.RESOLVED

    def _waits_on(self, thread: int, target: int) -> bool:
        seen: Set[int] = set()
        while thread not in seen:
            if thread == target:
                return True
            seen.add(thread)
            awaited = self._waiting.get(thread)
            if awaited is None or awaited not in self._owners:
                return False
            thread = self._owners[awaited]
        return False

    def _release(self, index: BundleIndex, *, resolved: bool) -> None:
        with self._resolving:
            if resolved:
                index._state = IndexState.RESOLVED
            self._owners.pop(index.location, None)
            self._resolving.notify_all()

    def __contains__(self, location: object) -> bool:
        if isinstance(location, str):
            try:
                location = RepositoryLocation.parse(location)
            except ConfigurationError:
                return False
        with self._lock:
            return location in self._indexes

    def __len__(self) -> int:
        with self._lock:
            return len(self._indexes)

    def clear(self) -> None:
        """Forget every index (test helper; indexes are otherwise never evicted)."""

        with self._lock:
            self._indexes.clear()


_DEFAULT_REGISTRY: Optional[RepositoryRegistry] = None
_DEFAULT_REGISTRY_LOCK = threading.Lock()


def default_registry() -> RepositoryRegistry:
    """Return the registry shared by layouts that are not given one explicitly."""

    global _DEFAULT_REGISTRY  # noqa: PLW0603
    with _DEFAULT_REGISTRY_LOCK:
        if _DEFAULT_REGISTRY is None:
            _DEFAULT_REGISTRY = RepositoryRegistry()
        return _DEFAULT_REGISTRY
