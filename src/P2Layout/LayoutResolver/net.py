# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver.net",
#   "purpose": "Shared HTTPX + Hishel client and absent-aware URI opening with manual redirects",
#   "sections": [
#     {"id": "client", "name": "Shared Client", "anchor": "CLI", "kind": "api"},
#     {"id": "open-uri", "name": "open_uri", "anchor": "function-open-uri", "kind": "function"},
#     {"id": "download-to-path", "name": "download_to_path", "anchor": "function-download-to-path", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Remote fetching for p2 repositories.

Every read of remote repository content goes through :func:`open_uri`, which
hides the differences between ``http(s)``, ``file`` and ``jar`` URIs behind
one contract: a readable binary stream when the resource exists and ``None``
when it does not. Absence is an expected outcome here (descriptor fallback
chains probe for files that usually are not there), so it is never raised.

HTTP redirects are followed manually on a client created with
``follow_redirects=False``: each 301/302/303/307/308 response's ``Location``
header is resolved against the current URL and retried. A redirect without a
``Location`` header, or a chain longer than
:attr:`HttpConfiguration.max_redirects`, counts as absent. Transport failures
(connection resets, timeouts, truncated bodies) surface as
:class:`~P2Layout.LayoutResolver.errors.TransferError`.
"""

from __future__ import annotations

import contextlib
import io
import logging
import shutil
import ssl
import threading
import time
import zipfile
from pathlib import Path
from typing import BinaryIO, Callable, MutableMapping, Optional
from urllib.parse import unquote, urlsplit
from urllib.request import url2pathname

import certifi
import httpx
from hishel import CacheTransport, Controller, FileStorage

from .errors import TransferError
from .settings import CACHE_DIR, HttpConfiguration

__all__ = [
    "REDIRECT_STATUSES",
    "configure_http_client",
    "download_to_path",
    "file_uri_to_path",
    "get_http_client",
    "open_uri",
    "reset_http_client",
]

LOGGER = logging.getLogger("P2Layout.LayoutResolver.net")

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

HTTP_CACHE_DIR: Path = CACHE_DIR / "http"
_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None
_CLIENT_FACTORY: Optional[Callable[[], httpx.Client]] = None
_DEFAULT_CONFIG = HttpConfiguration()


def _ensure_cache_dir() -> Path:
    HTTP_CACHE_DIR.mkdir(parents=True, exist_ok=True)
    return HTTP_CACHE_DIR


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _controller() -> Controller:
    return Controller(
        cacheable_methods=["GET"],
        cacheable_status_codes=[200, 301, 308],
        cache_private=True,
        allow_heuristics=False,
        always_revalidate=True,
    )


def _request_hook(request: httpx.Request) -> None:
    meta: MutableMapping[str, object] = request.extensions.setdefault("p2layout_meta", {})  # type: ignore[assignment]
    meta["start_time"] = time.perf_counter()


def _response_hook(response: httpx.Response) -> None:
    meta = response.request.extensions.get("p2layout_meta")
    elapsed: Optional[float] = None
    if isinstance(meta, MutableMapping):
        start = meta.get("start_time")
        if isinstance(start, (int, float)):
            elapsed = time.perf_counter() - start
    LOGGER.debug(
        "p2-http-response",
        extra={
            "extra_fields": {
                "url": str(response.request.url),
                "status": response.status_code,
                "cache_hit": bool(response.extensions.get("from_cache")),
                "elapsed_sec": elapsed,
            }
        },
    )


def _timeout_for(config: HttpConfiguration) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout_sec,
        read=config.timeout_sec,
        write=config.timeout_sec,
        pool=config.pool_timeout_sec,
    )


def _limits_for(config: HttpConfiguration) -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.max_connections,
        max_keepalive_connections=config.max_keepalive_connections,
        keepalive_expiry=config.keepalive_expiry_sec,
    )


def _build_http_client(config: HttpConfiguration) -> httpx.Client:
    ssl_context = _build_ssl_context()
    transport: httpx.BaseTransport = httpx.HTTPTransport(
        verify=ssl_context, http2=config.http2_enabled, retries=0
    )
    if config.cache_enabled:
        transport = CacheTransport(
            transport=transport,
            storage=FileStorage(base_path=_ensure_cache_dir()),
            controller=_controller(),
        )
    return httpx.Client(
        transport=transport,
        headers=config.http_headers(),
        timeout=_timeout_for(config),
        limits=_limits_for(config),
        trust_env=True,
        follow_redirects=False,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
    )


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is not None:
        with contextlib.suppress(Exception):
            _HTTP_CLIENT.close()
    _HTTP_CLIENT = None


def configure_http_client(
    client: Optional[httpx.Client] = None,
    *,
    factory: Optional[Callable[[], httpx.Client]] = None,
    default_config: Optional[HttpConfiguration] = None,
) -> None:
    """Override the shared HTTPX client or register a factory for tests."""

    if client is not None and factory is not None:
        raise ValueError("provide either a client or factory, not both")

    global _HTTP_CLIENT, _CLIENT_FACTORY, _DEFAULT_CONFIG
    with _CLIENT_LOCK:
        if default_config is not None:
            _DEFAULT_CONFIG = default_config
        if client is None:
            _close_client_unlocked()
        else:
            if _HTTP_CLIENT is not client:
                _close_client_unlocked()
            _HTTP_CLIENT = client
        _CLIENT_FACTORY = factory


def reset_http_client() -> None:
    """Drop the shared client and any registered factory (test helper)."""

    global _CLIENT_FACTORY, _DEFAULT_CONFIG
    with _CLIENT_LOCK:
        _CLIENT_FACTORY = None
        _DEFAULT_CONFIG = HttpConfiguration()
        _close_client_unlocked()


def get_http_client(config: Optional[HttpConfiguration] = None) -> httpx.Client:
    """Return the shared HTTPX client, creating it if necessary."""

    global _HTTP_CLIENT
    with _CLIENT_LOCK:
        if _HTTP_CLIENT is not None:
            return _HTTP_CLIENT
        if _CLIENT_FACTORY is not None:
            candidate = _CLIENT_FACTORY()
            if not isinstance(candidate, httpx.Client):
                raise TypeError("client factory must return an httpx.Client")
            _HTTP_CLIENT = candidate
            return candidate
        _HTTP_CLIENT = _build_http_client(config or _DEFAULT_CONFIG)
        return _HTTP_CLIENT


class _ResponseReader(io.RawIOBase):
    """Raw stream over a streamed HTTPX response body."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._chunks = response.iter_bytes()
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:  # type: ignore[override]
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
            except httpx.HTTPError as exc:
                raise TransferError(
                    f"Transfer of {self._response.request.url} interrupted: {exc}",
                    uri=str(self._response.request.url),
                ) from exc
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        if not self.closed:
            self._response.close()
        super().close()


def _open_http(uri: str, config: HttpConfiguration) -> Optional[BinaryIO]:
    client = get_http_client(config)
    current = uri
    hops = 0
    while True:
        try:
            request = client.build_request("GET", current)
            response = client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransferError(f"Request to {current} failed: {exc}", uri=current) from exc

        status = response.status_code
        if status == 200:
            return io.BufferedReader(_ResponseReader(response))  # type: ignore[return-value]
        response.close()
        if status not in REDIRECT_STATUSES:
            LOGGER.debug("resource absent", extra={"extra_fields": {"url": current, "status": status}})
            return None

        location = response.headers.get("location")
        if not location:
            LOGGER.debug(
                "redirect without Location header",
                extra={"extra_fields": {"url": current, "status": status}},
            )
            return None
        if hops >= config.max_redirects:
            LOGGER.warning(
                "Redirect chain for %s exceeded %d hops; treating as absent",
                uri,
                config.max_redirects,
            )
            return None
        target = str(response.url.join(location))
        LOGGER.debug(
            "following redirect",
            extra={"extra_fields": {"from": current, "to": target, "status": status}},
        )
        current = target
        hops += 1


def file_uri_to_path(uri: str) -> Path:
    """Return the local path named by a ``file:`` URI."""

    parts = urlsplit(uri)
    path = url2pathname(parts.path)
    if parts.netloc and parts.netloc != "localhost":
        path = f"//{parts.netloc}{path}"
    return Path(path)


def _open_file(uri: str) -> Optional[BinaryIO]:
    try:
        return file_uri_to_path(uri).open("rb")
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        return None
    except OSError as exc:
        raise TransferError(f"Cannot open {uri}: {exc}", uri=uri) from exc


def _open_jar_entry(uri: str, config: HttpConfiguration) -> Optional[BinaryIO]:
    inner, separator, entry = uri[len("jar:") :].partition("!/")
    if not separator:
        raise TransferError(f"Malformed jar URI {uri}: missing '!/' separator", uri=uri)
    archive = open_uri(inner, config=config)
    if archive is None:
        return None
    with archive:
        data = archive.read()
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as jar:
            try:
                return io.BytesIO(jar.read(unquote(entry)))
            except KeyError:
                return None
    except zipfile.BadZipFile as exc:
        raise TransferError(f"{inner} is not a readable archive: {exc}", uri=uri) from exc


def open_uri(uri: str, *, config: Optional[HttpConfiguration] = None) -> Optional[BinaryIO]:
    """Open ``uri`` for reading, returning ``None`` when the resource does not exist.

    Args:
        uri: ``http``, ``https``, ``file`` or ``jar:<uri>!/<entry>`` location.
        config: HTTP settings; the shared defaults are used when omitted.

    Returns:
        A readable binary stream the caller must close, or ``None`` when the
        server answers with a non-200 status, a redirect cannot be followed,
        or the local file or archive entry is missing.

    Raises:
        TransferError: If the transport fails or the scheme is unsupported.
    """

    cfg = config or _DEFAULT_CONFIG
    scheme = urlsplit(uri).scheme.lower()
    if scheme in {"http", "https"}:
        return _open_http(uri, cfg)
    if scheme == "file":
        return _open_file(uri)
    if scheme == "jar":
        return _open_jar_entry(uri, cfg)
    raise TransferError(f"Unsupported URI scheme {scheme!r} in {uri}", uri=uri)


def download_to_path(
    uri: str,
    destination: Path,
    *,
    config: Optional[HttpConfiguration] = None,
) -> bool:
    """Stream ``uri`` into ``destination``; return ``False`` when it is absent.

    A partially written destination is removed before a
    :class:`TransferError` propagates.
    """

    stream = open_uri(uri, config=config)
    if stream is None:
        return False
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        with stream, destination.open("wb") as handle:
            shutil.copyfileobj(stream, handle)
    except TransferError:
        destination.unlink(missing_ok=True)
        raise
    except OSError as exc:
        destination.unlink(missing_ok=True)
        raise TransferError(f"Writing {uri} to {destination} failed: {exc}", uri=uri) from exc
    return True
