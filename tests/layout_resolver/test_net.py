# === NAVMAP v1 ===
# {
#   "module": "tests.layout_resolver.test_net",
#   "purpose": "Validates URI opening: redirects, absence semantics, file and jar schemes, and the shared HTTPX client.",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Validates URI opening: redirects, absence semantics, file and jar schemes, and the shared HTTPX client."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import List

import httpx
import pytest
from hishel import CacheTransport

from P2Layout.LayoutResolver import net
from P2Layout.LayoutResolver.errors import TransferError
from P2Layout.LayoutResolver.settings import HttpConfiguration
from P2Layout.LayoutResolver.testing import use_mock_http_client


def _config(**overrides) -> HttpConfiguration:
    config = HttpConfiguration(cache_enabled=False)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def _read(uri: str, config: HttpConfiguration) -> bytes | None:
    stream = net.open_uri(uri, config=config)
    if stream is None:
        return None
    with stream:
        return stream.read()


def test_open_uri_returns_body_on_200():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<repository/>")

    config = _config()
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        assert _read("https://p2.example.org/site/artifacts.xml", config) == b"<repository/>"


@pytest.mark.parametrize("status", [204, 403, 404, 410, 500])
def test_open_uri_treats_other_statuses_as_absent(status):
    config = _config()
    transport = httpx.MockTransport(lambda request: httpx.Response(status))
    with use_mock_http_client(transport, default_config=config):
        assert net.open_uri("https://p2.example.org/site/artifacts.xml", config=config) is None


@pytest.mark.parametrize("status", sorted(net.REDIRECT_STATUSES))
def test_open_uri_follows_relative_redirects(status):
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/old/artifacts.xml":
            return httpx.Response(status, headers={"Location": "../new/artifacts.xml"})
        return httpx.Response(200, content=b"moved")

    config = _config()
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        assert _read("https://p2.example.org/old/artifacts.xml", config) == b"moved"
    assert seen == ["/old/artifacts.xml", "/new/artifacts.xml"]


def test_redirect_across_hosts_is_followed():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "p2.example.org":
            return httpx.Response(302, headers={"Location": "https://mirror.example.net/site/a.xml"})
        return httpx.Response(200, content=b"mirror")

    config = _config()
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        assert _read("https://p2.example.org/site/a.xml", config) == b"mirror"


def test_redirect_without_location_is_absent():
    config = _config()
    transport = httpx.MockTransport(lambda request: httpx.Response(302))
    with use_mock_http_client(transport, default_config=config):
        assert net.open_uri("https://p2.example.org/site/artifacts.xml", config=config) is None


def test_redirect_loop_stops_after_max_redirects(caplog):
    calls: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(301, headers={"Location": str(request.url)})

    config = _config(max_redirects=3)
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        with caplog.at_level(logging.WARNING, logger="P2Layout.LayoutResolver.net"):
            assert net.open_uri("https://p2.example.org/loop", config=config) is None
    assert len(calls) == 4
    assert any("exceeded 3 hops" in record.getMessage() for record in caplog.records)


def test_transport_failure_raises_transfer_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    config = _config()
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        with pytest.raises(TransferError) as excinfo:
            net.open_uri("https://p2.example.org/site/artifacts.xml", config=config)
    assert excinfo.value.uri == "https://p2.example.org/site/artifacts.xml"


def test_file_scheme_reads_and_reports_absence(tmp_path: Path):
    target = tmp_path / "artifacts.xml"
    target.write_bytes(b"local")
    assert _read(target.as_uri(), _config()) == b"local"
    assert net.open_uri((tmp_path / "missing.xml").as_uri()) is None
    assert net.open_uri(tmp_path.as_uri()) is None


def test_jar_scheme_reads_entries(tmp_path: Path):
    archive = tmp_path / "bundle.jar"
    with zipfile.ZipFile(archive, "w") as jar:
        jar.writestr("docs/html.txt", b"inner")
    assert _read(f"jar:{archive.as_uri()}!/docs/html.txt", _config()) == b"inner"
    assert net.open_uri(f"jar:{archive.as_uri()}!/docs/missing.txt") is None
    assert net.open_uri(f"jar:{(tmp_path / 'nope.jar').as_uri()}!/x") is None


def test_unsupported_scheme_raises():
    with pytest.raises(TransferError):
        net.open_uri("ftp://p2.example.org/site/artifacts.xml")


def test_download_to_path_streams_and_reports_absence(tmp_path: Path):
    payload = b"x" * 200_000

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("present.jar"):
            return httpx.Response(200, content=payload)
        return httpx.Response(404)

    config = _config()
    with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
        destination = tmp_path / "out" / "present.jar"
        assert net.download_to_path("https://p2.example.org/present.jar", destination, config=config)
        assert destination.read_bytes() == payload

        missing = tmp_path / "out" / "missing.jar"
        assert not net.download_to_path("https://p2.example.org/missing.jar", missing, config=config)
        assert not missing.exists()


def test_get_http_client_builds_cached_singleton(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(net, "HTTP_CACHE_DIR", tmp_path / "cache")
    net.reset_http_client()
    try:
        client_a = net.get_http_client(HttpConfiguration())
        client_b = net.get_http_client()
        assert client_a is client_b
        assert isinstance(client_a._transport, CacheTransport)
        assert client_a.follow_redirects is False
        assert client_a.headers["User-Agent"].startswith("p2layout/")
    finally:
        net.reset_http_client()


def test_configure_http_client_rejects_client_and_factory():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    try:
        with pytest.raises(ValueError):
            net.configure_http_client(client=client, factory=lambda: client)
    finally:
        client.close()
