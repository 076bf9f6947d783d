"""Shared fixtures for layout_resolver test suite."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import pytest

from P2Layout.LayoutResolver import net, settings
from P2Layout.LayoutResolver.repository import RepositoryRegistry
from P2Layout.LayoutResolver.settings import ResolvedConfig
from P2Layout.LayoutResolver.testing import (
    ArtifactSpec,
    bundle_jar_bytes,
    write_artifacts,
)

REPOSITORY_ID = "p2.example"

CORE_HEADERS = {
    "Bundle-ManifestVersion": "2",
    "Bundle-SymbolicName": "org.example.core;singleton:=true",
    "Bundle-Version": "1.0.0",
    "Bundle-Name": "%bundle.name",
    "Bundle-Vendor": "%bundle.vendor",
    "Bundle-Description": "Core runtime of the example product",
    "Bundle-License": "https://www.apache.org/licenses/LICENSE-2.0",
    "Bundle-DocURL": "https://example.org/docs",
    "Bundle-Copyright": "Copyright 2024 Example Corp",
    "Eclipse-SourceReferences": "scm:git:https://example.org/core.git;path=core,scm:git:https://example.org/mirror.git",
    "Require-Bundle": 'org.example.util;bundle-version="[2.0.0,3.0.0)",org.missing.bundle;resolution:=optional',
    "Bundle-ClassPath": ".,lib/helper.jar",
}

CORE_LOCALIZATION = b"bundle.name=Example Core\nbundle.vendor=Example Corp\n"
CORE_LOCALIZATION_DE = b"bundle.name=Beispielkern\n"


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch, tmp_path):
    """Keep environment overrides, the config cache, the shared client and logger setup per test."""

    for name in (
        "P2LAYOUT_TIMEOUT_SEC",
        "P2LAYOUT_MAX_REDIRECTS",
        "P2LAYOUT_CONCURRENT_DOWNLOADS",
        "P2LAYOUT_LOG_LEVEL",
        "P2LAYOUT_SCRATCH_ROOT",
        "P2LAYOUT_LOCALE",
        "P2LAYOUT_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(net, "HTTP_CACHE_DIR", tmp_path / "http-cache")
    settings.invalidate_default_config_cache()
    net.reset_http_client()
    package_logger = logging.getLogger("P2Layout.LayoutResolver")
    saved = (list(package_logger.handlers), package_logger.level, package_logger.propagate)
    yield
    package_logger.handlers[:] = saved[0]
    package_logger.setLevel(saved[1])
    package_logger.propagate = saved[2]
    net.reset_http_client()
    settings.invalidate_default_config_cache()


@pytest.fixture
def registry() -> RepositoryRegistry:
    return RepositoryRegistry()


@pytest.fixture
def config(tmp_path: Path) -> ResolvedConfig:
    resolved = ResolvedConfig()
    resolved.http.cache_enabled = False
    resolved.layout.scratch_root = tmp_path / "scratch"
    resolved.layout.locale = "en_US"
    return resolved


def repository_url(root: Path) -> str:
    return root.as_uri() + "/"


@pytest.fixture
def url_for():
    """Return a helper turning a repository directory into its base URL."""

    return repository_url


@dataclass
class SampleRepository:
    """A plain p2 repository on disk with a handful of bundles."""

    root: Path
    url: str
    core_jar: bytes
    core_sha256: str
    repository_id: str = REPOSITORY_ID

    @property
    def plugins(self) -> Path:
        return self.root / "plugins"


@pytest.fixture
def sample_repository(tmp_path: Path) -> SampleRepository:
    """Repository with ``org.example.core`` 1.0.0/1.9.0/1.10.0 and ``org.example.util``.

    Only ``org.example.core`` 1.0.0 and ``org.example.util`` have jars on
    disk; 1.9.0 is listed without a jar so absent downloads can be tested.
    """

    root = tmp_path / "repo"
    entries: Dict[str, bytes] = {
        "OSGI-INF/l10n/bundle.properties": CORE_LOCALIZATION,
        "OSGI-INF/l10n/bundle_de.properties": CORE_LOCALIZATION_DE,
        "docs/html.txt": b"embedded documentation",
        "readme.txt": b"top-level readme",
        "lib/helper.jar": bundle_jar_bytes({}),
    }
    core_jar = bundle_jar_bytes(CORE_HEADERS, entries)
    core_sha256 = hashlib.sha256(core_jar).hexdigest()
    util_jar = bundle_jar_bytes({"Bundle-SymbolicName": "org.example.util", "Bundle-Version": "2.0.0.v2024"})

    plugins = root / "plugins"
    plugins.mkdir(parents=True)
    (plugins / "org.example.core_1.0.0.jar").write_bytes(core_jar)
    (plugins / "org.example.util_2.0.0.v2024.jar").write_bytes(util_jar)

    write_artifacts(
        root,
        [
            ArtifactSpec(
                "org.example.core",
                "1.0.0",
                properties={
                    "artifact.size": str(len(core_jar)),
                    "download.checksum.sha-256": core_sha256,
                    "download.checksum.md5": hashlib.md5(core_jar).hexdigest(),
                },
            ),
            ArtifactSpec("org.example.core", "1.10.0"),
            ArtifactSpec("org.example.core", "1.9.0"),
            ArtifactSpec("org.example.util", "1.5.0"),
            ArtifactSpec("org.example.util", "2.0.0.v2024"),
            ArtifactSpec("org.example.packed", "1.0.0", processing=True),
            ArtifactSpec("org.example.feature", "1.0.0", classifier="org.eclipse.update.feature"),
        ],
    )
    return SampleRepository(root=root, url=repository_url(root), core_jar=core_jar, core_sha256=core_sha256)
