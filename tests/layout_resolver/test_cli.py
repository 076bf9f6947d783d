"""CLI tests driving the Typer application through ``typer.testing.CliRunner``."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest
import yaml
from typer.testing import CliRunner

from P2Layout.LayoutResolver import cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cli_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("P2LAYOUT_LOCALE", "en_US")
    monkeypatch.setenv("P2LAYOUT_SCRATCH_ROOT", str(tmp_path / "cli-scratch"))
    monkeypatch.setattr(cli, "_context", None)


def _invoke(*args: str):
    return runner.invoke(cli.app, list(args))


def test_bundles_lists_installable_bundles(sample_repository):
    result = _invoke("bundles", sample_repository.url)
    assert result.exit_code == 0, result.output
    lines = [line for line in result.stdout.splitlines() if line.startswith("org.example.")]
    assert lines == [
        "org.example.core:1.0.0",
        "org.example.core:1.10.0",
        "org.example.core:1.9.0",
        "org.example.util:1.5.0",
        "org.example.util:2.0.0.v2024",
    ]


def test_declared_repository_is_looked_up_by_id(sample_repository, tmp_path):
    config_path = tmp_path / "p2layout.yaml"
    config_path.write_text(
        yaml.safe_dump({"repositories": [{"id": "p2.example", "url": sample_repository.url}]}),
        encoding="utf-8",
    )
    result = _invoke("--config", str(config_path), "versions", "p2.example", "org.example.util")
    assert result.exit_code == 0, result.output
    metadata = ET.fromstring(result.stdout[result.stdout.index("<?xml") :].encode("utf-8"))
    assert metadata.findtext("groupId") == "p2.example"
    assert metadata.findtext("versioning/latest") == "2.0.0.v2024"


def test_versions_of_url_default_to_p2_group(sample_repository):
    result = _invoke("versions", sample_repository.url, "org.example.core")
    assert result.exit_code == 0, result.output
    assert "<groupId>p2</groupId>" in result.stdout
    assert "<latest>1.10.0</latest>" in result.stdout


def test_versions_of_unknown_bundle_fails(sample_repository):
    result = _invoke("versions", sample_repository.url, "org.unknown")
    assert result.exit_code == 1


def test_pom_prints_synthesized_descriptor(sample_repository):
    result = _invoke("pom", sample_repository.url, "p2.example:org.example.core:1.0.0")
    assert result.exit_code == 0, result.output
    assert "<artifactId>org.example.util</artifactId>" in result.stdout
    assert "<name>Example Core</name>" in result.stdout
    assert "<classifier>lib$helper</classifier>" in result.stdout


def test_pom_of_unknown_bundle_fails(sample_repository):
    result = _invoke("pom", sample_repository.url, "p2.example:org.unknown:1.0.0")
    assert result.exit_code == 1


def test_invalid_coordinate_fails(sample_repository):
    result = _invoke("pom", sample_repository.url, "not-a-coordinate")
    assert result.exit_code == 1


def test_get_downloads_and_verifies(sample_repository, tmp_path):
    output = tmp_path / "downloads" / "core.jar"
    result = _invoke("get", sample_repository.url, "p2.example:org.example.core:1.0.0", "-o", str(output))
    assert result.exit_code == 0, result.output
    assert str(output) in result.stdout
    assert output.read_bytes() == sample_repository.core_jar
    assert (tmp_path / "downloads" / "core.jar.sha256").exists()


def test_get_of_missing_jar_fails(sample_repository, tmp_path):
    output = tmp_path / "missing.jar"
    result = _invoke("get", sample_repository.url, "p2.example:org.example.core:1.9.0", "-o", str(output))
    assert result.exit_code == 1
    assert not output.exists()


def test_unresolved_url_is_reported(tmp_path):
    result = _invoke("bundles", "${p2.url}")
    assert result.exit_code == 1


def test_invalid_configuration_exits_with_code_2(tmp_path):
    config_path = tmp_path / "bad.yaml"
    config_path.write_text("unexpected: true\n", encoding="utf-8")
    result = _invoke("--config", str(config_path), "bundles", "https://p2.example.org/")
    assert result.exit_code == 2


def test_get_context_requires_callback():
    with pytest.raises(RuntimeError):
        cli.get_context()
