# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver.cli",
#   "purpose": "Typer CLI exposing p2 repositories through their Maven view",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "bundles", "name": "bundles", "anchor": "function-bundles", "kind": "function"},
#     {"id": "versions", "name": "versions", "anchor": "function-versions", "kind": "function"},
#     {"id": "pom", "name": "pom", "anchor": "function-pom", "kind": "function"},
#     {"id": "get", "name": "get", "anchor": "function-get", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line front end for the p2 layout resolver.

Every command takes a repository as its first argument: either the id of a
repository declared in the ``--config`` YAML file, or a p2 base URL.

Example:
    $ p2layout bundles https://download.eclipse.org/releases/latest/
    $ p2layout pom https://example.org/p2/ p2.example:org.example.core:1.0.0
    $ p2layout get https://example.org/p2/ p2.example:org.example.core:1.0.0 -o core.jar
"""

from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console

from .connector import ArtifactDownload
from .errors import ConfigurationError, LayoutResolverError, UserConfigError
from .factory import P2_CONTENT_TYPE, new_connector, new_layout, remote_repository
from .logging_utils import setup_logging
from .model import ArtifactCoordinate, MetadataCoordinate, RemoteRepository
from .net import configure_http_client, file_uri_to_path
from .repository import RepositoryRegistry
from .settings import ResolvedConfig, get_default_config, load_config

__all__ = ["CliContext", "app", "get_context"]

DEFAULT_GROUP_ID = "p2"

_console = Console(stderr=True)

app = typer.Typer(
    name="p2layout",
    help="Browse p2 update sites as Maven repositories",
    no_args_is_help=True,
)


class CliContext:
    """Per-invocation state shared by commands: configuration and registry."""

    def __init__(self, config: ResolvedConfig) -> None:
        self.config = config
        self.registry = RepositoryRegistry(config.http)
        self.console = _console

    def repository(self, target: str, group_id: Optional[str] = None) -> RemoteRepository:
        """Return the declared repository named ``target`` or a p2 repository at URL ``target``."""

        declaration = self.config.repository(target)
        if declaration is not None:
            return remote_repository(declaration)
        return RemoteRepository(group_id or DEFAULT_GROUP_ID, target, P2_CONTENT_TYPE)

    def fail(self, message: str) -> typer.Exit:
        self.console.print(f"[red]Error: {message}[/red]")
        return typer.Exit(1)


_context: Optional[CliContext] = None


def get_context() -> CliContext:
    """Return the context of the running invocation.

    Raises:
        RuntimeError: If the callback has not initialised it.
    """

    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="P2LAYOUT_CONFIG",
        help="Path to a YAML configuration file",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    ),
) -> None:
    """Expose p2 update sites through a Maven repository view."""

    global _context  # noqa: PLW0603

    try:
        resolved = load_config(config) if config is not None else get_default_config(copy=True)
        if log_level is not None:
            resolved.logging.level = log_level
    except (UserConfigError, ValueError) as exc:
        _console.print(f"[red]Error loading configuration: {exc}[/red]")
        raise typer.Exit(2) from exc

    setup_logging(
        level=resolved.logging.level,
        json_logs=resolved.logging.json_logs,
        retention_days=resolved.logging.retention_days,
        max_log_size_mb=resolved.logging.max_log_size_mb,
    )
    configure_http_client(default_config=resolved.http)
    _context = CliContext(resolved)


def _parse_coordinate(ctx: CliContext, text: str) -> ArtifactCoordinate:
    try:
        return ArtifactCoordinate.parse(text)
    except ValueError as exc:
        raise ctx.fail(str(exc)) from exc


def _read_located(location: Optional[str]) -> Optional[Tuple[Path, bytes]]:
    if location is None or not location.startswith("file:"):
        return None
    path = file_uri_to_path(location)
    if not path.is_file():
        return None
    return path, path.read_bytes()


@app.command()
def bundles(
    repository: str = typer.Argument(..., help="Repository id from --config or p2 base URL"),
) -> None:
    """List every bundle of the repository as ``id:version``."""

    ctx = get_context()
    remote = ctx.repository(repository)
    try:
        index = ctx.registry.resolve(remote.url)
        entries = index.list_bundles()
    except ConfigurationError as exc:
        raise ctx.fail(str(exc)) from exc
    except LayoutResolverError as exc:
        raise ctx.fail(f"Cannot read {remote.url}: {exc}") from exc
    for entry in entries:
        typer.echo(f"{entry.id}:{entry.version}")


@app.command()
def versions(
    repository: str = typer.Argument(..., help="Repository id from --config or p2 base URL"),
    artifact_id: str = typer.Argument(..., help="Bundle symbolic name"),
    group_id: Optional[str] = typer.Option(
        None, "--group", "-g", help="Maven group id to publish under (default: repository id or 'p2')"
    ),
) -> None:
    """Print the synthesized maven-metadata.xml of one bundle."""

    ctx = get_context()
    remote = ctx.repository(repository, group_id)
    try:
        with new_layout(remote, registry=ctx.registry, config=ctx.config) as layout:
            located = _read_located(
                layout.locate_metadata(MetadataCoordinate(remote.id, artifact_id))
            )
    except LayoutResolverError as exc:
        raise ctx.fail(str(exc)) from exc
    if located is None:
        raise ctx.fail(f"No versions of {artifact_id} in {remote.url}")
    typer.echo(located[1].decode("utf-8"), nl=False)


@app.command()
def pom(
    repository: str = typer.Argument(..., help="Repository id from --config or p2 base URL"),
    coordinate: str = typer.Argument(..., help="GROUP:ARTIFACT:VERSION"),
) -> None:
    """Print the synthesized POM of one bundle."""

    ctx = get_context()
    parsed = _parse_coordinate(ctx, coordinate)
    remote = ctx.repository(repository, parsed.group_id)
    request = ArtifactCoordinate(parsed.group_id, parsed.artifact_id, parsed.version, extension="pom")
    try:
        with new_layout(remote, registry=ctx.registry, config=ctx.config) as layout:
            located = _read_located(layout.locate_artifact(request))
    except LayoutResolverError as exc:
        raise ctx.fail(str(exc)) from exc
    if located is None:
        raise ctx.fail(f"No bundle {parsed.artifact_id} {parsed.version} in {remote.url}")
    typer.echo(located[1].decode("utf-8"), nl=False)


@app.command()
def get(
    repository: str = typer.Argument(..., help="Repository id from --config or p2 base URL"),
    coordinate: str = typer.Argument(..., help="GROUP:ARTIFACT:VERSION[:EXTENSION[:CLASSIFIER]]"),
    output: Path = typer.Option(..., "--output", "-o", help="Destination file"),
) -> None:
    """Download one artifact, verifying declared checksums."""

    ctx = get_context()
    parsed = _parse_coordinate(ctx, coordinate)
    remote = ctx.repository(repository, parsed.group_id)
    download = ArtifactDownload(parsed, output)
    try:
        with new_connector(remote, registry=ctx.registry, config=ctx.config) as connector:
            connector.get([download])
    except LayoutResolverError as exc:
        raise ctx.fail(str(exc)) from exc
    if download.exception is not None:
        raise ctx.fail(str(download.exception))
    typer.echo(str(output))


if __name__ == "__main__":  # pragma: no cover
    app()
