"""Entry points that hand out layouts and connectors for ``p2`` repositories.

A host resolver offers every declared remote repository to these factories;
only repositories whose content type is ``p2`` are accepted, all others are
refused so the host can try its next provider.
"""

from __future__ import annotations

import logging
from typing import Optional

from .connector import RepositoryConnector
from .errors import NoRepositoryConnectorError, NoRepositoryLayoutError
from .layout import RepositoryLayout
from .model import RemoteRepository
from .repository import RepositoryRegistry
from .settings import RepositoryDeclaration, ResolvedConfig

__all__ = ["P2_CONTENT_TYPE", "RemoteRepository", "new_connector", "new_layout", "remote_repository"]

LOGGER = logging.getLogger("P2Layout.LayoutResolver.factory")

P2_CONTENT_TYPE = "p2"


def remote_repository(declaration: RepositoryDeclaration) -> RemoteRepository:
    """Convert a configured repository declaration into a :class:`RemoteRepository`."""

    return RemoteRepository(declaration.id, declaration.url, declaration.content_type)


def new_layout(
    repository: RemoteRepository,
    *,
    registry: Optional[RepositoryRegistry] = None,
    config: Optional[ResolvedConfig] = None,
) -> RepositoryLayout:
    """Return a layout session for ``repository``.

    Raises:
        NoRepositoryLayoutError: If ``repository`` is not a ``p2`` repository.
    """

    if repository.content_type != P2_CONTENT_TYPE:
        raise NoRepositoryLayoutError(f"Repository {repository} is not a p2 repository")
    LOGGER.debug(
        "creating layout",
        extra={"stage": "factory", "repository_id": repository.id, "extra_fields": {"url": repository.url}},
    )
    return RepositoryLayout(repository.id, repository.url, registry=registry, config=config)


def new_connector(
    repository: RemoteRepository,
    *,
    registry: Optional[RepositoryRegistry] = None,
    config: Optional[ResolvedConfig] = None,
) -> RepositoryConnector:
    """Return a transfer connector for ``repository``.

    Raises:
        NoRepositoryConnectorError: If ``repository`` is not a ``p2`` repository.
    """

    if repository.content_type != P2_CONTENT_TYPE:
        raise NoRepositoryConnectorError(f"Repository {repository} is not a p2 repository")
    LOGGER.debug(
        "creating connector",
        extra={"stage": "factory", "repository_id": repository.id, "extra_fields": {"url": repository.url}},
    )
    return RepositoryConnector(repository, registry=registry, config=config)
