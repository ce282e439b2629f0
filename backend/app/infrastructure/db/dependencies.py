"""
Dependency Injection Providers for Crudo

Provides FastAPI dependencies for database sessions and repositories.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.database import get_session
from app.infrastructure.db.unit_of_work import (
    Repositories,
    RepositoriesScope,
    repositories_scope,
)


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_repositories(session: SessionDep) -> Repositories:
    """
    Dependency provider for the request-scoped repository bundle.

    Usage:
        @router.get("/details")
        async def details(repos: RepositoriesDep):
            ...
    """
    return Repositories.from_session(session)


def get_repositories_scope() -> RepositoriesScope:
    """Factory for per-message units of work used by webhook handlers."""
    return repositories_scope


# Type aliases for repository dependencies
RepositoriesDep = Annotated[Repositories, Depends(get_repositories)]
RepositoriesScopeDep = Annotated[RepositoriesScope, Depends(get_repositories_scope)]
