"""
Database Infrastructure Package for Crudo

Exports database utilities, models, and repositories.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session,
    get_session_context,
    init_db,
    close_db,
)

from app.infrastructure.db.dependencies import (
    SessionDep,
    get_repositories,
    get_repositories_scope,
    RepositoriesDep,
    RepositoriesScopeDep,
)
from app.infrastructure.db.unit_of_work import Repositories, repositories_scope


__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "get_session",
    "get_session_context",
    "init_db",
    "close_db",
    # Dependencies
    "SessionDep",
    "get_repositories",
    "get_repositories_scope",
    "RepositoriesDep",
    "RepositoriesScopeDep",
    "Repositories",
    "repositories_scope",
]
