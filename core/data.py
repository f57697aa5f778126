"""
Data Layer Base Classes.

The data layer provides repositories for data access.
This abstracts away the specific data store (PostgreSQL, SQLite, etc.)
and provides a clean interface for the services.

Key principles:
- Repositories handle reads and writes only
- No business logic in repositories
- Multi-row writes that belong together go through a UnitOfWork
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass
class QueryOptions:
    """Column filters for repository list queries."""
    filters: Dict[str, Any] = field(default_factory=dict)

    def active_filters(self) -> Dict[str, Any]:
        """Filters with a usable value (None and empty strings are ignored)."""
        return {
            key: value
            for key, value in self.filters.items()
            if value is not None and value != ""
        }


# =============================================================================
# UNIT OF WORK PATTERN (for transactional operations)
# =============================================================================

class UnitOfWork(ABC):
    """
    Abstract base class for Unit of Work pattern.

    Provides transactional semantics across multiple repository operations.
    Use when you need to ensure multiple operations succeed or fail together.
    """

    @abstractmethod
    def __enter__(self):
        """Begin the unit of work."""
        pass

    @abstractmethod
    def __exit__(self, exc_type, exc_val, exc_tb):
        """End the unit of work, committing or rolling back."""
        pass

    @abstractmethod
    def commit(self):
        """Commit all changes."""
        pass

    @abstractmethod
    def rollback(self):
        """Rollback all changes."""
        pass


class SqlAlchemyUnitOfWork(UnitOfWork):
    """
    Unit of Work over a SQLAlchemy session.

    Commits when the block exits cleanly, rolls back and re-raises otherwise,
    so a failure part-way through leaves no partial rows behind.

    Example:
        with SqlAlchemyUnitOfWork(session) as uow:
            for item in items:
                uow.session.add(item)
    """

    def __init__(self, session: Session):
        self.session = session

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            logger.warning(f"Rolling back unit of work after {exc_type.__name__}: {exc_val}")
            self.rollback()
        return False

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
