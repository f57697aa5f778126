"""
Shared modules for the Returns Insights application.

This package contains shared database setup used across the application.
"""

from shared.database import (
    Base,
    create_db_engine,
    create_session_factory,
    init_schema,
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_schema",
]
