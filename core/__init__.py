"""
Core Framework for the Returns Insights API.

This module provides the base classes shared by the use cases.
The layered architecture keeps business rules testable:

1. Domain Layer - Pure business rules, no I/O
2. Data Layer - Repositories and units of work for data access
3. Errors - API errors rendered by the FastAPI app

Each use case follows this pattern for consistency and reusability.
"""

from .domain import DomainService, Validator, ValidationError
from .data import QueryOptions, SqlAlchemyUnitOfWork, UnitOfWork
from .errors import ApiError, ForbiddenError, InvalidRequestError, NotFoundError, UnauthorizedError

__all__ = [
    # Domain
    "DomainService",
    "Validator",
    "ValidationError",
    # Data
    "QueryOptions",
    "UnitOfWork",
    "SqlAlchemyUnitOfWork",
    # Errors
    "ApiError",
    "ForbiddenError",
    "InvalidRequestError",
    "NotFoundError",
    "UnauthorizedError",
]
