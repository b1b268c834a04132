"""Repository pattern implementation for data access."""

from .base_repository import (
    BaseRepository,
    UnitOfWork,
    RepositoryError,
    DataValidationError,
    DataNotFoundError,
    ConcurrencyConflictError,
)
from .memory_repository import InMemoryRepository

__all__ = [
    # Base repository interface
    'BaseRepository',
    'UnitOfWork',
    'RepositoryError',
    'DataValidationError',
    'DataNotFoundError',
    'ConcurrencyConflictError',

    # Concrete implementations
    'InMemoryRepository',
]
