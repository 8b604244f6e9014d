"""
Core Module Package.

Shared infrastructure the catalog packages depend on.

Components:
- clock: Time abstraction used to stamp product received times
- exceptions: Catalog exception hierarchy
"""

from .clock import (
    ClockProtocol,
    SystemClock,
    MockClock,
    ClockFactory,
)

from .exceptions import (
    CatalogException,
    ProductNotFoundError,
    CatalogSchemaError,
    UnknownProductTypeError,
    InvalidIdentifierError,
    CriteriaTranslationError,
    CatalogTransactionError,
    CatalogValidationError,
    CatalogConfigurationError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)

__all__ = [
    # Clock
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",

    # Exceptions
    "CatalogException",
    "ProductNotFoundError",
    "CatalogSchemaError",
    "UnknownProductTypeError",
    "InvalidIdentifierError",
    "CriteriaTranslationError",
    "CatalogTransactionError",
    "CatalogValidationError",
    "CatalogConfigurationError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
