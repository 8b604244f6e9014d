"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the product catalog.

Every backend, registry or translation failure reaching a
caller is one of these, carrying the operation name and
the affected product id.

============================================================
EXCEPTION HIERARCHY
============================================================
CatalogException (base)
├── ProductNotFoundError
├── CatalogSchemaError
│   ├── UnknownProductTypeError
│   └── InvalidIdentifierError
├── CriteriaTranslationError
├── CatalogTransactionError
├── CatalogValidationError
├── CatalogConfigurationError
├── DatabaseConnectionError
└── DatabaseInitializationError

============================================================
"""

from typing import Any, Optional


class CatalogException(Exception):
    """
    Base exception for all catalog operations.

    Callers can catch this for generic error handling.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        product_id: Optional[Any] = None,
        details: Optional[dict] = None
    ) -> None:
        self.message = message
        self.operation = operation
        self.product_id = product_id
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.product_id is not None:
            return f"{self.operation} [product_id={self.product_id}]: {self.message}"
        return f"{self.operation}: {self.message}"


class ProductNotFoundError(CatalogException):
    """Raised when a by-id or by-name read matches zero rows."""

    def __init__(self, lookup_field: str, value: Any, operation: str = "get_product") -> None:
        super().__init__(
            message=f"No product with {lookup_field}={value!r}",
            operation=operation,
            product_id=value if lookup_field == "id" else None,
            details={lookup_field: str(value)}
        )
        self.lookup_field = lookup_field
        self.value = value


class CatalogSchemaError(CatalogException):
    """Raised when the schema registry cannot describe a product type."""


class UnknownProductTypeError(CatalogSchemaError):
    """Raised when a product type is not known to the registry."""

    def __init__(self, type_name: str, operation: str = "get_attributes") -> None:
        super().__init__(
            message=f"Unknown product type '{type_name}'",
            operation=operation,
            details={"product_type": type_name}
        )
        self.type_name = type_name


class InvalidIdentifierError(CatalogSchemaError):
    """
    Raised when a table or column name fails validation.

    Identifiers are interpolated into SQL text, so anything that is
    not a plain identifier known to the registry is rejected here.
    """

    def __init__(self, identifier: str, reason: str, operation: str = "validate_identifier") -> None:
        super().__init__(
            message=f"Invalid identifier {identifier!r}: {reason}",
            operation=operation,
            details={"identifier": identifier, "reason": reason}
        )
        self.identifier = identifier
        self.reason = reason


class CriteriaTranslationError(CatalogException):
    """Raised when a filter expression cannot be lowered to a predicate."""

    def __init__(self, message: str, operation: str = "lower_criteria") -> None:
        super().__init__(message=message, operation=operation)


class CatalogTransactionError(CatalogException):
    """
    Raised when a multi-statement mutation fails.

    The transaction has been rolled back (or the rollback was
    attempted and failed, which is logged, not raised).
    """

    def __init__(
        self,
        operation: str,
        product_id: Optional[Any],
        cause: BaseException
    ) -> None:
        super().__init__(
            message=f"Transaction failed: {cause}",
            operation=operation,
            product_id=product_id,
            details={"cause_type": type(cause).__name__, "cause_message": str(cause)}
        )
        self.cause = cause


class CatalogValidationError(CatalogException):
    """Raised when an attribute value cannot be encoded for its domain type."""

    def __init__(self, element: str, value: Any, reason: str, operation: str = "encode_value") -> None:
        super().__init__(
            message=f"Invalid value {value!r} for {element}: {reason}",
            operation=operation,
            details={"element": element, "value": str(value)[:100], "reason": reason}
        )
        self.element = element
        self.value = value
        self.reason = reason


class CatalogConfigurationError(CatalogException):
    """Raised when catalog configuration is missing or invalid."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            operation="configure",
            details={"config_key": key, "reason": reason}
        )
        self.key = key
        self.reason = reason


class DatabaseConnectionError(CatalogException):
    """Raised when the backend cannot be reached."""

    def __init__(self, message: str, operation: str = "connect") -> None:
        super().__init__(message=message, operation=operation)


class DatabaseInitializationError(CatalogException):
    """Raised when provisioning the catalog layout fails."""

    def __init__(self, message: str, operation: str = "provision") -> None:
        super().__init__(message=message, operation=operation)
