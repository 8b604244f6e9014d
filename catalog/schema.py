"""
Catalog - Schema Projector.

============================================================
PURPOSE
============================================================
Maps a product type's attribute schema onto the relational
layout:

    {type}_metadata    one row per product, one column per
                       scalar attribute
    {type}_reference   one row per stored copy
    {type}_VIEW        pre-joined view used by filtered queries
    {attr}_XREF        one row per value of a vector attribute

Every table and column name produced here has been validated
as a plain identifier; these are the only names the engines
interpolate into SQL text. Values are always bound.

The registry is asked again on every projection.

============================================================
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from core.exceptions import InvalidIdentifierError

from .classifier import DomainType, is_vector, resolved_type, temporal_format
from .models import ProductType
from .registry import SchemaRegistry


logger = logging.getLogger(__name__)


IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
MAX_IDENTIFIER_LENGTH = 63

PRODUCT_ID_COLUMN = "ProductId"

PRODUCTS_TABLE = "products"
PRODUCT_COLUMNS = (
    "ProductId",
    "ProductName",
    "ProductStructure",
    "ProductType",
    "ProductTransferStatus",
    "ProductReceivedTime",
)
REFERENCE_COLUMNS = (
    "OriginalReference",
    "DataStoreReference",
    "FileSize",
    "MimeType",
)

# Columns every {type}_VIEW exposes besides the type's own attributes
VIEW_BASE_COLUMNS = PRODUCT_COLUMNS + REFERENCE_COLUMNS

_RESERVED = {c.lower() for c in VIEW_BASE_COLUMNS}


def validate_identifier(
    name: str,
    known: Optional[Iterable[str]] = None,
    operation: str = "validate_identifier",
) -> str:
    """
    Validate a table/column name before it is interpolated into SQL.

    Args:
        name: Identifier to check
        known: Optional set of identifiers the name must belong to
        operation: Operation name for the raised error

    Returns:
        The identifier, unchanged

    Raises:
        InvalidIdentifierError: If the name is not a plain identifier
            or not in the known set
    """
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise InvalidIdentifierError(str(name), "not a plain SQL identifier", operation)
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifierError(name, f"longer than {MAX_IDENTIFIER_LENGTH} characters", operation)
    if known is not None and name not in set(known):
        raise InvalidIdentifierError(name, "not a registered identifier", operation)
    return name


# ============================================================
# PROJECTION TYPES
# ============================================================

@dataclass(frozen=True)
class ProjectedAttribute:
    """One attribute with its storage classification."""

    name: str
    is_vector: bool
    domain_type: DomainType
    temporal_format: Optional[str] = None

    @property
    def xref_table(self) -> str:
        return f"{self.name}_XREF"


@dataclass(frozen=True)
class ProjectedSchema:
    """Relational layout of one product type."""

    product_type: ProductType
    attributes: Tuple[ProjectedAttribute, ...]

    @property
    def type_name(self) -> str:
        return self.product_type.name

    @property
    def metadata_table(self) -> str:
        return f"{self.type_name}_metadata"

    @property
    def reference_table(self) -> str:
        return f"{self.type_name}_reference"

    @property
    def view_name(self) -> str:
        return f"{self.type_name}_VIEW"

    @property
    def scalar_attributes(self) -> List[ProjectedAttribute]:
        return [a for a in self.attributes if not a.is_vector]

    @property
    def vector_attributes(self) -> List[ProjectedAttribute]:
        return [a for a in self.attributes if a.is_vector]

    @property
    def xref_tables(self) -> List[str]:
        return [a.xref_table for a in self.vector_attributes]

    @property
    def names(self) -> List[str]:
        return [a.name for a in self.attributes]

    @property
    def view_columns(self) -> List[str]:
        return list(VIEW_BASE_COLUMNS) + self.names

    def get(self, name: str) -> Optional[ProjectedAttribute]:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    def restrict(self, names: Iterable[str]) -> "ProjectedSchema":
        """Projection limited to the given attribute names, in schema order."""
        wanted = {names} if isinstance(names, str) else set(names)
        return ProjectedSchema(
            product_type=self.product_type,
            attributes=tuple(a for a in self.attributes if a.name in wanted),
        )

    def domain_types(self) -> Dict[str, DomainType]:
        return {a.name: a.domain_type for a in self.attributes}


# ============================================================
# PROJECTOR
# ============================================================

class SchemaProjector:
    """Derives a product type's relational layout from the schema registry."""

    def __init__(self, schema_registry: SchemaRegistry) -> None:
        self._registry = schema_registry

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def project(self, product_type: ProductType, operation: str = "project_schema") -> ProjectedSchema:
        """
        Project a product type onto its tables and columns.

        Raises:
            UnknownProductTypeError: Propagated from the registry
            InvalidIdentifierError: If a type or attribute name is unusable
        """
        validate_identifier(product_type.name, operation=operation)

        projected = []
        seen = set()
        for attr in self._registry.get_attributes(product_type):
            validate_identifier(attr.name, operation=operation)
            if attr.name.lower() in _RESERVED:
                raise InvalidIdentifierError(attr.name, "collides with a catalog column", operation)
            if attr.name in seen:
                logger.warning(f"Duplicate attribute {attr.name} in type {product_type.name}, keeping first")
                continue
            seen.add(attr.name)

            domain_type = resolved_type(attr)
            projected.append(ProjectedAttribute(
                name=attr.name,
                is_vector=is_vector(attr),
                domain_type=domain_type,
                temporal_format=temporal_format(domain_type),
            ))

        return ProjectedSchema(product_type=product_type, attributes=tuple(projected))


__all__ = [
    "IDENTIFIER_PATTERN",
    "PRODUCT_ID_COLUMN",
    "PRODUCTS_TABLE",
    "PRODUCT_COLUMNS",
    "REFERENCE_COLUMNS",
    "VIEW_BASE_COLUMNS",
    "validate_identifier",
    "ProjectedAttribute",
    "ProjectedSchema",
    "SchemaProjector",
]
