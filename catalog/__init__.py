"""
Catalog Package.

============================================================
COLUMN-BASED PRODUCT CATALOG
============================================================

Persists data products, their type-specific attributes and
their stored references in a relational backend.

Components (leaves first):
- classifier: attribute domain types, temporal codec
- schema: product type -> tables and columns
- mutation: transactional writes
- projection: product, reference and attribute reads
- query_engine: filtered product-id queries
- pagination: paged queries and navigation
- store: ColumnBasedCatalog, the public surface

============================================================
"""

from .models import (
    TransferStatus,
    ProductStructure,
    AttributeDefinition,
    ProductType,
    Reference,
    Product,
    Metadata,
    AttributeOmission,
    ProjectedMetadata,
    ProductPage,
)

from .classifier import DomainType
from .registry import SchemaRegistry, ProductTypeRegistry, InMemoryRegistry
from .schema import ProjectedAttribute, ProjectedSchema, SchemaProjector
from .criteria import (
    BooleanOperator,
    TermCriteria,
    RangeCriteria,
    BooleanCriteria,
    Query,
    Predicate,
    PredicateTranslator,
    SqlPredicateTranslator,
)
from .config import CatalogConfig, get_config, set_config
from .store import ColumnBasedCatalog


__version__ = "1.0.0"


__all__ = [
    "__version__",

    # Models
    "TransferStatus",
    "ProductStructure",
    "AttributeDefinition",
    "ProductType",
    "Reference",
    "Product",
    "Metadata",
    "AttributeOmission",
    "ProjectedMetadata",
    "ProductPage",
    "DomainType",

    # Registries and schema
    "SchemaRegistry",
    "ProductTypeRegistry",
    "InMemoryRegistry",
    "ProjectedAttribute",
    "ProjectedSchema",
    "SchemaProjector",

    # Criteria
    "BooleanOperator",
    "TermCriteria",
    "RangeCriteria",
    "BooleanCriteria",
    "Query",
    "Predicate",
    "PredicateTranslator",
    "SqlPredicateTranslator",

    # Store
    "CatalogConfig",
    "get_config",
    "set_config",
    "ColumnBasedCatalog",
]
