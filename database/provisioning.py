"""
Database Provisioning.

============================================================
CATALOG LAYOUT DDL
============================================================

The catalog engines assume their tables already exist.
This module creates and verifies that layout for the
product types a registry knows about:

    products                  identity rows, all types
    {type}_metadata           scalar attributes, 1 row/product
    {type}_reference          stored copies
    {attr}_XREF               vector attribute values
    {type}_VIEW               products LEFT JOIN the above

No foreign keys: attribute and reference rows are not
cascaded by the backend.

============================================================
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from catalog.classifier import DomainType
from catalog.models import ProductType
from catalog.registry import InMemoryRegistry, SchemaRegistry
from catalog.schema import (
    PRODUCTS_TABLE,
    PRODUCT_COLUMNS,
    REFERENCE_COLUMNS,
    ProjectedSchema,
    SchemaProjector,
)
from core.exceptions import DatabaseInitializationError
from database.engine import connection_guard

logger = logging.getLogger(__name__)


# =============================================================
# COLUMN TYPES
# =============================================================

COLUMN_TYPES = {
    DomainType.STRING: "VARCHAR(1024)",
    DomainType.NUMBER: "NUMERIC",
    DomainType.DATE: "DATE",
    DomainType.TIMESTAMP: "TIMESTAMP",
    DomainType.TIMESTAMP_TZ: "TIMESTAMP WITH TIME ZONE",
}


def _identity_column(dialect_name: str) -> str:
    if dialect_name == "postgresql":
        return "ProductId SERIAL PRIMARY KEY"
    return "ProductId INTEGER PRIMARY KEY"


# =============================================================
# DDL GENERATION
# =============================================================


def products_table_ddl(dialect_name: str) -> str:
    """DDL for the shared identity table."""
    return (
        f"CREATE TABLE IF NOT EXISTS {PRODUCTS_TABLE} ("
        f"{_identity_column(dialect_name)}, "
        "ProductName VARCHAR(1024) NOT NULL, "
        "ProductStructure VARCHAR(64), "
        "ProductType VARCHAR(255) NOT NULL, "
        "ProductTransferStatus VARCHAR(64), "
        "ProductReceivedTime TIMESTAMP)"
    )


def type_tables_ddl(schema: ProjectedSchema) -> List[str]:
    """DDL for one product type's metadata, reference and XREF tables."""
    scalar_columns = "".join(
        f", {a.name} {COLUMN_TYPES[a.domain_type]}" for a in schema.scalar_attributes
    )
    statements = [
        f"CREATE TABLE IF NOT EXISTS {schema.metadata_table} ("
        f"ProductId INTEGER NOT NULL PRIMARY KEY{scalar_columns})",
        f"CREATE TABLE IF NOT EXISTS {schema.reference_table} ("
        "ProductId INTEGER NOT NULL, "
        "OriginalReference VARCHAR(2048), "
        "DataStoreReference VARCHAR(2048), "
        "FileSize BIGINT, "
        "MimeType VARCHAR(255))",
    ]
    for attr in schema.vector_attributes:
        statements.append(
            f"CREATE TABLE IF NOT EXISTS {attr.xref_table} ("
            f"ProductId INTEGER NOT NULL, {attr.name} {COLUMN_TYPES[attr.domain_type]})"
        )
    return statements


def view_ddl(schema: ProjectedSchema, dialect_name: str) -> str:
    """
    DDL for the pre-joined {type}_VIEW.

    Vector attributes contribute one row per value, so filtered
    queries must select DISTINCT ProductId.
    """
    columns = [f"p.{c} AS {c}" for c in PRODUCT_COLUMNS]
    columns += [f"r.{c} AS {c}" for c in REFERENCE_COLUMNS]
    columns += [f"m.{a.name} AS {a.name}" for a in schema.scalar_attributes]

    joins = [f"LEFT JOIN {schema.metadata_table} m ON m.ProductId = p.ProductId"]
    for i, attr in enumerate(schema.vector_attributes):
        alias = f"x{i}"
        columns.append(f"{alias}.{attr.name} AS {attr.name}")
        joins.append(f"LEFT JOIN {attr.xref_table} {alias} ON {alias}.ProductId = p.ProductId")
    joins.append(f"LEFT JOIN {schema.reference_table} r ON r.ProductId = p.ProductId")

    create = "CREATE VIEW IF NOT EXISTS" if dialect_name == "sqlite" else "CREATE OR REPLACE VIEW"
    # The type name is a validated identifier, safe to embed as a literal
    return (
        f"{create} {schema.view_name} AS SELECT {', '.join(columns)} "
        f"FROM {PRODUCTS_TABLE} p {' '.join(joins)} "
        f"WHERE p.ProductType = '{schema.type_name}'"
    )


def catalog_ddl(schemas: Iterable[ProjectedSchema], dialect_name: str) -> List[str]:
    """Full DDL for the identity table and every given type."""
    statements = [products_table_ddl(dialect_name)]
    for schema in schemas:
        statements.extend(type_tables_ddl(schema))
        statements.append(view_ddl(schema, dialect_name))
    return statements


# =============================================================
# PROVISIONING
# =============================================================


def _project_all(
    schema_registry: SchemaRegistry,
    product_types: Optional[Iterable[ProductType]],
) -> List[ProjectedSchema]:
    if product_types is None:
        if not isinstance(schema_registry, InMemoryRegistry):
            raise DatabaseInitializationError("product_types is required for this registry")
        product_types = schema_registry.product_types()
    projector = SchemaProjector(schema_registry)
    return [projector.project(t, operation="provision") for t in product_types]


def provision_catalog(
    engine: Engine,
    schema_registry: SchemaRegistry,
    product_types: Optional[Iterable[ProductType]] = None,
) -> List[str]:
    """
    Create the catalog layout for the given product types.

    Idempotent. product_types defaults to every type of an
    InMemoryRegistry.

    Returns:
        Names of the tables and views now present

    Raises:
        DatabaseInitializationError if any statement fails
    """
    schemas = _project_all(schema_registry, product_types)
    statements = catalog_ddl(schemas, engine.dialect.name)

    logger.info("=" * 60)
    logger.info(f"PROVISIONING CATALOG: product_types={len(schemas)}")
    logger.info("=" * 60)

    try:
        with connection_guard(engine), engine.begin() as conn:
            for statement in statements:
                logger.debug(f"provision Executing: {statement}")
                conn.execute(text(statement))
    except SQLAlchemyError as e:
        logger.error(f"Failed to provision catalog: {e}")
        raise DatabaseInitializationError(f"Provisioning failed: {e}") from e

    names = required_tables(schemas)
    logger.info(f"Catalog provisioned: objects={len(names)}")
    return names


def required_tables(schemas: Iterable[ProjectedSchema]) -> List[str]:
    """Every table and view the given types need."""
    names = [PRODUCTS_TABLE]
    for schema in schemas:
        names += [schema.metadata_table, schema.reference_table]
        names += [t for t in schema.xref_tables if t not in names]
        names.append(schema.view_name)
    return names


def verify_catalog_tables(
    engine: Engine,
    schema_registry: SchemaRegistry,
    product_types: Optional[Iterable[ProductType]] = None,
) -> Dict[str, bool]:
    """
    Check that every table and view the given types need exists.

    Returns:
        Dict mapping table/view name to whether it exists
    """
    schemas = _project_all(schema_registry, product_types)
    with connection_guard(engine), engine.connect() as conn:
        inspector = inspect(conn)
        present = {n.lower() for n in inspector.get_table_names()}
        present |= {n.lower() for n in inspector.get_view_names()}

    results = {}
    for name in required_tables(schemas):
        exists = name.lower() in present
        results[name] = exists
        if exists:
            logger.info(f"  [OK] Table verified: {name}")
        else:
            logger.warning(f"  [!!] Table missing: {name}")
    return results


def get_table_row_counts(engine: Engine, tables: Iterable[str]) -> Dict[str, int]:
    """
    Get row counts for the given catalog tables.

    Returns:
        Dict mapping table name to row count (-1 when unreadable)
    """
    counts = {}
    with connection_guard(engine), engine.connect() as conn:
        for table in tables:
            try:
                counts[table] = conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()
            except SQLAlchemyError:
                conn.rollback()
                counts[table] = -1
    return counts


__all__ = [
    "COLUMN_TYPES",
    "products_table_ddl",
    "type_tables_ddl",
    "view_ddl",
    "catalog_ddl",
    "provision_catalog",
    "required_tables",
    "verify_catalog_tables",
    "get_table_row_counts",
]
