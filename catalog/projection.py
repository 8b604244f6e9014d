"""
Catalog - Read/Projection Engine.

============================================================
RESPONSIBILITY
============================================================
Reads products, references and attribute maps back out of
the catalog layout.

- Product reads return the identity row only; references
  and attributes are requested separately
- Lists are ordered newest first (ProductId descending)
- Attribute maps are rebuilt from {type}_metadata and every
  {attr}_XREF table of the type

============================================================
PARTIAL PROJECTION
============================================================
A missing metadata table, a missing column or a missing
XREF table does not fail the read. The affected attributes
are listed in ProjectedMetadata.omissions and logged at
WARNING. An attribute with no stored value is simply absent
and is not an omission.

============================================================
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Set

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from core.clock import from_iso8601
from core.exceptions import ProductNotFoundError
from database.engine import connection_scope

from .classifier import decode_value
from .models import (
    Product,
    ProductStructure,
    ProductType,
    ProjectedMetadata,
    Reference,
    TransferStatus,
    coerce_enum,
)
from .schema import PRODUCTS_TABLE, PRODUCT_COLUMNS, ProjectedAttribute, ProjectedSchema, SchemaProjector


logger = logging.getLogger(__name__)


_PRODUCT_SELECT = f"SELECT {', '.join(PRODUCT_COLUMNS)} FROM {PRODUCTS_TABLE}"


def _parse_received_time(raw) -> Optional[datetime]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw if raw.tzinfo is not None else raw.replace(tzinfo=timezone.utc)
    return from_iso8601(str(raw))


def row_to_product(row: Row) -> Product:
    """Build a Product from a row selected in PRODUCT_COLUMNS order."""
    product_id, name, structure, type_name, status, received = tuple(row)
    return Product(
        product_id=int(product_id),
        product_name=name,
        product_structure=coerce_enum(ProductStructure, structure),
        product_type=ProductType(name=type_name),
        transfer_status=coerce_enum(TransferStatus, status),
        received_time=_parse_received_time(received),
    )


class ReadEngine:
    """Product, reference and attribute reads. One connection per call."""

    def __init__(self, engine: Engine, projector: SchemaProjector) -> None:
        self._engine = engine
        self._projector = projector

    def _execute(self, conn: Connection, operation: str, sql: str, params: Optional[dict] = None):
        logger.debug(f"{operation} Executing: {sql}")
        return conn.execute(text(sql), params or {})

    # --------------------------------------------------------
    # PRODUCTS
    # --------------------------------------------------------

    def fetch_product(self, conn: Connection, product_id: int, operation: str = "get_product_by_id") -> Product:
        """
        By-id read on an already open connection.

        Raises:
            ProductNotFoundError: If no identity row has this id
        """
        row = self._execute(
            conn, operation, f"{_PRODUCT_SELECT} WHERE ProductId = :pid", {"pid": product_id}
        ).first()
        if row is None:
            raise ProductNotFoundError("id", product_id, operation)
        return row_to_product(row)

    def get_product_by_id(self, product_id: int) -> Product:
        operation = "get_product_by_id"
        with connection_scope(self._engine, operation, product_id) as conn:
            return self.fetch_product(conn, product_id, operation)

    def get_product_by_name(self, product_name: str) -> Product:
        """Newest product carrying the name."""
        operation = "get_product_by_name"
        with connection_scope(self._engine, operation) as conn:
            row = self._execute(
                conn, operation,
                f"{_PRODUCT_SELECT} WHERE ProductName = :name ORDER BY ProductId DESC",
                {"name": product_name},
            ).first()
        if row is None:
            raise ProductNotFoundError("name", product_name, operation)
        return row_to_product(row)

    def _list(self, operation: str, where: str = "", params: Optional[dict] = None, limit: Optional[int] = None) -> List[Product]:
        sql = f"{_PRODUCT_SELECT}{where} ORDER BY ProductId DESC"
        params = dict(params or {})
        if limit is not None:
            sql += " LIMIT :limit"
            params["limit"] = limit
        with connection_scope(self._engine, operation) as conn:
            rows = self._execute(conn, operation, sql, params).fetchall()
        products = [row_to_product(r) for r in rows]
        if not products:
            logger.debug(f"{operation}: no products")
        return products

    def get_products(self) -> List[Product]:
        return self._list("get_products")

    def get_products_by_type(self, product_type: ProductType) -> List[Product]:
        return self._list(
            "get_products_by_product_type", " WHERE ProductType = :type", {"type": product_type.name}
        )

    def get_top_n_products(self, n: int, product_type: Optional[ProductType] = None) -> List[Product]:
        """The n newest products, optionally of one type."""
        if n <= 0:
            return []
        if product_type is None:
            return self._list("get_top_n_products", limit=n)
        return self._list(
            "get_top_n_products", " WHERE ProductType = :type", {"type": product_type.name}, limit=n
        )

    def get_num_products(self, product_type: ProductType) -> int:
        operation = "get_num_products"
        with connection_scope(self._engine, operation) as conn:
            count = self._execute(
                conn, operation,
                f"SELECT COUNT(ProductId) AS num_products FROM {PRODUCTS_TABLE} WHERE ProductType = :type",
                {"type": product_type.name},
            ).scalar()
        return int(count or 0)

    # --------------------------------------------------------
    # REFERENCES
    # --------------------------------------------------------

    def get_product_references(self, product: Product) -> List[Reference]:
        """Stored reference rows of a product. NULL columns stay None."""
        operation = "get_product_references"
        schema = self._projector.project(product.product_type, operation)
        with connection_scope(self._engine, operation, product.product_id) as conn:
            rows = self._execute(
                conn, operation,
                "SELECT OriginalReference, DataStoreReference, FileSize, MimeType "
                f"FROM {schema.reference_table} WHERE ProductId = :pid",
                {"pid": product.product_id},
            ).fetchall()
        return [
            Reference(
                original_reference=original,
                data_store_reference=stored,
                file_size=int(size) if size is not None else None,
                mime_type=mime,
            )
            for original, stored, size, mime in rows
        ]

    # --------------------------------------------------------
    # METADATA
    # --------------------------------------------------------

    def get_metadata(self, product: Product) -> ProjectedMetadata:
        """Every attribute of the product's type."""
        operation = "get_metadata"
        schema = self._projector.project(product.product_type, operation)
        with connection_scope(self._engine, operation, product.product_id) as conn:
            return self.read_metadata(conn, schema, product.product_id, operation)

    def get_reduced_metadata(self, product: Product, element_names: Iterable[str]) -> ProjectedMetadata:
        """
        Only the named attributes. Names outside the type's schema are ignored.

        A single name may be passed as a plain string.
        """
        operation = "get_reduced_metadata"
        wanted = [element_names] if isinstance(element_names, str) else list(element_names)
        schema = self._projector.project(product.product_type, operation)
        unknown = set(wanted) - set(schema.names)
        if unknown:
            logger.debug(f"{operation}: not attributes of {schema.type_name}: {sorted(unknown)}")
        with connection_scope(self._engine, operation, product.product_id) as conn:
            return self.read_metadata(conn, schema.restrict(wanted), product.product_id, operation)

    def read_metadata(
        self,
        conn: Connection,
        schema: ProjectedSchema,
        product_id: int,
        operation: str = "get_metadata",
    ) -> ProjectedMetadata:
        """Rebuild the attribute map of one product on an open connection."""
        result = ProjectedMetadata()
        if schema.scalar_attributes:
            self._read_scalars(conn, schema, product_id, result, operation)

        for attr in schema.vector_attributes:
            try:
                rows = self._execute(
                    conn, operation,
                    f"SELECT {attr.name} FROM {attr.xref_table} WHERE ProductId = :pid",
                    {"pid": product_id},
                ).fetchall()
            except SQLAlchemyError as e:
                conn.rollback()
                self._omit(result, attr.name, f"cannot read {attr.xref_table}: {e.__class__.__name__}", product_id, operation)
                continue
            result.replace(attr.name, [decode_value(r[0], attr.domain_type) for r in rows])

        return result

    def _read_scalars(
        self,
        conn: Connection,
        schema: ProjectedSchema,
        product_id: int,
        result: ProjectedMetadata,
        operation: str,
    ) -> None:
        attributes: Sequence[ProjectedAttribute] = schema.scalar_attributes
        table = schema.metadata_table
        try:
            row = self._select_scalars(conn, table, attributes, product_id, operation)
        except SQLAlchemyError:
            conn.rollback()
            available = self._available_columns(conn, table)
            readable = []
            for attr in attributes:
                if available is None:
                    self._omit(result, attr.name, f"table {table} is missing", product_id, operation)
                elif attr.name.lower() not in available:
                    self._omit(result, attr.name, f"column {table}.{attr.name} is missing", product_id, operation)
                else:
                    readable.append(attr)
            if not readable:
                return
            attributes = readable
            row = self._select_scalars(conn, table, attributes, product_id, operation)

        if row is None:
            logger.debug(f"{operation} [product_id={product_id}]: no {table} row")
            return

        for attr, raw in zip(attributes, row):
            if raw is None:
                logger.debug(f"{operation} [product_id={product_id}]: {attr.name} has no value")
                continue
            result.replace(attr.name, decode_value(raw, attr.domain_type))

    def _select_scalars(
        self,
        conn: Connection,
        table: str,
        attributes: Sequence[ProjectedAttribute],
        product_id: int,
        operation: str,
    ) -> Optional[Row]:
        columns = ", ".join(a.name for a in attributes)
        return self._execute(
            conn, operation,
            f"SELECT {columns} FROM {table} WHERE ProductId = :pid",
            {"pid": product_id},
        ).first()

    @staticmethod
    def _available_columns(conn: Connection, table: str) -> Optional[Set[str]]:
        """Lower-cased column names of a table, None when the table is missing."""
        inspector = inspect(conn)
        for name in inspector.get_table_names():
            if name.lower() == table.lower():
                return {c["name"].lower() for c in inspector.get_columns(name)}
        return None

    @staticmethod
    def _omit(result: ProjectedMetadata, name: str, reason: str, product_id: int, operation: str) -> None:
        result.omit(name, reason)
        logger.warning(f"{operation} [product_id={product_id}]: omitted {name}: {reason}")


__all__ = [
    "ReadEngine",
    "row_to_product",
]
