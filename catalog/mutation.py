"""
Catalog - Mutation Engine.

============================================================
RESPONSIBILITY
============================================================
Executes every write against the catalog layout. Each
public operation is one transaction:

    acquire connection -> begin -> statements -> commit
    any failure        -> rollback -> CatalogTransactionError

- Identity rows:  products
- Scalar values:  {type}_metadata (1 row per product)
- Vector values:  {attr}_XREF (1 row per value)
- References:     {type}_reference

============================================================
CONCURRENCY
============================================================
Every mutation holds the engine's lock for its whole
transaction. The lock is in-process and advisory only:
two engines (or two processes) on the same backend are
not coordinated, and with the "max_plus_one" id strategy
they can compute the same next ProductId. Multi-process
deployments use the "returning" strategy, which lets the
backend assign ids.

============================================================
"""

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection, Engine

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import CatalogConfigurationError, CatalogValidationError, ProductNotFoundError
from database.engine import transaction_scope

from .classifier import DomainType, encode_value
from .models import Metadata, Product, Reference, TransferStatus
from .schema import PRODUCTS_TABLE, ProjectedSchema, SchemaProjector


logger = logging.getLogger(__name__)


ID_STRATEGY_MAX_PLUS_ONE = "max_plus_one"
ID_STRATEGY_RETURNING = "returning"
ID_STRATEGIES = (ID_STRATEGY_MAX_PLUS_ONE, ID_STRATEGY_RETURNING)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _log_persistence(table_name: str, count: int, details: str = "") -> None:
    """Log persistence result in structured format."""
    if details:
        logger.info(f"Persist {table_name}: inserted={count} ({details})")
    else:
        logger.info(f"Persist {table_name}: inserted={count}")


class MutationEngine:
    """
    Transactional writes for product lifecycle, attributes and references.

    Args:
        engine: SQLAlchemy engine (connection source)
        projector: Schema projector for table/column layout
        clock: Clock stamping received times (defaults to the global clock)
        id_strategy: "max_plus_one" or "returning"
        cascade_delete: remove_product also removes attribute and reference rows
        lock: Lock shared with the owning store (a new RLock by default)
    """

    def __init__(
        self,
        engine: Engine,
        projector: SchemaProjector,
        clock: Optional[ClockProtocol] = None,
        id_strategy: str = ID_STRATEGY_MAX_PLUS_ONE,
        cascade_delete: bool = True,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        if id_strategy not in ID_STRATEGIES:
            raise CatalogConfigurationError("id_strategy", f"must be one of {', '.join(ID_STRATEGIES)}")
        self._engine = engine
        self._projector = projector
        self._clock = clock
        self._id_strategy = id_strategy
        self._cascade_delete = cascade_delete
        self._lock = lock or threading.RLock()

    @property
    def cascade_delete(self) -> bool:
        return self._cascade_delete

    def _now(self):
        clock = self._clock or ClockFactory.get_clock()
        return clock.now()

    @staticmethod
    def _require_id(product: Product, operation: str) -> int:
        if product.product_id is None:
            raise CatalogValidationError("ProductId", None, "product has no id; add it first", operation)
        return product.product_id

    def _execute(self, conn: Connection, operation: str, sql: str, params: Any = None):
        logger.debug(f"{operation} Executing: {sql}")
        return conn.execute(text(sql), params if params is not None else {})

    # --------------------------------------------------------
    # PRODUCTS
    # --------------------------------------------------------

    def add_product(self, product: Product) -> int:
        """
        Insert a product's identity row.

        The id and received time are assigned here and written back
        onto the product. Attributes and references are added by
        separate calls.

        Returns:
            The new ProductId
        """
        operation = "add_product"
        received = self._now()
        params = {
            "name": product.product_name,
            "structure": _enum_value(product.product_structure),
            "status": _enum_value(product.transfer_status),
            "type": product.type_name,
            # Stored as naive UTC text, read back as aware UTC
            "received": encode_value("ProductReceivedTime", received, DomainType.TIMESTAMP),
        }
        columns = "ProductName, ProductStructure, ProductTransferStatus, ProductType, ProductReceivedTime"
        values = ":name, :structure, :status, :type, :received"

        with self._lock, transaction_scope(self._engine, operation) as conn:
            if self._id_strategy == ID_STRATEGY_RETURNING:
                product_id = self._execute(
                    conn, operation,
                    f"INSERT INTO {PRODUCTS_TABLE} ({columns}) VALUES ({values}) RETURNING ProductId",
                    params,
                ).scalar_one()
            else:
                max_id = self._execute(
                    conn, operation, f"SELECT MAX(ProductId) AS max_id FROM {PRODUCTS_TABLE}"
                ).scalar()
                product_id = (max_id or 0) + 1
                self._execute(
                    conn, operation,
                    f"INSERT INTO {PRODUCTS_TABLE} (ProductId, {columns}) VALUES (:pid, {values})",
                    dict(params, pid=product_id),
                )

        product.product_id = int(product_id)
        product.received_time = received
        _log_persistence(PRODUCTS_TABLE, 1, f"product_id={product.product_id}, type={product.type_name}")
        return product.product_id

    def modify_product(self, product: Product) -> None:
        """
        Update name, structure and transfer status, then replace references.

        Both steps run in one transaction: the stored references are
        deleted and the product's current list is inserted.

        Raises:
            ProductNotFoundError: If no identity row has the product's id
        """
        operation = "modify_product"
        product_id = self._require_id(product, operation)
        schema = self._projector.project(product.product_type, operation)

        with self._lock, transaction_scope(self._engine, operation, product_id) as conn:
            result = self._execute(
                conn, operation,
                f"UPDATE {PRODUCTS_TABLE} SET ProductName = :name, ProductStructure = :structure, "
                "ProductTransferStatus = :status WHERE ProductId = :pid",
                {
                    "name": product.product_name,
                    "structure": _enum_value(product.product_structure),
                    "status": _enum_value(product.transfer_status),
                    "pid": product_id,
                },
            )
            if result.rowcount == 0:
                raise ProductNotFoundError("id", product_id, operation)

            removed = self._execute(
                conn, operation,
                f"DELETE FROM {schema.reference_table} WHERE ProductId = :pid",
                {"pid": product_id},
            ).rowcount
            inserted = self._insert_references(conn, operation, schema, product_id, product.references)

        _log_persistence(
            schema.reference_table, inserted,
            f"product_id={product_id}, replaced={removed}",
        )

    def remove_product(self, product: Product) -> None:
        """
        Delete a product.

        With cascade_delete the metadata row, every XREF row and every
        reference row of the product go in the same transaction.
        Without it only the identity row is deleted and the rest is
        left for the caller to clean up.
        """
        operation = "remove_product"
        product_id = self._require_id(product, operation)
        schema = self._projector.project(product.product_type, operation) if self._cascade_delete else None

        with self._lock, transaction_scope(self._engine, operation, product_id) as conn:
            if schema is not None:
                self._delete_attribute_rows(conn, operation, schema, product_id)
                self._execute(
                    conn, operation,
                    f"DELETE FROM {schema.reference_table} WHERE ProductId = :pid",
                    {"pid": product_id},
                )
            deleted = self._execute(
                conn, operation,
                f"DELETE FROM {PRODUCTS_TABLE} WHERE ProductId = :pid",
                {"pid": product_id},
            ).rowcount

        logger.info(
            f"Removed product {product_id}: deleted={deleted}, cascade={self._cascade_delete}"
        )

    def set_product_transfer_status(self, product: Product) -> None:
        """Update the transfer status column only."""
        operation = "set_product_transfer_status"
        product_id = self._require_id(product, operation)
        status = _enum_value(product.transfer_status) or TransferStatus.TRANSFERRING.value

        with self._lock, transaction_scope(self._engine, operation, product_id) as conn:
            updated = self._execute(
                conn, operation,
                f"UPDATE {PRODUCTS_TABLE} SET ProductTransferStatus = :status WHERE ProductId = :pid",
                {"status": status, "pid": product_id},
            ).rowcount

        logger.info(f"Transfer status {product_id}: {status} (updated={updated})")

    # --------------------------------------------------------
    # REFERENCES
    # --------------------------------------------------------

    def add_product_references(self, product: Product) -> int:
        """
        Append the product's references. Existing rows are kept.

        Returns:
            Number of reference rows inserted
        """
        operation = "add_product_references"
        product_id = self._require_id(product, operation)
        schema = self._projector.project(product.product_type, operation)

        with self._lock, transaction_scope(self._engine, operation, product_id) as conn:
            inserted = self._insert_references(conn, operation, schema, product_id, product.references)

        _log_persistence(schema.reference_table, inserted, f"product_id={product_id}")
        return inserted

    def _insert_references(
        self,
        conn: Connection,
        operation: str,
        schema: ProjectedSchema,
        product_id: int,
        references: Iterable[Reference],
    ) -> int:
        rows = [
            {
                "pid": product_id,
                "original": ref.original_reference,
                "stored": ref.data_store_reference,
                "size": ref.file_size,
                "mime": ref.mime_type,
            }
            for ref in references
        ]
        if not rows:
            return 0
        self._execute(
            conn, operation,
            f"INSERT INTO {schema.reference_table} "
            "(ProductId, OriginalReference, DataStoreReference, FileSize, MimeType) "
            "VALUES (:pid, :original, :stored, :size, :mime)",
            rows,
        )
        return len(rows)

    # --------------------------------------------------------
    # METADATA
    # --------------------------------------------------------

    def add_metadata(self, metadata: Metadata, product: Product) -> None:
        """
        Store the attributes the metadata supplies for a product.

        Scalars go into the product's single {type}_metadata row
        (inserted if missing, updated otherwise). Each vector value
        becomes one {attr}_XREF row. Attributes the metadata does
        not mention are skipped.
        """
        operation = "add_metadata"
        product_id = self._require_id(product, operation)
        schema = self._projector.project(product.product_type, operation)

        params: Dict[str, Any] = {"pid": product_id}
        columns: List[str] = []
        for attr in schema.scalar_attributes:
            value = metadata.get(attr.name)
            if value is None:
                continue
            placeholder = f"v{len(columns)}"
            params[placeholder] = encode_value(attr.name, value, attr.domain_type)
            columns.append(attr.name)

        vector_rows = {}
        for attr in schema.vector_attributes:
            values = metadata.get_all(attr.name)
            if values:
                vector_rows[attr] = [
                    {"pid": product_id, "value": encode_value(attr.name, v, attr.domain_type)}
                    for v in values
                ]

        with self._lock, transaction_scope(self._engine, operation, product_id) as conn:
            existing = self._execute(
                conn, operation,
                f"SELECT ProductId FROM {schema.metadata_table} WHERE ProductId = :pid",
                {"pid": product_id},
            ).first()

            if existing is None:
                names = ", ".join(["ProductId"] + columns)
                placeholders = ", ".join([":pid"] + [f":v{i}" for i in range(len(columns))])
                self._execute(
                    conn, operation,
                    f"INSERT INTO {schema.metadata_table} ({names}) VALUES ({placeholders})",
                    params,
                )
            elif columns:
                assignments = ", ".join(f"{name} = :v{i}" for i, name in enumerate(columns))
                self._execute(
                    conn, operation,
                    f"UPDATE {schema.metadata_table} SET {assignments} WHERE ProductId = :pid",
                    params,
                )

            for attr, rows in vector_rows.items():
                self._execute(
                    conn, operation,
                    f"INSERT INTO {attr.xref_table} (ProductId, {attr.name}) VALUES (:pid, :value)",
                    rows,
                )

        _log_persistence(schema.metadata_table, len(columns), f"product_id={product_id}")
        for attr, rows in vector_rows.items():
            _log_persistence(attr.xref_table, len(rows), f"product_id={product_id}")

    def remove_metadata(self, metadata: Optional[Metadata], product: Product) -> None:
        """
        Remove stored attributes of a product.

        With no metadata (or an empty one) the metadata row and every
        XREF row of the product are deleted. Otherwise only the named
        attributes are removed: scalar columns are set to NULL, and
        vector rows matching the given values are deleted (all rows
        of the attribute when no values are given).
        """
        operation = "remove_metadata"
        product_id = self._require_id(product, operation)
        schema = self._projector.project(product.product_type, operation)

        with self._lock, transaction_scope(self._engine, operation, product_id) as conn:
            if not metadata:
                self._delete_attribute_rows(conn, operation, schema, product_id)
                logger.info(f"Removed metadata {product_id}: all attributes")
                return

            cleared = []
            for name in metadata.keys():
                attr = schema.get(name)
                if attr is None:
                    logger.debug(f"{operation}: {name} is not an attribute of {schema.type_name}, skipped")
                    continue
                if not attr.is_vector:
                    cleared.append(attr.name)
                    continue

                values = [encode_value(attr.name, v, attr.domain_type) for v in metadata.get_all(name)]
                if values:
                    statement = text(
                        f"DELETE FROM {attr.xref_table} WHERE ProductId = :pid AND {attr.name} IN :values"
                    ).bindparams(bindparam("values", expanding=True))
                    logger.debug(f"{operation} Executing: {statement.text}")
                    conn.execute(statement, {"pid": product_id, "values": values})
                else:
                    self._execute(
                        conn, operation,
                        f"DELETE FROM {attr.xref_table} WHERE ProductId = :pid",
                        {"pid": product_id},
                    )

            if cleared:
                assignments = ", ".join(f"{name} = NULL" for name in cleared)
                self._execute(
                    conn, operation,
                    f"UPDATE {schema.metadata_table} SET {assignments} WHERE ProductId = :pid",
                    {"pid": product_id},
                )

        logger.info(f"Removed metadata {product_id}: attributes={metadata.keys()}")

    def _delete_attribute_rows(
        self,
        conn: Connection,
        operation: str,
        schema: ProjectedSchema,
        product_id: int,
    ) -> None:
        for table in [schema.metadata_table] + schema.xref_tables:
            self._execute(
                conn, operation,
                f"DELETE FROM {table} WHERE ProductId = :pid",
                {"pid": product_id},
            )


__all__ = [
    "ID_STRATEGY_MAX_PLUS_ONE",
    "ID_STRATEGY_RETURNING",
    "ID_STRATEGIES",
    "MutationEngine",
]
