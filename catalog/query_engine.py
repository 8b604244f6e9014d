"""
Catalog - Query Engine.

============================================================
RESPONSIBILITY
============================================================
Resolves a filter plus a product type into the ids of the
matching products:

    SELECT DISTINCT ProductId FROM {type}_VIEW
        [WHERE <lowered predicate>]
        ORDER BY ProductId DESC

Predicate lowering is delegated to a PredicateTranslator;
the engine only splices in the predicate text and binds its
parameters. An empty query matches every product of the type.

============================================================
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from database.engine import connection_scope

from .criteria import PredicateTranslator, Query, SqlPredicateTranslator
from .models import ProductType, ProjectedMetadata
from .projection import ReadEngine
from .schema import PRODUCT_ID_COLUMN, ProjectedSchema, SchemaProjector


logger = logging.getLogger(__name__)


class QueryEngine:
    """Filtered product-id queries over the per-type views."""

    def __init__(
        self,
        engine: Engine,
        projector: SchemaProjector,
        read_engine: ReadEngine,
        translator: Optional[PredicateTranslator] = None,
    ) -> None:
        self._engine = engine
        self._projector = projector
        self._read = read_engine
        self._translator = translator or SqlPredicateTranslator(dialect_name=engine.dialect.name)

    def build_id_query(self, query: Optional[Query], schema: ProjectedSchema) -> Tuple[str, Dict[str, Any]]:
        """
        SQL and bind parameters of the filtered id query.

        Raises:
            CriteriaTranslationError: If the criteria cannot be lowered
        """
        sql = f"SELECT DISTINCT {PRODUCT_ID_COLUMN} FROM {schema.view_name}"
        params: Dict[str, Any] = {}
        if query is not None and not query.is_empty:
            predicate = self._translator.lower(query.criteria, schema)
            sql += f" WHERE {predicate.sql}"
            params = dict(predicate.params)
        sql += f" ORDER BY {PRODUCT_ID_COLUMN} DESC"
        return sql, params

    def select_product_ids(
        self,
        conn: Connection,
        query: Optional[Query],
        schema: ProjectedSchema,
        operation: str = "query",
    ) -> List[int]:
        """Run the filtered id query on an open connection, newest first."""
        sql, params = self.build_id_query(query, schema)
        logger.debug(f"{operation} Executing: {sql}")
        return [int(row[0]) for row in conn.execute(text(sql), params)]

    def query(self, query: Optional[Query], product_type: ProductType) -> List[int]:
        """Ids of the products of a type matching the query."""
        operation = "query"
        schema = self._projector.project(product_type, operation)
        with connection_scope(self._engine, operation) as conn:
            ids = self.select_product_ids(conn, query, schema, operation)
        logger.debug(f"{operation} {schema.type_name}: hits={len(ids)}")
        return ids

    def query_reduced_metadata(
        self,
        query: Optional[Query],
        product_type: ProductType,
        element_names: Iterable[str],
    ) -> List[ProjectedMetadata]:
        """Reduced attribute maps of every matching product, newest first."""
        operation = "query_reduced_metadata"
        schema = self._projector.project(product_type, operation)
        reduced = schema.restrict(element_names)
        with connection_scope(self._engine, operation) as conn:
            ids = self.select_product_ids(conn, query, schema, operation)
            return [self._read.read_metadata(conn, reduced, pid, operation) for pid in ids]


__all__ = [
    "QueryEngine",
]
