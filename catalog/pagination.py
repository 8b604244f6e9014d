"""
Catalog - Pagination Engine.

============================================================
RESPONSIBILITY
============================================================
Turns a filtered id query plus a page number into a page
of fully hydrated products.

- The matching ids are read once into a snapshot; the page
  is cut from that snapshot, so rows inserted while a page
  is being hydrated cannot shift it
- Total hits = snapshot length
- A page whose first offset is past the last hit is served
  as page 1
- No hits at all = blank page (num=0, size=0, hits=0)
- page_num < 1 = every hit on a single page

Each id on the page is hydrated with a by-id read on the
same connection.

============================================================
"""

import logging
from typing import List, Optional

from sqlalchemy.engine import Connection, Engine

from core.exceptions import CatalogConfigurationError, ProductNotFoundError
from database.engine import connection_scope

from .criteria import Query
from .models import Product, ProductPage, ProductType
from .projection import ReadEngine
from .query_engine import QueryEngine
from .schema import SchemaProjector


logger = logging.getLogger(__name__)


DEFAULT_PAGE_SIZE = 20


class PaginationEngine:
    """Paged queries and page navigation for one page size."""

    def __init__(
        self,
        engine: Engine,
        projector: SchemaProjector,
        query_engine: QueryEngine,
        read_engine: ReadEngine,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise CatalogConfigurationError("page_size", "must be >= 1")
        self._engine = engine
        self._projector = projector
        self._query_engine = query_engine
        self._read = read_engine
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    def paged_query(self, query: Optional[Query], product_type: ProductType, page_num: int) -> ProductPage:
        """
        One page of the products of a type matching the query.

        Raises:
            CriteriaTranslationError: If the criteria cannot be lowered
        """
        operation = "paged_query"
        schema = self._projector.project(product_type, operation)

        with connection_scope(self._engine, operation) as conn:
            ids = self._query_engine.select_product_ids(conn, query, schema, operation)
            total = len(ids)

            if total == 0:
                logger.debug(f"{operation} {schema.type_name}: no hits, blank page")
                return ProductPage.blank_page()

            if page_num < 1:
                products = self._hydrate(conn, ids, operation)
                return ProductPage(page_num=1, page_size=total, num_of_hits=total, products=products)

            offset = (page_num - 1) * self._page_size
            if offset + 1 > total:
                logger.info(
                    f"{operation} {schema.type_name}: page {page_num} past last hit ({total}), serving page 1"
                )
                page_num = 1
                offset = 0

            products = self._hydrate(conn, ids[offset:offset + self._page_size], operation)

        return ProductPage(
            page_num=page_num,
            page_size=self._page_size,
            num_of_hits=total,
            products=products,
        )

    def _hydrate(self, conn: Connection, ids: List[int], operation: str) -> List[Product]:
        products = []
        for product_id in ids:
            try:
                products.append(self._read.fetch_product(conn, product_id, operation))
            except ProductNotFoundError:
                logger.warning(f"{operation}: product {product_id} removed while paging, skipped")
        return products

    # --------------------------------------------------------
    # NAVIGATION
    # --------------------------------------------------------

    def get_first_page(self, product_type: ProductType, query: Optional[Query] = None) -> ProductPage:
        return self.paged_query(query, product_type, 1)

    def get_last_page(self, product_type: ProductType, query: Optional[Query] = None) -> ProductPage:
        """Fetch page 1 to learn the page count, then the last page."""
        first = self.get_first_page(product_type, query)
        if first.is_blank or first.total_pages <= 1:
            return first
        return self.paged_query(query, product_type, first.total_pages)

    def get_next_page(
        self,
        product_type: ProductType,
        current_page: Optional[ProductPage],
        query: Optional[Query] = None,
    ) -> ProductPage:
        """The page after current_page. The last page is returned unchanged."""
        if current_page is None:
            return self.get_first_page(product_type, query)
        if current_page.is_last_page:
            return current_page
        return self.paged_query(query, product_type, current_page.page_num + 1)

    def get_prev_page(
        self,
        product_type: ProductType,
        current_page: Optional[ProductPage],
        query: Optional[Query] = None,
    ) -> ProductPage:
        """The page before current_page. The first page is returned unchanged."""
        if current_page is None:
            return self.get_first_page(product_type, query)
        if current_page.is_first_page:
            return current_page
        return self.paged_query(query, product_type, current_page.page_num - 1)


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "PaginationEngine",
]
