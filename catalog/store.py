"""
Catalog - Column-Based Catalog Store.

============================================================
RESPONSIBILITY
============================================================
Public surface of the product catalog. Wires the engines
together over one SQLAlchemy engine and one schema
registry:

    SchemaProjector   <- SchemaRegistry
    MutationEngine    writes, under the store lock
    ReadEngine        product / reference / metadata reads
    QueryEngine       filtered id queries
    PaginationEngine  paged queries and navigation

============================================================
CONCURRENCY
============================================================
Mutations on one store are mutually exclusive (one RLock
per store). Reads take no store lock and may observe a
mutation mid-flight. Separate stores, in this or another
process, are not coordinated.

An in-memory SQLite engine shares one DBAPI connection, so
there every read and write also holds the engine's
connection guard (see database.engine.connection_guard).

============================================================
"""

import logging
import threading
from typing import Iterable, List, Optional

from sqlalchemy.engine import Engine

from core.clock import ClockProtocol
from core.exceptions import CatalogConfigurationError
from database.engine import create_database_engine

from .config import CatalogConfig, get_config
from .criteria import PredicateTranslator, Query
from .models import Metadata, Product, ProductPage, ProductType, ProjectedMetadata, Reference
from .mutation import ID_STRATEGY_MAX_PLUS_ONE, MutationEngine
from .pagination import DEFAULT_PAGE_SIZE, PaginationEngine
from .projection import ReadEngine
from .query_engine import QueryEngine
from .registry import InMemoryRegistry, ProductTypeRegistry, SchemaRegistry
from .schema import SchemaProjector


logger = logging.getLogger(__name__)


class _UnconfiguredRegistry(SchemaRegistry, ProductTypeRegistry):
    """Stands in until a registry is configured; every lookup fails."""

    def get_attributes(self, product_type: ProductType):
        raise CatalogConfigurationError("schema_registry", "no schema registry configured")

    def get_type_by_name(self, name: str) -> ProductType:
        raise CatalogConfigurationError("type_registry", "no product type registry configured")


class ColumnBasedCatalog:
    """
    Relational product catalog with one column per scalar attribute.

    Args:
        engine: SQLAlchemy engine over a provisioned catalog layout
        schema_registry: Attribute definitions per product type
        type_registry: Type name resolution (defaults to schema_registry
            when it implements both)
        page_size: Page size of paged queries
        clock: Clock stamping received times
        id_strategy: "max_plus_one" or "returning"
        cascade_delete: remove_product also removes attribute and reference rows
        translator: Criteria lowering (SQL translator by default)
    """

    def __init__(
        self,
        engine: Engine,
        schema_registry: Optional[SchemaRegistry] = None,
        type_registry: Optional[ProductTypeRegistry] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Optional[ClockProtocol] = None,
        id_strategy: str = ID_STRATEGY_MAX_PLUS_ONE,
        cascade_delete: bool = True,
        translator: Optional[PredicateTranslator] = None,
    ) -> None:
        if type_registry is None and isinstance(schema_registry, ProductTypeRegistry):
            type_registry = schema_registry

        self._engine = engine
        self._schema_registry = schema_registry
        self._type_registry = type_registry
        self._lock = threading.RLock()

        projector = SchemaProjector(schema_registry or _UnconfiguredRegistry())
        self._projector = projector
        self._mutations = MutationEngine(
            engine, projector,
            clock=clock,
            id_strategy=id_strategy,
            cascade_delete=cascade_delete,
            lock=self._lock,
        )
        self._reads = ReadEngine(engine, projector)
        self._queries = QueryEngine(engine, projector, self._reads, translator)
        self._pages = PaginationEngine(engine, projector, self._queries, self._reads, page_size)

        logger.info(
            f"Catalog store ready: page_size={page_size}, id_strategy={id_strategy}, "
            f"cascade_delete={cascade_delete}"
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[CatalogConfig] = None,
        schema_registry: Optional[SchemaRegistry] = None,
        engine: Optional[Engine] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> "ColumnBasedCatalog":
        """
        Build a store from configuration.

        The registry is loaded from config.registry_path unless one
        is given; the engine is created from config unless one is given.
        """
        config = config or get_config()
        if schema_registry is None and config.registry_path:
            schema_registry = InMemoryRegistry.from_yaml(config.registry_path)
        if engine is None:
            engine = create_database_engine(
                config.database_url or None,
                pool_size=config.pool_size,
                max_overflow=config.max_overflow,
                pool_timeout=config.pool_timeout,
                pool_recycle=config.pool_recycle,
                echo=config.echo,
            )
        return cls(
            engine,
            schema_registry=schema_registry,
            page_size=config.page_size,
            clock=clock,
            id_strategy=config.id_strategy,
            cascade_delete=config.cascade_delete,
        )

    # --------------------------------------------------------
    # COLLABORATORS
    # --------------------------------------------------------

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def schema_registry(self) -> SchemaRegistry:
        """
        The configured schema registry.

        Raises:
            CatalogConfigurationError: If none is configured
        """
        if self._schema_registry is None:
            raise CatalogConfigurationError("schema_registry", "no schema registry configured")
        return self._schema_registry

    @property
    def page_size(self) -> int:
        return self._pages.page_size

    def get_page_size(self) -> int:
        return self._pages.page_size

    def get_product_type(self, name: str) -> ProductType:
        """
        Resolve a product type name through the type registry.

        Raises:
            UnknownProductTypeError: If the registry does not know the name
            CatalogConfigurationError: If no type registry is configured
        """
        if self._type_registry is None:
            raise CatalogConfigurationError("type_registry", "no product type registry configured")
        return self._type_registry.get_type_by_name(name)

    # --------------------------------------------------------
    # MUTATIONS
    # --------------------------------------------------------

    def add_product(self, product: Product) -> int:
        return self._mutations.add_product(product)

    def modify_product(self, product: Product) -> None:
        self._mutations.modify_product(product)

    def remove_product(self, product: Product) -> None:
        self._mutations.remove_product(product)

    def set_product_transfer_status(self, product: Product) -> None:
        self._mutations.set_product_transfer_status(product)

    def add_product_references(self, product: Product) -> int:
        return self._mutations.add_product_references(product)

    def add_metadata(self, metadata: Metadata, product: Product) -> None:
        self._mutations.add_metadata(metadata, product)

    def remove_metadata(self, metadata: Optional[Metadata], product: Product) -> None:
        self._mutations.remove_metadata(metadata, product)

    # --------------------------------------------------------
    # READS
    # --------------------------------------------------------

    def get_product_by_id(self, product_id: int) -> Product:
        return self._reads.get_product_by_id(product_id)

    def get_product_by_name(self, product_name: str) -> Product:
        return self._reads.get_product_by_name(product_name)

    def get_products(self) -> List[Product]:
        return self._reads.get_products()

    def get_products_by_product_type(self, product_type: ProductType) -> List[Product]:
        return self._reads.get_products_by_type(product_type)

    def get_top_n_products(self, n: int, product_type: Optional[ProductType] = None) -> List[Product]:
        return self._reads.get_top_n_products(n, product_type)

    def get_num_products(self, product_type: ProductType) -> int:
        return self._reads.get_num_products(product_type)

    def get_product_references(self, product: Product) -> List[Reference]:
        return self._reads.get_product_references(product)

    def get_metadata(self, product: Product) -> ProjectedMetadata:
        return self._reads.get_metadata(product)

    def get_reduced_metadata(self, product: Product, element_names: Iterable[str]) -> ProjectedMetadata:
        return self._reads.get_reduced_metadata(product, element_names)

    # --------------------------------------------------------
    # QUERIES
    # --------------------------------------------------------

    def query(self, query: Optional[Query], product_type: ProductType) -> List[int]:
        return self._queries.query(query, product_type)

    def query_reduced_metadata(
        self,
        query: Optional[Query],
        product_type: ProductType,
        element_names: Iterable[str],
    ) -> List[ProjectedMetadata]:
        return self._queries.query_reduced_metadata(query, product_type, element_names)

    def paged_query(self, query: Optional[Query], product_type: ProductType, page_num: int) -> ProductPage:
        return self._pages.paged_query(query, product_type, page_num)

    def get_first_page(self, product_type: ProductType, query: Optional[Query] = None) -> ProductPage:
        return self._pages.get_first_page(product_type, query)

    def get_last_product_page(self, product_type: ProductType, query: Optional[Query] = None) -> ProductPage:
        return self._pages.get_last_page(product_type, query)

    def get_next_page(
        self,
        product_type: ProductType,
        current_page: Optional[ProductPage],
        query: Optional[Query] = None,
    ) -> ProductPage:
        return self._pages.get_next_page(product_type, current_page, query)

    def get_prev_page(
        self,
        product_type: ProductType,
        current_page: Optional[ProductPage],
        query: Optional[Query] = None,
    ) -> ProductPage:
        return self._pages.get_prev_page(product_type, current_page, query)


__all__ = [
    "ColumnBasedCatalog",
]
