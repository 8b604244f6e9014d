"""
Shared fixtures for catalog tests.

Every test gets a fresh in-memory SQLite catalog, provisioned
for two product types:

    Image     Resolution STRING, Width NUMBER, Captured TIMESTAMP,
              ShotDate DATE, Published TIMESTAMP_TZ,
              Tags VECTOR<STRING>
    Document  Author (undeclared), Keywords VECTOR<STRING>
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

import pytest
from sqlalchemy import text

from catalog import (
    ColumnBasedCatalog,
    InMemoryRegistry,
    Metadata,
    Product,
    ProductType,
    Reference,
)
from core.clock import MockClock
from database.engine import create_database_engine
from database.provisioning import provision_catalog


IMAGE_ATTRIBUTES = [
    {"name": "Resolution", "type": "STRING"},
    {"name": "Width", "type": "NUMBER"},
    {"name": "Captured", "type": "TIMESTAMP"},
    {"name": "ShotDate", "type": "DATE"},
    {"name": "Published", "type": "TIMESTAMP_TZ"},
    {"name": "Tags", "type": "VECTOR<STRING>"},
]

DOCUMENT_ATTRIBUTES = [
    {"name": "Author"},
    {"name": "Keywords", "type": "vector<string>"},
]

CLOCK_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def registry():
    """Registry with the Image and Document types."""
    registry = InMemoryRegistry()
    registry.register(ProductType(name="Image", description="Raster images"), IMAGE_ATTRIBUTES)
    registry.register(ProductType(name="Document"), DOCUMENT_ATTRIBUTES)
    return registry


@pytest.fixture
def engine(registry):
    """Provisioned in-memory SQLite engine."""
    engine = create_database_engine("sqlite://")
    provision_catalog(engine, registry)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    """Mock clock for deterministic received times."""
    return MockClock(CLOCK_START)


@pytest.fixture
def catalog(engine, registry, clock):
    """Catalog store with page size 10."""
    return ColumnBasedCatalog(engine, registry, page_size=10, clock=clock)


@pytest.fixture
def image_type(registry):
    return registry.get_type_by_name("Image")


@pytest.fixture
def document_type(registry):
    return registry.get_type_by_name("Document")


@pytest.fixture
def add_image(catalog, image_type):
    """Factory adding an Image product with optional metadata and references."""

    def _add(
        name: str,
        metadata: Optional[dict] = None,
        references: Iterable[Reference] = (),
    ) -> Product:
        product = Product(product_name=name, product_type=image_type, references=list(references))
        catalog.add_product(product)
        if metadata is not None:
            catalog.add_metadata(Metadata(metadata), product)
        if product.references:
            catalog.add_product_references(product)
        return product

    return _add


@pytest.fixture
def count_rows(engine):
    """Rows of a catalog table belonging to one product."""

    def _count(table: str, product_id: int) -> int:
        with engine.connect() as conn:
            return conn.execute(
                text(f"SELECT COUNT(*) FROM {table} WHERE ProductId = :pid"), {"pid": product_id}
            ).scalar()

    return _count
