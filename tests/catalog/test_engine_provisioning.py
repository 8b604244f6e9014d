"""
Tests for the backend layer.

============================================================
PURPOSE
============================================================
Covers:
1. Connection and transaction scopes, shared-connection guard
2. Catalog DDL
3. Provisioning and verification

============================================================
"""

import threading
from contextlib import nullcontext
from unittest.mock import patch

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from catalog.models import ProductType
from catalog.schema import SchemaProjector
from core.exceptions import (
    CatalogException,
    CatalogTransactionError,
    DatabaseInitializationError,
    ProductNotFoundError,
    UnknownProductTypeError,
)
from database.engine import (
    connection_guard,
    connection_scope,
    create_database_engine,
    dispose_engine,
    get_engine,
    set_engine,
    transaction_scope,
    verify_database_connection,
)
from database.provisioning import (
    catalog_ddl,
    get_table_row_counts,
    provision_catalog,
    required_tables,
    verify_catalog_tables,
    view_ddl,
)


@pytest.fixture
def image_schema(registry, image_type):
    return SchemaProjector(registry).project(image_type)


def count(engine, table):
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()


# ============================================================
# SCOPE TESTS
# ============================================================

class TestTransactionScope:
    """Tests for explicit transaction boundaries."""

    def _insert(self, conn, name):
        conn.execute(
            text("INSERT INTO products (ProductId, ProductName, ProductType) VALUES (:pid, :name, 'Image')"),
            {"pid": 1, "name": name},
        )

    def test_commit(self, engine):
        with transaction_scope(engine, "test") as conn:
            self._insert(conn, "a")

        assert count(engine, "products") == 1

    def test_rollback_on_error(self, engine):
        with pytest.raises(CatalogTransactionError) as exc_info:
            with transaction_scope(engine, "test_op", 5) as conn:
                self._insert(conn, "a")
                raise ValueError("boom")

        assert count(engine, "products") == 0
        assert exc_info.value.operation == "test_op"
        assert exc_info.value.product_id == 5
        assert isinstance(exc_info.value.cause, ValueError)

    def test_catalog_exception_passes_through(self, engine):
        with pytest.raises(ProductNotFoundError):
            with transaction_scope(engine, "test") as conn:
                self._insert(conn, "a")
                raise ProductNotFoundError("id", 1, "test")

        assert count(engine, "products") == 0

    def test_backend_error_wrapped(self, engine):
        with pytest.raises(CatalogTransactionError) as exc_info:
            with transaction_scope(engine, "test") as conn:
                conn.execute(text("SELECT * FROM no_such_table"))

        assert isinstance(exc_info.value.cause, SQLAlchemyError)


class TestConnectionScope:
    """Tests for read scopes."""

    def test_read(self, engine):
        with connection_scope(engine, "test") as conn:
            assert conn.execute(text("SELECT 1")).scalar() == 1

    def test_backend_error_wrapped(self, engine):
        with pytest.raises(CatalogException) as exc_info:
            with connection_scope(engine, "lookup", 9) as conn:
                conn.execute(text("SELECT * FROM no_such_table"))

        assert exc_info.value.operation == "lookup"
        assert exc_info.value.product_id == 9
        assert str(exc_info.value).startswith("lookup [product_id=9]:")

    def test_verify_connection(self, engine):
        assert verify_database_connection(engine) is True


class TestConnectionGuard:
    """Tests for the shared-connection guard."""

    def test_in_memory_engine_has_one_reentrant_lock(self, engine):
        guard = connection_guard(engine)

        assert guard is connection_guard(engine)
        with guard:
            with connection_scope(engine, "nested") as conn:
                assert conn.execute(text("SELECT 1")).scalar() == 1

    def test_scope_waits_for_guard(self, engine):
        acquired = []

        def read():
            with connection_scope(engine, "read"):
                acquired.append(True)

        with connection_guard(engine):
            reader = threading.Thread(target=read)
            reader.start()
            reader.join(timeout=0.3)
            assert acquired == []

        reader.join(timeout=5)
        assert acquired == [True]

    def test_pooled_engine_not_serialized(self, tmp_path):
        engine = create_database_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
        try:
            assert isinstance(connection_guard(engine), nullcontext)
        finally:
            engine.dispose()


class TestProcessEngine:
    """Tests for the process-wide engine."""

    def test_set_get_dispose(self, engine):
        set_engine(engine)
        try:
            assert get_engine() is engine
            assert verify_database_connection() is True
        finally:
            dispose_engine()

    def test_created_from_environment(self, monkeypatch):
        monkeypatch.setenv("CATALOG_DATABASE_URL", "sqlite://")
        set_engine(None)
        try:
            assert get_engine().dialect.name == "sqlite"
        finally:
            dispose_engine()


# ============================================================
# DDL TESTS
# ============================================================

class TestCatalogDdl:
    """Tests for generated DDL."""

    def test_view_joins_every_table(self, image_schema):
        ddl = view_ddl(image_schema, "sqlite")

        assert ddl.startswith("CREATE VIEW IF NOT EXISTS Image_VIEW AS SELECT")
        assert "LEFT JOIN Image_metadata m" in ddl
        assert "LEFT JOIN Tags_XREF x0" in ddl
        assert "LEFT JOIN Image_reference r" in ddl
        assert ddl.endswith("WHERE p.ProductType = 'Image'")

    def test_view_on_postgresql(self, image_schema):
        assert view_ddl(image_schema, "postgresql").startswith("CREATE OR REPLACE VIEW Image_VIEW")

    def test_identity_column_per_dialect(self, image_schema):
        assert "ProductId SERIAL PRIMARY KEY" in catalog_ddl([image_schema], "postgresql")[0]
        assert "ProductId INTEGER PRIMARY KEY" in catalog_ddl([image_schema], "sqlite")[0]

    def test_scalar_column_types(self, image_schema):
        metadata_ddl = catalog_ddl([image_schema], "sqlite")[1]

        assert "Resolution VARCHAR(1024)" in metadata_ddl
        assert "Width NUMERIC" in metadata_ddl
        assert "Captured TIMESTAMP" in metadata_ddl
        assert "ShotDate DATE" in metadata_ddl
        assert "Tags" not in metadata_ddl

    def test_required_tables(self, image_schema):
        assert required_tables([image_schema]) == [
            "products", "Image_metadata", "Image_reference", "Tags_XREF", "Image_VIEW",
        ]


# ============================================================
# PROVISIONING TESTS
# ============================================================

class TestProvisioning:
    """Tests for provisioning and verification."""

    def test_everything_present(self, engine, registry):
        results = verify_catalog_tables(engine, registry)

        assert all(results.values())
        assert "Document_VIEW" in results
        assert "Keywords_XREF" in results

    def test_idempotent(self, engine, registry):
        names = provision_catalog(engine, registry)
        assert "Image_VIEW" in names
        assert all(verify_catalog_tables(engine, registry).values())

    def test_only_selected_types(self, registry, image_type):
        engine = create_database_engine("sqlite://")
        try:
            provision_catalog(engine, registry, [image_type])
            results = verify_catalog_tables(engine, registry)
        finally:
            engine.dispose()

        assert results["Image_VIEW"] is True
        assert results["Document_metadata"] is False
        assert results["Keywords_XREF"] is False

    def test_missing_table_reported(self, engine, registry):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE Tags_XREF"))

        results = verify_catalog_tables(engine, registry)

        assert results["Tags_XREF"] is False
        assert results["Image_metadata"] is True

    def test_unknown_type(self, engine, registry):
        with pytest.raises(UnknownProductTypeError):
            provision_catalog(engine, registry, [ProductType(name="Spectrum")])

    def test_failed_statement(self, engine, registry):
        with patch("database.provisioning.catalog_ddl", return_value=["CREATE TABLE broken ("]):
            with pytest.raises(DatabaseInitializationError):
                provision_catalog(engine, registry)

    def test_row_counts(self, engine, catalog, add_image):
        add_image("p1", {"Tags": ["a", "b"]})

        counts = get_table_row_counts(engine, ["products", "Tags_XREF", "no_such_table"])

        assert counts == {"products": 1, "Tags_XREF": 2, "no_such_table": -1}
