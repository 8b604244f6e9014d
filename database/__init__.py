"""
Database Package Initialization.

============================================================
CATALOG BACKEND LAYER
============================================================

This package provides backend access for the product
catalog: engine creation, connection and transaction
scopes, and provisioning of the relational layout.

REQUIRED:
- Every value reaches the backend as a bound parameter
- Every write runs inside an explicit transaction
- Every failure raises a catalog exception
- Connections are released on every exit path

============================================================
"""

# Core engine and scopes
from .engine import (
    # Engine creation
    DEFAULT_DATABASE_URL,
    get_database_url,
    create_database_engine,
    get_engine,
    set_engine,
    dispose_engine,

    # Scopes
    connection_scope,
    transaction_scope,

    # Verification
    verify_database_connection,
)

# Layout provisioning
from .provisioning import (
    catalog_ddl,
    provision_catalog,
    required_tables,
    verify_catalog_tables,
    get_table_row_counts,
)


# =============================================================
# PACKAGE VERSION
# =============================================================

__version__ = "1.0.0"


# =============================================================
# ALL EXPORTS
# =============================================================

__all__ = [
    # Version
    "__version__",

    # Engine
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "get_engine",
    "set_engine",
    "dispose_engine",
    "connection_scope",
    "transaction_scope",
    "verify_database_connection",

    # Provisioning
    "catalog_ddl",
    "provision_catalog",
    "required_tables",
    "verify_catalog_tables",
    "get_table_row_counts",
]
