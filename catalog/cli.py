"""
Catalog - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the product catalog.

- Provisions and verifies the catalog layout
- Lists, shows and pages products
- Loads configuration from CLI, environment and YAML

============================================================
USAGE
============================================================
python -m catalog.cli --registry types.yaml provision
python -m catalog.cli --registry types.yaml verify
python -m catalog.cli --registry types.yaml list --type Image --top 10
python -m catalog.cli --registry types.yaml show 42 --metadata --references
python -m catalog.cli --registry types.yaml page Image --page 2

============================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from core.exceptions import CatalogConfigurationError, CatalogException
from database.provisioning import provision_catalog, verify_catalog_tables

from .config import CatalogConfig
from .models import Product, ProductPage
from .registry import InMemoryRegistry
from .store import ColumnBasedCatalog


logger = logging.getLogger("catalog.cli")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="catalog",
        description="Column-based product catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  provision  - Create the catalog tables and views for registered types
  verify     - Check that every catalog table and view exists
  list       - List products, newest first
  show       - Show one product
  page       - Show one page of a product type

Examples:
  %(prog)s --registry types.yaml provision
  %(prog)s --registry types.yaml list --type Image --top 10
  %(prog)s --registry types.yaml page Image --page 2
        """
    )

    # --------------------------------------------------------
    # Connection Options
    # --------------------------------------------------------
    connection_group = parser.add_argument_group("Connection Options")

    connection_group.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="YAML configuration file (default: environment)",
    )

    connection_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="SQLAlchemy database URL (overrides configuration)",
    )

    connection_group.add_argument(
        "--registry",
        type=str,
        metavar="PATH",
        help="YAML product type registry (overrides configuration)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------
    commands = parser.add_subparsers(dest="command", required=True)

    provision = commands.add_parser("provision", help="Create catalog tables and views")
    provision.add_argument(
        "--type", dest="types", action="append", metavar="TYPE",
        help="Product type to provision (repeatable, default: all registered)",
    )

    verify = commands.add_parser("verify", help="Check catalog tables and views")
    verify.add_argument(
        "--type", dest="types", action="append", metavar="TYPE",
        help="Product type to verify (repeatable, default: all registered)",
    )

    list_cmd = commands.add_parser("list", help="List products, newest first")
    list_cmd.add_argument("--type", dest="product_type", metavar="TYPE", help="Only this product type")
    list_cmd.add_argument("--top", type=int, metavar="N", help="Only the N newest products")

    show = commands.add_parser("show", help="Show one product")
    show.add_argument("product_id", type=int, help="Product id")
    show.add_argument("--metadata", action="store_true", help="Include attributes")
    show.add_argument("--references", action="store_true", help="Include references")

    page = commands.add_parser("page", help="Show one page of a product type")
    page.add_argument("product_type", help="Product type name")
    page.add_argument("--page", dest="page_num", type=int, default=1, help="Page number (default: 1)")

    return parser


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> CatalogConfig:
    """
    Build catalog configuration from CLI arguments.

    Args:
        args: Parsed arguments

    Returns:
        CatalogConfig instance
    """
    config = CatalogConfig.from_yaml(args.config) if args.config else CatalogConfig.from_env()
    if args.database_url:
        config.database_url = args.database_url
    if args.registry:
        config.registry_path = args.registry
    return config.validate()


def _registry(config: CatalogConfig) -> InMemoryRegistry:
    if not config.registry_path:
        raise CatalogConfigurationError("registry_path", "a registry file is required (--registry)")
    return InMemoryRegistry.from_yaml(config.registry_path)


# ============================================================
# OUTPUT
# ============================================================

def format_product(product: Product) -> str:
    received = product.received_time.isoformat() if product.received_time else "-"
    status = str(getattr(product.transfer_status, "value", product.transfer_status))
    structure = str(getattr(product.product_structure, "value", product.product_structure))
    return (
        f"  {product.product_id:6d}  {product.product_name:30s}  {product.type_name:15s}  "
        f"{structure:12s}  {status:11s}  {received}"
    )


def print_products(products: List[Product]) -> None:
    print(f"\n{len(products)} product(s)")
    print("=" * 60)
    for product in products:
        print(format_product(product))
    print()


def print_page(page: ProductPage) -> None:
    if page.is_blank:
        print("\nNo products")
        print()
        return
    print(f"\nPage {page.page_num} of {page.total_pages} ({page.num_of_hits} hits, {page.page_size} per page)")
    print("=" * 60)
    for product in page.products:
        print(format_product(product))
    print()


# ============================================================
# COMMANDS
# ============================================================

def run_command(args: argparse.Namespace, config: CatalogConfig) -> int:
    registry = _registry(config)
    catalog = ColumnBasedCatalog.from_config(config, schema_registry=registry)
    try:
        return _dispatch(args, catalog, registry)
    finally:
        catalog.engine.dispose()


def _dispatch(args: argparse.Namespace, catalog: ColumnBasedCatalog, registry: InMemoryRegistry) -> int:
    if args.command in ("provision", "verify"):
        types = [registry.get_type_by_name(n) for n in args.types] if args.types else None
        if args.command == "provision":
            names = provision_catalog(catalog.engine, registry, types)
            print(f"Provisioned {len(names)} tables and views")
            return 0
        results = verify_catalog_tables(catalog.engine, registry, types)
        for name, exists in results.items():
            print(f"  [{'OK' if exists else '!!'}] {name}")
        return 0 if all(results.values()) else 1

    if args.command == "list":
        product_type = catalog.get_product_type(args.product_type) if args.product_type else None
        if args.top is not None:
            products = catalog.get_top_n_products(args.top, product_type)
        elif product_type is not None:
            products = catalog.get_products_by_product_type(product_type)
        else:
            products = catalog.get_products()
        print_products(products)
        return 0

    if args.command == "show":
        product = catalog.get_product_by_id(args.product_id)
        print_products([product])
        if args.metadata:
            metadata = catalog.get_metadata(product)
            for name, values in metadata.items():
                print(f"  {name}: {', '.join(values)}")
            for omission in metadata.omissions:
                print(f"  {omission.name}: <unreadable: {omission.reason}>")
        if args.references:
            for ref in catalog.get_product_references(product):
                print(f"  {ref.original_reference} -> {ref.data_store_reference} ({ref.file_size} bytes, {ref.mime_type})")
        return 0

    if args.command == "page":
        product_type = catalog.get_product_type(args.product_type)
        print_page(catalog.paged_query(None, product_type, args.page_num))
        return 0

    return 1


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = build_config(args)
        return run_command(args, config)
    except CatalogException as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
