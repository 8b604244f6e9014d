"""
Tests for the catalog CLI.

============================================================
PURPOSE
============================================================
Covers:
1. Argument parsing
2. provision / verify / list / show / page commands
3. Error exit codes

============================================================
"""

import pytest

from catalog import ColumnBasedCatalog, InMemoryRegistry, Metadata, Product, Reference
from catalog.cli import create_parser, main
from database.engine import create_database_engine


REGISTRY_YAML = """
product_types:
  - name: Image
    description: Raster images
    attributes:
      - name: Resolution
      - name: Tags
        type: VECTOR<STRING>
"""


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Registry file plus a file-backed SQLite URL."""
    for key in ("CATALOG_DATABASE_URL", "DATABASE_URL", "CATALOG_REGISTRY_PATH", "CATALOG_PAGE_SIZE"):
        monkeypatch.delenv(key, raising=False)
    registry_path = tmp_path / "types.yaml"
    registry_path.write_text(REGISTRY_YAML)
    url = f"sqlite:///{tmp_path / 'catalog.db'}"
    return ["--registry", str(registry_path), "--database-url", url], registry_path, url


def seed(registry_path, url):
    registry = InMemoryRegistry.from_yaml(registry_path)
    engine = create_database_engine(url)
    try:
        catalog = ColumnBasedCatalog(engine, registry)
        product = Product(
            product_name="scene-1",
            product_type=registry.get_type_by_name("Image"),
            references=[Reference("in/scene-1.tif", "archive/scene-1.tif", 4096, "image/tiff")],
        )
        catalog.add_product(product)
        catalog.add_metadata(Metadata({"Resolution": "1024x768", "Tags": ["coast", "dawn"]}), product)
        catalog.add_product_references(product)
        return product.product_id
    finally:
        engine.dispose()


# ============================================================
# PARSER TESTS
# ============================================================

class TestParser:
    """Tests for argument parsing."""

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])

    def test_page_defaults(self):
        args = create_parser().parse_args(["page", "Image"])
        assert args.page_num == 1
        assert args.log_level == "WARNING"

    def test_repeatable_type(self):
        args = create_parser().parse_args(["provision", "--type", "Image", "--type", "Document"])
        assert args.types == ["Image", "Document"]


# ============================================================
# COMMAND TESTS
# ============================================================

class TestCommands:
    """Tests for the CLI commands."""

    def test_provision_then_verify(self, cli_env, capsys):
        base, _, _ = cli_env

        assert main(base + ["provision"]) == 0
        assert "Provisioned 5 tables and views" in capsys.readouterr().out

        assert main(base + ["verify"]) == 0
        out = capsys.readouterr().out
        assert "[OK] Image_VIEW" in out
        assert "[!!]" not in out

    def test_verify_before_provision(self, cli_env, capsys):
        base, _, _ = cli_env

        assert main(base + ["verify"]) == 1
        assert "[!!] products" in capsys.readouterr().out

    def test_list(self, cli_env, capsys):
        base, registry_path, url = cli_env
        main(base + ["provision"])
        seed(registry_path, url)
        capsys.readouterr()

        assert main(base + ["list", "--type", "Image"]) == 0
        out = capsys.readouterr().out
        assert "1 product(s)" in out
        assert "scene-1" in out

    def test_list_top_zero(self, cli_env, capsys):
        base, registry_path, url = cli_env
        main(base + ["provision"])
        seed(registry_path, url)
        capsys.readouterr()

        assert main(base + ["list", "--top", "0"]) == 0
        assert "0 product(s)" in capsys.readouterr().out

    def test_show_with_metadata_and_references(self, cli_env, capsys):
        base, registry_path, url = cli_env
        main(base + ["provision"])
        product_id = seed(registry_path, url)
        capsys.readouterr()

        assert main(base + ["show", str(product_id), "--metadata", "--references"]) == 0
        out = capsys.readouterr().out
        assert "Resolution: 1024x768" in out
        assert "Tags: coast, dawn" in out
        assert "in/scene-1.tif -> archive/scene-1.tif (4096 bytes, image/tiff)" in out

    def test_show_missing_product(self, cli_env, capsys):
        base, _, _ = cli_env
        main(base + ["provision"])

        assert main(base + ["show", "99"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_page_of_empty_type(self, cli_env, capsys):
        base, _, _ = cli_env
        main(base + ["provision"])
        capsys.readouterr()

        assert main(base + ["page", "Image"]) == 0
        assert "No products" in capsys.readouterr().out

    def test_page(self, cli_env, capsys):
        base, registry_path, url = cli_env
        main(base + ["provision"])
        seed(registry_path, url)
        capsys.readouterr()

        assert main(base + ["page", "Image", "--page", "1"]) == 0
        assert "Page 1 of 1 (1 hits, 20 per page)" in capsys.readouterr().out

    def test_unknown_type(self, cli_env, capsys):
        base, _, _ = cli_env
        main(base + ["provision"])

        assert main(base + ["page", "Spectrum"]) == 1
        assert "Unknown product type 'Spectrum'" in capsys.readouterr().err

    def test_registry_required(self, cli_env, capsys):
        _, _, url = cli_env

        assert main(["--database-url", url, "list"]) == 1
        assert "registry" in capsys.readouterr().err

    def test_config_file(self, cli_env, tmp_path, capsys):
        _, registry_path, url = cli_env
        config_path = tmp_path / "catalog.yaml"
        config_path.write_text(f"catalog:\n  database_url: {url}\n  registry_path: {registry_path}\n  page_size: 2\n")
        main(["--config", str(config_path), "provision"])
        seed(registry_path, url)
        capsys.readouterr()

        assert main(["--config", str(config_path), "page", "Image"]) == 0
        assert "2 per page" in capsys.readouterr().out
