"""
Tests for the Schema Projector and the registries.

============================================================
PURPOSE
============================================================
Covers:
1. Table and column layout of a product type
2. Identifier validation
3. Registry-authoritative projection
4. YAML registry loading

============================================================
"""

import pytest

from catalog.classifier import DomainType
from catalog.models import AttributeDefinition, ProductType
from catalog.registry import InMemoryRegistry
from catalog.schema import SchemaProjector, validate_identifier
from core.exceptions import (
    CatalogConfigurationError,
    InvalidIdentifierError,
    UnknownProductTypeError,
)


REGISTRY_YAML = """
product_types:
  - name: Image
    description: Raster image products
    attributes:
      - name: Resolution
        type: STRING
      - name: Tags
        type: VECTOR<STRING>
  - name: Granule
    attributes:
      - name: StartTime
        type: TIMESTAMP
"""


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def projector(registry):
    return SchemaProjector(registry)


# ============================================================
# PROJECTION TESTS
# ============================================================

class TestSchemaProjection:
    """Tests for projecting a type onto its tables."""

    def test_table_names(self, projector, image_type):
        schema = projector.project(image_type)

        assert schema.metadata_table == "Image_metadata"
        assert schema.reference_table == "Image_reference"
        assert schema.view_name == "Image_VIEW"
        assert schema.xref_tables == ["Tags_XREF"]

    def test_scalar_and_vector_split(self, projector, image_type):
        schema = projector.project(image_type)

        assert [a.name for a in schema.scalar_attributes] == [
            "Resolution", "Width", "Captured", "ShotDate", "Published",
        ]
        assert [a.name for a in schema.vector_attributes] == ["Tags"]

    def test_domain_types_and_formats(self, projector, image_type):
        schema = projector.project(image_type)

        assert schema.get("Captured").domain_type == DomainType.TIMESTAMP
        assert schema.get("Captured").temporal_format is not None
        assert schema.get("Resolution").temporal_format is None
        assert schema.get("Tags").domain_type == DomainType.STRING

    def test_undeclared_attribute_is_string(self, projector, document_type):
        schema = projector.project(document_type)
        assert schema.get("Author").domain_type == DomainType.STRING

    def test_view_columns_include_base_columns(self, projector, image_type):
        columns = projector.project(image_type).view_columns

        assert "ProductId" in columns
        assert "DataStoreReference" in columns
        assert "Tags" in columns

    def test_restrict_keeps_schema_order(self, projector, image_type):
        schema = projector.project(image_type).restrict(["Tags", "Resolution", "Nope"])
        assert schema.names == ["Resolution", "Tags"]

    def test_unknown_type_propagates(self, projector):
        with pytest.raises(UnknownProductTypeError):
            projector.project(ProductType(name="Spectrum"))

    def test_registry_is_asked_every_time(self, projector, registry, image_type):
        before = projector.project(image_type)
        registry.register(image_type, [{"name": "Resolution", "type": "STRING"}])
        after = projector.project(image_type)

        assert len(before.attributes) == 6
        assert after.names == ["Resolution"]

    def test_duplicate_attribute_keeps_first(self, registry):
        registry.register("Dup", [
            AttributeDefinition("Level", "NUMBER"),
            AttributeDefinition("Level", "STRING"),
        ])
        schema = SchemaProjector(registry).project(ProductType(name="Dup"))

        assert schema.names == ["Level"]
        assert schema.get("Level").domain_type == DomainType.NUMBER


class TestIdentifierValidation:
    """Tests for identifiers interpolated into SQL."""

    @pytest.mark.parametrize("name", ["Resolution", "Tags_2", "a"])
    def test_valid_identifiers(self, name):
        assert validate_identifier(name) == name

    @pytest.mark.parametrize("name", ["", "1abc", "Bad-Name", "x; DROP TABLE products", "a b", "_x"])
    def test_invalid_identifiers(self, name):
        with pytest.raises(InvalidIdentifierError):
            validate_identifier(name)

    def test_too_long(self):
        with pytest.raises(InvalidIdentifierError):
            validate_identifier("a" * 64)

    def test_known_set(self):
        assert validate_identifier("Tags", known={"Tags"}) == "Tags"
        with pytest.raises(InvalidIdentifierError):
            validate_identifier("Other", known={"Tags"})

    def test_bad_attribute_name_rejected(self, registry):
        registry.register("Broken", [{"name": "bad name"}])
        with pytest.raises(InvalidIdentifierError):
            SchemaProjector(registry).project(ProductType(name="Broken"))

    def test_bad_type_name_rejected(self, registry):
        registry.register("Image'--", [])
        with pytest.raises(InvalidIdentifierError):
            SchemaProjector(registry).project(ProductType(name="Image'--"))

    def test_attribute_colliding_with_catalog_column_rejected(self, registry):
        registry.register("Clash", [{"name": "productname"}])
        with pytest.raises(InvalidIdentifierError):
            SchemaProjector(registry).project(ProductType(name="Clash"))


# ============================================================
# REGISTRY TESTS
# ============================================================

class TestInMemoryRegistry:
    """Tests for the dictionary-backed registry."""

    def test_get_type_by_name(self, registry):
        image = registry.get_type_by_name("Image")
        assert image.name == "Image"
        assert image.description == "Raster images"

    def test_unknown_type(self, registry):
        with pytest.raises(UnknownProductTypeError):
            registry.get_type_by_name("Spectrum")

    def test_register_string_and_mappings(self):
        registry = InMemoryRegistry()
        product_type = registry.register("Granule", [{"name": "StartTime", "type": "TIMESTAMP"}])

        attributes = registry.get_attributes(product_type)
        assert attributes == [AttributeDefinition("StartTime", "TIMESTAMP")]

    def test_unregister(self, registry, image_type):
        registry.unregister("Image")
        with pytest.raises(UnknownProductTypeError):
            registry.get_attributes(image_type)

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "types.yaml"
        path.write_text(REGISTRY_YAML)

        registry = InMemoryRegistry.from_yaml(path)

        assert [t.name for t in registry.product_types()] == ["Image", "Granule"]
        tags = registry.get_attributes(registry.get_type_by_name("Image"))[1]
        assert tags.declared_type == "VECTOR<STRING>"

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(CatalogConfigurationError):
            InMemoryRegistry.from_yaml(tmp_path / "missing.yaml")

    def test_from_dict_malformed(self):
        with pytest.raises(CatalogConfigurationError):
            InMemoryRegistry.from_dict({"product_types": [{"attributes": []}]})
