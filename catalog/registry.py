"""
Catalog - Registries.

============================================================
PURPOSE
============================================================
Interfaces the catalog consumes from its collaborators,
plus an in-memory implementation loadable from YAML.

- SchemaRegistry: attribute definitions per product type
- ProductTypeRegistry: type name -> ProductType descriptor

The catalog never caches what a registry returns; the
registry is authoritative and may change between calls.

============================================================
YAML FORMAT
============================================================
product_types:
  - name: Image
    description: Raster image products
    attributes:
      - name: Resolution
        type: STRING
      - name: Tags
        type: VECTOR<STRING>

============================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from core.exceptions import CatalogConfigurationError, UnknownProductTypeError

from .models import AttributeDefinition, ProductType


logger = logging.getLogger(__name__)


# ============================================================
# INTERFACES
# ============================================================

class SchemaRegistry(ABC):
    """Supplies the attribute definitions of a product type."""

    @abstractmethod
    def get_attributes(self, product_type: ProductType) -> List[AttributeDefinition]:
        """
        Get the attribute definitions of a product type.

        Raises:
            UnknownProductTypeError: If the type is not registered
        """
        pass


class ProductTypeRegistry(ABC):
    """Resolves product type names to descriptors."""

    @abstractmethod
    def get_type_by_name(self, name: str) -> ProductType:
        """
        Resolve a type name.

        Raises:
            UnknownProductTypeError: If the type is not registered
        """
        pass


# ============================================================
# YAML DOCUMENT SCHEMA
# ============================================================

class AttributeSpec(BaseModel):
    """One attribute entry in a registry document."""
    name: str = Field(min_length=1)
    type: Optional[str] = None
    description: Optional[str] = None


class ProductTypeSpec(BaseModel):
    """One product type entry in a registry document."""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    type_id: Optional[str] = None
    attributes: List[AttributeSpec] = Field(default_factory=list)


class RegistryDocument(BaseModel):
    """Top-level registry document."""
    product_types: List[ProductTypeSpec] = Field(default_factory=list)


# ============================================================
# IN-MEMORY REGISTRY
# ============================================================

class InMemoryRegistry(SchemaRegistry, ProductTypeRegistry):
    """
    Dictionary-backed schema and product-type registry.

    Thread-safe; types can be registered or replaced at runtime.
    """

    def __init__(self) -> None:
        self._types: Dict[str, ProductType] = {}
        self._attributes: Dict[str, List[AttributeDefinition]] = {}
        self._lock = threading.Lock()

    def register(
        self,
        product_type: Union[ProductType, str],
        attributes: Iterable[Union[AttributeDefinition, Mapping[str, Any]]] = (),
    ) -> ProductType:
        """
        Register (or replace) a product type and its attributes.

        Attributes may be AttributeDefinition objects or mappings
        with "name" and optional "type"/"description" keys.
        """
        if isinstance(product_type, str):
            product_type = ProductType(name=product_type)

        definitions = []
        for attr in attributes:
            if not isinstance(attr, AttributeDefinition):
                attr = AttributeDefinition(
                    name=attr["name"],
                    declared_type=attr.get("type"),
                    description=attr.get("description"),
                )
            definitions.append(attr)

        with self._lock:
            self._types[product_type.name] = product_type
            self._attributes[product_type.name] = definitions

        logger.debug(f"Registered product type {product_type.name}: attributes={len(definitions)}")
        return product_type

    def unregister(self, name: str) -> None:
        with self._lock:
            self._types.pop(name, None)
            self._attributes.pop(name, None)

    def get_attributes(self, product_type: ProductType) -> List[AttributeDefinition]:
        with self._lock:
            if product_type.name not in self._attributes:
                raise UnknownProductTypeError(product_type.name)
            return list(self._attributes[product_type.name])

    def get_type_by_name(self, name: str) -> ProductType:
        with self._lock:
            if name not in self._types:
                raise UnknownProductTypeError(name, operation="get_type_by_name")
            return self._types[name]

    def product_types(self) -> List[ProductType]:
        with self._lock:
            return list(self._types.values())

    # --------------------------------------------------------
    # LOADERS
    # --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InMemoryRegistry":
        """
        Build a registry from a parsed registry document.

        Raises:
            CatalogConfigurationError: If the document is malformed
        """
        try:
            document = RegistryDocument.model_validate(data or {})
        except ValidationError as e:
            raise CatalogConfigurationError("registry", str(e)) from e

        registry = cls()
        for spec in document.product_types:
            registry.register(
                ProductType(name=spec.name, description=spec.description, type_id=spec.type_id),
                [
                    AttributeDefinition(name=a.name, declared_type=a.type, description=a.description)
                    for a in spec.attributes
                ],
            )
        logger.info(f"Loaded registry: product_types={len(document.product_types)}")
        return registry

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "InMemoryRegistry":
        """
        Load a registry from a YAML file.

        Raises:
            CatalogConfigurationError: If the file is missing or malformed
        """
        path = Path(path)
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise CatalogConfigurationError("registry_path", f"cannot load {path}: {e}") from e
        return cls.from_dict(data or {})


__all__ = [
    "SchemaRegistry",
    "ProductTypeRegistry",
    "InMemoryRegistry",
    "RegistryDocument",
]
