"""
Catalog - Models.

============================================================
PURPOSE
============================================================
Plain data types exchanged with catalog callers.

- Product: identity row plus its (separately loaded) references
- ProductType: type descriptor, only the name is required
- Reference: one stored copy of a product's content
- Metadata: multi-valued attribute map scoped to one product
- ProductPage: transient page of a filtered result set

None of these types talk to the backend.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union


# ============================================================
# ENUMS
# ============================================================

class TransferStatus(str, Enum):
    """Product transfer status."""

    TRANSFERRING = "TRANSFERING"
    """Content is still being moved into the data store."""

    RECEIVED = "RECEIVED"
    """All references have landed in the data store."""


class ProductStructure(str, Enum):
    """Product structure descriptor."""

    FLAT = "Flat"
    HIERARCHICAL = "Hierarchical"
    STREAM = "Stream"


def coerce_enum(enum_cls, value: Any) -> Any:
    """Map a stored string onto its enum member, keeping unknown values raw."""
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return value


# ============================================================
# SCHEMA TYPES
# ============================================================

@dataclass(frozen=True)
class AttributeDefinition:
    """
    One attribute (element) definition from the schema registry.

    declared_type is the raw domain type string, e.g. "STRING",
    "TIMESTAMP" or "VECTOR<STRING>". None means undeclared.
    """

    name: str
    declared_type: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ProductType:
    """Product type descriptor. Only the name is needed by the catalog."""

    name: str
    description: Optional[str] = None
    type_id: Optional[str] = None


# ============================================================
# PRODUCT & REFERENCE
# ============================================================

@dataclass
class Reference:
    """One stored copy of a product's content."""

    original_reference: str
    data_store_reference: str
    file_size: Optional[int] = 0
    mime_type: Optional[str] = None


@dataclass
class Product:
    """
    A cataloged data product.

    product_id and received_time are assigned by the catalog on
    insert; callers never supply them.
    """

    product_name: str
    product_type: ProductType
    product_structure: Union[ProductStructure, str] = ProductStructure.FLAT
    transfer_status: Union[TransferStatus, str] = TransferStatus.TRANSFERRING
    product_id: Optional[int] = None
    received_time: Optional[datetime] = None
    references: List[Reference] = field(default_factory=list)

    @property
    def type_name(self) -> str:
        return self.product_type.name


# ============================================================
# METADATA
# ============================================================

class Metadata:
    """
    Multi-valued attribute map for a single product.

    Every attribute maps to a list of string values. Scalar
    attributes hold one value; vector attributes hold zero or
    more. An attribute mapped to an empty list is present with
    no values.
    """

    def __init__(self, values: Optional[Mapping[str, Union[Any, Iterable[Any]]]] = None) -> None:
        self._values: Dict[str, List[str]] = {}
        for name, value in (values or {}).items():
            self.add(name, value)

    @staticmethod
    def _as_list(value: Union[Any, Iterable[Any]]) -> List[str]:
        if value is None:
            return []
        if isinstance(value, (list, tuple, set, frozenset)):
            return [str(v) for v in value if v is not None]
        return [str(value)]

    def add(self, name: str, value: Union[Any, Iterable[Any]]) -> None:
        """Append one value (or a list of values) to an attribute."""
        self._values.setdefault(name, []).extend(self._as_list(value))

    def replace(self, name: str, value: Union[Any, Iterable[Any]]) -> None:
        """Replace all values of an attribute."""
        self._values[name] = self._as_list(value)

    def remove(self, name: str) -> None:
        self._values.pop(name, None)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value of an attribute."""
        values = self._values.get(name)
        return values[0] if values else default

    def get_all(self, name: str) -> List[str]:
        """Get all values of an attribute (empty list when absent)."""
        return list(self._values.get(name, []))

    def contains(self, name: str) -> bool:
        return name in self._values

    def keys(self) -> List[str]:
        return list(self._values.keys())

    def items(self) -> List[Tuple[str, List[str]]]:
        return [(name, list(values)) for name, values in self._values.items()]

    def to_dict(self) -> Dict[str, List[str]]:
        """Convert to dictionary."""
        return {name: list(values) for name, values in self._values.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Metadata):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._values!r})"


@dataclass(frozen=True)
class AttributeOmission:
    """An attribute that could not be read, and why."""

    name: str
    reason: str


class ProjectedMetadata(Metadata):
    """
    Metadata read back from the catalog.

    omissions lists attributes whose read failed (missing table or
    column). An attribute that simply has no stored value is absent
    from the map and is not an omission.
    """

    def __init__(
        self,
        values: Optional[Mapping[str, Union[Any, Iterable[Any]]]] = None,
        omissions: Optional[List[AttributeOmission]] = None,
    ) -> None:
        super().__init__(values)
        self.omissions: List[AttributeOmission] = list(omissions or [])

    def omit(self, name: str, reason: str) -> None:
        self.omissions.append(AttributeOmission(name=name, reason=reason))

    @property
    def is_complete(self) -> bool:
        return not self.omissions

    @property
    def omitted_names(self) -> List[str]:
        return [o.name for o in self.omissions]


# ============================================================
# PAGE
# ============================================================

@dataclass
class ProductPage:
    """
    One page of a filtered product-id result set.

    page_num is 1-based. A blank page (num=0, size=0, hits=0)
    stands for an empty result set.
    """

    page_num: int
    page_size: int
    num_of_hits: int
    products: List[Product] = field(default_factory=list)

    @classmethod
    def blank_page(cls) -> "ProductPage":
        return cls(page_num=0, page_size=0, num_of_hits=0, products=[])

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return -(-self.num_of_hits // self.page_size)

    @property
    def is_first_page(self) -> bool:
        return self.page_num <= 1

    @property
    def is_last_page(self) -> bool:
        return self.page_num >= self.total_pages

    @property
    def is_blank(self) -> bool:
        return self.num_of_hits == 0 and self.page_size == 0

    @property
    def product_ids(self) -> List[Optional[int]]:
        return [p.product_id for p in self.products]
