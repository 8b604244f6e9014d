"""
Catalog - Attribute Classifier.

============================================================
PURPOSE
============================================================
Interprets an attribute's declared domain type.

- is_vector: declared type is VECTOR<T>
- resolved_type: T for vectors, the declared type otherwise,
  STRING when undeclared
- temporal_format: external representation of DATE,
  TIMESTAMP and TIMESTAMP_TZ values

Pure functions, no state, no I/O. Comparison is
case-insensitive throughout. Unrecognised type names
resolve to STRING and round-trip as opaque strings.

============================================================
TEMPORAL ENCODING
============================================================
External (caller-facing) formats:
    DATE          YYYY-MM-DD
    TIMESTAMP     YYYY-MM-DDTHH:MM:SS.fffZ        (UTC)
    TIMESTAMP_TZ  YYYY-MM-DDTHH:MM:SS.fff+HH:MM

Values are bound to the backend as ISO-8601 text and
rendered back through the external format on read.

============================================================
"""

import re
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Optional, Union

from core.exceptions import CatalogValidationError

from .models import AttributeDefinition


class DomainType(str, Enum):
    """Attribute domain types."""

    STRING = "STRING"
    NUMBER = "NUMBER"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    TIMESTAMP_TZ = "TIMESTAMP_TZ"


_VECTOR_PATTERN = re.compile(r"^\s*VECTOR\s*<\s*([A-Za-z_][A-Za-z0-9_]*)\s*>\s*$", re.IGNORECASE)

# %f renders as milliseconds and %z as +HH:MM, see format_temporal()
DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
TIMESTAMP_TZ_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

_TEMPORAL_FORMATS = {
    DomainType.DATE: DATE_FORMAT,
    DomainType.TIMESTAMP: TIMESTAMP_FORMAT,
    DomainType.TIMESTAMP_TZ: TIMESTAMP_TZ_FORMAT,
}


# ============================================================
# CLASSIFICATION
# ============================================================

def is_vector(attr: AttributeDefinition) -> bool:
    """True iff the declared type is syntactically VECTOR<T>."""
    if not attr.declared_type:
        return False
    return _VECTOR_PATTERN.match(attr.declared_type) is not None


def _to_domain_type(name: str) -> DomainType:
    try:
        return DomainType(name.strip().upper())
    except ValueError:
        return DomainType.STRING


def resolved_type(attr: AttributeDefinition) -> DomainType:
    """Element type of a vector, the declared type otherwise, STRING when undeclared."""
    if not attr.declared_type:
        return DomainType.STRING
    match = _VECTOR_PATTERN.match(attr.declared_type)
    if match:
        return _to_domain_type(match.group(1))
    return _to_domain_type(attr.declared_type)


def temporal_format(domain_type: DomainType) -> Optional[str]:
    """External format of a temporal type, None for every other type."""
    return _TEMPORAL_FORMATS.get(domain_type)


def is_temporal(domain_type: DomainType) -> bool:
    return domain_type in _TEMPORAL_FORMATS


# ============================================================
# TEMPORAL CODEC
# ============================================================

def _parse_datetime(text: str) -> datetime:
    text = text.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _normalize(value: Union[date, datetime], domain_type: DomainType) -> Union[date, datetime]:
    if domain_type == DomainType.DATE:
        return value.date() if isinstance(value, datetime) else value

    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)

    if domain_type == DomainType.TIMESTAMP:
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def parse_temporal(value: Any, domain_type: DomainType) -> Union[date, datetime]:
    """
    Parse a temporal value into a date or datetime.

    Accepts date/datetime objects and ISO-8601 text (with a trailing
    Z or an explicit offset). TIMESTAMP values are normalised to naive
    UTC, TIMESTAMP_TZ values keep their offset.

    Raises:
        ValueError: If the value is not a recognisable date/time
    """
    if isinstance(value, (date, datetime)):
        return _normalize(value, domain_type)

    text = str(value).strip()
    if domain_type == DomainType.DATE and len(text) == 10:
        return datetime.strptime(text, DATE_FORMAT).date()
    return _normalize(_parse_datetime(text), domain_type)


def format_temporal(value: Union[date, datetime], domain_type: DomainType) -> str:
    """Render a temporal value through its external format."""
    value = _normalize(value, domain_type)
    pattern = _TEMPORAL_FORMATS[domain_type]

    if isinstance(value, datetime):
        pattern = pattern.replace("%f", f"{value.microsecond // 1000:03d}")
        if "%z" in pattern:
            offset = value.strftime("%z") or "+0000"
            pattern = pattern.replace("%z", f"{offset[:3]}:{offset[3:5]}")
    return value.strftime(pattern)


# ============================================================
# VALUE ENCODING
# ============================================================

def encode_value(element: str, value: Any, domain_type: DomainType) -> Any:
    """
    Encode a caller-supplied value as a bind parameter.

    Temporal values are validated and bound as ISO-8601 text; every
    other type is bound as its string form.

    Raises:
        CatalogValidationError: If a temporal value cannot be parsed
    """
    if value is None:
        return None
    if not is_temporal(domain_type):
        return str(value)

    try:
        parsed = parse_temporal(value, domain_type)
    except (TypeError, ValueError) as e:
        raise CatalogValidationError(element, value, f"not a valid {domain_type.value}: {e}") from e

    if isinstance(parsed, datetime):
        return parsed.isoformat(sep=" ")
    return parsed.isoformat()


def decode_value(raw: Any, domain_type: DomainType) -> Optional[str]:
    """
    Decode a stored value into its external string form.

    Temporal values that cannot be parsed are returned as stored.
    """
    if raw is None:
        return None
    if is_temporal(domain_type):
        try:
            return format_temporal(parse_temporal(raw, domain_type), domain_type)
        except (TypeError, ValueError):
            return str(raw)
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw)


__all__ = [
    "DomainType",
    "DATE_FORMAT",
    "TIMESTAMP_FORMAT",
    "TIMESTAMP_TZ_FORMAT",
    "is_vector",
    "resolved_type",
    "temporal_format",
    "is_temporal",
    "parse_temporal",
    "format_temporal",
    "encode_value",
    "decode_value",
]
