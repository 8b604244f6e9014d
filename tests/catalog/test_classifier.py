"""
Tests for the Attribute Classifier.

============================================================
PURPOSE
============================================================
Covers:
1. Vector detection
2. Domain type resolution
3. Temporal formats
4. Value encoding and decoding

============================================================
"""

from datetime import date, datetime, timezone

import pytest

from catalog.classifier import (
    DomainType,
    decode_value,
    encode_value,
    format_temporal,
    is_temporal,
    is_vector,
    parse_temporal,
    resolved_type,
    temporal_format,
)
from catalog.models import AttributeDefinition
from core.exceptions import CatalogValidationError


def attr(declared_type=None):
    return AttributeDefinition(name="Element", declared_type=declared_type)


# ============================================================
# CLASSIFICATION TESTS
# ============================================================

class TestIsVector:
    """Tests for VECTOR<T> detection."""

    @pytest.mark.parametrize("declared", ["VECTOR<STRING>", "vector<date>", "Vector< TIMESTAMP >"])
    def test_vector_types(self, declared):
        assert is_vector(attr(declared)) is True

    @pytest.mark.parametrize("declared", [None, "", "STRING", "VECTOR", "VECTOR<", "LIST<STRING>"])
    def test_scalar_types(self, declared):
        assert is_vector(attr(declared)) is False


class TestResolvedType:
    """Tests for domain type resolution."""

    def test_undeclared_is_string(self):
        assert resolved_type(attr()) == DomainType.STRING

    def test_case_insensitive(self):
        assert resolved_type(attr("number")) == DomainType.NUMBER
        assert resolved_type(attr("Timestamp_TZ")) == DomainType.TIMESTAMP_TZ

    def test_vector_element_type(self):
        assert resolved_type(attr("vector<timestamp>")) == DomainType.TIMESTAMP

    def test_unknown_type_is_string(self):
        assert resolved_type(attr("BLOB")) == DomainType.STRING
        assert resolved_type(attr("VECTOR<GEOMETRY>")) == DomainType.STRING


class TestTemporalFormat:
    """Tests for temporal format lookup."""

    def test_temporal_types_have_formats(self):
        assert temporal_format(DomainType.DATE) == "%Y-%m-%d"
        assert temporal_format(DomainType.TIMESTAMP) is not None
        assert temporal_format(DomainType.TIMESTAMP_TZ) is not None

    def test_other_types_have_none(self):
        assert temporal_format(DomainType.STRING) is None
        assert temporal_format(DomainType.NUMBER) is None

    def test_is_temporal(self):
        assert is_temporal(DomainType.DATE)
        assert not is_temporal(DomainType.NUMBER)


# ============================================================
# CODEC TESTS
# ============================================================

class TestTemporalCodec:
    """Tests for parsing and formatting temporal values."""

    def test_timestamp_is_normalised_to_naive_utc(self):
        parsed = parse_temporal("2024-05-01T14:30:00.250+02:00", DomainType.TIMESTAMP)
        assert parsed == datetime(2024, 5, 1, 12, 30, 0, 250000)
        assert parsed.tzinfo is None

    def test_timestamp_tz_keeps_offset(self):
        parsed = parse_temporal("2024-05-01T14:30:00.250+02:00", DomainType.TIMESTAMP_TZ)
        assert parsed.utcoffset().total_seconds() == 7200

    def test_format_timestamp(self):
        value = datetime(2024, 5, 1, 12, 30, 0, 250000)
        assert format_temporal(value, DomainType.TIMESTAMP) == "2024-05-01T12:30:00.250Z"

    def test_format_timestamp_tz(self):
        value = parse_temporal("2024-05-01T14:30:00.250+02:00", DomainType.TIMESTAMP_TZ)
        assert format_temporal(value, DomainType.TIMESTAMP_TZ) == "2024-05-01T14:30:00.250+02:00"

    def test_format_date_from_datetime(self):
        assert format_temporal(datetime(2024, 5, 1, 23, 59), DomainType.DATE) == "2024-05-01"


class TestValueEncoding:
    """Tests for bind-parameter encoding and read decoding."""

    def test_encode_non_temporal_as_string(self):
        assert encode_value("Width", 1024, DomainType.NUMBER) == "1024"
        assert encode_value("Resolution", "1024x768", DomainType.STRING) == "1024x768"

    def test_encode_none(self):
        assert encode_value("Resolution", None, DomainType.STRING) is None

    def test_encode_date(self):
        assert encode_value("ShotDate", date(2024, 5, 1), DomainType.DATE) == "2024-05-01"
        assert encode_value("ShotDate", "2024-05-01", DomainType.DATE) == "2024-05-01"

    def test_encode_timestamp_from_external_format(self):
        encoded = encode_value("Captured", "2024-05-01T12:30:00.250Z", DomainType.TIMESTAMP)
        assert encoded == "2024-05-01 12:30:00.250000"

    def test_encode_aware_datetime_as_timestamp(self):
        value = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        assert encode_value("Captured", value, DomainType.TIMESTAMP) == "2024-05-01 12:30:00"

    def test_encode_bad_temporal_raises(self):
        with pytest.raises(CatalogValidationError) as exc_info:
            encode_value("Captured", "yesterday", DomainType.TIMESTAMP)
        assert exc_info.value.element == "Captured"

    def test_decode_timestamp_text(self):
        assert decode_value("2024-05-01 12:30:00.250000", DomainType.TIMESTAMP) == "2024-05-01T12:30:00.250Z"

    def test_decode_native_date(self):
        assert decode_value(date(2024, 5, 1), DomainType.DATE) == "2024-05-01"

    def test_decode_number(self):
        assert decode_value(42, DomainType.NUMBER) == "42"
        assert decode_value(3.5, DomainType.NUMBER) == "3.5"

    def test_decode_none(self):
        assert decode_value(None, DomainType.TIMESTAMP) is None

    def test_decode_unparseable_temporal_returned_as_stored(self):
        assert decode_value("not a date", DomainType.DATE) == "not a date"
