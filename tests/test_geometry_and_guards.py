# tests/test_geometry_and_guards.py
"""Tests for contain-fit sizing and the resource guards."""
from __future__ import annotations

import pytest

from thumbproxy.core.domain import OutcomeStatus, TargetGeometry
from thumbproxy.core.errors import BadRequestError, DimensionsTooLargeError, TooLargeError
from thumbproxy.core.geometry import contain
from thumbproxy.core.guards import (
    check_actual_size,
    check_declared_size,
    check_dimensions,
    parse_content_length,
    validate_identifier,
)


# ============================================================================
# contain()
# ============================================================================

class TestContain:
    @pytest.mark.parametrize(
        "source, box, expected",
        [
            ((64, 64), (50, 50), (50, 50)),
            ((64, 32), (50, 50), (50, 25)),
            ((32, 64), (50, 50), (25, 50)),
            ((2048, 1024), (50, 50), (50, 25)),
            ((10, 10), (50, 50), (50, 50)),  # upscales
            ((100, 1), (50, 50), (50, 1)),
            ((1000, 1), (50, 50), (50, 1)),  # never below 1px
            ((3, 1), (50, 50), (50, 17)),
            ((200, 100), (50, 20), (40, 20)),
        ],
    )
    def test_known_values(self, source, box, expected):
        assert contain(*source, *box) == TargetGeometry(*expected)

    def test_rounds_half_up(self):
        # 1 * 2.5 = 2.5 -> 3 (round() would give 2)
        assert contain(4, 1, 10, 10) == TargetGeometry(10, 3)

    @pytest.mark.parametrize("max_w, max_h", [(50, 50), (50, 20), (7, 31), (1, 1)])
    def test_properties_hold_for_all_small_sources(self, max_w, max_h):
        for w in range(1, 120, 7):
            for h in range(1, 120, 5):
                out = contain(w, h, max_w, max_h)
                assert 1 <= out.width <= max_w
                assert 1 <= out.height <= max_h
                assert out.width == max_w or out.height == max_h
                # aspect preserved within rounding (and the 1px floor)
                assert abs(out.width * h - out.height * w) <= w + h

    @pytest.mark.parametrize("args", [(0, 10, 50, 50), (10, -1, 50, 50), (10, 10, 0, 50)])
    def test_rejects_non_positive(self, args):
        with pytest.raises(ValueError):
            contain(*args)


# ============================================================================
# Guards
# ============================================================================

class TestIdentifierGuard:
    def test_accepts_numeric_id(self):
        assert validate_identifier("123456789012345678") == "123456789012345678"

    def test_accepts_max_length(self):
        assert validate_identifier("a" * 100) == "a" * 100

    @pytest.mark.parametrize("identifier", ["", None, "a" * 101])
    def test_rejects(self, identifier):
        with pytest.raises(BadRequestError) as exc_info:
            validate_identifier(identifier)
        assert exc_info.value.status == OutcomeStatus.BAD_REQUEST

    def test_custom_max_length(self):
        with pytest.raises(BadRequestError):
            validate_identifier("abcd", max_length=3)


class TestSizeGuards:
    def test_declared_absent_passes(self):
        check_declared_size(None, 10)

    def test_declared_at_cap_passes(self):
        check_declared_size(10, 10)

    def test_declared_over_cap(self):
        with pytest.raises(TooLargeError) as exc_info:
            check_declared_size(11, 10)
        assert exc_info.value.status == OutcomeStatus.TOO_LARGE

    def test_actual_over_cap(self):
        with pytest.raises(TooLargeError):
            check_actual_size(2 * 1024 * 1024 + 1, 2 * 1024 * 1024)

    def test_actual_at_cap_passes(self):
        check_actual_size(2 * 1024 * 1024, 2 * 1024 * 1024)

    @pytest.mark.parametrize(
        "header, expected",
        [(None, None), ("123", 123), (" 42 ", 42), ("abc", None), ("-5", None), ("", None)],
    )
    def test_parse_content_length(self, header, expected):
        assert parse_content_length(header) == expected


class TestDimensionGuard:
    def test_within_cap(self):
        check_dimensions(2048, 2048, 2048)

    @pytest.mark.parametrize("w, h", [(2049, 10), (10, 2049), (4096, 4096)])
    def test_over_cap(self, w, h):
        with pytest.raises(DimensionsTooLargeError) as exc_info:
            check_dimensions(w, h, 2048)
        assert exc_info.value.status == OutcomeStatus.DIMENSIONS_TOO_LARGE
