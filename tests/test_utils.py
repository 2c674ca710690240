"""Unit tests for request field coercion helpers."""
import pytest

from app.showcase.errors import ValidationError
from app.showcase.utils import MAX_ID, MIN_ID, parse_int, parse_int_list


class TestParseInt:
    def test_accepts_ints_and_numeric_strings(self):
        assert parse_int(5, "x") == 5
        assert parse_int(" 42 ", "x") == 42
        assert parse_int("-3", "x") == -3
        assert parse_int(str(MAX_ID), "x") == MAX_ID
        assert parse_int(MIN_ID, "x") == MIN_ID

    @pytest.mark.parametrize("raw", ["²", "--5", "", "abc", "4.5", True, None, 4.0, [1]])
    def test_rejects_non_integers(self, raw):
        with pytest.raises(ValidationError):
            parse_int(raw, "x")

    @pytest.mark.parametrize("raw", [10**30, -(10**30), MAX_ID + 1, str(MAX_ID + 1), "9" * 5000])
    def test_rejects_values_outside_64_bits(self, raw):
        with pytest.raises(ValidationError):
            parse_int(raw, "x")

    def test_list_reports_bad_entry(self):
        with pytest.raises(ValidationError):
            parse_int_list([1, "--2"], "sdgIds")
