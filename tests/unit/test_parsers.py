"""Unit tests for field parsing helpers."""

import pytest

from src.importer.parsers import (
    FIELD_PARSERS,
    get_field_parser,
    normalize_country_code,
    normalize_department_code,
    parse_boolean_field,
    parse_french_date,
    parse_integer_field,
    parse_iso_date,
    parse_cog,
    parse_numeric_field,
    parse_short_french_date,
    trim_field,
    validate_cog,
    validate_required_fields,
    validate_sexe,
)


class TestNumericParsing:

    @pytest.mark.parametrize("raw,expected", [
        ("12.5", 12.5),
        ("  7", 7.0),
        ("-3", -3.0),
        ("1e3", 1000.0),
        ("12abc", 12.0),
        (".5", 0.5),
    ])
    def test_parses_leading_number(self, raw, expected):
        assert parse_numeric_field(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "abc", "n/a", None, "Infinity", "NaN", float("inf")])
    def test_non_numeric_is_none(self, raw):
        assert parse_numeric_field(raw) is None

    def test_integer_truncates(self):
        assert parse_integer_field("12.7") == 12
        assert parse_integer_field(" 42 ") == 42
        assert parse_integer_field("x1") is None
        assert parse_integer_field("") is None

    def test_integer_ignores_thousands_separators(self):
        assert parse_integer_field("12 345") == 12345
        assert parse_integer_field("1\u202f234\u00a0567") == 1234567


class TestTextParsing:

    def test_trim(self):
        assert trim_field("  Lyon ") == "Lyon"

    def test_blank_is_none(self):
        assert trim_field("   ") is None
        assert trim_field(None) is None

    def test_boolean_spellings(self):
        assert [parse_boolean_field(v) for v in ["1", "1.0", "TRUE", "yes", " oui "]] == [1] * 5
        assert [parse_boolean_field(v) for v in ["0", "no", "", None, 2]] == [0] * 5
        assert parse_boolean_field(True) == 1

    def test_sexe(self):
        assert validate_sexe(" f ") == "F"
        assert validate_sexe("X") is None

    def test_country_code(self):
        assert normalize_country_code(" fr ") == "FR"
        assert normalize_country_code("") is None


class TestGeographicCodes:

    @pytest.mark.parametrize("raw,expected", [
        ("1", "01"),
        ("75", "75"),
        ("2a", "2A"),
        ("2B", "2B"),
        ("974", "974"),
        ("96", None),
        ("977", None),
        ("", None),
    ])
    def test_department_codes(self, raw, expected):
        assert normalize_department_code(raw) == expected

    def test_cog(self):
        assert validate_cog("75056") is True
        assert validate_cog(" 2A004 ") is False
        assert validate_cog("7505") is False
        assert validate_cog(None) is False

    def test_parse_cog(self):
        assert parse_cog(" 75056 ") == "75056"
        assert parse_cog("2A004") is None


class TestDates:

    def test_french_date(self):
        assert parse_french_date("14/07/1789") == "1789-07-14"
        assert parse_french_date("1/2/2024") == "2024-02-01"

    def test_french_date_rejects_impossible(self):
        assert parse_french_date("31/02/2024") is None
        assert parse_french_date("2024-02-01") is None

    def test_iso_date(self):
        assert parse_iso_date("2024-02-29") == "2024-02-29"
        assert parse_iso_date("2023-02-29") is None
        assert parse_iso_date("29/02/2024") is None

    def test_short_french_date(self):
        assert parse_short_french_date("05/03/24") == "2024-03-05"
        assert parse_short_french_date("32/01/24") is None


class TestRequiredFields:

    def test_reports_missing_and_blank(self):
        row = {"COG": "75056", "commune": "  ", "departement": None}
        assert validate_required_fields(row, ["COG", "commune", "departement", "absent"]) == [
            "commune", "departement", "absent"
        ]

    def test_all_present(self):
        assert validate_required_fields({"COG": "75056"}, ["COG"]) == []


class TestParserRegistry:

    def test_lookup_by_name(self):
        assert get_field_parser("department_code") is normalize_department_code
        assert get_field_parser("integer")("12 345") == 12345

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="unknown parser 'zipcode'"):
            get_field_parser("zipcode")

    def test_every_parser_tolerates_blank_input(self):
        for name, parser in FIELD_PARSERS.items():
            assert parser(None) in (None, 0), name
            assert parser("") in (None, 0), name
