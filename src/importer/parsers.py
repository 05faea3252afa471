"""Field-level parsing helpers shared by CSV importers.

Values arrive from the CSV reader as raw strings (or None when a header is
absent). Every helper is lenient: malformed input maps to None rather than
raising, so a single bad cell never aborts an import.
"""

import math
import re
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional


# 01-95, 2A, 2B, 971-976
DEPARTMENT_CODE_PATTERN = re.compile(r"^(0[1-9]|[1-8][0-9]|9[0-5]|2[AB]|97[1-6])$")

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_LEADING_INT = re.compile(r"^[+-]?\d+")
_WHITESPACE = re.compile(r"\s+")
_FRENCH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_SHORT_FRENCH_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{2})$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

TRUE_VALUES = frozenset({"1", "1.0", "true", "yes", "oui"})


def parse_numeric_field(value: Any) -> Optional[float]:
    """
    Parse the leading decimal number of a value.

    "12.5" -> 12.5, "12abc" -> 12.0, "" / "abc" / None -> None

    "Infinity" and "NaN" also map to None; only finite values are stored.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else None
    match = _LEADING_FLOAT.match(str(value))
    if not match:
        return None
    return float(match.group(0))


def parse_integer_field(value: Any) -> Optional[int]:
    """
    Parse the leading integer of a value, or None.

    Whitespace anywhere in the value is dropped first, so thousands written
    as "12 345" parse as 12345. "12.7" -> 12.
    """
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = _LEADING_INT.match(_WHITESPACE.sub("", str(value)))
    if not match:
        return None
    return int(match.group(0))


def parse_boolean_field(value: Any) -> int:
    """Map common truthy spellings (1, true, yes, oui) to 1, anything else to 0."""
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return 1 if value == 1 else 0
    if isinstance(value, str):
        return 1 if value.strip().lower() in TRUE_VALUES else 0
    return 0


def trim_field(value: Optional[str]) -> Optional[str]:
    """Strip whitespace; empty results become None."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def validate_required_fields(row: Dict[str, Any], required_fields: Iterable[str]) -> List[str]:
    """Return the required fields that are missing or blank in a raw row."""
    return [name for name in required_fields if is_blank(row.get(name))]


def normalize_department_code(code: Optional[str]) -> Optional[str]:
    """
    Normalize a French department code.

    Numeric codes are zero-padded to two digits; the result must be one of
    01-95, 2A, 2B or 971-976.
    """
    if not code:
        return None
    normalized = code.strip().upper()
    if normalized.isdigit():
        normalized = normalized.zfill(2)
    if DEPARTMENT_CODE_PATTERN.match(normalized):
        return normalized
    return None


def validate_cog(cog: Optional[str]) -> bool:
    """A COG commune code is exactly five digits."""
    return bool(cog) and re.fullmatch(r"\d{5}", cog.strip()) is not None


def parse_french_date(value: Optional[str]) -> Optional[str]:
    """Convert DD/MM/YYYY into YYYY-MM-DD, or None when malformed or impossible."""
    if not value:
        return None
    match = _FRENCH_DATE.match(value.strip())
    if not match:
        return None
    day, month, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_iso_date(value: Optional[str]) -> Optional[str]:
    """Return a valid YYYY-MM-DD string unchanged, otherwise None."""
    if not value or not _ISO_DATE.match(value):
        return None
    try:
        date.fromisoformat(value)
    except ValueError:
        return None
    return value


def parse_short_french_date(value: Optional[str]) -> Optional[str]:
    """Convert DD/MM/YY into 20YY-MM-DD, or None."""
    if not value:
        return None
    match = _SHORT_FRENCH_DATE.match(value.strip())
    if not match:
        return None
    day, month, year = match.groups()
    try:
        return date(2000 + int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def validate_sexe(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    normalized = value.strip().upper()
    return normalized if normalized in ("M", "F") else None


def normalize_country_code(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.strip().upper() or None


def parse_cog(value: Optional[str]) -> Optional[str]:
    """Return a trimmed five-digit COG code, or None."""
    if not validate_cog(value):
        return None
    return value.strip()


FieldParser = Callable[[Any], Any]

# Parsers a column can name in imports.yaml
FIELD_PARSERS: Dict[str, FieldParser] = {
    "text": trim_field,
    "numeric": parse_numeric_field,
    "integer": parse_integer_field,
    "boolean": parse_boolean_field,
    "department_code": normalize_department_code,
    "cog": parse_cog,
    "french_date": parse_french_date,
    "iso_date": parse_iso_date,
    "short_french_date": parse_short_french_date,
    "sexe": validate_sexe,
    "country_code": normalize_country_code,
}


def get_field_parser(name: str) -> FieldParser:
    """Look up a column parser by name.

    Raises:
        ValueError: If no parser is registered under name
    """
    try:
        return FIELD_PARSERS[name]
    except KeyError:
        raise ValueError(
            f"unknown parser {name!r}, expected one of: {', '.join(sorted(FIELD_PARSERS))}"
        ) from None
