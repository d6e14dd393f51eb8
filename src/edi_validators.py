import logging
import re
from typing import Dict, List, NamedTuple, Optional, Sequence

from cdm import ErrorKind, ValidationResult
from edi_schema_models import CodeDefinition, ElementDefinition

logger = logging.getLogger(__name__)

# --- Element validation ---
# Pure functions: no state, no mutation of their inputs, and they never raise.

_INTEGER = re.compile(r"^-?\d+$")
_DECIMAL = re.compile(r"^-?\d*\.?\d+$")
_DIGITS = re.compile(r"^\d+$")

IMPLIED_DECIMAL_TYPES = {f"N{i}" for i in range(10)}
DAYS_IN_MONTH = [31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]
MAX_SUGGESTIONS = 3

class DateFormat(NamedTuple):
    length: int
    kind: str  # date | datetime | time
    layout: str

# EDIFACT code list 2379 (date/time/period format qualifier), subset used by C507/S004.
# Layout labels describe the digits actually checked for each qualifier.
FORMAT_QUALIFIERS: Dict[str, DateFormat] = {
    "102": DateFormat(8, "date", "CCYYMMDD"),
    "203": DateFormat(12, "datetime", "CCYYMMDDHHMM"),
    "204": DateFormat(14, "datetime", "CCYYMMDDHHMMSS"),
    "602": DateFormat(6, "date", "YYMMDD"),
    "616": DateFormat(8, "datetime", "YYMMDDHH"),
    "718": DateFormat(10, "datetime", "YYMMDDHHMM"),
    "201": DateFormat(10, "datetime", "YYMMDDHHMM"),
    "303": DateFormat(4, "time", "HHMM"),
    "304": DateFormat(6, "time", "HHMMSS"),
}

def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)

def _expand_year(yy: int) -> int:
    return 2000 + yy if yy < 50 else 1900 + yy

def _check_calendar(year: int, month: int, day: int) -> ValidationResult:
    if month < 1 or month > 12:
        return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Invalid month: {month}")
    if day < 1 or day > 31:
        return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Invalid day: {day}")
    days = DAYS_IN_MONTH[month - 1]
    if month == 2 and is_leap_year(year):
        days = 29
    if day > days:
        return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Invalid day {day} for month {month}")
    return ValidationResult.ok()

def _check_clock(digits: str) -> ValidationResult:
    """Range-check HH, MM and SS for as many of them as `digits` holds."""
    if len(digits) >= 2:
        hours = int(digits[0:2])
        if hours > 23:
            return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Invalid hour: {hours}")
    if len(digits) >= 4:
        minutes = int(digits[2:4])
        if minutes > 59:
            return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Invalid minutes: {minutes}")
    if len(digits) >= 6:
        seconds = int(digits[4:6])
        if seconds > 59:
            return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Invalid seconds: {seconds}")
    return ValidationResult.ok()

def validate_date(value: str) -> ValidationResult:
    """CCYYMMDD or YYMMDD. Two-digit years pivot at 50."""
    if len(value) not in (6, 8):
        return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Invalid date length: {len(value)} (expected 6 or 8)")
    if not _DIGITS.match(value):
        return ValidationResult.fail(ErrorKind.DATA_TYPE, "Invalid date: contains non-numeric characters")
    if len(value) == 8:
        year, month, day = int(value[0:4]), int(value[4:6]), int(value[6:8])
    else:
        year, month, day = _expand_year(int(value[0:2])), int(value[2:4]), int(value[4:6])
    return _check_calendar(year, month, day)

def validate_time(value: str) -> ValidationResult:
    """HHMM, HHMMSS or HHMMSSd..d; decimal seconds are not checked."""
    if len(value) < 4:
        return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Invalid time length: {len(value)} (minimum 4)")
    if not _DIGITS.match(value):
        return ValidationResult.fail(ErrorKind.DATA_TYPE, "Invalid time: contains non-numeric characters")
    return _check_clock(value[:6])

def validate_length(value: str, schema: ElementDefinition) -> ValidationResult:
    length = len(value)
    if schema.minLength > 0 and length < schema.minLength:
        return ValidationResult.fail(ErrorKind.LENGTH, f"Value too short: {length} chars (min: {schema.minLength})")
    if schema.maxLength > 0 and length > schema.maxLength:
        return ValidationResult.fail(ErrorKind.LENGTH, f"Value too long: {length} chars (max: {schema.maxLength})")
    return ValidationResult.ok()

def validate_data_type(value: str, data_type: str) -> ValidationResult:
    if data_type == "AN":
        return ValidationResult.ok()
    if data_type == "N0":
        if not _INTEGER.match(value):
            return ValidationResult.fail(ErrorKind.DATA_TYPE, "Expected integer, found non-numeric characters")
        return ValidationResult.ok()
    if data_type in IMPLIED_DECIMAL_TYPES:
        # The decimal point is implied by the type, never written on the wire.
        if not _INTEGER.match(value):
            return ValidationResult.fail(ErrorKind.DATA_TYPE, f"Expected numeric ({data_type}), found non-numeric characters")
        return ValidationResult.ok()
    if data_type == "R":
        if not _DECIMAL.match(value):
            return ValidationResult.fail(ErrorKind.DATA_TYPE, "Expected decimal number, found invalid format")
        return ValidationResult.ok()
    if data_type == "DT":
        return validate_date(value)
    if data_type == "TM":
        return validate_time(value)
    # ID is checked against its code list only; B and unknown types are not validated.
    return ValidationResult.ok()

def suggest_codes(value: str, codes: Sequence[CodeDefinition], limit: int = MAX_SUGGESTIONS) -> List[str]:
    """Near matches for an invalid code: same first character first, then substring matches."""
    needle = value.lower()
    first = needle[:1]
    prefix = [c.code for c in codes if first and c.code.lower().startswith(first)]
    contains = [c.code for c in codes if needle and needle in c.code.lower()]
    suggestions: List[str] = []
    for code in prefix + contains:
        if code not in suggestions:
            suggestions.append(code)
    return suggestions[:limit]

def validate_code(value: str, codes: Sequence[CodeDefinition]) -> ValidationResult:
    if any(c.code == value for c in codes):
        return ValidationResult.ok()
    suggestions = suggest_codes(value, codes)
    message = f'Invalid code "{value}"'
    if suggestions:
        message += f" (similar: {', '.join(suggestions)})"
    return ValidationResult.fail(ErrorKind.INVALID_CODE, message, suggestions)

def validate_element(value: str, schema: ElementDefinition) -> ValidationResult:
    """
    Check a value against its element schema: code list, then length, then data type.

    Empty values are valid; presence of mandatory elements is not this function's concern.
    The first failing check is returned.
    """
    if not value or not value.strip():
        return ValidationResult.ok()

    if schema.codes:
        result = validate_code(value, schema.codes)
        if not result.is_valid:
            return result

    result = validate_length(value, schema)
    if not result.is_valid:
        return result

    return validate_data_type(value, schema.dataType)

def validate_date_with_format(value: str, qualifier: Optional[str]) -> ValidationResult:
    """Validate a date/time value whose layout is given by an EDIFACT format qualifier."""
    fmt = FORMAT_QUALIFIERS.get(qualifier or "")
    if fmt is None:
        logger.debug(f"Unknown date/time format qualifier '{qualifier}', checking digits only")
        if not _DIGITS.match(value):
            return ValidationResult.fail(ErrorKind.DATA_TYPE, "Date/time value contains non-numeric characters")
        return ValidationResult.ok()

    if len(value) != fmt.length:
        return ValidationResult.fail(
            ErrorKind.LENGTH,
            f"Invalid {fmt.layout} length: {len(value)} (expected {fmt.length})",
        )
    if not _DIGITS.match(value):
        return ValidationResult.fail(ErrorKind.DATA_TYPE, "Date/time contains non-numeric characters")

    if fmt.kind == "time":
        return _check_clock(value)

    if fmt.layout.startswith("CCYY"):
        year, month, day = int(value[0:4]), int(value[4:6]), int(value[6:8])
        date_length = 8
    else:
        year, month, day = _expand_year(int(value[0:2])), int(value[2:4]), int(value[4:6])
        date_length = 6

    result = _check_calendar(year, month, day)
    if not result.is_valid or fmt.kind == "date":
        return result
    return _check_clock(value[date_length:date_length + 6])
