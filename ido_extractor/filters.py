from __future__ import annotations

import math
import re
from datetime import date
from typing import Dict, Iterable, Mapping

from ido_extractor.domain.contracts import FilterableField
from ido_extractor.errors import ValidationError


FIELD_TYPES = {"string", "date", "number"}
INPUT_TYPES = {"dropdown", "calendar", "text"}
ALLOWED_OPERATORS = ("=", "<>", "!=", ">", ">=", "<", "<=", "LIKE")

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def normalize_operator(operator: str | None) -> str | None:
    candidate = str(operator or "").strip()
    if candidate.upper() == "LIKE":
        return "LIKE"
    if candidate in ALLOWED_OPERATORS:
        return candidate
    return None


def _is_calendar_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _parse_number(value: str) -> float | None:
    try:
        number = float(value)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def format_number(number: float) -> str:
    if number.is_integer():
        return str(int(number))
    return repr(number)


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def validate_filter_value(field: FilterableField, value: str | None) -> str | None:
    text = str(value or "").strip()
    if not text:
        return None

    if field.type == "date":
        if not _DATE_PATTERN.match(text):
            return "Date must be in YYYY-MM-DD format"
        if not _is_calendar_date(text):
            return "Invalid date"
    elif field.type == "number":
        if _parse_number(text) is None:
            return "Must be a valid number"
    return None


def _invalid(field: FilterableField, value: str, reason: str) -> ValidationError:
    return ValidationError(
        code="invalid_filter_value",
        message_key="invalid_filter_value",
        http_status=400,
        critical=False,
        details=f"{reason} for {field.name}: {value}",
        payload={"field": field.name, "value": value, "reason": reason},
    )


def build_filter_clause(field: FilterableField, value: str) -> str:
    operator = normalize_operator(field.operator)
    if operator is None:
        raise _invalid(field, value, f"Unsupported operator {field.operator!r}")

    if field.type == "date":
        if not _DATE_PATTERN.match(value):
            raise _invalid(field, value, "Invalid date format, expected YYYY-MM-DD")
        if not _is_calendar_date(value):
            raise _invalid(field, value, "Invalid date")
        return f"{field.name} {operator} '{value}'"

    if field.type == "number":
        number = _parse_number(value)
        if number is None:
            raise _invalid(field, value, "Invalid number")
        return f"{field.name} {operator} {format_number(number)}"

    return f"{field.name} {operator} {_quote(value)}"


def build_filters_from_values(fields: Iterable[FilterableField], values: Mapping[str, object] | None) -> str:
    """Render the IDO ``filter`` expression for the non-empty values, in field order."""
    provided: Dict[str, object] = dict(values or {})
    parts = []
    for field in fields:
        value = str(provided.get(field.name) or "").strip()
        if not value:
            continue
        parts.append(build_filter_clause(field, value))
    return " AND ".join(parts)
