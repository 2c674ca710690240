from __future__ import annotations

from datetime import datetime

from flask import request

from app.showcase.errors import ValidationError


def json_payload() -> dict:
    """Parse the request body as a JSON object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def clean_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def optional_str(value: object) -> str | None:
    return clean_str(value) or None


# Signed 64-bit: the widest integer column any supported store accepts.
MIN_ID = -(2**63)
MAX_ID = 2**63 - 1


def is_storable_int(value: int) -> bool:
    return MIN_ID <= value <= MAX_ID


def parse_int(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        try:
            result = int(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be an integer.") from None
    else:
        raise ValidationError(f"{field} must be an integer.")
    if not is_storable_int(result):
        raise ValidationError(f"{field} is out of range.")
    return result


def parse_int_list(value: object, field: str) -> list[int]:
    """Parse a JSON list of integer ids. Order is preserved, duplicates are kept."""
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of integers.")
    return [parse_int(v, field) for v in value]


def parse_str_list(value: object, field: str) -> list[str]:
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of strings.")
    out: list[str] = []
    for v in value:
        if not isinstance(v, str) or not v.strip():
            raise ValidationError(f"{field} entries must be non-empty strings.")
        out.append(v.strip())
    return out


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
