from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation

from flask import request

from services.errors import ValidationError


def json_body() -> dict:
    """The request's JSON object, or {} when there is no JSON body."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def field(data, camel: str, snake: str = None):
    """Read a request field by its camelCase name, falling back to snake_case."""
    value = data.get(camel)
    if value is None and snake:
        value = data.get(snake)
    if isinstance(value, str):
        value = value.strip() or None
    return value


def parse_date(value, name: str) -> date:
    # Accept "2026-01-20" or a full ISO timestamp
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        pass
    try:
        return datetime.fromisoformat(value).date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}. Use YYYY-MM-DD")


def parse_time(value, name: str) -> time:
    # Accept "18:30", "18:30:00" or a full ISO timestamp
    try:
        return time.fromisoformat(value)
    except (TypeError, ValueError):
        pass
    try:
        return datetime.fromisoformat(value).time()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}. Use HH:MM")


def parse_amount(value, name: str):
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a number")
    if amount < 0:
        raise ValidationError(f"{name} must be zero or positive")
    return amount.quantize(Decimal("0.01"))


def parse_int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
