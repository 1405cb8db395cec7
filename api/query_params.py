"""Query string helpers shared by the list endpoints. Bad values raise ValidationError (400)."""
from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type

from flask import request

from utils.exceptions import ValidationError

MAX_LIMIT = 100


def parse_pagination(default_limit: int = 20) -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", str(default_limit)))
    except ValueError:
        raise ValidationError("page and limit must be integers")
    page = max(page, 1)
    limit = max(1, min(limit, MAX_LIMIT))
    return page, limit


def parse_sort(columns: Dict[str, object], default: str) -> List:
    """Comma separated fields, '-' prefix for descending."""
    sort_param = request.args.get("sort", default)
    fields = [s.strip() for s in sort_param.split(",") if s.strip()]
    order_by = []
    for f in fields:
        desc = f.startswith("-")
        key = f[1:] if desc else f
        col = columns.get(key)
        if col is None:
            raise ValidationError(f"Unsupported sort field: {key}", details={"allowed": sorted(columns)})
        order_by.append(col.desc() if desc else col.asc())
    return order_by


def parse_date_param(name: str) -> Optional[date]:
    val = request.args.get(name)
    if not val:
        return None
    try:
        return date.fromisoformat(val)
    except ValueError:
        raise ValidationError(f"Invalid date format for {name}. Use YYYY-MM-DD")


def parse_decimal_param(name: str) -> Optional[Decimal]:
    val = request.args.get(name)
    if not val:
        return None
    try:
        number = Decimal(val)
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{name} must be a number")
    return number


def parse_enum_param(name: str, enum_cls: Type[Enum]):
    val = request.args.get(name)
    if not val or val.upper() == "ALL":
        return None
    try:
        return enum_cls(val.upper())
    except ValueError:
        allowed = [e.value for e in enum_cls]
        raise ValidationError(f"{name} must be one of {allowed}")


def flag(name: str) -> bool:
    return request.args.get(name, "false").lower() in ("1", "true", "yes")
