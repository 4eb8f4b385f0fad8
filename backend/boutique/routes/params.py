# Overview: Query-string parsing shared by list endpoints.

from flask import request

from ..errors import ValidationError
from ..time_utils import parse_iso_datetime


def page_args() -> tuple[int | None, int | None]:
    return request.args.get("page", type=int), request.args.get("per_page", type=int)


def datetime_arg(name: str, raw: str | None = None):
    """Parse a query param (or an explicit raw value) as an ISO datetime."""
    try:
        return parse_iso_datetime(raw if raw is not None else request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")


def date_range_args():
    """start / end query params; a bare end date covers that whole day."""
    start = datetime_arg("start")
    end = datetime_arg("end")
    raw_end = request.args.get("end") or ""
    if end is not None and len(raw_end.strip()) == 10:
        end = end.replace(hour=23, minute=59, second=59)
    return start, end
