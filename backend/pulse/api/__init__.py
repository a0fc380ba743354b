"""HTTP blueprints and the request helpers they share."""

import time
from flask import request


def get_request_body():
    """Decoded JSON object body, or None when missing or malformed."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def get_int_arg(name, default=0):
    """Get a non-negative integer query param, falling back to ``default``."""
    value = request.args.get(name)
    if value:
        try:
            parsed = int(value)
        except ValueError:
            return default
        return parsed if parsed >= 0 else default
    return default


def new_id(prefix):
    """Time-based identifier such as ``issue_1718000000000000000``."""
    return f"{prefix}_{time.time_ns()}"
