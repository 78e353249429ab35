"""
Print Production Workflow
Blueprint registry.
"""

from flask import request


def limit_arg(default_limit=50, max_limit=500):
    """Read ``?limit=`` from the query string, clamped to ``1..max_limit``."""
    try:
        limit = int(request.args.get("limit", default_limit))
    except (ValueError, TypeError):
        limit = default_limit
    return max(1, min(limit, max_limit))


def bool_arg(name, default=False):
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
