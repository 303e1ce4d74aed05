"""
Smart Clearance
Blueprint registry.
"""

from flask import request


def pagination_args(default_limit=50, max_limit=200):
    """Read limit/offset query params.

    Query params:
        limit  — max items (default 50, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def int_arg(name, default):
    """Integer query param with fallback on junk input."""
    try:
        return int(request.args.get(name, default))
    except (ValueError, TypeError):
        return default
