"""
IP Portfolio Workflow Service
Blueprint registry.
"""

from flask import current_app, g, request


def paginate_query(query, default_limit=None, max_limit=None):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default WORKFLOW_PAGE_SIZE, capped at WORKFLOW_PAGE_SIZE_MAX)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    default_limit = default_limit or current_app.config.get("WORKFLOW_PAGE_SIZE", 20)
    max_limit = max_limit or current_app.config.get("WORKFLOW_PAGE_SIZE_MAX", 100)

    total = query.count()
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def current_actor():
    """Actor resolved by the JWT middleware for this request."""
    return g.actor
