"""
Timeflow Process Tracking
Blueprint registry.
"""

from flask import abort, make_response, request

from timeflow.utils.errors import E, api_error


def json_body() -> dict:
    """Request JSON as a dict.

    A missing or unparseable body reads as ``{}``; any other JSON value
    (list, string, number) aborts with 400 ``ERR_VALIDATION_INVALID``.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(make_response(api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")))
    return data


def paginate_items(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already filtered list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (page_items, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + max(limit, 0)], total
