"""
Checklist Automation Service
Blueprint helpers.
"""

from flask import request


def _bounded_int_arg(name, default, minimum, maximum=None):
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    value = max(value, minimum)
    return min(value, maximum) if maximum is not None else value


def paginate_query(query, default_limit=50, max_limit=500):
    """Slice ``query`` by the ``?limit=&offset=`` query params.

    Unparseable values fall back to the defaults; ``limit`` is clamped to
    ``1..max_limit`` and ``offset`` to ``>= 0``.

    Returns:
        (rows, total) where ``total`` counts the unsliced query.
    """
    limit = _bounded_int_arg("limit", default_limit, 1, max_limit)
    offset = _bounded_int_arg("offset", 0, 0)
    return query.limit(limit).offset(offset).all(), query.count()
