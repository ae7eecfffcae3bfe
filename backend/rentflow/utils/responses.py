from flask import jsonify


def success_response(data=None, message="OK", status_code=200):
    payload = {"success": True, "message": message}
    if data is not None:
        payload["data"] = data
    response = jsonify(payload)
    response.status_code = status_code
    return response


def parse_pagination(page, per_page, max_per_page: int = 50) -> tuple[int, int]:
    """Clamp query-string pagination to sane integers."""
    try:
        page_int = max(int(page), 1)
    except (TypeError, ValueError):
        page_int = 1
    try:
        per_page_int = min(max(int(per_page), 1), max_per_page)
    except (TypeError, ValueError):
        per_page_int = 10
    return page_int, per_page_int


def page_payload(items: list, total: int, page: int, per_page: int) -> dict:
    return {
        "page": page,
        "per_page": per_page,
        "total": int(total),
        "items": items,
    }
