# presence_api/common/http.py
from flask import jsonify, request

def ok(data=None, status=200, **meta):
    payload = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return jsonify(payload), status

def fail(message="Bad Request", status=400, code=None, detail=None, errors=None):
    err = {"message": message}
    if code: err["code"] = code
    if detail: err["detail"] = detail
    if errors: err["errors"] = errors
    return jsonify({"success": False, "error": err}), status

def json_body() -> dict:
    """Request JSON as a dict; anything else is a malformed request."""
    data = request.get_json(silent=True, force=True)
    if not isinstance(data, dict):
        from presence_api.common.errors import InvalidArgument  # late import to avoid circulars
        raise InvalidArgument("Request body must be a JSON object")
    return data

def page_limit(default_limit=50, max_limit=200):
    try:
        page  = max(int(request.args.get("page", 1)), 1)
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except ValueError:
        page, limit = 1, default_limit
    return page, limit
