from datetime import datetime

from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from presence_api.common.auth import require_user, requires_roles
from presence_api.common.errors import InvalidArgument, PermissionDenied
from presence_api.common.http import ok, json_body, page_limit
from presence_api.models.scan_log import ScanLog
from presence_api.services.attendance_ledger import local_day_bounds
from presence_api.services.context import get_context
from presence_api.services.scan_verifier import ScanVerifier

bp = Blueprint("presence_scan", __name__, url_prefix="/api/v1/presence")


@bp.post("/scan")
@jwt_required()
def verify_scan():
    """
    POST /api/v1/presence/scan

    Body:
      token | payload   : presence token id, or a self-describing payload
      lat, lng          : scanner coordinates (decimal degrees)
      network_id        : optional network identifier (e.g. WiFi SSID)
      biometric_sample  : 128-number face embedding
    """
    agent = require_user()
    data = json_body()
    token = data.get("token")
    if token is None:
        token = data.get("payload")

    res = ScanVerifier(get_context()).verify(
        agent,
        token,
        data.get("lat"),
        data.get("lng"),
        network_id=data.get("network_id"),
        biometric_sample=data.get("biometric_sample"),
    )
    return ok(res)


@bp.get("/logs")
@requires_roles("owner", "manager")
def list_logs():
    """
    GET /api/v1/presence/logs?subject_id=&result=&date=&page=&limit=

    Verification attempts at the caller's site, newest first.
    """
    me = require_user()
    if me.employee is None:
        raise PermissionDenied("Forbidden")
    q = ScanLog.query.filter(ScanLog.site_id == me.employee.site_id)

    subject_id = request.args.get("subject_id", type=int)
    if subject_id:
        q = q.filter(ScanLog.subject_id == subject_id)

    result = request.args.get("result")  # MARKED, REJECTED
    if result:
        q = q.filter(ScanLog.result == result.upper())

    date_str = request.args.get("date")
    if date_str:
        try:
            d = datetime.strptime(date_str, "%Y-%m-%d").date()
        except ValueError:
            raise InvalidArgument("date must be YYYY-MM-DD")
        # the site's local day, the same one attendance work_date uses
        start, end = local_day_bounds(me.employee.site, d)
        q = q.filter(ScanLog.created_at >= start, ScanLog.created_at < end)

    page, limit = page_limit()
    pagination = q.order_by(ScanLog.created_at.desc(), ScanLog.id.desc()).paginate(
        page=page, per_page=limit, error_out=False
    )
    return ok([row.to_dict() for row in pagination.items], page=page, limit=limit, total=pagination.total)
