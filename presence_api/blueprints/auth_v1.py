from datetime import timedelta

from flask import Blueprint, jsonify
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    jwt_required,
)
from presence_api.common.auth import require_user
from presence_api.common.errors import Unauthenticated
from presence_api.common.http import json_body
from presence_api.models.user import User

bp = Blueprint("auth_v1", __name__, url_prefix="/api/v1/auth")

def _user_payload(u: User):
    emp = u.employee
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "roles": u.role_codes(),
        "employee_id": emp.id if emp else None,
        "site_id": emp.site_id if emp else None,
    }

def _claims(u: User):
    return {"roles": u.role_codes(), "email": u.email, "name": u.full_name, "employee_id": u.employee_id}

@bp.post("/login")
def login():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or u.status != "active" or not u.check_password(password):
        raise Unauthenticated("Invalid credentials")

    access  = create_access_token(identity=str(u.id), additional_claims=_claims(u), expires_delta=timedelta(days=1))
    refresh = create_refresh_token(identity=str(u.id), additional_claims={"roles": u.role_codes()})
    return jsonify({"success": True, "access": access, "refresh": refresh, "user": _user_payload(u)}), 200

@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    u = require_user()
    new_access = create_access_token(identity=str(u.id), additional_claims=_claims(u))
    return jsonify({"success": True, "access": new_access}), 200

@bp.get("/me")
@jwt_required()
def me():
    u = require_user()
    return jsonify({"success": True, "data": _user_payload(u)}), 200
