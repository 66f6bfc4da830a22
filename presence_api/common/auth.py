# presence_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Optional, Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from presence_api.common.errors import Unauthenticated, PermissionDenied
from presence_api.extensions import db
from presence_api.models.user import User


def current_user() -> Optional[User]:
    """
    The User behind the verified JWT, or None if the identity no longer
    resolves (deleted / deactivated account).
    """
    uid = get_jwt_identity()
    if uid is None:
        return None
    try:
        user = db.session.get(User, int(uid))
    except (TypeError, ValueError):
        user = User.query.filter_by(email=str(uid)).first()
    if user is None or user.status != "active":
        return None
    return user


def require_user() -> User:
    user = current_user()
    if user is None:
        raise Unauthenticated("User not found")
    return user


def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    - Uses roles in JWT if present; falls back to DB.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            claims = get_jwt() or {}
            roles: Set[str] = set(claims.get("roles") or [])
            if not roles:
                user = require_user()
                roles = set(user.role_codes())

            if not any(r in roles for r in codes):
                raise PermissionDenied("Forbidden")

            return fn(*args, **kwargs)
        return inner
    return outer
