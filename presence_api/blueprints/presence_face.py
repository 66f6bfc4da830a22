from flask import Blueprint
from flask_jwt_extended import jwt_required

from presence_api.common.auth import current_user
from presence_api.common.http import ok, json_body
from presence_api.services.context import get_context
from presence_api.services.face_registry import FaceRegistry

bp = Blueprint("presence_face", __name__, url_prefix="/api/v1/presence/face")


# --- Employee Endpoints ---

@bp.post("/register")
@jwt_required()
def register_face():
    # {"embedding": [128 floats]} computed on the capture device
    data = json_body()
    FaceRegistry(get_context()).register(current_user(), data.get("embedding"))
    return ok({"success": True}, status=201)


# --- Manager Endpoints ---

@bp.post("/reset")
@jwt_required()
def reset_face():
    data = json_body()
    removed = FaceRegistry(get_context()).reset(current_user(), data.get("subject_id"))
    return ok({"success": True, "removed": removed})
