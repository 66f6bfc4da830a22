from flask import Blueprint
from flask_jwt_extended import jwt_required

from presence_api.common.auth import current_user
from presence_api.common.http import ok
from presence_api.services.context import get_context
from presence_api.services.token_issuer import TokenIssuer

bp = Blueprint("presence_tokens", __name__, url_prefix="/api/v1/presence/tokens")


@bp.post("")
@jwt_required()
def issue_token():
    """
    POST /api/v1/presence/tokens

    Mints a fresh single-use token for the caller. Devices rotate the code
    every `refresh_after` seconds so a live one is always on screen.
    """
    ctx = get_context()
    tok = TokenIssuer(ctx).issue(current_user())
    return ok({
        "token": tok.id,
        "expires_at": tok.expires_at.isoformat(),
        "refresh_after": int(ctx.settings.token_refresh.total_seconds()),
    }, status=201)
