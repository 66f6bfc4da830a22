import logging
import secrets

from sqlalchemy import delete

from presence_api.extensions import db
from presence_api.common.errors import Unauthenticated, NotFound, PermissionDenied
from presence_api.models.presence_token import PresenceToken

log = logging.getLogger(__name__)

TOKEN_BYTES = 32


class TokenIssuer:
    """Mints short-lived single-use presence tokens."""

    def __init__(self, ctx):
        self.ctx = ctx

    def issue(self, user) -> PresenceToken:
        if user is None:
            raise Unauthenticated("Login required")

        emp = user.employee
        if emp is None:
            raise NotFound("No employee record linked to this user")
        if emp.role not in self.ctx.settings.issuer_roles:
            raise PermissionDenied("Role not authorized")

        now = self.ctx.now()
        token = PresenceToken(
            id=secrets.token_urlsafe(TOKEN_BYTES),
            subject_id=emp.id,
            site_id=emp.site_id,
            role=emp.role,
            issued_at=now,
            expires_at=now + self.ctx.settings.token_ttl,
            used=False,
        )
        db.session.add(token)
        db.session.commit()

        log.debug("issued presence token for subject=%s site=%s", emp.id, emp.site_id)
        return token

    def purge_expired(self) -> int:
        """Delete tokens that can no longer be claimed. Returns rows removed."""
        res = db.session.execute(
            delete(PresenceToken).where(PresenceToken.expires_at < self.ctx.now())
        )
        db.session.commit()
        return res.rowcount or 0
