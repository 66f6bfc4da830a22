# presence_api/services/verification_token.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import update

from presence_api.extensions import db
from presence_api.common.errors import InvalidArgument, NotFound, PermissionDenied
from presence_api.models.employee import Employee
from presence_api.models.presence_token import PresenceToken
from presence_api.models.site import Site
from presence_api.services.geofence import parse_coordinate

log = logging.getLogger(__name__)

PAYLOAD_VERSION = 1


@dataclass
class ClaimedToken:
    """What a successful claim yields: who is being verified, where, and any
    evidence the token itself carries."""
    scheme: str
    subject: Employee
    site: Site
    ref: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    network_id: Optional[str] = None


class VerificationToken:
    """Resolves the scanned material and claims it, exactly once."""
    scheme = ""

    def __init__(self, ctx):
        self.ctx = ctx

    def peek_subject_id(self, raw) -> Optional[int]:
        """Best-effort subject id for audit logging, no side effects."""
        return None

    def peek_site_id(self, raw) -> Optional[int]:
        """Best-effort site id for audit logging, no side effects."""
        return None

    def claim(self, raw, agent, now: datetime) -> ClaimedToken:
        raise NotImplementedError


class CentrallyIssued(VerificationToken):
    """Opaque ids minted by the TokenIssuer and stored in presence_tokens."""
    scheme = "central"

    def _peek(self, raw) -> Optional[PresenceToken]:
        if not isinstance(raw, str) or not raw.strip():
            return None
        return db.session.get(PresenceToken, raw.strip())

    def peek_subject_id(self, raw):
        tok = self._peek(raw)
        return tok.subject_id if tok else None

    def peek_site_id(self, raw):
        tok = self._peek(raw)
        return tok.site_id if tok else None

    def claim(self, raw, agent, now):
        if not isinstance(raw, str) or not raw.strip():
            raise InvalidArgument("Missing scan data")
        token_id = raw.strip()

        # compare-and-swap: the row is flipped only if still unused and live
        stmt = (
            update(PresenceToken)
            .where(
                PresenceToken.id == token_id,
                PresenceToken.used.is_(False),
                PresenceToken.expires_at >= now,
            )
            .values(used=True, used_at=now, claimed_by=agent.id if agent else None)
            .execution_options(synchronize_session=False)
        )
        res = db.session.execute(stmt)

        tok = db.session.get(PresenceToken, token_id, populate_existing=True)
        if res.rowcount != 1:
            if tok is None:
                raise NotFound("Token session missing")
            if tok.used:
                raise PermissionDenied("QR already used")
            raise InvalidArgument("QR expired")

        subject = db.session.get(Employee, tok.subject_id)
        site = db.session.get(Site, tok.site_id)
        if subject is None:
            raise NotFound("Subject not found")
        if site is None:
            raise NotFound("Site not found")
        return ClaimedToken(scheme=self.scheme, subject=subject, site=site, ref=tok.id)


def _first(data: dict, *keys) -> Any:
    for k in keys:
        v = data.get(k)
        if v is not None and v != "":
            return v
    return None


def _parse_issued_at(v) -> Optional[datetime]:
    """Epoch milliseconds, or an ISO-8601 string (older clients)."""
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        try:
            return datetime.fromtimestamp(v / 1000.0, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(v, str):
        try:
            dt = datetime.fromisoformat(v.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is not None:
            dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
        return dt
    return None


def _as_int(v) -> Optional[int]:
    if isinstance(v, bool):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _payload_location(data: dict):
    """(lat, lng) carried by the payload, (None, None) if it carries none."""
    lat, lng = data.get("lat"), data.get("lng")
    if lat is None and lng is None:
        return None, None
    lat = parse_coordinate(lat, -90.0, 90.0)
    lng = parse_coordinate(lng, -180.0, 180.0)
    if lat is None or lng is None:
        raise InvalidArgument("Payload location must be valid lat/lng")
    return lat, lng


class SelfDescribing(VerificationToken):
    """
    Client-generated payloads that rotate on the subject's device:

        {"v": 1, "eid": 12, "sid": 3, "ts": 1718000000000,
         "lat": 12.97, "lng": 77.59, "net": "Office-5G", "n": "k3j9x"}

    Nothing is persisted. A payload is admitted once, within the freshness
    window, through the replay cache. Location and network come from the
    client and are trusted as reported.
    """
    scheme = "self_describing"

    def _decode(self, raw) -> dict:
        data = raw
        if isinstance(raw, str):
            try:
                data = json.loads(raw)
            except ValueError:
                raise InvalidArgument("Malformed payload")
        if not isinstance(data, dict):
            raise InvalidArgument("Malformed payload")
        return data

    def peek_subject_id(self, raw):
        try:
            data = self._decode(raw)
        except InvalidArgument:
            return None
        subject_id = _as_int(_first(data, "eid", "subject_id", "employeeId"))
        if subject_id is None or db.session.get(Employee, subject_id) is None:
            return None
        return subject_id

    def peek_site_id(self, raw):
        try:
            data = self._decode(raw)
        except InvalidArgument:
            return None
        site_id = _as_int(_first(data, "sid", "site_id", "siteId"))
        if site_id is None or db.session.get(Site, site_id) is None:
            return None
        return site_id

    def claim(self, raw, agent, now):
        data = self._decode(raw)

        version = data.get("v", PAYLOAD_VERSION)
        if version != PAYLOAD_VERSION:
            raise InvalidArgument(f"Unsupported payload version: {version}")

        subject_id = _as_int(_first(data, "eid", "subject_id", "employeeId"))
        site_id = _as_int(_first(data, "sid", "site_id", "siteId"))
        ts_raw = _first(data, "ts", "timestamp")
        issued_at = _parse_issued_at(ts_raw)
        if subject_id is None or site_id is None or issued_at is None:
            raise InvalidArgument("Malformed payload")
        lat, lng = _payload_location(data)

        agent_emp = agent.employee if agent is not None else None
        if agent_emp is not None and agent_emp.site_id != site_id:
            raise PermissionDenied("Wrong site. Please use the correct QR code.")

        window = self.ctx.settings.payload_freshness
        if now - issued_at > window:
            raise InvalidArgument("Live QR expired. Use the rotating code from the app.")
        # a future-dated payload would outlive its nonce in the replay cache
        if issued_at - now > window:
            raise InvalidArgument("Live QR timestamp is ahead of server time")

        subject = db.session.get(Employee, subject_id)
        if subject is None:
            raise NotFound("Employee not found")
        site = db.session.get(Site, site_id)
        if site is None:
            raise NotFound("Site not found")
        if subject.site_id != site.id:
            raise PermissionDenied("Employee is not registered at this site")

        nonce = _first(data, "n", "nonce", "token") or f"{subject_id}_{ts_raw}"
        if not self.ctx.replay_cache.admit(str(nonce), now):
            raise PermissionDenied("Security signature already used. Wait for rotation.")

        return ClaimedToken(
            scheme=self.scheme,
            subject=subject,
            site=site,
            ref=str(nonce),
            lat=lat,
            lng=lng,
            network_id=_first(data, "net", "ssid"),
        )


STRATEGIES = {
    CentrallyIssued.scheme: CentrallyIssued,
    SelfDescribing.scheme: SelfDescribing,
}


def strategy_for(ctx) -> VerificationToken:
    return STRATEGIES[ctx.settings.token_scheme](ctx)
