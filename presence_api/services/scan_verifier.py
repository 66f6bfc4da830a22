# presence_api/services/scan_verifier.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from presence_api.extensions import db
from presence_api.common.errors import (
    APIError,
    InvalidArgument,
    PermissionDenied,
    FailedPrecondition,
)
from presence_api.models.face_reference import FaceReference
from presence_api.models.scan_log import ScanLog
from presence_api.services.attendance_ledger import AttendanceLedger, Evidence, format_duration
from presence_api.services.geofence import GeofenceService, parse_coordinate
from presence_api.services.verification_token import strategy_for

log = logging.getLogger(__name__)


class ScanState(str, enum.Enum):
    RECEIVED = "RECEIVED"
    TOKEN_CLAIMED = "TOKEN_CLAIMED"
    BIOMETRIC_OK = "BIOMETRIC_OK"
    GEOFENCE_OK = "GEOFENCE_OK"
    NETWORK_OK = "NETWORK_OK"
    COMMITTED = "COMMITTED"


@dataclass
class ScanAttempt:
    """Per-request bookkeeping; becomes the scan_logs row."""
    scheme: str
    agent_user_id: Optional[int]
    lat: Optional[float]
    lng: Optional[float]
    state: ScanState = ScanState.RECEIVED
    subject_id: Optional[int] = None
    site_id: Optional[int] = None
    face_distance: Optional[float] = None
    distance_m: Optional[float] = None

    def to_log(self, result, **kw) -> ScanLog:
        return ScanLog(
            scheme=self.scheme,
            subject_id=self.subject_id,
            site_id=self.site_id,
            agent_user_id=self.agent_user_id,
            req_lat=self.lat,
            req_lng=self.lng,
            face_distance=self.face_distance,
            distance_m=self.distance_m,
            result=result,
            **kw,
        )


def _coordinate(v, lo, hi, name) -> float:
    if v is None or isinstance(v, bool):
        raise InvalidArgument("Missing scan data")
    f = parse_coordinate(v, lo, hi)
    if f is None:
        raise InvalidArgument(f"{name} must be a number within {lo:g}..{hi:g}")
    return f


class ScanVerifier:
    """
    Runs one scan through

        RECEIVED -> TOKEN_CLAIMED -> BIOMETRIC_OK -> GEOFENCE_OK
                 -> NETWORK_OK -> COMMITTED

    and stops at the first failed check with a typed APIError.

    The token claim and the ledger write share one transaction: either every
    check passes and both commit, or the transaction is rolled back and only
    the rejection is logged.
    """

    def __init__(self, ctx, strategy=None, ledger=None):
        self.ctx = ctx
        self.strategy = strategy or strategy_for(ctx)
        self.ledger = ledger or AttendanceLedger()

    def verify(self, agent, token, lat, lng, network_id=None, biometric_sample=None) -> dict:
        attempt = ScanAttempt(
            scheme=self.strategy.scheme,
            agent_user_id=agent.id if agent else None,
            lat=lat if isinstance(lat, (int, float)) and not isinstance(lat, bool) else None,
            lng=lng if isinstance(lng, (int, float)) and not isinstance(lng, bool) else None,
        )
        try:
            result = self._run(attempt, agent, token, lat, lng, network_id, biometric_sample)
        except APIError as e:
            db.session.rollback()
            self._log_rejection(attempt, token, e)
            raise
        except SQLAlchemyError:
            db.session.rollback()
            log.exception("scan verification failed at %s", attempt.state.value)
            raise

        log.info(
            "scan accepted: subject=%s site=%s punch=%s scheme=%s",
            result["subject_id"], attempt.site_id, result["punch_type"], attempt.scheme,
        )
        return result

    def _run(self, attempt, agent, token, lat, lng, network_id, sample):
        lat = _coordinate(lat, -90.0, 90.0, "lat")
        lng = _coordinate(lng, -180.0, 180.0, "lng")
        if network_id is not None and not isinstance(network_id, str):
            raise InvalidArgument("network_id must be a string")

        now = self.ctx.now()

        # 1. atomic claim, before anything else is written
        claimed = self.strategy.claim(token, agent, now)
        attempt.state = ScanState.TOKEN_CLAIMED
        attempt.subject_id = claimed.subject.id
        attempt.site_id = claimed.site.id

        # evidence carried by a self-describing payload wins over the request's
        if claimed.lat is not None and claimed.lng is not None:
            lat, lng = claimed.lat, claimed.lng
            attempt.lat, attempt.lng = lat, lng
        if claimed.network_id is not None:
            network_id = claimed.network_id

        # 2. biometric
        attempt.face_distance = self._check_biometric(claimed.subject, sample)
        attempt.state = ScanState.BIOMETRIC_OK

        # 3. geofence
        inside, dist = GeofenceService.check_site(claimed.site, lat, lng)
        attempt.distance_m = dist
        if not inside:
            raise PermissionDenied(f"Outside radius ({round(dist)}m)")
        attempt.state = ScanState.GEOFENCE_OK

        # 4. network
        site_net = claimed.site.network_id
        if site_net and network_id is not None and network_id != site_net:
            raise PermissionDenied("Wrong WiFi network")
        attempt.state = ScanState.NETWORK_OK

        # 5. commit
        outcome = self.ledger.apply(
            claimed.site,
            claimed.subject,
            now,
            Evidence(lat=lat, lng=lng, verified_by=attempt.agent_user_id, biometric=True),
        )
        db.session.add(attempt.to_log(
            "MARKED",
            record_id=outcome.record.id,
            punch_type=outcome.punch_type,
            created_at=now,
        ))
        db.session.commit()
        attempt.state = ScanState.COMMITTED

        data = {
            "message": outcome.message,
            "punch_type": outcome.punch_type,
            "subject_id": claimed.subject.id,
            "record_id": outcome.record.id,
        }
        if outcome.status:
            data["status"] = outcome.status
        worked = outcome.worked
        if worked is not None:
            data["first_in"] = outcome.record.punch_in.isoformat()
            data["duration"] = format_duration(worked)
            data["duration_minutes"] = int(worked.total_seconds()) // 60
        return data

    def _check_biometric(self, subject, sample) -> float:
        # biometric binding is mandatory: no sample is a mismatch
        if sample is None:
            raise PermissionDenied("Face mismatch")
        vector = self.ctx.face_engine.coerce(sample)
        if vector is None:
            raise InvalidArgument("Invalid face data")

        ref = FaceReference.query.filter_by(subject_id=subject.id).first()
        if ref is None:
            raise FailedPrecondition("Face not registered")

        ok, dist = self.ctx.face_engine.matches(vector, ref.embedding)
        if not ok:
            raise PermissionDenied("Face mismatch")
        return dist

    def _log_rejection(self, attempt: ScanAttempt, token, err: APIError):
        log.warning(
            "scan rejected at %s: %s (%s) subject=%s agent=%s",
            attempt.state.value, err.message, err.code, attempt.subject_id, attempt.agent_user_id,
        )
        # rejected before the claim returned: recover what the token names
        if attempt.subject_id is None:
            attempt.subject_id = self.strategy.peek_subject_id(token)
        if attempt.site_id is None:
            attempt.site_id = self.strategy.peek_site_id(token)
        try:
            db.session.add(attempt.to_log(
                "REJECTED",
                error_code=err.code,
                error_message=err.message,
                created_at=self.ctx.now(),
            ))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            log.exception("could not write scan log")
