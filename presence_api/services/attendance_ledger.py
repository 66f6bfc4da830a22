# presence_api/services/attendance_ledger.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from presence_api.extensions import db
from presence_api.common.errors import AlreadyExists, Internal
from presence_api.models.attendance import AttendanceRecord, AttendanceLogEntry

log = logging.getLogger(__name__)

PRESENT = "present"
LATE = "late"
HALF_DAY = "half-day"


@dataclass
class Evidence:
    lat: Optional[float] = None
    lng: Optional[float] = None
    verified_by: Optional[int] = None
    biometric: bool = False


@dataclass
class LedgerResult:
    punch_type: str  # IN | OUT
    record: AttendanceRecord
    message: str

    @property
    def status(self):
        return self.record.status if self.punch_type == "IN" else None

    @property
    def worked(self) -> Optional[timedelta]:
        """Time between the day's first IN and this OUT."""
        if self.punch_type != "OUT" or self.record.punch_out is None:
            return None
        return self.record.punch_out - self.record.punch_in


def format_duration(d: timedelta) -> str:
    minutes = int(d.total_seconds()) // 60
    return f"{minutes // 60}h {minutes % 60}m"


def _zone(site) -> ZoneInfo:
    try:
        return ZoneInfo(site.tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise Internal(f"Unknown timezone for site {site.id}: {site.tz_name!r}")


def site_local(site, now: datetime) -> datetime:
    """Naive UTC `now` as naive wall-clock time at the site."""
    return now.replace(tzinfo=timezone.utc).astimezone(_zone(site)).replace(tzinfo=None)


def local_day_bounds(site, day: date):
    """[start, end) of the site's calendar day `day`, as naive UTC."""
    tz = _zone(site)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def classify(site, local_now: datetime) -> str:
    """
    Status of a punch-in at site-local `local_now`:

      after work_start + half_day_after_minutes  -> half-day
      after work_start + late_after_minutes      -> late
      otherwise                                  -> present

    A site without a work_start never marks anyone late.
    """
    if site is None or site.work_start is None:
        return PRESENT
    start = datetime.combine(local_now.date(), site.work_start)
    half_day_after = site.half_day_after_minutes
    if half_day_after is None:
        half_day_after = 240
    if local_now > start + timedelta(minutes=half_day_after):
        return HALF_DAY
    if local_now > start + timedelta(minutes=site.late_after_minutes or 0):
        return LATE
    return PRESENT


class AttendanceLedger:
    """
    Per (site, subject, day) state machine: NONE -> OPEN -> CLOSED.

    The first scan of the day opens the record, the second closes it, a third
    is refused. Writes are flushed into the caller's transaction; committing
    is the caller's job.
    """

    def find(self, site_id: int, subject_id: int, work_date: date) -> Optional[AttendanceRecord]:
        return (
            AttendanceRecord.query
            .filter_by(site_id=site_id, subject_id=subject_id, work_date=work_date)
            .populate_existing()
            .first()
        )

    def apply(self, site, subject, now: datetime, evidence: Evidence) -> LedgerResult:
        local_now = site_local(site, now)
        work_date = local_now.date()

        rec = self.find(site.id, subject.id, work_date)
        if rec is None:
            status = classify(site, local_now)
            created = self._open(site, subject, work_date, now, status, evidence)
            if created is not None:
                return LedgerResult("IN", created, f"Punch-IN Success ({status})")
            # another scan created it first; this one is the OUT
            rec = self.find(site.id, subject.id, work_date)
            if rec is None:
                raise Internal("Attendance record vanished during punch-in")

        return self._close(rec, now, evidence)

    def _open(self, site, subject, work_date, now, status, evidence) -> Optional[AttendanceRecord]:
        rec = AttendanceRecord(
            site_id=site.id,
            subject_id=subject.id,
            work_date=work_date,
            punch_in=now,
            punch_out=None,
            status=status,
        )
        rec.log.append(self._entry(1, "IN", now, evidence))
        try:
            with db.session.begin_nested():
                db.session.add(rec)
        except IntegrityError:
            log.info(
                "attendance record site=%s subject=%s date=%s created concurrently",
                site.id, subject.id, work_date,
            )
            return None
        return rec

    def _close(self, rec: AttendanceRecord, now: datetime, evidence: Evidence) -> LedgerResult:
        if rec.punch_out is not None:
            raise AlreadyExists("Already punched out today")

        res = db.session.execute(
            update(AttendanceRecord)
            .where(AttendanceRecord.id == rec.id, AttendanceRecord.punch_out.is_(None))
            .values(punch_out=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise AlreadyExists("Already punched out today")

        rec = db.session.get(AttendanceRecord, rec.id, populate_existing=True)
        rec.log.append(self._entry(len(rec.log) + 1, "OUT", now, evidence))
        db.session.flush()
        return LedgerResult("OUT", rec, "Punch-OUT Success")

    @staticmethod
    def _entry(seq, kind, now, evidence: Evidence) -> AttendanceLogEntry:
        return AttendanceLogEntry(
            seq=seq,
            type=kind,
            at=now,
            lat=evidence.lat,
            lng=evidence.lng,
            verified_by=evidence.verified_by,
            biometric=evidence.biometric,
        )
