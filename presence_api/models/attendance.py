# presence_api/models/attendance.py
from __future__ import annotations

from datetime import datetime, date
from typing import Optional, Dict, Any, List

from sqlalchemy import (
    UniqueConstraint,
    CheckConstraint,
    ForeignKey,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from presence_api.extensions import db

STATUSES = ("present", "late", "half-day")


class AttendanceRecord(db.Model):
    """
    One row per (site, subject, work_date).

    Lifecycle: created by the first valid IN of the day (OPEN), updated once
    more by the OUT (CLOSED). Never deleted here; corrections go through a
    separate audited channel.

      punch_in   -> UTC timestamp of the IN
      punch_out  -> UTC timestamp of the OUT (null while OPEN)
      status     -> present | late | half-day, fixed at IN
      work_date  -> site-local date of the IN
    """

    __tablename__ = "attendance_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    site_id: Mapped[int] = mapped_column(
        ForeignKey("sites.id", ondelete="RESTRICT"), index=True, nullable=False
    )
    subject_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), index=True, nullable=False
    )
    work_date: Mapped[date] = mapped_column(index=True, nullable=False)

    punch_in: Mapped[datetime] = mapped_column(nullable=False)
    punch_out: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(db.String(16), nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    log: Mapped[List["AttendanceLogEntry"]] = relationship(
        back_populates="record",
        order_by="AttendanceLogEntry.seq",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        # the create-or-update race relies on this key
        UniqueConstraint("site_id", "subject_id", "work_date", name="uq_attendance_site_subject_date"),
        CheckConstraint("status in ('present','late','half-day')", name="ck_attendance_status"),
    )

    @property
    def is_open(self) -> bool:
        return self.punch_out is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "site_id": self.site_id,
            "subject_id": self.subject_id,
            "work_date": self.work_date.isoformat(),
            "punch_in": self.punch_in.isoformat(),
            "punch_out": self.punch_out.isoformat() if self.punch_out else None,
            "status": self.status,
            "log": [e.to_dict() for e in self.log],
        }


class AttendanceLogEntry(db.Model):
    """Append-only punch log of a record, ordered by seq (1 = IN, 2 = OUT)."""

    __tablename__ = "attendance_record_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    record_id: Mapped[int] = mapped_column(
        ForeignKey("attendance_records.id", ondelete="CASCADE"), index=True, nullable=False
    )
    seq: Mapped[int] = mapped_column(nullable=False)
    type: Mapped[str] = mapped_column(db.String(8), nullable=False)  # IN | OUT
    at: Mapped[datetime] = mapped_column(nullable=False)

    lat: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(db.Numeric(9, 6), nullable=True)
    verified_by: Mapped[Optional[int]] = mapped_column(nullable=True)  # scanning agent users.id
    biometric: Mapped[bool] = mapped_column(default=False, nullable=False)

    record: Mapped[AttendanceRecord] = relationship(back_populates="log")

    __table_args__ = (
        UniqueConstraint("record_id", "seq", name="uq_attendance_log_seq"),
        CheckConstraint("type in ('IN','OUT')", name="ck_attendance_log_type"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "type": self.type,
            "at": self.at.isoformat(),
            "location": {
                "lat": float(self.lat) if self.lat is not None else None,
                "lng": float(self.lng) if self.lng is not None else None,
            },
            "verified_by": self.verified_by,
            "biometric": self.biometric,
        }
