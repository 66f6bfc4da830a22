# presence_api/models/presence_token.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from presence_api.extensions import db


class PresenceToken(db.Model):
    """
    Short-lived, single-use presence token minted for a subject.

      id          -> unguessable URL-safe random string (what the QR code carries)
      expires_at  -> issued_at + token TTL (60s by default)
      used        -> flipped exactly once by the scan verifier's conditional UPDATE
      used_at     -> when it was claimed
      claimed_by  -> user id of the scanning agent that claimed it
    """

    __tablename__ = "presence_tokens"

    id: Mapped[str] = mapped_column(db.String(64), primary_key=True)

    subject_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"), index=True, nullable=False
    )
    site_id: Mapped[int] = mapped_column(
        ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(db.String(16), nullable=False)

    issued_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(index=True, nullable=False)
    used: Mapped[bool] = mapped_column(default=False, nullable=False)

    used_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    claimed_by: Mapped[Optional[int]] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_presence_token_subject_issued", "subject_id", "issued_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "site_id": self.site_id,
            "role": self.role,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "used": self.used,
            "used_at": self.used_at.isoformat() if self.used_at else None,
        }
