from datetime import datetime
from presence_api.extensions import db

ROLES = ("employee", "manager", "owner")


class Employee(db.Model):
    """Attendance subject. Bound to exactly one site and one login."""
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="RESTRICT"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)

    code  = db.Column(db.String(32), nullable=False)    # unique per site
    first_name = db.Column(db.String(80), nullable=False)
    last_name  = db.Column(db.String(80), nullable=True)
    role   = db.Column(db.String(16), default="employee", nullable=False)  # employee/manager/owner
    status = db.Column(db.String(16), default="active", nullable=False)    # active/inactive

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("site_id", "code", name="uq_employee_site_code"),
        db.CheckConstraint("role in ('employee','manager','owner')", name="ck_employee_role"),
        db.Index("ix_emp_site_id", "site_id"),
    )

    site = db.relationship("Site", lazy="joined")
    user = db.relationship("User", back_populates="employee")

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name or ''}".strip()
