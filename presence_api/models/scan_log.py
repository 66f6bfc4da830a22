from datetime import datetime
from presence_api.extensions import db

class ScanLog(db.Model):
    """One row per verification attempt, accepted or not."""
    __tablename__ = "scan_logs"

    id = db.Column(db.Integer, primary_key=True)
    scheme = db.Column(db.String(20), nullable=False)  # central, self_describing
    subject_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=True, index=True)
    site_id = db.Column(db.Integer, nullable=True)
    agent_user_id = db.Column(db.Integer, nullable=True)
    record_id = db.Column(db.Integer, db.ForeignKey("attendance_records.id", ondelete="SET NULL"), nullable=True)

    req_lat = db.Column(db.Numeric(9, 6), nullable=True)
    req_lng = db.Column(db.Numeric(9, 6), nullable=True)
    distance_m = db.Column(db.Float, nullable=True)
    face_distance = db.Column(db.Float, nullable=True)

    result = db.Column(db.String(20), nullable=False)  # MARKED, REJECTED
    punch_type = db.Column(db.String(10), nullable=True)  # IN, OUT

    error_code = db.Column(db.String(50), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    subject = db.relationship("Employee")

    def to_dict(self):
        return {
            "id": self.id,
            "scheme": self.scheme,
            "subject_id": self.subject_id,
            "subject_name": self.subject.display_name if self.subject else None,
            "site_id": self.site_id,
            "agent_user_id": self.agent_user_id,
            "record_id": self.record_id,
            "at": self.created_at.isoformat(),
            "result": self.result,
            "punch_type": self.punch_type,
            "distance_m": self.distance_m,
            "face_distance": self.face_distance,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
