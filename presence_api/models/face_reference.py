from datetime import datetime
from presence_api.extensions import db

EMBEDDING_SIZE = 128


class FaceReference(db.Model):
    """Reference embedding per subject. Replaced only after a privileged reset."""
    __tablename__ = "face_references"

    id = db.Column(db.Integer, primary_key=True)
    subject_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"),
                           nullable=False, unique=True, index=True)
    embedding = db.Column(db.JSON, nullable=False)  # Array of 128 floats
    embedding_version = db.Column(db.String(50), default="v1", nullable=False)
    registered_by = db.Column(db.Integer, nullable=True)  # users.id
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    subject = db.relationship("Employee", backref=db.backref("face_reference", uselist=False))
