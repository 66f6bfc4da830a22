import logging

from presence_api.extensions import db
from presence_api.common.errors import (
    Unauthenticated,
    NotFound,
    InvalidArgument,
    PermissionDenied,
    AlreadyExists,
)
from presence_api.models.employee import Employee
from presence_api.models.face_reference import FaceReference

log = logging.getLogger(__name__)


class FaceRegistry:
    """Write side of the biometric reference store."""

    def __init__(self, ctx):
        self.ctx = ctx

    def register(self, user, embedding) -> FaceReference:
        if user is None:
            raise Unauthenticated("Login required")
        emp = user.employee
        if emp is None:
            raise NotFound("No employee record linked to this user")

        vector = self.ctx.face_engine.coerce(embedding)
        if vector is None:
            raise InvalidArgument("Invalid face data")

        if FaceReference.query.filter_by(subject_id=emp.id).first() is not None:
            raise AlreadyExists("Face already registered. Ask a manager to reset it.")

        ref = FaceReference(
            subject_id=emp.id,
            embedding=vector,
            registered_by=user.id,
            created_at=self.ctx.now(),
        )
        db.session.add(ref)
        db.session.commit()
        log.info("face reference registered for subject=%s", emp.id)
        return ref

    def reset(self, actor, subject_id) -> bool:
        """
        Drop a subject's reference so they can register again. Owners and
        managers of the subject's site only.
        """
        if actor is None:
            raise Unauthenticated("Login required")
        actor_emp = actor.employee
        if actor_emp is None or actor_emp.role not in self.ctx.settings.reset_roles:
            raise PermissionDenied("Permission Denied")

        try:
            subject_id = int(subject_id)
        except (TypeError, ValueError):
            raise InvalidArgument("subject_id is required")

        subject = db.session.get(Employee, subject_id)
        if subject is None:
            raise NotFound("Employee not found")
        if subject.site_id != actor_emp.site_id:
            raise PermissionDenied("Permission Denied")

        removed = FaceReference.query.filter_by(subject_id=subject.id).delete()
        db.session.commit()
        log.info("face reference reset for subject=%s by user=%s (removed=%s)", subject.id, actor.id, removed)
        return bool(removed)
