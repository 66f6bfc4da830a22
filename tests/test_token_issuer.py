from datetime import timedelta

import pytest

from presence_api.extensions import db
from presence_api.common.errors import Unauthenticated, NotFound, PermissionDenied
from presence_api.models.presence_token import PresenceToken
from presence_api.models.user import User
from presence_api.services.token_issuer import TokenIssuer

from conftest import add_member


def test_issue_for_employee(ctx, clock, employee_user):
    tok = TokenIssuer(ctx).issue(employee_user)
    assert tok.subject_id == employee_user.employee.id
    assert tok.site_id == employee_user.employee.site_id
    assert tok.role == "employee"
    assert tok.used is False
    assert tok.issued_at == clock.now
    assert tok.expires_at - tok.issued_at == timedelta(seconds=60)
    assert len(tok.id) >= 40


def test_tokens_are_unique(ctx, clock, employee_user):
    issuer = TokenIssuer(ctx)
    ids = {issuer.issue(employee_user).id for _ in range(5)}
    assert len(ids) == 5


def test_manager_may_issue(ctx, clock, manager_user):
    assert TokenIssuer(ctx).issue(manager_user).role == "manager"


def test_owner_may_not_issue(ctx, clock, site):
    owner = add_member(site, "olga@hq.test", role="owner")
    with pytest.raises(PermissionDenied) as ei:
        TokenIssuer(ctx).issue(owner)
    assert ei.value.message == "Role not authorized"


def test_user_without_employee_record(ctx, clock, app):
    u = User(email="ghost@hq.test", full_name="Ghost", status="active")
    u.set_password("x")
    db.session.add(u)
    db.session.commit()
    with pytest.raises(NotFound):
        TokenIssuer(ctx).issue(u)


def test_anonymous_caller(ctx, clock):
    with pytest.raises(Unauthenticated):
        TokenIssuer(ctx).issue(None)


def test_purge_expired(ctx, clock, employee_user):
    issuer = TokenIssuer(ctx)
    issuer.issue(employee_user)
    clock.advance(seconds=30)
    live = issuer.issue(employee_user)

    clock.advance(seconds=31)
    assert issuer.purge_expired() == 1
    assert [t.id for t in PresenceToken.query.all()] == [live.id]
