import os
from datetime import datetime, time, timedelta

import pytest

from presence_api import create_app
from presence_api.extensions import db
from presence_api.models.employee import Employee
from presence_api.models.face_reference import FaceReference
from presence_api.models.site import Site
from presence_api.models.user import User


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now = self.now + timedelta(**kw)


REFERENCE = [0.1] * 128


def sample_at(distance: float):
    """An embedding exactly `distance` away from REFERENCE."""
    v = list(REFERENCE)
    v[0] += distance
    return v


def _mk_app(**overrides):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    cfg = {"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"}
    cfg.update(overrides)
    return create_app(test_config=cfg)


@pytest.fixture(scope="function")
def app_config():
    return {}


@pytest.fixture(scope="function")
def app(app_config):
    app = _mk_app(**app_config)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def ctx(app):
    return app.extensions["presence"]


@pytest.fixture(scope="function")
def clock(ctx):
    # Monday 08:55 UTC; the test site works 09:00-18:00 UTC
    c = FakeClock(datetime(2026, 3, 2, 8, 55, 0))
    ctx.clock = c
    return c


@pytest.fixture(scope="function")
def site(app):
    s = Site(
        name="HQ",
        geo_lat=0,
        geo_lon=0,
        geo_radius_m=100,
        network_id="Office-WiFi",
        work_start=time(9, 0),
        work_end=time(18, 0),
        late_after_minutes=15,
        half_day_after_minutes=240,
        tz_name="UTC",
    )
    db.session.add(s)
    db.session.commit()
    return s


def add_member(site, email, role="employee", code=None, password="secret"):
    u = User(email=email, full_name=email.split("@")[0].title(), status="active")
    u.set_password(password)
    db.session.add(u)
    db.session.flush()
    e = Employee(site_id=site.id, user_id=u.id, code=code or email.split("@")[0].upper(),
                 first_name=email.split("@")[0].title(), role=role)
    db.session.add(e)
    db.session.commit()
    return u


@pytest.fixture(scope="function")
def employee_user(site):
    return add_member(site, "ann@hq.test")


@pytest.fixture(scope="function")
def manager_user(site):
    return add_member(site, "max@hq.test", role="manager")


@pytest.fixture(scope="function")
def enrolled(employee_user):
    db.session.add(FaceReference(subject_id=employee_user.employee.id, embedding=REFERENCE))
    db.session.commit()
    return employee_user
