import json
from datetime import timedelta, timezone

import pytest

from presence_api.extensions import db
from presence_api.common.errors import InvalidArgument, NotFound, PermissionDenied
from presence_api.models.attendance import AttendanceRecord
from presence_api.models.scan_log import ScanLog
from presence_api.models.site import Site
from presence_api.services.scan_verifier import ScanVerifier
from presence_api.services.verification_token import SelfDescribing

from conftest import add_member, sample_at


@pytest.fixture
def app_config():
    return {"PRESENCE_TOKEN_SCHEME": "self_describing"}


def epoch_ms(dt):
    return int(dt.replace(tzinfo=timezone.utc).timestamp() * 1000)


def payload(user, clock, **kw):
    emp = user.employee
    p = {
        "v": 1,
        "eid": emp.id,
        "sid": emp.site_id,
        "ts": epoch_ms(clock.now),
        "lat": 0.0,
        "lng": 0.0005,
        "net": "Office-WiFi",
        "n": "k3j9x",
    }
    p.update(kw)
    return p


def scan(ctx, agent, p, lat=0.0, lng=0.0005, network_id=None):
    return ScanVerifier(ctx).verify(agent, p, lat, lng, network_id=network_id, biometric_sample=sample_at(0.1))


def test_strategy_selected_from_config(ctx):
    assert isinstance(ScanVerifier(ctx).strategy, SelfDescribing)


def test_fresh_payload_punches_in(ctx, clock, enrolled, manager_user):
    res = scan(ctx, manager_user, payload(enrolled, clock))
    assert res["punch_type"] == "IN"
    assert ScanLog.query.one().scheme == "self_describing"


def test_payload_as_json_text(ctx, clock, enrolled, manager_user):
    res = scan(ctx, manager_user, json.dumps(payload(enrolled, clock)))
    assert res["punch_type"] == "IN"


def test_same_nonce_is_refused(ctx, clock, enrolled, manager_user):
    p = payload(enrolled, clock)
    scan(ctx, manager_user, p)
    clock.advance(seconds=2)
    with pytest.raises(PermissionDenied) as ei:
        scan(ctx, manager_user, p)
    assert ei.value.message.startswith("Security signature already used")
    assert AttendanceRecord.query.one().punch_out is None


def test_missing_nonce_falls_back_to_subject_and_time(ctx, clock, enrolled, manager_user):
    p = payload(enrolled, clock)
    del p["n"]
    scan(ctx, manager_user, p)
    with pytest.raises(PermissionDenied):
        scan(ctx, manager_user, dict(p))


def test_stale_payload(ctx, clock, enrolled, manager_user):
    p = payload(enrolled, clock)
    clock.advance(seconds=16)
    with pytest.raises(InvalidArgument) as ei:
        scan(ctx, manager_user, p)
    assert ei.value.message.startswith("Live QR expired")


def test_future_payload(ctx, clock, enrolled, manager_user):
    p = payload(enrolled, clock, ts=epoch_ms(clock.now + timedelta(seconds=30)))
    with pytest.raises(InvalidArgument):
        scan(ctx, manager_user, p)


def test_agent_at_another_site(ctx, clock, enrolled):
    annex = Site(name="Annex", geo_lat=1, geo_lon=1, geo_radius_m=100)
    db.session.add(annex)
    db.session.commit()
    other = add_member(annex, "amy@annex.test", role="manager")

    with pytest.raises(PermissionDenied) as ei:
        scan(ctx, other, payload(enrolled, clock))
    assert ei.value.message.startswith("Wrong site")


def test_subject_not_at_claimed_site(ctx, clock, enrolled, manager_user):
    annex = Site(name="Annex", geo_lat=0, geo_lon=0, geo_radius_m=100)
    db.session.add(annex)
    db.session.commit()

    p = payload(enrolled, clock, sid=annex.id)
    with pytest.raises(PermissionDenied):
        # agent=None skips the agent/site check so the subject check is reached
        ScanVerifier(ctx).verify(None, p, 0.0, 0.0005, biometric_sample=sample_at(0.1))


def test_unknown_subject(ctx, clock, enrolled, manager_user):
    with pytest.raises(NotFound):
        scan(ctx, manager_user, payload(enrolled, clock, eid=9999))
    assert ScanLog.query.one().subject_id is None


@pytest.mark.parametrize("bad", ["not json", "[1, 2]", 42])
def test_malformed_payload(ctx, clock, enrolled, manager_user, bad):
    with pytest.raises(InvalidArgument):
        scan(ctx, manager_user, bad)


def test_unsupported_version(ctx, clock, enrolled, manager_user):
    with pytest.raises(InvalidArgument):
        scan(ctx, manager_user, payload(enrolled, clock, v=2))


def test_alternate_key_names(ctx, clock, enrolled, manager_user):
    emp = enrolled.employee
    p = {
        "employeeId": emp.id,
        "siteId": emp.site_id,
        "timestamp": clock.now.isoformat() + "Z",
        "nonce": "alt-1",
    }
    assert scan(ctx, manager_user, p)["punch_type"] == "IN"


def test_payload_location_wins_over_request(ctx, clock, enrolled, manager_user):
    # the scanner reports a far-away fix, the payload carries the subject's own
    res = scan(ctx, manager_user, payload(enrolled, clock), lat=10.0, lng=10.0)
    assert res["punch_type"] == "IN"


def test_payload_network_is_checked(ctx, clock, enrolled, manager_user):
    with pytest.raises(PermissionDenied) as ei:
        scan(ctx, manager_user, payload(enrolled, clock, net="Cafe"))
    assert ei.value.message == "Wrong WiFi network"


def test_payload_outside_radius(ctx, clock, enrolled, manager_user):
    with pytest.raises(PermissionDenied) as ei:
        scan(ctx, manager_user, payload(enrolled, clock, lng=0.0012))
    assert ei.value.message.startswith("Outside radius")


@pytest.mark.parametrize("coords", [
    {"lat": "nan"},
    {"lng": "inf"},
    {"lat": 91.0},
    {"lng": -180.5},
    {"lat": True},
    {"lat": "north"},
    {"lat": None, "lng": 0.0005},
])
def test_invalid_payload_location(ctx, clock, enrolled, manager_user, coords):
    p = payload(enrolled, clock, **coords)
    with pytest.raises(InvalidArgument) as ei:
        scan(ctx, manager_user, p)
    assert ei.value.message.startswith("Payload location")

    row = ScanLog.query.one()
    assert row.result == "REJECTED"
    assert row.error_code == "invalid-argument"

    # rejected before the nonce was admitted
    fixed = dict(p, lat=0.0, lng=0.0005)
    assert scan(ctx, manager_user, fixed)["punch_type"] == "IN"


def test_payload_rejections_are_visible_to_the_site(ctx, clock, enrolled, manager_user, site):
    p = payload(enrolled, clock)
    scan(ctx, manager_user, p)
    with pytest.raises(PermissionDenied):
        scan(ctx, manager_user, p)

    stale = payload(enrolled, clock, n="later")
    clock.advance(seconds=20)
    with pytest.raises(InvalidArgument):
        scan(ctx, manager_user, stale)

    rows = ScanLog.query.filter_by(result="REJECTED").all()
    assert len(rows) == 2
    assert {r.site_id for r in rows} == {site.id}
    assert {r.subject_id for r in rows} == {enrolled.employee.id}
