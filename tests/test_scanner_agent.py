import requests

from presence_api.scanner_agent import Capture, ScanAgent, login


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(str(self.status_code))


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []
        self.on_post = None

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json))
        if self.on_post:
            self.on_post()
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r


class Tick:
    def __init__(self):
        self.t = 100.0

    def __call__(self):
        return self.t


OK_IN = FakeResponse(200, {"success": True, "data": {"message": "Punch-IN Success (present)", "punch_type": "IN"}})


def capture(code="tok-1"):
    return Capture(code=code, lat=12.97, lng=77.59, network_id="Office-WiFi", biometric_sample=[0.1] * 128)


def test_submits_token_with_evidence():
    s = FakeSession([OK_IN])
    agent = ScanAgent("http://api/api/v1/", "jwt", session=s, clock=Tick())

    out = agent.offer(capture())
    assert out.success and out.message == "Punch-IN Success (present)"
    assert s.headers["Authorization"] == "Bearer jwt"

    url, body = s.calls[0]
    assert url == "http://api/api/v1/presence/scan"
    assert body["token"] == "tok-1"
    assert "payload" not in body
    assert body["network_id"] == "Office-WiFi"
    assert len(body["biometric_sample"]) == 128


def test_dict_codes_go_in_payload():
    s = FakeSession([OK_IN])
    agent = ScanAgent("http://api", "jwt", session=s, clock=Tick())
    agent.offer(capture(code={"v": 1, "eid": 1, "sid": 1, "ts": 0}))
    body = s.calls[0][1]
    assert body["payload"]["eid"] == 1
    assert "token" not in body


def test_cooldown_after_response():
    tick = Tick()
    s = FakeSession([OK_IN, OK_IN])
    agent = ScanAgent("http://api", "jwt", session=s, clock=tick)

    assert agent.offer(capture()) is not None
    assert agent.busy
    tick.t += 4.9
    assert agent.offer(capture("tok-2")) is None
    tick.t += 0.2
    assert not agent.busy
    assert agent.offer(capture("tok-2")).success
    assert len(s.calls) == 2


def test_captures_dropped_while_in_flight():
    s = FakeSession([OK_IN])
    agent = ScanAgent("http://api", "jwt", session=s, clock=Tick())
    nested = []
    s.on_post = lambda: nested.append(agent.offer(capture("tok-2")))

    assert agent.offer(capture()).success
    assert nested == [None]
    assert len(s.calls) == 1


def test_error_envelope_surfaces():
    err = {"success": False, "error": {"message": "QR already used", "code": "permission-denied"}}
    s = FakeSession([FakeResponse(403, err)])
    out = ScanAgent("http://api", "jwt", session=s, clock=Tick()).offer(capture())
    assert out.success is False
    assert out.status_code == 403
    assert out.message == "QR already used"
    assert out.error["code"] == "permission-denied"


def test_network_failure_still_cools_down():
    s = FakeSession([requests.ConnectionError("down")])
    agent = ScanAgent("http://api", "jwt", session=s, clock=Tick())
    out = agent.offer(capture())
    assert out.success is False
    assert out.status_code == 0
    assert agent.busy


def test_login_returns_access_token():
    s = FakeSession([FakeResponse(200, {"success": True, "access": "abc", "refresh": "r"})])
    assert login("http://api/api/v1", "max@hq.test", "secret", session=s) == "abc"
    assert s.calls[0] == ("http://api/api/v1/auth/login", {"email": "max@hq.test", "password": "secret"})
