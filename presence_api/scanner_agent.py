"""
Client side of a scanner (staffed phone or kiosk).

The capture loop decodes frames continuously (every ~500ms) and hands every
decoded code to `ScanAgent.offer()`. The agent keeps at most one
verification request in flight: captures are ignored while a request is
pending and during a short cool-down after its terminal response.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import requests

log = logging.getLogger(__name__)

DEFAULT_COOLDOWN_S = 5.0


@dataclass
class Capture:
    code: Any                      # decoded QR text (token id or JSON payload)
    lat: float
    lng: float
    network_id: Optional[str] = None
    biometric_sample: Optional[list] = None


@dataclass
class ScanOutcome:
    success: bool
    status_code: int
    data: dict = field(default_factory=dict)
    error: Optional[dict] = None

    @property
    def message(self):
        if self.success:
            return self.data.get("message")
        return (self.error or {}).get("message")


class ScanAgent:
    def __init__(self, base_url: str, access_token: str, session: Optional[requests.Session] = None,
                 cooldown_s: float = DEFAULT_COOLDOWN_S, timeout_s: float = 10.0,
                 clock: Callable[[], float] = time.monotonic):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})
        self.cooldown_s = cooldown_s
        self.timeout_s = timeout_s
        self.clock = clock

        self._lock = threading.Lock()
        self._in_flight = False
        self._resume_at = 0.0
        self.last_outcome: Optional[ScanOutcome] = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._in_flight or self.clock() < self._resume_at

    def offer(self, capture: Capture) -> Optional[ScanOutcome]:
        """
        Submit `capture` unless a request is in flight or the agent is cooling
        down. Returns the outcome, or None if the capture was dropped.
        """
        with self._lock:
            if self._in_flight or self.clock() < self._resume_at:
                return None
            self._in_flight = True

        try:
            outcome = self._submit(capture)
        finally:
            with self._lock:
                self._in_flight = False
                self._resume_at = self.clock() + self.cooldown_s

        self.last_outcome = outcome
        return outcome

    def _submit(self, capture: Capture) -> ScanOutcome:
        body = {"lat": capture.lat, "lng": capture.lng}
        if isinstance(capture.code, dict):
            body["payload"] = capture.code
        else:
            body["token"] = capture.code
        if capture.network_id is not None:
            body["network_id"] = capture.network_id
        if capture.biometric_sample is not None:
            body["biometric_sample"] = capture.biometric_sample

        try:
            resp = self.session.post(f"{self.base_url}/presence/scan", json=body, timeout=self.timeout_s)
        except requests.RequestException as e:
            log.warning("scan request failed: %s", e)
            return ScanOutcome(False, 0, error={"message": "Network error. Try again.", "code": "unavailable"})

        try:
            payload = resp.json()
        except ValueError:
            payload = {}

        if resp.status_code == 200 and payload.get("success"):
            return ScanOutcome(True, resp.status_code, data=payload.get("data") or {})
        return ScanOutcome(False, resp.status_code, error=payload.get("error") or {"message": resp.text})


def login(base_url: str, email: str, password: str, session: Optional[requests.Session] = None) -> str:
    """Exchange credentials for an access token."""
    session = session or requests.Session()
    resp = session.post(f"{base_url.rstrip('/')}/auth/login", json={"email": email, "password": password})
    resp.raise_for_status()
    return resp.json()["access"]
