from datetime import datetime

from presence_api.extensions import db

DEFAULT_GEOFENCE_M = 100
DEFAULT_HALF_DAY_AFTER_MIN = 240


class Site(db.Model):
    """
    A physical work site and its attendance policy.

    Authored outside this service; the verifier only reads it.

      geo_lat, geo_lon        -> geofence centre (both null = no geofence)
      geo_radius_m            -> allowed radius in meters (default: 100)
      network_id              -> permitted network identifier, e.g. office WiFi SSID
      work_start / work_end   -> local wall-clock schedule
      late_after_minutes      -> grace after work_start before a punch-in is 'late'
      half_day_after_minutes  -> after this many minutes a punch-in is 'half-day'
      tz_name                 -> IANA zone used for the attendance date and schedule
    """

    __tablename__ = "sites"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)

    # --- geofence ---
    geo_lat = db.Column(db.Numeric(9, 6), nullable=True)
    geo_lon = db.Column(db.Numeric(9, 6), nullable=True)
    geo_radius_m = db.Column(db.Integer, nullable=False, default=DEFAULT_GEOFENCE_M)

    # --- network ---
    network_id = db.Column(db.String(64), nullable=True)

    # --- schedule ---
    work_start = db.Column(db.Time, nullable=True)
    work_end = db.Column(db.Time, nullable=True)
    late_after_minutes = db.Column(db.Integer, nullable=False, default=0)
    half_day_after_minutes = db.Column(db.Integer, nullable=False, default=DEFAULT_HALF_DAY_AFTER_MIN)
    tz_name = db.Column(db.String(64), nullable=False, default="UTC")

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def geo_center(self):
        """Return (lat, lon, radius_m) or (None, None, None) if not configured."""
        if self.geo_lat is None or self.geo_lon is None:
            return None, None, None
        return float(self.geo_lat), float(self.geo_lon), int(self.geo_radius_m or DEFAULT_GEOFENCE_M)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "geo_lat": float(self.geo_lat) if self.geo_lat is not None else None,
            "geo_lon": float(self.geo_lon) if self.geo_lon is not None else None,
            "geo_radius_m": self.geo_radius_m,
            "network_id": self.network_id,
            "work_start": self.work_start.strftime("%H:%M") if self.work_start else None,
            "work_end": self.work_end.strftime("%H:%M") if self.work_end else None,
            "late_after_minutes": self.late_after_minutes,
            "half_day_after_minutes": self.half_day_after_minutes,
            "tz_name": self.tz_name,
        }
