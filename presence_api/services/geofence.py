import math
from typing import Optional, Tuple

EARTH_RADIUS_M = 6371000


class GeofenceService:
    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """
        Great circle distance between two points on the earth (decimal
        degrees), haversine formula. Returns meters.
        """
        if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
            return float('inf')

        # Decimal columns / JSON strings
        lat1, lon1, lat2, lon2 = map(float, [lat1, lon1, lat2, lon2])

        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        dphi = math.radians(lat2 - lat1)
        dlambda = math.radians(lon2 - lon1)

        a = math.sin(dphi / 2.0)**2 + \
            math.cos(phi1) * math.cos(phi2) * \
            math.sin(dlambda / 2.0)**2

        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_M * c

    @staticmethod
    def check_geofence(user_lat: float, user_lon: float, site_lat: float, site_lon: float, radius_m: int) -> Tuple[bool, float]:
        """
        Returns (is_inside, distance_m)
        """
        dist = GeofenceService.calculate_distance(user_lat, user_lon, site_lat, site_lon)
        return dist <= radius_m, dist

    @staticmethod
    def check_site(site, lat: float, lon: float) -> Tuple[bool, Optional[float]]:
        """
        Geofence check against a Site. A site without a centre has no
        geofence: (True, None).
        """
        site_lat, site_lon, radius = site.geo_center()
        if site_lat is None:
            return True, None
        return GeofenceService.check_geofence(lat, lon, site_lat, site_lon, radius)


def parse_coordinate(v, lo: float, hi: float) -> Optional[float]:
    """float(v) if it is a finite number within [lo, hi], else None."""
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    # NaN fails the comparison, +/-inf falls outside any range
    if not (lo <= f <= hi):
        return None
    return f
