import math
from dataclasses import dataclass, asdict
from typing import Optional

EARTH_RADIUS_KM: float = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return great-circle distance in kilometres between two coordinates."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


@dataclass
class GpsPosition:
    latitude: float
    longitude: float
    accuracy: float
    timestamp: int
    speed: Optional[float] = None


class GpsTracker:
    """Accumulate distance and speed statistics from a stream of GPS fixes.

    Segments are only counted when both fixes are accurate enough and the
    implied segment speed is plausible. All state is serialisable through
    :meth:`to_dict` so a session can be resumed later.
    """

    def __init__(
        self,
        max_accuracy_m: float = 50.0,
        max_speed_kmh: float = 50.0,
        start_ms: int | None = None,
    ) -> None:
        self.max_accuracy_m = max_accuracy_m
        self.max_speed_kmh = max_speed_kmh
        self.start_ms = start_ms
        self.positions: list[GpsPosition] = []
        self.total_distance_km = 0.0
        self.current_speed_kmh = 0.0
        self.max_seen_kmh = 0.0

    def add_position(
        self,
        latitude: float,
        longitude: float,
        accuracy: float,
        timestamp_ms: int,
        speed_ms: float | None = None,
    ) -> dict:
        """Add a fix and return the updated statistics."""
        new = GpsPosition(latitude, longitude, accuracy, int(timestamp_ms), speed_ms)
        if self.start_ms is None:
            self.start_ms = new.timestamp
        current = 0.0
        if self.positions:
            last = self.positions[-1]
            if new.accuracy < self.max_accuracy_m and last.accuracy < self.max_accuracy_m:
                segment = haversine_km(
                    last.latitude, last.longitude, new.latitude, new.longitude
                )
                seconds = (new.timestamp - last.timestamp) / 1000
                if seconds > 0 and segment / seconds * 3600 < self.max_speed_kmh:
                    self.total_distance_km += segment
            if new.speed is not None and new.speed >= 0:
                current = new.speed * 3.6
            elif len(self.positions) >= 2:
                first = self.positions[-3:][0]
                distance = haversine_km(
                    first.latitude, first.longitude, new.latitude, new.longitude
                )
                seconds = (new.timestamp - first.timestamp) / 1000
                if seconds > 0:
                    current = distance / seconds * 3600
        if current < self.max_speed_kmh:
            self.max_seen_kmh = max(self.max_seen_kmh, current)
        self.current_speed_kmh = current
        self.positions.append(new)
        return self.stats()

    @property
    def elapsed_hours(self) -> float:
        if self.start_ms is None or not self.positions:
            return 0.0
        return max(0, self.positions[-1].timestamp - self.start_ms) / 3_600_000

    @property
    def average_speed_kmh(self) -> float:
        hours = self.elapsed_hours
        if hours <= 0:
            return 0.0
        return min(self.total_distance_km / hours, self.max_speed_kmh)

    def stats(self) -> dict:
        return {
            "total_distance_km": round(self.total_distance_km, 3),
            "current_speed_kmh": round(min(self.current_speed_kmh, self.max_speed_kmh), 2),
            "average_speed_kmh": round(self.average_speed_kmh, 2),
            "max_speed_kmh": round(self.max_seen_kmh, 2),
            "positions": len(self.positions),
        }

    def route(self) -> list[dict]:
        """Return positions as plain dicts for storage."""
        return [asdict(p) for p in self.positions]

    def to_dict(self) -> dict:
        return {
            "max_accuracy_m": self.max_accuracy_m,
            "max_speed_kmh": self.max_speed_kmh,
            "start_ms": self.start_ms,
            "total_distance_km": self.total_distance_km,
            "current_speed_kmh": self.current_speed_kmh,
            "max_seen_kmh": self.max_seen_kmh,
            "positions": self.route(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GpsTracker":
        tracker = cls(
            max_accuracy_m=float(data.get("max_accuracy_m", 50.0)),
            max_speed_kmh=float(data.get("max_speed_kmh", 50.0)),
            start_ms=data.get("start_ms"),
        )
        tracker.total_distance_km = float(data.get("total_distance_km", 0.0))
        tracker.current_speed_kmh = float(data.get("current_speed_kmh", 0.0))
        tracker.max_seen_kmh = float(data.get("max_seen_kmh", 0.0))
        tracker.positions = [GpsPosition(**p) for p in data.get("positions", [])]
        return tracker
