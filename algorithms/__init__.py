from .gps import GpsTracker, GpsPosition, haversine_km

__all__ = ["GpsTracker", "GpsPosition", "haversine_km"]
