import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import GpsTracker, haversine_km


class HaversineTestCase(unittest.TestCase):
    def test_one_thousandth_degree_latitude(self) -> None:
        self.assertAlmostEqual(haversine_km(59.0, 18.0, 59.001, 18.0), 0.1112, places=3)

    def test_same_point(self) -> None:
        self.assertEqual(haversine_km(59.3, 18.0, 59.3, 18.0), 0.0)


class GpsTrackerTestCase(unittest.TestCase):
    def test_accumulates_plausible_segments(self) -> None:
        tracker = GpsTracker()
        tracker.add_position(59.0, 18.0, 10, 0)
        stats = tracker.add_position(59.001, 18.0, 10, 30_000)
        self.assertAlmostEqual(stats["total_distance_km"], 0.111, places=3)
        self.assertEqual(stats["positions"], 2)
        self.assertGreater(stats["current_speed_kmh"], 0)

    def test_ignores_inaccurate_fixes(self) -> None:
        tracker = GpsTracker(max_accuracy_m=50)
        tracker.add_position(59.0, 18.0, 10, 0)
        stats = tracker.add_position(59.001, 18.0, 80, 30_000)
        self.assertEqual(stats["total_distance_km"], 0.0)
        stats = tracker.add_position(59.002, 18.0, 10, 60_000)
        self.assertEqual(stats["total_distance_km"], 0.0)

    def test_ignores_implausible_jump(self) -> None:
        tracker = GpsTracker(max_speed_kmh=50)
        tracker.add_position(59.0, 18.0, 5, 0)
        stats = tracker.add_position(59.01, 18.0, 5, 10_000)
        self.assertEqual(stats["total_distance_km"], 0.0)

    def test_reported_speed_and_max_filter(self) -> None:
        tracker = GpsTracker(max_speed_kmh=50)
        tracker.add_position(59.0, 18.0, 5, 0, speed_ms=2.0)
        stats = tracker.add_position(59.0001, 18.0, 5, 10_000, speed_ms=3.0)
        self.assertAlmostEqual(stats["current_speed_kmh"], 10.8)
        self.assertAlmostEqual(stats["max_speed_kmh"], 10.8)
        stats = tracker.add_position(59.0002, 18.0, 5, 20_000, speed_ms=20.0)
        self.assertEqual(stats["current_speed_kmh"], 50)
        self.assertAlmostEqual(stats["max_speed_kmh"], 10.8)

    def test_average_speed_uses_elapsed_time(self) -> None:
        tracker = GpsTracker()
        tracker.add_position(59.0, 18.0, 5, 0)
        tracker.add_position(59.001, 18.0, 5, 60_000)
        self.assertAlmostEqual(tracker.elapsed_hours, 1 / 60)
        self.assertAlmostEqual(tracker.average_speed_kmh, 0.1112 * 60, places=1)

    def test_resume_from_dict(self) -> None:
        tracker = GpsTracker(max_accuracy_m=30)
        tracker.add_position(59.0, 18.0, 5, 0)
        tracker.add_position(59.001, 18.0, 5, 30_000)
        resumed = GpsTracker.from_dict(tracker.to_dict())
        self.assertEqual(resumed.max_accuracy_m, 30)
        self.assertEqual(len(resumed.route()), 2)
        stats = resumed.add_position(59.002, 18.0, 5, 60_000)
        self.assertAlmostEqual(stats["total_distance_km"], 0.222, places=3)
        self.assertEqual(resumed.start_ms, 0)


if __name__ == "__main__":
    unittest.main()
