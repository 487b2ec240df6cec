import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import GymdagbokenAPI


class StatisticsServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_stats.db"
        self.yaml_path = "test_stats.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = GymdagbokenAPI(db_path=self.db_path, yaml_path=self.yaml_path)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_weekly_summary(self) -> None:
        tracking = self.api.tracking
        tracking.log_workout(
            "u1",
            "Dag 1",
            [{"exercise_name": "Knäböj", "sets_completed": 4, "reps_completed": "6"}],
            duration_minutes=30,
            completed_at="2026-10-12T10:00:00",
        )
        tracking.log_cardio("u1", "running", 20, 4.0, completed_at="2026-10-13T18:00:00")
        tracking.log_cardio("u1", "cycling", 40, 8.0, completed_at="2026-10-20T18:00:00")
        tracking.log_cardio("u2", "running", 99, 9.0, completed_at="2026-10-20T18:00:00")
        summary = self.api.statistics.weekly_summary("u1")
        self.assertEqual(
            summary,
            [
                {
                    "week": "2026-W42",
                    "workouts": 1,
                    "workout_minutes": 30,
                    "cardio_sessions": 1,
                    "cardio_minutes": 20,
                    "cardio_distance_km": 4.0,
                },
                {
                    "week": "2026-W43",
                    "workouts": 0,
                    "workout_minutes": 0,
                    "cardio_sessions": 1,
                    "cardio_minutes": 40,
                    "cardio_distance_km": 8.0,
                },
            ],
        )
        summary = self.api.statistics.weekly_summary("u1", start_date="2026-10-19")
        self.assertEqual([w["week"] for w in summary], ["2026-W43"])

    def test_weekly_summary_mixed_timestamp_forms(self) -> None:
        self.api.tracking.log_cardio("u1", "running", 30, 5.0, completed_at="2026-10-05T07:30:00")
        self.api.tracking.log_cardio("u1", "running", 25, 4.0, completed_at="2026-10-01")
        summary = self.api.statistics.weekly_summary("u1")
        self.assertEqual([w["week"] for w in summary], ["2026-W40", "2026-W41"])
        self.assertEqual([w["cardio_minutes"] for w in summary], [25, 30])

    def test_empty_summary(self) -> None:
        self.assertEqual(self.api.statistics.weekly_summary("nobody"), [])

    def test_admin_stats(self) -> None:
        self.api.profiles.upsert("u1", "Anna")
        self.api.tracking.log_cardio("u1", "running", 20, 4.0)
        self.api.pool.enter_pool("u1", "cardio", "distance", 20, 7, "2026-12-01")
        stats = self.api.statistics.admin_stats(datetime.date(2026, 10, 19))
        self.assertEqual(stats["date"], "2026-10-19")
        self.assertEqual(stats["total_users"], 1)
        self.assertEqual(stats["total_workouts"], 0)
        self.assertEqual(stats["total_cardio_sessions"], 1)
        self.assertEqual(stats["active_challenges"], 0)
        self.assertEqual(stats["pool_entries"], {"waiting": 1})


if __name__ == "__main__":
    unittest.main()
