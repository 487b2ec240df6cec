import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from gamification_service import GamificationService
from rest_api import GymdagbokenAPI


class LevelTestCase(unittest.TestCase):
    def test_level_thresholds(self) -> None:
        self.assertEqual(GamificationService.level_for_xp(0), 1)
        self.assertEqual(GamificationService.level_for_xp(99), 1)
        self.assertEqual(GamificationService.level_for_xp(100), 2)
        self.assertEqual(GamificationService.level_for_xp(5500), 11)
        self.assertEqual(GamificationService.level_for_xp(20000), 11)

    def test_xp_for_level(self) -> None:
        self.assertEqual(GamificationService.xp_for_level(1), 100)
        self.assertEqual(GamificationService.xp_for_level(10), 5500)
        self.assertEqual(GamificationService.xp_for_level(11), 6500)

    def test_level_progress(self) -> None:
        progress = GamificationService.level_progress(150)
        self.assertEqual(progress, {"level": 2, "progress": 50, "needed": 200, "percent": 25.0})


class GamificationServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_gamification.db"
        self.yaml_path = "test_gamification.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = GymdagbokenAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.service = self.api.gamification

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_workout_xp_formula_and_cap(self) -> None:
        self.assertEqual(self.service.workout_xp(3, 30), 86)
        self.assertEqual(self.service.workout_xp(0, None), 50)
        self.assertEqual(self.service.workout_xp(200, 600), 500)
        self.api.settings.set_text("max_xp_per_workout", "100")
        self.assertEqual(self.service.workout_xp(200, 600), 100)

    def test_cardio_xp(self) -> None:
        self.assertEqual(self.service.cardio_xp(30, None), 60)
        self.assertEqual(self.service.cardio_xp(30, 5.0), 110)

    def test_streaks(self) -> None:
        day = datetime.date(2026, 10, 1)
        self.service.record_workout("u1", 3, 30, today=day)
        self.service.record_workout("u1", 3, 30, today=day)
        self.assertEqual(self.api.user_stats.fetch("u1")["current_streak"], 1)
        self.service.record_workout("u1", 3, 30, today=day + datetime.timedelta(days=1))
        self.assertEqual(self.api.user_stats.fetch("u1")["current_streak"], 2)
        self.service.record_cardio("u1", 20, None, today=day + datetime.timedelta(days=3))
        stats = self.api.user_stats.fetch("u1")
        self.assertEqual(stats["current_streak"], 1)
        self.assertEqual(stats["longest_streak"], 2)
        self.assertEqual(stats["total_workouts"], 3)
        self.assertEqual(stats["total_cardio_sessions"], 1)
        self.assertEqual(stats["total_cardio_minutes"], 20)

    def test_achievements_awarded_once(self) -> None:
        first = self.service.record_workout("u1", 3, 30, today=datetime.date(2026, 10, 1))
        self.assertEqual([a["name"] for a in first["achievements"]], ["Första passet"])
        second = self.service.record_workout("u1", 3, 30, today=datetime.date(2026, 10, 1))
        self.assertEqual(second["achievements"], [])
        stats = self.api.user_stats.fetch("u1")
        self.assertEqual(stats["total_xp"], 86 + 25 + 86)
        self.assertEqual(stats["level"], 2)
        notes = self.api.notification_repo.fetch_all("u1")
        self.assertEqual(len(notes), 1)
        self.assertEqual(notes[0]["type"], "achievement")

    def test_distance_achievement(self) -> None:
        result = self.service.record_cardio("u1", 240, 42.2, today=datetime.date(2026, 10, 1))
        names = {a["name"] for a in result["achievements"]}
        self.assertEqual(names, {"Första konditionspasset", "Maratondistans"})

    def test_daily_bonus(self) -> None:
        day = datetime.date(2026, 10, 1)
        first = self.service.claim_daily_bonus("u1", today=day)
        self.assertEqual(first, {"is_new_day": True, "xp_earned": 15, "streak": 1, "total_xp": 15})
        again = self.service.claim_daily_bonus("u1", today=day)
        self.assertFalse(again["is_new_day"])
        self.assertEqual(again["xp_earned"], 0)
        nxt = self.service.claim_daily_bonus("u1", today=day + datetime.timedelta(days=1))
        self.assertEqual(nxt["streak"], 2)
        self.assertEqual(nxt["xp_earned"], 20)
        later = self.service.claim_daily_bonus("u1", today=day + datetime.timedelta(days=5))
        self.assertEqual(later["streak"], 1)
        self.assertEqual(later["total_xp"], 15 + 20 + 15)

    def test_bonus_and_workout_same_day_count_once(self) -> None:
        day = datetime.date(2026, 10, 1)
        nxt = day + datetime.timedelta(days=1)
        self.service.record_workout("u1", 3, 30, today=day)
        self.assertEqual(self.service.claim_daily_bonus("u1", today=nxt)["streak"], 2)
        self.service.record_workout("u1", 3, 30, today=nxt)
        stats = self.api.user_stats.fetch("u1")
        self.assertEqual(stats["current_streak"], 2)
        self.assertEqual(stats["longest_streak"], 2)

    def test_streak_leaderboard(self) -> None:
        day = datetime.date(2026, 10, 1)
        for offset in range(3):
            self.service.record_workout("u1", 3, 30, today=day + datetime.timedelta(days=offset))
        self.service.record_workout("u2", 3, 30, today=day)
        self.service.record_workout("u2", 3, 30, today=day + datetime.timedelta(days=1))
        self.api.user_stats.fetch("u3")
        self.api.profiles.upsert("u1", "Anna")
        board = self.service.streak_leaderboard()
        self.assertEqual([r["user_id"] for r in board], ["u1", "u2"])
        self.assertEqual(board[0]["display_name"], "Anna")
        self.assertEqual(board[0]["current_streak"], 3)
        self.assertEqual(board[1]["display_name"], "Anonym")
        self.assertEqual(len(self.service.streak_leaderboard(1)), 1)
        with self.assertRaises(ValueError):
            self.service.streak_leaderboard(0)

    def test_add_xp_updates_level(self) -> None:
        total = self.service.add_xp("u1", 350)
        self.assertEqual(total, 350)
        self.assertEqual(self.api.user_stats.fetch("u1")["level"], 3)


if __name__ == "__main__":
    unittest.main()
