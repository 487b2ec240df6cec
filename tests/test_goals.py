import os
import sys
import datetime
import unittest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import GymdagbokenAPI


class GoalServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_goals.db"
        self.yaml_path = "test_goals.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = GymdagbokenAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.goals = self.api.goals

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_weight_validation_and_history(self) -> None:
        for bad in (0, -3, 501):
            with self.assertRaises(ValueError):
                self.goals.log_weight("u1", bad)
        self.goals.log_weight("u1", 81.0, logged_at="2026-10-05T07:00:00")
        self.goals.log_weight("u1", 82.5, "Morgonvikt", logged_at="2026-10-01T07:00:00")
        history = self.goals.weight_history("u1")
        self.assertEqual([h["weight_kg"] for h in history], [82.5, 81.0])
        self.assertEqual(history[0]["notes"], "Morgonvikt")
        self.assertEqual(len(self.goals.weight_history("u1", start_date="2026-10-02")), 1)
        self.goals.delete_weight(history[0]["id"])
        self.assertEqual(len(self.goals.weight_history("u1")), 1)
        with self.assertRaises(ValueError):
            self.goals.delete_weight(999)

    def test_weigh_in_moves_active_weight_goal(self) -> None:
        gid = self.goals.create_goal("u1", "Ner i vikt", "weight", 75, target_unit="kg")
        self.assertIsNone(self.api.user_goals.fetch(gid)["current_value"])
        self.goals.log_weight("u1", 82.0)
        self.assertEqual(self.api.user_goals.fetch(gid)["current_value"], 82.0)

    def test_weight_goal_progress(self) -> None:
        self.assertEqual(self.goals.weight_progress("u1")["percent"], 0)
        self.goals.log_weight("u1", 90.0, logged_at="2026-10-01T08:00:00")
        self.goals.log_weight("u1", 85.0, logged_at="2026-10-10T08:00:00")
        gid = self.goals.set_weight_goal("u1", 80)
        goal = self.api.user_goals.fetch(gid)
        self.assertEqual(goal["title"], "Viktmål")
        self.assertEqual(goal["description"], "Nå målvikten 80 kg")
        self.assertEqual(goal["current_value"], 85.0)
        progress = self.goals.weight_progress("u1")
        self.assertEqual(progress["start_weight"], 90.0)
        self.assertEqual(progress["remaining_kg"], 5.0)
        self.assertEqual(progress["percent"], 50)
        self.assertEqual(self.goals.set_weight_goal("u1", 70), gid)
        self.assertEqual(self.goals.weight_progress("u1")["percent"], 25)
        self.assertEqual(self.goals.list_goals("u1")[0]["percent"], 25)
        with self.assertRaises(ValueError):
            self.goals.set_weight_goal("u1", 0)

    def test_create_goal_validation(self) -> None:
        with self.assertRaises(ValueError):
            self.goals.create_goal("u1", "", "habit", 12)
        with self.assertRaises(ValueError):
            self.goals.create_goal("u1", "Mål", "flying", 12)
        with self.assertRaises(ValueError):
            self.goals.create_goal("u1", "Mål", "habit", -1)
        with self.assertRaises(ValueError):
            self.goals.create_goal("u1", "Mål", "habit", 12, reminder_frequency="hourly")
        with self.assertRaises(ValueError):
            self.goals.create_goal("u1", "Mål", "habit", 12, target_date="snart")

    def test_list_complete_and_abandon(self) -> None:
        today = datetime.date(2026, 10, 19)
        gid = self.goals.create_goal(
            "u1", "Träna regelbundet", "habit", 12,
            target_unit="sessions", current_value=3, target_date="2026-10-29",
        )
        other = self.goals.create_goal("u1", "Springa 5 km", "cardio", 5, target_unit="km")
        goals = {g["id"]: g for g in self.goals.list_goals("u1", today=today)}
        self.assertEqual(goals[gid]["percent"], 25)
        self.assertEqual(goals[gid]["days_remaining"], 10)
        self.assertEqual(goals[other]["percent"], 0)
        self.assertIsNone(goals[other]["days_remaining"])

        self.goals.complete_goal(gid)
        done = self.api.user_goals.fetch(gid)
        self.assertEqual(done["status"], "completed")
        self.assertEqual(done["current_value"], 12)
        self.goals.abandon_goal(other)
        self.assertEqual(self.goals.list_goals("u1"), [])
        self.assertEqual(len(self.goals.list_goals("u1", status=None)), 2)
        with self.assertRaises(ValueError):
            self.goals.update_goal(gid, status="paused")
        with self.assertRaises(ValueError):
            self.goals.complete_goal(999)

    def test_reminders_grouped_per_user(self) -> None:
        self.goals.create_goal("u1", "A", "habit", 10, reminder_enabled=True, reminder_frequency="daily")
        self.goals.create_goal("u1", "B", "habit", 10, reminder_enabled=True, reminder_frequency="weekly")
        self.goals.create_goal("u2", "C", "habit", 10)
        now = datetime.datetime(2026, 10, 19, 12, 0)
        self.assertEqual(self.goals.send_reminders(now), {"due": 2, "sent": 1})
        self.assertEqual(self.goals.send_reminders(now), {"due": 0, "sent": 0})
        notes = self.api.notification_repo.fetch_all("u1")
        self.assertEqual(len(notes), 1)
        self.assertEqual(notes[0]["type"], "goal_reminder")
        self.assertEqual(notes[0]["title"], "🎯 Målpåminnelse")
        self.assertEqual(notes[0]["message"], "Du har 2 aktiva mål att följa upp!")
        self.assertEqual(self.api.notification_repo.fetch_all("u2"), [])

        nxt = now + datetime.timedelta(days=1)
        self.assertEqual(self.goals.send_reminders(nxt), {"due": 1, "sent": 1})
        self.assertEqual(
            self.api.notification_repo.fetch_all("u1")[-1]["message"], "Glöm inte ditt mål: A"
        )

    def test_reminder_preference_suppresses(self) -> None:
        gid = self.goals.create_goal("u1", "A", "habit", 10, reminder_enabled=True, reminder_frequency="daily")
        self.api.notifications.update_preferences("u1", goal_reminders=False)
        now = datetime.datetime(2026, 10, 19, 12, 0)
        self.assertEqual(self.goals.send_reminders(now), {"due": 1, "sent": 0})
        self.assertEqual(self.api.notification_repo.fetch_all("u1"), [])
        self.assertEqual(self.api.user_goals.fetch(gid)["last_reminder_sent"], "2026-10-19T12:00:00")


class GoalAPITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_goals_api.db"
        self.yaml_path = "test_goals_api.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = GymdagbokenAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_weight_endpoints(self) -> None:
        response = self.client.post("/weight", params={"user_id": "u1", "weight_kg": 0})
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/weight",
            params={"user_id": "u1", "weight_kg": 88.0, "logged_at": "2026-10-01T08:00:00"},
        )
        self.assertEqual(response.status_code, 200)
        wid = response.json()["id"]
        self.client.post(
            "/weight",
            params={"user_id": "u1", "weight_kg": 86.0, "logged_at": "2026-10-08T08:00:00"},
        )
        self.assertEqual(len(self.client.get("/weight", params={"user_id": "u1"}).json()), 2)

        response = self.client.put("/goals/weight/u1", params={"target_kg": 84})
        self.assertEqual(response.status_code, 200)
        progress = self.client.get("/goals/weight/u1").json()
        self.assertEqual(progress["percent"], 50)

        self.assertEqual(self.client.delete(f"/weight/{wid}").status_code, 200)
        self.assertEqual(self.client.delete(f"/weight/{wid}").status_code, 404)

    def test_goal_endpoints(self) -> None:
        response = self.client.post(
            "/goals",
            params={"user_id": "u1", "title": "Tio pass", "goal_type": "habit", "target_value": 10},
        )
        self.assertEqual(response.status_code, 200)
        gid = response.json()["id"]
        bad = self.client.post(
            "/goals", params={"user_id": "u1", "title": "X", "goal_type": "magic"}
        )
        self.assertEqual(bad.status_code, 400)

        response = self.client.put(f"/goals/{gid}", params={"current_value": 5})
        self.assertEqual(response.status_code, 200)
        goals = self.client.get("/goals", params={"user_id": "u1"}).json()
        self.assertEqual(goals[0]["percent"], 50)
        self.assertEqual(self.client.put("/goals/999", params={"title": "Y"}).status_code, 404)
        self.assertEqual(
            self.client.put(f"/goals/{gid}", params={"status": "paused"}).status_code, 400
        )

        self.assertEqual(self.client.post(f"/goals/{gid}/abandon").status_code, 200)
        self.assertEqual(self.client.get("/goals", params={"user_id": "u1"}).json(), [])
        everything = self.client.get("/goals", params={"user_id": "u1", "status": "all"}).json()
        self.assertEqual(everything[0]["status"], "abandoned")
        self.assertEqual(self.client.delete(f"/goals/{gid}").status_code, 200)
        self.assertEqual(self.client.post(f"/goals/{gid}/complete").status_code, 404)

    def test_goal_reminders_require_admin(self) -> None:
        self.assertEqual(self.client.post("/goals/reminders").status_code, 403)

    def test_streak_leaderboard_endpoint(self) -> None:
        self.api.gamification.record_workout("u1", 3, 30)
        board = self.client.get("/leaderboards/streaks").json()
        self.assertEqual(board[0]["user_id"], "u1")
        self.assertEqual(board[0]["current_streak"], 1)
        self.assertEqual(self.client.get("/leaderboards/streaks", params={"limit": 0}).status_code, 400)


if __name__ == "__main__":
    unittest.main()
