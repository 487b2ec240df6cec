import os
import sys
import datetime
import unittest
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import GymdagbokenAPI
from localization import translator


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_gymdagboken.db"
        self.yaml_path = "test_settings.yaml"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)
        self.api = GymdagbokenAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.api.settings.set_text("admin_token", "secret")
        self.client = TestClient(self.api.app)
        self.admin = {"X-Admin-Token": "secret"}

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        if os.path.exists(self.yaml_path):
            os.remove(self.yaml_path)

    def _log_workout(self, user_id: str = "u1") -> dict:
        response = self.client.post(
            "/workouts",
            params={"user_id": user_id, "workout_day": "Dag 1", "duration_minutes": 30},
            json=[
                {
                    "exercise_name": "Bänkpress",
                    "sets_completed": 3,
                    "reps_completed": "8",
                    "weight_kg": 60,
                    "set_details": [{"reps": 8, "weight": 60}],
                }
            ],
        )
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_rate_limit(self) -> None:
        api = GymdagbokenAPI(
            db_path=self.db_path, yaml_path=self.yaml_path, rate_limit=2, rate_window=60
        )
        client = TestClient(api.app)
        self.assertEqual(client.get("/health").status_code, 200)
        self.assertEqual(client.get("/health").status_code, 200)
        self.assertEqual(client.get("/health").status_code, 429)

    def test_workout_workflow(self) -> None:
        data = self._log_workout()
        self.assertEqual(data["id"], 1)
        self.assertEqual(data["xp_earned"], 86)
        self.assertEqual(
            data["achievements"], [{"id": 1, "name": "Första passet", "xp_reward": 25}]
        )

        response = self.client.get("/workouts", params={"user_id": "u1"})
        self.assertEqual(response.status_code, 200)
        workouts = response.json()
        self.assertEqual(len(workouts), 1)
        self.assertEqual(workouts[0]["workout_day"], "Dag 1")
        self.assertEqual(workouts[0]["exercises"][0]["exercise_name"], "Bänkpress")
        self.assertEqual(
            workouts[0]["exercises"][0]["set_details"], [{"reps": 8, "weight": 60}]
        )

        response = self.client.put("/workouts/1", params={"notes": "Tungt"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/workouts/1").json()["notes"], "Tungt")

        response = self.client.get("/users/u1/stats")
        stats = response.json()
        self.assertEqual(stats["total_xp"], 111)
        self.assertEqual(stats["level"], 2)
        self.assertEqual(stats["total_workouts"], 1)
        self.assertEqual(stats["total_sets"], 3)
        self.assertEqual(stats["current_streak"], 1)
        self.assertEqual(stats["progress"]["needed"], 200)
        self.assertEqual(stats["achievements"][0]["name"], "Första passet")

        response = self.client.delete("/workouts/1")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/workouts/1").status_code, 404)
        self.assertEqual(self.api.exercise_logs.fetch_for_workout(1), [])
        self.assertEqual(self.client.delete("/workouts/1").status_code, 404)

    def test_cardio_workflow(self) -> None:
        response = self.client.post(
            "/cardio",
            params={
                "user_id": "u1",
                "activity_type": "running",
                "duration_minutes": 30,
                "distance_km": 5,
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["xp_earned"], 110)

        response = self.client.get("/cardio", params={"user_id": "u1"})
        self.assertEqual(len(response.json()), 1)
        self.assertEqual(response.json()[0]["distance_km"], 5.0)

        self.assertEqual(self.client.get("/cardio/1/route").status_code, 404)

        response = self.client.post(
            "/cardio",
            params={"user_id": "u1", "activity_type": "", "duration_minutes": 30},
        )
        self.assertEqual(response.status_code, 400)

    def test_gps_session_finish_creates_route(self) -> None:
        response = self.client.post(
            "/gps/sessions", params={"user_id": "u1", "activity_type": "running"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_distance_km"], 0.0)

        positions = [
            {"latitude": 59.0, "longitude": 18.0, "accuracy": 5, "timestamp": 0},
            {"latitude": 59.001, "longitude": 18.0, "accuracy": 5, "timestamp": 30000},
            {"latitude": 59.002, "longitude": 18.0, "accuracy": 5, "timestamp": 60000},
        ]
        response = self.client.post("/gps/sessions/u1/positions", json=positions[:2])
        self.assertEqual(response.status_code, 200)
        response = self.client.post("/gps/sessions/u1/positions", json=positions[2:])
        self.assertAlmostEqual(response.json()["total_distance_km"], 0.222, places=3)

        response = self.client.get("/gps/sessions/u1")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["route"]), 3)

        response = self.client.post(
            "/gps/sessions/u1/finish", params={"duration_minutes": 10}
        )
        self.assertEqual(response.status_code, 200)
        cid = response.json()["id"]
        route = self.client.get(f"/cardio/{cid}/route").json()
        self.assertEqual(len(route["route_data"]), 3)
        self.assertAlmostEqual(route["total_distance_km"], 0.222, places=3)
        self.assertEqual(self.client.get("/gps/sessions/u1").status_code, 404)

        response = self.client.delete(f"/cardio/{cid}")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self.api.cardio_routes.fetch_for_log(cid))

    def test_cardio_draft(self) -> None:
        response = self.client.put(
            "/cardio/drafts/u1", json={"activity_type": "cycling", "duration": 45}
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.get("/cardio/drafts/u1")
        self.assertEqual(
            response.json(), {"draft": {"activity_type": "cycling", "duration": 45}}
        )
        self.client.delete("/cardio/drafts/u1")
        self.assertEqual(self.client.get("/cardio/drafts/u1").json(), {"draft": None})

    def test_admin_token_required(self) -> None:
        params = {
            "title": "Oktober",
            "goal_description": "Spring",
            "goal_unit": "km",
            "start_date": "2026-10-01",
            "end_date": "2026-10-31",
        }
        response = self.client.post("/challenges", params=params)
        self.assertEqual(response.status_code, 403)
        response = self.client.post(
            "/challenges", params=params, headers={"X-Admin-Token": "wrong"}
        )
        self.assertEqual(response.status_code, 403)
        response = self.client.post("/challenges", params=params, headers=self.admin)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"id": 1})

    def test_challenge_join_and_leaderboard(self) -> None:
        today = datetime.date.today()
        self.client.post(
            "/challenges",
            params={
                "title": "Oktober",
                "goal_description": "Spring",
                "goal_unit": "km",
                "start_date": (today - datetime.timedelta(days=1)).isoformat(),
                "end_date": (today + datetime.timedelta(days=10)).isoformat(),
            },
            headers=self.admin,
        )
        self.client.put("/profiles/u1", params={"display_name": "Anna"})
        self.assertEqual(
            self.client.post("/challenges/1/join", params={"user_id": "u1"}).status_code,
            200,
        )
        self.client.post("/challenges/1/join", params={"user_id": "u2"})
        response = self.client.post("/challenges/1/join", params={"user_id": "u1"})
        self.assertEqual(response.status_code, 400)

        self.client.post("/challenges/1/progress", params={"user_id": "u2", "amount": 4})
        response = self.client.get("/challenges/1/leaderboard")
        self.assertEqual(
            response.json(),
            [
                {"rank": 1, "user_id": "u2", "display_name": "Anonym", "current_value": 4.0},
                {"rank": 2, "user_id": "u1", "display_name": "Anna", "current_value": 0.0},
            ],
        )
        response = self.client.get("/challenges")
        self.assertEqual(response.json()[0]["status"], "active")
        self.assertEqual(self.client.get("/challenges/9/leaderboard").status_code, 404)

    def test_notifications_and_preferences(self) -> None:
        self._log_workout()
        response = self.client.get("/notifications", params={"user_id": "u1"})
        self.assertEqual(response.status_code, 200)
        items = response.json()
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["type"], "achievement")
        self.assertEqual(items[0]["title"], "Ny prestation!")
        self.assertFalse(items[0]["is_read"])

        response = self.client.get("/notifications/unread_count", params={"user_id": "u1"})
        self.assertEqual(response.json(), {"count": 1})
        self.client.put(f"/notifications/{items[0]['id']}/read")
        response = self.client.get("/notifications/unread_count", params={"user_id": "u1"})
        self.assertEqual(response.json(), {"count": 0})

        response = self.client.get("/notifications/preferences/u2")
        self.assertTrue(all(response.json().values()))
        response = self.client.put(
            "/notifications/preferences/u2", params={"achievements": False}
        )
        self.assertFalse(response.json()["achievements"])
        self.assertTrue(response.json()["challenges"])
        self._log_workout("u2")
        response = self.client.get("/notifications", params={"user_id": "u2"})
        self.assertEqual(response.json(), [])

    def test_ads(self) -> None:
        response = self.client.post(
            "/ads",
            params={
                "name": "Protein",
                "image_url": "https://example.com/a.png",
                "link": "https://example.com",
                "placement": "feed",
                "priority": 5,
            },
            headers=self.admin,
        )
        self.assertEqual(response.status_code, 200)
        self.client.post(
            "/ads",
            params={"name": "Skor", "image_url": "x.png", "link": "https://example.com/s"},
            headers=self.admin,
        )
        self.client.post(
            "/ads",
            params={"name": "Av", "image_url": "y.png", "link": "z", "is_active": False},
            headers=self.admin,
        )
        response = self.client.get("/ads", params={"placement": "feed"})
        self.assertEqual([a["name"] for a in response.json()], ["Protein", "Skor"])
        response = self.client.get("/ads", params={"placement": "sidebar"})
        self.assertEqual([a["name"] for a in response.json()], ["Skor"])

        self.client.post("/ads/1/events", params={"event_type": "impression"})
        self.client.post("/ads/1/events", params={"event_type": "impression"})
        self.client.post("/ads/1/events", params={"event_type": "click", "user_id": "u1"})
        response = self.client.post("/ads/1/events", params={"event_type": "hover"})
        self.assertEqual(response.status_code, 400)
        response = self.client.get("/ads/statistics", headers=self.admin)
        self.assertEqual(
            response.json()[0],
            {"ad_id": 1, "name": "Protein", "impressions": 2, "clicks": 1, "ctr": 50.0},
        )
        self.assertEqual(self.client.delete("/ads/1").status_code, 403)
        self.assertEqual(self.client.delete("/ads/1", headers=self.admin).status_code, 200)

    def test_scheduled_workouts(self) -> None:
        tomorrow = (datetime.date.today() + datetime.timedelta(days=1)).isoformat()
        response = self.client.post(
            "/scheduled",
            params={
                "user_id": "u1",
                "title": "Benpass",
                "scheduled_date": tomorrow,
                "scheduled_time": "18:00",
            },
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.get("/scheduled", params={"user_id": "u1"})
        self.assertEqual(response.json()[0]["title"], "Benpass")
        self.assertTrue(response.json()[0]["reminder_enabled"])

        self.client.post("/scheduled/1/complete")
        response = self.client.get("/scheduled", params={"user_id": "u1"})
        self.assertEqual(response.json(), [])
        response = self.client.post(
            "/scheduled",
            params={"user_id": "u1", "title": "X", "scheduled_date": "not-a-date"},
        )
        self.assertEqual(response.status_code, 400)

    def test_settings_hide_secrets(self) -> None:
        response = self.client.get("/settings/general")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertNotIn("admin_token", data)
        self.assertEqual(data["language"], "sv")
        self.assertEqual(data["gps_max_accuracy_m"], 50.0)

        response = self.client.post(
            "/settings/general", json={"draft_expiry_hours": 12}, headers=self.admin
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.api.settings.get_int("draft_expiry_hours", 24), 12)
        response = self.client.post(
            "/settings/general", json={"gps_max_speed_kmh": "fast"}, headers=self.admin
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/settings/general", json={"favourite_colour": "red"}, headers=self.admin
        )
        self.assertEqual(response.status_code, 400)
        self.assertNotIn("favourite_colour", self.api.settings.all_settings())

    def test_language_setting(self) -> None:
        self.client.post(
            "/challenges",
            params={
                "title": "Okt",
                "goal_description": "Spring",
                "goal_unit": "km",
                "start_date": "2026-10-01",
                "end_date": "2026-10-31",
            },
            headers=self.admin,
        )
        self.client.post("/challenges/1/join", params={"user_id": "u9"})
        try:
            self.client.post("/settings/general", json={"language": "en"}, headers=self.admin)
            board = self.client.get("/challenges/1/leaderboard").json()
            self.assertEqual(board[0]["display_name"], "Anonymous")
        finally:
            translator.set_language("sv")

    def test_websocket_broadcasts_changes(self) -> None:
        with self.client.websocket_connect("/ws/updates") as ws:
            self._log_workout()
            self.assertEqual(
                ws.receive_json(), {"table": "workout_logs", "event": "INSERT", "id": 1}
            )

    def test_share_workout_card(self) -> None:
        self._log_workout()
        response = self.client.get("/share/workouts/1")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "image/png")
        self.assertTrue(response.content.startswith(b"\x89PNG"))
        self.assertEqual(self.client.get("/share/workouts/99").status_code, 404)

    def test_weekly_stats_and_admin_stats(self) -> None:
        self._log_workout()
        response = self.client.get("/stats/weekly", params={"user_id": "u1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)
        self.assertEqual(response.json()[0]["workouts"], 1)
        response = self.client.get("/admin/stats", headers=self.admin)
        self.assertEqual(response.json()["total_workouts"], 1)


if __name__ == "__main__":
    unittest.main()
