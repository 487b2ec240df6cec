import requests
from typing import Optional


class GymdagbokenClient:
    """Simple REST client for the Gymdagboken API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        admin_token: Optional[str] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.admin_token = admin_token

    def _headers(self) -> dict:
        return {"X-Admin-Token": self.admin_token} if self.admin_token else {}

    def log_workout(self, user_id: str, workout_day: str, exercises: list[dict], **params) -> dict:
        resp = requests.post(
            f"{self.base_url}/workouts",
            params={"user_id": user_id, "workout_day": workout_day, **params},
            json=exercises,
        )
        resp.raise_for_status()
        return resp.json()

    def list_workouts(self, user_id: str, **params):
        resp = requests.get(
            f"{self.base_url}/workouts", params={"user_id": user_id, **params}
        )
        resp.raise_for_status()
        return resp.json()

    def log_cardio(
        self,
        user_id: str,
        activity_type: str,
        duration_minutes: int,
        distance_km: Optional[float] = None,
    ) -> dict:
        params = {
            "user_id": user_id,
            "activity_type": activity_type,
            "duration_minutes": duration_minutes,
        }
        if distance_km is not None:
            params["distance_km"] = distance_km
        resp = requests.post(f"{self.base_url}/cardio", params=params)
        resp.raise_for_status()
        return resp.json()

    def leaderboard(self, challenge_id: int) -> list:
        resp = requests.get(f"{self.base_url}/challenges/{challenge_id}/leaderboard")
        resp.raise_for_status()
        return resp.json()

    def join_challenge(self, challenge_id: int, user_id: str) -> int:
        resp = requests.post(
            f"{self.base_url}/challenges/{challenge_id}/join",
            params={"user_id": user_id},
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def streak_leaderboard(self, limit: int = 10) -> list:
        resp = requests.get(
            f"{self.base_url}/leaderboards/streaks", params={"limit": limit}
        )
        resp.raise_for_status()
        return resp.json()

    def log_weight(self, user_id: str, weight_kg: float, notes: Optional[str] = None) -> int:
        params = {"user_id": user_id, "weight_kg": weight_kg}
        if notes:
            params["notes"] = notes
        resp = requests.post(f"{self.base_url}/weight", params=params)
        resp.raise_for_status()
        return resp.json()["id"]

    def calendar(self, user_id: str) -> str:
        resp = requests.get(
            f"{self.base_url}/scheduled/calendar.ics", params={"user_id": user_id}
        )
        resp.raise_for_status()
        return resp.text

    def notifications(self, user_id: str, unread_only: bool = False) -> list:
        resp = requests.get(
            f"{self.base_url}/notifications",
            params={"user_id": user_id, "unread_only": unread_only},
        )
        resp.raise_for_status()
        return resp.json()

    def run_jobs(self) -> dict:
        resp = requests.post(f"{self.base_url}/jobs/run", headers=self._headers())
        resp.raise_for_status()
        return resp.json()
