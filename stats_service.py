from __future__ import annotations
import datetime
import pandas as pd
from db import (
    WorkoutLogRepository,
    CardioLogRepository,
    ProfileRepository,
    CommunityChallengeRepository,
    PoolEntryRepository,
)


class StatisticsService:
    """Compute training summaries and admin counters."""

    def __init__(
        self,
        workout_repo: WorkoutLogRepository,
        cardio_repo: CardioLogRepository,
        profile_repo: ProfileRepository | None = None,
        challenge_repo: CommunityChallengeRepository | None = None,
        pool_entry_repo: PoolEntryRepository | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.cardio = cardio_repo
        self.profiles = profile_repo
        self.challenges = challenge_repo
        self.pool_entries = pool_entry_repo

    @staticmethod
    def _frame(rows: list[dict], prefix: str) -> pd.DataFrame:
        if not rows:
            return pd.DataFrame(
                columns=[f"{prefix}_sessions", f"{prefix}_minutes", f"{prefix}_distance_km"]
            )
        df = pd.DataFrame(rows)
        df["completed_at"] = pd.to_datetime(df["completed_at"], format="ISO8601")
        iso = df["completed_at"].dt.isocalendar()
        df["week"] = iso["year"].astype(str) + "-W" + iso["week"].astype(str).str.zfill(2)
        df["duration_minutes"] = pd.to_numeric(df["duration_minutes"]).fillna(0)
        if "distance_km" not in df:
            df["distance_km"] = 0.0
        df["distance_km"] = pd.to_numeric(df["distance_km"]).fillna(0.0)
        grouped = df.groupby("week").agg(
            sessions=("id", "count"),
            minutes=("duration_minutes", "sum"),
            distance_km=("distance_km", "sum"),
        )
        return grouped.add_prefix(f"{prefix}_")

    def weekly_summary(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict]:
        """Return per-ISO-week session counts, minutes and distance."""
        workouts = self.workouts.fetch_for_user(user_id, start_date, end_date)
        cardio = self.cardio.fetch_for_user(user_id, None, start_date, end_date)
        df = self._frame(workouts, "workout").join(
            self._frame(cardio, "cardio"), how="outer"
        )
        df = df.drop(columns=["workout_distance_km"], errors="ignore").fillna(0)
        result = []
        for week, row in df.sort_index().iterrows():
            result.append(
                {
                    "week": week,
                    "workouts": int(row.get("workout_sessions", 0)),
                    "workout_minutes": int(row.get("workout_minutes", 0)),
                    "cardio_sessions": int(row.get("cardio_sessions", 0)),
                    "cardio_minutes": int(row.get("cardio_minutes", 0)),
                    "cardio_distance_km": round(float(row.get("cardio_distance_km", 0.0)), 2),
                }
            )
        return result

    def admin_stats(self, today: datetime.date | None = None) -> dict:
        today = today or datetime.date.today()
        return {
            "date": today.isoformat(),
            "total_users": self.profiles.count() if self.profiles else 0,
            "total_workouts": self.workouts.count(),
            "total_cardio_sessions": self.cardio.count(),
            "active_challenges": self.challenges.count_active() if self.challenges else 0,
            "pool_entries": self.pool_entries.counts_by_status() if self.pool_entries else {},
        }
