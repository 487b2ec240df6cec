import datetime
import logging

from algorithms.gps import GpsTracker
from db import (
    WorkoutLogRepository,
    ExerciseLogRepository,
    CardioLogRepository,
    CardioRouteRepository,
    GpsSessionRepository,
    CardioDraftRepository,
    SettingsRepository,
)
from gamification_service import GamificationService
from pool_service import PoolService

logger = logging.getLogger(__name__)


class TrackingService:
    """Log strength and cardio sessions, GPS routes and cardio drafts."""

    def __init__(
        self,
        workout_repo: WorkoutLogRepository,
        exercise_repo: ExerciseLogRepository,
        cardio_repo: CardioLogRepository,
        route_repo: CardioRouteRepository,
        gps_repo: GpsSessionRepository,
        draft_repo: CardioDraftRepository,
        settings_repo: SettingsRepository,
        gamification: GamificationService,
        pool: PoolService | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.exercises = exercise_repo
        self.cardio = cardio_repo
        self.routes = route_repo
        self.gps = gps_repo
        self.drafts = draft_repo
        self.settings = settings_repo
        self.gamification = gamification
        self.pool = pool

    def log_workout(
        self,
        user_id: str,
        workout_day: str,
        exercises: list[dict],
        duration_minutes: int | None = None,
        notes: str | None = None,
        program_id: int | None = None,
        completed_at: str | None = None,
    ) -> dict:
        if not workout_day:
            raise ValueError("workout_day is required")
        for ex in exercises:
            if not ex.get("exercise_name"):
                raise ValueError("exercise_name is required")
            if int(ex.get("sets_completed", 0)) < 0:
                raise ValueError("sets_completed must be non-negative")
        wid = self.workouts.create(
            user_id, workout_day, duration_minutes, notes, program_id, completed_at
        )
        total_sets = 0
        for ex in exercises:
            sets = int(ex.get("sets_completed", 0))
            total_sets += sets
            self.exercises.add(
                wid,
                ex["exercise_name"],
                sets,
                str(ex.get("reps_completed", "")),
                ex.get("weight_kg"),
                ex.get("set_details"),
                ex.get("notes"),
            )
        result = self.gamification.record_workout(user_id, total_sets, duration_minutes)
        if self.pool is not None:
            self.pool.record_pool_progress(user_id, "strength", 1)
        logger.info("workout %s logged for %s (%d sets)", wid, user_id, total_sets)
        return {"id": wid, "xp_earned": result["xp_earned"], "achievements": result["achievements"]}

    def workout_history(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        logs = self.workouts.fetch_for_user(user_id, start_date, end_date, limit)
        for log in logs:
            log["exercises"] = self.exercises.fetch_for_workout(log["id"])
        return logs

    def get_workout(self, log_id: int) -> dict:
        log = self.workouts.fetch(log_id)
        log["exercises"] = self.exercises.fetch_for_workout(log_id)
        return log

    def update_workout(self, log_id: int, **fields) -> None:
        self.workouts.update(log_id, **fields)

    def delete_workout(self, log_id: int) -> None:
        self.workouts.delete(log_id)

    def log_cardio(
        self,
        user_id: str,
        activity_type: str,
        duration_minutes: int,
        distance_km: float | None = None,
        calories_burned: int | None = None,
        notes: str | None = None,
        route: dict | None = None,
        completed_at: str | None = None,
    ) -> dict:
        """Insert a cardio session, its optional route, and award XP.

        ``route`` is a GPS session summary holding ``positions`` plus the
        distance and speed totals.
        """
        if not activity_type:
            raise ValueError("activity_type is required")
        if not duration_minutes or duration_minutes <= 0:
            raise ValueError("duration_minutes is required")
        cid = self.cardio.create(
            user_id,
            activity_type,
            duration_minutes,
            distance_km,
            calories_burned,
            notes,
            completed_at,
        )
        if route and route.get("positions"):
            self.routes.add(
                cid,
                user_id,
                route["positions"],
                route.get("total_distance_km", distance_km or 0.0),
                route.get("average_speed_kmh", 0.0),
                route.get("max_speed_kmh", 0.0),
            )
        result = self.gamification.record_cardio(user_id, duration_minutes, distance_km)
        if self.pool is not None:
            amount = distance_km if distance_km else duration_minutes
            self.pool.record_pool_progress(user_id, "cardio", amount)
        logger.info("cardio %s logged for %s", cid, user_id)
        return {"id": cid, "xp_earned": result["xp_earned"], "achievements": result["achievements"]}

    def recent_cardio(self, user_id: str, limit: int = 50) -> list[dict]:
        return self.cardio.fetch_for_user(user_id, limit)

    def route_for(self, cardio_log_id: int) -> dict | None:
        self.cardio.fetch(cardio_log_id)
        return self.routes.fetch_for_log(cardio_log_id)

    def update_cardio(self, log_id: int, **fields) -> None:
        self.cardio.update(log_id, **fields)

    def delete_cardio(self, log_id: int) -> None:
        self.cardio.delete(log_id)

    def _new_tracker(self) -> GpsTracker:
        return GpsTracker(
            max_accuracy_m=self.settings.get_float("gps_max_accuracy_m", 50.0),
            max_speed_kmh=self.settings.get_float("gps_max_speed_kmh", 50.0),
        )

    def start_gps_session(self, user_id: str, activity_type: str) -> dict:
        tracker = self._new_tracker()
        self.gps.save(user_id, activity_type, tracker.to_dict())
        return {"activity_type": activity_type, **tracker.stats()}

    def _load_tracker(self, user_id: str) -> tuple[str, GpsTracker]:
        session = self.gps.fetch(user_id)
        if session is None:
            raise ValueError("no active gps session")
        return session["activity_type"], GpsTracker.from_dict(session["state"])

    def push_gps_positions(self, user_id: str, positions: list[dict]) -> dict:
        activity_type, tracker = self._load_tracker(user_id)
        for pos in positions:
            tracker.add_position(
                pos["latitude"],
                pos["longitude"],
                pos["accuracy"],
                pos["timestamp"],
                pos.get("speed"),
            )
        self.gps.save(user_id, activity_type, tracker.to_dict())
        return {"activity_type": activity_type, **tracker.stats()}

    def get_gps_session(self, user_id: str) -> dict | None:
        """Return the stored session for resume, or None."""
        session = self.gps.fetch(user_id)
        if session is None:
            return None
        tracker = GpsTracker.from_dict(session["state"])
        return {
            "activity_type": session["activity_type"],
            "updated_at": session["updated_at"],
            "route": tracker.route(),
            **tracker.stats(),
        }

    def finish_gps_session(
        self,
        user_id: str,
        duration_minutes: int | None = None,
        calories_burned: int | None = None,
        notes: str | None = None,
    ) -> dict:
        activity_type, tracker = self._load_tracker(user_id)
        if duration_minutes is None:
            duration_minutes = max(1, round(tracker.elapsed_hours * 60))
        stats = tracker.stats()
        result = self.log_cardio(
            user_id,
            activity_type,
            duration_minutes,
            stats["total_distance_km"] or None,
            calories_burned,
            notes,
            route={**stats, "positions": tracker.route()},
        )
        self.gps.delete(user_id)
        return result

    def discard_gps_session(self, user_id: str) -> None:
        self.gps.delete(user_id)

    def save_draft(self, user_id: str, payload: dict, now: datetime.datetime | None = None) -> None:
        stamp = (now or datetime.datetime.now()).isoformat(timespec="seconds")
        self.drafts.save(user_id, payload, stamp)

    def load_draft(self, user_id: str, now: datetime.datetime | None = None) -> dict | None:
        """Return the saved draft payload, dropping drafts past their expiry."""
        draft = self.drafts.fetch(user_id)
        if draft is None:
            return None
        now = now or datetime.datetime.now()
        hours = self.settings.get_float("draft_expiry_hours", 24)
        created = datetime.datetime.fromisoformat(draft["created_at"])
        if now - created > datetime.timedelta(hours=hours):
            logger.debug("cardio draft for %s expired", user_id)
            self.drafts.delete(user_id)
            return None
        return draft["payload"]

    def discard_draft(self, user_id: str) -> None:
        self.drafts.delete(user_id)
