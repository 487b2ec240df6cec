import datetime
import logging
import secrets
import time
import threading
import asyncio
from typing import List, Dict
from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    Body,
    APIRouter,
    Request,
    WebSocket,
    Header,
    Depends,
)
from db import (
    ProfileRepository,
    UserStatsRepository,
    WorkoutLogRepository,
    ExerciseLogRepository,
    CardioLogRepository,
    CardioRouteRepository,
    GpsSessionRepository,
    CardioDraftRepository,
    ProgressPhotoRepository,
    AdRepository,
    AdStatsRepository,
    ScheduledWorkoutRepository,
    NotificationPreferenceRepository,
    NotificationRepository,
    AsyncNotificationRepository,
    CommunityChallengeRepository,
    ChallengeParticipantRepository,
    LeaderboardRankRepository,
    PoolEntryRepository,
    PoolChallengeRepository,
    PoolParticipantRepository,
    AchievementRepository,
    WorkoutProgramRepository,
    CardioPlanRepository,
    SavedWodRepository,
    WeightLogRepository,
    GoalRepository,
    SettingsRepository,
)
from config import env_override
from settings_schema import SettingsSchema, validate_settings
from localization import translator
from notification_service import NotificationService
from gamification_service import GamificationService
from challenge_service import ChallengeService
from pool_service import PoolService
from tracking_service import TrackingService
from planner_service import PlannerService
from goal_service import GoalService
from calendar_service import CalendarExportService
from ad_service import AdService
from photo_service import PhotoService
from share_image_service import ShareCardService
from stats_service import StatisticsService
from ai_service import AIGatewayClient, AIServiceError, PlanGenerationService

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = time.time()
        history = [t for t in self.requests.get(ip, []) if now - t < self.window]
        if len(history) >= self.limit:
            logger.warning("rate limit exceeded for %s", ip)
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


class JobScheduler(threading.Thread):
    """Background thread running pool matching, completion and reminders."""

    def __init__(self, api: "GymdagbokenAPI", interval_minutes: float = 15) -> None:
        super().__init__(daemon=True)
        self.api = api
        self.interval = interval_minutes * 60
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.is_set():
            self.api.run_jobs()
            self._stopped.wait(self.interval)

    def stop(self) -> None:
        self._stopped.set()


class GymdagbokenAPI:
    """Provides REST endpoints for the Gymdagboken app."""

    WATCHED_TABLES = {
        "workout_logs",
        "cardio_logs",
        "community_challenge_participants",
        "pool_challenge_participants",
        "challenge_pool_entries",
        "notifications",
        "scheduled_workouts",
        "weight_logs",
        "user_goals",
        "ads",
    }

    def __init__(
        self,
        db_path: str = "gymdagboken.db",
        yaml_path: str = "settings.yaml",
        *,
        start_scheduler: bool = False,
        rate_limit: int | None = None,
        rate_window: int = 60,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        translator.set_language(self.settings.get_text("language", "sv"))
        self.profiles = ProfileRepository(db_path)
        self.user_stats = UserStatsRepository(db_path)
        self.workout_logs = WorkoutLogRepository(db_path)
        self.exercise_logs = ExerciseLogRepository(db_path)
        self.cardio_logs = CardioLogRepository(db_path)
        self.cardio_routes = CardioRouteRepository(db_path)
        self.gps_sessions = GpsSessionRepository(db_path)
        self.cardio_drafts = CardioDraftRepository(db_path)
        self.progress_photos = ProgressPhotoRepository(db_path)
        self.ads_repo = AdRepository(db_path)
        self.ad_stats = AdStatsRepository(db_path)
        self.scheduled_workouts = ScheduledWorkoutRepository(db_path)
        self.notification_prefs = NotificationPreferenceRepository(db_path)
        self.notification_repo = NotificationRepository(db_path)
        self.async_notifications = AsyncNotificationRepository(db_path)
        self.community_challenges = CommunityChallengeRepository(db_path)
        self.challenge_participants = ChallengeParticipantRepository(db_path)
        self.leaderboard_ranks = LeaderboardRankRepository(db_path)
        self.pool_entries = PoolEntryRepository(db_path)
        self.pool_challenges = PoolChallengeRepository(db_path)
        self.pool_participants = PoolParticipantRepository(db_path)
        self.achievements = AchievementRepository(db_path)
        self.workout_programs = WorkoutProgramRepository(db_path)
        self.cardio_plans = CardioPlanRepository(db_path)
        self.saved_wods = SavedWodRepository(db_path)
        self.weight_logs = WeightLogRepository(db_path)
        self.user_goals = GoalRepository(db_path)
        self.watchers: list[WebSocket] = []
        self._loop: asyncio.AbstractEventLoop | None = None

        self.notifications = NotificationService(
            self.notification_repo, self.notification_prefs
        )
        self.gamification = GamificationService(
            self.user_stats,
            self.achievements,
            self.settings,
            self.notifications,
            self.profiles,
        )
        self.challenges = ChallengeService(
            self.community_challenges,
            self.challenge_participants,
            self.leaderboard_ranks,
            self.profiles,
            self.notifications,
        )
        self.pool = PoolService(
            self.pool_entries,
            self.pool_challenges,
            self.pool_participants,
            self.gamification,
            self.notifications,
        )
        self.tracking = TrackingService(
            self.workout_logs,
            self.exercise_logs,
            self.cardio_logs,
            self.cardio_routes,
            self.gps_sessions,
            self.cardio_drafts,
            self.settings,
            self.gamification,
            self.pool,
        )
        self.planner = PlannerService(self.scheduled_workouts, self.notifications)
        self.goals = GoalService(self.user_goals, self.weight_logs, self.notifications)
        self.calendar = CalendarExportService(self.scheduled_workouts)
        self.ads = AdService(self.ads_repo, self.ad_stats)
        self.photos = PhotoService(
            self.progress_photos,
            self.settings,
            env_override("PHOTO_SIGNING_KEY", secrets.token_hex(16)),
        )
        self.share_cards = ShareCardService()
        self.statistics = StatisticsService(
            self.workout_logs,
            self.cardio_logs,
            self.profiles,
            self.community_challenges,
            self.pool_entries,
        )
        self.plans = PlanGenerationService(
            AIGatewayClient.from_settings(self.settings),
            self.workout_programs,
            self.cardio_plans,
            self.saved_wods,
        )
        self.app = FastAPI(
            title="Gymdagboken API",
            description="REST API for workout logging, challenges and training plans",
        )
        if rate_limit is not None:
            limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(limiter)
        self.scheduler: JobScheduler | None = None
        if start_scheduler:
            self.scheduler = JobScheduler(
                self, self.settings.get_float("jobs_interval_minutes", 15)
            )
            self.scheduler.start()
        self._setup_routes()

    def run_jobs(self, now: datetime.datetime | None = None) -> dict:
        """Run every periodic job once, isolating failures per job."""
        now = now or datetime.datetime.now()
        results: dict[str, dict | None] = {}
        for name, job in (
            ("match_pool", self.pool.match_pool),
            ("complete_pools", self.pool.complete_pools),
            ("send_reminders", self.planner.send_reminders),
            ("goal_reminders", self.goals.send_reminders),
        ):
            try:
                results[name] = job(now)
            except Exception:
                logger.exception("job %s failed", name)
                results[name] = None
        return results

    def require_admin(self, x_admin_token: str = Header(None)) -> None:
        expected = env_override("ADMIN_TOKEN", self.settings.get_text("admin_token", ""))
        if not expected or expected in ("True", "False"):
            raise HTTPException(status_code=403, detail="admin access disabled")
        if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
            raise HTTPException(status_code=403, detail="invalid admin token")

    async def _broadcast(self, event: dict) -> None:
        for ws in list(self.watchers):
            try:
                await ws.send_json(event)
            except Exception:
                logger.debug("dropping websocket watcher")
                try:
                    await ws.close()
                except Exception:
                    pass
                if ws in self.watchers:
                    self.watchers.remove(ws)

    def _broadcast_event(self, table: str, event: str, row_id=None) -> None:
        if table not in self.WATCHED_TABLES or not self.watchers or self._loop is None:
            return
        payload = {"table": table, "event": event, "id": row_id}
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._loop.create_task(self._broadcast(payload))
        else:
            asyncio.run_coroutine_threadsafe(self._broadcast(payload), self._loop)

    def _setup_routes(self) -> None:
        admin = [Depends(self.require_admin)]
        workouts_router = APIRouter(prefix="/workouts", tags=["Workouts"])
        cardio_router = APIRouter(prefix="/cardio", tags=["Cardio"])
        gps_router = APIRouter(prefix="/gps", tags=["GPS"])
        challenges_router = APIRouter(prefix="/challenges", tags=["Challenges"])
        pool_router = APIRouter(prefix="/pool", tags=["Pool"])
        ai_router = APIRouter(prefix="/ai", tags=["AI"])
        scheduled_router = APIRouter(prefix="/scheduled", tags=["Planner"])
        notifications_router = APIRouter(prefix="/notifications", tags=["Notifications"])
        ads_router = APIRouter(prefix="/ads", tags=["Ads"])
        photos_router = APIRouter(prefix="/photos", tags=["Photos"])
        weight_router = APIRouter(prefix="/weight", tags=["Goals"])
        goals_router = APIRouter(prefix="/goals", tags=["Goals"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.settings.fetch_all("SELECT 1;")
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.websocket("/ws/updates")
        async def updates_socket(ws: WebSocket):
            await ws.accept()
            self._loop = asyncio.get_running_loop()
            self.watchers.append(ws)
            try:
                while True:
                    await ws.receive_text()
            except Exception:
                pass
            finally:
                if ws in self.watchers:
                    self.watchers.remove(ws)

        @self.app.get("/settings/general")
        def get_general_settings():
            return self.settings.all_settings()

        @self.app.post("/settings/general", dependencies=admin)
        def update_general_settings(values: Dict = Body(...)):
            unknown = sorted(set(values) - set(SettingsSchema.model_fields))
            if unknown:
                raise HTTPException(
                    status_code=400, detail=f"unknown settings: {', '.join(unknown)}"
                )
            current = self.settings.all_settings()
            try:
                validate_settings({**current, **values})
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            for key, value in values.items():
                self.settings.set_text(key, str(value))
            if "language" in values:
                translator.set_language(str(values["language"]))
            return {"status": "updated"}

        @self.app.get("/settings/backup", dependencies=admin)
        def backup_db():
            with open(self.db_path, "rb") as f:
                data = f.read()
            return Response(
                content=data,
                media_type="application/octet-stream",
                headers={"Content-Disposition": "attachment; filename=backup.db"},
            )

        @self.app.get("/profiles/{user_id}")
        def get_profile(user_id: str):
            profile = self.profiles.fetch(user_id)
            if profile is None:
                raise HTTPException(status_code=404, detail="profile not found")
            return profile

        @self.app.put("/profiles/{user_id}")
        def update_profile(
            user_id: str,
            display_name: str = None,
            birth_year: int = None,
            gender: str = None,
        ):
            existing = self.profiles.fetch(user_id) or {}
            self.profiles.upsert(
                user_id,
                display_name if display_name is not None else existing.get("display_name"),
                birth_year if birth_year is not None else existing.get("birth_year"),
                gender if gender is not None else existing.get("gender"),
                existing.get("is_admin", False),
            )
            return {"status": "updated"}

        @self.app.get("/users/{user_id}/stats")
        def get_user_stats(user_id: str):
            return self.gamification.profile(user_id)

        @self.app.post("/users/{user_id}/daily_bonus")
        def claim_daily_bonus(user_id: str):
            return self.gamification.claim_daily_bonus(user_id)

        @self.app.get("/achievements")
        def list_achievements():
            return self.achievements.fetch_all_achievements()

        @self.app.get("/stats/weekly")
        def weekly_stats(user_id: str, start_date: str = None, end_date: str = None):
            return self.statistics.weekly_summary(user_id, start_date, end_date)

        @self.app.get("/admin/stats", dependencies=admin)
        def admin_stats():
            return self.statistics.admin_stats()

        @self.app.post("/jobs/run", dependencies=admin)
        def run_jobs():
            return self.run_jobs()

        @workouts_router.post("")
        def log_workout(
            user_id: str,
            workout_day: str,
            exercises: List[Dict] = Body(...),
            duration_minutes: int = None,
            notes: str = None,
            program_id: int = None,
        ):
            try:
                result = self.tracking.log_workout(
                    user_id, workout_day, exercises, duration_minutes, notes, program_id
                )
            except (ValueError, KeyError) as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("workout_logs", "INSERT", result["id"])
            return result

        @workouts_router.get("")
        def list_workouts(
            user_id: str,
            start_date: str = None,
            end_date: str = None,
            limit: int = None,
        ):
            return self.tracking.workout_history(user_id, start_date, end_date, limit)

        @workouts_router.get("/{log_id}")
        def get_workout(log_id: int):
            try:
                return self.tracking.get_workout(log_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @workouts_router.put("/{log_id}")
        def update_workout(
            log_id: int,
            workout_day: str = None,
            duration_minutes: int = None,
            notes: str = None,
        ):
            try:
                self.tracking.update_workout(
                    log_id,
                    workout_day=workout_day,
                    duration_minutes=duration_minutes,
                    notes=notes,
                )
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("workout_logs", "UPDATE", log_id)
            return {"status": "updated"}

        @workouts_router.delete("/{log_id}")
        def delete_workout(log_id: int):
            try:
                self.tracking.delete_workout(log_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("workout_logs", "DELETE", log_id)
            return {"status": "deleted"}

        @self.app.get("/share/workouts/{log_id}")
        def share_workout(log_id: int):
            try:
                log = self.tracking.get_workout(log_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            lines = [
                f"{ex['exercise_name']}: {ex['sets_completed']} x {ex['reps_completed']}"
                for ex in log["exercises"][:5]
            ]
            if log["duration_minutes"]:
                lines.append(f"{log['duration_minutes']} min")
            png = self.share_cards.workout_card(log["workout_day"], lines)
            return Response(content=png, media_type="image/png")

        @cardio_router.post("")
        def log_cardio(
            user_id: str,
            activity_type: str,
            duration_minutes: int,
            distance_km: float = None,
            calories_burned: int = None,
            notes: str = None,
            route: Dict = Body(None),
        ):
            try:
                result = self.tracking.log_cardio(
                    user_id,
                    activity_type,
                    duration_minutes,
                    distance_km,
                    calories_burned,
                    notes,
                    route,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("cardio_logs", "INSERT", result["id"])
            return result

        @cardio_router.get("")
        def list_cardio(user_id: str, limit: int = 50):
            return self.tracking.recent_cardio(user_id, limit)

        @cardio_router.get("/drafts/{user_id}")
        def load_draft(user_id: str):
            return {"draft": self.tracking.load_draft(user_id)}

        @cardio_router.put("/drafts/{user_id}")
        def save_draft(user_id: str, payload: Dict = Body(...)):
            self.tracking.save_draft(user_id, payload)
            return {"status": "saved"}

        @cardio_router.delete("/drafts/{user_id}")
        def discard_draft(user_id: str):
            self.tracking.discard_draft(user_id)
            return {"status": "deleted"}

        @cardio_router.get("/{log_id}/route")
        def get_route(log_id: int):
            try:
                route = self.tracking.route_for(log_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            if route is None:
                raise HTTPException(status_code=404, detail="route not found")
            return route

        @cardio_router.put("/{log_id}")
        def update_cardio(
            log_id: int,
            activity_type: str = None,
            duration_minutes: int = None,
            distance_km: float = None,
            calories_burned: int = None,
            notes: str = None,
        ):
            try:
                self.tracking.update_cardio(
                    log_id,
                    activity_type=activity_type,
                    duration_minutes=duration_minutes,
                    distance_km=distance_km,
                    calories_burned=calories_burned,
                    notes=notes,
                )
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("cardio_logs", "UPDATE", log_id)
            return {"status": "updated"}

        @cardio_router.delete("/{log_id}")
        def delete_cardio(log_id: int):
            try:
                self.tracking.delete_cardio(log_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("cardio_logs", "DELETE", log_id)
            return {"status": "deleted"}

        @self.app.get("/share/cardio/{log_id}")
        def share_cardio(log_id: int):
            try:
                log = self.cardio_logs.fetch(log_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            png = self.share_cards.cardio_card(
                log["activity_type"], log["duration_minutes"], log["distance_km"]
            )
            return Response(content=png, media_type="image/png")

        @gps_router.post("/sessions")
        def start_gps_session(user_id: str, activity_type: str):
            return self.tracking.start_gps_session(user_id, activity_type)

        @gps_router.post("/sessions/{user_id}/positions")
        def push_positions(user_id: str, positions: List[Dict] = Body(...)):
            try:
                return self.tracking.push_gps_positions(user_id, positions)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except (KeyError, TypeError) as e:
                raise HTTPException(status_code=400, detail=f"invalid position: {e}")

        @gps_router.get("/sessions/{user_id}")
        def get_gps_session(user_id: str):
            session = self.tracking.get_gps_session(user_id)
            if session is None:
                raise HTTPException(status_code=404, detail="no active gps session")
            return session

        @gps_router.post("/sessions/{user_id}/finish")
        def finish_gps_session(
            user_id: str,
            duration_minutes: int = None,
            calories_burned: int = None,
            notes: str = None,
        ):
            try:
                result = self.tracking.finish_gps_session(
                    user_id, duration_minutes, calories_burned, notes
                )
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("cardio_logs", "INSERT", result["id"])
            return result

        @gps_router.delete("/sessions/{user_id}")
        def discard_gps_session(user_id: str):
            self.tracking.discard_gps_session(user_id)
            return {"status": "deleted"}

        @challenges_router.get("")
        def list_challenges():
            return self.challenges.list_active()

        @challenges_router.post("", dependencies=admin)
        def create_challenge(
            title: str,
            goal_description: str,
            goal_unit: str,
            start_date: str,
            end_date: str,
            description: str = None,
            target_value: float = None,
            theme: str = None,
            winner_type: str = "highest",
            created_by: str = None,
        ):
            try:
                cid = self.challenges.create(
                    title=title,
                    goal_description=goal_description,
                    goal_unit=goal_unit,
                    start_date=start_date,
                    end_date=end_date,
                    description=description,
                    target_value=target_value,
                    theme=theme,
                    winner_type=winner_type,
                    created_by=created_by,
                )
                return {"id": cid}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @challenges_router.put("/{challenge_id}", dependencies=admin)
        def update_challenge(
            challenge_id: int,
            title: str = None,
            description: str = None,
            goal_description: str = None,
            goal_unit: str = None,
            target_value: float = None,
            theme: str = None,
            start_date: str = None,
            end_date: str = None,
            is_active: bool = None,
        ):
            try:
                self.challenges.update(
                    challenge_id,
                    title=title,
                    description=description,
                    goal_description=goal_description,
                    goal_unit=goal_unit,
                    target_value=target_value,
                    theme=theme,
                    start_date=start_date,
                    end_date=end_date,
                    is_active=is_active,
                )
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "updated"}

        @challenges_router.delete("/{challenge_id}", dependencies=admin)
        def deactivate_challenge(challenge_id: int):
            try:
                self.challenges.deactivate(challenge_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deactivated"}

        @challenges_router.post("/{challenge_id}/join")
        def join_challenge(challenge_id: int, user_id: str):
            try:
                pid = self.challenges.join(challenge_id, user_id)
            except ValueError as e:
                code = 404 if "not found" in str(e) else 400
                raise HTTPException(status_code=code, detail=str(e))
            self._broadcast_event("community_challenge_participants", "INSERT", pid)
            return {"id": pid}

        @challenges_router.delete("/{challenge_id}/participants/{user_id}")
        def leave_challenge(challenge_id: int, user_id: str):
            try:
                self.challenges.leave(challenge_id, user_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("community_challenge_participants", "DELETE", challenge_id)
            return {"status": "left"}

        @challenges_router.post("/{challenge_id}/progress")
        def add_challenge_progress(challenge_id: int, user_id: str, amount: float):
            try:
                value = self.challenges.add_progress(challenge_id, user_id, amount)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("community_challenge_participants", "UPDATE", challenge_id)
            return {"current_value": value}

        @challenges_router.put("/{challenge_id}/progress")
        def set_challenge_progress(challenge_id: int, user_id: str, value: float):
            try:
                self.challenges.set_progress(challenge_id, user_id, value)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("community_challenge_participants", "UPDATE", challenge_id)
            return {"current_value": value}

        @challenges_router.get("/{challenge_id}/leaderboard")
        def challenge_leaderboard(challenge_id: int):
            try:
                return self.challenges.leaderboard(challenge_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @challenges_router.post("/{challenge_id}/rank_changes")
        def challenge_rank_changes(challenge_id: int):
            try:
                return self.challenges.detect_rank_changes(challenge_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @challenges_router.get("/{challenge_id}/winner")
        def challenge_winner(challenge_id: int):
            try:
                return {"winner": self.challenges.winner(challenge_id)}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @pool_router.post("/entries")
        def enter_pool(
            user_id: str,
            challenge_category: str,
            challenge_type: str,
            target_value: float,
            duration_days: int,
            latest_start_date: str,
            allow_multiple: bool = False,
            max_participants: int = None,
            min_age: int = None,
            max_age: int = None,
            preferred_gender: str = None,
        ):
            try:
                eid = self.pool.enter_pool(
                    user_id,
                    challenge_category,
                    challenge_type,
                    target_value,
                    duration_days,
                    latest_start_date,
                    allow_multiple,
                    max_participants,
                    min_age,
                    max_age,
                    preferred_gender,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("challenge_pool_entries", "INSERT", eid)
            result = self.pool.match_pool(trigger_entry_id=eid)
            if result["matched"]:
                self._broadcast_event("pool_challenge_participants", "INSERT", None)
            return {"id": eid, "matched": result["matched"]}

        @pool_router.get("/entries")
        def list_pool_entries(user_id: str):
            return self.pool_entries.fetch_for_user(user_id)

        @pool_router.delete("/entries/{entry_id}")
        def cancel_pool_entry(entry_id: int, user_id: str):
            try:
                self.pool.cancel_entry(entry_id, user_id)
            except ValueError as e:
                code = 404 if "not found" in str(e) else 400
                raise HTTPException(status_code=code, detail=str(e))
            self._broadcast_event("challenge_pool_entries", "UPDATE", entry_id)
            return {"status": "cancelled"}

        @pool_router.get("/challenges")
        def list_pool_challenges(user_id: str):
            return self.pool.challenges_for_user(user_id)

        @pool_router.post("/match", dependencies=admin)
        def match_pool():
            return self.pool.match_pool()

        @pool_router.post("/complete", dependencies=admin)
        def complete_pools():
            return self.pool.complete_pools()

        @ai_router.post("/workout")
        def generate_workout(goal: str, experience_level: str, days_per_week: int = 3):
            try:
                return self.plans.generate_workout(goal, experience_level, days_per_week)
            except AIServiceError as e:
                raise HTTPException(status_code=e.status_code, detail=e.message)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @ai_router.post("/cardio_plan")
        def generate_cardio_plan(
            goal_type: str,
            target_value: str = None,
            target_date: str = None,
            experience_level: str = None,
            current_fitness: str = None,
            preferred_activities: str = None,
            days_per_week: int = None,
            custom_description: str = None,
        ):
            activities = preferred_activities.split("|") if preferred_activities else None
            try:
                return self.plans.generate_cardio_plan(
                    goal_type,
                    target_value,
                    target_date,
                    experience_level,
                    current_fitness,
                    activities,
                    days_per_week,
                    custom_description,
                )
            except AIServiceError as e:
                raise HTTPException(status_code=e.status_code, detail=e.message)

        @ai_router.post("/wod")
        def generate_wod(focus: str = None, equipment: str = None):
            try:
                return self.plans.generate_wod(
                    focus, equipment.split("|") if equipment else None
                )
            except AIServiceError as e:
                raise HTTPException(status_code=e.status_code, detail=e.message)

        @ai_router.post("/goals")
        def suggest_goals(user_context: str = Body(..., embed=True)):
            try:
                return self.plans.suggest_goals(user_context)
            except AIServiceError as e:
                raise HTTPException(status_code=e.status_code, detail=e.message)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @ai_router.post("/refine")
        def refine_plan(
            kind: str,
            current: Dict = Body(..., embed=True),
            feedback: str = Body(..., embed=True),
        ):
            try:
                return self.plans.refine(kind, current, feedback)
            except AIServiceError as e:
                raise HTTPException(status_code=e.status_code, detail=e.message)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.post("/programs")
        def save_program(
            user_id: str,
            program: Dict = Body(...),
            goal: str = None,
            experience_level: str = None,
            days_per_week: int = None,
            active: bool = True,
        ):
            try:
                pid = self.plans.save_program(
                    user_id, program, goal, experience_level, days_per_week, active
                )
            except AIServiceError as e:
                raise HTTPException(status_code=400, detail=e.message)
            return {"id": pid}

        @self.app.get("/programs")
        def list_programs(user_id: str):
            return self.workout_programs.fetch_for_user(user_id)

        @self.app.get("/programs/active")
        def active_program(user_id: str):
            return {"program": self.workout_programs.fetch_active(user_id)}

        @self.app.post("/programs/{program_id}/activate")
        def activate_program(program_id: int):
            try:
                self.workout_programs.activate(program_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "activated"}

        @self.app.delete("/programs/{program_id}")
        def delete_program(program_id: int):
            try:
                self.workout_programs.delete(program_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @self.app.post("/cardio_plans")
        def save_cardio_plan(
            user_id: str,
            plan: Dict = Body(...),
            goal_type: str = None,
            active: bool = True,
        ):
            try:
                pid = self.plans.save_cardio_plan(user_id, plan, goal_type, active)
            except AIServiceError as e:
                raise HTTPException(status_code=400, detail=e.message)
            return {"id": pid}

        @self.app.get("/cardio_plans")
        def list_cardio_plans(user_id: str):
            return self.cardio_plans.fetch_for_user(user_id)

        @self.app.get("/cardio_plans/active")
        def active_cardio_plan(user_id: str):
            return {"plan": self.cardio_plans.fetch_active(user_id)}

        @self.app.post("/cardio_plans/{plan_id}/activate")
        def activate_cardio_plan(plan_id: int):
            try:
                self.cardio_plans.activate(plan_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "activated"}

        @self.app.delete("/cardio_plans/{plan_id}")
        def delete_cardio_plan(plan_id: int):
            try:
                self.cardio_plans.delete(plan_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @self.app.post("/wods")
        def save_wod(user_id: str, wod: Dict = Body(...)):
            try:
                wid = self.plans.save_wod(user_id, wod)
            except AIServiceError as e:
                raise HTTPException(status_code=400, detail=e.message)
            return {"id": wid}

        @self.app.get("/wods")
        def list_wods(user_id: str):
            return self.saved_wods.fetch_for_user(user_id)

        @self.app.delete("/wods/{wod_id}")
        def delete_wod(wod_id: int):
            try:
                self.saved_wods.delete(wod_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        @scheduled_router.post("")
        def schedule_workout(
            user_id: str,
            title: str,
            scheduled_date: str,
            workout_type: str = "strength",
            scheduled_time: str = None,
            duration_minutes: int = None,
            description: str = None,
            workout_program_id: int = None,
            workout_day_name: str = None,
            reminder_enabled: bool = True,
            reminder_minutes_before: int = 60,
        ):
            try:
                sid = self.planner.schedule(
                    user_id,
                    title,
                    scheduled_date,
                    workout_type=workout_type,
                    scheduled_time=scheduled_time,
                    duration_minutes=duration_minutes,
                    description=description,
                    workout_program_id=workout_program_id,
                    workout_day_name=workout_day_name,
                    reminder_enabled=reminder_enabled,
                    reminder_minutes_before=reminder_minutes_before,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("scheduled_workouts", "INSERT", sid)
            return {"id": sid}

        @scheduled_router.get("")
        def list_scheduled(user_id: str, start_date: str = None, end_date: str = None):
            if start_date and end_date:
                try:
                    return self.planner.between(user_id, start_date, end_date)
                except ValueError as e:
                    raise HTTPException(status_code=400, detail=str(e))
            return self.planner.upcoming(user_id)

        @scheduled_router.get("/calendar.ics")
        def export_calendar(
            user_id: str,
            strength: bool = True,
            cardio: bool = True,
            format: str = "download",
        ):
            try:
                ics = self.calendar.export_ics(user_id, strength, cardio)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            if format == "download":
                headers = {"Content-Disposition": 'attachment; filename="gymdagboken-schema.ics"'}
            else:
                headers = {"Cache-Control": "no-cache, no-store, must-revalidate"}
            return Response(
                content=ics, media_type="text/calendar; charset=utf-8", headers=headers
            )

        @scheduled_router.post("/reminders", dependencies=admin)
        def send_reminders():
            return self.planner.send_reminders()

        @scheduled_router.put("/{workout_id}")
        def update_scheduled(
            workout_id: int,
            title: str = None,
            workout_type: str = None,
            scheduled_date: str = None,
            scheduled_time: str = None,
            duration_minutes: int = None,
            description: str = None,
            reminder_enabled: bool = None,
            reminder_minutes_before: int = None,
        ):
            try:
                self.planner.update(
                    workout_id,
                    title=title,
                    workout_type=workout_type,
                    scheduled_date=scheduled_date,
                    scheduled_time=scheduled_time,
                    duration_minutes=duration_minutes,
                    description=description,
                    reminder_enabled=reminder_enabled,
                    reminder_minutes_before=reminder_minutes_before,
                )
            except ValueError as e:
                code = 404 if "not found" in str(e) else 400
                raise HTTPException(status_code=code, detail=str(e))
            self._broadcast_event("scheduled_workouts", "UPDATE", workout_id)
            return {"status": "updated"}

        @scheduled_router.post("/{workout_id}/complete")
        def complete_scheduled(workout_id: int):
            try:
                self.planner.complete(workout_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("scheduled_workouts", "UPDATE", workout_id)
            return {"status": "completed"}

        @scheduled_router.delete("/{workout_id}")
        def delete_scheduled(workout_id: int):
            try:
                self.planner.delete(workout_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("scheduled_workouts", "DELETE", workout_id)
            return {"status": "deleted"}

        @self.app.get("/leaderboards/streaks")
        def streak_leaderboard(limit: int = 10):
            try:
                return self.gamification.streak_leaderboard(limit)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @weight_router.post("")
        def log_weight(
            user_id: str, weight_kg: float, notes: str = None, logged_at: str = None
        ):
            try:
                wid = self.goals.log_weight(user_id, weight_kg, notes, logged_at)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("weight_logs", "INSERT", wid)
            return {"id": wid}

        @weight_router.get("")
        def weight_history(user_id: str, start_date: str = None, end_date: str = None):
            return self.goals.weight_history(user_id, start_date, end_date)

        @weight_router.delete("/{log_id}")
        def delete_weight(log_id: int):
            try:
                self.goals.delete_weight(log_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("weight_logs", "DELETE", log_id)
            return {"status": "deleted"}

        @goals_router.post("")
        def create_goal(
            user_id: str,
            title: str,
            goal_type: str = "custom",
            target_value: float = None,
            target_unit: str = None,
            current_value: float = None,
            description: str = None,
            start_date: str = None,
            target_date: str = None,
            reminder_enabled: bool = False,
            reminder_frequency: str = "weekly",
        ):
            try:
                gid = self.goals.create_goal(
                    user_id,
                    title,
                    goal_type,
                    target_value,
                    target_unit=target_unit,
                    current_value=current_value,
                    description=description,
                    start_date=start_date,
                    target_date=target_date,
                    reminder_enabled=reminder_enabled,
                    reminder_frequency=reminder_frequency,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("user_goals", "INSERT", gid)
            return {"id": gid}

        @goals_router.get("")
        def list_goals(user_id: str, status: str = "active"):
            return self.goals.list_goals(user_id, None if status == "all" else status)

        @goals_router.post("/reminders", dependencies=admin)
        def send_goal_reminders():
            return self.goals.send_reminders()

        @goals_router.get("/weight/{user_id}")
        def weight_goal_progress(user_id: str):
            return self.goals.weight_progress(user_id)

        @goals_router.put("/weight/{user_id}")
        def set_weight_goal(user_id: str, target_kg: float):
            try:
                gid = self.goals.set_weight_goal(user_id, target_kg)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("user_goals", "UPDATE", gid)
            return {"id": gid}

        @goals_router.put("/{goal_id}")
        def update_goal(
            goal_id: int,
            title: str = None,
            description: str = None,
            target_value: float = None,
            target_unit: str = None,
            current_value: float = None,
            target_date: str = None,
            status: str = None,
            reminder_enabled: bool = None,
            reminder_frequency: str = None,
        ):
            try:
                self.goals.update_goal(
                    goal_id,
                    title=title,
                    description=description,
                    target_value=target_value,
                    target_unit=target_unit,
                    current_value=current_value,
                    target_date=target_date,
                    status=status,
                    reminder_enabled=reminder_enabled,
                    reminder_frequency=reminder_frequency,
                )
            except ValueError as e:
                code = 404 if "not found" in str(e) else 400
                raise HTTPException(status_code=code, detail=str(e))
            self._broadcast_event("user_goals", "UPDATE", goal_id)
            return {"status": "updated"}

        @goals_router.post("/{goal_id}/complete")
        def complete_goal(goal_id: int):
            try:
                self.goals.complete_goal(goal_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("user_goals", "UPDATE", goal_id)
            return {"status": "completed"}

        @goals_router.post("/{goal_id}/abandon")
        def abandon_goal(goal_id: int):
            try:
                self.goals.abandon_goal(goal_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("user_goals", "UPDATE", goal_id)
            return {"status": "abandoned"}

        @goals_router.delete("/{goal_id}")
        def delete_goal(goal_id: int):
            try:
                self.goals.delete_goal(goal_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("user_goals", "DELETE", goal_id)
            return {"status": "deleted"}

        @notifications_router.get("")
        async def get_notifications(user_id: str, unread_only: bool = False):
            return await self.async_notifications.fetch_all_for_user(user_id, unread_only)

        @notifications_router.get("/unread_count")
        async def unread_count(user_id: str):
            return {"count": await self.async_notifications.unread_count(user_id)}

        @notifications_router.put("/{nid}/read")
        async def mark_notification_read(nid: int):
            await self.async_notifications.mark_read(nid)
            self._broadcast_event("notifications", "UPDATE", nid)
            return {"status": "read"}

        @notifications_router.post("/read_all")
        def mark_all_read(user_id: str):
            self.notifications.mark_all_read(user_id)
            self._broadcast_event("notifications", "UPDATE", None)
            return {"status": "read"}

        @notifications_router.get("/preferences/{user_id}")
        def get_preferences(user_id: str):
            return self.notifications.get_preferences(user_id)

        @notifications_router.put("/preferences/{user_id}")
        def update_preferences(
            user_id: str,
            push_enabled: bool = None,
            workout_reminders: bool = None,
            achievements: bool = None,
            challenges: bool = None,
            community_challenges: bool = None,
            goal_reminders: bool = None,
            weekly_summary_emails: bool = None,
        ):
            return self.notifications.update_preferences(
                user_id,
                push_enabled=push_enabled,
                workout_reminders=workout_reminders,
                achievements=achievements,
                challenges=challenges,
                community_challenges=community_challenges,
                goal_reminders=goal_reminders,
                weekly_summary_emails=weekly_summary_emails,
            )

        @ads_router.get("")
        def pick_ads(placement: str = None):
            return self.ads.pick(placement)

        @ads_router.get("/all", dependencies=admin)
        def list_all_ads():
            return self.ads.list_all()

        @ads_router.get("/statistics", dependencies=admin)
        def ad_statistics():
            return self.ads.ad_statistics()

        @ads_router.post("", dependencies=admin)
        def create_ad(
            name: str,
            image_url: str,
            link: str,
            alt_text: str = None,
            format: str = "banner",
            placement: str = None,
            priority: int = 0,
            is_active: bool = True,
        ):
            try:
                aid = self.ads.create(
                    name=name,
                    image_url=image_url,
                    link=link,
                    alt_text=alt_text,
                    format=format,
                    placement=placement,
                    priority=priority,
                    is_active=is_active,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self._broadcast_event("ads", "INSERT", aid)
            return {"id": aid}

        @ads_router.put("/{ad_id}", dependencies=admin)
        def update_ad(
            ad_id: int,
            name: str = None,
            image_url: str = None,
            link: str = None,
            alt_text: str = None,
            format: str = None,
            placement: str = None,
            priority: int = None,
            is_active: bool = None,
        ):
            try:
                self.ads.update(
                    ad_id,
                    name=name,
                    image_url=image_url,
                    link=link,
                    alt_text=alt_text,
                    format=format,
                    placement=placement,
                    priority=priority,
                    is_active=is_active,
                )
            except ValueError as e:
                code = 404 if "not found" in str(e) else 400
                raise HTTPException(status_code=code, detail=str(e))
            self._broadcast_event("ads", "UPDATE", ad_id)
            return {"status": "updated"}

        @ads_router.delete("/{ad_id}", dependencies=admin)
        def delete_ad(ad_id: int):
            try:
                self.ads.delete(ad_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            self._broadcast_event("ads", "DELETE", ad_id)
            return {"status": "deleted"}

        @ads_router.post("/{ad_id}/events")
        def record_ad_event(ad_id: int, event_type: str, user_id: str = None):
            try:
                eid = self.ads.record_event(ad_id, event_type, user_id)
            except ValueError as e:
                code = 404 if "not found" in str(e) else 400
                raise HTTPException(status_code=code, detail=str(e))
            return {"id": eid}

        @photos_router.post("")
        async def upload_photo(
            request: Request,
            user_id: str,
            filename: str,
            photo_date: str = None,
            weight_kg: float = None,
            notes: str = None,
            category: str = "general",
        ):
            data = await request.body()
            try:
                pid = self.photos.upload(
                    user_id, filename, data, photo_date, weight_kg, notes, category
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"id": pid, "url": self.photos.signed_url(pid)}

        @photos_router.get("")
        def list_photos(user_id: str):
            photos = self.photos.list(user_id)
            for photo in photos:
                photo["url"] = self.photos.signed_url(photo["id"])
            return photos

        @photos_router.get("/file")
        def get_photo_file(path: str, expires: int, signature: str):
            try:
                data = self.photos.read(path, expires, signature)
            except ValueError as e:
                raise HTTPException(status_code=403, detail=str(e))
            except FileNotFoundError:
                raise HTTPException(status_code=404, detail="photo not found")
            return Response(content=data, media_type="application/octet-stream")

        @photos_router.delete("/{photo_id}")
        def delete_photo(photo_id: int):
            try:
                self.photos.delete(photo_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            return {"status": "deleted"}

        self.app.include_router(workouts_router)
        self.app.include_router(cardio_router)
        self.app.include_router(gps_router)
        self.app.include_router(challenges_router)
        self.app.include_router(pool_router)
        self.app.include_router(ai_router)
        self.app.include_router(scheduled_router)
        self.app.include_router(notifications_router)
        self.app.include_router(ads_router)
        self.app.include_router(photos_router)
        self.app.include_router(weight_router)
        self.app.include_router(goals_router)


api = GymdagbokenAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
