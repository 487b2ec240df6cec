import math
import datetime
import logging

from db import UserStatsRepository, AchievementRepository, SettingsRepository, ProfileRepository
from notification_service import NotificationService
from localization import _

logger = logging.getLogger(__name__)


class GamificationService:
    """XP, levels, streaks and achievements."""

    LEVEL_THRESHOLDS = [0, 100, 300, 600, 1000, 1500, 2100, 2800, 3600, 4500, 5500]

    STAT_FOR_REQUIREMENT = {
        "workouts": "total_workouts",
        "sets": "total_sets",
        "cardio_sessions": "total_cardio_sessions",
        "cardio_minutes": "total_cardio_minutes",
        "cardio_distance": "total_cardio_distance_km",
        "streak": "current_streak",
    }

    def __init__(
        self,
        stats_repo: UserStatsRepository,
        achievement_repo: AchievementRepository,
        settings_repo: SettingsRepository,
        notifications: NotificationService | None = None,
        profile_repo: ProfileRepository | None = None,
    ) -> None:
        self.stats = stats_repo
        self.achievements = achievement_repo
        self.settings = settings_repo
        self.notifications = notifications
        self.profiles = profile_repo

    def workout_xp(self, total_sets: int, duration_minutes: int | None) -> int:
        """Return XP for a strength session, capped per workout."""
        minutes = int(duration_minutes or 0)
        xp = 50 + total_sets * 2 + math.floor(minutes / 5) * 5
        return min(self.settings.get_int("max_xp_per_workout", 500), xp)

    def cardio_xp(self, duration_minutes: int, distance_km: float | None) -> int:
        per_min = self.settings.get_float("cardio_xp_per_minute", 2.0)
        per_km = self.settings.get_float("cardio_xp_per_km", 10.0)
        return round(duration_minutes * per_min + (distance_km or 0) * per_km)

    @classmethod
    def level_for_xp(cls, xp: int) -> int:
        level = 1
        for idx, threshold in enumerate(cls.LEVEL_THRESHOLDS):
            if xp >= threshold:
                level = idx + 1
        return level

    @classmethod
    def xp_for_level(cls, level: int) -> int:
        """Return the XP required to reach the level after ``level``."""
        if level < len(cls.LEVEL_THRESHOLDS):
            return cls.LEVEL_THRESHOLDS[level]
        return cls.LEVEL_THRESHOLDS[-1] + 1000

    @classmethod
    def level_progress(cls, xp: int) -> dict:
        level = cls.level_for_xp(xp)
        current = cls.LEVEL_THRESHOLDS[min(level - 1, len(cls.LEVEL_THRESHOLDS) - 1)]
        nxt = cls.xp_for_level(level)
        needed = max(nxt - current, 1)
        progress = xp - current
        return {
            "level": level,
            "progress": progress,
            "needed": needed,
            "percent": min(100.0, round(progress / needed * 100, 1)),
        }

    def profile(self, user_id: str) -> dict:
        stats = self.stats.fetch(user_id)
        stats["progress"] = self.level_progress(int(stats["total_xp"]))
        stats["achievements"] = self.achievements.fetch_for_user(user_id)
        return stats

    @staticmethod
    def _last_streak_day(stats: dict) -> str | None:
        """Latest day that counted towards the streak, activity or bonus claim."""
        days = [d[:10] for d in (stats["daily_bonus_claimed_at"], stats["last_activity_date"]) if d]
        return max(days) if days else None

    def _advance_streak(self, stats: dict, today: datetime.date) -> tuple[int, int]:
        current = int(stats["current_streak"])
        last = self._last_streak_day(stats)
        if last:
            gap = (today - datetime.date.fromisoformat(last)).days
        else:
            gap = None
        if gap == 0:
            current = max(current, 1)
        elif gap == 1:
            current += 1
        else:
            current = 1
        return current, max(int(stats["longest_streak"]), current)

    def _award(self, user_id: str, xp: int, today: datetime.date, **totals) -> dict:
        stats = self.stats.fetch(user_id)
        streak, longest = self._advance_streak(stats, today)
        total_xp = int(stats["total_xp"]) + xp
        self.stats.update(
            user_id,
            total_xp=total_xp,
            level=self.level_for_xp(total_xp),
            current_streak=streak,
            longest_streak=longest,
            last_activity_date=today.isoformat(),
            **{k: stats[k] + v for k, v in totals.items()},
        )
        earned = self.check_achievements(user_id)
        return {"xp_earned": xp, "total_xp": total_xp, "achievements": earned}

    def record_workout(
        self,
        user_id: str,
        total_sets: int,
        duration_minutes: int | None,
        today: datetime.date | None = None,
    ) -> dict:
        xp = self.workout_xp(total_sets, duration_minutes)
        return self._award(
            user_id,
            xp,
            today or datetime.date.today(),
            total_workouts=1,
            total_sets=total_sets,
            total_minutes=int(duration_minutes or 0),
        )

    def record_cardio(
        self,
        user_id: str,
        duration_minutes: int,
        distance_km: float | None,
        today: datetime.date | None = None,
    ) -> dict:
        xp = self.cardio_xp(duration_minutes, distance_km)
        return self._award(
            user_id,
            xp,
            today or datetime.date.today(),
            total_cardio_sessions=1,
            total_cardio_minutes=int(duration_minutes),
            total_cardio_distance_km=float(distance_km or 0),
        )

    def add_xp(self, user_id: str, amount: int) -> int:
        total = self.stats.add_xp(user_id, amount)
        self.stats.update(user_id, level=self.level_for_xp(total))
        return total

    def claim_daily_bonus(self, user_id: str, today: datetime.date | None = None) -> dict:
        """Pay the daily login bonus once per calendar day."""
        today = today or datetime.date.today()
        stats = self.stats.fetch(user_id)
        claimed = stats["daily_bonus_claimed_at"]
        if claimed and claimed[:10] == today.isoformat():
            return {
                "is_new_day": False,
                "xp_earned": 0,
                "streak": int(stats["current_streak"]),
                "total_xp": int(stats["total_xp"]),
            }
        last = self._last_streak_day(stats)
        streak = int(stats["current_streak"])
        if last is None:
            streak = 1
        else:
            gap = (today - datetime.date.fromisoformat(last)).days
            if gap == 1:
                streak += 1
            elif gap > 1:
                streak = 1
            else:
                streak = max(streak, 1)
        bonus = 10 + min(streak * 5, 50)
        total_xp = int(stats["total_xp"]) + bonus
        self.stats.update(
            user_id,
            total_xp=total_xp,
            level=self.level_for_xp(total_xp),
            current_streak=streak,
            longest_streak=max(int(stats["longest_streak"]), streak),
            daily_bonus_claimed_at=today.isoformat(),
        )
        logger.info("daily bonus %s xp for %s (streak %s)", bonus, user_id, streak)
        return {
            "is_new_day": True,
            "xp_earned": bonus,
            "streak": streak,
            "total_xp": total_xp,
        }

    def streak_leaderboard(self, limit: int = 10) -> list[dict]:
        """Return users with an active streak, longest current streak first."""
        if limit < 1:
            raise ValueError("limit must be positive")
        rows = self.stats.fetch_top_streaks(limit)
        names = self.profiles.display_names(r["user_id"] for r in rows) if self.profiles else {}
        return [
            {
                "rank": rank,
                "user_id": row["user_id"],
                "display_name": names.get(row["user_id"]) or _("Anonym"),
                "current_streak": row["current_streak"],
                "longest_streak": row["longest_streak"],
            }
            for rank, row in enumerate(rows, start=1)
        ]

    def check_achievements(self, user_id: str) -> list[dict]:
        """Award every reached, unearned achievement and return the new ones."""
        stats = self.stats.fetch(user_id)
        earned_ids = self.achievements.fetch_earned_ids(user_id)
        new = []
        for ach in self.achievements.fetch_all_achievements():
            if ach["id"] in earned_ids:
                continue
            column = self.STAT_FOR_REQUIREMENT.get(ach["requirement_type"])
            if column is None:
                continue
            if float(stats[column]) < float(ach["requirement_value"]):
                continue
            if not self.achievements.award(user_id, ach["id"]):
                continue
            if ach["xp_reward"]:
                self.add_xp(user_id, int(ach["xp_reward"]))
            if self.notifications is not None:
                self.notifications.notify(
                    user_id,
                    "achievement",
                    _("Ny prestation!"),
                    f"{ach['icon'] or ''} {ach['name']}".strip(),
                    ach["id"],
                )
            new.append({"id": ach["id"], "name": ach["name"], "xp_reward": ach["xp_reward"]})
        return new
