from __future__ import annotations

import datetime
import logging

from db import GoalRepository, WeightLogRepository
from notification_service import NotificationService
from localization import _

logger = logging.getLogger(__name__)


class GoalService:
    """Body weight log and personal goals with periodic reminders."""

    GOAL_TYPES = ("strength", "cardio", "weight", "habit", "custom")
    STATUSES = ("active", "completed", "abandoned")
    REMINDER_HOURS = {"daily": 24, "weekly": 168, "monthly": 720}
    MAX_WEIGHT_KG = 500

    def __init__(
        self,
        goal_repo: GoalRepository,
        weight_repo: WeightLogRepository,
        notifications: NotificationService | None = None,
    ) -> None:
        self.goals = goal_repo
        self.weights = weight_repo
        self.notifications = notifications

    @classmethod
    def _check_weight(cls, weight_kg: float) -> None:
        if weight_kg is None or not 0 < float(weight_kg) <= cls.MAX_WEIGHT_KG:
            raise ValueError("weight_kg must be between 0 and 500")

    def log_weight(
        self,
        user_id: str,
        weight_kg: float,
        notes: str | None = None,
        logged_at: str | None = None,
    ) -> int:
        """Store a weigh-in and move active weight goals to the new value."""
        self._check_weight(weight_kg)
        if logged_at:
            datetime.datetime.fromisoformat(logged_at)
        log_id = self.weights.add(user_id, float(weight_kg), notes, logged_at)
        for goal in self.goals.fetch_active_of_type(user_id, "weight"):
            self.goals.update(goal["id"], current_value=float(weight_kg))
        return log_id

    def weight_history(
        self, user_id: str, start_date: str | None = None, end_date: str | None = None
    ) -> list[dict]:
        return self.weights.fetch_for_user(user_id, start_date, end_date)

    def delete_weight(self, log_id: int) -> None:
        self.weights.delete(log_id)

    def create_goal(
        self,
        user_id: str,
        title: str,
        goal_type: str = "custom",
        target_value: float | None = None,
        **fields,
    ) -> int:
        if not title:
            raise ValueError("title is required")
        if goal_type not in self.GOAL_TYPES:
            raise ValueError(f"goal_type must be one of {', '.join(self.GOAL_TYPES)}")
        if target_value is not None and target_value <= 0:
            raise ValueError("target_value must be positive")
        self._check_fields(fields)
        if goal_type == "weight" and fields.get("current_value") is None:
            history = self.weights.fetch_for_user(user_id)
            if history:
                fields["current_value"] = history[-1]["weight_kg"]
        return self.goals.add(user_id, title, goal_type, target_value, **fields)

    def _check_fields(self, fields: dict) -> None:
        for key in ("start_date", "target_date"):
            if fields.get(key):
                datetime.date.fromisoformat(fields[key])
        freq = fields.get("reminder_frequency")
        if freq is not None and freq not in self.REMINDER_HOURS:
            raise ValueError("reminder_frequency must be daily, weekly or monthly")

    def update_goal(self, goal_id: int, **fields) -> None:
        self._check_fields(fields)
        if fields.get("status") is not None and fields["status"] not in self.STATUSES:
            raise ValueError("invalid status")
        self.goals.update(goal_id, **fields)

    def complete_goal(self, goal_id: int) -> None:
        goal = self.goals.fetch(goal_id)
        self.goals.update(goal_id, status="completed", current_value=goal["target_value"])

    def abandon_goal(self, goal_id: int) -> None:
        self.goals.update(goal_id, status="abandoned")

    def delete_goal(self, goal_id: int) -> None:
        self.goals.delete(goal_id)

    def set_weight_goal(self, user_id: str, target_kg: float) -> int:
        """Create the user's weight goal or move the target of the active one."""
        self._check_weight(target_kg)
        active = self.goals.fetch_active_of_type(user_id, "weight")
        if active:
            self.goals.update(active[0]["id"], target_value=float(target_kg))
            return active[0]["id"]
        return self.create_goal(
            user_id,
            _("Viktmål"),
            "weight",
            float(target_kg),
            target_unit="kg",
            description=f"{_('Nå målvikten')} {target_kg:g} kg",
        )

    def weight_progress(self, user_id: str) -> dict:
        """Compare the first and latest weigh-ins against the active weight goal."""
        history = self.weights.fetch_for_user(user_id)
        active = self.goals.fetch_active_of_type(user_id, "weight")
        start = history[0]["weight_kg"] if history else None
        current = history[-1]["weight_kg"] if history else None
        target = active[0]["target_value"] if active else None
        result = {
            "start_weight": start,
            "current_weight": current,
            "target_weight": target,
            "remaining_kg": None,
            "percent": 0,
        }
        if current is None or target is None:
            return result
        result["remaining_kg"] = round(abs(current - target), 1)
        total = start - target
        if total == 0:
            result["percent"] = 100
        else:
            result["percent"] = min(100, max(0, round((start - current) / total * 100)))
        return result

    @staticmethod
    def progress(goal: dict) -> int:
        target = goal["target_value"]
        if not target:
            return 0
        return min(100, round((goal["current_value"] or 0) / target * 100))

    def list_goals(
        self, user_id: str, status: str | None = "active", today: datetime.date | None = None
    ) -> list[dict]:
        today = today or datetime.date.today()
        goals = self.goals.fetch_for_user(user_id, status)
        weight = None
        for goal in goals:
            if goal["goal_type"] == "weight":
                weight = weight or self.weight_progress(user_id)
                goal["percent"] = weight["percent"] if goal["status"] == "active" else self.progress(goal)
            else:
                goal["percent"] = self.progress(goal)
            if goal["target_date"]:
                goal["days_remaining"] = (
                    datetime.date.fromisoformat(goal["target_date"]) - today
                ).days
            else:
                goal["days_remaining"] = None
        return goals

    def due_reminders(self, now: datetime.datetime | None = None) -> list[dict]:
        now = now or datetime.datetime.now()
        due = []
        for goal in self.goals.fetch_with_reminders():
            hours = self.REMINDER_HOURS.get(goal["reminder_frequency"])
            if hours is None:
                continue
            last = goal["last_reminder_sent"]
            if last is None or now - datetime.datetime.fromisoformat(last) >= datetime.timedelta(hours=hours):
                due.append(goal)
        return due

    def send_reminders(self, now: datetime.datetime | None = None) -> dict:
        """Send one reminder per user covering all of their due goals."""
        now = now or datetime.datetime.now()
        due = self.due_reminders(now)
        by_user: dict[str, list[dict]] = {}
        for goal in due:
            by_user.setdefault(goal["user_id"], []).append(goal)
        sent = 0
        stamp = now.isoformat(timespec="seconds")
        for user_id, goals in by_user.items():
            if len(goals) == 1:
                message = f"{_('Glöm inte ditt mål')}: {goals[0]['title']}"
            else:
                message = _("Du har {count} aktiva mål att följa upp!").format(count=len(goals))
            if self.notifications is not None:
                nid = self.notifications.notify(
                    user_id, "goal_reminder", _("🎯 Målpåminnelse"), message, goals[0]["id"]
                )
                if nid is not None:
                    sent += 1
            for goal in goals:
                self.goals.update(goal["id"], last_reminder_sent=stamp)
        logger.info("goal reminders: %d goals due, %d notifications sent", len(due), sent)
        return {"due": len(due), "sent": sent}
