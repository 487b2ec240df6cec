from __future__ import annotations

import datetime
import logging

from db import ScheduledWorkoutRepository
from notification_service import NotificationService
from localization import _

logger = logging.getLogger(__name__)


class PlannerService:
    """Scheduled workouts and their reminders."""

    DEFAULT_TIME = "08:00"

    def __init__(
        self,
        scheduled_repo: ScheduledWorkoutRepository,
        notifications: NotificationService,
    ) -> None:
        self.scheduled = scheduled_repo
        self.notifications = notifications

    def schedule(self, user_id: str, title: str, scheduled_date: str, **fields) -> int:
        if not title:
            raise ValueError("title is required")
        datetime.date.fromisoformat(scheduled_date)
        if fields.get("scheduled_time"):
            datetime.time.fromisoformat(fields["scheduled_time"])
        if fields.get("reminder_minutes_before") is not None and fields["reminder_minutes_before"] < 0:
            raise ValueError("reminder_minutes_before must be non-negative")
        return self.scheduled.add(user_id, title, scheduled_date, **fields)

    def update(self, workout_id: int, **fields) -> None:
        if fields.get("scheduled_date"):
            datetime.date.fromisoformat(fields["scheduled_date"])
        if fields.get("scheduled_time"):
            datetime.time.fromisoformat(fields["scheduled_time"])
        self.scheduled.update(workout_id, **fields)

    def delete(self, workout_id: int) -> None:
        self.scheduled.delete(workout_id)

    def complete(self, workout_id: int) -> None:
        self.scheduled.mark_completed(workout_id)

    def upcoming(self, user_id: str, today: datetime.date | None = None) -> list[dict]:
        today = today or datetime.date.today()
        return self.scheduled.fetch_for_user(
            user_id, start_date=today.isoformat(), include_completed=False
        )

    def between(self, user_id: str, start_date: str, end_date: str) -> list[dict]:
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")
        return self.scheduled.fetch_for_user(user_id, start_date, end_date)

    @classmethod
    def start_time(cls, workout: dict) -> datetime.datetime:
        time = workout["scheduled_time"] or cls.DEFAULT_TIME
        return datetime.datetime.fromisoformat(f"{workout['scheduled_date']}T{time[:5]}")

    def due_reminders(self, now: datetime.datetime | None = None) -> list[dict]:
        """Return workouts whose reminder window has opened but not passed."""
        now = now or datetime.datetime.now()
        due = []
        for workout in self.scheduled.fetch_pending_reminders():
            start = self.start_time(workout)
            remind_at = start - datetime.timedelta(
                minutes=int(workout["reminder_minutes_before"])
            )
            if remind_at <= now <= start:
                due.append(workout)
        return due

    def send_reminders(self, now: datetime.datetime | None = None) -> dict:
        now = now or datetime.datetime.now()
        sent = 0
        due = self.due_reminders(now)
        for workout in due:
            start = self.start_time(workout)
            nid = self.notifications.notify(
                workout["user_id"],
                "workout_reminder",
                _("Dags att träna!"),
                f"{workout['title']} börjar kl. {start.strftime('%H:%M')}",
                workout["id"],
            )
            if nid is not None:
                sent += 1
            self.scheduled.mark_reminded(workout["id"], now.isoformat(timespec="seconds"))
        logger.info("workout reminders: %d due, %d sent", len(due), sent)
        return {"due": len(due), "sent": sent}
