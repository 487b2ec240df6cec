from __future__ import annotations

import datetime
import logging

from db import ScheduledWorkoutRepository
from localization import _

logger = logging.getLogger(__name__)


def escape_ics(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def fold_line(line: str, limit: int = 75) -> list[str]:
    """Split a content line into octet-limited chunks with leading-space continuations."""
    parts: list[str] = []
    current = ""
    size = 0
    for ch in line:
        width = len(ch.encode("utf-8"))
        if size + width > limit:
            parts.append(current)
            current = " "
            size = 1
        current += ch
        size += width
    parts.append(current)
    return parts


class CalendarExportService:
    """Render a user's open scheduled workouts as an iCalendar feed."""

    DOMAIN = "gymdagboken.se"
    TIMEZONE = "Europe/Stockholm"
    DAYS_BACK = 90
    DAYS_AHEAD = 183

    def __init__(self, scheduled_repo: ScheduledWorkoutRepository) -> None:
        self.scheduled = scheduled_repo

    def workouts(
        self,
        user_id: str,
        include_strength: bool = True,
        include_cardio: bool = True,
        today: datetime.date | None = None,
    ) -> list[dict]:
        today = today or datetime.date.today()
        rows = self.scheduled.fetch_for_user(
            user_id,
            (today - datetime.timedelta(days=self.DAYS_BACK)).isoformat(),
            (today + datetime.timedelta(days=self.DAYS_AHEAD)).isoformat(),
            include_completed=False,
        )
        result = []
        for row in rows:
            is_cardio = row["workout_type"] == "cardio"
            if (is_cardio and include_cardio) or (not is_cardio and include_strength):
                result.append(row)
        return result

    def _event(self, workout: dict, stamp: str) -> list[str]:
        date = datetime.date.fromisoformat(workout["scheduled_date"])
        icon = "🏃" if workout["workout_type"] == "cardio" else "🏋️"
        description = workout["workout_day_name"] or ""
        if workout["description"]:
            description = f"{description}\n\n{workout['description']}" if description else workout["description"]
        if workout["duration_minutes"]:
            description += "\n\n" + _("Planerad längd: {minutes} minuter").format(
                minutes=workout["duration_minutes"]
            )
        lines = [
            "BEGIN:VEVENT",
            f"UID:{workout['id']}@{self.DOMAIN}",
            f"DTSTAMP:{stamp}",
        ]
        if workout["scheduled_time"]:
            start = datetime.datetime.fromisoformat(
                f"{workout['scheduled_date']}T{workout['scheduled_time'][:5]}"
            )
            end = start + datetime.timedelta(minutes=int(workout["duration_minutes"] or 60))
            lines.append(f"DTSTART;TZID={self.TIMEZONE}:{start.strftime('%Y%m%dT%H%M%S')}")
            lines.append(f"DTEND;TZID={self.TIMEZONE}:{end.strftime('%Y%m%dT%H%M%S')}")
        else:
            # all-day events end on the following day
            lines.append(f"DTSTART;VALUE=DATE:{date.strftime('%Y%m%d')}")
            lines.append(
                f"DTEND;VALUE=DATE:{(date + datetime.timedelta(days=1)).strftime('%Y%m%d')}"
            )
        summary = escape_ics(icon + " " + workout["title"])
        lines.append(f"SUMMARY:{summary}")
        lines.append(f"DESCRIPTION:{escape_ics(description.strip() or _('Schemalagt träningspass'))}")
        if workout["reminder_enabled"] and workout["reminder_minutes_before"]:
            lines.extend(
                [
                    "BEGIN:VALARM",
                    f"TRIGGER:-PT{int(workout['reminder_minutes_before'])}M",
                    "ACTION:DISPLAY",
                    f"DESCRIPTION:{escape_ics(_('Påminnelse') + ': ' + workout['title'])}",
                    "END:VALARM",
                ]
            )
        lines.append("END:VEVENT")
        return lines

    def export_ics(
        self,
        user_id: str,
        include_strength: bool = True,
        include_cardio: bool = True,
        now: datetime.datetime | None = None,
    ) -> str:
        """Return the calendar text, raising ValueError when nothing is scheduled."""
        now = now or datetime.datetime.now()
        workouts = self.workouts(user_id, include_strength, include_cardio, now.date())
        if not workouts:
            raise ValueError("no scheduled workouts found")
        stamp = now.astimezone(datetime.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            "PRODID:-//Gymdagboken//Träningsschema//SV",
            "CALSCALE:GREGORIAN",
            "METHOD:PUBLISH",
            f"X-WR-CALNAME:{escape_ics(_('Gymdagboken Träningsschema'))}",
            f"X-WR-TIMEZONE:{self.TIMEZONE}",
        ]
        for workout in workouts:
            lines.extend(self._event(workout, stamp))
        lines.append("END:VCALENDAR")
        logger.info("calendar export for %s with %d events", user_id, len(workouts))
        folded = [part for line in lines for part in fold_line(line)]
        return "\r\n".join(folded) + "\r\n"
