import logging

from db import NotificationRepository, NotificationPreferenceRepository

logger = logging.getLogger(__name__)


class NotificationService:
    """In-app notification inbox gated by per-user preferences."""

    PREFERENCE_FOR_KIND = {
        "achievement": "achievements",
        "workout_reminder": "workout_reminders",
        "pool_challenge_matched": "challenges",
        "pool_challenge_won": "challenges",
        "pool_challenge_ended": "challenges",
        "overtaken": "community_challenges",
        "community_challenge": "community_challenges",
        "goal_reminder": "goal_reminders",
    }

    def __init__(
        self,
        repo: NotificationRepository,
        preferences: NotificationPreferenceRepository,
    ) -> None:
        self.repo = repo
        self.preferences = preferences

    def allows(self, user_id: str, kind: str) -> bool:
        """Return whether ``user_id`` wants notifications of ``kind``."""
        key = self.PREFERENCE_FOR_KIND.get(kind)
        if key is None:
            return True
        return self.preferences.fetch(user_id)[key]

    def notify(
        self,
        user_id: str,
        kind: str,
        title: str,
        message: str,
        related_id: int | None = None,
    ) -> int | None:
        if not self.allows(user_id, kind):
            logger.debug("notification %s suppressed for %s", kind, user_id)
            return None
        return self.repo.add(user_id, kind, title, message, related_id)

    def list(self, user_id: str, unread_only: bool = False) -> list[dict]:
        return self.repo.fetch_all(user_id, unread_only)

    def mark_read(self, nid: int) -> None:
        self.repo.mark_read(nid)

    def mark_all_read(self, user_id: str) -> None:
        self.repo.mark_all_read(user_id)

    def unread_count(self, user_id: str) -> int:
        return self.repo.unread_count(user_id)

    def get_preferences(self, user_id: str) -> dict[str, bool]:
        return self.preferences.fetch(user_id)

    def update_preferences(self, user_id: str, **toggles: bool | None) -> dict[str, bool]:
        return self.preferences.update(user_id, **toggles)
