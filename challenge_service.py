import datetime
import logging

from db import (
    CommunityChallengeRepository,
    ChallengeParticipantRepository,
    LeaderboardRankRepository,
    ProfileRepository,
)
from notification_service import NotificationService
from localization import _

logger = logging.getLogger(__name__)


class ChallengeService:
    """Community challenges, leaderboards and rank-change detection."""

    def __init__(
        self,
        challenge_repo: CommunityChallengeRepository,
        participant_repo: ChallengeParticipantRepository,
        rank_repo: LeaderboardRankRepository,
        profile_repo: ProfileRepository,
        notifications: NotificationService | None = None,
    ) -> None:
        self.challenges = challenge_repo
        self.participants = participant_repo
        self.ranks = rank_repo
        self.profiles = profile_repo
        self.notifications = notifications

    def create(self, **fields) -> int:
        return self.challenges.add(**fields)

    def update(self, challenge_id: int, **fields) -> None:
        self.challenges.update(challenge_id, **fields)

    def deactivate(self, challenge_id: int) -> None:
        self.challenges.update(challenge_id, is_active=False)

    def list_active(self, now: datetime.date | None = None) -> list[dict]:
        rows = self.challenges.fetch_active()
        for row in rows:
            row["status"] = self.status(row, now)
        return rows

    @staticmethod
    def status(challenge: dict, now: datetime.date | None = None) -> str:
        today = (now or datetime.date.today()).isoformat()
        if today < challenge["start_date"][:10]:
            return "upcoming"
        if today > challenge["end_date"][:10]:
            return "ended"
        return "active"

    def join(self, challenge_id: int, user_id: str) -> int:
        challenge = self.challenges.fetch(challenge_id)
        if not challenge["is_active"]:
            raise ValueError("challenge is not active")
        return self.participants.join(challenge_id, user_id)

    def leave(self, challenge_id: int, user_id: str) -> None:
        self.challenges.fetch(challenge_id)
        self.participants.leave(challenge_id, user_id)

    def add_progress(self, challenge_id: int, user_id: str, amount: float) -> float:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        value = self.participants.add_value(challenge_id, user_id, amount)
        self.detect_rank_changes(challenge_id)
        return value

    def set_progress(self, challenge_id: int, user_id: str, value: float) -> None:
        if value < 0:
            raise ValueError("value must be non-negative")
        self.participants.set_value(challenge_id, user_id, value)
        self.detect_rank_changes(challenge_id)

    def leaderboard(self, challenge_id: int) -> list[dict]:
        """Return participants ranked by current value."""
        self.challenges.fetch(challenge_id)
        rows = self.participants.fetch_for_challenge(challenge_id)
        names = self.profiles.display_names(r["user_id"] for r in rows)
        board = []
        for rank, row in enumerate(rows, start=1):
            board.append(
                {
                    "rank": rank,
                    "user_id": row["user_id"],
                    "display_name": names.get(row["user_id"]) or _("Anonym"),
                    "current_value": row["current_value"],
                }
            )
        return board

    def detect_rank_changes(self, challenge_id: int) -> list[dict]:
        """Compare the leaderboard with the cached ranks and store the new ones.

        Users entering the board for the first time are not reported.
        ``change`` is positive when a user moved up.
        """
        board = self.leaderboard(challenge_id)
        previous = self.ranks.fetch_map(challenge_id)
        changes = []
        for entry in board:
            old = previous.get(entry["user_id"])
            if old is None or old == entry["rank"]:
                continue
            changes.append(
                {
                    "user_id": entry["user_id"],
                    "previous_rank": old,
                    "rank": entry["rank"],
                    "change": old - entry["rank"],
                }
            )
        self.ranks.replace(challenge_id, {e["user_id"]: e["rank"] for e in board})
        if self.notifications is not None:
            challenge = self.challenges.fetch(challenge_id)
            for change in changes:
                if change["change"] >= 0:
                    continue
                self.notifications.notify(
                    change["user_id"],
                    "overtaken",
                    _("Du har blivit omkörd"),
                    f"{challenge['title']}: #{change['previous_rank']} → #{change['rank']}",
                    challenge_id,
                )
        if changes:
            logger.info("challenge %s: %d rank changes", challenge_id, len(changes))
        return changes

    def winner(self, challenge_id: int) -> dict | None:
        board = self.leaderboard(challenge_id)
        if board and board[0]["current_value"] > 0:
            return board[0]
        return None

    def challenges_for_user(self, user_id: str) -> list[int]:
        return self.participants.fetch_challenge_ids(user_id)
