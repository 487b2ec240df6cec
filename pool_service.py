import datetime
import logging

from db import (
    PoolEntryRepository,
    PoolChallengeRepository,
    PoolParticipantRepository,
)
from gamification_service import GamificationService
from notification_service import NotificationService
from localization import _

logger = logging.getLogger(__name__)


class PoolService:
    """Matchmaking pool that pairs users into head-to-head challenges."""

    CATEGORIES = ("strength", "cardio")

    def __init__(
        self,
        entry_repo: PoolEntryRepository,
        challenge_repo: PoolChallengeRepository,
        participant_repo: PoolParticipantRepository,
        gamification: GamificationService,
        notifications: NotificationService,
    ) -> None:
        self.entries = entry_repo
        self.challenges = challenge_repo
        self.participants = participant_repo
        self.gamification = gamification
        self.notifications = notifications

    def enter_pool(
        self,
        user_id: str,
        challenge_category: str,
        challenge_type: str,
        target_value: float,
        duration_days: int,
        latest_start_date: str,
        allow_multiple: bool = False,
        max_participants: int | None = None,
        min_age: int | None = None,
        max_age: int | None = None,
        preferred_gender: str | None = None,
    ) -> int:
        if challenge_category not in self.CATEGORIES:
            raise ValueError("invalid challenge category")
        if duration_days <= 0:
            raise ValueError("duration_days must be positive")
        if target_value <= 0:
            raise ValueError("target_value must be positive")
        if min_age is not None and max_age is not None and min_age > max_age:
            raise ValueError("min_age must not exceed max_age")
        return self.entries.add(
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

    def cancel_entry(self, entry_id: int, user_id: str) -> None:
        entry = self.entries.fetch(entry_id)
        if entry["user_id"] != user_id:
            raise ValueError("pool entry not found")
        if entry["status"] != "waiting":
            raise ValueError("only waiting entries can be cancelled")
        self.entries.set_status([entry_id], "cancelled")

    @staticmethod
    def _age(entry: dict, year: int) -> int | None:
        return year - entry["birth_year"] if entry.get("birth_year") else None

    @classmethod
    def compatible(cls, entry: dict, other: dict, year: int) -> bool:
        """Return whether two waiting entries may meet in one challenge."""
        if other["id"] == entry["id"] or other["user_id"] == entry["user_id"]:
            return False
        if other["challenge_category"] != entry["challenge_category"]:
            return False
        if other["challenge_type"] != entry["challenge_type"]:
            return False
        for a, b in ((entry, other), (other, entry)):
            if a["preferred_gender"] and b.get("gender") and a["preferred_gender"] != b["gender"]:
                return False
            age = cls._age(b, year)
            if age is None:
                continue
            if a["min_age"] is not None and age < a["min_age"]:
                return False
            if a["max_age"] is not None and age > a["max_age"]:
                return False
        return True

    def match_pool(
        self, now: datetime.datetime | None = None, trigger_entry_id: int | None = None
    ) -> dict:
        """Group compatible waiting entries into new pool challenges."""
        now = now or datetime.datetime.now()
        stamp = now.isoformat(timespec="seconds")
        waiting = self.entries.fetch_waiting(stamp)
        logger.info("pool matching: %d waiting entries", len(waiting))
        if trigger_entry_id is not None:
            waiting.sort(key=lambda e: e["id"] != trigger_entry_id)
        matched_ids: set[int] = set()
        created: list[dict] = []
        for entry in waiting:
            if entry["id"] in matched_ids:
                continue
            candidates = [
                o
                for o in waiting
                if o["id"] not in matched_ids and self.compatible(entry, o, now.year)
            ]
            if not candidates:
                continue
            group = [entry]
            if entry["allow_multiple"] and (entry["max_participants"] or 0) > 2:
                group.extend(candidates[: entry["max_participants"] - 1])
            else:
                group.append(candidates[0])
            challenge_id = self._create_challenge(entry, group, now)
            if challenge_id is None:
                continue
            matched_ids.update(p["id"] for p in group)
            created.append({"id": challenge_id, "participants": [p["user_id"] for p in group]})
        expired = self.entries.expire(stamp)
        logger.info(
            "pool matching done: %d challenges created, %d entries expired",
            len(created),
            expired,
        )
        return {"matched": len(created), "challenges": created}

    def _create_challenge(
        self, entry: dict, group: list[dict], now: datetime.datetime
    ) -> int | None:
        duration = min(int(p["duration_days"]) for p in group)
        target = max(float(p["target_value"]) for p in group)
        xp_reward = min(100 + duration * 5, 1000)
        end = now + datetime.timedelta(days=duration)
        challenge_id = self.challenges.create(
            entry["challenge_category"],
            entry["challenge_type"],
            target,
            now.isoformat(timespec="seconds"),
            end.isoformat(timespec="seconds"),
            xp_reward,
        )
        try:
            self.participants.add_many(
                challenge_id, [(p["user_id"], p["id"]) for p in group]
            )
        except Exception:
            logger.exception("adding participants to pool challenge %s failed", challenge_id)
            self.challenges.delete(challenge_id)
            return None
        self.entries.set_status([p["id"] for p in group], "matched")
        kind = "styrke" if entry["challenge_category"] == "strength" else "konditions"
        for p in group:
            self.notifications.notify(
                p["user_id"],
                "pool_challenge_matched",
                _("Utmaning matchad! 🎯"),
                f"Du har matchats i en {kind}utmaning mot {len(group) - 1} motståndare!",
                challenge_id,
            )
        return challenge_id

    def complete_pools(self, now: datetime.datetime | None = None) -> dict:
        """Close pool challenges past their end date and pay the winner."""
        now = now or datetime.datetime.now()
        expired = self.challenges.fetch_expired_active(now.isoformat(timespec="seconds"))
        completed = 0
        for challenge in expired:
            participants = self.participants.fetch_for_challenge(challenge["id"])
            top = participants[0] if participants else None
            if top and top["current_value"] > 0:
                self.challenges.complete(challenge["id"], top["user_id"])
                self.gamification.add_xp(top["user_id"], int(challenge["xp_reward"]))
                self.notifications.notify(
                    top["user_id"],
                    "pool_challenge_won",
                    _("Du vann! 🏆"),
                    f"Grattis! Du vann utmaningen och fick +{challenge['xp_reward']} XP!",
                    challenge["id"],
                )
                for p in participants[1:]:
                    self.notifications.notify(
                        p["user_id"],
                        "pool_challenge_ended",
                        _("Utmaningen avslutad"),
                        "Utmaningen har avslutats. Bättre lycka nästa gång!",
                        challenge["id"],
                    )
            else:
                logger.info("pool challenge %s ended without activity", challenge["id"])
                self.challenges.complete(challenge["id"], None)
                for p in participants:
                    self.notifications.notify(
                        p["user_id"],
                        "pool_challenge_ended",
                        _("Utmaningen avslutad"),
                        "Utmaningen avslutades utan vinnare - ingen aktivitet registrerades.",
                        challenge["id"],
                    )
            completed += 1
        logger.info("completed %d pool challenges", completed)
        return {"completed": completed}

    def record_pool_progress(self, user_id: str, category: str, amount: float) -> int:
        """Add ``amount`` to every active pool challenge of ``category``."""
        if amount <= 0:
            return 0
        active = self.challenges.fetch_active_for_user(user_id, category)
        for challenge in active:
            self.participants.add_value(challenge["id"], user_id, amount)
        return len(active)

    def challenges_for_user(self, user_id: str) -> list[dict]:
        result = []
        for challenge in self.challenges.fetch_active_for_user(user_id):
            challenge["participants"] = self.participants.fetch_for_challenge(challenge["id"])
            result.append(challenge)
        return result
