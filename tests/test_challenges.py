import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from challenge_service import ChallengeService
from rest_api import GymdagbokenAPI


class ChallengeServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_challenges.db"
        self.yaml_path = "test_challenges.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = GymdagbokenAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.service = self.api.challenges
        self.cid = self.service.create(
            title="Höstrace",
            goal_description="Spring så långt du kan",
            goal_unit="km",
            start_date="2026-10-01",
            end_date="2026-10-31",
        )
        self.api.profiles.upsert("u1", "Anna")
        for uid in ("u1", "u2", "u3"):
            self.service.join(self.cid, uid)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def test_end_before_start_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.service.create(
                title="Fel",
                goal_description="x",
                goal_unit="km",
                start_date="2026-10-31",
                end_date="2026-10-01",
            )

    def test_status(self) -> None:
        challenge = self.api.community_challenges.fetch(self.cid)
        self.assertEqual(ChallengeService.status(challenge, datetime.date(2026, 9, 30)), "upcoming")
        self.assertEqual(ChallengeService.status(challenge, datetime.date(2026, 10, 31)), "active")
        self.assertEqual(ChallengeService.status(challenge, datetime.date(2026, 11, 1)), "ended")

    def test_join_twice_and_inactive(self) -> None:
        with self.assertRaises(ValueError):
            self.service.join(self.cid, "u1")
        self.service.deactivate(self.cid)
        with self.assertRaises(ValueError):
            self.service.join(self.cid, "u4")
        self.assertEqual(self.service.list_active(), [])

    def test_leaderboard_names_and_order(self) -> None:
        self.service.add_progress(self.cid, "u2", 5)
        self.service.add_progress(self.cid, "u2", 2.5)
        board = self.service.leaderboard(self.cid)
        self.assertEqual([e["user_id"] for e in board], ["u2", "u1", "u3"])
        self.assertEqual([e["rank"] for e in board], [1, 2, 3])
        self.assertEqual(board[0]["current_value"], 7.5)
        self.assertEqual(board[0]["display_name"], "Anonym")
        self.assertEqual(board[1]["display_name"], "Anna")

    def test_negative_progress_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.service.add_progress(self.cid, "u1", -1)
        with self.assertRaises(ValueError):
            self.service.add_progress(self.cid, "u9", 1)

    def test_rank_changes_and_overtaken_notifications(self) -> None:
        self.assertEqual(self.service.detect_rank_changes(self.cid), [])
        self.api.challenge_participants.set_value(self.cid, "u3", 20)
        changes = self.service.detect_rank_changes(self.cid)
        self.assertEqual(
            changes,
            [
                {"user_id": "u3", "previous_rank": 3, "rank": 1, "change": 2},
                {"user_id": "u1", "previous_rank": 1, "rank": 2, "change": -1},
                {"user_id": "u2", "previous_rank": 2, "rank": 3, "change": -1},
            ],
        )
        self.assertEqual(self.service.detect_rank_changes(self.cid), [])
        for uid in ("u1", "u2"):
            notes = self.api.notification_repo.fetch_all(uid)
            self.assertEqual([n["type"] for n in notes], ["overtaken"])
            self.assertEqual(notes[0]["related_id"], self.cid)
        self.assertEqual(self.api.notification_repo.fetch_all("u3"), [])

    def test_overtaken_respects_preferences(self) -> None:
        self.service.detect_rank_changes(self.cid)
        self.api.notifications.update_preferences("u1", community_challenges=False)
        self.service.set_progress(self.cid, "u2", 3)
        self.assertEqual(self.api.notification_repo.fetch_all("u1"), [])

    def test_winner(self) -> None:
        self.assertIsNone(self.service.winner(self.cid))
        self.service.set_progress(self.cid, "u3", 12)
        self.assertEqual(self.service.winner(self.cid)["user_id"], "u3")

    def test_leave(self) -> None:
        self.service.leave(self.cid, "u3")
        self.assertEqual(len(self.service.leaderboard(self.cid)), 2)
        self.assertEqual(self.service.challenges_for_user("u1"), [self.cid])
        self.assertEqual(self.service.challenges_for_user("u3"), [])


if __name__ == "__main__":
    unittest.main()
