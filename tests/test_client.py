import unittest
import sys
import os
from unittest.mock import patch, MagicMock
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import GymdagbokenClient


def _response(payload) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = GymdagbokenClient(base_url='http://testserver/', admin_token='secret')

    @patch('client.requests.post')
    def test_log_workout(self, mock_post) -> None:
        mock_post.return_value = _response({'id': 1, 'xp_earned': 86, 'achievements': []})
        exercises = [{'exercise_name': 'Bänkpress', 'sets_completed': 3, 'reps_completed': '8'}]
        result = self.client.log_workout('u1', 'Dag 1', exercises, duration_minutes=30)
        self.assertEqual(result['xp_earned'], 86)
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'http://testserver/workouts')
        self.assertEqual(kwargs['params'], {'user_id': 'u1', 'workout_day': 'Dag 1', 'duration_minutes': 30})
        self.assertEqual(kwargs['json'], exercises)

    @patch('client.requests.post')
    def test_log_cardio_without_distance(self, mock_post) -> None:
        mock_post.return_value = _response({'id': 2})
        self.client.log_cardio('u1', 'running', 20)
        self.assertNotIn('distance_km', mock_post.call_args.kwargs['params'])

    @patch('client.requests.get')
    def test_leaderboard(self, mock_get) -> None:
        mock_get.return_value = _response([{'rank': 1, 'user_id': 'u1'}])
        self.assertEqual(self.client.leaderboard(3)[0]['rank'], 1)
        self.assertEqual(mock_get.call_args.args[0], 'http://testserver/challenges/3/leaderboard')

    @patch('client.requests.post')
    def test_log_weight(self, mock_post) -> None:
        mock_post.return_value = _response({'id': 4})
        self.assertEqual(self.client.log_weight('u1', 80.5), 4)
        self.assertEqual(mock_post.call_args.args[0], 'http://testserver/weight')
        self.assertEqual(mock_post.call_args.kwargs['params'], {'user_id': 'u1', 'weight_kg': 80.5})

    @patch('client.requests.get')
    def test_streak_leaderboard(self, mock_get) -> None:
        mock_get.return_value = _response([{'rank': 1, 'current_streak': 5}])
        self.assertEqual(self.client.streak_leaderboard(5)[0]['current_streak'], 5)
        self.assertEqual(mock_get.call_args.kwargs['params'], {'limit': 5})

    @patch('client.requests.post')
    def test_run_jobs_sends_admin_token(self, mock_post) -> None:
        mock_post.return_value = _response({'match_pool': {'matched': 0}})
        self.client.run_jobs()
        self.assertEqual(mock_post.call_args.kwargs['headers'], {'X-Admin-Token': 'secret'})

if __name__ == '__main__':
    unittest.main()
