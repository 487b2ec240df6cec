import os
import sqlite3
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database


class TestSchemaMigration:
    def test_drops_existing_backup_table(self, tmp_path):
        db_file = tmp_path / "test.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE cardio_logs (id INTEGER PRIMARY KEY AUTOINCREMENT, user_id TEXT, activity_type TEXT, duration_minutes INTEGER, completed_at TEXT)"
        )
        conn.execute(
            "INSERT INTO cardio_logs (user_id, activity_type, duration_minutes, completed_at) VALUES ('u1', 'running', 30, '2026-10-01T10:00:00')"
        )
        conn.execute("CREATE TABLE cardio_logs_old (id INTEGER)")
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='cardio_logs_old'"
        )
        assert cur.fetchone() is None
        cur = conn.execute("PRAGMA table_info(cardio_logs)")
        cols = [row[1] for row in cur.fetchall()]
        assert "distance_km" in cols
        assert "calories_burned" in cols
        rows = conn.execute(
            "SELECT user_id, activity_type, duration_minutes, distance_km FROM cardio_logs"
        ).fetchall()
        assert rows == [("u1", "running", 30, None)]
        conn.close()

    def test_missing_columns_get_defaults(self, tmp_path):
        db_file = tmp_path / "ads.db"
        conn = sqlite3.connect(str(db_file))
        conn.execute(
            "CREATE TABLE ads (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, image_url TEXT, link TEXT)"
        )
        conn.execute(
            "INSERT INTO ads (name, image_url, link) VALUES ('Gammal', 'a.png', 'https://example.com')"
        )
        conn.commit()
        conn.close()

        Database(str(db_file))

        conn = sqlite3.connect(str(db_file))
        row = conn.execute(
            "SELECT name, is_active, priority, format FROM ads"
        ).fetchone()
        assert row[0] == "Gammal"
        assert row[1] == 1
        conn.close()

    def test_default_achievements_seeded_once(self, tmp_path):
        db_file = str(tmp_path / "ach.db")
        Database(db_file)
        Database(db_file)
        conn = sqlite3.connect(db_file)
        count = conn.execute("SELECT COUNT(*) FROM achievements").fetchone()[0]
        conn.close()
        assert count == 7
