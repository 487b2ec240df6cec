import sqlite3
import aiosqlite
import datetime
import json
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Iterable

from config import YamlConfig
from settings_schema import SettingsSchema, validate_settings


def _now() -> str:
    return datetime.datetime.now().isoformat(timespec="seconds")


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "profiles": (
            """CREATE TABLE profiles (
                    user_id TEXT PRIMARY KEY,
                    display_name TEXT,
                    birth_year INTEGER,
                    gender TEXT,
                    is_admin INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );""",
            ["user_id", "display_name", "birth_year", "gender", "is_admin", "created_at"],
        ),
        "user_stats": (
            """CREATE TABLE user_stats (
                    user_id TEXT PRIMARY KEY,
                    total_xp INTEGER NOT NULL DEFAULT 0,
                    level INTEGER NOT NULL DEFAULT 1,
                    total_workouts INTEGER NOT NULL DEFAULT 0,
                    total_sets INTEGER NOT NULL DEFAULT 0,
                    total_minutes INTEGER NOT NULL DEFAULT 0,
                    total_cardio_sessions INTEGER NOT NULL DEFAULT 0,
                    total_cardio_minutes INTEGER NOT NULL DEFAULT 0,
                    total_cardio_distance_km REAL NOT NULL DEFAULT 0,
                    current_streak INTEGER NOT NULL DEFAULT 0,
                    longest_streak INTEGER NOT NULL DEFAULT 0,
                    last_activity_date TEXT,
                    daily_bonus_claimed_at TEXT,
                    updated_at TEXT
                );""",
            [
                "user_id",
                "total_xp",
                "level",
                "total_workouts",
                "total_sets",
                "total_minutes",
                "total_cardio_sessions",
                "total_cardio_minutes",
                "total_cardio_distance_km",
                "current_streak",
                "longest_streak",
                "last_activity_date",
                "daily_bonus_claimed_at",
                "updated_at",
            ],
        ),
        "workout_logs": (
            """CREATE TABLE workout_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    workout_day TEXT NOT NULL,
                    program_id INTEGER,
                    duration_minutes INTEGER,
                    notes TEXT,
                    completed_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "workout_day",
                "program_id",
                "duration_minutes",
                "notes",
                "completed_at",
            ],
        ),
        "exercise_logs": (
            """CREATE TABLE exercise_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workout_log_id INTEGER NOT NULL,
                    exercise_name TEXT NOT NULL,
                    sets_completed INTEGER NOT NULL,
                    reps_completed TEXT NOT NULL,
                    weight_kg REAL,
                    set_details TEXT,
                    notes TEXT,
                    FOREIGN KEY(workout_log_id) REFERENCES workout_logs(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_log_id",
                "exercise_name",
                "sets_completed",
                "reps_completed",
                "weight_kg",
                "set_details",
                "notes",
            ],
        ),
        "cardio_logs": (
            """CREATE TABLE cardio_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    activity_type TEXT NOT NULL,
                    duration_minutes INTEGER NOT NULL,
                    distance_km REAL,
                    calories_burned INTEGER,
                    notes TEXT,
                    completed_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "activity_type",
                "duration_minutes",
                "distance_km",
                "calories_burned",
                "notes",
                "completed_at",
            ],
        ),
        "cardio_routes": (
            """CREATE TABLE cardio_routes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    cardio_log_id INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    route_data TEXT NOT NULL,
                    total_distance_km REAL NOT NULL,
                    average_speed_kmh REAL NOT NULL,
                    max_speed_kmh REAL NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(cardio_log_id) REFERENCES cardio_logs(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "cardio_log_id",
                "user_id",
                "route_data",
                "total_distance_km",
                "average_speed_kmh",
                "max_speed_kmh",
                "created_at",
            ],
        ),
        "gps_sessions": (
            """CREATE TABLE gps_sessions (
                    user_id TEXT PRIMARY KEY,
                    activity_type TEXT NOT NULL,
                    state TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["user_id", "activity_type", "state", "updated_at"],
        ),
        "cardio_drafts": (
            """CREATE TABLE cardio_drafts (
                    user_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );""",
            ["user_id", "payload", "created_at"],
        ),
        "progress_photos": (
            """CREATE TABLE progress_photos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    photo_path TEXT NOT NULL,
                    photo_date TEXT NOT NULL,
                    weight_kg REAL,
                    notes TEXT,
                    category TEXT NOT NULL DEFAULT 'general',
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "photo_path",
                "photo_date",
                "weight_kg",
                "notes",
                "category",
                "created_at",
            ],
        ),
        "weight_logs": (
            """CREATE TABLE weight_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    weight_kg REAL NOT NULL,
                    notes TEXT,
                    logged_at TEXT NOT NULL
                );""",
            ["id", "user_id", "weight_kg", "notes", "logged_at"],
        ),
        "user_goals": (
            """CREATE TABLE user_goals (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    goal_type TEXT NOT NULL DEFAULT 'custom',
                    target_value REAL,
                    target_unit TEXT,
                    current_value REAL,
                    start_date TEXT NOT NULL,
                    target_date TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    reminder_enabled INTEGER NOT NULL DEFAULT 0,
                    reminder_frequency TEXT NOT NULL DEFAULT 'weekly',
                    last_reminder_sent TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "title",
                "description",
                "goal_type",
                "target_value",
                "target_unit",
                "current_value",
                "start_date",
                "target_date",
                "status",
                "reminder_enabled",
                "reminder_frequency",
                "last_reminder_sent",
                "created_at",
                "updated_at",
            ],
        ),
        "ads": (
            """CREATE TABLE ads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    image_url TEXT NOT NULL,
                    link TEXT NOT NULL,
                    alt_text TEXT,
                    format TEXT NOT NULL DEFAULT 'banner',
                    placement TEXT,
                    priority INTEGER NOT NULL DEFAULT 0,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "name",
                "image_url",
                "link",
                "alt_text",
                "format",
                "placement",
                "priority",
                "is_active",
                "created_at",
                "updated_at",
            ],
        ),
        "ad_stats": (
            """CREATE TABLE ad_stats (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ad_id INTEGER NOT NULL,
                    event_type TEXT NOT NULL,
                    user_id TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(ad_id) REFERENCES ads(id) ON DELETE CASCADE
                );""",
            ["id", "ad_id", "event_type", "user_id", "created_at"],
        ),
        "scheduled_workouts": (
            """CREATE TABLE scheduled_workouts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    workout_type TEXT NOT NULL DEFAULT 'strength',
                    scheduled_date TEXT NOT NULL,
                    scheduled_time TEXT,
                    duration_minutes INTEGER,
                    description TEXT,
                    workout_program_id INTEGER,
                    workout_day_name TEXT,
                    reminder_enabled INTEGER NOT NULL DEFAULT 1,
                    reminder_minutes_before INTEGER NOT NULL DEFAULT 60,
                    reminder_sent_at TEXT,
                    completed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "title",
                "workout_type",
                "scheduled_date",
                "scheduled_time",
                "duration_minutes",
                "description",
                "workout_program_id",
                "workout_day_name",
                "reminder_enabled",
                "reminder_minutes_before",
                "reminder_sent_at",
                "completed_at",
                "created_at",
                "updated_at",
            ],
        ),
        "notification_preferences": (
            """CREATE TABLE notification_preferences (
                    user_id TEXT PRIMARY KEY,
                    push_enabled INTEGER NOT NULL DEFAULT 1,
                    workout_reminders INTEGER NOT NULL DEFAULT 1,
                    achievements INTEGER NOT NULL DEFAULT 1,
                    challenges INTEGER NOT NULL DEFAULT 1,
                    community_challenges INTEGER NOT NULL DEFAULT 1,
                    goal_reminders INTEGER NOT NULL DEFAULT 1,
                    weekly_summary_emails INTEGER NOT NULL DEFAULT 1,
                    updated_at TEXT
                );""",
            [
                "user_id",
                "push_enabled",
                "workout_reminders",
                "achievements",
                "challenges",
                "community_challenges",
                "goal_reminders",
                "weekly_summary_emails",
                "updated_at",
            ],
        ),
        "notifications": (
            """CREATE TABLE notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    related_id INTEGER,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "type",
                "title",
                "message",
                "related_id",
                "is_read",
                "created_at",
            ],
        ),
        "community_challenges": (
            """CREATE TABLE community_challenges (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    goal_description TEXT NOT NULL,
                    goal_unit TEXT NOT NULL,
                    target_value REAL,
                    theme TEXT,
                    winner_type TEXT NOT NULL DEFAULT 'highest',
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_by TEXT,
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "title",
                "description",
                "goal_description",
                "goal_unit",
                "target_value",
                "theme",
                "winner_type",
                "start_date",
                "end_date",
                "is_active",
                "created_by",
                "created_at",
            ],
        ),
        "community_challenge_participants": (
            """CREATE TABLE community_challenge_participants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    challenge_id INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    current_value REAL NOT NULL DEFAULT 0,
                    joined_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (challenge_id, user_id),
                    FOREIGN KEY(challenge_id) REFERENCES community_challenges(id) ON DELETE CASCADE
                );""",
            ["id", "challenge_id", "user_id", "current_value", "joined_at", "updated_at"],
        ),
        "leaderboard_ranks": (
            """CREATE TABLE leaderboard_ranks (
                    challenge_id INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    rank INTEGER NOT NULL,
                    PRIMARY KEY (challenge_id, user_id),
                    FOREIGN KEY(challenge_id) REFERENCES community_challenges(id) ON DELETE CASCADE
                );""",
            ["challenge_id", "user_id", "rank"],
        ),
        "challenge_pool_entries": (
            """CREATE TABLE challenge_pool_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    challenge_category TEXT NOT NULL,
                    challenge_type TEXT NOT NULL,
                    target_value REAL NOT NULL,
                    duration_days INTEGER NOT NULL,
                    latest_start_date TEXT NOT NULL,
                    allow_multiple INTEGER NOT NULL DEFAULT 0,
                    max_participants INTEGER,
                    min_age INTEGER,
                    max_age INTEGER,
                    preferred_gender TEXT,
                    status TEXT NOT NULL DEFAULT 'waiting',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "challenge_category",
                "challenge_type",
                "target_value",
                "duration_days",
                "latest_start_date",
                "allow_multiple",
                "max_participants",
                "min_age",
                "max_age",
                "preferred_gender",
                "status",
                "created_at",
                "updated_at",
            ],
        ),
        "pool_challenges": (
            """CREATE TABLE pool_challenges (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    challenge_category TEXT NOT NULL,
                    challenge_type TEXT NOT NULL,
                    target_value REAL NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    winner_id TEXT,
                    xp_reward INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "challenge_category",
                "challenge_type",
                "target_value",
                "start_date",
                "end_date",
                "status",
                "winner_id",
                "xp_reward",
                "created_at",
            ],
        ),
        "pool_challenge_participants": (
            """CREATE TABLE pool_challenge_participants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    challenge_id INTEGER NOT NULL,
                    user_id TEXT NOT NULL,
                    pool_entry_id INTEGER,
                    current_value REAL NOT NULL DEFAULT 0,
                    joined_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(challenge_id) REFERENCES pool_challenges(id) ON DELETE CASCADE,
                    FOREIGN KEY(pool_entry_id) REFERENCES challenge_pool_entries(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "challenge_id",
                "user_id",
                "pool_entry_id",
                "current_value",
                "joined_at",
                "updated_at",
            ],
        ),
        "achievements": (
            """CREATE TABLE achievements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    description TEXT,
                    icon TEXT,
                    requirement_type TEXT NOT NULL,
                    requirement_value REAL NOT NULL,
                    xp_reward INTEGER NOT NULL DEFAULT 0
                );""",
            [
                "id",
                "name",
                "description",
                "icon",
                "requirement_type",
                "requirement_value",
                "xp_reward",
            ],
        ),
        "user_achievements": (
            """CREATE TABLE user_achievements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    achievement_id INTEGER NOT NULL,
                    earned_at TEXT NOT NULL,
                    UNIQUE (user_id, achievement_id),
                    FOREIGN KEY(achievement_id) REFERENCES achievements(id) ON DELETE CASCADE
                );""",
            ["id", "user_id", "achievement_id", "earned_at"],
        ),
        "workout_programs": (
            """CREATE TABLE workout_programs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    goal TEXT,
                    experience_level TEXT,
                    days_per_week INTEGER,
                    program_data TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "name",
                "description",
                "goal",
                "experience_level",
                "days_per_week",
                "program_data",
                "is_active",
                "created_at",
            ],
        ),
        "cardio_plans": (
            """CREATE TABLE cardio_plans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    goal_type TEXT,
                    total_weeks INTEGER,
                    plan_data TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "user_id",
                "name",
                "description",
                "goal_type",
                "total_weeks",
                "plan_data",
                "is_active",
                "created_at",
            ],
        ),
        "saved_wods": (
            """CREATE TABLE saved_wods (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    wod_data TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );""",
            ["id", "user_id", "name", "wod_data", "created_at"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    _DEFAULT_ACHIEVEMENTS = [
        ("Första passet", "Logga ditt första styrkepass", "🏋️", "workouts", 1, 25),
        ("Tio pass", "Logga tio styrkepass", "💪", "workouts", 10, 100),
        ("Hundra set", "Genomför hundra set", "🔁", "sets", 100, 100),
        ("Första konditionspasset", "Logga ditt första konditionspass", "🏃", "cardio_sessions", 1, 25),
        ("Tio timmar kondition", "Träna kondition i tio timmar", "⏱️", "cardio_minutes", 600, 150),
        ("Maratondistans", "Samla ihop 42,2 km kondition", "🏅", "cardio_distance", 42.195, 150),
        ("Veckostreak", "Träna sju dagar i rad", "🔥", "streak", 7, 100),
    ]

    def __init__(self, db_path: str = "gymdagboken.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_achievements()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            cursor.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            # columns with a DEFAULT are left out so SQLite fills them in
            required = []
            for _, name, col_type, notnull, default, pk in conn.execute(
                f"PRAGMA table_info({table});"
            ).fetchall():
                if name in common or not notnull or default is not None or pk:
                    continue
                fill = "0" if col_type in ("INTEGER", "REAL") else "''"
                required.append((name, fill))
            cols = ", ".join(common + [name for name, _ in required])
            values = ", ".join(common + [fill for _, fill in required])
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {values} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_achievements(self) -> None:
        with self._connection() as conn:
            for name, desc, icon, req_type, req_value, xp in self._DEFAULT_ACHIEVEMENTS:
                conn.execute(
                    "INSERT OR IGNORE INTO achievements (name, description, icon, requirement_type, requirement_value, xp_reward) "
                    "VALUES (?, ?, ?, ?, ?, ?);",
                    (name, desc, icon, req_type, req_value, xp),
                )

    def _init_settings(self) -> None:
        defaults = {k: str(v) for k, v in SettingsSchema().model_dump().items()}
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def fetch_dicts(self, query: str, params: Tuple = ()) -> list[dict]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            names = [d[0] for d in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]

    def _exists(self, table: str, row_id: int) -> bool:
        rows = BaseRepository.fetch_all(
            self, f"SELECT 1 FROM {table} WHERE id = ?;", (row_id,)
        )
        return bool(rows)

    def _update_fields(self, table: str, row_id: int, fields: dict, allowed: Iterable[str]) -> None:
        if not self._exists(table, row_id):
            raise ValueError(f"{table} row not found")
        sets = []
        params: list = []
        for key in allowed:
            if key in fields and fields[key] is not None:
                sets.append(f"{key} = ?")
                params.append(fields[key])
        if not sets:
            return
        params.append(row_id)
        self.execute(
            f"UPDATE {table} SET {', '.join(sets)} WHERE id = ?;", tuple(params)
        )

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class ProfileRepository(BaseRepository):
    """Repository for user profiles."""

    def upsert(
        self,
        user_id: str,
        display_name: str | None = None,
        birth_year: int | None = None,
        gender: str | None = None,
        is_admin: bool = False,
    ) -> None:
        self.execute(
            "INSERT INTO profiles (user_id, display_name, birth_year, gender, is_admin, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET display_name=excluded.display_name, "
            "birth_year=excluded.birth_year, gender=excluded.gender, is_admin=excluded.is_admin;",
            (user_id, display_name, birth_year, gender, int(is_admin), _now()),
        )

    def fetch(self, user_id: str) -> dict | None:
        rows = self.fetch_dicts(
            "SELECT user_id, display_name, birth_year, gender, is_admin, created_at FROM profiles WHERE user_id = ?;",
            (user_id,),
        )
        if not rows:
            return None
        row = rows[0]
        row["is_admin"] = bool(row["is_admin"])
        return row

    def display_names(self, user_ids: Iterable[str]) -> dict[str, str | None]:
        ids = list(user_ids)
        if not ids:
            return {}
        marks = ", ".join("?" for _ in ids)
        rows = self.fetch_all(
            f"SELECT user_id, display_name FROM profiles WHERE user_id IN ({marks});",
            tuple(ids),
        )
        return {uid: name for uid, name in rows}

    def count(self) -> int:
        return self.fetch_all("SELECT COUNT(*) FROM profiles;")[0][0]


class UserStatsRepository(BaseRepository):
    """Repository for per-user XP, totals and streaks."""

    FIELDS = (
        "total_xp",
        "level",
        "total_workouts",
        "total_sets",
        "total_minutes",
        "total_cardio_sessions",
        "total_cardio_minutes",
        "total_cardio_distance_km",
        "current_streak",
        "longest_streak",
        "last_activity_date",
        "daily_bonus_claimed_at",
    )

    def fetch(self, user_id: str) -> dict:
        """Return stats for ``user_id``, creating a zero row if none exists."""
        self.execute(
            "INSERT OR IGNORE INTO user_stats (user_id, updated_at) VALUES (?, ?);",
            (user_id, _now()),
        )
        return self.fetch_dicts(
            "SELECT * FROM user_stats WHERE user_id = ?;", (user_id,)
        )[0]

    def update(self, user_id: str, **fields) -> None:
        self.fetch(user_id)
        sets = []
        params: list = []
        for key in self.FIELDS:
            if key in fields:
                sets.append(f"{key} = ?")
                params.append(fields[key])
        if not sets:
            return
        sets.append("updated_at = ?")
        params.extend([_now(), user_id])
        self.execute(
            f"UPDATE user_stats SET {', '.join(sets)} WHERE user_id = ?;",
            tuple(params),
        )

    def add_xp(self, user_id: str, amount: int) -> int:
        stats = self.fetch(user_id)
        total = int(stats["total_xp"]) + int(amount)
        self.update(user_id, total_xp=total)
        return total

    def fetch_top_streaks(self, limit: int = 10) -> list[dict]:
        return self.fetch_dicts(
            "SELECT user_id, current_streak, longest_streak FROM user_stats "
            "WHERE current_streak > 0 "
            "ORDER BY current_streak DESC, longest_streak DESC, user_id LIMIT ?;",
            (limit,),
        )


class WorkoutLogRepository(BaseRepository):
    """Repository for strength workout logs."""

    def create(
        self,
        user_id: str,
        workout_day: str,
        duration_minutes: int | None = None,
        notes: str | None = None,
        program_id: int | None = None,
        completed_at: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO workout_logs (user_id, workout_day, program_id, duration_minutes, notes, completed_at) "
            "VALUES (?, ?, ?, ?, ?, ?);",
            (user_id, workout_day, program_id, duration_minutes, notes, completed_at or _now()),
        )

    def fetch(self, log_id: int) -> dict:
        rows = self.fetch_dicts("SELECT * FROM workout_logs WHERE id = ?;", (log_id,))
        if not rows:
            raise ValueError("workout log not found")
        return rows[0]

    def fetch_for_user(
        self,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int | None = None,
    ) -> list[dict]:
        query = "SELECT * FROM workout_logs WHERE user_id = ?"
        params: list = [user_id]
        if start_date:
            query += " AND completed_at >= ?"
            params.append(start_date)
        if end_date:
            query += " AND completed_at <= ?"
            params.append(end_date + "T23:59:59" if len(end_date) == 10 else end_date)
        query += " ORDER BY completed_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return self.fetch_dicts(query + ";", tuple(params))

    def update(self, log_id: int, **fields) -> None:
        self._update_fields(
            "workout_logs", log_id, fields, ("workout_day", "duration_minutes", "notes")
        )

    def delete(self, log_id: int) -> None:
        if not self._exists("workout_logs", log_id):
            raise ValueError("workout log not found")
        self.execute("DELETE FROM workout_logs WHERE id = ?;", (log_id,))

    def count(self) -> int:
        return self.fetch_all("SELECT COUNT(*) FROM workout_logs;")[0][0]


class ExerciseLogRepository(BaseRepository):
    """Repository for exercises performed within a workout log."""

    def add(
        self,
        workout_log_id: int,
        exercise_name: str,
        sets_completed: int,
        reps_completed: str,
        weight_kg: float | None = None,
        set_details: list | None = None,
        notes: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO exercise_logs (workout_log_id, exercise_name, sets_completed, reps_completed, weight_kg, set_details, notes) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                workout_log_id,
                exercise_name,
                sets_completed,
                reps_completed,
                weight_kg,
                json.dumps(set_details) if set_details is not None else None,
                notes,
            ),
        )

    def fetch_for_workout(self, workout_log_id: int) -> list[dict]:
        rows = self.fetch_dicts(
            "SELECT id, exercise_name, sets_completed, reps_completed, weight_kg, set_details, notes "
            "FROM exercise_logs WHERE workout_log_id = ? ORDER BY id;",
            (workout_log_id,),
        )
        for row in rows:
            row["set_details"] = json.loads(row["set_details"]) if row["set_details"] else None
        return rows

    def remove(self, exercise_log_id: int) -> None:
        self.execute("DELETE FROM exercise_logs WHERE id = ?;", (exercise_log_id,))


class CardioLogRepository(BaseRepository):
    """Repository for cardio sessions."""

    def create(
        self,
        user_id: str,
        activity_type: str,
        duration_minutes: int,
        distance_km: float | None = None,
        calories_burned: int | None = None,
        notes: str | None = None,
        completed_at: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO cardio_logs (user_id, activity_type, duration_minutes, distance_km, calories_burned, notes, completed_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                activity_type,
                duration_minutes,
                distance_km,
                calories_burned,
                notes,
                completed_at or _now(),
            ),
        )

    def fetch(self, log_id: int) -> dict:
        rows = self.fetch_dicts("SELECT * FROM cardio_logs WHERE id = ?;", (log_id,))
        if not rows:
            raise ValueError("cardio log not found")
        return rows[0]

    def fetch_for_user(
        self,
        user_id: str,
        limit: int | None = 50,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[dict]:
        query = "SELECT * FROM cardio_logs WHERE user_id = ?"
        params: list = [user_id]
        if start_date:
            query += " AND completed_at >= ?"
            params.append(start_date)
        if end_date:
            query += " AND completed_at <= ?"
            params.append(end_date + "T23:59:59" if len(end_date) == 10 else end_date)
        query += " ORDER BY completed_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return self.fetch_dicts(query + ";", tuple(params))

    def update(self, log_id: int, **fields) -> None:
        self._update_fields(
            "cardio_logs",
            log_id,
            fields,
            ("activity_type", "duration_minutes", "distance_km", "calories_burned", "notes"),
        )

    def delete(self, log_id: int) -> None:
        if not self._exists("cardio_logs", log_id):
            raise ValueError("cardio log not found")
        self.execute("DELETE FROM cardio_logs WHERE id = ?;", (log_id,))

    def count(self) -> int:
        return self.fetch_all("SELECT COUNT(*) FROM cardio_logs;")[0][0]


class CardioRouteRepository(BaseRepository):
    """Repository for GPS routes attached to cardio logs."""

    def add(
        self,
        cardio_log_id: int,
        user_id: str,
        route_data: list[dict],
        total_distance_km: float,
        average_speed_kmh: float,
        max_speed_kmh: float,
    ) -> int:
        return self.execute(
            "INSERT INTO cardio_routes (cardio_log_id, user_id, route_data, total_distance_km, average_speed_kmh, max_speed_kmh, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                cardio_log_id,
                user_id,
                json.dumps(route_data),
                total_distance_km,
                average_speed_kmh,
                max_speed_kmh,
                _now(),
            ),
        )

    def fetch_for_log(self, cardio_log_id: int) -> dict | None:
        rows = self.fetch_dicts(
            "SELECT * FROM cardio_routes WHERE cardio_log_id = ?;", (cardio_log_id,)
        )
        if not rows:
            return None
        row = rows[0]
        row["route_data"] = json.loads(row["route_data"])
        return row


class GpsSessionRepository(BaseRepository):
    """Repository holding live GPS session state for resume."""

    def save(self, user_id: str, activity_type: str, state: dict) -> None:
        self.execute(
            "INSERT INTO gps_sessions (user_id, activity_type, state, updated_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET activity_type=excluded.activity_type, "
            "state=excluded.state, updated_at=excluded.updated_at;",
            (user_id, activity_type, json.dumps(state), _now()),
        )

    def fetch(self, user_id: str) -> dict | None:
        rows = self.fetch_all(
            "SELECT activity_type, state, updated_at FROM gps_sessions WHERE user_id = ?;",
            (user_id,),
        )
        if not rows:
            return None
        activity_type, state, updated_at = rows[0]
        return {
            "activity_type": activity_type,
            "state": json.loads(state),
            "updated_at": updated_at,
        }

    def delete(self, user_id: str) -> None:
        self.execute("DELETE FROM gps_sessions WHERE user_id = ?;", (user_id,))


class CardioDraftRepository(BaseRepository):
    """Repository for unsaved cardio form drafts."""

    def save(self, user_id: str, payload: dict, created_at: str | None = None) -> None:
        self.execute(
            "INSERT INTO cardio_drafts (user_id, payload, created_at) VALUES (?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET payload=excluded.payload, created_at=excluded.created_at;",
            (user_id, json.dumps(payload), created_at or _now()),
        )

    def fetch(self, user_id: str) -> dict | None:
        rows = self.fetch_all(
            "SELECT payload, created_at FROM cardio_drafts WHERE user_id = ?;",
            (user_id,),
        )
        if not rows:
            return None
        return {"payload": json.loads(rows[0][0]), "created_at": rows[0][1]}

    def delete(self, user_id: str) -> None:
        self.execute("DELETE FROM cardio_drafts WHERE user_id = ?;", (user_id,))


class ProgressPhotoRepository(BaseRepository):
    """Repository for progress photo metadata."""

    def add(
        self,
        user_id: str,
        photo_path: str,
        photo_date: str,
        weight_kg: float | None = None,
        notes: str | None = None,
        category: str = "general",
    ) -> int:
        return self.execute(
            "INSERT INTO progress_photos (user_id, photo_path, photo_date, weight_kg, notes, category, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?);",
            (user_id, photo_path, photo_date, weight_kg, notes, category, _now()),
        )

    def fetch(self, photo_id: int) -> dict:
        rows = self.fetch_dicts("SELECT * FROM progress_photos WHERE id = ?;", (photo_id,))
        if not rows:
            raise ValueError("photo not found")
        return rows[0]

    def fetch_for_user(self, user_id: str) -> list[dict]:
        return self.fetch_dicts(
            "SELECT * FROM progress_photos WHERE user_id = ? ORDER BY photo_date DESC, id DESC;",
            (user_id,),
        )

    def delete(self, photo_id: int) -> None:
        self.execute("DELETE FROM progress_photos WHERE id = ?;", (photo_id,))


class WeightLogRepository(BaseRepository):
    """Repository for body weight entries."""

    def add(
        self,
        user_id: str,
        weight_kg: float,
        notes: str | None = None,
        logged_at: str | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO weight_logs (user_id, weight_kg, notes, logged_at) VALUES (?, ?, ?, ?);",
            (user_id, weight_kg, notes, logged_at or _now()),
        )

    def fetch_for_user(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict]:
        """Return entries oldest first."""
        query = "SELECT * FROM weight_logs WHERE user_id = ?"
        params: list = [user_id]
        if start_date:
            query += " AND logged_at >= ?"
            params.append(start_date)
        if end_date:
            query += " AND substr(logged_at, 1, 10) <= ?"
            params.append(end_date)
        query += " ORDER BY logged_at, id;"
        return self.fetch_dicts(query, tuple(params))

    def delete(self, log_id: int) -> None:
        if not self._exists("weight_logs", log_id):
            raise ValueError("weight log not found")
        self.execute("DELETE FROM weight_logs WHERE id = ?;", (log_id,))


class GoalRepository(BaseRepository):
    """Repository for personal training goals."""

    def add(
        self,
        user_id: str,
        title: str,
        goal_type: str = "custom",
        target_value: float | None = None,
        target_unit: str | None = None,
        current_value: float | None = None,
        description: str | None = None,
        start_date: str | None = None,
        target_date: str | None = None,
        reminder_enabled: bool = False,
        reminder_frequency: str = "weekly",
    ) -> int:
        now = _now()
        return self.execute(
            "INSERT INTO user_goals (user_id, title, description, goal_type, target_value, target_unit, "
            "current_value, start_date, target_date, reminder_enabled, reminder_frequency, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                title,
                description,
                goal_type,
                target_value,
                target_unit,
                current_value,
                start_date or now[:10],
                target_date,
                int(reminder_enabled),
                reminder_frequency,
                now,
                now,
            ),
        )

    def fetch(self, goal_id: int) -> dict:
        rows = self.fetch_dicts("SELECT * FROM user_goals WHERE id = ?;", (goal_id,))
        if not rows:
            raise ValueError("goal not found")
        return self._row(rows[0])

    def fetch_for_user(self, user_id: str, status: str | None = None) -> list[dict]:
        query = "SELECT * FROM user_goals WHERE user_id = ?"
        params: list = [user_id]
        if status:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, id DESC;"
        return [self._row(r) for r in self.fetch_dicts(query, tuple(params))]

    def fetch_active_of_type(self, user_id: str, goal_type: str) -> list[dict]:
        rows = self.fetch_dicts(
            "SELECT * FROM user_goals WHERE user_id = ? AND goal_type = ? AND status = 'active' ORDER BY id;",
            (user_id, goal_type),
        )
        return [self._row(r) for r in rows]

    def fetch_with_reminders(self) -> list[dict]:
        rows = self.fetch_dicts(
            "SELECT * FROM user_goals WHERE status = 'active' AND reminder_enabled = 1 ORDER BY id;"
        )
        return [self._row(r) for r in rows]

    def update(self, goal_id: int, **fields) -> None:
        if "reminder_enabled" in fields and fields["reminder_enabled"] is not None:
            fields["reminder_enabled"] = int(fields["reminder_enabled"])
        fields["updated_at"] = _now()
        self._update_fields(
            "user_goals",
            goal_id,
            fields,
            (
                "title",
                "description",
                "target_value",
                "target_unit",
                "current_value",
                "target_date",
                "status",
                "reminder_enabled",
                "reminder_frequency",
                "last_reminder_sent",
                "updated_at",
            ),
        )

    def delete(self, goal_id: int) -> None:
        if not self._exists("user_goals", goal_id):
            raise ValueError("goal not found")
        self.execute("DELETE FROM user_goals WHERE id = ?;", (goal_id,))

    @staticmethod
    def _row(row: dict) -> dict:
        row["reminder_enabled"] = bool(row["reminder_enabled"])
        return row


class AdRepository(BaseRepository):
    """Repository for ad creatives."""

    def add(
        self,
        name: str,
        image_url: str,
        link: str,
        alt_text: str | None = None,
        format: str = "banner",
        placement: str | None = None,
        priority: int = 0,
        is_active: bool = True,
    ) -> int:
        now = _now()
        return self.execute(
            "INSERT INTO ads (name, image_url, link, alt_text, format, placement, priority, is_active, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (name, image_url, link, alt_text, format, placement, priority, int(is_active), now, now),
        )

    def update(self, ad_id: int, **fields) -> None:
        if "is_active" in fields and fields["is_active"] is not None:
            fields["is_active"] = int(fields["is_active"])
        fields["updated_at"] = _now()
        self._update_fields(
            "ads",
            ad_id,
            fields,
            (
                "name",
                "image_url",
                "link",
                "alt_text",
                "format",
                "placement",
                "priority",
                "is_active",
                "updated_at",
            ),
        )

    def delete(self, ad_id: int) -> None:
        if not self._exists("ads", ad_id):
            raise ValueError("ad not found")
        self.execute("DELETE FROM ads WHERE id = ?;", (ad_id,))

    def fetch(self, ad_id: int) -> dict:
        rows = self.fetch_dicts("SELECT * FROM ads WHERE id = ?;", (ad_id,))
        if not rows:
            raise ValueError("ad not found")
        return self._row(rows[0])

    def fetch_all_ads(self) -> list[dict]:
        return [self._row(r) for r in self.fetch_dicts("SELECT * FROM ads ORDER BY id;")]

    def fetch_active(self, placement: str | None = None) -> list[dict]:
        query = "SELECT * FROM ads WHERE is_active = 1"
        params: tuple = ()
        if placement is not None:
            query += " AND (placement = ? OR placement IS NULL)"
            params = (placement,)
        query += " ORDER BY priority DESC, id;"
        return [self._row(r) for r in self.fetch_dicts(query, params)]

    @staticmethod
    def _row(row: dict) -> dict:
        row["is_active"] = bool(row["is_active"])
        return row


class AdStatsRepository(BaseRepository):
    """Repository for ad impression and click events."""

    def add(self, ad_id: int, event_type: str, user_id: str | None = None) -> int:
        return self.execute(
            "INSERT INTO ad_stats (ad_id, event_type, user_id, created_at) VALUES (?, ?, ?, ?);",
            (ad_id, event_type, user_id, _now()),
        )

    def statistics(self) -> list[dict]:
        rows = self.fetch_all(
            "SELECT a.id, a.name, "
            "SUM(CASE WHEN s.event_type = 'impression' THEN 1 ELSE 0 END), "
            "SUM(CASE WHEN s.event_type = 'click' THEN 1 ELSE 0 END) "
            "FROM ads a LEFT JOIN ad_stats s ON s.ad_id = a.id "
            "GROUP BY a.id, a.name ORDER BY a.id;"
        )
        result = []
        for ad_id, name, impressions, clicks in rows:
            impressions = int(impressions or 0)
            clicks = int(clicks or 0)
            ctr = round(clicks / impressions * 100, 2) if impressions else 0.0
            result.append(
                {
                    "ad_id": ad_id,
                    "name": name,
                    "impressions": impressions,
                    "clicks": clicks,
                    "ctr": ctr,
                }
            )
        return result


class ScheduledWorkoutRepository(BaseRepository):
    """Repository for scheduled workouts and their reminders."""

    def add(
        self,
        user_id: str,
        title: str,
        scheduled_date: str,
        workout_type: str = "strength",
        scheduled_time: str | None = None,
        duration_minutes: int | None = None,
        description: str | None = None,
        workout_program_id: int | None = None,
        workout_day_name: str | None = None,
        reminder_enabled: bool = True,
        reminder_minutes_before: int = 60,
    ) -> int:
        now = _now()
        return self.execute(
            "INSERT INTO scheduled_workouts (user_id, title, workout_type, scheduled_date, scheduled_time, duration_minutes, "
            "description, workout_program_id, workout_day_name, reminder_enabled, reminder_minutes_before, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                user_id,
                title,
                workout_type,
                scheduled_date,
                scheduled_time,
                duration_minutes,
                description,
                workout_program_id,
                workout_day_name,
                int(reminder_enabled),
                reminder_minutes_before,
                now,
                now,
            ),
        )

    def fetch(self, workout_id: int) -> dict:
        rows = self.fetch_dicts(
            "SELECT * FROM scheduled_workouts WHERE id = ?;", (workout_id,)
        )
        if not rows:
            raise ValueError("scheduled workout not found")
        return self._row(rows[0])

    def fetch_for_user(
        self,
        user_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
        include_completed: bool = True,
    ) -> list[dict]:
        query = "SELECT * FROM scheduled_workouts WHERE user_id = ?"
        params: list = [user_id]
        if start_date:
            query += " AND scheduled_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND scheduled_date <= ?"
            params.append(end_date)
        if not include_completed:
            query += " AND completed_at IS NULL"
        query += " ORDER BY scheduled_date, scheduled_time, id;"
        return [self._row(r) for r in self.fetch_dicts(query, tuple(params))]

    def fetch_pending_reminders(self) -> list[dict]:
        rows = self.fetch_dicts(
            "SELECT * FROM scheduled_workouts WHERE completed_at IS NULL "
            "AND reminder_enabled = 1 AND reminder_sent_at IS NULL ORDER BY id;"
        )
        return [self._row(r) for r in rows]

    def update(self, workout_id: int, **fields) -> None:
        if "reminder_enabled" in fields and fields["reminder_enabled"] is not None:
            fields["reminder_enabled"] = int(fields["reminder_enabled"])
        fields["updated_at"] = _now()
        self._update_fields(
            "scheduled_workouts",
            workout_id,
            fields,
            (
                "title",
                "workout_type",
                "scheduled_date",
                "scheduled_time",
                "duration_minutes",
                "description",
                "reminder_enabled",
                "reminder_minutes_before",
                "updated_at",
            ),
        )

    def mark_completed(self, workout_id: int, timestamp: str | None = None) -> None:
        if not self._exists("scheduled_workouts", workout_id):
            raise ValueError("scheduled workout not found")
        self.execute(
            "UPDATE scheduled_workouts SET completed_at = ?, updated_at = ? WHERE id = ?;",
            (timestamp or _now(), _now(), workout_id),
        )

    def mark_reminded(self, workout_id: int, timestamp: str | None = None) -> None:
        self.execute(
            "UPDATE scheduled_workouts SET reminder_sent_at = ? WHERE id = ?;",
            (timestamp or _now(), workout_id),
        )

    def delete(self, workout_id: int) -> None:
        if not self._exists("scheduled_workouts", workout_id):
            raise ValueError("scheduled workout not found")
        self.execute("DELETE FROM scheduled_workouts WHERE id = ?;", (workout_id,))

    @staticmethod
    def _row(row: dict) -> dict:
        row["reminder_enabled"] = bool(row["reminder_enabled"])
        return row


class NotificationPreferenceRepository(BaseRepository):
    """Repository for per-user notification toggles."""

    TOGGLES = (
        "push_enabled",
        "workout_reminders",
        "achievements",
        "challenges",
        "community_challenges",
        "goal_reminders",
        "weekly_summary_emails",
    )

    def fetch(self, user_id: str) -> dict[str, bool]:
        rows = self.fetch_all(
            f"SELECT {', '.join(self.TOGGLES)} FROM notification_preferences WHERE user_id = ?;",
            (user_id,),
        )
        if not rows:
            return {key: True for key in self.TOGGLES}
        return {key: bool(val) for key, val in zip(self.TOGGLES, rows[0])}

    def update(self, user_id: str, **toggles: bool | None) -> dict[str, bool]:
        current = self.fetch(user_id)
        for key in self.TOGGLES:
            if toggles.get(key) is not None:
                current[key] = bool(toggles[key])
        cols = ", ".join(self.TOGGLES)
        marks = ", ".join("?" for _ in self.TOGGLES)
        updates = ", ".join(f"{k}=excluded.{k}" for k in self.TOGGLES)
        self.execute(
            f"INSERT INTO notification_preferences (user_id, {cols}, updated_at) VALUES (?, {marks}, ?) "
            f"ON CONFLICT(user_id) DO UPDATE SET {updates}, updated_at=excluded.updated_at;",
            (user_id, *[int(current[k]) for k in self.TOGGLES], _now()),
        )
        return current


class NotificationRepository(BaseRepository):
    """Repository for user notifications."""

    def add(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        related_id: int | None = None,
    ) -> int:
        return self.execute(
            "INSERT INTO notifications (user_id, type, title, message, related_id, is_read, created_at) "
            "VALUES (?, ?, ?, ?, ?, 0, ?);",
            (user_id, type, title, message, related_id, _now()),
        )

    def fetch_all(self, user_id: str, unread_only: bool = False) -> list[dict[str, object]]:
        sql = (
            "SELECT id, type, title, message, related_id, is_read, created_at "
            "FROM notifications WHERE user_id = ?"
        )
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY id;"
        rows = super().fetch_all(sql, (user_id,))
        return [_notification_row(r) for r in rows]

    def mark_read(self, nid: int) -> None:
        self.execute("UPDATE notifications SET is_read = 1 WHERE id = ?;", (nid,))

    def mark_all_read(self, user_id: str) -> None:
        self.execute("UPDATE notifications SET is_read = 1 WHERE user_id = ?;", (user_id,))

    def unread_count(self, user_id: str) -> int:
        rows = super().fetch_all(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0;",
            (user_id,),
        )
        return rows[0][0] if rows else 0


class AsyncNotificationRepository(AsyncBaseRepository):
    """Async repository for reading the notification inbox."""

    async def fetch_all_for_user(
        self, user_id: str, unread_only: bool = False
    ) -> list[dict[str, object]]:
        sql = (
            "SELECT id, type, title, message, related_id, is_read, created_at "
            "FROM notifications WHERE user_id = ?"
        )
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY id;"
        rows = await self.fetch_all(sql, (user_id,))
        return [_notification_row(r) for r in rows]

    async def unread_count(self, user_id: str) -> int:
        rows = await self.fetch_all(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0;",
            (user_id,),
        )
        return rows[0][0] if rows else 0

    async def mark_read(self, nid: int) -> None:
        await self.execute("UPDATE notifications SET is_read = 1 WHERE id = ?;", (nid,))


def _notification_row(r: tuple) -> dict[str, object]:
    return {
        "id": r[0],
        "type": r[1],
        "title": r[2],
        "message": r[3],
        "related_id": r[4],
        "is_read": bool(r[5]),
        "created_at": r[6],
    }


class CommunityChallengeRepository(BaseRepository):
    """Repository for admin-created community challenges."""

    def add(
        self,
        title: str,
        goal_description: str,
        goal_unit: str,
        start_date: str,
        end_date: str,
        description: str | None = None,
        target_value: float | None = None,
        theme: str | None = None,
        winner_type: str = "highest",
        created_by: str | None = None,
    ) -> int:
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")
        return self.execute(
            "INSERT INTO community_challenges (title, description, goal_description, goal_unit, target_value, theme, "
            "winner_type, start_date, end_date, is_active, created_by, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?);",
            (
                title,
                description,
                goal_description,
                goal_unit,
                target_value,
                theme,
                winner_type,
                start_date,
                end_date,
                created_by,
                _now(),
            ),
        )

    def fetch(self, challenge_id: int) -> dict:
        rows = self.fetch_dicts(
            "SELECT * FROM community_challenges WHERE id = ?;", (challenge_id,)
        )
        if not rows:
            raise ValueError("challenge not found")
        return self._row(rows[0])

    def fetch_active(self) -> list[dict]:
        rows = self.fetch_dicts(
            "SELECT * FROM community_challenges WHERE is_active = 1 ORDER BY start_date, id;"
        )
        return [self._row(r) for r in rows]

    def fetch_all_challenges(self) -> list[dict]:
        rows = self.fetch_dicts("SELECT * FROM community_challenges ORDER BY id;")
        return [self._row(r) for r in rows]

    def update(self, challenge_id: int, **fields) -> None:
        if "is_active" in fields and fields["is_active"] is not None:
            fields["is_active"] = int(fields["is_active"])
        self._update_fields(
            "community_challenges",
            challenge_id,
            fields,
            (
                "title",
                "description",
                "goal_description",
                "goal_unit",
                "target_value",
                "theme",
                "winner_type",
                "start_date",
                "end_date",
                "is_active",
            ),
        )

    def delete(self, challenge_id: int) -> None:
        if not self._exists("community_challenges", challenge_id):
            raise ValueError("challenge not found")
        self.execute("DELETE FROM community_challenges WHERE id = ?;", (challenge_id,))

    def count_active(self) -> int:
        return self.fetch_all(
            "SELECT COUNT(*) FROM community_challenges WHERE is_active = 1;"
        )[0][0]

    @staticmethod
    def _row(row: dict) -> dict:
        row["is_active"] = bool(row["is_active"])
        return row


class ChallengeParticipantRepository(BaseRepository):
    """Repository for community challenge participants."""

    def join(self, challenge_id: int, user_id: str) -> int:
        now = _now()
        try:
            return self.execute(
                "INSERT INTO community_challenge_participants (challenge_id, user_id, current_value, joined_at, updated_at) "
                "VALUES (?, ?, 0, ?, ?);",
                (challenge_id, user_id, now, now),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError("already joined") from e

    def leave(self, challenge_id: int, user_id: str) -> None:
        self.execute(
            "DELETE FROM community_challenge_participants WHERE challenge_id = ? AND user_id = ?;",
            (challenge_id, user_id),
        )

    def fetch_for_challenge(self, challenge_id: int) -> list[dict]:
        return self.fetch_dicts(
            "SELECT user_id, current_value, joined_at FROM community_challenge_participants "
            "WHERE challenge_id = ? ORDER BY current_value DESC, joined_at, id;",
            (challenge_id,),
        )

    def fetch_challenge_ids(self, user_id: str) -> list[int]:
        rows = self.fetch_all(
            "SELECT challenge_id FROM community_challenge_participants WHERE user_id = ? ORDER BY challenge_id;",
            (user_id,),
        )
        return [r[0] for r in rows]

    def _current(self, challenge_id: int, user_id: str) -> float:
        rows = self.fetch_all(
            "SELECT current_value FROM community_challenge_participants WHERE challenge_id = ? AND user_id = ?;",
            (challenge_id, user_id),
        )
        if not rows:
            raise ValueError("not a participant")
        return float(rows[0][0])

    def set_value(self, challenge_id: int, user_id: str, value: float) -> None:
        self._current(challenge_id, user_id)
        self.execute(
            "UPDATE community_challenge_participants SET current_value = ?, updated_at = ? "
            "WHERE challenge_id = ? AND user_id = ?;",
            (value, _now(), challenge_id, user_id),
        )

    def add_value(self, challenge_id: int, user_id: str, amount: float) -> float:
        value = self._current(challenge_id, user_id) + amount
        self.set_value(challenge_id, user_id, value)
        return value


class LeaderboardRankRepository(BaseRepository):
    """Cached rank map per challenge used to detect rank changes."""

    def fetch_map(self, challenge_id: int) -> dict[str, int]:
        rows = self.fetch_all(
            "SELECT user_id, rank FROM leaderboard_ranks WHERE challenge_id = ?;",
            (challenge_id,),
        )
        return {uid: int(rank) for uid, rank in rows}

    def replace(self, challenge_id: int, ranks: dict[str, int]) -> None:
        with self._connection() as conn:
            conn.execute(
                "DELETE FROM leaderboard_ranks WHERE challenge_id = ?;", (challenge_id,)
            )
            conn.executemany(
                "INSERT INTO leaderboard_ranks (challenge_id, user_id, rank) VALUES (?, ?, ?);",
                [(challenge_id, uid, rank) for uid, rank in ranks.items()],
            )


class PoolEntryRepository(BaseRepository):
    """Repository for challenge pool entries waiting to be matched."""

    def add(
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
        now = _now()
        return self.execute(
            "INSERT INTO challenge_pool_entries (user_id, challenge_category, challenge_type, target_value, duration_days, "
            "latest_start_date, allow_multiple, max_participants, min_age, max_age, preferred_gender, status, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'waiting', ?, ?);",
            (
                user_id,
                challenge_category,
                challenge_type,
                target_value,
                duration_days,
                latest_start_date,
                int(allow_multiple),
                max_participants,
                min_age,
                max_age,
                preferred_gender,
                now,
                now,
            ),
        )

    def fetch(self, entry_id: int) -> dict:
        rows = self.fetch_dicts(
            "SELECT * FROM challenge_pool_entries WHERE id = ?;", (entry_id,)
        )
        if not rows:
            raise ValueError("pool entry not found")
        return self._row(rows[0])

    def fetch_for_user(self, user_id: str) -> list[dict]:
        rows = self.fetch_dicts(
            "SELECT * FROM challenge_pool_entries WHERE user_id = ? ORDER BY id;",
            (user_id,),
        )
        return [self._row(r) for r in rows]

    def fetch_waiting(self, now: str) -> list[dict]:
        """Return waiting, unexpired entries joined with profile data."""
        rows = self.fetch_dicts(
            "SELECT e.*, p.birth_year AS birth_year, p.gender AS gender "
            "FROM challenge_pool_entries e LEFT JOIN profiles p ON p.user_id = e.user_id "
            "WHERE e.status = 'waiting' AND e.latest_start_date >= ? ORDER BY e.id;",
            (now,),
        )
        return [self._row(r) for r in rows]

    def set_status(self, entry_ids: list[int], status: str) -> None:
        if not entry_ids:
            return
        marks = ", ".join("?" for _ in entry_ids)
        self.execute(
            f"UPDATE challenge_pool_entries SET status = ?, updated_at = ? WHERE id IN ({marks});",
            (status, _now(), *entry_ids),
        )

    def expire(self, now: str) -> int:
        with self._connection() as conn:
            cur = conn.execute(
                "UPDATE challenge_pool_entries SET status = 'expired', updated_at = ? "
                "WHERE status = 'waiting' AND latest_start_date < ?;",
                (_now(), now),
            )
            return cur.rowcount

    def counts_by_status(self) -> dict[str, int]:
        rows = self.fetch_all(
            "SELECT status, COUNT(*) FROM challenge_pool_entries GROUP BY status;"
        )
        return {status: count for status, count in rows}

    @staticmethod
    def _row(row: dict) -> dict:
        row["allow_multiple"] = bool(row["allow_multiple"])
        return row


class PoolChallengeRepository(BaseRepository):
    """Repository for matched pool challenges."""

    def create(
        self,
        challenge_category: str,
        challenge_type: str,
        target_value: float,
        start_date: str,
        end_date: str,
        xp_reward: int,
    ) -> int:
        return self.execute(
            "INSERT INTO pool_challenges (challenge_category, challenge_type, target_value, start_date, end_date, status, xp_reward, created_at) "
            "VALUES (?, ?, ?, ?, ?, 'active', ?, ?);",
            (challenge_category, challenge_type, target_value, start_date, end_date, xp_reward, _now()),
        )

    def fetch(self, challenge_id: int) -> dict:
        rows = self.fetch_dicts(
            "SELECT * FROM pool_challenges WHERE id = ?;", (challenge_id,)
        )
        if not rows:
            raise ValueError("pool challenge not found")
        return rows[0]

    def fetch_expired_active(self, now: str) -> list[dict]:
        return self.fetch_dicts(
            "SELECT * FROM pool_challenges WHERE status = 'active' AND end_date < ? ORDER BY id;",
            (now,),
        )

    def fetch_active_for_user(self, user_id: str, category: str | None = None) -> list[dict]:
        query = (
            "SELECT c.* FROM pool_challenges c JOIN pool_challenge_participants p ON p.challenge_id = c.id "
            "WHERE p.user_id = ? AND c.status = 'active'"
        )
        params: list = [user_id]
        if category is not None:
            query += " AND c.challenge_category = ?"
            params.append(category)
        return self.fetch_dicts(query + " ORDER BY c.id;", tuple(params))

    def complete(self, challenge_id: int, winner_id: str | None = None) -> None:
        self.execute(
            "UPDATE pool_challenges SET status = 'completed', winner_id = ? WHERE id = ?;",
            (winner_id, challenge_id),
        )

    def delete(self, challenge_id: int) -> None:
        self.execute("DELETE FROM pool_challenges WHERE id = ?;", (challenge_id,))


class PoolParticipantRepository(BaseRepository):
    """Repository for pool challenge participants."""

    def add_many(self, challenge_id: int, participants: list[tuple[str, int | None]]) -> None:
        """Insert all participants in one transaction."""
        now = _now()
        with self._connection() as conn:
            conn.executemany(
                "INSERT INTO pool_challenge_participants (challenge_id, user_id, pool_entry_id, current_value, joined_at, updated_at) "
                "VALUES (?, ?, ?, 0, ?, ?);",
                [(challenge_id, uid, entry_id, now, now) for uid, entry_id in participants],
            )

    def fetch_for_challenge(self, challenge_id: int) -> list[dict]:
        return self.fetch_dicts(
            "SELECT user_id, pool_entry_id, current_value, joined_at FROM pool_challenge_participants "
            "WHERE challenge_id = ? ORDER BY current_value DESC, id;",
            (challenge_id,),
        )

    def add_value(self, challenge_id: int, user_id: str, amount: float) -> None:
        self.execute(
            "UPDATE pool_challenge_participants SET current_value = current_value + ?, updated_at = ? "
            "WHERE challenge_id = ? AND user_id = ?;",
            (amount, _now(), challenge_id, user_id),
        )


class AchievementRepository(BaseRepository):
    """Repository for the achievement catalogue and awards."""

    def fetch_all_achievements(self) -> list[dict]:
        return self.fetch_dicts("SELECT * FROM achievements ORDER BY id;")

    def fetch_earned_ids(self, user_id: str) -> set[int]:
        rows = self.fetch_all(
            "SELECT achievement_id FROM user_achievements WHERE user_id = ?;", (user_id,)
        )
        return {r[0] for r in rows}

    def award(self, user_id: str, achievement_id: int) -> bool:
        with self._connection() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO user_achievements (user_id, achievement_id, earned_at) VALUES (?, ?, ?);",
                (user_id, achievement_id, _now()),
            )
            return cur.rowcount == 1

    def fetch_for_user(self, user_id: str) -> list[dict]:
        return self.fetch_dicts(
            "SELECT a.id, a.name, a.description, a.icon, a.xp_reward, u.earned_at "
            "FROM user_achievements u JOIN achievements a ON a.id = u.achievement_id "
            "WHERE u.user_id = ? ORDER BY u.earned_at, a.id;",
            (user_id,),
        )


class ActivePlanRepository(BaseRepository):
    """Shared storage for generated plans where one per user is active."""

    table = ""
    data_column = ""

    def _insert(self, user_id: str, columns: dict, data: dict, active: bool) -> int:
        cols = list(columns.keys())
        with self._connection() as conn:
            if active:
                conn.execute(
                    f"UPDATE {self.table} SET is_active = 0 WHERE user_id = ?;", (user_id,)
                )
            cur = conn.execute(
                f"INSERT INTO {self.table} (user_id, {', '.join(cols)}, {self.data_column}, is_active, created_at) "
                f"VALUES (?, {', '.join('?' for _ in cols)}, ?, ?, ?);",
                (user_id, *columns.values(), json.dumps(data), int(active), _now()),
            )
            return cur.lastrowid

    def activate(self, plan_id: int) -> None:
        rows = self.fetch_all(f"SELECT user_id FROM {self.table} WHERE id = ?;", (plan_id,))
        if not rows:
            raise ValueError("plan not found")
        with self._connection() as conn:
            conn.execute(
                f"UPDATE {self.table} SET is_active = 0 WHERE user_id = ?;", (rows[0][0],)
            )
            conn.execute(f"UPDATE {self.table} SET is_active = 1 WHERE id = ?;", (plan_id,))

    def fetch_for_user(self, user_id: str) -> list[dict]:
        rows = self.fetch_dicts(
            f"SELECT * FROM {self.table} WHERE user_id = ? ORDER BY id DESC;", (user_id,)
        )
        return [self._row(r) for r in rows]

    def fetch_active(self, user_id: str) -> dict | None:
        rows = self.fetch_dicts(
            f"SELECT * FROM {self.table} WHERE user_id = ? AND is_active = 1;", (user_id,)
        )
        return self._row(rows[0]) if rows else None

    def delete(self, plan_id: int) -> None:
        if not self._exists(self.table, plan_id):
            raise ValueError("plan not found")
        self.execute(f"DELETE FROM {self.table} WHERE id = ?;", (plan_id,))

    def _row(self, row: dict) -> dict:
        row["is_active"] = bool(row["is_active"])
        row[self.data_column] = json.loads(row[self.data_column])
        return row


class WorkoutProgramRepository(ActivePlanRepository):
    """Repository for saved strength programs."""

    table = "workout_programs"
    data_column = "program_data"

    def add(
        self,
        user_id: str,
        program: dict,
        goal: str | None = None,
        experience_level: str | None = None,
        days_per_week: int | None = None,
        active: bool = True,
    ) -> int:
        return self._insert(
            user_id,
            {
                "name": program.get("name", "Program"),
                "description": program.get("description"),
                "goal": goal,
                "experience_level": experience_level,
                "days_per_week": days_per_week,
            },
            program,
            active,
        )


class CardioPlanRepository(ActivePlanRepository):
    """Repository for saved cardio plans."""

    table = "cardio_plans"
    data_column = "plan_data"

    def add(
        self,
        user_id: str,
        plan: dict,
        goal_type: str | None = None,
        active: bool = True,
    ) -> int:
        return self._insert(
            user_id,
            {
                "name": plan.get("name", "Konditionsplan"),
                "description": plan.get("description"),
                "goal_type": goal_type,
                "total_weeks": plan.get("totalWeeks"),
            },
            plan,
            active,
        )


class SavedWodRepository(BaseRepository):
    """Repository for saved workouts of the day."""

    def add(self, user_id: str, wod: dict) -> int:
        return self.execute(
            "INSERT INTO saved_wods (user_id, name, wod_data, created_at) VALUES (?, ?, ?, ?);",
            (user_id, wod.get("name", "WOD"), json.dumps(wod), _now()),
        )

    def fetch_for_user(self, user_id: str) -> list[dict]:
        rows = self.fetch_dicts(
            "SELECT * FROM saved_wods WHERE user_id = ? ORDER BY id DESC;", (user_id,)
        )
        for row in rows:
            row["wod_data"] = json.loads(row["wod_data"])
        return rows

    def delete(self, wod_id: int) -> None:
        if not self._exists("saved_wods", wod_id):
            raise ValueError("wod not found")
        self.execute("DELETE FROM saved_wods WHERE id = ?;", (wod_id,))


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    NUMERIC_KEYS = {
        "gps_max_accuracy_m",
        "gps_max_speed_kmh",
        "draft_expiry_hours",
        "max_xp_per_workout",
        "cardio_xp_per_minute",
        "cardio_xp_per_km",
        "signed_url_ttl_seconds",
        "jobs_interval_minutes",
    }

    def __init__(
        self, db_path: str = "gymdagboken.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str] = {}
        for k, v in rows:
            if k in self.NUMERIC_KEYS:
                try:
                    result[k] = float(v)
                    continue
                except ValueError:
                    pass
            result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, str(value)),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_float(self, key: str, default: float) -> float:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return float(rows[0][0]) if rows else default

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_text(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        data = self._raw_all_settings()
        for key in YamlConfig.SENSITIVE_KEYS:
            data.pop(key, None)
        return data
