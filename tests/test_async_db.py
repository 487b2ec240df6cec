import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    AsyncBaseRepository,
    AsyncNotificationRepository,
    NotificationRepository,
)

class NumberRepository(AsyncBaseRepository):
    async def init_db(self) -> None:
        async with self._async_connection() as conn:
            await conn.execute("CREATE TABLE IF NOT EXISTS numbers (val INTEGER)")
            await conn.commit()

    async def add(self, val: int) -> int:
        return await self.execute("INSERT INTO numbers (val) VALUES (?)", (val,))

    async def all(self):
        rows = await self.fetch_all("SELECT val FROM numbers")
        return [r[0] for r in rows]

@pytest.mark.asyncio
async def test_async_repository(tmp_path):
    repo = NumberRepository(str(tmp_path / "test.db"))
    await repo.init_db()
    await repo.add(5)
    assert await repo.all() == [5]


@pytest.mark.asyncio
async def test_async_notification_repo(tmp_path):
    db_file = str(tmp_path / "notif.db")
    sync_repo = NotificationRepository(db_file)
    nid = sync_repo.add("u1", "achievement", "Ny prestation!", "Första passet", 1)
    sync_repo.add("u2", "overtaken", "Du har blivit omkörd", "Höstrace: #1 → #2", 3)
    repo = AsyncNotificationRepository(db_file)
    notes = await repo.fetch_all_for_user("u1")
    assert len(notes) == 1
    assert notes[0]["id"] == nid
    assert notes[0]["message"] == "Första passet"
    assert notes[0]["is_read"] is False
    assert await repo.unread_count("u1") == 1
    await repo.mark_read(nid)
    notes = await repo.fetch_all_for_user("u1")
    assert notes[0]["is_read"] is True
    assert await repo.fetch_all_for_user("u1", unread_only=True) == []
    assert await repo.unread_count("u1") == 0
    assert await repo.unread_count("u2") == 1
