from __future__ import annotations

import datetime
import hashlib
import hmac
import io
import logging
import os
import time
from urllib.parse import urlencode

from PIL import Image, UnidentifiedImageError

from db import ProgressPhotoRepository, SettingsRepository

logger = logging.getLogger(__name__)


class PhotoService:
    """Store progress photos on disk and hand out time-limited links."""

    EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif"}

    def __init__(
        self,
        repo: ProgressPhotoRepository,
        settings_repo: SettingsRepository,
        secret: str,
    ) -> None:
        self.repo = repo
        self.settings = settings_repo
        self._secret = secret.encode()

    @property
    def photo_dir(self) -> str:
        return self.settings.get_text("photo_dir", "progress_photos")

    def upload(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        photo_date: str | None = None,
        weight_kg: float | None = None,
        notes: str | None = None,
        category: str = "general",
        now: datetime.datetime | None = None,
    ) -> int:
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext not in self.EXTENSIONS:
            raise ValueError("file must be an image")
        if not data:
            raise ValueError("empty file")
        try:
            Image.open(io.BytesIO(data)).verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValueError("file must be an image") from e
        if not user_id or "/" in user_id or user_id.startswith("."):
            raise ValueError("invalid user_id")
        now = now or datetime.datetime.now()
        folder = os.path.join(self.photo_dir, user_id)
        os.makedirs(folder, exist_ok=True)
        path = os.path.join(folder, f"{int(now.timestamp() * 1000)}.{ext}")
        with open(path, "wb") as f:
            f.write(data)
        return self.repo.add(
            user_id,
            path,
            photo_date or now.date().isoformat(),
            weight_kg,
            notes,
            category,
        )

    def list(self, user_id: str) -> list[dict]:
        return self.repo.fetch_for_user(user_id)

    def _sign(self, path: str, expires: int) -> str:
        msg = f"{path}:{expires}".encode()
        return hmac.new(self._secret, msg, hashlib.sha256).hexdigest()

    def signed_url(self, photo_id: int, ttl: int | None = None, now: float | None = None) -> str:
        photo = self.repo.fetch(photo_id)
        if ttl is None:
            ttl = self.settings.get_int("signed_url_ttl_seconds", 3600)
        expires = int((now if now is not None else time.time()) + ttl)
        query = urlencode(
            {
                "path": photo["photo_path"],
                "expires": expires,
                "signature": self._sign(photo["photo_path"], expires),
            }
        )
        return f"/photos/file?{query}"

    def verify(self, path: str, expires: int, signature: str, now: float | None = None) -> bool:
        if (now if now is not None else time.time()) > expires:
            return False
        return hmac.compare_digest(self._sign(path, int(expires)), signature)

    def read(self, path: str, expires: int, signature: str) -> bytes:
        if not self.verify(path, expires, signature):
            raise ValueError("invalid or expired signature")
        with open(path, "rb") as f:
            return f.read()

    def delete(self, photo_id: int) -> None:
        photo = self.repo.fetch(photo_id)
        try:
            os.remove(photo["photo_path"])
        except FileNotFoundError:
            logger.warning("photo file %s already missing", photo["photo_path"])
        self.repo.delete(photo_id)
