import io
import os
import sys
import shutil
import tempfile
import unittest
from urllib.parse import urlparse, parse_qs
from fastapi.testclient import TestClient
from PIL import Image

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from rest_api import GymdagbokenAPI
from share_image_service import ShareCardService


def _png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


PNG_BYTES = _png_bytes()


class PhotoServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_photos.db"
        self.yaml_path = "test_photos.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.photo_dir = tempfile.mkdtemp()
        self.api = GymdagbokenAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.api.settings.set_text("photo_dir", self.photo_dir)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        shutil.rmtree(self.photo_dir, ignore_errors=True)

    def _upload(self) -> dict:
        response = self.client.post(
            "/photos",
            params={"user_id": "u1", "filename": "front.png", "weight_kg": 80.5},
            content=PNG_BYTES,
        )
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_upload_and_fetch_signed(self) -> None:
        data = self._upload()
        response = self.client.get(data["url"])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, PNG_BYTES)

        photos = self.client.get("/photos", params={"user_id": "u1"}).json()
        self.assertEqual(len(photos), 1)
        self.assertEqual(photos[0]["weight_kg"], 80.5)
        self.assertTrue(photos[0]["photo_path"].startswith(os.path.join(self.photo_dir, "u1")))
        self.assertTrue(photos[0]["url"].startswith("/photos/file?"))

    def test_tampered_signature_rejected(self) -> None:
        data = self._upload()
        query = parse_qs(urlparse(data["url"]).query)
        response = self.client.get(
            "/photos/file",
            params={
                "path": query["path"][0],
                "expires": query["expires"][0],
                "signature": "0" * 64,
            },
        )
        self.assertEqual(response.status_code, 403)

    def test_expired_signature(self) -> None:
        data = self._upload()
        photo = self.api.progress_photos.fetch(data["id"])
        url = self.api.photos.signed_url(data["id"], ttl=60, now=1000.0)
        query = parse_qs(urlparse(url).query)
        expires = int(query["expires"][0])
        signature = query["signature"][0]
        self.assertEqual(expires, 1060)
        self.assertTrue(self.api.photos.verify(photo["photo_path"], expires, signature, now=1050.0))
        self.assertFalse(self.api.photos.verify(photo["photo_path"], expires, signature, now=1061.0))
        self.assertFalse(self.api.photos.verify("other/path.png", expires, signature, now=1050.0))

    def test_rejects_non_images(self) -> None:
        response = self.client.post(
            "/photos", params={"user_id": "u1", "filename": "notes.txt"}, content=b"hello"
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/photos", params={"user_id": "../u2", "filename": "a.png"}, content=PNG_BYTES
        )
        self.assertEqual(response.status_code, 400)

    def test_rejects_non_image_bytes_with_image_name(self) -> None:
        with self.assertRaises(ValueError):
            self.api.photos.upload("u1", "evil.png", b"#!/bin/sh\necho hi\n")
        response = self.client.post(
            "/photos", params={"user_id": "u1", "filename": "evil.png"}, content=b"#!/bin/sh"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.api.progress_photos.fetch_for_user("u1"), [])

    def test_delete_removes_file(self) -> None:
        data = self._upload()
        path = self.api.progress_photos.fetch(data["id"])["photo_path"]
        self.assertTrue(os.path.exists(path))
        self.assertEqual(self.client.delete(f"/photos/{data['id']}").status_code, 200)
        self.assertFalse(os.path.exists(path))
        self.assertEqual(self.client.delete(f"/photos/{data['id']}").status_code, 404)


class ShareCardTestCase(unittest.TestCase):
    def test_workout_card_is_square_png(self) -> None:
        png = ShareCardService().workout_card("Dag 1", ["Bänkpress: 3 x 8", "45 min"])
        self.assertTrue(png.startswith(b"\x89PNG"))
        self.assertEqual(Image.open(io.BytesIO(png)).size, (1080, 1080))

    def test_cardio_card(self) -> None:
        png = ShareCardService().cardio_card("running", 30, 5.0, xp=110)
        img = Image.open(io.BytesIO(png))
        self.assertEqual(img.format, "PNG")
        self.assertEqual(img.getpixel((5, 0)), ShareCardService.TOP)


if __name__ == "__main__":
    unittest.main()
