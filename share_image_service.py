from __future__ import annotations
import io
from PIL import Image, ImageDraw, ImageFont


class ShareCardService:
    """Render square share cards for workouts and cardio sessions."""

    SIZE = 1080
    TOP = (249, 115, 22)
    BOTTOM = (190, 24, 93)

    def _font(self, size: int):
        try:
            return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
        except OSError:
            return ImageFont.load_default()

    def _background(self) -> Image.Image:
        img = Image.new("RGB", (self.SIZE, self.SIZE), self.TOP)
        draw = ImageDraw.Draw(img)
        for y in range(self.SIZE):
            t = y / (self.SIZE - 1)
            color = tuple(
                int(a + (b - a) * t) for a, b in zip(self.TOP, self.BOTTOM)
            )
            draw.line([(0, y), (self.SIZE, y)], fill=color)
        return img

    def _render(self, title: str, lines: list[str], footer: str) -> bytes:
        img = self._background()
        draw = ImageDraw.Draw(img)
        draw.text((80, 120), title, fill="white", font=self._font(84))
        y = 320
        for line in lines:
            draw.text((80, y), line, fill="white", font=self._font(56))
            y += 110
        draw.text((80, self.SIZE - 140), footer, fill=(255, 255, 255), font=self._font(40))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def workout_card(self, title: str, lines: list[str]) -> bytes:
        return self._render(title, lines, "Gymdagboken 💪")

    def cardio_card(
        self,
        activity: str,
        duration_minutes: int,
        distance_km: float | None = None,
        xp: int | None = None,
    ) -> bytes:
        lines = [f"{duration_minutes} min"]
        if distance_km:
            lines.append(f"{distance_km:.2f} km")
            pace = round(duration_minutes * 60 / distance_km)
            lines.append(f"{pace // 60}:{pace % 60:02d} min/km")
        if xp:
            lines.append(f"+{xp} XP")
        return self._render(activity, lines, "Gymdagboken 🏃")
