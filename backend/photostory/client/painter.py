"""Pillow surface for preview frames."""

from functools import lru_cache

import numpy as np
from PIL import Image, ImageDraw

from photostory.client.scene import PreviewFrame
from photostory.render.rasterizer import hex_to_rgba, load_font

INTRO_GRADIENT = ("#4F46E5", "#7C3AED")
OUTRO_GRADIENT = ("#7C3AED", "#4F46E5")
BRAND = "PhotoStory"


@lru_cache(maxsize=8)
def diagonal_gradient(width: int, height: int, start: str, end: str) -> Image.Image:
    """Linear gradient from the top-left corner to the bottom-right corner."""
    xs = np.linspace(0.0, 1.0, width, dtype=np.float32)[None, :]
    ys = np.linspace(0.0, 1.0, height, dtype=np.float32)[:, None]
    t = ((xs + ys) / 2.0)[..., None]
    a = np.array(hex_to_rgba(start)[:3], dtype=np.float32)
    b = np.array(hex_to_rgba(end)[:3], dtype=np.float32)
    pixels = a + (b - a) * t
    return Image.fromarray(pixels.astype(np.uint8), "RGB").convert("RGBA")


def contain_size(image_size: tuple[int, int], canvas_size: tuple[int, int], scale: float = 1.0) -> tuple[int, int]:
    """Size that fits image_size inside canvas_size (object-contain), times scale."""
    iw, ih = image_size
    cw, ch = canvas_size
    if iw / ih > cw / ch:
        w, h = cw * scale, cw / (iw / ih) * scale
    else:
        w, h = ch * (iw / ih) * scale, ch * scale
    return max(1, int(round(w))), max(1, int(round(h)))


class PreviewPainter:
    def __init__(self, width: int, height: int, title: str = "", message: str = ""):
        self.width = width
        self.height = height
        self.title = title or "New project"
        self.message = message or "Thank you"

    def paint(self, frame: PreviewFrame, images: list[Image.Image]) -> Image.Image:
        if frame.phase == "intro":
            return self._card(INTRO_GRADIENT, self.title, frame.alpha)
        if frame.phase == "outro":
            return self._card(OUTRO_GRADIENT, self.message, frame.alpha)
        return self._photo(frame, images)

    def paint_bytes(self, frame: PreviewFrame, images: list[Image.Image]) -> bytes:
        return self.paint(frame, images).convert("RGB").tobytes()

    def _card(self, gradient: tuple[str, str], headline: str, alpha: float) -> Image.Image:
        canvas = diagonal_gradient(self.width, self.height, *gradient).copy()
        overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        a = int(255 * max(0.0, min(1.0, alpha)))
        cx, cy = self.width / 2, self.height / 2
        draw.text((cx, cy - 30), headline, font=load_font(self.width // 15), fill=(255, 255, 255, a), anchor="mm")
        draw.text((cx, cy + 30), BRAND, font=load_font(self.width // 30), fill=(255, 255, 255, int(a * 0.8)), anchor="mm")
        canvas.alpha_composite(overlay)
        return canvas

    def _photo(self, frame: PreviewFrame, images: list[Image.Image]) -> Image.Image:
        canvas = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 255))
        if not 0 <= frame.photo_index < len(images):
            return canvas

        source = images[frame.photo_index]
        size = contain_size(source.size, canvas.size, frame.scale)
        photo = source.convert("RGB").resize(size, Image.Resampling.BILINEAR)
        left = (self.width - size[0]) // 2
        top = (self.height - size[1]) // 2
        mask = Image.new("L", size, int(255 * frame.alpha))
        canvas.paste(photo, (left, top), mask)

        self._counter(canvas, f"{frame.photo_index + 1} / {len(images)}")
        return canvas

    def _counter(self, canvas: Image.Image, text: str) -> None:
        overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        box_w, box_h, margin = 80, 30, 20
        right, bottom = self.width - margin, self.height - margin
        draw.rectangle((right - box_w, bottom - box_h, right, bottom), fill=(0, 0, 0, 90))
        draw.text(
            (right - box_w / 2, bottom - box_h / 2),
            text,
            font=load_font(max(10, self.width // 50)),
            fill=(255, 255, 255, 180),
            anchor="mm",
        )
        canvas.alpha_composite(overlay)
