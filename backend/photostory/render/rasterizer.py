"""Pillow rasterizer for resolved frame states.

Turns a FrameState into an RGB image of the output size. Geometry from the
resolver is resolution independent (percentages, px at 1080p); everything is
scaled by ``height / 1080`` here.
"""

import logging
import math
from functools import lru_cache
from typing import Mapping

import numpy as np
from PIL import Image, ImageDraw, ImageEnhance, ImageFilter, ImageFont, ImageOps

from photostory.exceptions import CorruptAssetError
from photostory.render.animations import ElementState, SequenceState
from photostory.render.composition import FrameState
from photostory.render.particles import ParticleState
from photostory.render.resolver import KenBurnsTransform, LayerState, RenderState, SubtitleState, TextOverlayState
from photostory.render.transitions import ClipPath, FilterPatch, StylePatch
from photostory.schemas.theme import Theme
from photostory.schemas.timeline import PhotoFilters
from photostory.utils.interpolation import clamp

logger = logging.getLogger(__name__)

REFERENCE_HEIGHT = 1080

FONT_CANDIDATES = [
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "DejaVuSans.ttf",
]

ELEMENT_FONT_SIZES = {
    "title": 96,
    "subtitle": 48,
    "date": 36,
    "message": 80,
    "sub_message": 40,
    "credits": 36,
}


def hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = "".join([c * 2 for c in hex_color])
    r = int(hex_color[0:2], 16)
    g = int(hex_color[2:4], 16)
    b = int(hex_color[4:6], 16)
    # 8-char hex (RRGGBBAA): embedded alpha overrides the parameter
    if len(hex_color) == 8:
        alpha = int(hex_color[6:8], 16)
    return (r, g, b, alpha)


@lru_cache(maxsize=128)
def load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    size = max(1, size)
    for candidate_path in FONT_CANDIDATES:
        try:
            return ImageFont.truetype(candidate_path, size)
        except OSError:
            continue
    logger.warning("[TEXT] No suitable font found, using PIL default")
    return ImageFont.load_default(size=size)


def placeholder_image(size: tuple[int, int] = (640, 480), color: str = "#3A3A4A") -> Image.Image:
    """Neutral stand-in for an asset that failed to load."""
    image = Image.new("RGB", size, hex_to_rgba(color)[:3])
    draw = ImageDraw.Draw(image)
    w, h = size
    line = hex_to_rgba("#5A5A6A")[:3]
    draw.line([(0, 0), (w, h)], fill=line, width=max(2, w // 200))
    draw.line([(0, h), (w, 0)], fill=line, width=max(2, w // 200))
    return image


class ImageStore:
    """Decoded source images by resource id.

    Undecodable or missing assets raise CorruptAssetError, unless
    placeholder_on_error is set, in which case a placeholder is substituted.
    Images are downscaled to max_size on load.
    """

    def __init__(
        self,
        paths: Mapping[str, str],
        *,
        placeholder_on_error: bool = False,
        max_size: tuple[int, int] | None = None,
    ):
        self.paths = dict(paths)
        self.placeholder_on_error = placeholder_on_error
        self.max_size = max_size
        self.failed: set[str] = set()
        self._cache: dict[str, Image.Image] = {}

    def _fallback(self, resource_id: str, detail: str) -> Image.Image:
        if not self.placeholder_on_error:
            raise CorruptAssetError(resource_id, detail)
        logger.warning(f"[RENDER] Using placeholder for {resource_id}: {detail}")
        self.failed.add(resource_id)
        return placeholder_image()

    def get(self, resource_id: str) -> Image.Image:
        cached = self._cache.get(resource_id)
        if cached is not None:
            return cached

        path = self.paths.get(resource_id)
        if path is None:
            image = self._fallback(resource_id, "asset not available")
        else:
            try:
                with Image.open(path) as opened:
                    opened = ImageOps.exif_transpose(opened)
                    image = opened.convert("RGB")
            except (OSError, Image.DecompressionBombError) as e:
                image = self._fallback(resource_id, str(e))
            else:
                if self.max_size:
                    image.thumbnail(self.max_size, Image.Resampling.LANCZOS)

        self._cache[resource_id] = image
        return image

    def preload(self) -> None:
        """Decode every known asset up front so corrupt files fail before encoding starts."""
        for resource_id in self.paths:
            self.get(resource_id)


# =============================================================================
# Pixel helpers
# =============================================================================


def _set_opacity(image: Image.Image, opacity: float) -> Image.Image:
    if opacity >= 1.0:
        return image
    alpha = image.getchannel("A").point(lambda a: int(a * max(0.0, opacity)))
    image.putalpha(alpha)
    return image


def _composite_at(canvas: Image.Image, image: Image.Image, left: float, top: float) -> None:
    """alpha_composite that tolerates images hanging off the canvas."""
    l, t = int(round(left)), int(round(top))
    box = (
        max(0, -l),
        max(0, -t),
        min(image.width, canvas.width - l),
        min(image.height, canvas.height - t),
    )
    if box[0] >= box[2] or box[1] >= box[3]:
        return
    canvas.alpha_composite(image, dest=(max(0, l), max(0, t)), source=box)


def _composite_centered(canvas: Image.Image, image: Image.Image, cx: float, cy: float) -> None:
    _composite_at(canvas, image, cx - image.width / 2, cy - image.height / 2)


def _resize_by(image: Image.Image, sx: float, sy: float | None = None) -> Image.Image | None:
    sy = sx if sy is None else sy
    if abs(sx - 1) < 1e-3 and abs(sy - 1) < 1e-3:
        return image
    w, h = int(round(image.width * abs(sx))), int(round(image.height * abs(sy)))
    if w < 1 or h < 1:
        return None
    return image.resize((w, h), Image.Resampling.BILINEAR)


_SEPIA = np.array(
    [[0.393, 0.769, 0.189], [0.349, 0.686, 0.168], [0.272, 0.534, 0.131]], dtype=np.float32
)
_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def _hue_matrix(degrees: float) -> np.ndarray:
    c, s = math.cos(math.radians(degrees)), math.sin(math.radians(degrees))
    return np.array(
        [
            [0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928],
            [0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283],
            [0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072],
        ],
        dtype=np.float32,
    )


def apply_photo_filters(image: Image.Image, filters: PhotoFilters, px_scale: float = 1.0) -> Image.Image:
    """CSS-style colour filters on an RGB image."""
    arr = np.asarray(image, dtype=np.float32) / 255.0
    arr = arr * (filters.brightness / 100)
    arr = (arr - 0.5) * (filters.contrast / 100) + 0.5

    gray = (arr @ _LUMA)[..., None]
    arr = gray + (arr - gray) * (filters.saturation / 100)
    if filters.grayscale:
        arr = arr + (gray - arr) * (filters.grayscale / 100)
    if filters.sepia:
        amount = filters.sepia / 100
        arr = arr + ((arr @ _SEPIA.T) - arr) * amount
    if filters.hue:
        arr = arr @ _hue_matrix(filters.hue).T

    result = Image.fromarray((np.clip(arr, 0, 1) * 255).astype(np.uint8), "RGB")
    if filters.blur:
        result = result.filter(ImageFilter.GaussianBlur(filters.blur * px_scale))
    return result


@lru_cache(maxsize=8)
def _vignette_mask(width: int, height: int, strength: float) -> np.ndarray:
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float32)
    dx = (xs - width / 2) / (width / 2)
    dy = (ys - height / 2) / (height / 2)
    dist = np.sqrt(dx * dx + dy * dy) / math.sqrt(2)
    falloff = np.clip((dist - 0.4) / 0.6, 0, 1) ** 2
    return (1 - strength * falloff)[..., None]


def apply_vignette(image: Image.Image, strength: float = 0.5) -> Image.Image:
    arr = np.asarray(image, dtype=np.float32) * _vignette_mask(image.width, image.height, round(strength, 2))
    return Image.fromarray(np.clip(arr, 0, 255).astype(np.uint8), "RGB")


# =============================================================================
# Rasterizer
# =============================================================================


class FrameRasterizer:
    """Draws resolved frame states onto RGB images of a fixed size."""

    def __init__(self, width: int, height: int, theme: Theme, images: ImageStore):
        self.width = width
        self.height = height
        self.theme = theme
        self.images = images
        self.px = height / REFERENCE_HEIGHT

    def _background(self, color: str | None = None) -> Image.Image:
        return Image.new("RGBA", (self.width, self.height), hex_to_rgba(color or self.theme.colors.background))

    def render(self, state: FrameState) -> Image.Image:
        if state.sequence is not None:
            canvas = self.render_sequence(state.sequence)
        elif state.story is not None:
            canvas = self.render_story(state.story)
        else:
            canvas = self._background()
        return canvas.convert("RGB")

    def render_bytes(self, state: FrameState) -> bytes:
        """Raw rgb24 bytes for the encoder."""
        return self.render(state).tobytes()

    # -------------------------------------------------------------------------
    # Photo timeline
    # -------------------------------------------------------------------------

    def render_story(self, state: RenderState) -> Image.Image:
        canvas = self._background()
        for layer in state.layers:
            self._draw_layer(canvas, layer)
        for subtitle in state.subtitles:
            self._draw_subtitle(canvas, subtitle)
        return canvas

    def _cover(self, image: Image.Image, ken_burns: KenBurnsTransform | None) -> Image.Image:
        """Crop image to the frame aspect, then apply the Ken Burns window."""
        target = self.width / self.height
        iw, ih = image.size
        if iw / ih > target:
            cw, ch = ih * target, ih
        else:
            cw, ch = iw, iw / target
        ox, oy = (iw - cw) / 2, (ih - ch) / 2

        left, top, right, bottom = ken_burns.crop if ken_burns else (0.0, 0.0, 1.0, 1.0)
        box = (ox + left * cw, oy + top * ch, ox + right * cw, oy + bottom * ch)
        return image.resize((self.width, self.height), Image.Resampling.BILINEAR, box=box)

    def _filtered(self, image: Image.Image, layer: LayerState) -> Image.Image:
        if layer.filters is not None and not layer.filters.is_identity:
            image = apply_photo_filters(image, layer.filters, self.px)
        if layer.vignette:
            strength = layer.filters.vignette / 100 if layer.filters and layer.filters.vignette else 0.5
            image = apply_vignette(image, strength)
        return image

    def _draw_layer(self, canvas: Image.Image, layer: LayerState) -> None:
        if not layer.resource_id:
            return
        source = self.images.get(layer.resource_id)
        if layer.track_type == "photo":
            rgba = self._filtered(self._cover(source, layer.ken_burns), layer).convert("RGBA")
        else:
            # Overlays are letterboxed on a transparent frame
            fitted = self._filtered(ImageOps.contain(source, (self.width, self.height)), layer)
            rgba = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))
            rgba.paste(fitted.convert("RGBA"), ((self.width - fitted.width) // 2, (self.height - fitted.height) // 2))

        styled, left, top = self._apply_style(rgba, layer.style)
        if styled is not None:
            _composite_at(canvas, styled, left, top)

        if layer.text_overlay is not None:
            self._draw_text_overlay(canvas, layer.text_overlay)

    def _apply_style(self, image: Image.Image, style: StylePatch) -> tuple[Image.Image | None, float, float]:
        """Apply a transition patch to a full-frame layer; returns the image and its top-left."""
        if style.filter is not None:
            image = self._apply_filter_patch(image, style.filter)

        if style.clip_path is not None or style.border_radius:
            mask = self._clip_mask(style.clip_path, style.border_radius)
            alpha = Image.fromarray(
                (np.asarray(image.getchannel("A"), dtype=np.uint16) * np.asarray(mask, dtype=np.uint16) // 255).astype(np.uint8),
                "L",
            )
            image.putalpha(alpha)

        cx, cy = self.width / 2, self.height / 2
        transform = style.transform
        if transform is not None:
            sx = transform.scale * math.cos(math.radians(transform.rotate_y))
            sy = transform.scale * math.cos(math.radians(transform.rotate_x))
            resized = _resize_by(image, sx, sy)
            if resized is None:
                return None, 0, 0
            image = resized
            if transform.skew_x:
                shear = math.tan(math.radians(transform.skew_x))
                image = image.transform(
                    image.size,
                    Image.Transform.AFFINE,
                    (1, shear, -shear * image.height / 2, 0, 1, 0),
                    resample=Image.Resampling.BILINEAR,
                )
            if transform.rotate:
                image = image.rotate(-transform.rotate, resample=Image.Resampling.BICUBIC, expand=True)
            cx += transform.translate_x / 100 * self.width
            cy += transform.translate_y / 100 * self.height

        if style.opacity is not None:
            image = _set_opacity(image, style.opacity)
        return image, cx - image.width / 2, cy - image.height / 2

    def _apply_filter_patch(self, image: Image.Image, patch: FilterPatch) -> Image.Image:
        alpha = image.getchannel("A")
        rgb = image.convert("RGB")
        if patch.pixelate >= 2:
            block = max(2, int(patch.pixelate * self.px))
            small = rgb.resize((max(1, rgb.width // block), max(1, rgb.height // block)), Image.Resampling.BILINEAR)
            rgb = small.resize(rgb.size, Image.Resampling.NEAREST)
        if patch.brightness != 1.0:
            rgb = ImageEnhance.Brightness(rgb).enhance(patch.brightness)
        if patch.contrast != 1.0:
            rgb = ImageEnhance.Contrast(rgb).enhance(patch.contrast)
        if patch.hue_rotate:
            arr = np.asarray(rgb, dtype=np.float32) / 255.0 @ _hue_matrix(patch.hue_rotate).T
            rgb = Image.fromarray((np.clip(arr, 0, 1) * 255).astype(np.uint8), "RGB")
        if patch.blur > 0:
            rgb = rgb.filter(ImageFilter.GaussianBlur(patch.blur * self.px))
        result = rgb.convert("RGBA")
        result.putalpha(alpha)
        return result

    def _clip_mask(self, clip_path: ClipPath | None, border_radius: float | None) -> Image.Image:
        w, h = self.width, self.height
        if clip_path is None:
            mask = Image.new("L", (w, h), 255)
        else:
            mask = Image.new("L", (w, h), 0)
            draw = ImageDraw.Draw(mask)
            if clip_path.kind == "inset" and clip_path.inset is not None:
                top, right, bottom, left = clip_path.inset
                box = (left / 100 * w, top / 100 * h, w - right / 100 * w, h - bottom / 100 * h)
                if box[2] > box[0] and box[3] > box[1]:
                    draw.rectangle(box, fill=255)
            elif clip_path.kind == "circle" and clip_path.radius is not None:
                # CSS circle(): percentages resolve against the normalized diagonal
                r = clip_path.radius / 100 * math.hypot(w, h) / math.sqrt(2)
                draw.ellipse((w / 2 - r, h / 2 - r, w / 2 + r, h / 2 + r), fill=255)
            elif clip_path.kind == "polygon" and clip_path.points:
                draw.polygon([(x / 100 * w, y / 100 * h) for x, y in clip_path.points], fill=255)

        if border_radius:
            rounded = Image.new("L", (w, h), 0)
            radius = int(min(w, h) * border_radius / 100)
            ImageDraw.Draw(rounded).rounded_rectangle((0, 0, w - 1, h - 1), radius=radius, fill=255)
            mask = Image.fromarray(np.minimum(np.asarray(mask), np.asarray(rounded)), "L")
        return mask

    def _draw_text_overlay(self, canvas: Image.Image, overlay: TextOverlayState) -> None:
        if overlay.opacity <= 0:
            return
        image = self._text_image(
            overlay.text,
            int(overlay.font_size * self.px),
            overlay.color,
            background=overlay.background_color,
        )
        image = _set_opacity(image, overlay.opacity)
        y = {"top": 0.15, "center": 0.5, "bottom": 0.85}.get(overlay.position, 0.85) * self.height
        _composite_centered(canvas, image, self.width / 2, y + overlay.offset_y * self.px)

    def _draw_subtitle(self, canvas: Image.Image, subtitle: SubtitleState) -> None:
        if subtitle.opacity <= 0 or not subtitle.text:
            return
        image = self._text_image(subtitle.text, int(42 * self.px), "#FFFFFF", background="#000000A0")
        image = _set_opacity(image, subtitle.opacity)
        _composite_centered(canvas, image, self.width / 2, self.height * 0.9 + subtitle.offset_y * self.px)

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    def _text_image(
        self,
        text: str,
        size: int,
        color: str,
        *,
        letter_spacing: float = 0.0,
        background: str | None = None,
        glow: float = 0.0,
        glow_color: str | None = None,
    ) -> Image.Image:
        font = load_font(size)
        spacing = letter_spacing * self.px
        lines = text.split("\n")
        measure = ImageDraw.Draw(Image.new("RGBA", (1, 1)))

        def line_width(line: str) -> float:
            if not spacing:
                return measure.textlength(line, font=font)
            return sum(measure.textlength(ch, font=font) for ch in line) + spacing * max(0, len(line) - 1)

        widths = [line_width(line) for line in lines]
        line_height = size * 1.3
        pad = int(size * 0.4)
        width = int(max(widths, default=0)) + pad * 2
        height = int(line_height * len(lines)) + pad * 2

        image = Image.new("RGBA", (max(1, width), max(1, height)), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)
        if background:
            draw.rounded_rectangle((0, 0, width - 1, height - 1), radius=pad // 2, fill=hex_to_rgba(background, 160))

        fill = hex_to_rgba(color)
        for i, line in enumerate(lines):
            x = pad + (width - pad * 2 - widths[i]) / 2
            y = pad + i * line_height
            if not spacing:
                draw.text((x, y), line, font=font, fill=fill)
                continue
            for ch in line:
                draw.text((x, y), ch, font=font, fill=fill)
                x += measure.textlength(ch, font=font) + spacing

        if glow > 0:
            halo = Image.new("RGBA", image.size, hex_to_rgba(glow_color or self.theme.colors.accent, 0))
            halo.putalpha(image.getchannel("A").filter(ImageFilter.GaussianBlur(size * 0.25)).point(lambda a: int(a * glow)))
            halo.alpha_composite(image)
            image = halo
        return image

    # -------------------------------------------------------------------------
    # Intro / outro
    # -------------------------------------------------------------------------

    def render_sequence(self, state: SequenceState) -> Image.Image:
        canvas = self._background(state.background_color)
        content = Image.new("RGBA", canvas.size, (0, 0, 0, 0))

        self._draw_particles(content, state.particles)
        for element in state.elements:
            if element.opacity > 0:
                self._draw_element(content, element)

        if state.container_scale != 1.0 or state.container_rotate_y:
            sx = state.container_scale * math.cos(math.radians(state.container_rotate_y))
            scaled = _resize_by(content, sx, state.container_scale)
            if scaled is not None:
                _composite_centered(canvas, scaled, self.width / 2, self.height / 2)
        else:
            canvas.alpha_composite(content)

        draw = ImageDraw.Draw(canvas, "RGBA")
        if state.tint and state.tint_opacity > 0:
            canvas.alpha_composite(Image.new("RGBA", canvas.size, hex_to_rgba(state.tint, int(255 * state.tint_opacity))))
        if state.letterbox > 0:
            bar = int(self.height * state.letterbox)
            draw.rectangle((0, 0, self.width, bar), fill=(0, 0, 0, 255))
            draw.rectangle((0, self.height - bar, self.width, self.height), fill=(0, 0, 0, 255))
        if state.curtain_open < 1.0:
            panel = (1 - state.curtain_open) * self.width / 2
            curtain = hex_to_rgba(self.theme.colors.primary)
            draw.rectangle((0, 0, panel, self.height), fill=curtain)
            draw.rectangle((self.width - panel, 0, self.width, self.height), fill=curtain)
        if state.overlay_color and state.overlay_opacity > 0:
            canvas.alpha_composite(
                Image.new("RGBA", canvas.size, hex_to_rgba(state.overlay_color, int(255 * state.overlay_opacity)))
            )
        return canvas

    def _draw_particles(self, canvas: Image.Image, particles: tuple[ParticleState, ...]) -> None:
        if not particles:
            return
        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer, "RGBA")
        for p in particles:
            if p.opacity <= 0:
                continue
            x, y = p.x / 100 * self.width, p.y / 100 * self.height
            r = p.size * self.px / 2
            fill = hex_to_rgba(p.color, int(255 * clamp(p.opacity)))
            if p.shape == "rect":
                draw.polygon(_rotated_rect(x, y, r * 2, r, p.rotation), fill=fill)
            elif p.shape in ("star", "heart"):
                draw.polygon(_shape_points(p.shape, x, y, r), fill=fill)
            elif p.shape == "ring":
                draw.ellipse((x - r, y - r, x + r, y + r), outline=fill, width=max(1, int(r / 5)))
            elif p.shape == "balloon":
                draw.ellipse((x - r * 0.8, y - r, x + r * 0.8, y + r), fill=fill)
                draw.line([(x, y + r), (x, y + r * 2.5)], fill=fill, width=1)
            elif p.shape == "petal":
                draw.polygon(_rotated_rect(x, y, r * 2, r * 0.9, p.rotation), fill=fill)
            else:
                draw.ellipse((x - r, y - r, x + r, y + r), fill=fill)
        canvas.alpha_composite(layer)

    def _draw_element(self, canvas: Image.Image, el: ElementState) -> None:
        if el.text is not None:
            image = self._text_image(
                el.text,
                int(ELEMENT_FONT_SIZES.get(el.name, 48) * self.px),
                self.theme.colors.text,
                letter_spacing=el.letter_spacing,
                glow=el.glow,
            )
        elif el.resource_id is not None:
            image = self._photo_element(el)
        else:
            image = self._shape_element(el)
        if image is None:
            return

        if el.reveal < 1.0:
            visible = int(image.width * max(0.0, el.reveal))
            if visible < 1:
                return
            image = image.crop((0, 0, visible, image.height))
        if el.blur > 0:
            image = image.filter(ImageFilter.GaussianBlur(el.blur * self.px))

        sx = el.scale * math.cos(math.radians(el.rotate_y))
        image = _resize_by(image, sx, el.scale)
        if image is None:
            return
        if el.rotate:
            image = image.rotate(-el.rotate, resample=Image.Resampling.BICUBIC, expand=True)
        image = _set_opacity(image, el.opacity)

        cx = el.x / 100 * self.width + el.translate_x * self.px
        cy = el.y / 100 * self.height + el.translate_y * self.px
        _composite_centered(canvas, image, cx, cy)

    def _photo_element(self, el: ElementState) -> Image.Image | None:
        source = self.images.get(el.resource_id)
        width = int((el.width or 30.0) / 100 * self.width)
        if width < 4:
            return None
        height = max(1, int(width * source.height / source.width))
        border = max(2, int(8 * self.px))
        framed = Image.new("RGBA", (width + border * 2, height + border * 2), (255, 255, 255, 255))
        framed.paste(source.resize((width, height), Image.Resampling.BILINEAR), (border, border))
        return framed

    def _shape_element(self, el: ElementState) -> Image.Image | None:
        colors = self.theme.colors
        width = max(1, int((el.width or 10.0) / 100 * self.width))
        if el.name.startswith("line") or el.name == "timeline_line":
            thickness = max(1, int((4 if el.name == "timeline_line" else 2) * self.px))
            return Image.new("RGBA", (width, thickness), hex_to_rgba(colors.text))
        if el.name == "ribbon":
            return Image.new("RGBA", (width, max(1, int(self.height * 0.1))), hex_to_rgba(colors.primary))

        image = Image.new("RGBA", (width, width), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)
        if el.name == "flower":
            r = width / 4
            c = width / 2
            for i in range(5):
                angle = i * 2 * math.pi / 5
                px, py = c + math.cos(angle) * r, c + math.sin(angle) * r
                draw.ellipse((px - r, py - r, px + r, py + r), fill=hex_to_rgba(colors.accent))
            draw.ellipse((c - r / 2, c - r / 2, c + r / 2, c + r / 2), fill=hex_to_rgba(colors.secondary))
        elif el.name == "hand":
            draw.ellipse((width * 0.2, width * 0.35, width * 0.8, width * 0.95), fill=hex_to_rgba(colors.accent))
            for i in range(4):
                fx = width * (0.25 + i * 0.15)
                draw.rounded_rectangle((fx, 0, fx + width * 0.1, width * 0.55), radius=width // 20, fill=hex_to_rgba(colors.accent))
        else:
            draw.rectangle((0, 0, width - 1, width - 1), fill=hex_to_rgba(colors.accent))
        return image


def _rotated_rect(cx: float, cy: float, w: float, h: float, degrees: float) -> list[tuple[float, float]]:
    c, s = math.cos(math.radians(degrees)), math.sin(math.radians(degrees))
    corners = [(-w / 2, -h / 2), (w / 2, -h / 2), (w / 2, h / 2), (-w / 2, h / 2)]
    return [(cx + x * c - y * s, cy + x * s + y * c) for x, y in corners]


def _shape_points(shape: str, cx: float, cy: float, r: float) -> list[tuple[float, float]]:
    if shape == "star":
        points = []
        for i in range(10):
            radius = r if i % 2 == 0 else r * 0.45
            angle = -math.pi / 2 + i * math.pi / 5
            points.append((cx + math.cos(angle) * radius, cy + math.sin(angle) * radius))
        return points
    # Parametric heart, y flipped for screen coordinates
    points = []
    for i in range(24):
        t = i / 24 * 2 * math.pi
        x = 16 * math.sin(t) ** 3
        y = 13 * math.cos(t) - 5 * math.cos(2 * t) - 2 * math.cos(3 * t) - math.cos(4 * t)
        points.append((cx + x / 17 * r, cy - y / 17 * r))
    return points
