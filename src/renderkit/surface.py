"""Pillow-backed rendering surface.

``PillowSurface`` is an RGBA canvas that draws decoded rasters with a
single Lanczos resample and renders vector markup through ``cairosvg``
directly at the requested rectangle size.  ``PillowSurfaceFactory``
satisfies :class:`~renderkit.protocols.SurfaceFactory`.
"""

from __future__ import annotations

import io
import logging
import xml.etree.ElementTree as ET

import numpy as np
from PIL import Image, ImageColor

from renderkit.errors import DecodeFailure, EncodeFailure, InvalidFitSpec
from renderkit.markup import stretch_to_fit
from renderkit.models import DecodedRaster, ImageFormat, Rect, VectorMarkup
from renderkit.protocols import Drawable

logger = logging.getLogger("renderkit")

_PIL_FORMATS: dict[ImageFormat, str] = {
    ImageFormat.PNG: "PNG",
    ImageFormat.JPEG: "JPEG",
    ImageFormat.WEBP: "WEBP",
    ImageFormat.AVIF: "AVIF",
    ImageFormat.GIF: "GIF",
    ImageFormat.BMP: "BMP",
    ImageFormat.TIFF: "TIFF",
}

# Formats that accept a quality setting.
_LOSSY = frozenset({ImageFormat.JPEG, ImageFormat.WEBP, ImageFormat.AVIF})

# Formats without an alpha channel.
_OPAQUE = frozenset({ImageFormat.JPEG})


def parse_color(value: str | None) -> tuple[int, int, int, int]:
    """Convert a CSS color string to RGBA. ``None`` and "transparent" are
    fully transparent.

    Raises:
        InvalidFitSpec: If the color string is not recognized.
    """
    if value is None or value.strip().lower() == "transparent":
        return (0, 0, 0, 0)
    try:
        return ImageColor.getcolor(value.strip(), "RGBA")  # type: ignore[return-value]
    except ValueError as exc:
        raise InvalidFitSpec(f"Unknown background color '{value}'") from exc


def _visible(rect: Rect, width: int, height: int) -> tuple[int, int, int, int] | None:
    left = max(rect.x, 0)
    top = max(rect.y, 0)
    right = min(rect.x + rect.width, width)
    bottom = min(rect.y + rect.height, height)
    if right <= left or bottom <= top:
        return None
    return left, top, right, bottom


def as_rgba_image(handle: Image.Image | np.ndarray) -> Image.Image:
    """Return *handle* as an RGBA PIL image."""
    if isinstance(handle, np.ndarray):
        handle = Image.fromarray(np.ascontiguousarray(handle, dtype=np.uint8))
    if handle.mode != "RGBA":
        return handle.convert("RGBA")
    return handle


def rasterize_markup(text: str, width: int, height: int) -> Image.Image:
    """Render vector markup to an RGBA image of exactly ``width x height``.

    The markup is stretched on each axis to fill the whole image.

    Raises:
        DecodeFailure: If cairosvg cannot render the markup.
    """
    import cairosvg

    try:
        png = cairosvg.svg2png(
            bytestring=stretch_to_fit(text).encode("utf-8"),
            output_width=width,
            output_height=height,
        )
    except (ValueError, OSError, ET.ParseError) as exc:
        raise DecodeFailure(f"Vector markup could not be rendered: {exc}") from exc

    with Image.open(io.BytesIO(png)) as rendered:
        return rendered.convert("RGBA")


class PillowSurface:
    """RGBA canvas backed by a ``PIL.Image.Image``."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self._image: Image.Image | None = Image.new("RGBA", (width, height), (0, 0, 0, 0))

    @property
    def closed(self) -> bool:
        return self._image is None

    def _canvas(self) -> Image.Image:
        if self._image is None:
            raise RuntimeError("Surface has been closed")
        return self._image

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def draw_source(
        self,
        source: Drawable,
        draw_rect: Rect,
        background: str | None = None,
    ) -> None:
        canvas = self._canvas()
        fill = parse_color(background)
        if fill[3]:
            canvas.paste(fill, (0, 0, self.width, self.height))

        visible = _visible(draw_rect, self.width, self.height)
        if visible is None:
            return
        left, top, right, bottom = visible

        if isinstance(source, VectorMarkup):
            layer = rasterize_markup(source.text, draw_rect.width, draw_rect.height)
            layer = layer.crop(
                (left - draw_rect.x, top - draw_rect.y, right - draw_rect.x, bottom - draw_rect.y)
            )
        else:
            layer = self._resample(source, draw_rect, visible)

        canvas.alpha_composite(layer, dest=(left, top))

    def _resample(
        self,
        source: DecodedRaster,
        draw_rect: Rect,
        visible: tuple[int, int, int, int],
    ) -> Image.Image:
        """Resample only the part of *source* that lands on the canvas."""
        image = as_rgba_image(source.handle)
        left, top, right, bottom = visible
        scale_x = image.width / draw_rect.width
        scale_y = image.height / draw_rect.height
        box = (
            (left - draw_rect.x) * scale_x,
            (top - draw_rect.y) * scale_y,
            (right - draw_rect.x) * scale_x,
            (bottom - draw_rect.y) * scale_y,
        )
        return image.resize((right - left, bottom - top), Image.Resampling.LANCZOS, box=box)

    # ------------------------------------------------------------------
    # Pixel access
    # ------------------------------------------------------------------

    def get_pixel_buffer(self) -> np.ndarray:
        return np.array(self._canvas(), dtype=np.uint8)

    def set_pixel_buffer(self, pixels: np.ndarray) -> None:
        expected = (self.height, self.width, 4)
        if pixels.shape != expected:
            raise ValueError(f"Pixel buffer shape {pixels.shape} does not match {expected}")
        self._canvas()
        self._image = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def supports_format(self, fmt: ImageFormat) -> bool:
        Image.init()
        return _PIL_FORMATS[fmt] in Image.SAVE

    def encode(self, fmt: ImageFormat, quality: float) -> bytes:
        canvas = self._canvas()
        image = canvas.convert("RGB") if fmt in _OPAQUE else canvas
        options: dict[str, int] = {}
        if fmt in _LOSSY:
            options["quality"] = max(1, min(100, int(quality * 100 + 0.5)))

        buffer = io.BytesIO()
        try:
            image.save(buffer, format=_PIL_FORMATS[fmt], **options)
        except (OSError, ValueError, KeyError) as exc:
            raise EncodeFailure(f"Encoding to {fmt.value} failed: {exc}") from exc
        return buffer.getvalue()

    def close(self) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None


class PillowSurfaceFactory:
    """Creates a fresh :class:`PillowSurface` per request."""

    def create_surface(self, width: int, height: int) -> PillowSurface:
        logger.debug("renderkit | surface | allocate=%dx%d", width, height)
        return PillowSurface(width, height)
