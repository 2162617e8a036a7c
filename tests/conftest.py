"""Shared fixtures for renderkit tests."""

from __future__ import annotations

import io
import threading

import numpy as np
import pytest
from PIL import Image

from renderkit.config import RenderConfig
from renderkit.models import (
    DecodedRaster,
    Dimensions,
    EncodedBinary,
    ImageFormat,
    Rect,
    Reference,
)


# ---------------------------------------------------------------------------
# Mock Collaborator Classes
# ---------------------------------------------------------------------------


class MockSurface:
    """In-memory RenderSurface recording every call."""

    def __init__(
        self,
        width: int,
        height: int,
        supported: set[ImageFormat] | None = None,
        raise_on_draw: Exception | None = None,
        block_encode: threading.Event | None = None,
    ) -> None:
        self.width = width
        self.height = height
        self.supported = supported if supported is not None else set(ImageFormat)
        self.raise_on_draw = raise_on_draw
        self.block_encode = block_encode
        self.encode_started = threading.Event()
        self.pixels = np.zeros((height, width, 4), dtype=np.uint8)
        self.draw_calls: list[dict] = []
        self.encode_calls: list[dict] = []
        self.closed = False

    def draw_source(self, source, draw_rect: Rect, background: str | None = None) -> None:
        self.draw_calls.append({"source": source, "rect": draw_rect, "background": background})
        if self.raise_on_draw is not None:
            raise self.raise_on_draw
        self.pixels[...] = (100, 150, 200, 255)

    def get_pixel_buffer(self) -> np.ndarray:
        return self.pixels.copy()

    def set_pixel_buffer(self, pixels: np.ndarray) -> None:
        self.pixels = pixels

    def supports_format(self, fmt: ImageFormat) -> bool:
        return fmt in self.supported

    def encode(self, fmt: ImageFormat, quality: float) -> bytes:
        self.encode_calls.append({"format": fmt, "quality": quality})
        self.encode_started.set()
        if self.block_encode is not None:
            self.block_encode.wait(timeout=5)
        return f"{fmt.value}:{self.width}x{self.height}".encode()

    def close(self) -> None:
        self.closed = True


class MockSurfaceFactory:
    """SurfaceFactory handing out MockSurface instances."""

    def __init__(self, **surface_kwargs) -> None:
        self.surface_kwargs = surface_kwargs
        self.surfaces: list[MockSurface] = []

    def create_surface(self, width: int, height: int) -> MockSurface:
        surface = MockSurface(width, height, **self.surface_kwargs)
        self.surfaces.append(surface)
        return surface


class MockDecoder:
    """SourceDecoder returning a solid raster of a fixed size."""

    def __init__(
        self,
        width: int = 800,
        height: int = 600,
        markup: str = '<svg xmlns="http://www.w3.org/2000/svg" width="40" height="20"/>',
        raise_on_decode: Exception | None = None,
    ) -> None:
        self.width = width
        self.height = height
        self.markup = markup
        self.raise_on_decode = raise_on_decode
        self.decode_calls: list = []
        self.probe_calls: list = []
        self.markup_calls: list = []

    def decode(self, source) -> DecodedRaster:
        self.decode_calls.append(source)
        if self.raise_on_decode is not None:
            raise self.raise_on_decode
        pixels = np.full((self.height, self.width, 4), 255, dtype=np.uint8)
        return DecodedRaster(handle=pixels, width=self.width, height=self.height)

    def probe(self, source: EncodedBinary) -> Dimensions:
        self.probe_calls.append(source)
        return Dimensions(width=self.width, height=self.height)

    def load_markup(self, source: Reference) -> str:
        self.markup_calls.append(source)
        return self.markup


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def render_config() -> RenderConfig:
    """Return a RenderConfig with defaults."""
    return RenderConfig()


@pytest.fixture
def mock_factory() -> MockSurfaceFactory:
    return MockSurfaceFactory()


@pytest.fixture
def mock_decoder() -> MockDecoder:
    return MockDecoder()


def encode_image(image: Image.Image, fmt: str) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """80x60 solid red PNG."""
    return encode_image(Image.new("RGB", (80, 60), color=(255, 0, 0)), "PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    """80x60 solid blue JPEG."""
    return encode_image(Image.new("RGB", (80, 60), color=(0, 0, 255)), "JPEG")


@pytest.fixture
def sample_png_path(tmp_path) -> str:
    """Create a 100x50 PNG image in a temp directory. Returns path."""
    path = str(tmp_path / "sample.png")
    Image.new("RGB", (100, 50), color=(0, 128, 255)).save(path, format="PNG")
    return path


@pytest.fixture
def svg_markup() -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<!-- generated -->\n"
        '<svg xmlns="http://www.w3.org/2000/svg" width="200" height="100" viewBox="0 0 200 100">'
        '<rect width="200" height="100" fill="#00ff00"/></svg>'
    )


@pytest.fixture
def rgba_pixels() -> np.ndarray:
    """Deterministic 16x12 RGBA buffer with varied channels and alpha."""
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(12, 16, 4), dtype=np.uint8)
