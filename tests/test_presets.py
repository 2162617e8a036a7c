"""Tests for the one-call presets and end-to-end rendering with Pillow."""

from __future__ import annotations

import io

import numpy as np
import pytest
from conftest import MockSurfaceFactory
from PIL import Image

from renderkit import create_avatar, create_social_image, create_thumbnail, process_image
from renderkit.errors import InvalidFitSpec
from renderkit.models import ImageFormat, OutputResult, Rect
from renderkit.presets import SOCIAL_PLATFORM_SIZES


@pytest.fixture
def raster() -> np.ndarray:
    return np.zeros((60, 80, 4), dtype=np.uint8)


@pytest.mark.unit
class TestPresets:
    @pytest.mark.asyncio
    async def test_thumbnail(self, raster, mock_factory):
        result = await create_thumbnail(raster, 40, surface_factory=mock_factory)
        assert isinstance(result, OutputResult)
        assert result.payload == b"webp:40x40"
        assert mock_factory.surfaces[0].encode_calls[0]["quality"] == 0.8
        assert mock_factory.surfaces[0].draw_calls[0]["background"] == "#ffffff"

    @pytest.mark.asyncio
    async def test_thumbnail_rectangle(self, raster, mock_factory):
        result = await create_thumbnail(raster, (30, 20), surface_factory=mock_factory)
        assert (result.width, result.height) == (30, 20)

    @pytest.mark.asyncio
    async def test_thumbnail_falls_back_to_jpeg(self, raster):
        factory = MockSurfaceFactory(supported={ImageFormat.PNG, ImageFormat.JPEG})
        result = await create_thumbnail(raster, 40, surface_factory=factory)
        assert result.format is ImageFormat.JPEG

    @pytest.mark.asyncio
    async def test_avatar(self, raster, mock_factory):
        result = await create_avatar(raster, surface_factory=mock_factory)
        assert result.payload == b"png:64x64"
        call = mock_factory.surfaces[0].draw_calls[0]
        assert call["background"] == "transparent"
        assert call["rect"] == Rect(x=-11, y=0, width=85, height=64)

    @pytest.mark.asyncio
    async def test_social_image(self, raster, mock_factory):
        result = await create_social_image(raster, "Twitter", surface_factory=mock_factory)
        assert (result.width, result.height) == (1200, 675)
        assert result.format is ImageFormat.JPEG

    @pytest.mark.asyncio
    async def test_social_custom_size(self, raster, mock_factory):
        result = await create_social_image(
            raster, "anything", custom_size=(300, 100), surface_factory=mock_factory
        )
        assert (result.width, result.height) == (300, 100)

    @pytest.mark.asyncio
    async def test_unknown_platform(self, raster, mock_factory):
        with pytest.raises(InvalidFitSpec, match="twitter"):
            await create_social_image(raster, "myspace", surface_factory=mock_factory)
        assert mock_factory.surfaces == []

    def test_platform_table(self):
        assert SOCIAL_PLATFORM_SIZES["instagram"].width == SOCIAL_PLATFORM_SIZES["instagram"].height


@pytest.mark.integration
class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_cover_png(self, png_bytes):
        payload = await process_image(png_bytes).cover_box(30, 30).to_bytes(
            "png", include_metadata=False
        )
        with Image.open(io.BytesIO(payload)) as image:
            assert image.size == (30, 30)
            assert image.getpixel((15, 15))[:3] == (255, 0, 0)

    @pytest.mark.asyncio
    async def test_filtered_jpeg_from_path(self, sample_png_path):
        result = await process_image(sample_png_path).max_width(50).grayscale().to_bytes("jpeg")
        assert (result.width, result.height) == (50, 25)
        assert (result.original_width, result.original_height) == (100, 50)
        with Image.open(io.BytesIO(result.payload)) as image:
            assert image.format == "JPEG"

    @pytest.mark.asyncio
    async def test_thumbnail_with_defaults(self, jpeg_bytes):
        result = await create_thumbnail(jpeg_bytes, 24)
        assert result.format in (ImageFormat.WEBP, ImageFormat.JPEG)
        with Image.open(io.BytesIO(result.payload)) as image:
            assert image.size == (24, 24)

    @pytest.mark.asyncio
    async def test_identity_returns_input(self, png_bytes):
        payload = await process_image(png_bytes).to_bytes("png", include_metadata=False)
        assert payload is png_bytes

    @pytest.mark.asyncio
    async def test_contain_with_background(self, png_bytes):
        url = await process_image(png_bytes).contain_box(40, 40, background="#00ff00").to_data_url(
            "png", include_metadata=False
        )
        assert url.startswith("data:image/png;base64,")
