"""One-call presets for common output shapes.

Each preset builds a single request with one resize and awaits its
terminal call, so the usual request failures propagate unchanged.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any

from renderkit.config import RenderConfig
from renderkit.errors import InvalidFitSpec
from renderkit.models import Dimensions, FitMode
from renderkit.processor import process_image
from renderkit.protocols import SourceDecoder, SurfaceFactory

SOCIAL_PLATFORM_SIZES = MappingProxyType(
    {
        "twitter": Dimensions(width=1200, height=675),
        "facebook": Dimensions(width=1200, height=630),
        "instagram": Dimensions(width=1080, height=1080),
        "linkedin": Dimensions(width=1200, height=627),
        "youtube": Dimensions(width=1280, height=720),
        "pinterest": Dimensions(width=1000, height=1500),
    }
)


async def create_thumbnail(
    source: Any,
    size: int | tuple[int, int],
    *,
    format: str = "webp",
    quality: float = 0.8,
    fit: FitMode = FitMode.COVER,
    background: str = "#ffffff",
    config: RenderConfig | None = None,
    surface_factory: SurfaceFactory | None = None,
    decoder: SourceDecoder | None = None,
) -> Any:
    """Square (or ``(width, height)``) thumbnail; falls back to JPEG when
    the surface cannot encode WebP.
    """
    width, height = (size, size) if isinstance(size, int) else size
    return await (
        process_image(source, config, surface_factory=surface_factory, decoder=decoder)
        .resize(mode=fit, width=width, height=height, background=background)
        .to_bytes(format, quality=quality, fallback_format="jpeg")
    )


async def create_avatar(
    source: Any,
    size: int = 64,
    *,
    format: str = "png",
    quality: float = 0.9,
    background: str = "transparent",
    config: RenderConfig | None = None,
    surface_factory: SurfaceFactory | None = None,
    decoder: SourceDecoder | None = None,
) -> Any:
    return await (
        process_image(source, config, surface_factory=surface_factory, decoder=decoder)
        .cover_box(size, size, background=background)
        .to_bytes(format, quality=quality)
    )


async def create_social_image(
    source: Any,
    platform: str,
    *,
    custom_size: tuple[int, int] | None = None,
    format: str = "jpeg",
    quality: float = 0.85,
    background: str = "#ffffff",
    config: RenderConfig | None = None,
    surface_factory: SurfaceFactory | None = None,
    decoder: SourceDecoder | None = None,
) -> Any:
    """Contain *source* in the platform's recommended size.

    Raises:
        InvalidFitSpec: If *platform* is unknown and no *custom_size* is given.
    """
    if custom_size is not None:
        width, height = custom_size
    else:
        target = SOCIAL_PLATFORM_SIZES.get(platform.lower())
        if target is None:
            raise InvalidFitSpec(
                f"Unknown platform '{platform}'; expected one of "
                f"{', '.join(SOCIAL_PLATFORM_SIZES)}"
            )
        width, height = target.width, target.height
    return await (
        process_image(source, config, surface_factory=surface_factory, decoder=decoder)
        .contain_box(width, height, background=background)
        .to_bytes(format, quality=quality)
    )
