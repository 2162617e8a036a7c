"""Fluent request builder.

``process_image(source)`` returns an ``ImageProcessor``.  Resize-type
calls (``resize`` and every shortcut) may be made once; filter calls may
be chained freely; one awaited terminal call (``to_bytes``,
``to_data_url`` or ``to_file``) renders and consumes the request.

Example::

    result = await (
        process_image("photo.jpg")
        .cover_box(300, 200)
        .brightness(10)
        .to_bytes("webp")
    )
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from renderkit.config import RenderConfig
from renderkit.models import (
    BlendMode,
    FilterKind,
    FilterOp,
    FitMode,
    FitSpec,
    ImageSource,
    OutputOptions,
    Padding,
    RequestState,
    ScaleSpec,
)
from renderkit.output import format_from_filename
from renderkit.pipeline import RenderPipeline
from renderkit.protocols import SourceDecoder, SurfaceFactory

_UNSET: Any = object()


class ImageProcessor:
    """Builder over one :class:`~renderkit.pipeline.RenderPipeline`."""

    def __init__(
        self,
        source: Any,
        config: RenderConfig | None = None,
        *,
        surface_factory: SurfaceFactory | None = None,
        decoder: SourceDecoder | None = None,
    ) -> None:
        self._pipeline = RenderPipeline(
            source, config, surface_factory=surface_factory, decoder=decoder
        )

    @property
    def state(self) -> RequestState:
        return self._pipeline.state

    @property
    def source(self) -> ImageSource | None:
        return self._pipeline.source

    @property
    def filters(self) -> list[FilterOp]:
        return list(self._pipeline.filters)

    @property
    def config(self) -> RenderConfig:
        return self._pipeline.config

    # ------------------------------------------------------------------
    # Resize (at most one per request)
    # ------------------------------------------------------------------

    def resize(self, spec: FitSpec | None = None, **kwargs: Any) -> ImageProcessor:
        """Resize with a ``FitSpec`` or its fields as keyword arguments.

        ``padding`` may be a number or a per-side mapping.
        """

        def make() -> FitSpec:
            if spec is not None:
                return spec
            fields = dict(kwargs)
            if "padding" in fields:
                fields["padding"] = Padding.coerce(fields["padding"])
            return FitSpec(**fields)

        self._pipeline.plan_resize(make)
        return self

    def cover_box(self, width: int, height: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.COVER, width=width, height=height, **kwargs)

    def contain_box(self, width: int, height: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.CONTAIN, width=width, height=height, **kwargs)

    def exact_size(self, width: int, height: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.FILL, width=width, height=height, **kwargs)

    def exact_width(self, width: int, **kwargs: Any) -> ImageProcessor:
        """Set the width; the height follows the aspect ratio."""
        return self.resize(mode=FitMode.FILL, width=width, **kwargs)

    def exact_height(self, height: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.FILL, height=height, **kwargs)

    def max_width(self, width: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.MAX_FIT, width=width, **kwargs)

    def max_height(self, height: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.MAX_FIT, height=height, **kwargs)

    def max_size(self, width: int, height: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.MAX_FIT, width=width, height=height, **kwargs)

    def min_width(self, width: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.MIN_FIT, width=width, **kwargs)

    def min_height(self, height: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.MIN_FIT, height=height, **kwargs)

    def min_size(self, width: int, height: int, **kwargs: Any) -> ImageProcessor:
        return self.resize(mode=FitMode.MIN_FIT, width=width, height=height, **kwargs)

    def scale(self, factor: float) -> ImageProcessor:
        self._pipeline.plan_resize(lambda: ScaleSpec(scale_x=factor, scale_y=factor))
        return self

    def scale_xy(self, scale_x: float, scale_y: float) -> ImageProcessor:
        self._pipeline.plan_resize(lambda: ScaleSpec(scale_x=scale_x, scale_y=scale_y))
        return self

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def filter(
        self,
        kind: FilterKind | str,
        *,
        enabled: bool = True,
        opacity: float = 1.0,
        blend: BlendMode | str = BlendMode.NORMAL,
        **params: float,
    ) -> ImageProcessor:
        """Queue any catalog filter by kind."""
        self._pipeline.queue_filter(
            lambda: FilterOp(
                kind=kind, params=params, enabled=enabled, opacity=opacity, blend=blend
            )
        )
        return self

    def apply_filters(self, ops: Iterable[FilterOp]) -> ImageProcessor:
        for op in ops:
            self._pipeline.queue_filter(lambda op=op: op)
        return self

    def brightness(self, value: float, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.BRIGHTNESS, value=value, **modifiers)

    def contrast(self, value: float, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.CONTRAST, value=value, **modifiers)

    def saturation(self, value: float, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.SATURATION, value=value, **modifiers)

    def hue(self, degrees: float, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.HUE, degrees=degrees, **modifiers)

    def grayscale(self, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.GRAYSCALE, **modifiers)

    def sepia(self, intensity: float = 100.0, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.SEPIA, intensity=intensity, **modifiers)

    def invert(self, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.INVERT, **modifiers)

    def noise(
        self, intensity: float = 10.0, seed: int | None = None, **modifiers: Any
    ) -> ImageProcessor:
        if seed is not None:
            modifiers["seed"] = seed
        return self.filter(FilterKind.NOISE, intensity=intensity, **modifiers)

    def blur(self, radius: float = 2.0, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.BLUR, radius=radius, **modifiers)

    def sharpen(self, amount: float = 50.0, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.SHARPEN, amount=amount, **modifiers)

    def pixelate(self, size: int = 10, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.PIXELATE, size=size, **modifiers)

    def posterize(self, levels: int = 4, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.POSTERIZE, levels=levels, **modifiers)

    def vignette(
        self,
        intensity: float = 0.5,
        size: float = 0.5,
        blur: float = 0.5,
        **modifiers: Any,
    ) -> ImageProcessor:
        return self.filter(
            FilterKind.VIGNETTE, intensity=intensity, size=size, blur=blur, **modifiers
        )

    def emboss(self, strength: float = 1.0, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.EMBOSS, strength=strength, **modifiers)

    def edge_detect(self, sensitivity: float = 1.0, **modifiers: Any) -> ImageProcessor:
        return self.filter(FilterKind.EDGE_DETECT, sensitivity=sensitivity, **modifiers)

    # ------------------------------------------------------------------
    # Terminal calls
    # ------------------------------------------------------------------

    def _options(
        self,
        options: OutputOptions | None,
        format: str | None,
        quality: float | None,
        include_metadata: bool | None,
        fallback_format: Any,
    ) -> OutputOptions:
        if options is not None:
            return options
        config = self._pipeline.config
        return OutputOptions(
            format=format,
            quality=quality,
            include_metadata=(
                config.include_metadata if include_metadata is None else include_metadata
            ),
            fallback_format=(
                (config.fallback_format.value if config.fallback_format else None)
                if fallback_format is _UNSET
                else fallback_format
            ),
            auto_extension=config.auto_extension,
        )

    async def to_bytes(
        self,
        format: str | None = None,
        *,
        quality: float | None = None,
        include_metadata: bool | None = None,
        fallback_format: str | None = _UNSET,
        options: OutputOptions | None = None,
    ) -> Any:
        """Render and return encoded bytes, or an ``OutputResult`` with metadata."""
        opts = self._options(options, format, quality, include_metadata, fallback_format)
        return await self._pipeline.render("binary", opts)

    async def to_data_url(
        self,
        format: str | None = None,
        *,
        quality: float | None = None,
        include_metadata: bool | None = None,
        fallback_format: str | None = _UNSET,
        options: OutputOptions | None = None,
    ) -> Any:
        """Render and return a ``data:`` URL string."""
        opts = self._options(options, format, quality, include_metadata, fallback_format)
        return await self._pipeline.render("string", opts)

    async def to_file(
        self,
        filename: str,
        format: str | None = None,
        *,
        quality: float | None = None,
        include_metadata: bool | None = None,
        fallback_format: str | None = _UNSET,
        options: OutputOptions | None = None,
    ) -> Any:
        """Render into a ``NamedImageFile``.

        Without an explicit format the format is taken from *filename*'s
        extension, then from the configured default.
        """
        opts = self._options(options, format, quality, include_metadata, fallback_format)
        if opts.format is None:
            inferred = format_from_filename(filename)
            if inferred is not None:
                opts = opts.model_copy(update={"format": inferred.value})
        return await self._pipeline.render("file", opts, filename=filename)


def process_image(
    source: Any,
    config: RenderConfig | None = None,
    *,
    surface_factory: SurfaceFactory | None = None,
    decoder: SourceDecoder | None = None,
) -> ImageProcessor:
    """Start a processing request for *source*.

    Raises:
        ClassificationFailure: If *source* cannot be classified.
    """
    return ImageProcessor(source, config, surface_factory=surface_factory, decoder=decoder)
