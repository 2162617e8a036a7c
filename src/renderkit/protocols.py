"""Collaborator protocols for the renderkit package.

Defines the ``RenderSurface`` / ``SurfaceFactory`` pair the pipeline draws
into and encodes from, and ``SourceDecoder`` for turning non-vector sources
into pixels.  ``renderkit.surface`` and ``renderkit.decoder`` provide the
default Pillow-backed implementations; any object with the same methods
satisfies these protocols via structural subtyping.
"""

from __future__ import annotations

from typing import Protocol, Union, runtime_checkable

import numpy as np

from renderkit.models import (
    DecodedRaster,
    Dimensions,
    EncodedBinary,
    ImageFormat,
    ImageSource,
    Rect,
    Reference,
    VectorMarkup,
)

Drawable = Union[VectorMarkup, DecodedRaster]


# ---------------------------------------------------------------------------
# Rendering surface
# ---------------------------------------------------------------------------


@runtime_checkable
class RenderSurface(Protocol):
    """A 2D RGBA raster supporting one draw, pixel access and encoding."""

    width: int
    height: int

    def draw_source(
        self,
        source: Drawable,
        draw_rect: Rect,
        background: str | None = None,
    ) -> None:
        """Fill the canvas with *background*, then draw *source* into *draw_rect*.

        Vector markup is rendered directly at the rect's size.
        """
        ...

    def get_pixel_buffer(self) -> np.ndarray:
        """Return an ``HxWx4`` uint8 copy of the canvas."""
        ...

    def set_pixel_buffer(self, pixels: np.ndarray) -> None:
        """Replace the canvas with *pixels* (same shape as the canvas)."""
        ...

    def supports_format(self, fmt: ImageFormat) -> bool:
        ...

    def encode(self, fmt: ImageFormat, quality: float) -> bytes:
        """Encode the canvas. *quality* is in ``[0, 1]``."""
        ...

    def close(self) -> None:
        """Release the canvas. Further calls are invalid."""
        ...


@runtime_checkable
class SurfaceFactory(Protocol):
    """Allocates rendering surfaces."""

    def create_surface(self, width: int, height: int) -> RenderSurface:
        ...


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


@runtime_checkable
class SourceDecoder(Protocol):
    """Turns encoded, data-URI and reference sources into pixels."""

    def decode(self, source: ImageSource) -> DecodedRaster:
        """Decode *source* into an RGBA pixel handle with its size."""
        ...

    def probe(self, source: EncodedBinary) -> Dimensions:
        """Read the dimensions of an encoded binary without full decode."""
        ...

    def load_markup(self, source: Reference) -> str:
        """Fetch the text of a vector reference."""
        ...


__all__ = [
    "Drawable",
    "RenderSurface",
    "SurfaceFactory",
    "SourceDecoder",
]
