"""Pydantic models and enumerations for the renderkit package.

Contains the source variants (``VectorMarkup``, ``DataURI``, ``Reference``,
``EncodedBinary``, ``DecodedRaster``), geometry types (``FitSpec``,
``RenderPlan``), filter types (``FilterOp``) and output types
(``OutputOptions``, ``OutputResult``, ``NamedImageFile``).
"""

from __future__ import annotations

import base64
import io
import time
import urllib.parse
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, SkipValidation


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SourceKind(str, Enum):
    """Concrete kind of an input after classification."""

    VECTOR_MARKUP = "vector_markup"
    DATA_URI = "data_uri"
    REFERENCE = "reference"
    ENCODED_BINARY = "encoded_binary"
    DECODED_RASTER = "decoded_raster"


class FitMode(str, Enum):
    """How the source aspect ratio interacts with the target box."""

    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    MAX_FIT = "maxFit"
    MIN_FIT = "minFit"


class Position(str, Enum):
    """Anchor used for cover cropping and contain placement."""

    CENTER = "center"
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"


class FilterKind(str, Enum):
    """Closed catalog of pixel kernels."""

    BRIGHTNESS = "brightness"
    CONTRAST = "contrast"
    SATURATION = "saturation"
    HUE = "hue"
    GRAYSCALE = "grayscale"
    SEPIA = "sepia"
    INVERT = "invert"
    NOISE = "noise"
    BLUR = "blur"
    SHARPEN = "sharpen"
    PIXELATE = "pixelate"
    POSTERIZE = "posterize"
    VIGNETTE = "vignette"
    EMBOSS = "emboss"
    EDGE_DETECT = "edge_detect"


class BlendMode(str, Enum):
    """How a filtered buffer is combined with its input."""

    NORMAL = "normal"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"


class ImageFormat(str, Enum):
    """Output encodings known to the converter."""

    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    AVIF = "avif"
    GIF = "gif"
    BMP = "bmp"
    TIFF = "tiff"


class RequestState(str, Enum):
    """Lifecycle states of a processing request."""

    EMPTY = "empty"
    SOURCE_BOUND = "source_bound"
    GEOMETRY_PLANNED = "geometry_planned"
    FILTERS_QUEUED = "filters_queued"
    RENDERED = "rendered"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Source Variants
# ---------------------------------------------------------------------------


class VectorMarkup(BaseModel):
    """Vector markup kept symbolic until render time."""

    kind: SourceKind = SourceKind.VECTOR_MARKUP
    text: str
    width: float  # intrinsic size, used for pass-through and fit math
    height: float
    origin: str = "inline"  # inline, data_uri, binary, reference


class DataURI(BaseModel):
    """A ``data:`` URI carrying a non-vector payload."""

    kind: SourceKind = SourceKind.DATA_URI
    mime: str
    payload: str
    is_base64: bool = False

    def decode_payload(self) -> bytes:
        """Return the raw bytes carried by the URI."""
        if self.is_base64:
            return base64.b64decode(self.payload)
        return urllib.parse.unquote_to_bytes(self.payload)


class Reference(BaseModel):
    """A local path or remote URL to be fetched by the decoder."""

    kind: SourceKind = SourceKind.REFERENCE
    location: str
    is_remote: bool = False
    is_vector: bool = False


class EncodedBinary(BaseModel):
    """Encoded image bytes, e.g. a PNG file read into memory."""

    kind: SourceKind = SourceKind.ENCODED_BINARY
    data: SkipValidation[bytes]
    mime_type: str | None = None
    name: str | None = None
    original: SkipValidation[Any] = None  # object handed in by the caller


class DecodedRaster(BaseModel):
    """A raster already decoded into a pixel handle."""

    kind: SourceKind = SourceKind.DECODED_RASTER
    handle: SkipValidation[Any]
    width: int
    height: int


ImageSource = Union[VectorMarkup, DataURI, Reference, EncodedBinary, DecodedRaster]


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


class Dimensions(BaseModel):
    """Width and height in pixels."""

    width: int
    height: int


class Padding(BaseModel):
    """Extra canvas space added around the fitted image."""

    top: int = 0
    right: int = 0
    bottom: int = 0
    left: int = 0

    @classmethod
    def coerce(cls, value: int | dict | Padding | None) -> Padding:
        """Build padding from a uniform number or a per-side mapping."""
        if value is None:
            return cls()
        if isinstance(value, Padding):
            return value
        if isinstance(value, dict):
            return cls(**value)
        return cls(top=value, right=value, bottom=value, left=value)


class FitSpec(BaseModel):
    """Declarative resize request."""

    mode: FitMode = FitMode.COVER
    width: int | None = None
    height: int | None = None
    position: Position = Position.CENTER
    background: str | None = None
    padding: Padding | None = None
    without_enlargement: bool = False


class ScaleSpec(BaseModel):
    """Resize by factor instead of absolute target size."""

    scale_x: float
    scale_y: float


class Rect(BaseModel):
    """Placement of the source on the canvas. Offsets may be negative."""

    x: int
    y: int
    width: int
    height: int


class RenderPlan(BaseModel):
    """Resolved geometry, computed once and consumed once."""

    canvas_width: int
    canvas_height: int
    draw_rect: Rect
    fill_background: str | None = None


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class FilterOp(BaseModel):
    """One entry of a filter chain."""

    kind: FilterKind
    params: dict[str, float] = {}
    enabled: bool = True
    opacity: float = 1.0
    blend: BlendMode = BlendMode.NORMAL

    @property
    def is_plain(self) -> bool:
        """True when the op is enabled, fully opaque and normally blended."""
        return self.enabled and self.opacity == 1.0 and self.blend == BlendMode.NORMAL


class FilterValidationResult(BaseModel):
    """Outcome of validating one filter operation."""

    valid: bool
    error: str | None = None
    warnings: list[str] = []


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputOptions(BaseModel):
    """Options accepted by every terminal output call."""

    format: str | None = None
    quality: float | None = Field(default=None, ge=0.0, le=1.0)
    include_metadata: bool = True
    fallback_format: str | None = ImageFormat.PNG.value
    auto_extension: bool = True


class NamedImageFile(BaseModel):
    """In-memory file-like object with a name and a mime type."""

    name: str
    data: SkipValidation[bytes]
    mime_type: str
    last_modified: float = Field(default_factory=time.time)

    @property
    def size(self) -> int:
        return len(self.data)

    def read(self) -> bytes:
        return self.data

    def as_stream(self) -> io.BytesIO:
        return io.BytesIO(self.data)


class OutputResult(BaseModel):
    """Final payload with the dimensions and elapsed render time."""

    model_config = ConfigDict(frozen=True)

    payload: SkipValidation[Any]  # bytes, str or NamedImageFile
    width: int
    height: int
    elapsed_seconds: float
    format: ImageFormat
    mime_type: str
    original_width: int | None = None
    original_height: int | None = None


__all__ = [
    "SourceKind",
    "FitMode",
    "Position",
    "FilterKind",
    "BlendMode",
    "ImageFormat",
    "RequestState",
    "VectorMarkup",
    "DataURI",
    "Reference",
    "EncodedBinary",
    "DecodedRaster",
    "ImageSource",
    "Dimensions",
    "Padding",
    "FitSpec",
    "ScaleSpec",
    "Rect",
    "RenderPlan",
    "FilterOp",
    "FilterValidationResult",
    "OutputOptions",
    "NamedImageFile",
    "OutputResult",
]
