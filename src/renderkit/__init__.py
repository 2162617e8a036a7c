"""renderkit -- single-pass image rendering: classify, fit, filter, encode."""

from renderkit.classifier import SourceClassifier
from renderkit.config import RenderConfig
from renderkit.decoder import PillowDecoder
from renderkit.errors import (
    AlreadyConsumed,
    ClassificationFailure,
    DecodeFailure,
    EncodeFailure,
    FilterValidationFailure,
    InvalidDimension,
    InvalidFitSpec,
    MultipleResizeNotAllowed,
    RenderError,
    RenderErrorCode,
    RenderFailure,
    UnsupportedFormat,
)
from renderkit.filters import FilterEngine
from renderkit.geometry import PIXEL_ROUNDING, resolve, resolve_scale
from renderkit.models import (
    BlendMode,
    DataURI,
    DecodedRaster,
    Dimensions,
    EncodedBinary,
    FilterKind,
    FilterOp,
    FilterValidationResult,
    FitMode,
    FitSpec,
    ImageFormat,
    ImageSource,
    NamedImageFile,
    OutputOptions,
    OutputResult,
    Padding,
    Position,
    Rect,
    Reference,
    RenderPlan,
    RequestState,
    ScaleSpec,
    SourceKind,
    VectorMarkup,
)
from renderkit.output import OutputConverter
from renderkit.pipeline import RenderPipeline
from renderkit.presets import create_avatar, create_social_image, create_thumbnail
from renderkit.processor import ImageProcessor, process_image
from renderkit.protocols import RenderSurface, SourceDecoder, SurfaceFactory
from renderkit.surface import PillowSurface, PillowSurfaceFactory

__all__ = [
    # Entry points
    "process_image",
    "ImageProcessor",
    "RenderPipeline",
    # Config
    "RenderConfig",
    # Components
    "SourceClassifier",
    "FilterEngine",
    "OutputConverter",
    "resolve",
    "resolve_scale",
    "PIXEL_ROUNDING",
    # Presets
    "create_thumbnail",
    "create_avatar",
    "create_social_image",
    # Models -- enums
    "SourceKind",
    "FitMode",
    "Position",
    "FilterKind",
    "BlendMode",
    "ImageFormat",
    "RequestState",
    # Models -- sources
    "ImageSource",
    "VectorMarkup",
    "DataURI",
    "Reference",
    "EncodedBinary",
    "DecodedRaster",
    # Models -- data
    "Dimensions",
    "Padding",
    "FitSpec",
    "ScaleSpec",
    "Rect",
    "RenderPlan",
    "FilterOp",
    "FilterValidationResult",
    "OutputOptions",
    "OutputResult",
    "NamedImageFile",
    # Errors
    "RenderErrorCode",
    "RenderError",
    "RenderFailure",
    "ClassificationFailure",
    "InvalidDimension",
    "InvalidFitSpec",
    "MultipleResizeNotAllowed",
    "FilterValidationFailure",
    "UnsupportedFormat",
    "AlreadyConsumed",
    "DecodeFailure",
    "EncodeFailure",
    # Protocols and default collaborators
    "RenderSurface",
    "SurfaceFactory",
    "SourceDecoder",
    "PillowSurface",
    "PillowSurfaceFactory",
    "PillowDecoder",
]
