"""Error codes, structured error model and typed failures for renderkit.

``RenderErrorCode`` contains every error/warning code the pipeline emits.
``RenderError`` is the inspectable detail model; ``RenderFailure`` and its
subclasses are the exceptions raised to callers, each carrying a
``RenderError`` in its ``error`` attribute.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class RenderErrorCode(str, Enum):
    """Error codes for image rendering.

    Each value equals its name so codes are stable strings suitable for
    metrics and alerting.  ``E_`` prefix indicates fatal errors;
    ``W_`` prefix indicates non-fatal warnings.
    """

    # Source classification
    E_SOURCE_UNRECOGNIZED = "E_SOURCE_UNRECOGNIZED"
    E_SOURCE_MALFORMED = "E_SOURCE_MALFORMED"
    E_SOURCE_UNSAFE = "E_SOURCE_UNSAFE"

    # Geometry
    E_INVALID_DIMENSION = "E_INVALID_DIMENSION"
    E_DIMENSION_TOO_LARGE = "E_DIMENSION_TOO_LARGE"
    E_INVALID_FIT_SPEC = "E_INVALID_FIT_SPEC"

    # Request lifecycle
    E_MULTIPLE_RESIZE = "E_MULTIPLE_RESIZE"
    E_ALREADY_CONSUMED = "E_ALREADY_CONSUMED"

    # Filters
    E_FILTER_INVALID = "E_FILTER_INVALID"

    # Output
    E_UNSUPPORTED_FORMAT = "E_UNSUPPORTED_FORMAT"

    # Collaborator errors
    E_DECODE_FAILED = "E_DECODE_FAILED"
    E_ENCODE_FAILED = "E_ENCODE_FAILED"

    # Warnings (non-fatal)
    W_FILTER_EXTREME_VALUE = "W_FILTER_EXTREME_VALUE"
    W_FORMAT_FALLBACK = "W_FORMAT_FALLBACK"


class RenderError(BaseModel):
    """Structured error with code, message, and pipeline context.

    The ``code`` field is typed as ``str`` so it serializes cleanly; it
    always holds a ``RenderErrorCode`` value.
    """

    code: str
    message: str
    stage: str | None = None
    recoverable: bool = False
    source_kind: str | None = None


class RenderFailure(Exception):
    """Base class for every failure surfaced by the pipeline."""

    default_code: RenderErrorCode = RenderErrorCode.E_DECODE_FAILED
    default_stage: str | None = None

    def __init__(
        self,
        message: str,
        *,
        code: RenderErrorCode | None = None,
        stage: str | None = None,
        source_kind: str | None = None,
        recoverable: bool = False,
    ) -> None:
        self.error = RenderError(
            code=(code or self.default_code).value,
            message=message,
            stage=stage or self.default_stage,
            recoverable=recoverable,
            source_kind=source_kind,
        )
        super().__init__(message)

    @classmethod
    def from_error(cls, error: RenderError) -> RenderFailure:
        """Wrap an existing ``RenderError`` without rebuilding it."""
        failure = cls.__new__(cls)
        failure.error = error
        Exception.__init__(failure, error.message)
        return failure

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def reason(self) -> str:
        return self.error.message


class ClassificationFailure(RenderFailure):
    default_code = RenderErrorCode.E_SOURCE_UNRECOGNIZED
    default_stage = "classify"


class InvalidDimension(RenderFailure):
    default_code = RenderErrorCode.E_INVALID_DIMENSION
    default_stage = "geometry"


class InvalidFitSpec(RenderFailure):
    default_code = RenderErrorCode.E_INVALID_FIT_SPEC
    default_stage = "geometry"


class MultipleResizeNotAllowed(RenderFailure):
    """A second resize-type call was made on one request."""

    default_code = RenderErrorCode.E_MULTIPLE_RESIZE
    default_stage = "resize"


class FilterValidationFailure(RenderFailure):
    default_code = RenderErrorCode.E_FILTER_INVALID
    default_stage = "filter"


class UnsupportedFormat(RenderFailure):
    default_code = RenderErrorCode.E_UNSUPPORTED_FORMAT
    default_stage = "output"


class AlreadyConsumed(RenderFailure):
    """A terminal call was issued on a request that already finished."""

    default_code = RenderErrorCode.E_ALREADY_CONSUMED
    default_stage = "output"


class DecodeFailure(RenderFailure):
    default_code = RenderErrorCode.E_DECODE_FAILED
    default_stage = "decode"


class EncodeFailure(RenderFailure):
    default_code = RenderErrorCode.E_ENCODE_FAILED
    default_stage = "encode"
