"""Output conversion: encode a finished surface into the requested form.

``OutputConverter`` produces encoded bytes, a ``data:`` URL string or a
``NamedImageFile``, optionally wrapped in an ``OutputResult`` with the
dimensions and elapsed time.  Format and MIME lookups are static
read-only tables.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import time
from types import MappingProxyType
from typing import Any

from renderkit.config import RenderConfig
from renderkit.errors import RenderErrorCode, UnsupportedFormat
from renderkit.models import (
    Dimensions,
    EncodedBinary,
    ImageFormat,
    NamedImageFile,
    OutputOptions,
    OutputResult,
)
from renderkit.protocols import RenderSurface

logger = logging.getLogger("renderkit")

# ---------------------------------------------------------------------------
# Static tables
# ---------------------------------------------------------------------------

MIME_TYPES = MappingProxyType(
    {
        ImageFormat.PNG: "image/png",
        ImageFormat.JPEG: "image/jpeg",
        ImageFormat.WEBP: "image/webp",
        ImageFormat.AVIF: "image/avif",
        ImageFormat.GIF: "image/gif",
        ImageFormat.BMP: "image/bmp",
        ImageFormat.TIFF: "image/tiff",
    }
)

EXTENSIONS = MappingProxyType(
    {
        ImageFormat.PNG: "png",
        ImageFormat.JPEG: "jpg",
        ImageFormat.WEBP: "webp",
        ImageFormat.AVIF: "avif",
        ImageFormat.GIF: "gif",
        ImageFormat.BMP: "bmp",
        ImageFormat.TIFF: "tiff",
    }
)

FORMAT_ALIASES = MappingProxyType(
    {
        "png": ImageFormat.PNG,
        "jpg": ImageFormat.JPEG,
        "jpeg": ImageFormat.JPEG,
        "webp": ImageFormat.WEBP,
        "avif": ImageFormat.AVIF,
        "gif": ImageFormat.GIF,
        "bmp": ImageFormat.BMP,
        "tif": ImageFormat.TIFF,
        "tiff": ImageFormat.TIFF,
    }
)

OPTIMAL_QUALITY = MappingProxyType(
    {
        ImageFormat.PNG: 1.0,
        ImageFormat.JPEG: 0.85,
        ImageFormat.WEBP: 0.8,
        ImageFormat.AVIF: 0.75,
    }
)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def parse_format(value: str | ImageFormat | None) -> ImageFormat | None:
    """Map a format name, extension or MIME type to an ``ImageFormat``.

    Returns ``None`` for ``None`` and for names the converter does not know.
    """
    if value is None:
        return None
    if isinstance(value, ImageFormat):
        return value
    key = value.strip().lower()
    if key.startswith("image/"):
        key = key[len("image/"):]
    return FORMAT_ALIASES.get(key.lstrip("."))


def format_from_filename(filename: str) -> ImageFormat | None:
    ext = os.path.splitext(filename)[1]
    return parse_format(ext) if ext else None


def mime_type_for(fmt: ImageFormat) -> str:
    return MIME_TYPES[fmt]


def adjust_filename(filename: str, fmt: ImageFormat, auto_extension: bool = True) -> str:
    """Return the file name to use for output encoded as *fmt*.

    With *auto_extension* disabled the name is kept verbatim.  Otherwise a
    missing extension is appended and an extension naming a different
    format is replaced (``jpeg`` becomes ``.jpg``).
    """
    if not auto_extension:
        return filename
    stem, ext = os.path.splitext(filename)
    if not ext:
        return f"{filename}.{EXTENSIONS[fmt]}"
    if parse_format(ext) is fmt:
        return filename
    return f"{stem}.{EXTENSIONS[fmt]}"


def quality_for(fmt: ImageFormat, explicit: float | None, default: float) -> float:
    """Explicit quality wins, then the per-format optimum, then *default*."""
    if explicit is not None:
        return explicit
    return OPTIMAL_QUALITY.get(fmt, default)


def to_data_url(payload: bytes, fmt: ImageFormat) -> str:
    return f"data:{MIME_TYPES[fmt]};base64,{base64.b64encode(payload).decode('ascii')}"


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------


class OutputConverter:
    """Encode surfaces into bytes, data URLs or named files."""

    def __init__(self, config: RenderConfig | None = None) -> None:
        self.config = config or RenderConfig()

    def resolve_format(self, surface: RenderSurface, options: OutputOptions) -> ImageFormat:
        """Pick the format to encode with, falling back when unsupported.

        Raises:
            UnsupportedFormat: If the requested format cannot be encoded and
                no usable fallback is configured.
        """
        requested = options.format or self.config.default_format.value
        fmt = parse_format(requested)
        if fmt is not None and surface.supports_format(fmt):
            return fmt

        fallback = parse_format(options.fallback_format)
        if fallback is None or not surface.supports_format(fallback):
            raise UnsupportedFormat(
                f"Format '{requested}' is not supported and no usable fallback "
                f"is configured (fallback={options.fallback_format!r})"
            )
        logger.warning(
            "renderkit | output | code=%s | requested=%s | fallback=%s",
            RenderErrorCode.W_FORMAT_FALLBACK.value,
            requested,
            fallback.value,
        )
        return fallback

    async def _encode(
        self, surface: RenderSurface, options: OutputOptions
    ) -> tuple[bytes, ImageFormat]:
        fmt = self.resolve_format(surface, options)
        quality = quality_for(fmt, options.quality, self.config.default_quality)
        payload = await asyncio.to_thread(surface.encode, fmt, quality)
        return payload, fmt

    def _finish(
        self,
        payload: Any,
        fmt: ImageFormat,
        width: int,
        height: int,
        options: OutputOptions,
        started_at: float | None,
        original: Dimensions | None,
        size_bytes: int,
    ) -> Any:
        elapsed = time.perf_counter() - started_at if started_at is not None else 0.0
        logger.debug(
            "renderkit | output | format=%s | size=%dx%d | bytes=%d | time=%.3fs",
            fmt.value,
            width,
            height,
            size_bytes,
            elapsed,
        )
        if not options.include_metadata:
            return payload
        return OutputResult(
            payload=payload,
            width=width,
            height=height,
            elapsed_seconds=elapsed,
            format=fmt,
            mime_type=MIME_TYPES[fmt],
            original_width=original.width if original else None,
            original_height=original.height if original else None,
        )

    # ------------------------------------------------------------------
    # Surface conversions
    # ------------------------------------------------------------------

    async def to_encoded_binary(
        self,
        surface: RenderSurface,
        options: OutputOptions,
        *,
        started_at: float | None = None,
        original: Dimensions | None = None,
    ) -> bytes | OutputResult:
        payload, fmt = await self._encode(surface, options)
        return self._finish(
            payload, fmt, surface.width, surface.height, options, started_at, original, len(payload)
        )

    async def to_encoded_string(
        self,
        surface: RenderSurface,
        options: OutputOptions,
        *,
        started_at: float | None = None,
        original: Dimensions | None = None,
    ) -> str | OutputResult:
        payload, fmt = await self._encode(surface, options)
        return self._finish(
            to_data_url(payload, fmt),
            fmt,
            surface.width,
            surface.height,
            options,
            started_at,
            original,
            len(payload),
        )

    async def to_named_file(
        self,
        surface: RenderSurface,
        filename: str,
        options: OutputOptions,
        *,
        started_at: float | None = None,
        original: Dimensions | None = None,
    ) -> NamedImageFile | OutputResult:
        payload, fmt = await self._encode(surface, options)
        named = NamedImageFile(
            name=adjust_filename(filename, fmt, options.auto_extension),
            data=payload,
            mime_type=MIME_TYPES[fmt],
        )
        return self._finish(
            named, fmt, surface.width, surface.height, options, started_at, original, len(payload)
        )

    # ------------------------------------------------------------------
    # Identity short-circuit
    # ------------------------------------------------------------------

    def source_format(self, source: EncodedBinary) -> ImageFormat | None:
        return parse_format(source.mime_type)

    def can_pass_through(self, source: EncodedBinary, options: OutputOptions) -> bool:
        """True when *source* already is the requested encoding."""
        current = self.source_format(source)
        if current is None:
            return False
        if options.format is None:
            return True
        return parse_format(options.format) is current

    def pass_through(
        self,
        source: EncodedBinary,
        mode: str,
        options: OutputOptions,
        size: Dimensions,
        *,
        filename: str | None = None,
        started_at: float | None = None,
    ) -> Any:
        """Return the original encoded object instead of re-encoding it.

        *mode* is ``"binary"``, ``"string"`` or ``"file"``.
        """
        fmt = self.source_format(source)
        assert fmt is not None
        if mode == "binary":
            # The caller's buffer, not the copy made during classification.
            if isinstance(source.original, (bytes, bytearray, memoryview)):
                payload: Any = source.original
            else:
                payload = source.data
        elif mode == "string":
            payload = to_data_url(source.data, fmt)
        else:
            name = adjust_filename(filename or source.name or "image", fmt, options.auto_extension)
            if isinstance(source.original, NamedImageFile) and source.original.name == name:
                payload = source.original
            else:
                payload = NamedImageFile(name=name, data=source.data, mime_type=MIME_TYPES[fmt])
        logger.debug("renderkit | output | passthrough=%s | format=%s", mode, fmt.value)
        return self._finish(
            payload, fmt, size.width, size.height, options, started_at, size, len(source.data)
        )
