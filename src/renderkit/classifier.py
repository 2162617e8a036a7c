"""Source classification for arbitrary input values.

``SourceClassifier.classify`` inspects an input (string, bytes, file-like
object, path, PIL image or numpy array) and returns the concrete
``ImageSource`` variant together with a list of errors.  It never raises
for unsupported input; a fatal ``E_*`` entry in the error list tells the
caller the input cannot be rendered.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import pathlib
import re
import urllib.parse
import xml.etree.ElementTree as ET
from typing import Any

import numpy as np
from PIL import Image

from renderkit import markup
from renderkit.config import RenderConfig
from renderkit.errors import RenderError, RenderErrorCode
from renderkit.models import (
    DataURI,
    DecodedRaster,
    EncodedBinary,
    ImageSource,
    NamedImageFile,
    Reference,
    SourceKind,
    VectorMarkup,
)

logger = logging.getLogger("renderkit")

# ---------------------------------------------------------------------------
# Magic byte signatures used to sniff encoded binaries
# ---------------------------------------------------------------------------

_MAGIC_BYTES: dict[str, list[bytes]] = {
    "image/jpeg": [b"\xff\xd8\xff"],
    "image/png": [b"\x89PNG\r\n\x1a\n"],
    "image/gif": [b"GIF87a", b"GIF89a"],
    "image/bmp": [b"BM"],
    "image/tiff": [b"II\x2a\x00", b"MM\x00\x2a"],
    "image/webp": [b"RIFF"],  # Also requires "WEBP" at offset 8
}

_EXTENSION_MAP: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".svg": markup.VECTOR_MIME,
}

_URL_SCHEME_RE = re.compile(r"^(https?|file)://", re.IGNORECASE)
_PATH_PREFIX_RE = re.compile(r"^(/|\./|\.\./|~[/\\]|[A-Za-z]:[/\\])")


def sniff_mime(data: bytes) -> str | None:
    """Return the image mime type implied by the leading bytes of *data*."""
    for mime, signatures in _MAGIC_BYTES.items():
        for sig in signatures:
            if data.startswith(sig):
                if mime == "image/webp" and data[8:12] != b"WEBP":
                    continue
                return mime
    if data[4:12] in (b"ftypavif", b"ftypavis"):
        return "image/avif"
    return None


class SourceClassifier:
    """Determine the concrete kind of an input before any rendering.

    The check order for strings is: byte-order mark and prolog skip,
    vector root-tag check, ``data:`` URI, then URL/path reference.
    Binary inputs and pre-decoded rasters bypass the string checks.
    """

    def __init__(self, config: RenderConfig | None = None) -> None:
        self.config = config or RenderConfig()

    def classify(self, value: Any) -> tuple[ImageSource | None, list[RenderError]]:
        """Classify *value*.

        Returns:
            A tuple of (ImageSource or None, list of errors/warnings).
            Fatal errors have codes starting with ``E_``.
        """
        if isinstance(value, Image.Image):
            source, errors = self._classify_pil(value)
        elif isinstance(value, np.ndarray):
            source, errors = self._classify_array(value)
        elif isinstance(value, NamedImageFile):
            source, errors = self._classify_binary(
                value.data, declared_mime=value.mime_type, name=value.name, original=value
            )
        elif isinstance(value, (bytes, bytearray, memoryview)):
            data = value if isinstance(value, bytes) else bytes(value)
            source, errors = self._classify_binary(data, original=value)
        elif isinstance(value, pathlib.PurePath):
            source, errors = self._reference(str(value)), []
        elif isinstance(value, str):
            source, errors = self._classify_string(value)
        else:
            source, errors = None, [
                _error(
                    RenderErrorCode.E_SOURCE_UNRECOGNIZED,
                    f"Unsupported input type: {type(value).__name__}",
                )
            ]

        if source is not None:
            logger.debug("renderkit | classify | kind=%s", source.kind.value)
        else:
            logger.debug(
                "renderkit | classify | kind=none | code=%s | detail=%s",
                errors[0].code,
                errors[0].message,
            )
        return source, errors

    # ------------------------------------------------------------------
    # Pre-decoded rasters
    # ------------------------------------------------------------------

    def _classify_pil(self, image: Image.Image) -> tuple[ImageSource | None, list[RenderError]]:
        width, height = image.size
        if width <= 0 or height <= 0:
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_MALFORMED,
                    f"Raster has empty size {width}x{height}",
                    SourceKind.DECODED_RASTER,
                )
            ]
        return DecodedRaster(handle=image, width=width, height=height), []

    def _classify_array(self, array: np.ndarray) -> tuple[ImageSource | None, list[RenderError]]:
        if array.ndim != 3 or array.shape[2] not in (3, 4) or array.dtype != np.uint8:
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_UNRECOGNIZED,
                    f"Pixel array must be HxWx3 or HxWx4 uint8, got shape "
                    f"{array.shape} dtype {array.dtype}",
                    SourceKind.DECODED_RASTER,
                )
            ]
        height, width = array.shape[:2]
        if width == 0 or height == 0:
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_MALFORMED,
                    f"Pixel array has empty size {width}x{height}",
                    SourceKind.DECODED_RASTER,
                )
            ]
        return DecodedRaster(handle=array, width=width, height=height), []

    # ------------------------------------------------------------------
    # Binary
    # ------------------------------------------------------------------

    def _classify_binary(
        self,
        data: bytes,
        declared_mime: str | None = None,
        name: str | None = None,
        original: Any = None,
    ) -> tuple[ImageSource | None, list[RenderError]]:
        if not data:
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_MALFORMED,
                    "Binary input is empty",
                    SourceKind.ENCODED_BINARY,
                )
            ]

        max_bytes = self.config.max_source_size_mb * 1024 * 1024
        if len(data) > max_bytes:
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_UNSAFE,
                    f"Binary input is {len(data)} bytes, limit is {max_bytes}",
                    SourceKind.ENCODED_BINARY,
                )
            ]

        declared = (declared_mime or "").split(";")[0].strip().lower() or None
        if declared == markup.VECTOR_MIME:
            text = markup.strip_bom(data.decode("utf-8", errors="replace"))
            return self._vector_from_text(text, origin="binary")

        sniffed_text = markup.sniff_vector_bytes(data)
        if sniffed_text is not None:
            return self._vector_from_text(sniffed_text, origin="binary")

        mime = sniff_mime(data) or declared
        return (
            EncodedBinary(data=data, mime_type=mime, name=name, original=original),
            [],
        )

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    def _classify_string(self, value: str) -> tuple[ImageSource | None, list[RenderError]]:
        text = markup.strip_bom(value)
        if not text.strip():
            return None, [
                _error(RenderErrorCode.E_SOURCE_UNRECOGNIZED, "Input string is empty")
            ]

        # --- 1. Vector root after prolog/comment skip ---
        if markup.looks_like_markup(text):
            if markup.is_vector_root(text):
                return self._vector_from_text(text, origin="inline")
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_UNRECOGNIZED,
                    "Markup root element is not a vector image",
                )
            ]

        stripped = text.strip()

        # --- 2. data: URI ---
        if stripped[:5].lower() == "data:":
            return self._classify_data_uri(stripped)

        # --- 3. URL or path reference ---
        if "\n" not in stripped and (
            _URL_SCHEME_RE.match(stripped)
            or _PATH_PREFIX_RE.match(stripped)
            or _extension_of(stripped) in _EXTENSION_MAP
        ):
            return self._reference(stripped), []

        detail = stripped[:64] if self.config.log_source_data else f"{len(stripped)} chars"
        return None, [
            _error(
                RenderErrorCode.E_SOURCE_UNRECOGNIZED,
                f"String is neither vector markup, a data URI nor a reference ({detail})",
            )
        ]

    def _classify_data_uri(self, uri: str) -> tuple[ImageSource | None, list[RenderError]]:
        header, sep, payload = uri[5:].partition(",")
        if not sep:
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_MALFORMED,
                    "data: URI has no payload separator",
                    SourceKind.DATA_URI,
                )
            ]

        params = [p.strip() for p in header.split(";")]
        mime = params[0].lower() or "text/plain"
        is_base64 = any(p.lower() == "base64" for p in params[1:])

        if mime == markup.VECTOR_MIME:
            try:
                if is_base64:
                    raw = base64.b64decode(re.sub(r"\s+", "", payload), validate=True)
                else:
                    raw = urllib.parse.unquote_to_bytes(payload)
                text = raw.decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as exc:
                return None, [
                    _error(
                        RenderErrorCode.E_SOURCE_MALFORMED,
                        f"Vector data URI payload could not be decoded: {exc}",
                        SourceKind.DATA_URI,
                    )
                ]
            return self._vector_from_text(markup.strip_bom(text), origin="data_uri")

        if not (mime.startswith("image/") or mime == "application/octet-stream"):
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_UNRECOGNIZED,
                    f"data: URI mime '{mime}' is not an image",
                    SourceKind.DATA_URI,
                )
            ]
        return DataURI(mime=mime, payload=payload, is_base64=is_base64), []

    def _reference(self, location: str) -> Reference:
        is_remote = location.lower().startswith(("http://", "https://"))
        path = urllib.parse.urlparse(location).path if is_remote else location
        return Reference(
            location=location,
            is_remote=is_remote,
            is_vector=_extension_of(path) == ".svg",
        )

    # ------------------------------------------------------------------
    # Vector markup
    # ------------------------------------------------------------------

    def _vector_from_text(
        self, text: str, origin: str
    ) -> tuple[ImageSource | None, list[RenderError]]:
        if markup.declares_entities(text):
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_UNSAFE,
                    "Vector markup declares entities",
                    SourceKind.VECTOR_MARKUP,
                )
            ]
        if not markup.is_vector_root(text):
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_UNRECOGNIZED,
                    "Markup root element is not a vector image",
                    SourceKind.VECTOR_MARKUP,
                )
            ]
        try:
            width, height = markup.intrinsic_size(text, float(self.config.vector_default_size))
        except ET.ParseError as exc:
            return None, [
                _error(
                    RenderErrorCode.E_SOURCE_MALFORMED,
                    f"Vector markup is not well formed: {exc}",
                    SourceKind.VECTOR_MARKUP,
                )
            ]
        if self.config.log_source_data:
            logger.debug("renderkit | classify | markup=%s", text[:200])
        return VectorMarkup(text=text, width=width, height=height, origin=origin), []


def _extension_of(location: str) -> str:
    base = location.split("?", 1)[0].split("#", 1)[0]
    return os.path.splitext(base)[1].lower()


def _error(
    code: RenderErrorCode, message: str, kind: SourceKind | None = None
) -> RenderError:
    return RenderError(
        code=code.value,
        message=message,
        stage="classify",
        source_kind=kind.value if kind is not None else None,
    )
