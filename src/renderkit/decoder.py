"""Pillow-backed source decoder.

``PillowDecoder`` reads encoded binaries, data URIs, local paths and
remote URLs (via ``httpx``) into RGBA ``PIL.Image.Image`` handles.  It
satisfies :class:`~renderkit.protocols.SourceDecoder`.  Nothing is
retried; collaborator errors are wrapped in ``DecodeFailure``.
"""

from __future__ import annotations

import binascii
import io
import logging
import pathlib
import urllib.parse

from PIL import Image, ImageOps

from renderkit.config import RenderConfig
from renderkit.errors import DecodeFailure, RenderErrorCode
from renderkit.models import (
    DataURI,
    DecodedRaster,
    Dimensions,
    EncodedBinary,
    ImageSource,
    Reference,
    SourceKind,
)

logger = logging.getLogger("renderkit")


class PillowDecoder:
    """Decode non-vector sources with Pillow."""

    def __init__(self, config: RenderConfig | None = None) -> None:
        self.config = config or RenderConfig()

    # ------------------------------------------------------------------
    # Protocol methods
    # ------------------------------------------------------------------

    def decode(self, source: ImageSource) -> DecodedRaster:
        if isinstance(source, DecodedRaster):
            return source
        if isinstance(source, EncodedBinary):
            data = source.data
        elif isinstance(source, DataURI):
            try:
                data = source.decode_payload()
            except (binascii.Error, ValueError) as exc:
                raise DecodeFailure(
                    f"data: URI payload could not be decoded: {exc}",
                    source_kind=source.kind.value,
                ) from exc
        elif isinstance(source, Reference):
            data = self._read_reference(source)
        else:
            raise DecodeFailure(
                f"Source kind '{source.kind.value}' is drawn directly and cannot be decoded",
                source_kind=source.kind.value,
            )

        image = self._open(data, source.kind)
        logger.debug(
            "renderkit | decode | source=%s | size=%dx%d | mode=%s",
            source.kind.value,
            image.width,
            image.height,
            image.mode,
        )
        return DecodedRaster(handle=image, width=image.width, height=image.height)

    def probe(self, source: EncodedBinary) -> Dimensions:
        try:
            with Image.open(io.BytesIO(source.data)) as image:
                width, height = image.size
        except (OSError, Image.DecompressionBombError) as exc:
            raise DecodeFailure(
                f"Could not read image header: {exc}",
                source_kind=source.kind.value,
            ) from exc
        return Dimensions(width=width, height=height)

    def load_markup(self, source: Reference) -> str:
        data = self._read_reference(source)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeFailure(
                f"Vector reference is not UTF-8 text: {source.location}",
                source_kind=source.kind.value,
            ) from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open(self, data: bytes, kind: SourceKind) -> Image.Image:
        try:
            with Image.open(io.BytesIO(data)) as opened:
                opened.load()
                # exif_transpose returns a new image, detached from the buffer.
                image = ImageOps.exif_transpose(opened)
                if image.mode != "RGBA":
                    image = image.convert("RGBA")
        except (OSError, Image.DecompressionBombError) as exc:
            raise DecodeFailure(
                f"Image data could not be decoded: {exc}", source_kind=kind.value
            ) from exc
        return image

    def _check_size(self, size: int, location: str) -> None:
        limit = self.config.max_source_size_mb * 1024 * 1024
        if size > limit:
            raise DecodeFailure(
                f"Source {location} is {size} bytes, limit is {limit}",
                code=RenderErrorCode.E_SOURCE_UNSAFE,
                source_kind=SourceKind.REFERENCE.value,
            )

    def _read_reference(self, source: Reference) -> bytes:
        if source.is_remote:
            return self._fetch(source.location)

        location = source.location
        if location.lower().startswith("file://"):
            location = urllib.parse.unquote(urllib.parse.urlparse(location).path)
        path = pathlib.Path(location).expanduser()
        try:
            self._check_size(path.stat().st_size, source.location)
            return path.read_bytes()
        except OSError as exc:
            raise DecodeFailure(
                f"Could not read {source.location}: {exc}",
                source_kind=source.kind.value,
            ) from exc

    def _fetch(self, url: str) -> bytes:
        import httpx

        try:
            response = httpx.get(
                url,
                timeout=self.config.http_timeout_seconds,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise DecodeFailure(
                f"Fetching {url} failed with HTTP {status}",
                source_kind=SourceKind.REFERENCE.value,
                recoverable=status >= 500 or status == 429,
            ) from exc
        except httpx.HTTPError as exc:
            raise DecodeFailure(
                f"Fetching {url} failed: {exc}",
                source_kind=SourceKind.REFERENCE.value,
                recoverable=True,
            ) from exc
        self._check_size(len(response.content), url)
        logger.debug("renderkit | decode | fetched=%s | bytes=%d", url, len(response.content))
        return response.content
