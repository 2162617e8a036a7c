"""Helpers for inspecting vector markup.

Root-tag detection skips a byte-order mark, the XML declaration, comments
and a DOCTYPE before looking at the first real tag, so decorated vector
documents are accepted while documents that merely contain a vector
element somewhere inside them are not.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET

BOM = "\ufeff"

_PROLOG_RE = re.compile(r"<\?xml.*?\?>", re.DOTALL | re.IGNORECASE)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_DOCTYPE_RE = re.compile(r"<!DOCTYPE[^\[>]*(\[.*?\])?\s*>", re.DOTALL | re.IGNORECASE)
_VECTOR_ROOT_RE = re.compile(r"<svg[\s>/]", re.IGNORECASE)
_ROOT_TAG_RE = re.compile(r"<svg\b(?:[^>\"']|\"[^\"]*\"|'[^']*')*>", re.IGNORECASE)
_ASPECT_ATTR_RE = re.compile(r"\s+preserveAspectRatio\s*=\s*(?:\"[^\"]*\"|'[^']*')")
_ENTITY_RE = re.compile(r"<!ENTITY", re.IGNORECASE)
_LENGTH_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))\s*(px)?\s*$", re.IGNORECASE)

VECTOR_MIME = "image/svg+xml"

# Number of leading bytes inspected when sniffing binary input for markup.
SNIFF_BYTES = 4096


def strip_bom(text: str) -> str:
    if text.startswith(BOM):
        return text[len(BOM):]
    return text


def skip_prolog(text: str) -> str:
    """Return *text* with leading whitespace, XML declarations, comments and
    DOCTYPE declarations removed, repeatedly, until the first real tag.
    """
    rest = strip_bom(text)
    while True:
        rest = rest.lstrip()
        for pattern in (_PROLOG_RE, _COMMENT_RE, _DOCTYPE_RE):
            match = pattern.match(rest)
            if match:
                rest = rest[match.end():]
                break
        else:
            return rest


def is_vector_root(text: str) -> bool:
    """True when the first significant tag of *text* opens a vector root."""
    return _VECTOR_ROOT_RE.match(skip_prolog(text)) is not None


def stretch_to_fit(text: str) -> str:
    """Return *text* with ``preserveAspectRatio="none"`` on the vector root.

    The root then scales independently on each axis, so rendering at any
    width and height fills the whole viewport without letterboxing.
    Markup without a vector root is returned unchanged.
    """
    rest = skip_prolog(text)
    start = len(text) - len(rest)
    match = _ROOT_TAG_RE.match(text, start)
    if match is None:
        return text
    tag = _ASPECT_ATTR_RE.sub("", match.group(0))
    tag = tag[:4] + ' preserveAspectRatio="none"' + tag[4:]
    return text[:start] + tag + text[match.end():]


def looks_like_markup(text: str) -> bool:
    """True when the first significant character opens a tag."""
    return skip_prolog(text).startswith("<")


def sniff_vector_bytes(data: bytes) -> str | None:
    """Decode the head of *data* and return the full text if it is markup
    with a vector root, otherwise ``None``.
    """
    head = data[:SNIFF_BYTES]
    if head.startswith(b"\xef\xbb\xbf"):
        head = head[3:]
    if head.lstrip()[:1] != b"<":
        return None
    try:
        head_text = head.decode("utf-8", errors="strict")
    except UnicodeDecodeError:
        # Head may end mid-character; retry leniently for detection only.
        head_text = head.decode("utf-8", errors="ignore")
    if not is_vector_root(head_text):
        return None
    return strip_bom(data.decode("utf-8", errors="replace"))


def declares_entities(text: str) -> bool:
    """True when the markup declares entities (expansion attacks, XXE)."""
    return _ENTITY_RE.search(text) is not None


def _parse_length(value: str | None) -> float | None:
    if value is None:
        return None
    match = _LENGTH_RE.match(value)
    if match is None:
        return None
    length = float(match.group(1))
    return length if length > 0 else None


def intrinsic_size(text: str, default: float) -> tuple[float, float]:
    """Return the intrinsic (width, height) of vector markup.

    Uses the root ``width``/``height`` attributes when they are absolute
    lengths, then the ``viewBox``, then *default*.  When only one side is
    known, the other is derived from the viewBox aspect ratio if present.

    Raises:
        xml.etree.ElementTree.ParseError: If the markup is not well formed.
    """
    root = ET.fromstring(skip_prolog(text))

    width = _parse_length(root.get("width"))
    height = _parse_length(root.get("height"))

    view_box = None
    raw_view_box = root.get("viewBox")
    if raw_view_box:
        parts = re.split(r"[\s,]+", raw_view_box.strip())
        if len(parts) == 4:
            try:
                vb_width, vb_height = float(parts[2]), float(parts[3])
            except ValueError:
                vb_width = vb_height = 0.0
            if vb_width > 0 and vb_height > 0:
                view_box = (vb_width, vb_height)

    if width and height:
        return width, height
    if view_box is not None:
        ratio = view_box[0] / view_box[1]
        if width:
            return width, width / ratio
        if height:
            return height * ratio, height
        return view_box
    return width or default, height or default
