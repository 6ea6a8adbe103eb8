"""Page capture: turn photos into bounded-size JPEG pages for the model."""

from __future__ import annotations

import base64
import binascii
import io
import os
import re
from dataclasses import dataclass
from typing import Union

from PIL import Image, ImageOps, UnidentifiedImageError

from .logging import get_logger

LOG = get_logger("capture")

MAX_SIDE_PX = 2200
JPEG_QUALITY = 95

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=.-]+)*;base64,(?P<data>.+)$", re.DOTALL)


@dataclass(frozen=True)
class CapturedPage:
    data: bytes
    mime_type: str = "image/jpeg"
    width: int = 0
    height: int = 0

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"

    @classmethod
    def from_data_url(cls, url: str) -> "CapturedPage":
        return page_from_data_url(url)


def _prepare(raw: bytes, *, max_side: int, quality: int) -> CapturedPage:
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Not a readable image: {exc}") from exc

    fmt = (img.format or "").upper()
    rotated = _has_orientation(img)
    oriented = ImageOps.exif_transpose(img) if rotated else img
    w, h = oriented.size

    if max(w, h) <= max_side and fmt == "JPEG" and not rotated:
        return CapturedPage(data=raw, mime_type="image/jpeg", width=w, height=h)

    if max(w, h) > max_side:
        scale = max_side / float(max(w, h))
        nw, nh = max(1, round(w * scale)), max(1, round(h * scale))
        LOG.debug(f"Downscaling page {w}x{h} -> {nw}x{nh}")
        oriented = oriented.resize((nw, nh), Image.Resampling.LANCZOS)

    buf = io.BytesIO()
    oriented.convert("RGB").save(buf, format="JPEG", quality=quality)
    nw, nh = oriented.size
    return CapturedPage(data=buf.getvalue(), mime_type="image/jpeg", width=nw, height=nh)


def _has_orientation(img: Image.Image) -> bool:
    try:
        return img.getexif().get(0x0112, 1) not in (None, 1)
    except (AttributeError, ValueError):
        return False


def load_page(
    source: Union[str, os.PathLike, bytes],
    *,
    max_side: int = MAX_SIDE_PX,
    quality: int = JPEG_QUALITY,
) -> CapturedPage:
    """Load a photo and return it as a JPEG page whose longest side is <= max_side.

    EXIF orientation is applied. A JPEG already within bounds is passed through
    untouched; everything else is re-encoded at ``quality``.
    """
    if isinstance(source, bytes):
        raw = source
    else:
        with open(source, "rb") as f:
            raw = f.read()
        LOG.debug(f"Read {len(raw)} bytes from {source}")
    return _prepare(raw, max_side=max_side, quality=quality)


def page_from_data_url(url: str, *, max_side: int = MAX_SIDE_PX, quality: int = JPEG_QUALITY) -> CapturedPage:
    """Decode a browser data URL (data:image/...;base64,...) into a page."""
    m = _DATA_URL_RE.match((url or "").strip())
    if not m:
        raise ValueError("Expected a base64 data URL")
    mime = m.group("mime") or ""
    if mime and not mime.startswith("image/"):
        raise ValueError(f"Unsupported data URL type: {mime}")
    try:
        raw = base64.b64decode(m.group("data"), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return _prepare(raw, max_side=max_side, quality=quality)
