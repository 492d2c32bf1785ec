"""Load background and photo rasters from bytes, files, URLs or data URIs."""
from __future__ import annotations

import base64
import binascii
import logging
from io import BytesIO
from pathlib import Path
from typing import Union

import fitz  # PyMuPDF
import requests
from PIL import Image, ImageFile, UnidentifiedImageError

import config

ImageFile.LOAD_TRUNCATED_IMAGES = True

logger = logging.getLogger(__name__)

RasterSource = Union[bytes, bytearray, str, Path, Image.Image]

_PDF_MAGIC = b"%PDF"


class RasterLoadError(OSError):
    """Raised when a raster source cannot be fetched or decoded."""


def _describe(source: object) -> str:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    text = str(source)
    if text.startswith("data:"):
        return text[:30] + "..."
    return text


def _decode_data_uri(uri: str) -> bytes:
    header, _, payload = uri.partition(",")
    if not payload:
        raise RasterLoadError("Malformed data URI")
    try:
        if ";base64" in header:
            return base64.b64decode(payload, validate=True)
        return payload.encode("latin-1")
    except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
        raise RasterLoadError(f"Malformed data URI: {exc}") from exc


def _fetch_url(url: str) -> bytes:
    try:
        response = requests.get(url, timeout=config.HTTP_TIMEOUT)
    except requests.RequestException as exc:
        raise RasterLoadError(f"Could not download {url}: {exc}") from exc
    if response.status_code != 200:
        raise RasterLoadError(f"Could not download {url}: HTTP {response.status_code}")
    return response.content


def read_source_bytes(source: Union[bytes, bytearray, str, Path]) -> bytes:
    """Return the raw bytes behind ``source`` without decoding them."""

    if isinstance(source, (bytes, bytearray)):
        return bytes(source)

    text = str(source)
    if text.startswith("data:"):
        return _decode_data_uri(text)
    if text.startswith(("http://", "https://")):
        return _fetch_url(text)

    path = Path(text)
    try:
        return path.read_bytes()
    except OSError as exc:
        raise RasterLoadError(f"Could not read {path}: {exc}") from exc


def rasterize_pdf(data: bytes, dpi: int = config.PDF_RASTER_DPI) -> Image.Image:
    """Convert the first page of a PDF to a Pillow image."""
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise RasterLoadError(f"Could not open PDF: {exc}") from exc
    try:
        if doc.page_count == 0:
            raise RasterLoadError("PDF has no pages")
        pix = doc[0].get_pixmap(dpi=dpi)
        img_bytes = pix.tobytes("png")
    finally:
        doc.close()
    return decode_image(img_bytes)


def decode_image(data: bytes, *, source: str = "<bytes>") -> Image.Image:
    """Fully decode ``data`` into an image; PDFs are rasterized."""

    if data[:4] == _PDF_MAGIC:
        return rasterize_pdf(data)

    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise RasterLoadError(f"Could not decode image {source}: {exc}") from exc
    return image


def load_raster(source: RasterSource) -> Image.Image:
    """Fetch and decode ``source``.

    Every failure (missing file, network error, non-200 status, unknown
    format) surfaces as :class:`RasterLoadError`.
    """

    if isinstance(source, Image.Image):
        return source.copy()

    description = _describe(source)
    logger.debug("Loading raster %s", description)
    data = read_source_bytes(source)
    if not data:
        raise RasterLoadError(f"Empty raster source {description}")
    return decode_image(data, source=description)


__all__ = [
    "RasterLoadError",
    "RasterSource",
    "decode_image",
    "load_raster",
    "rasterize_pdf",
    "read_source_bytes",
]
