"""PNG and PDF output for rendered badge faces."""
from __future__ import annotations

import base64
import logging
import re
import unicodedata
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from PIL import Image
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

import config
from raster_loader import decode_image, read_source_bytes

logger = logging.getLogger(__name__)

PNG_DATA_URI_PREFIX = "data:image/png;base64,"

PngSource = Union[bytes, str, Image.Image]

_slug_strip_regex = re.compile(r"[^a-z0-9\s-]")
_slug_space_regex = re.compile(r"\s+")
_slug_dash_regex = re.compile(r"-+")


def to_png_bytes(image: Image.Image) -> bytes:
    out = BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def to_png_data_uri(image: Image.Image) -> str:
    """Encode ``image`` as a ``data:image/png;base64,...`` URI."""
    return PNG_DATA_URI_PREFIX + base64.b64encode(to_png_bytes(image)).decode("ascii")


def save_png(image: Image.Image, path: Union[str, Path]) -> Path:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(to_png_bytes(image))
    logger.info("Saved %s", destination)
    return destination


def create_slug(text: str) -> str:
    """Lowercase ASCII slug: diacritics removed, spaces turned into dashes."""
    value = unicodedata.normalize("NFD", (text or "").lower())
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    value = _slug_strip_regex.sub("", value)
    value = _slug_space_regex.sub("-", value)
    value = _slug_dash_regex.sub("-", value)
    return value.strip().strip("-")


def badge_filename(kind: str, name: str, extension: str = "png") -> str:
    """File name for a download: ``cracha-<kind>-<slug>.<ext>``.

    ``kind`` is ``frente``, ``verso`` or empty (used for the PDF).
    """

    parts = ["cracha"]
    if kind:
        parts.append(kind)
    slug = create_slug(name)
    if slug:
        parts.append(slug)
    return "-".join(parts) + "." + extension.lstrip(".")


def _as_image(source: PngSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    return decode_image(read_source_bytes(source), source="<badge png>")


def build_badge_pdf(
    front: PngSource,
    back: Optional[PngSource] = None,
    *,
    page_w_mm: float = config.PDF_PAGE_W_MM,
    page_h_mm: float = config.PDF_PAGE_H_MM,
) -> bytes:
    """Assemble a one- or two-page badge PDF.

    Each face is stretched to fill the whole page; the page size is fixed
    regardless of the raster's aspect ratio.
    """

    page_w = page_w_mm * mm
    page_h = page_h_mm * mm

    out = BytesIO()
    c = canvas.Canvas(out, pagesize=(page_w, page_h))
    c.setTitle("Crachá")

    c.drawInlineImage(_as_image(front).convert("RGB"), 0, 0, width=page_w, height=page_h)
    c.showPage()

    if back is not None:
        c.drawInlineImage(_as_image(back).convert("RGB"), 0, 0, width=page_w, height=page_h)
        c.showPage()

    c.save()
    return out.getvalue()


def save_badge_pdf(
    path: Union[str, Path], front: PngSource, back: Optional[PngSource] = None
) -> Path:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(build_badge_pdf(front, back))
    logger.info("Saved %s", destination)
    return destination


__all__ = [
    "PNG_DATA_URI_PREFIX",
    "badge_filename",
    "build_badge_pdf",
    "create_slug",
    "save_badge_pdf",
    "save_png",
    "to_png_bytes",
    "to_png_data_uri",
]
