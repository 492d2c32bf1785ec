"""Composite badge faces (front and back) from resolved template layouts."""
from __future__ import annotations

import datetime
import logging
from pathlib import Path
from typing import Callable, Dict, NamedTuple, Optional, Union
from zoneinfo import ZoneInfo

from PIL import Image, ImageDraw

import config
from orientation_util import correct_orientation
from raster_loader import RasterLoadError, RasterSource, load_raster, read_source_bytes
from rounded_image import draw_rounded_cover
from template_layout import (
    DOC_NUMBER_MASK,
    BackLayout,
    BackVariant,
    FrontLayout,
    Record,
    resolve_back_template,
    resolve_front_template,
)
from text_fit_util import FitResult, fit_labeled_pair, fit_text

logger = logging.getLogger(__name__)

BACKGROUND_FILL = (255, 255, 255)

Loader = Callable[[RasterSource], Image.Image]
PhotoFile = Union[bytes, bytearray, str, Path]
FrontTemplate = Union[FrontLayout, Record, None]
BackTemplate = Union[BackLayout, Record, None]


class PhotoMissingError(ValueError):
    """Raised when a front render gets neither a photo file nor a photo URL."""


class BadgeRenderError(RuntimeError):
    """Raised when a badge face cannot be rendered; the message is user-facing."""


class RenderedFace(NamedTuple):
    image: Image.Image
    fits: Dict[str, FitResult]


def admission_date(today: Union[datetime.date, datetime.datetime, None] = None) -> str:
    """Today's date as ``dd/mm/yyyy`` in the badge time zone."""
    tz = ZoneInfo(config.BADGE_TIMEZONE)
    if today is None:
        today = datetime.datetime.now(tz)
    elif isinstance(today, datetime.datetime):
        if today.tzinfo is None:
            today = today.replace(tzinfo=datetime.timezone.utc)
        today = today.astimezone(tz)
    return today.strftime("%d/%m/%Y")


def load_photo(
    photo_file: Optional[PhotoFile] = None,
    photo_url: Optional[str] = None,
    *,
    loader: Loader = load_raster,
) -> Image.Image:
    """Prefer the uploaded file (orientation corrected), else the URL."""
    if photo_file is not None:
        data = photo_file if isinstance(photo_file, (bytes, bytearray)) else read_source_bytes(photo_file)
        return correct_orientation(bytes(data))
    if photo_url:
        return loader(photo_url)
    raise PhotoMissingError("No photo provided")


def _new_surface(width: int, height: int) -> Image.Image:
    return Image.new("RGB", (width, height), BACKGROUND_FILL)


def _draw_background(
    surface: Image.Image, file_url: str, has_background: bool, loader: Loader
) -> bool:
    if not has_background:
        return False
    try:
        background = loader(file_url)
    except RasterLoadError as exc:
        logger.warning("Could not load template image, using white background: %s", exc)
        return False

    background = background.convert("RGBA").resize(surface.size, Image.Resampling.LANCZOS)
    surface.paste(background, (0, 0), background)
    return True


def render_front(
    template: FrontTemplate,
    photo_file: Optional[PhotoFile] = None,
    photo_url: Optional[str] = None,
    name: str = "",
    role: str = "",
    *,
    loader: Loader = load_raster,
) -> RenderedFace:
    """Render the front face: background, rounded photo, name and role.

    Raises :class:`BadgeRenderError` when the photo cannot be obtained; a
    missing or broken background only degrades to a white canvas.
    """

    layout = template if isinstance(template, FrontLayout) else resolve_front_template(template)

    surface = _new_surface(layout.width, layout.height)
    _draw_background(surface, layout.file_url, layout.has_background, loader)

    try:
        photo = load_photo(photo_file, photo_url, loader=loader)
    except (RasterLoadError, PhotoMissingError) as exc:
        raise BadgeRenderError(f"Erro ao carregar a foto do crachá: {exc}") from exc

    region = layout.photo
    draw_rounded_cover(surface, photo, region.x, region.y, region.w, region.h, region.radius)

    draw = ImageDraw.Draw(surface)
    fits = {}
    for key, text in (("name", name), ("role", role)):
        text_region = getattr(layout, key)
        fits[key] = fit_text(
            draw,
            (text or "").strip(),
            text_region.box,
            text_region.max_size,
            text_region.min_size,
            text_region.weight,
            text_region.color,
        )
        logger.debug("Front %s fitted at %spx", key, fits[key].font_size)

    return RenderedFace(surface, fits)


def render_back(
    template: BackTemplate,
    name: str = "",
    *,
    today: Union[datetime.date, datetime.datetime, None] = None,
    loader: Loader = load_raster,
) -> RenderedFace:
    """Render the back face: name, masked document number, admission date."""
    layout = template if isinstance(template, BackLayout) else resolve_back_template(template)

    surface = _new_surface(layout.width, layout.height)
    _draw_background(surface, layout.file_url, layout.has_background, loader)

    draw = ImageDraw.Draw(surface)
    fields = [
        ("name", layout.name_label, (name or "").strip()),
        ("doc_num", layout.doc_num_label, DOC_NUMBER_MASK),
        ("admission", layout.admission_label, admission_date(today)),
    ]

    fits = {}
    for key, label, value in fields:
        if not value:
            continue
        region = getattr(layout, key)
        if layout.variant is BackVariant.LABELED_PAIR:
            fits[key] = fit_labeled_pair(
                draw,
                label,
                value,
                region.box,
                region.max_size,
                region.min_size,
                region.weight,
                region.color,
                label_size=layout.label_size,
                label_weight=layout.label_weight,
            )
        else:
            fits[key] = fit_text(
                draw,
                value,
                region.box,
                region.max_size,
                region.min_size,
                region.weight,
                region.color,
            )

    return RenderedFace(surface, fits)


__all__ = [
    "BadgeRenderError",
    "Loader",
    "PhotoMissingError",
    "RenderedFace",
    "admission_date",
    "load_photo",
    "render_back",
    "render_front",
]
