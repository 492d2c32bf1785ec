"""Draw a cover-cropped photo into a rounded rectangle on a surface."""
from __future__ import annotations

import logging
import math

from PIL import Image, ImageChops, ImageDraw

from fit_util import cover_fit

logger = logging.getLogger(__name__)


def rounded_mask(w: int, h: int, radius: float) -> Image.Image:
    """Return an ``L`` mask, 255 inside the rounded rectangle, 0 outside."""
    mask = Image.new("L", (w, h), 0)
    rad = int(max(0, min(int(radius), min(w, h) // 2)))
    draw = ImageDraw.Draw(mask)
    if rad > 0:
        draw.rounded_rectangle([0, 0, w - 1, h - 1], radius=rad, fill=255)
    else:
        draw.rectangle([0, 0, w - 1, h - 1], fill=255)
    return mask


def _cover_crop(image: Image.Image, w: int, h: int) -> Image.Image:
    fit = cover_fit(image.width, image.height, w, h)
    scaled_w = max(w, int(math.ceil(fit.draw_w - 1e-6)))
    scaled_h = max(h, int(math.ceil(fit.draw_h - 1e-6)))
    scaled = image.resize((scaled_w, scaled_h), Image.Resampling.LANCZOS)

    left = int(round(-fit.offset_x))
    top = int(round(-fit.offset_y))
    left = min(max(left, 0), scaled_w - w)
    top = min(max(top, 0), scaled_h - h)
    return scaled.crop((left, top, left + w, top + h))


def draw_rounded_cover(
    surface: Image.Image,
    image: Image.Image,
    x: float,
    y: float,
    w: float,
    h: float,
    radius: float,
) -> None:
    """Paste ``image`` cover-fitted into ``(x, y, w, h)`` with rounded corners.

    The aspect ratio is preserved; overflow is cropped evenly. Pixels
    outside the rounded rectangle are left untouched on ``surface``.
    """

    box_w = int(round(w))
    box_h = int(round(h))
    if box_w <= 0 or box_h <= 0:
        logger.warning("Skipping photo draw into empty box %sx%s", w, h)
        return

    source = image.convert("RGBA")
    window = _cover_crop(source, box_w, box_h)

    mask = rounded_mask(box_w, box_h, radius)
    mask = ImageChops.multiply(mask, window.getchannel("A"))

    if surface.mode == "RGBA":
        patch = window
    else:
        patch = window.convert(surface.mode)
    surface.paste(patch, (int(round(x)), int(round(y))), mask)


__all__ = ["draw_rounded_cover", "rounded_mask"]
