"""Utility helpers for fitting single-line text within bounding boxes."""
from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import List, NamedTuple, Optional, Union

from PIL import ImageDraw, ImageFont

import config
from fit_util import Box

logger = logging.getLogger(__name__)

_WIDTH_PADDING_RATIO = 0.95
_HEIGHT_PADDING_RATIO = 0.90
_SIZE_STEP = 1
_BOLD_THRESHOLD = 600

DEFAULT_MIN_SIZE = 24
DEFAULT_WEIGHT = "700"
DEFAULT_COLOR = "#111111"
DEFAULT_LABEL_GAP = 6

_REGULAR_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
    "/Library/Fonts/Arial.ttf",
    "C:/Windows/Fonts/arial.ttf",
)
_BOLD_CANDIDATES = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/Library/Fonts/Arial Bold.ttf",
    "C:/Windows/Fonts/arialbd.ttf",
)

_WEIGHT_KEYWORDS = {
    "thin": 100,
    "light": 300,
    "normal": 400,
    "regular": 400,
    "medium": 500,
    "semibold": 600,
    "bold": 700,
    "bolder": 700,
    "black": 900,
}

Weight = Union[str, int]


class TextMetrics(NamedTuple):
    width: float
    height: float
    ascent: float
    descent: float


class FitResult(NamedTuple):
    font_size: int
    x: float
    baseline_y: float
    width: float
    height: float
    fits: bool


def _weight_value(weight: Optional[Weight]) -> int:
    if weight is None:
        return int(DEFAULT_WEIGHT)
    if isinstance(weight, int):
        return weight
    cleaned = str(weight).strip().lower()
    if cleaned.isdigit():
        return int(cleaned)
    return _WEIGHT_KEYWORDS.get(cleaned, int(DEFAULT_WEIGHT))


def is_bold(weight: Optional[Weight]) -> bool:
    return _weight_value(weight) >= _BOLD_THRESHOLD


def _resolve_font_path(weight: Optional[Weight]) -> Optional[Path]:
    bold = is_bold(weight)
    candidates: List[Path] = []
    configured = config.BADGE_FONT_BOLD if bold else config.BADGE_FONT_REGULAR
    if configured:
        candidates.append(Path(configured))
    candidates.extend(Path(p) for p in (_BOLD_CANDIDATES if bold else _REGULAR_CANDIDATES))

    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


@functools.lru_cache(maxsize=256)
def _load_font(font_path: Optional[str], size: int) -> ImageFont.FreeTypeFont:
    effective_size = max(1, int(size))
    if font_path:
        try:
            return ImageFont.truetype(font_path, effective_size)
        except OSError as exc:
            logger.warning("Could not load font %s: %s", font_path, exc)
    return ImageFont.load_default(size=effective_size)


def load_font(weight: Optional[Weight], size: int) -> ImageFont.FreeTypeFont:
    """Return a TrueType font for the CSS-like ``weight`` at ``size`` px."""
    path = _resolve_font_path(weight)
    return _load_font(str(path) if path is not None else None, int(size))


def measure_text(font: ImageFont.FreeTypeFont, text: str) -> TextMetrics:
    """Measure the advance width and the visual glyph height of ``text``.

    Height is ascent plus descent of the inked box around the baseline;
    when that box is empty the font size stands in for it.
    """

    size = float(getattr(font, "size", 0) or 0)
    if not text:
        return TextMetrics(0.0, size, size, 0.0)

    width = float(font.getlength(text))
    _, top, _, bottom = font.getbbox(text, anchor="ls")
    ascent = float(-top)
    descent = float(bottom)
    height = ascent + descent
    if height <= 0:
        return TextMetrics(width, size, size, 0.0)
    return TextMetrics(width, height, ascent, descent)


def _fits(metrics: TextMetrics, box_w: float, box_h: float) -> bool:
    return (
        metrics.width <= box_w * _WIDTH_PADDING_RATIO
        and metrics.height <= box_h * _HEIGHT_PADDING_RATIO
    )


def choose_font_size(
    text: str,
    box_w: float,
    box_h: float,
    max_size: int,
    min_size: int = DEFAULT_MIN_SIZE,
    weight: Optional[Weight] = DEFAULT_WEIGHT,
) -> int:
    """Return the largest size in ``[min_size, max_size]`` that fits the box.

    Falls back to ``min_size`` when nothing fits; the text may then overflow.
    A ``min_size`` above ``max_size`` is clamped down to ``max_size``.
    """

    max_size = max(1, int(max_size))
    min_size = min(max(1, int(min_size)), max_size)

    size = max_size
    while size >= min_size:
        if _fits(measure_text(load_font(weight, size), text), box_w, box_h):
            return size
        size -= _SIZE_STEP

    logger.debug("No size in [%d, %d] fits %r; using minimum", min_size, max_size, text)
    return min_size


def fit_text(
    draw: ImageDraw.ImageDraw,
    text: str,
    box: Box,
    max_size: int,
    min_size: int = DEFAULT_MIN_SIZE,
    weight: Optional[Weight] = DEFAULT_WEIGHT,
    color: str = DEFAULT_COLOR,
) -> FitResult:
    """Draw ``text`` centred in ``box`` at the largest size that fits.

    Returns the applied size and placement for diagnostics.
    """

    size = choose_font_size(text, box.w, box.h, max_size, min_size, weight)
    font = load_font(weight, size)
    metrics = measure_text(font, text)

    center_x = box.center_x
    baseline_y = box.center_y + metrics.height / 2 - metrics.descent

    if text:
        draw.text((center_x, baseline_y), text, font=font, fill=color, anchor="ms")

    return FitResult(
        size,
        center_x,
        baseline_y,
        metrics.width,
        metrics.height,
        _fits(metrics, box.w, box.h),
    )


def fit_labeled_pair(
    draw: ImageDraw.ImageDraw,
    label: str,
    value: str,
    box: Box,
    max_size: int,
    min_size: int = DEFAULT_MIN_SIZE,
    weight: Optional[Weight] = DEFAULT_WEIGHT,
    color: str = DEFAULT_COLOR,
    *,
    label_size: int = 20,
    label_weight: Optional[Weight] = "700",
    gap: float = DEFAULT_LABEL_GAP,
) -> FitResult:
    """Draw ``label`` at a fixed size followed by a fitted ``value``.

    Both runs share one baseline, left-aligned at ``box.x``. The value is
    fitted against the width left over after the label and ``gap``.
    """

    label_font = load_font(label_weight, label_size)
    label_metrics = measure_text(label_font, label)

    value_w = max(box.w - label_metrics.width - gap, 1.0)
    size = choose_font_size(value, value_w, box.h, max_size, min_size, weight)
    value_font = load_font(weight, size)
    value_metrics = measure_text(value_font, value)

    ascent = max(label_metrics.ascent, value_metrics.ascent)
    descent = max(label_metrics.descent, value_metrics.descent)
    baseline_y = box.center_y + (ascent + descent) / 2 - descent
    value_x = box.x + label_metrics.width + gap

    if label:
        draw.text((box.x, baseline_y), label, font=label_font, fill=color, anchor="ls")
    if value:
        draw.text((value_x, baseline_y), value, font=value_font, fill=color, anchor="ls")

    return FitResult(
        size,
        value_x,
        baseline_y,
        value_metrics.width,
        value_metrics.height,
        _fits(value_metrics, value_w, box.h),
    )


__all__ = [
    "FitResult",
    "TextMetrics",
    "choose_font_size",
    "fit_labeled_pair",
    "fit_text",
    "is_bold",
    "load_font",
    "measure_text",
]
