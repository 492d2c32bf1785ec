"""Bake EXIF camera orientation into photo pixels."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from PIL import Image

from raster_loader import decode_image

logger = logging.getLogger(__name__)

ORIENTATION_TAG = 0x0112

# EXIF orientation -> the single transpose that makes the photo upright.
_TRANSPOSES: Dict[int, Optional[Image.Transpose]] = {
    1: None,
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}

SWAPPED_ORIENTATIONS = frozenset({5, 6, 7, 8})


def read_orientation(image: Image.Image) -> int:
    """Return the EXIF orientation of ``image`` (1 when absent or unreadable)."""
    try:
        value = image.getexif().get(ORIENTATION_TAG)
    except Exception as exc:  # corrupt EXIF blocks raise a variety of errors
        logger.warning("Could not read EXIF data, using image as-is: %s", exc)
        return 1

    if value is None:
        return 1
    try:
        orientation = int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric EXIF orientation %r", value)
        return 1
    if orientation not in _TRANSPOSES:
        logger.warning("Ignoring out-of-range EXIF orientation %d", orientation)
        return 1
    return orientation


def apply_orientation(image: Image.Image, orientation: int) -> Image.Image:
    """Return a new image with the transform for ``orientation`` applied."""
    method = _TRANSPOSES.get(orientation)
    if method is None:
        return image.copy()
    return image.transpose(method)


def _clear_orientation(image: Image.Image) -> None:
    exif = image.getexif()
    if ORIENTATION_TAG in exif:
        del exif[ORIENTATION_TAG]
    image.info["exif"] = exif.tobytes()


def correct_orientation(data: bytes) -> Image.Image:
    """Decode ``data`` and return an upright copy of the photo.

    Missing or broken metadata is treated as identity. The returned image
    carries no orientation tag, so correcting it again changes nothing.
    Undecodable bytes raise :class:`raster_loader.RasterLoadError`.
    """

    image = decode_image(data, source="<photo>")
    orientation = read_orientation(image)
    upright = apply_orientation(image, orientation)
    if orientation != 1:
        logger.debug(
            "Applied EXIF orientation %d: %sx%s -> %sx%s",
            orientation,
            image.width,
            image.height,
            upright.width,
            upright.height,
        )
    try:
        _clear_orientation(upright)
    except Exception as exc:
        logger.warning("Could not rewrite EXIF block: %s", exc)
        upright.info.pop("exif", None)
    return upright


__all__ = [
    "ORIENTATION_TAG",
    "SWAPPED_ORIENTATIONS",
    "apply_orientation",
    "correct_orientation",
    "read_orientation",
]
