"""Geometry helpers for placing a source raster inside a destination box."""
from __future__ import annotations

from typing import NamedTuple


class Box(NamedTuple):
    x: float
    y: float
    w: float
    h: float

    @property
    def center_x(self) -> float:
        return self.x + self.w / 2

    @property
    def center_y(self) -> float:
        return self.y + self.h / 2


class CoverFit(NamedTuple):
    scale: float
    offset_x: float
    offset_y: float
    draw_w: float
    draw_h: float


def cover_fit(src_w: float, src_h: float, dst_w: float, dst_h: float) -> CoverFit:
    """Scale ``src`` so it fills ``dst`` completely, centring the overflow.

    Offsets are relative to the destination box and are zero or negative:
    the part of the scaled source that falls outside the box is cropped
    evenly from both sides.
    """

    if src_w <= 0 or src_h <= 0 or dst_w <= 0 or dst_h <= 0:
        raise ValueError(
            f"cover_fit needs positive sizes, got src={src_w}x{src_h} dst={dst_w}x{dst_h}"
        )

    scale = max(dst_w / src_w, dst_h / src_h)
    draw_w = src_w * scale
    draw_h = src_h * scale
    return CoverFit(
        scale,
        (dst_w - draw_w) / 2,
        (dst_h - draw_h) / 2,
        draw_w,
        draw_h,
    )


__all__ = ["Box", "CoverFit", "cover_fit"]
