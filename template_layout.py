"""Badge template records and their resolution into complete layouts.

Store rows may be partial (older schemas, admin edits in progress). Every
renderer works from a resolved layout instead: each field of the record is
merged against a fully specified default so no draw call ever sees a
missing value.
"""
from __future__ import annotations

import enum
import logging
import math
from typing import Mapping, NamedTuple, Optional

from PIL import ImageColor

import config
from fit_util import Box

logger = logging.getLogger(__name__)

NO_BACKGROUND = "default-template"

DOC_NUMBER_MASK = "***.***.123-45"

Record = Mapping[str, object]


class BackVariant(enum.Enum):
    RICH = "rich"
    LABELED_PAIR = "labeled"


class PhotoRegion(NamedTuple):
    x: int
    y: int
    w: int
    h: int
    radius: int

    @property
    def box(self) -> Box:
        return Box(self.x, self.y, self.w, self.h)


class TextRegion(NamedTuple):
    x: int
    y: int
    w: int
    h: int
    color: str
    weight: str
    max_size: int
    min_size: int

    @property
    def box(self) -> Box:
        return Box(self.x, self.y, self.w, self.h)


class FrontLayout(NamedTuple):
    template_id: Optional[str]
    template_name: str
    file_url: str
    width: int
    height: int
    photo: PhotoRegion
    name: TextRegion
    role: TextRegion
    is_official: bool

    @property
    def has_background(self) -> bool:
        return self.file_url != NO_BACKGROUND


class BackLayout(NamedTuple):
    template_id: Optional[str]
    template_name: str
    file_url: str
    width: int
    height: int
    variant: BackVariant
    name: TextRegion
    doc_num: TextRegion
    admission: TextRegion
    name_label: str
    doc_num_label: str
    admission_label: str
    label_size: int
    label_weight: str
    is_official: bool

    @property
    def has_background(self) -> bool:
        return self.file_url != NO_BACKGROUND


class BadgeRecord(NamedTuple):
    full_name: str
    role: str
    photo_url: Optional[str] = None
    template_id: Optional[str] = None
    output_url: Optional[str] = None
    back_output_url: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None

    def to_row(self) -> dict:
        row = self._asdict()
        for generated in ("id", "created_at"):
            if row.get(generated) is None:
                row.pop(generated)
        return row


DEFAULT_FRONT_LAYOUT = FrontLayout(
    template_id=None,
    template_name="Template Padrão",
    file_url=NO_BACKGROUND,
    width=638,
    height=1013,
    photo=PhotoRegion(175, 120, 290, 340, 20),
    name=TextRegion(120, 480, 400, 80, "#111111", "700", 48, 24),
    role=TextRegion(170, 540, 300, 60, "#111111", "600", 36, 18),
    is_official=False,
)

DEFAULT_BACK_RICH_LAYOUT = BackLayout(
    template_id=None,
    template_name="Template Padrão do Verso",
    file_url=NO_BACKGROUND,
    width=1024,
    height=1536,
    variant=BackVariant.RICH,
    name=TextRegion(264, 244, 460, 28, "#000000", "600", 20, 24),
    doc_num=TextRegion(264, 302, 300, 28, "#000000", "600", 20, 12),
    admission=TextRegion(564, 302, 300, 28, "#000000", "600", 20, 12),
    name_label="NOME:",
    doc_num_label="DOC:",
    admission_label="ADMISSÃO:",
    label_size=20,
    label_weight="700",
    is_official=False,
)

# Older back templates carry no per-field regions; their three lines sit
# stacked in one column at fixed positions.
DEFAULT_BACK_LABELED_LAYOUT = DEFAULT_BACK_RICH_LAYOUT._replace(
    variant=BackVariant.LABELED_PAIR,
    name=TextRegion(140, 236, 744, 44, "#000000", "600", 24, 12),
    doc_num=TextRegion(140, 296, 744, 44, "#000000", "600", 24, 12),
    admission=TextRegion(140, 356, 744, 44, "#000000", "600", 24, 12),
)

# Row inserted by the store when no official back template exists yet.
DEFAULT_BACK_TEMPLATE_RECORD = {
    "name": "Template Padrão do Verso",
    "file_url": "/assets/badge-back-template.png",
    "width": 1024,
    "height": 1536,
    "name_x": 264,
    "name_y": 244,
    "name_w": 460,
    "name_h": 28,
    "name_color": "#000000",
    "name_weight": "600",
    "name_max_size": 20,
    "doc_num_x": 264,
    "doc_num_y": 302,
    "doc_num_w": 300,
    "doc_num_h": 28,
    "doc_num_color": "#000000",
    "doc_num_weight": "600",
    "doc_num_max_size": 20,
    "admission_x": 564,
    "admission_y": 302,
    "admission_w": 300,
    "admission_h": 28,
    "admission_color": "#000000",
    "admission_weight": "600",
    "admission_max_size": 20,
    "is_official": True,
}

_RICH_ONLY_PREFIXES = ("doc_num_", "admission_")


def is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, str):
        return not value.strip()
    return False


def _coerce_int(record: Record, key: str, default: int, *, positive: bool = False) -> int:
    value = record.get(key)
    if is_missing(value):
        return default
    try:
        number = int(round(float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Template field %s=%r is not numeric; using %s", key, value, default)
        return default
    if number < 0 or (positive and number == 0):
        logger.warning("Template field %s=%r out of range; using %s", key, value, default)
        return default
    return number


def _coerce_color(record: Record, key: str, default: str) -> str:
    value = record.get(key)
    if is_missing(value):
        return default
    color = str(value).strip()
    try:
        ImageColor.getrgb(color)
    except ValueError:
        logger.warning("Template field %s=%r is not a colour; using %s", key, value, default)
        return default
    return color


def _coerce_str(record: Record, key: str, default: str) -> str:
    value = record.get(key)
    if is_missing(value):
        return default
    return str(value).strip()


def _resolve_text_region(record: Record, prefix: str, default: TextRegion) -> TextRegion:
    return TextRegion(
        x=_coerce_int(record, f"{prefix}_x", default.x),
        y=_coerce_int(record, f"{prefix}_y", default.y),
        w=_coerce_int(record, f"{prefix}_w", default.w, positive=True),
        h=_coerce_int(record, f"{prefix}_h", default.h, positive=True),
        color=_coerce_color(record, f"{prefix}_color", default.color),
        weight=_coerce_str(record, f"{prefix}_weight", default.weight),
        max_size=_coerce_int(record, f"{prefix}_max_size", default.max_size, positive=True),
        min_size=_coerce_int(record, f"{prefix}_min_size", default.min_size, positive=True),
    )


def _template_id(record: Record) -> Optional[str]:
    value = record.get("id")
    return None if is_missing(value) else str(value)


def resolve_front_template(record: Optional[Record]) -> FrontLayout:
    """Merge a front template row with :data:`DEFAULT_FRONT_LAYOUT`."""
    if record is None:
        return DEFAULT_FRONT_LAYOUT

    default = DEFAULT_FRONT_LAYOUT
    photo = PhotoRegion(
        x=_coerce_int(record, "photo_x", default.photo.x),
        y=_coerce_int(record, "photo_y", default.photo.y),
        w=_coerce_int(record, "photo_w", default.photo.w, positive=True),
        h=_coerce_int(record, "photo_h", default.photo.h, positive=True),
        radius=_coerce_int(record, "photo_radius", default.photo.radius),
    )
    return FrontLayout(
        template_id=_template_id(record),
        template_name=_coerce_str(record, "name", default.template_name),
        file_url=_coerce_str(record, "file_url", default.file_url),
        width=_coerce_int(record, "width", default.width, positive=True),
        height=_coerce_int(record, "height", default.height, positive=True),
        photo=photo,
        name=_resolve_text_region(record, "name", default.name),
        role=_resolve_text_region(record, "role", default.role),
        is_official=bool(record.get("is_official") or False),
    )


def detect_back_variant(record: Optional[Record]) -> BackVariant:
    """RICH when the row carries any document-number or admission field."""
    if record is None:
        return BackVariant.RICH
    for key, value in record.items():
        if key.startswith(_RICH_ONLY_PREFIXES) and not is_missing(value):
            return BackVariant.RICH
    return BackVariant.LABELED_PAIR


def configured_back_variant(record: Optional[Record]) -> BackVariant:
    setting = config.BADGE_BACK_VARIANT
    if setting == BackVariant.RICH.value:
        return BackVariant.RICH
    if setting == BackVariant.LABELED_PAIR.value:
        return BackVariant.LABELED_PAIR
    if setting not in ("", "auto"):
        logger.warning("Unknown BADGE_BACK_VARIANT %r; detecting from the record", setting)
    return detect_back_variant(record)


def resolve_back_template(
    record: Optional[Record], variant: Optional[BackVariant] = None
) -> BackLayout:
    """Merge a back template row with the defaults of its shape.

    The shape is fixed here, once per record: explicitly, by deployment
    configuration, or from which optional fields the row carries. The
    labeled-pair shape always draws at its own fixed positions.
    """

    if variant is None:
        variant = configured_back_variant(record)
    if record is None:
        record = {}

    if variant is BackVariant.RICH:
        default = DEFAULT_BACK_RICH_LAYOUT
        name = _resolve_text_region(record, "name", default.name)
        doc_num = _resolve_text_region(record, "doc_num", default.doc_num)
        admission = _resolve_text_region(record, "admission", default.admission)
    else:
        default = DEFAULT_BACK_LABELED_LAYOUT
        color = _coerce_color(record, "name_color", default.name.color)
        weight = _coerce_str(record, "name_weight", default.name.weight)
        name = default.name._replace(color=color, weight=weight)
        doc_num = default.doc_num._replace(color=color, weight=weight)
        admission = default.admission._replace(color=color, weight=weight)

    return default._replace(
        template_id=_template_id(record),
        template_name=_coerce_str(record, "name", default.template_name),
        file_url=_coerce_str(record, "file_url", default.file_url),
        width=_coerce_int(record, "width", default.width, positive=True),
        height=_coerce_int(record, "height", default.height, positive=True),
        name=name,
        doc_num=doc_num,
        admission=admission,
        is_official=bool(record.get("is_official") or False),
    )


__all__ = [
    "BackLayout",
    "BackVariant",
    "BadgeRecord",
    "DEFAULT_BACK_LABELED_LAYOUT",
    "DEFAULT_BACK_RICH_LAYOUT",
    "DEFAULT_BACK_TEMPLATE_RECORD",
    "DEFAULT_FRONT_LAYOUT",
    "DOC_NUMBER_MASK",
    "FrontLayout",
    "NO_BACKGROUND",
    "PhotoRegion",
    "TextRegion",
    "configured_back_variant",
    "detect_back_variant",
    "is_missing",
    "resolve_back_template",
    "resolve_front_template",
]
