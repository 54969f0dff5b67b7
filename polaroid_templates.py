from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from print_settings import Dimensions, Length, mm_size, round_half_away

# Images are rarely exactly square, so anything whose rounded ratio falls
# inside [1/1.1, 1.1] gets the square template.
RATIO_TOLERANCE = 1.1


class TemplateKind(Enum):
    """Physical polaroid layouts"""
    SQUARE = "square"
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(frozen=True)
class PolaroidTemplate:
    """Physical constants of one polaroid layout, all lengths in millimeters."""

    kind: TemplateKind
    image_size: Dimensions[Length]
    border_thickness: Length
    border_color: str
    frame_size: Dimensions[Length]
    frame_color: str
    frame_top_offset: Optional[Length]
    output_size: Dimensions[Length]
    output_color: str


SQUARE = PolaroidTemplate(
    kind=TemplateKind.SQUARE,
    image_size=mm_size(79.0, 79.0),
    border_thickness=Length(0.2),
    border_color="#8b8989",  # snow4
    frame_size=mm_size(88.0, 107.0),
    frame_color="white",
    frame_top_offset=None,
    output_size=mm_size(102.0, 148.5),
    output_color="blue",
)

HORIZONTAL = PolaroidTemplate(
    kind=TemplateKind.HORIZONTAL,
    image_size=mm_size(92.0, 73.0),
    border_thickness=Length(0.2),
    border_color="#8b8989",  # snow4
    frame_size=mm_size(102.0, 102.0),
    frame_color="white",
    frame_top_offset=None,
    output_size=mm_size(148.5, 102.0),
    output_color="blue",
)

VERTICAL = PolaroidTemplate(
    kind=TemplateKind.VERTICAL,
    image_size=mm_size(61.0, 82.0),
    border_thickness=Length(0.2),
    border_color="#8b8989",  # snow4
    frame_size=mm_size(70.0, 105.0),
    frame_color="white",
    frame_top_offset=None,
    output_size=mm_size(102.0, 148.5),
    output_color="blue",
)

POLAROID_TEMPLATES: Dict[TemplateKind, PolaroidTemplate] = {
    TemplateKind.SQUARE: SQUARE,
    TemplateKind.HORIZONTAL: HORIZONTAL,
    TemplateKind.VERTICAL: VERTICAL,
}


def rounded_ratio(width: int, height: int) -> float:
    """Width/height ratio rounded to one decimal place"""
    if width <= 0 or height <= 0:
        raise ValueError(f"Image size must be positive, got {width}x{height}")
    return round_half_away(width * 10 / height) / 10


def classify_ratio(ratio: float) -> TemplateKind:
    if ratio > RATIO_TOLERANCE:
        return TemplateKind.HORIZONTAL
    if ratio < 1 / RATIO_TOLERANCE:
        return TemplateKind.VERTICAL
    return TemplateKind.SQUARE


def select_template(width: int, height: int) -> PolaroidTemplate:
    """Pick the polaroid layout matching an image's pixel size"""
    return POLAROID_TEMPLATES[classify_ratio(rounded_ratio(width, height))]
