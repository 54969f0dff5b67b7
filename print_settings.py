import math
from dataclasses import dataclass
from typing import Generic, TypeVar

MM_PER_INCH = 25.4

T = TypeVar("T")


def round_half_away(value):
    """Round to the nearest integer, ties away from zero"""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def mm_to_inches(mm):
    """Convert millimeters to inches"""
    return mm / MM_PER_INCH


def inches_to_mm(inches):
    """Convert inches to millimeters"""
    return inches * MM_PER_INCH


def mm_to_pixels(mm, dpi):
    """Convert millimeters to the nearest whole pixel count at given DPI"""
    return round_half_away(mm * dpi / MM_PER_INCH)


def pixels_to_mm(px, dpi):
    """Convert a pixel count back to millimeters at given DPI"""
    return px * MM_PER_INCH / dpi


@dataclass(frozen=True)
class Length:
    """A physical length in millimeters."""

    mm: float

    def __post_init__(self):
        if not math.isfinite(self.mm):
            raise ValueError(f"Length must be finite, got {self.mm!r}")

    def __add__(self, other: "Length") -> "Length":
        if not isinstance(other, Length):
            return NotImplemented
        return Length(self.mm + other.mm)

    def __sub__(self, other: "Length") -> "Length":
        if not isinstance(other, Length):
            return NotImplemented
        return Length(self.mm - other.mm)

    def to_pixels(self, dpi: int) -> int:
        return mm_to_pixels(self.mm, dpi)

    @classmethod
    def from_pixels(cls, px: int, dpi: int) -> "Length":
        return cls(pixels_to_mm(px, dpi))


@dataclass(frozen=True)
class Dimensions(Generic[T]):
    """
    A (width, height) pair of lengths or pixel counts.

    Both operands of ``+`` and ``-`` must use the same unit. A difference may
    come out negative; that is only ever used as a centering delta.
    """

    width: T
    height: T

    def _check_same_unit(self, other):
        if not isinstance(other, Dimensions):
            return False
        if type(self.width) is not type(other.width) or type(self.height) is not type(other.height):
            raise TypeError(
                f"Cannot combine {type(self.width).__name__} and {type(other.width).__name__} dimensions"
            )
        return True

    def __add__(self, other: "Dimensions[T]") -> "Dimensions[T]":
        if not self._check_same_unit(other):
            return NotImplemented
        return Dimensions(self.width + other.width, self.height + other.height)

    def __sub__(self, other: "Dimensions[T]") -> "Dimensions[T]":
        if not self._check_same_unit(other):
            return NotImplemented
        return Dimensions(self.width - other.width, self.height - other.height)

    def __iter__(self):
        yield self.width
        yield self.height

    def ratio(self) -> float:
        width, height = self.width, self.height
        if isinstance(width, Length):
            width, height = width.mm, height.mm
        return float(width) / float(height)

    def to_pixels(self, dpi: int) -> "Dimensions[int]":
        """Convert each millimeter component to pixels independently."""
        return Dimensions(self.width.to_pixels(dpi), self.height.to_pixels(dpi))

    def to_length(self, dpi: int) -> "Dimensions[Length]":
        return Dimensions(Length.from_pixels(self.width, dpi), Length.from_pixels(self.height, dpi))

    def as_tuple(self):
        return (self.width, self.height)


def mm_size(width_mm, height_mm) -> Dimensions[Length]:
    """Shorthand for a millimeter Dimensions pair"""
    return Dimensions(Length(width_mm), Length(height_mm))
