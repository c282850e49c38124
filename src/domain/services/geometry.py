from __future__ import annotations

import math
from dataclasses import dataclass

from src.domain.constants import DEFAULT_DISPLAY_WIDTH, MIN_SECTION_HEIGHT
from src.domain.exceptions import InvalidRequestError


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero, symmetric in sign."""
    magnitude = int(math.floor(abs(value) + 0.5))
    return -magnitude if value < 0 else magnitude


@dataclass(frozen=True)
class GeometryResolver:
    """Maps between ratio space (0..1), editor display pixels and source pixels.

    The editor renders every section at `display_width` pixels wide, so a
    distance measured on screen has to be scaled by `source_width / display_width`
    before it can be applied to the stored image.
    """

    source_width: int
    display_width: int = DEFAULT_DISPLAY_WIDTH

    def __post_init__(self) -> None:
        if self.source_width <= 0:
            raise InvalidRequestError("source width must be > 0")
        if self.display_width <= 0:
            raise InvalidRequestError("display width must be > 0")

    @property
    def scale_factor(self) -> float:
        return self.source_width / self.display_width

    def display_to_source(self, pixels: float) -> int:
        return round_half_away(pixels * self.scale_factor)

    def source_to_display(self, pixels: float) -> int:
        return round_half_away(pixels / self.scale_factor)

    @staticmethod
    def ratio_to_source(ratio: float, extent: int) -> int:
        return round_half_away(ratio * extent)

    def ratio_to_display(self, ratio: float) -> int:
        return round_half_away(ratio * self.display_width)

    @staticmethod
    def source_to_ratio(pixels: float, extent: int) -> float:
        if extent <= 0:
            raise InvalidRequestError("extent must be > 0")
        return pixels / extent


def clamp_cut(amount: int, height: int, min_remaining: int = MIN_SECTION_HEIGHT) -> int:
    """Rows that may be removed from an image of `height` rows.

    Never leaves fewer than `min_remaining` rows and never goes negative, so a
    request on an already-short image degrades to a zero cut.
    """
    return max(0, min(abs(int(amount)), height - min_remaining))


def context_strip_height(height: int, max_pixels: int, ratio: float) -> int:
    # min(max_pixels, floor(height * ratio)), at least one row
    return max(1, min(max_pixels, int(math.floor(height * ratio))))
