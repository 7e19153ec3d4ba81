"""
Detection data structures shared by both detection passes.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in pixel coordinates of a specific image.

    Attributes:
        left: Left edge x
        top: Top edge y
        right: Right edge x (>= left)
        bottom: Bottom edge y (>= top)
    """

    left: float
    top: float
    right: float
    bottom: float

    def __post_init__(self):
        if self.left > self.right or self.top > self.bottom:
            raise ValueError(
                f"Invalid box ({self.left}, {self.top}, {self.right}, {self.bottom}): "
                f"left must be <= right and top <= bottom"
            )

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        """Build a box from two opposite corners given in any order."""
        return cls(min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return self.width * self.height

    def clamp(self, image_width: int, image_height: int) -> "BoundingBox":
        """Return this box clipped to [0, width] x [0, height]."""
        def _clip(value: float, upper: float) -> float:
            return min(max(value, 0.0), float(upper))

        return BoundingBox(
            _clip(self.left, image_width),
            _clip(self.top, image_height),
            _clip(self.right, image_width),
            _clip(self.bottom, image_height),
        )

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.left, self.top, self.right, self.bottom)

    def to_dict(self) -> Dict[str, float]:
        return {
            'left': float(self.left),
            'top': float(self.top),
            'right': float(self.right),
            'bottom': float(self.bottom)
        }


@dataclass(frozen=True)
class Detection:
    """
    Labelled, scored box produced by the flower model decoder.

    Attributes:
        box: Pixel-space bounding box
        label: Class name from the label table
        score: Confidence score in [0, 1]
        class_id: Integer class index into the label table
    """

    box: BoundingBox
    label: str
    score: float
    class_id: int

    @property
    def display_text(self) -> str:
        return f"{self.label} ({self.score:.2f})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'score': float(self.score),
            'class_id': int(self.class_id),
            'box': self.box.to_dict()
        }
