"""
Overlay rendering of both detection layers.

The renderer is the single owner of drawing: it receives the two immutable
layers (flower detections and generic boxes) after both passes have
finished and draws them onto a fresh copy of the bounded decoded image.
The source image is never modified.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import cv2
import numpy as np
from PIL import Image

from ..types import BoundingBox, Detection

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]


@dataclass(frozen=True)
class OverlayStyle:
    """Stroke and text styling, colours in RGB."""

    custom_box_color: Color = (255, 0, 0)
    generic_box_color: Color = (0, 255, 0)
    text_color: Color = (255, 255, 255)
    stroke_width: int = 5
    text_size: int = 40
    text_offset: int = 10
    text_thickness: int = 2

    @classmethod
    def from_config(cls, config) -> "OverlayStyle":
        settings = config.get('rendering', {})
        return cls(
            custom_box_color=tuple(settings.get('custom_box_color', cls.custom_box_color)),
            generic_box_color=tuple(settings.get('generic_box_color', cls.generic_box_color)),
            text_color=tuple(settings.get('text_color', cls.text_color)),
            stroke_width=int(settings.get('stroke_width', cls.stroke_width)),
            text_size=int(settings.get('text_size', cls.text_size)),
            text_offset=int(settings.get('text_offset', cls.text_offset))
        )


def _corner_points(box: BoundingBox) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    return (int(round(box.left)), int(round(box.top))), (int(round(box.right)), int(round(box.bottom)))


class OverlayRenderer:
    """Draw detection layers onto a copy of an image."""

    FONT = cv2.FONT_HERSHEY_SIMPLEX

    def __init__(self, style: OverlayStyle = None):
        self.style = style or OverlayStyle()
        self._font_scale = cv2.getFontScaleFromHeight(self.FONT, self.style.text_size, self.style.text_thickness)

    def render(self, image: Image.Image,
               detections: Sequence[Detection] = (),
               generic_boxes: Sequence[BoundingBox] = ()) -> Image.Image:
        """
        Render both layers onto a new image.

        Flower detections get a stroked rectangle and their display text at
        (left, top - text_offset); generic boxes get a stroked rectangle in a
        distinct colour. Boxes are clamped to the image before drawing.

        Args:
            image: Bounded decoded image (left untouched)
            detections: Flower model detections in image pixel space
            generic_boxes: Generic detector boxes in image pixel space

        Returns:
            Annotated copy of image
        """
        canvas = np.array(image.convert('RGB'), dtype=np.uint8)
        height, width = canvas.shape[:2]
        style = self.style

        for detection in detections:
            box = detection.box.clamp(width, height)
            top_left, bottom_right = _corner_points(box)
            cv2.rectangle(canvas, top_left, bottom_right, style.custom_box_color, style.stroke_width)

            text_origin = (top_left[0], top_left[1] - style.text_offset)
            cv2.putText(canvas, detection.display_text, text_origin, self.FONT,
                        self._font_scale, style.text_color, style.text_thickness, cv2.LINE_AA)

        for box in generic_boxes:
            top_left, bottom_right = _corner_points(box.clamp(width, height))
            cv2.rectangle(canvas, top_left, bottom_right, style.generic_box_color, style.stroke_width)

        logger.debug(f"Rendered {len(detections)} flower boxes and {len(generic_boxes)} generic boxes")
        return Image.fromarray(canvas)
