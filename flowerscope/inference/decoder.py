"""
Decoding of the flower model's fixed-layout output tensor.

Each of the K output rows holds six float values:

    [left, top, right, bottom, score, class_id]

with box coordinates normalised to [0, 1] relative to the image. Rows are
kept only when score is strictly above the threshold; the class id is
truncated to an integer and resolved through the label table. Output keeps
the original row order.

Author: FlowerScope Team
"""

import logging
from typing import List, Sequence

import numpy as np

from ..exceptions import LabelIndexError, ModelOutputError
from ..types import BoundingBox, Detection
from .labels import LabelTable

logger = logging.getLogger(__name__)

VALUES_PER_ROW = 6
LEFT, TOP, RIGHT, BOTTOM, SCORE, CLASS_ID = range(VALUES_PER_ROW)


class DetectionDecoder:
    """Stateless transform from raw output tensor to pixel-space detections."""

    def __init__(self, labels: LabelTable, score_threshold: float = 0.5):
        """
        Initialize decoder.

        Args:
            labels: Label table indexed by class id
            score_threshold: Rows need a score strictly greater than this
        """
        self.labels = labels
        self.score_threshold = score_threshold

    def decode(self, output: np.ndarray, image_width: int, image_height: int) -> List[Detection]:
        """
        Decode raw output into detections for an image of the given size.

        Args:
            output: Output tensor of any shape holding K * 6 floats
            image_width: Target image width in pixels
            image_height: Target image height in pixels

        Returns:
            Detections in output row order

        Raises:
            ModelOutputError: Output size is not a multiple of six, or a kept
                              row holds a non-finite box or class id
            LabelIndexError: A kept row references a class id outside the table
        """
        values = np.asarray(output, dtype=np.float32).reshape(-1)
        if values.size % VALUES_PER_ROW != 0:
            raise ModelOutputError(f"Output tensor has {values.size} values, not a multiple of {VALUES_PER_ROW}")

        detections = []
        for row in range(values.size // VALUES_PER_ROW):
            offset = row * VALUES_PER_ROW
            score = float(values[offset + SCORE])

            if not score > self.score_threshold:
                continue

            row_values = values[offset:offset + VALUES_PER_ROW]
            if not np.all(np.isfinite(row_values)):
                raise ModelOutputError(f"Output row {row} holds non-finite values: {row_values.tolist()}")

            class_id = int(values[offset + CLASS_ID])
            left = float(values[offset + LEFT]) * image_width
            top = float(values[offset + TOP]) * image_height
            right = float(values[offset + RIGHT]) * image_width
            bottom = float(values[offset + BOTTOM]) * image_height

            try:
                label = self.labels[class_id]
            except LabelIndexError as e:
                raise LabelIndexError(class_id, len(self.labels), row=row) from e

            detections.append(Detection(
                box=BoundingBox.from_corners(left, top, right, bottom),
                label=label,
                score=score,
                class_id=class_id
            ))

        logger.debug(f"Decoded {len(detections)} detections above {self.score_threshold}")
        return detections


def format_summary(detections: Sequence[Detection]) -> str:
    """One line per detection: '<label> (<score:.2f>)'."""
    return "".join(f"{detection.display_text}\n" for detection in detections)
