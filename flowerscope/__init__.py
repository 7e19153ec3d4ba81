"""
FlowerScope

Dual-pass object detection for single photos: a bundled TensorFlow Lite flower
model with labelled boxes, plus a generic class-less object detector, both
overlaid on the picked image.

Author: FlowerScope Team
"""

__version__ = "1.0.0"
__author__ = "FlowerScope Team"
__email__ = "contact@example.com"

from .exceptions import (
    FlowerScopeError,
    AssetLoadError,
    ModelShapeMismatchError,
    ImageDecodeError,
    ImagePermissionError,
    LabelIndexError,
    ModelOutputError,
)

__all__ = [
    "FlowerScopeError",
    "AssetLoadError",
    "ModelShapeMismatchError",
    "ImageDecodeError",
    "ImagePermissionError",
    "LabelIndexError",
    "ModelOutputError",
]
