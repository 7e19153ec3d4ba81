"""
Image pre-processing for FlowerScope.

Implements the input side of the flower model pipeline:
- Two-pass, memory-bounded image decoding
- Fixed-resolution float32 tensor encoding
"""

from .loader import BoundedImageLoader, compute_downsample_factor
from .encoder import TensorEncoder

__all__ = [
    "BoundedImageLoader",
    "compute_downsample_factor",
    "TensorEncoder"
]
