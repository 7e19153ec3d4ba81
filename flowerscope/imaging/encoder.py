"""
Pixel-to-tensor encoding for the bundled flower model.

The model consumes a packed float32 buffer laid out row-major (row 0 first,
column 0 first within a row), channel-interleaved in R, G, B order, each
sample divided by 255.0. Buffer length is 4 * width * height * 3 bytes in
native byte order.
"""

import logging
from typing import Tuple

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

BYTES_PER_FLOAT = 4
CHANNELS = 3


class TensorEncoder:
    """Resize an image to the model resolution and pack it as float32."""

    def __init__(self, width: int = 224, height: int = 224):
        self.width = width
        self.height = height

    @classmethod
    def from_config(cls, config) -> "TensorEncoder":
        _, height, width, _ = config.get('model.input_shape', [1, 224, 224, 3])
        return cls(int(width), int(height))

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return (1, self.height, self.width, CHANNELS)

    @property
    def byte_length(self) -> int:
        return BYTES_PER_FLOAT * self.width * self.height * CHANNELS

    def resize(self, image: Image.Image) -> Image.Image:
        """Resize to exactly width x height, ignoring aspect ratio."""
        if image.mode != 'RGB':
            image = image.convert('RGB')
        if image.size == (self.width, self.height):
            return image
        return image.resize((self.width, self.height), Image.Resampling.BILINEAR)

    def encode_array(self, image: Image.Image) -> np.ndarray:
        """
        Encode image as a (1, H, W, 3) float32 array with values in [0, 1].

        Args:
            image: Decoded image of any size

        Returns:
            C-contiguous float32 array ready for the interpreter
        """
        pixels = np.asarray(self.resize(image), dtype=np.uint8)
        tensor = pixels.astype(np.float32) / np.float32(255.0)
        return np.ascontiguousarray(tensor.reshape(self.shape))

    def encode(self, image: Image.Image) -> bytes:
        """
        Encode image as a packed native-order float32 buffer.

        Args:
            image: Decoded image of any size

        Returns:
            Bytes of length 4 * width * height * 3
        """
        buffer = self.encode_array(image).tobytes()
        logger.debug(f"Encoded {image.size[0]}x{image.size[1]} image into {len(buffer)} byte tensor")
        return buffer

    def decode_buffer(self, buffer: bytes) -> np.ndarray:
        """View a packed buffer as a (1, H, W, 3) float32 array without copying."""
        if len(buffer) != self.byte_length:
            raise ValueError(f"Tensor buffer has {len(buffer)} bytes, expected {self.byte_length}")
        return np.frombuffer(buffer, dtype=np.float32).reshape(self.shape)
