"""
Bounded image loading for FlowerScope.

Decodes an arbitrary-resolution photo into an RGB image no larger than a
target bound without materialising the full-resolution pixel buffer when the
codec can avoid it. Loading is two-pass:

1. Header: read only the header to learn the declared width and height.
2. Decode: reopen the source and decode at a power-of-two reduced scale.

JPEG sources are reduced inside the decoder through ``Image.draft`` (1/2, 1/4,
1/8 scales); any remaining integer factor is applied with ``Image.reduce``.
Since the power-of-two factor keeps the result at or above the bound, a final
aspect-preserving ``thumbnail`` brings both dimensions within it.

Pillow's decompression-bomb check runs on the declared header size, before
any reduced-scale decode could apply. The loader therefore opens sources with
that check disabled and enforces its own source limits: ``max_source_pixels``
for codecs that decode at reduced scale, and Pillow's own limit for codecs
that always decode at full size.

Author: FlowerScope Team
"""

import io
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from ..exceptions import ImageDecodeError, ImagePermissionError

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, bytes, BinaryIO]

# Formats whose decoder honours Image.draft
DRAFT_FORMATS = frozenset({'JPEG', 'MPO'})

DEFAULT_MAX_SOURCE_PIXELS = 1_000_000_000

# Pillow raises DecompressionBombError above twice MAX_IMAGE_PIXELS
FULL_DECODE_PIXEL_LIMIT = 2 * Image.MAX_IMAGE_PIXELS if Image.MAX_IMAGE_PIXELS else None

_pixel_check_lock = threading.Lock()


@contextmanager
def _pillow_pixel_check_disabled():
    """Suspend Pillow's global decompression-bomb check while a header is parsed."""
    with _pixel_check_lock:
        previous = Image.MAX_IMAGE_PIXELS
        Image.MAX_IMAGE_PIXELS = None
        try:
            yield
        finally:
            Image.MAX_IMAGE_PIXELS = previous


def compute_downsample_factor(width: int, height: int,
                              req_width: int, req_height: int) -> int:
    """
    Compute the power-of-two decode divisor for a source image.

    The factor doubles while both half-dimensions divided by the factor still
    reach the requested size. A source already within bounds gets 1.

    Args:
        width: Declared source width in pixels
        height: Declared source height in pixels
        req_width: Target width bound
        req_height: Target height bound

    Returns:
        Downsample factor (1, 2, 4, ...)

    Examples:
        >>> compute_downsample_factor(4000, 3000, 1024, 1024)
        2
        >>> compute_downsample_factor(800, 600, 1024, 1024)
        1
    """
    factor = 1

    if height > req_height or width > req_width:
        half_height = height // 2
        half_width = width // 2

        while (half_height // factor) >= req_height and (half_width // factor) >= req_width:
            factor *= 2

    return factor


class BoundedImageLoader:
    """
    Memory-bounded image decoder.

    Accepts a filesystem path, raw bytes or a seekable binary stream and
    always returns a decoded RGB ``PIL.Image.Image`` or raises; it never
    returns None.
    """

    def __init__(self, max_width: int = 1024, max_height: int = 1024,
                 max_source_pixels: Optional[int] = DEFAULT_MAX_SOURCE_PIXELS,
                 max_full_decode_pixels: Optional[int] = FULL_DECODE_PIXEL_LIMIT):
        """
        Initialize loader.

        Args:
            max_width: Width bound of the decoded image
            max_height: Height bound of the decoded image
            max_source_pixels: Largest declared source accepted for codecs
                               that decode at reduced scale; None for no limit
            max_full_decode_pixels: Largest declared source accepted for codecs
                                    that always decode at full size; None for no limit
        """
        if max_width < 1 or max_height < 1:
            raise ValueError(f"Image bound must be positive, got {max_width}x{max_height}")
        self.max_width = max_width
        self.max_height = max_height
        self.max_source_pixels = max_source_pixels
        self.max_full_decode_pixels = max_full_decode_pixels

    @classmethod
    def from_config(cls, config) -> "BoundedImageLoader":
        max_width, max_height = config.get('data.max_image_size', [1024, 1024])
        return cls(
            int(max_width),
            int(max_height),
            max_source_pixels=config.get('data.max_source_pixels', DEFAULT_MAX_SOURCE_PIXELS)
        )

    def _open(self, source: ImageSource) -> Image.Image:
        """Open source lazily; only the header is parsed at this point."""
        try:
            with _pillow_pixel_check_disabled():
                if isinstance(source, (str, Path)):
                    return Image.open(Path(source))
                if isinstance(source, (bytes, bytearray)):
                    return Image.open(io.BytesIO(source))
                if hasattr(source, 'read'):
                    source.seek(0)
                    return Image.open(source)
        except PermissionError as e:
            raise ImagePermissionError(f"Permission denied reading image: {source}") from e
        except FileNotFoundError as e:
            raise ImageDecodeError(f"Image file not found: {source}") from e
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ImageDecodeError(f"Cannot identify image: {e}") from e

        raise ImageDecodeError(f"Unsupported image source type: {type(source).__name__}")

    def _check_source_size(self, width: int, height: int, image_format: Optional[str]) -> None:
        if width <= 0 or height <= 0:
            raise ImageDecodeError(f"Image declares invalid size {width}x{height}")

        if image_format in DRAFT_FORMATS:
            limit = self.max_source_pixels
        else:
            limit = self.max_full_decode_pixels

        if limit is not None and width * height > limit:
            raise ImageDecodeError(
                f"Image size ({width * height} pixels) exceeds limit of {limit} pixels "
                f"for {image_format or 'unknown'} sources"
            )

    def probe_dimensions(self, source: ImageSource) -> Tuple[int, int]:
        """
        Read the declared image dimensions without decoding pixel data.

        Args:
            source: Path, bytes or binary stream

        Returns:
            (width, height) tuple

        Raises:
            ImageDecodeError: Header unreadable, or source larger than the
                              limit for its format
        """
        with self._open(source) as img:
            width, height = img.size
            image_format = img.format

        self._check_source_size(width, height, image_format)
        return width, height

    def load(self, source: ImageSource) -> Image.Image:
        """
        Decode source into an RGB image within the configured bound.

        Args:
            source: Path, bytes or binary stream

        Returns:
            Decoded RGB image, aspect ratio preserved within rounding

        Raises:
            ImageDecodeError: Source cannot be opened or decoded
            ImagePermissionError: Read access was denied
        """
        width, height = self.probe_dimensions(source)
        factor = compute_downsample_factor(width, height, self.max_width, self.max_height)

        with self._open(source) as img:
            try:
                remaining = factor
                if factor > 1:
                    # No-op for codecs without reduced-scale decoding
                    img.draft('RGB', (max(1, width // factor), max(1, height // factor)))
                    draft_scale = max(1, round(width / img.size[0]))
                    remaining = max(1, factor // draft_scale)

                img.load()
                decoded = img.reduce(remaining) if remaining > 1 else img
                decoded = decoded.convert('RGB')

            except (OSError, ValueError, SyntaxError) as e:
                raise ImageDecodeError(f"Failed to decode image: {e}") from e

        if decoded.width > self.max_width or decoded.height > self.max_height:
            decoded.thumbnail((self.max_width, self.max_height), Image.Resampling.BILINEAR)

        logger.debug(f"Decoded {width}x{height} source with factor {factor} "
                     f"to {decoded.width}x{decoded.height}")
        return decoded
