"""
Tests for tensor encoding.

Author: FlowerScope Team
"""

import pytest
import numpy as np
from PIL import Image

from flowerscope.imaging.encoder import TensorEncoder


class TestTensorEncoder:
    """Test pixel-to-float32 packing."""

    @pytest.fixture
    def encoder(self):
        return TensorEncoder(224, 224)

    @pytest.mark.unit
    def test_buffer_length(self, encoder):
        image = Image.new('RGB', (640, 480), (12, 34, 56))

        buffer = encoder.encode(image)

        assert len(buffer) == 4 * 224 * 224 * 3
        assert encoder.byte_length == len(buffer)

    @pytest.mark.unit
    def test_non_square_target_length(self):
        encoder = TensorEncoder(width=160, height=96)

        buffer = encoder.encode(Image.new('RGB', (1000, 1000)))

        assert len(buffer) == 4 * 160 * 96 * 3
        assert encoder.encode_array(Image.new('RGB', (10, 10))).shape == (1, 96, 160, 3)

    @pytest.mark.unit
    def test_values_within_unit_range(self, encoder):
        rng = np.random.default_rng(42)
        image = Image.fromarray(rng.integers(0, 256, (300, 400, 3), dtype=np.uint8))

        values = np.frombuffer(encoder.encode(image), dtype=np.float32)

        assert values.min() >= 0.0
        assert values.max() <= 1.0

    @pytest.mark.unit
    @pytest.mark.parametrize("color", [(255, 128, 0), (0, 0, 0), (255, 255, 255), (17, 99, 201)])
    def test_solid_color_round_trip(self, encoder, color):
        image = Image.new('RGB', (500, 333), color)

        triples = np.frombuffer(encoder.encode(image), dtype=np.float32).reshape(-1, 3)

        expected = np.array(color, dtype=np.float32) / 255.0
        np.testing.assert_allclose(triples, np.broadcast_to(expected, triples.shape), atol=1e-6)

    @pytest.mark.unit
    def test_row_major_rgb_layout(self):
        encoder = TensorEncoder(width=2, height=2)
        image = Image.new('RGB', (2, 2))
        image.putpixel((0, 0), (255, 0, 0))
        image.putpixel((1, 0), (0, 255, 0))
        image.putpixel((0, 1), (0, 0, 255))
        image.putpixel((1, 1), (51, 102, 153))

        values = np.frombuffer(encoder.encode(image), dtype=np.float32)

        np.testing.assert_allclose(values, [
            1.0, 0.0, 0.0,        # row 0, column 0
            0.0, 1.0, 0.0,        # row 0, column 1
            0.0, 0.0, 1.0,        # row 1, column 0
            0.2, 0.4, 0.6,        # row 1, column 1
        ], atol=1e-6)

    @pytest.mark.unit
    def test_encoding_is_deterministic(self, encoder, sample_images):
        image = Image.open(sample_images['small']).convert('RGB')

        assert encoder.encode(image) == encoder.encode(image)

    @pytest.mark.unit
    def test_buffer_in_native_byte_order(self, encoder):
        image = Image.new('RGB', (224, 224), (200, 100, 50))

        array = encoder.encode_array(image)
        view = encoder.decode_buffer(encoder.encode(image))

        assert array.dtype == np.float32
        assert array.flags['C_CONTIGUOUS']
        np.testing.assert_array_equal(view, array)

    @pytest.mark.unit
    def test_non_rgb_input_converted(self, encoder):
        image = Image.new('L', (50, 50), 255)

        values = np.frombuffer(encoder.encode(image), dtype=np.float32)

        assert np.all(values == 1.0)

    @pytest.mark.unit
    def test_decode_buffer_rejects_wrong_length(self, encoder):
        with pytest.raises(ValueError):
            encoder.decode_buffer(b'\x00' * 12)

    @pytest.mark.unit
    def test_resize_ignores_aspect_ratio(self, encoder):
        resized = encoder.resize(Image.new('RGB', (1000, 100)))

        assert resized.size == (224, 224)

    @pytest.mark.unit
    def test_from_config(self, mock_config):
        encoder = TensorEncoder.from_config(mock_config({'model': {'input_shape': [1, 128, 192, 3]}}))

        assert (encoder.width, encoder.height) == (192, 128)
