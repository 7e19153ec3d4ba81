"""
Pytest configuration and fixtures for FlowerScope tests.

Fixtures generate real image files on disk and provide lightweight stand-ins
for the two inference engines so the pipeline can be exercised without the
bundled model.

Author: FlowerScope Team
"""

import pytest
import tempfile
import shutil
import threading
import numpy as np
from pathlib import Path
from PIL import Image
import logging

from flowerscope.imaging import BoundedImageLoader, TensorEncoder
from flowerscope.inference.labels import LabelTable
from flowerscope.inference.pipeline import FlowerAnalyzer
from flowerscope.rendering import OverlayRenderer
from flowerscope.types import BoundingBox

# Disable logging during tests unless explicitly needed
logging.getLogger().setLevel(logging.WARNING)

FLOWER_LABELS = ['daisy', 'dandelion', 'rose', 'sunflower', 'tulip']


def make_output(rows, max_detections=10):
    """
    Build a (1, K, 6) model output from row lists, zero-padded to K rows.

    Each row is [left, top, right, bottom, score, class_id].
    """
    output = np.zeros((1, max_detections, 6), dtype=np.float32)
    for i, row in enumerate(rows):
        output[0, i] = row
    return output


class FakeModelRunner:
    """Model runner returning a fixed output tensor."""

    def __init__(self, output=None, error=None,
                 input_shape=(1, 224, 224, 3), output_shape=(1, 10, 6)):
        self.input_shape = input_shape
        self.output_shape = output_shape
        self.output = output if output is not None else make_output([])
        self.error = error
        self.inputs = []
        self.closed = False

    def run(self, input_tensor):
        self.inputs.append(input_tensor)
        if self.error is not None:
            raise self.error
        return self.output

    def close(self):
        self.closed = True


class FakeGenericDetector:
    """Generic detector returning fixed boxes, optionally blocking its first call."""

    def __init__(self, boxes=(), error=None, block_first_call=False):
        self.boxes = list(boxes)
        self.error = error
        self.block_first_call = block_first_call
        self.started = threading.Event()
        self.release = threading.Event()
        self.images = []
        self._lock = threading.Lock()

    def detect(self, image):
        with self._lock:
            self.images.append(image.size)
            first_call = len(self.images) == 1

        if self.block_first_call and first_call:
            self.started.set()
            self.release.wait(10)

        if self.error is not None:
            raise self.error
        return list(self.boxes)


@pytest.fixture
def temp_directory():
    """
    Create temporary directory for tests with automatic cleanup.

    Yields:
        Path: Temporary directory path that will be cleaned up after test
    """
    temp_dir = tempfile.mkdtemp(prefix='flowerscope_test_')
    yield Path(temp_dir)

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def make_image_file(temp_directory):
    """
    Factory writing a solid or patterned image to disk.

    Returns:
        Callable(name, width, height, color=None, mode='RGB') -> Path
    """
    def _make(name, width, height, color=None, mode='RGB'):
        if color is None:
            # Gradient with a bright disc, so resampling is exercised
            y, x = np.mgrid[0:height, 0:width]
            array = np.zeros((height, width, 3), dtype=np.uint8)
            array[..., 0] = (x * 255 // max(width - 1, 1)).astype(np.uint8)
            array[..., 1] = (y * 255 // max(height - 1, 1)).astype(np.uint8)
            array[..., 2] = 120
            radius = min(width, height) // 4
            disc = (x - width // 2) ** 2 + (y - height // 2) ** 2 <= radius ** 2
            array[disc] = [255, 80, 160]
            image = Image.fromarray(array).convert(mode)
        else:
            image = Image.new(mode, (width, height), color)

        path = temp_directory / name
        image.save(path)
        return path

    return _make


@pytest.fixture
def sample_images(make_image_file, temp_directory):
    """
    Create sample images covering in-bound, oversized and invalid sources.

    Returns:
        Dictionary of named image paths
    """
    empty = temp_directory / 'empty.jpg'
    empty.touch()

    corrupt = temp_directory / 'corrupt.png'
    corrupt.write_bytes(b'\x89PNG\r\n\x1a\n' + b'not really a png' * 10)

    return {
        'small': make_image_file('small.jpg', 800, 600),
        'large_jpeg': make_image_file('large.jpg', 4000, 3000),
        'wide_png': make_image_file('wide.png', 4100, 2050),
        'square_png': make_image_file('square.png', 1500, 1500),
        'rgba_png': make_image_file('rgba.png', 320, 240, color=(10, 200, 30, 128), mode='RGBA'),
        'empty': empty,
        'corrupt': corrupt,
        'missing': temp_directory / 'does_not_exist.jpg'
    }


@pytest.fixture
def mock_config():
    """
    Provide a minimal configuration class for testing.

    Offers the dot-notation ``get`` of the real Config without touching
    files or logging.
    """
    class MockConfig:
        def __init__(self, config_dict=None):
            self.config = config_dict or {}

        def get(self, key, default=None):
            keys = key.split('.')
            value = self.config
            for k in keys:
                if isinstance(value, dict) and k in value:
                    value = value[k]
                else:
                    return default
            return value

    return MockConfig


@pytest.fixture
def labels():
    """Label table matching the bundled flower labels."""
    return LabelTable(FLOWER_LABELS)


@pytest.fixture
def labels_file(temp_directory):
    path = temp_directory / 'labels.txt'
    path.write_text('\n'.join(FLOWER_LABELS) + '\n', encoding='utf-8')
    return path


@pytest.fixture
def generic_boxes():
    return [BoundingBox(20, 30, 200, 220), BoundingBox(300, 100, 500, 400)]


@pytest.fixture
def make_analyzer(labels):
    """
    Factory for analyzers wired to fake engines.

    Returns:
        Callable(runner=..., generic_detector=..., labels=..., max_size=1024) -> FlowerAnalyzer
    """
    def _make(runner=None, generic_detector=None, label_table=labels, max_size=1024, **kwargs):
        return FlowerAnalyzer(
            loader=BoundedImageLoader(max_size, max_size),
            encoder=TensorEncoder(224, 224),
            renderer=OverlayRenderer(),
            runner=runner,
            labels=label_table if runner is not None else None,
            generic_detector=generic_detector,
            **kwargs
        )

    return _make


# Pytest markers for categorizing tests
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# Custom test collection modifications
def pytest_collection_modifyitems(config, items):
    """Mark slow tests based on name patterns."""
    for item in items:
        if "slow" in item.name or "integration" in item.name:
            item.add_marker(pytest.mark.slow)
