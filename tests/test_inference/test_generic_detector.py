"""
Tests for the torchvision-backed generic object detector.

Author: FlowerScope Team
"""

import pytest
import torch
from PIL import Image

from flowerscope.exceptions import AssetLoadError
from flowerscope.inference.generic_detector import TorchvisionObjectDetector
from flowerscope.types import BoundingBox


class StubDetectionModel:
    """Callable standing in for a torchvision detection model."""

    def __init__(self, boxes, scores):
        self.boxes = torch.tensor(boxes, dtype=torch.float32)
        self.scores = torch.tensor(scores, dtype=torch.float32)
        self.calls = []

    def __call__(self, images):
        self.calls.append([tuple(image.shape) for image in images])
        return [{
            'boxes': self.boxes,
            'scores': self.scores,
            'labels': torch.ones(len(self.scores), dtype=torch.int64)
        }]


@pytest.fixture
def detector():
    """Detector with an untrained model, replaced by a stub per test."""
    return TorchvisionObjectDetector(weights=None, max_objects=2, score_threshold=0.5)


class TestTorchvisionObjectDetector:

    @pytest.mark.unit
    def test_threshold_sort_and_limit(self, detector):
        detector.model = StubDetectionModel(
            boxes=[[0, 0, 10, 10], [5, 5, 50, 50], [1, 2, 3, 4], [20, 20, 40, 60]],
            scores=[0.6, 0.95, 0.4, 0.8]
        )

        boxes = detector.detect(Image.new('RGB', (64, 48)))

        assert boxes == [BoundingBox(5, 5, 50, 50), BoundingBox(20, 20, 40, 60)]

    @pytest.mark.unit
    def test_single_image_tensor(self, detector):
        detector.model = StubDetectionModel(boxes=[], scores=[])

        boxes = detector.detect(Image.new('L', (64, 48)))

        assert boxes == []
        assert detector.model.calls == [[(3, 48, 64)]]

    @pytest.mark.unit
    def test_threshold_is_strict(self, detector):
        detector.model = StubDetectionModel(boxes=[[0, 0, 10, 10]], scores=[0.5])

        assert detector.detect(Image.new('RGB', (32, 32))) == []

    @pytest.mark.unit
    def test_missing_weights_path(self, temp_directory):
        with pytest.raises(AssetLoadError):
            TorchvisionObjectDetector(weights_path=temp_directory / 'missing.pth')

    @pytest.mark.unit
    def test_unknown_architecture(self):
        with pytest.raises(AssetLoadError):
            TorchvisionObjectDetector(architecture='not_a_detector', weights=None)

    @pytest.mark.unit
    def test_local_weights(self, temp_directory):
        source = TorchvisionObjectDetector(weights=None)
        weights_path = temp_directory / 'detector.pth'
        torch.save(source.model.state_dict(), weights_path)

        detector = TorchvisionObjectDetector(weights_path=weights_path)

        assert not detector.model.training

    @pytest.mark.unit
    def test_from_config(self, mock_config):
        detector = TorchvisionObjectDetector.from_config(mock_config({'generic_detector': {
            'weights': None, 'max_objects': 3, 'score_threshold': 0.25
        }}))

        assert detector.max_objects == 3
        assert detector.score_threshold == 0.25

    @pytest.mark.slow
    def test_untrained_model_inference(self, detector):
        boxes = detector.detect(Image.new('RGB', (320, 240), (120, 80, 200)))

        assert len(boxes) <= 2
        assert all(isinstance(box, BoundingBox) for box in boxes)
