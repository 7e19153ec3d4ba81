"""
Generic class-less object detection.

Second, independent detection pass: a single-image, multiple-object detector
that only reports where objects are. Labels and scores from the underlying
model are discarded.
"""

import logging
from pathlib import Path
from typing import List, Optional, Protocol, Union

import torch
import torchvision
from PIL import Image
from torchvision.transforms import functional as F

from ..exceptions import AssetLoadError
from ..types import BoundingBox

logger = logging.getLogger(__name__)


class GenericObjectDetector(Protocol):
    """Black-box detector returning pixel-space boxes for one image."""

    def detect(self, image: Image.Image) -> List[BoundingBox]:
        ...


class TorchvisionObjectDetector:
    """
    Class-less object detector backed by a torchvision detection model.

    Runs in single-image mode and reports up to ``max_objects`` boxes whose
    model score exceeds ``score_threshold``.
    """

    def __init__(self, architecture: str = 'ssdlite320_mobilenet_v3_large',
                 weights: Optional[str] = 'DEFAULT',
                 weights_path: Optional[Union[str, Path]] = None,
                 max_objects: int = 5,
                 score_threshold: float = 0.5,
                 device: str = 'cpu'):
        """
        Initialize detector.

        Args:
            architecture: torchvision detection model builder name
            weights: Pretrained weights enum name, ignored with weights_path
            weights_path: Local state dict to load instead of pretrained weights
            max_objects: Maximum boxes reported per image
            score_threshold: Minimum model score for a reported box
            device: Torch device to run on

        Raises:
            AssetLoadError: Model could not be built or weights not loaded
        """
        self.architecture = architecture
        self.max_objects = max_objects
        self.score_threshold = score_threshold
        self.device = torch.device(device)
        self.model = self._load_model(weights, weights_path)

        logger.info(f"Generic detector {architecture} initialized on {self.device}")

    @classmethod
    def from_config(cls, config) -> "TorchvisionObjectDetector":
        settings = config.get('generic_detector', {})
        return cls(
            architecture=settings.get('architecture', 'ssdlite320_mobilenet_v3_large'),
            weights=settings.get('weights', 'DEFAULT'),
            weights_path=settings.get('weights_path'),
            max_objects=settings.get('max_objects', 5),
            score_threshold=settings.get('score_threshold', 0.5),
            device=settings.get('device', 'cpu')
        )

    def _load_model(self, weights: Optional[str],
                    weights_path: Optional[Union[str, Path]]) -> torch.nn.Module:
        try:
            if weights_path:
                weights_path = Path(weights_path)
                if not weights_path.exists():
                    raise AssetLoadError(f"Generic detector weights not found: {weights_path}")
                model = torchvision.models.get_model(self.architecture, weights=None, weights_backbone=None)
                state_dict = torch.load(weights_path, map_location=self.device)
                model.load_state_dict(state_dict)
            elif weights is None:
                # Untrained network; no backbone download
                model = torchvision.models.get_model(self.architecture, weights=None, weights_backbone=None)
            else:
                model = torchvision.models.get_model(self.architecture, weights=weights)
        except AssetLoadError:
            raise
        except (ValueError, KeyError, RuntimeError, OSError) as e:
            raise AssetLoadError(f"Failed to build generic detector {self.architecture}: {e}") from e

        model.to(self.device)
        model.eval()
        return model

    def detect(self, image: Image.Image) -> List[BoundingBox]:
        """
        Detect objects in one image.

        Args:
            image: RGB image

        Returns:
            Up to max_objects boxes in the image's pixel space
        """
        tensor = F.to_tensor(image.convert('RGB')).to(self.device)

        with torch.no_grad():
            prediction = self.model([tensor])[0]

        scores = prediction['scores'].cpu()
        boxes = prediction['boxes'].cpu()

        keep = (scores > self.score_threshold).nonzero(as_tuple=True)[0]
        keep = keep[scores[keep].argsort(descending=True)][:self.max_objects]

        results = [BoundingBox.from_corners(*(float(v) for v in boxes[i].tolist())) for i in keep.tolist()]
        logger.debug(f"Generic detector found {len(results)} objects")
        return results
