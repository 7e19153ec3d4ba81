"""
Detection passes for FlowerScope.

Implements:
- TFLite flower model runner with startup shape validation
- Fixed-layout output tensor decoding with label lookup
- Generic class-less object detection
- Analysis session with per-request cancellation
"""

from .labels import LabelTable
from .model_runner import ModelRunner, TFLiteModelRunner
from .decoder import DetectionDecoder, format_summary
from .generic_detector import GenericObjectDetector, TorchvisionObjectDetector
from .pipeline import (
    AnalysisRequest,
    AnalysisResult,
    AnalysisSession,
    CancellationToken,
    FlowerAnalyzer,
    PassResult
)

__all__ = [
    "LabelTable",
    "ModelRunner",
    "TFLiteModelRunner",
    "DetectionDecoder",
    "format_summary",
    "GenericObjectDetector",
    "TorchvisionObjectDetector",
    "AnalysisRequest",
    "AnalysisResult",
    "AnalysisSession",
    "CancellationToken",
    "FlowerAnalyzer",
    "PassResult"
]
