"""
Analysis pipeline and session for FlowerScope.

FlowerAnalyzer composes the stages for one picked image:

    source -> bounded image -> tensor -> model output -> detections
                            +-> generic detector boxes
    both layers -> single overlay render + text summary

AnalysisSession runs the two detection passes concurrently behind futures.
Every request carries a cancellation token; picking a new image cancels the
previous token so a late pass from an old request can never annotate the
new image. Each pass returns its own immutable layer and rendering happens
once per publication from the base image, so a late pass never discards the
annotations of an earlier one.

Failures are contained to the single analysis: decode and permission errors,
asset-load failures, inference errors and label mismatches all surface as a
plain status string on the result.

Author: FlowerScope Team
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Tuple

from PIL import Image

from ..exceptions import (
    AssetLoadError,
    ImageDecodeError,
    ImagePermissionError,
    LabelIndexError,
    ModelOutputError,
)
from ..imaging import BoundedImageLoader, TensorEncoder
from ..rendering import OverlayRenderer, OverlayStyle
from ..types import BoundingBox, Detection
from .decoder import DetectionDecoder, format_summary
from .generic_detector import GenericObjectDetector, TorchvisionObjectDetector
from .labels import LabelTable
from .model_runner import ModelRunner, TFLiteModelRunner

logger = logging.getLogger(__name__)

STATUS_OK = "Analysis complete"
STATUS_PARTIAL = "Flower model finished, waiting for object detector"
STATUS_ASSET_LOAD_FAILED = "Error loading model or labels"
STATUS_MODEL_NOT_LOADED = "Error: Custom model or labels not loaded properly."
STATUS_DECODE_FAILED = "Error loading image"
STATUS_PERMISSION_DENIED = "Permission denied"
STATUS_CANCELLED = "Cancelled"


@dataclass(frozen=True)
class PassResult:
    """Immutable output layer of one detection pass."""

    detections: Tuple[Detection, ...] = ()
    boxes: Tuple[BoundingBox, ...] = ()
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'detections': [d.to_dict() for d in self.detections],
            'boxes': [b.to_dict() for b in self.boxes],
            'error': self.error,
            'elapsed_ms': self.elapsed_ms
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of analysing one image, as shown to the user."""

    request_id: int
    annotated_image: Optional[Image.Image]
    custom: PassResult
    generic: PassResult
    summary: str
    status: str
    complete: bool = True
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.annotated_image is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'request_id': self.request_id,
            'status': self.status,
            'summary': self.summary,
            'complete': self.complete,
            'stale': self.stale,
            'image_size': list(self.annotated_image.size) if self.annotated_image is not None else None,
            'custom_model': self.custom.to_dict(),
            'generic_detector': self.generic.to_dict()
        }


class CancellationToken:
    """Per-request flag; once cancelled, results of that request are stale."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class AnalysisRequest:
    """Handle for one submitted image."""

    request_id: int
    token: CancellationToken = field(default_factory=CancellationToken)
    future: "Future[AnalysisResult]" = field(default_factory=Future)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _partial_published: bool = field(default=False, repr=False)

    def result(self, timeout: Optional[float] = None) -> AnalysisResult:
        return self.future.result(timeout)

    def cancel(self) -> None:
        self.token.cancel()


class FlowerAnalyzer:
    """
    Owns every stage of the two detection passes.

    Model, labels and the generic detector are loaded once and only read
    afterwards. A failed asset load disables the affected pass instead of
    raising.
    """

    def __init__(self, loader: BoundedImageLoader,
                 encoder: TensorEncoder,
                 renderer: OverlayRenderer,
                 runner: Optional[ModelRunner] = None,
                 labels: Optional[LabelTable] = None,
                 generic_detector: Optional[GenericObjectDetector] = None,
                 score_threshold: float = 0.5,
                 load_error: Optional[str] = None,
                 generic_error: Optional[str] = None):
        self.loader = loader
        self.encoder = encoder
        self.renderer = renderer
        self.runner = runner
        self.labels = labels
        self.generic_detector = generic_detector
        self.decoder = DetectionDecoder(labels, score_threshold) if labels is not None else None
        self.load_error = load_error
        self.generic_error = generic_error

        if runner is not None and tuple(runner.input_shape) != encoder.shape:
            raise AssetLoadError(
                f"Encoder shape {encoder.shape} does not match model input {tuple(runner.input_shape)}"
            )

    @classmethod
    def from_config(cls, config, load_generic: Optional[bool] = None) -> "FlowerAnalyzer":
        """
        Build an analyzer, loading model assets once.

        Args:
            config: Configuration object
            load_generic: Override generic_detector.enabled

        Returns:
            Analyzer; check custom_model_loaded / load_error for asset status
        """
        runner, labels, load_error = None, None, None
        try:
            runner = TFLiteModelRunner.from_config(config)
            labels = LabelTable.from_file(config.get_asset_paths()['labels'])
        except AssetLoadError as e:
            logger.error(f"Error loading model or labels: {e}")
            load_error = STATUS_ASSET_LOAD_FAILED
            if runner is not None:
                runner.close()
            runner, labels = None, None

        if load_generic is None:
            load_generic = config.get('generic_detector.enabled', True)

        generic_detector, generic_error = None, None
        if load_generic:
            try:
                generic_detector = TorchvisionObjectDetector.from_config(config)
            except AssetLoadError as e:
                logger.error(f"Error loading generic object detector: {e}")
                generic_error = str(e)

        return cls(
            loader=BoundedImageLoader.from_config(config),
            encoder=TensorEncoder.from_config(config),
            renderer=OverlayRenderer(OverlayStyle.from_config(config)),
            runner=runner,
            labels=labels,
            generic_detector=generic_detector,
            score_threshold=config.get('detection.score_threshold', 0.5),
            load_error=load_error,
            generic_error=generic_error
        )

    @property
    def custom_model_loaded(self) -> bool:
        return self.runner is not None and self.decoder is not None

    def load_image(self, source) -> Image.Image:
        return self.loader.load(source)

    def detect_with_custom_model(self, image: Image.Image,
                                 token: Optional[CancellationToken] = None) -> PassResult:
        """
        Run the flower model pass.

        Encoder and runner errors are logged and give an empty layer.
        LabelIndexError and ModelOutputError are not caught: they mean the
        label table or the model does not honour the output contract, and
        they fail the analysis.
        """
        if not self.custom_model_loaded:
            return PassResult(error=STATUS_MODEL_NOT_LOADED)
        if token is not None and token.cancelled:
            return PassResult(error=STATUS_CANCELLED)

        start_time = time.time()
        try:
            output = self.runner.run(self.encoder.encode(image))
        except Exception as e:
            logger.error(f"Error during detection: {e}")
            return PassResult(error=f"Detection failed: {e}",
                              elapsed_ms=(time.time() - start_time) * 1000)

        detections = self.decoder.decode(output, image.width, image.height)
        return PassResult(
            detections=tuple(detections),
            boxes=tuple(d.box for d in detections),
            elapsed_ms=(time.time() - start_time) * 1000
        )

    def detect_with_generic_detector(self, image: Image.Image,
                                     token: Optional[CancellationToken] = None) -> PassResult:
        """Run the generic detector pass; any error gives an empty layer."""
        if self.generic_detector is None:
            return PassResult(error=self.generic_error)
        if token is not None and token.cancelled:
            return PassResult(error=STATUS_CANCELLED)

        start_time = time.time()
        try:
            boxes = self.generic_detector.detect(image)
        except Exception as e:
            logger.error(f"Error in generic object detection: {e}")
            return PassResult(error=f"Object detection failed: {e}",
                              elapsed_ms=(time.time() - start_time) * 1000)

        return PassResult(boxes=tuple(boxes), elapsed_ms=(time.time() - start_time) * 1000)

    def compose(self, request_id: int, image: Image.Image,
                custom: PassResult, generic: PassResult,
                complete: bool = True) -> AnalysisResult:
        """Render both layers once onto a copy of image."""
        annotated = self.renderer.render(image, custom.detections, generic.boxes)
        summary = format_summary(custom.detections)
        if custom.error == STATUS_MODEL_NOT_LOADED:
            summary = custom.error + "\n"

        return AnalysisResult(
            request_id=request_id,
            annotated_image=annotated,
            custom=custom,
            generic=generic,
            summary=summary,
            status=STATUS_OK if complete else STATUS_PARTIAL,
            complete=complete
        )

    @staticmethod
    def failure(request_id: int, error: BaseException) -> AnalysisResult:
        """Result for an analysis that could not produce an overlay."""
        if isinstance(error, ImagePermissionError):
            status = STATUS_PERMISSION_DENIED
        elif isinstance(error, ImageDecodeError):
            status = STATUS_DECODE_FAILED
        elif isinstance(error, LabelIndexError):
            status = f"Error: label table does not match model: {error}"
        elif isinstance(error, ModelOutputError):
            status = f"Error: invalid model output: {error}"
        else:
            status = f"Error: analysis failed: {error}"

        return AnalysisResult(
            request_id=request_id,
            annotated_image=None,
            custom=PassResult(),
            generic=PassResult(),
            summary="",
            status=status
        )

    def analyze(self, source, request_id: int = 0) -> AnalysisResult:
        """
        Analyse one image synchronously.

        Args:
            source: Path, bytes or binary stream
            request_id: Identifier echoed in the result

        Returns:
            Final analysis result; never raises for per-image failures
        """
        try:
            image = self.load_image(source)
            custom = self.detect_with_custom_model(image)
            generic = self.detect_with_generic_detector(image)
            return self.compose(request_id, image, custom, generic)
        except (ImageDecodeError, ImagePermissionError, LabelIndexError, ModelOutputError) as e:
            logger.error(f"Analysis {request_id} failed: {e}")
            return self.failure(request_id, e)
        except Exception as e:
            logger.exception(f"Analysis {request_id} failed")
            return self.failure(request_id, e)

    def close(self) -> None:
        if self.runner is not None:
            self.runner.close()


class AnalysisSession:
    """
    Asynchronous, single-active-request analysis driver.

    ``submit`` decodes the image on the calling thread, then schedules both
    detection passes on a thread pool. Results reach ``on_result`` only while
    their request is still the current one and not cancelled.
    """

    def __init__(self, analyzer: FlowerAnalyzer,
                 on_result: Optional[Callable[[AnalysisResult], None]] = None,
                 max_workers: int = 2):
        self.analyzer = analyzer
        self.on_result = on_result
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='flowerscope')
        self._lock = threading.RLock()
        self._next_id = 0
        self._current: Optional[AnalysisRequest] = None

    @classmethod
    def from_config(cls, config, analyzer: Optional[FlowerAnalyzer] = None,
                    on_result: Optional[Callable[[AnalysisResult], None]] = None) -> "AnalysisSession":
        return cls(analyzer or FlowerAnalyzer.from_config(config), on_result,
                   max_workers=config.get('session.max_workers', 2))

    @property
    def current_request(self) -> Optional[AnalysisRequest]:
        return self._current

    def submit(self, source) -> AnalysisRequest:
        """
        Start analysing a new image, invalidating any pending request.

        Args:
            source: Path, bytes or binary stream

        Returns:
            Request handle whose future resolves to the final result
        """
        with self._lock:
            if self._current is not None:
                self._current.cancel()
            self._next_id += 1
            request = AnalysisRequest(self._next_id)
            self._current = request

        logger.info(f"Analysis request {request.request_id} submitted")

        try:
            image = self.analyzer.load_image(source)
        except (ImageDecodeError, ImagePermissionError) as e:
            logger.error(f"Analysis {request.request_id} failed: {e}")
            self._publish(request, self.analyzer.failure(request.request_id, e))
            return request
        except Exception as e:
            logger.exception(f"Analysis {request.request_id} failed")
            self._publish(request, self.analyzer.failure(request.request_id, e))
            return request

        custom_future = self._executor.submit(self.analyzer.detect_with_custom_model, image, request.token)
        generic_future = self._executor.submit(self.analyzer.detect_with_generic_detector, image, request.token)

        def _on_done(_):
            self._on_pass_done(request, image, custom_future, generic_future)

        custom_future.add_done_callback(_on_done)
        generic_future.add_done_callback(_on_done)
        return request

    def _on_pass_done(self, request: AnalysisRequest, image: Image.Image,
                      custom_future: Future, generic_future: Future) -> None:
        with request._lock:
            if request.future.done():
                return

            try:
                if custom_future.done() and generic_future.done():
                    result = self.analyzer.compose(
                        request.request_id, image, custom_future.result(), generic_future.result()
                    )
                elif (custom_future.done() and custom_future.exception() is None
                      and not request._partial_published):
                    request._partial_published = True
                    result = self.analyzer.compose(
                        request.request_id, image, custom_future.result(), PassResult(), complete=False
                    )
                else:
                    return
            except Exception as e:
                logger.exception(f"Analysis {request.request_id} failed")
                result = self.analyzer.failure(request.request_id, e)

            self._publish(request, result)

    def _publish(self, request: AnalysisRequest, result: AnalysisResult) -> None:
        with self._lock:
            stale = request.token.cancelled or request is not self._current
            result = replace(result, stale=stale)

            if stale:
                logger.info(f"Discarding stale result for request {request.request_id}")
            elif self.on_result is not None:
                try:
                    self.on_result(result)
                except Exception:
                    logger.exception(f"Result callback failed for request {request.request_id}")

        if result.complete:
            request.future.set_result(result)

    def cancel(self) -> None:
        """Cancel the active request, if any."""
        with self._lock:
            if self._current is not None:
                self._current.cancel()

    def shutdown(self, wait: bool = True) -> None:
        self.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "AnalysisSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
