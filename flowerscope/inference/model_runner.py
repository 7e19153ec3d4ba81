"""
TensorFlow Lite model runner for the bundled flower model.

The runner is an opaque, loaded-once inference handle bound to a fixed input
shape (1, 224, 224, 3) and output shape (1, K, 6). The declared shapes are
checked against the loaded model at startup so a mismatched asset fails fast
instead of producing garbage detections.

A TFLite interpreter must not be invoked from several threads at once, so
invocations are serialised with a lock.

Author: FlowerScope Team
"""

import logging
import threading
import time
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple, Union

import numpy as np
import tensorflow as tf

from ..exceptions import AssetLoadError, ModelShapeMismatchError

logger = logging.getLogger(__name__)

TensorInput = Union[np.ndarray, bytes]


class ModelRunner(Protocol):
    """Synchronous inference engine consumed by the detection pipeline."""

    input_shape: Tuple[int, ...]
    output_shape: Tuple[int, ...]

    def run(self, input_tensor: TensorInput) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


class TFLiteModelRunner:
    """
    Fixed-shape TFLite interpreter wrapper.

    Loads the model once, validates its declared input/output tensors against
    the configured contract and runs synchronous inference.
    """

    def __init__(self, model_path: Union[str, Path],
                 input_shape: Sequence[int] = (1, 224, 224, 3),
                 output_shape: Sequence[int] = (1, 10, 6),
                 num_threads: Optional[int] = None):
        """
        Initialize the runner.

        Args:
            model_path: Path to the .tflite model file
            input_shape: Expected input tensor shape (NHWC)
            output_shape: Expected output tensor shape (1, K, 6)
            num_threads: Interpreter thread count, None for the TFLite default

        Raises:
            AssetLoadError: Model file missing or not a valid TFLite model
            ModelShapeMismatchError: Declared tensors differ from the contract
        """
        self.model_path = Path(model_path)
        self.input_shape = tuple(int(d) for d in input_shape)
        self.output_shape = tuple(int(d) for d in output_shape)
        self._lock = threading.Lock()

        # Performance tracking
        self.inference_count = 0
        self.total_inference_time = 0.0

        self._interpreter = self._load_interpreter(num_threads)
        self._input_index, self._output_index = self._validate_io()

        logger.info(f"TFLite model loaded from {self.model_path} "
                    f"(input={self.input_shape}, output={self.output_shape})")

    @classmethod
    def from_config(cls, config) -> "TFLiteModelRunner":
        return cls(
            config.get('model.model_path'),
            input_shape=config.get('model.input_shape', [1, 224, 224, 3]),
            output_shape=config.get('model.output_shape', [1, 10, 6]),
            num_threads=config.get('model.num_threads')
        )

    def _load_interpreter(self, num_threads: Optional[int]) -> "tf.lite.Interpreter":
        if not self.model_path.exists():
            raise AssetLoadError(f"Model file not found: {self.model_path}")

        try:
            interpreter = tf.lite.Interpreter(model_path=str(self.model_path), num_threads=num_threads)
            interpreter.allocate_tensors()
        except (ValueError, RuntimeError) as e:
            raise AssetLoadError(f"Failed to load TFLite model {self.model_path}: {e}") from e

        return interpreter

    def _validate_io(self) -> Tuple[int, int]:
        """Check declared tensor shapes and dtypes against the configured contract."""
        input_details = self._interpreter.get_input_details()
        output_details = self._interpreter.get_output_details()

        if len(input_details) != 1 or len(output_details) != 1:
            raise AssetLoadError(
                f"Expected a single input and output tensor, model has "
                f"{len(input_details)} inputs and {len(output_details)} outputs"
            )

        input_detail, output_detail = input_details[0], output_details[0]

        actual_input = tuple(int(d) for d in input_detail['shape'])
        if actual_input != self.input_shape:
            raise ModelShapeMismatchError('input', self.input_shape, actual_input)

        actual_output = tuple(int(d) for d in output_detail['shape'])
        if actual_output != self.output_shape:
            raise ModelShapeMismatchError('output', self.output_shape, actual_output)

        for name, detail in (('input', input_detail), ('output', output_detail)):
            if np.dtype(detail['dtype']) != np.float32:
                raise AssetLoadError(f"Model {name} tensor must be float32, got {np.dtype(detail['dtype'])}")

        return input_detail['index'], output_detail['index']

    def run(self, input_tensor: TensorInput) -> np.ndarray:
        """
        Run one synchronous inference.

        Args:
            input_tensor: float32 array of the input shape, or the packed
                          native-order buffer produced by TensorEncoder.encode

        Returns:
            Output tensor of the configured output shape
        """
        if isinstance(input_tensor, (bytes, bytearray, memoryview)):
            input_tensor = np.frombuffer(input_tensor, dtype=np.float32)
            input_tensor = input_tensor.reshape(self.input_shape)

        if tuple(input_tensor.shape) != self.input_shape:
            raise ValueError(f"Input tensor shape {tuple(input_tensor.shape)} != {self.input_shape}")

        with self._lock:
            if self._interpreter is None:
                raise RuntimeError("Model runner has been closed")

            start_time = time.time()
            self._interpreter.set_tensor(self._input_index, input_tensor.astype(np.float32, copy=False))
            self._interpreter.invoke()
            output = self._interpreter.get_tensor(self._output_index)

            inference_time = time.time() - start_time
            self.inference_count += 1
            self.total_inference_time += inference_time

        logger.debug(f"Inference completed in {inference_time * 1000:.2f}ms")
        return output

    def get_performance_stats(self):
        """Get inference performance statistics."""
        avg_time = self.total_inference_time / self.inference_count if self.inference_count > 0 else 0

        return {
            'total_inferences': self.inference_count,
            'total_time_seconds': self.total_inference_time,
            'average_time_ms': avg_time * 1000,
            'model_path': str(self.model_path)
        }

    def close(self) -> None:
        """Release the interpreter."""
        with self._lock:
            self._interpreter = None
        logger.debug(f"Released TFLite model {self.model_path}")
