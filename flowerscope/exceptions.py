"""
Error taxonomy for FlowerScope.

Every error derives from FlowerScopeError and from the closest built-in
exception, so callers may catch either. Failures are contained to the single
"analyze one image" operation by the analysis session; see
flowerscope.inference.pipeline.
"""


class FlowerScopeError(Exception):
    """Base class for all FlowerScope errors."""


class AssetLoadError(FlowerScopeError, RuntimeError):
    """Model or label asset is missing, unreadable or corrupt."""


class ModelShapeMismatchError(AssetLoadError):
    """Loaded model declares tensor shapes that differ from the configured ones."""

    def __init__(self, tensor: str, expected, actual):
        self.tensor = tensor
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(
            f"Model {tensor} tensor shape mismatch: expected {self.expected}, got {self.actual}"
        )


class ImageDecodeError(FlowerScopeError, ValueError):
    """Source image could not be opened or decoded."""


class ImagePermissionError(FlowerScopeError, PermissionError):
    """Read access to the source image was denied."""


class LabelIndexError(FlowerScopeError, IndexError):
    """
    Class id emitted by the model has no entry in the label table.

    This signals a label table / model mismatch and is never replaced by a
    default label.
    """

    def __init__(self, class_id: int, table_size: int, row: int = None):
        self.class_id = class_id
        self.table_size = table_size
        self.row = row
        where = f" (output row {row})" if row is not None else ""
        super().__init__(
            f"Class id {class_id}{where} is outside label table of size {table_size}"
        )


class ModelOutputError(FlowerScopeError, ValueError):
    """Model output tensor is malformed or holds non-finite values in a kept row."""
