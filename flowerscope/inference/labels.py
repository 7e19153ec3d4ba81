"""
Label table for the bundled flower model.
"""

import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Union

from ..exceptions import AssetLoadError, LabelIndexError

logger = logging.getLogger(__name__)


class LabelTable:
    """
    Read-only mapping from integer class id to class name.

    Loaded once at startup from a newline-separated file. Lookups outside
    [0, len) raise LabelIndexError; negative ids never wrap around.
    """

    def __init__(self, labels: Iterable[str]):
        self._labels: List[str] = list(labels)

    @classmethod
    def from_file(cls, path: Union[str, Path], encoding: str = 'utf-8') -> "LabelTable":
        """
        Load labels from a newline-separated text file.

        Blank lines are skipped and surrounding whitespace is stripped.

        Args:
            path: Label file path
            encoding: File encoding

        Returns:
            Loaded label table

        Raises:
            AssetLoadError: File missing, unreadable or empty
        """
        path = Path(path)
        try:
            with open(path, 'r', encoding=encoding) as f:
                labels = [line.strip() for line in f if line.strip()]
        except (OSError, UnicodeDecodeError) as e:
            raise AssetLoadError(f"Cannot read label file {path}: {e}") from e

        if not labels:
            raise AssetLoadError(f"Label file {path} contains no labels")

        logger.info(f"Loaded {len(labels)} labels from {path}")
        return cls(labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __getitem__(self, class_id: int) -> str:
        if not 0 <= class_id < len(self._labels):
            raise LabelIndexError(class_id, len(self._labels))
        return self._labels[class_id]

    def __repr__(self) -> str:
        return f"LabelTable(size={len(self._labels)})"
