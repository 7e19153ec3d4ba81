"""
Output writing for FlowerScope analyses.

Annotated images and JSON reports are written through atomic file
operations: data goes to a temporary file guarded by a .lock file and is
then moved into place, so a crashed or concurrent run never leaves a
half-written report behind.

Author: FlowerScope Team
"""

import os
import json
import logging
try:
    import fcntl
except ImportError:
    # fcntl is not available on Windows
    fcntl = None
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Union

from . import __version__
from .inference.pipeline import AnalysisResult

logger = logging.getLogger(__name__)


class AtomicFileWriter:
    """
    Lock-guarded, write-then-move file output.

    Readers of the target path see either the previous file or the complete
    new one. A second writer to the same path fails fast with IOError while
    the first holds the lock.
    """

    @staticmethod
    def _acquire_lock(lock_file, filepath: Path) -> None:
        if fcntl is None:
            return
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise IOError(f"{filepath} is being written by another process") from e

    @staticmethod
    @contextmanager
    def atomic_write(filepath: Union[str, Path], mode: str = 'w', encoding: str = 'utf-8'):
        """
        Open a temporary sibling of filepath and move it into place on success.

        Args:
            filepath: Target file path
            mode: Write mode; binary modes ignore encoding
            encoding: Text encoding

        Yields:
            File handle for writing

        Raises:
            IOError: Another writer holds the lock for filepath

        Example:
            >>> with AtomicFileWriter.atomic_write('report.json') as f:
            ...     json.dump(report, f)
        """
        filepath = Path(filepath)
        lock_path = filepath.with_suffix(filepath.suffix + '.lock')
        temp_path = filepath.with_suffix(filepath.suffix + '.tmp')
        open_kwargs = {} if 'b' in mode else {'encoding': encoding}

        filepath.parent.mkdir(parents=True, exist_ok=True)

        # Closing the lock file releases the flock
        with open(lock_path, 'w', encoding='utf-8') as lock_file:
            AtomicFileWriter._acquire_lock(lock_file, filepath)
            try:
                with open(temp_path, mode, **open_kwargs) as temp_file:
                    yield temp_file
                os.replace(temp_path, filepath)
                logger.debug(f"Atomically wrote {filepath}")
            except Exception as e:
                logger.error(f"Atomic write failed for {filepath}: {e}")
                temp_path.unlink(missing_ok=True)
                raise
            finally:
                lock_path.unlink(missing_ok=True)


def save_annotated_image(result: AnalysisResult, output_dir: Union[str, Path], stem: str) -> Path:
    """
    Save the annotated overlay of a result as PNG.

    Args:
        result: Completed analysis result with an annotated image
        output_dir: Destination directory
        stem: Source file stem; output is <stem>_annotated.png

    Returns:
        Path of the written image
    """
    if result.annotated_image is None:
        raise ValueError(f"Request {result.request_id} has no annotated image: {result.status}")

    output_path = Path(output_dir) / f"{stem}_annotated.png"
    with AtomicFileWriter.atomic_write(output_path, 'wb') as f:
        result.annotated_image.save(f, format='PNG')

    logger.info(f"Annotated image saved to {output_path}")
    return output_path


def build_report(entries: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Wrap per-image entries with run metadata."""
    return {
        'created_at': datetime.now().isoformat(),
        'flowerscope_version': __version__,
        'total_images': len(entries),
        'analysed': sum(1 for entry in entries if entry['result']['image_size'] is not None),
        'images': entries
    }


def write_report(entries: List[Dict[str, Any]], report_path: Union[str, Path]) -> Path:
    """
    Write a JSON report atomically.

    Args:
        entries: Items of the form {'source': str, 'result': AnalysisResult.to_dict()}
        report_path: Destination JSON file

    Returns:
        Path of the written report
    """
    report_path = Path(report_path)
    with AtomicFileWriter.atomic_write(report_path) as f:
        json.dump(build_report(entries), f, indent=2)

    logger.info(f"Report with {len(entries)} entries saved to {report_path}")
    return report_path
