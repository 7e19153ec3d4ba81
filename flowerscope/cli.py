"""
Command-line entry point for FlowerScope.

Analyses one or more images (or directories of images) with both detection
passes, prints the per-image summary and optionally writes annotated copies
and a JSON report.

Author: FlowerScope Team
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import List, Optional, Sequence

from tqdm import tqdm

from .config import Config
from .inference.pipeline import AnalysisSession, FlowerAnalyzer
from .reporting import save_annotated_image, write_report

logger = logging.getLogger(__name__)


def collect_images(paths: Sequence[str], extensions: Sequence[str]) -> List[Path]:
    """
    Expand files and directories into a sorted list of image paths.

    Args:
        paths: Files or directories given on the command line
        extensions: Accepted lowercase suffixes for directory scans

    Returns:
        Image paths; explicit files are kept regardless of suffix
    """
    extensions = {ext.lower() for ext in extensions}
    images = []

    for raw_path in paths:
        path = Path(raw_path)
        if path.is_dir():
            found = sorted(p for p in path.iterdir() if p.is_file() and p.suffix.lower() in extensions)
            logger.info(f"Found {len(found)} images in {path}")
            images.extend(found)
        else:
            images.append(path)

    return images


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='flowerscope-analyze',
        description='Detect flowers and objects in photos with FlowerScope'
    )
    parser.add_argument('images', nargs='+', help='Image files or directories to analyse')
    parser.add_argument('--config', type=str, help='Path to configuration file')
    parser.add_argument('--output-dir', type=str, help='Directory for annotated images')
    parser.add_argument('--report', type=str, help='Path of JSON report to write')
    parser.add_argument('--threshold', type=float, help='Flower model score threshold')
    parser.add_argument('--no-generic', action='store_true', help='Skip the generic object detector')
    parser.add_argument('--verbose', action='store_true', help='Verbose logging')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the analysis command.

    Returns:
        0 when every image was analysed, 1 otherwise
    """
    args = build_parser().parse_args(argv)

    config = Config(args.config)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.threshold is not None:
        config.set('detection.score_threshold', args.threshold)

    validation = config.validate()
    for warning in validation['warnings']:
        logger.warning(warning)
    if not validation['valid']:
        for error in validation['errors']:
            logger.error(error)
        return 1

    images = collect_images(args.images, config.get('data.image_extensions', []))
    if not images:
        logger.error("No images to analyse")
        return 1

    analyzer = FlowerAnalyzer.from_config(config, load_generic=False if args.no_generic else None)
    if analyzer.load_error:
        print(analyzer.load_error, file=sys.stderr)

    entries = []
    failures = 0

    with AnalysisSession(analyzer, max_workers=config.get('session.max_workers', 2)) as session:
        for image_path in tqdm(images, desc='Analysing', unit='image', disable=len(images) < 2):
            result = session.submit(image_path).result()

            print(f"== {image_path}")
            text = result.summary if result.ok else f"{result.status}\n"
            print(text or "No flowers detected\n", end='')

            if not result.ok:
                failures += 1
            elif args.output_dir:
                try:
                    save_annotated_image(result, args.output_dir, image_path.stem)
                except OSError as e:
                    logger.error(f"Could not save annotated image for {image_path}: {e}")
                    print(f"Error saving annotated image: {e}", file=sys.stderr)
                    failures += 1

            entries.append({'source': str(image_path), 'result': result.to_dict()})

    analyzer.close()

    if args.report:
        write_report(entries, args.report)

    logger.info(f"Analysed {len(images) - failures}/{len(images)} images")
    return 0 if failures == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
