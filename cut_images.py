#!/usr/bin/env python3

# -------------------------------------------------------
# Script: cut_images.py
#
# Description:
# This script batch-crops images found under a directory tree.
# Every .jpg, .jpeg, .png and .bmp file (case-insensitive) below the
# given directory is cropped to a fixed rectangle and written next to
# the original as cut_<name>, encoded in the original format. Files are
# processed in parallel on a bounded worker pool; a file that fails is
# logged and skipped without stopping the others.
#
# Usage:
# ./cut_images.py -d DIR [options]
#
# Options:
#   -d DIR, --directory DIR              Directory to be processed (required).
#   -l LEFT, --left LEFT                 Left crop bound in pixels (default: 0).
#   -t TOP, --top TOP                    Top crop bound in pixels (default: 0).
#   -r RIGHT, --right RIGHT              Right crop bound in pixels (default: image width).
#   -b BOTTOM, --bottom BOTTOM           Bottom crop bound in pixels (default: image height).
#   -c, --clamp                          Clamp the crop rectangle to the image instead of
#                                        rejecting rectangles that do not fit.
#   -j WORKERS, --workers WORKERS        Number of files processed concurrently.
#   -v, --verbose                        Prints all messages to standard output.
#   -h, --help                           Display this help message.
#
# Exit status:
#   0 if every file was cropped, 1 if the directory is missing or any
#   file failed, 2 on invalid arguments.
#
# Template: ubuntu22.04
#
# Requirements:
# - Pillow (install via: pip install Pillow==11.0.0)
#
# -------------------------------------------------------
# © 2024 Hendrik Buchwald. All rights reserved.
# -------------------------------------------------------

import argparse
import logging
import os
import re
import shutil
import sys
import tempfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, List, NamedTuple, Optional, Set, Tuple

from PIL import Image

OUTPUT_PREFIX = "cut_"
EXTENSION_PATTERN = re.compile(r"\.(jpg|jpeg|png|bmp)", re.IGNORECASE)
DEFAULT_WORKERS = min(32, (os.cpu_count() or 1) + 4)

LEVEL_NAMES = {
    logging.DEBUG: "Debug",
    logging.INFO: "Info",
    logging.WARNING: "Warning",
    logging.ERROR: "Error",
    logging.CRITICAL: "Critical",
}

logger = logging.getLogger("cut_images")


class CropError(Exception):
    """Raised when a crop rectangle cannot be applied to an image."""


class Bounds(NamedTuple):
    """Crop bounds as given on the command line; None means 'use the default'."""

    left: Optional[int] = None
    top: Optional[int] = None
    right: Optional[int] = None
    bottom: Optional[int] = None


@dataclass(frozen=True)
class CropBox:
    x: int
    y: int
    width: int
    height: int

    def as_pillow_box(self) -> Tuple[int, int, int, int]:
        """Returns the rectangle as Pillow's (left, upper, right, lower)."""
        return self.x, self.y, self.x + self.width, self.y + self.height


@dataclass
class BatchResult:
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Batch-crop every image below a directory and save the results as cut_<name>."
    )
    parser.add_argument(
        "-d",
        "--directory",
        type=str,
        required=True,
        help="Directory to be processed.",
    )
    parser.add_argument(
        "-l",
        "--left",
        type=int,
        default=None,
        help="Left crop bound in pixels (default: 0).",
    )
    parser.add_argument(
        "-t",
        "--top",
        type=int,
        default=None,
        help="Top crop bound in pixels (default: 0).",
    )
    parser.add_argument(
        "-r",
        "--right",
        type=int,
        default=None,
        help="Right crop bound in pixels (default: image width).",
    )
    parser.add_argument(
        "-b",
        "--bottom",
        type=int,
        default=None,
        help="Bottom crop bound in pixels (default: image height).",
    )
    parser.add_argument(
        "-c",
        "--clamp",
        action="store_true",
        help="Clamp the crop rectangle to the image instead of rejecting it.",
    )
    parser.add_argument(
        "-j",
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Number of files processed concurrently (default: {DEFAULT_WORKERS}).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Prints all messages to standard output.",
    )
    args = parser.parse_args(argv)

    if args.workers < 1:
        parser.error("Workers must be at least 1.")

    return args


def setup_logging(verbose: bool):
    """Sets up the logging configuration."""
    for level, name in LEVEL_NAMES.items():
        logging.addLevelName(level, name)
    logging.basicConfig(
        format="%(levelname)s - %(asctime)s - %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def is_supported_image(path: str) -> bool:
    return EXTENSION_PATTERN.fullmatch(os.path.splitext(path)[1]) is not None


def collect_images(directory: str) -> Set[str]:
    """
    Recursively collects the image files below a directory.
    A missing directory is logged and yields an empty set.
    """
    image_files = set()

    if not os.path.isdir(directory):
        logger.error(f"File or directory {directory} not exists.")
        return image_files

    for root, _, files in os.walk(directory):
        for file in files:
            if is_supported_image(file):
                image_files.add(os.path.join(root, file))

    return image_files


def compute_crop_box(size: Tuple[int, int], bounds: Bounds) -> CropBox:
    """Derives the crop rectangle from the bounds, defaulting to the full image."""
    width, height = size
    x = bounds.left if bounds.left is not None else 0
    y = bounds.top if bounds.top is not None else 0
    right = bounds.right if bounds.right is not None else width
    bottom = bounds.bottom if bounds.bottom is not None else height
    return CropBox(x, y, right - x, bottom - y)


def fit_crop_box(box: CropBox, size: Tuple[int, int], clamp: bool = False) -> CropBox:
    """
    Checks a crop rectangle against the image size.
    Without clamping, any rectangle that is empty or leaves the image is
    rejected. With clamping, the rectangle is intersected with the image
    and only an empty intersection is rejected.
    """
    width, height = size
    left, upper, right, lower = box.as_pillow_box()

    if clamp:
        left, upper = max(left, 0), max(upper, 0)
        right, lower = min(right, width), min(lower, height)
        if right <= left or lower <= upper:
            raise CropError(
                f"Crop rectangle {box} does not overlap the {width}x{height} image."
            )
        return CropBox(left, upper, right - left, lower - upper)

    if box.width <= 0 or box.height <= 0:
        raise CropError(f"Crop rectangle {box} is empty.")
    if left < 0 or upper < 0 or right > width or lower > height:
        raise CropError(
            f"Crop rectangle {box} exceeds the {width}x{height} image."
        )
    return box


def output_path_for(img_path: str) -> str:
    """Returns the path of the cropped copy, next to the original."""
    directory, name = os.path.split(img_path)
    return os.path.join(directory, OUTPUT_PREFIX + name)


def crop_image(img_path: str, bounds: Bounds, clamp: bool = False) -> str:
    """
    Crops a single image and saves it in its original format.
    The result is written to a temporary file first and moved into place,
    so a failure never leaves a truncated cut_ file behind.
    Returns the output path.
    """
    output_path = output_path_for(img_path)

    with Image.open(img_path) as img:
        original_format = img.format
        box = fit_crop_box(compute_crop_box(img.size, bounds), img.size, clamp)
        logger.debug(f"Cropping '{img_path}' ({original_format}) to {box}.")
        cropped_img = img.crop(box.as_pillow_box())

    fd, temp_path = tempfile.mkstemp(
        prefix=".cut_",
        suffix=".tmp",
        dir=os.path.dirname(output_path) or None,
    )
    os.close(fd)
    try:
        cropped_img.save(temp_path, format=original_format)
        shutil.copymode(img_path, temp_path)
        os.replace(temp_path, output_path)
    except Exception:
        if os.path.exists(temp_path):
            os.remove(temp_path)
        raise

    return output_path


def process_images(
    image_files: Iterable[str],
    bounds: Bounds,
    clamp: bool = False,
    workers: int = DEFAULT_WORKERS,
    verbose: bool = False,
) -> BatchResult:
    """
    Crops all files on a bounded thread pool.
    Each failure is logged and recorded; the remaining files keep going.
    """
    result = BatchResult()

    def run(img_path: str) -> str:
        if verbose:
            logger.info(f"Processing {img_path}.")
        output_path = crop_image(img_path, bounds, clamp)
        if verbose:
            logger.info(f"Processing {img_path} OK.")
        return output_path

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(run, img_path): img_path for img_path in image_files}
        for future in as_completed(futures):
            img_path = futures[future]
            try:
                future.result()
            except Exception as e:
                logger.error(f"Failed to process '{img_path}': {e}")
                result.failed.append(img_path)
            else:
                result.succeeded.append(img_path)

    return result


def main(argv: Optional[List[str]] = None) -> int:
    """Main function that orchestrates the image cropping process."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    bounds = Bounds(left=args.left, top=args.top, right=args.right, bottom=args.bottom)

    logger.info(f"Processing {args.directory}.")
    directory_found = os.path.isdir(args.directory)
    image_files = collect_images(args.directory)
    logger.info(f"Found total {len(image_files)} files.")

    if args.verbose:
        for img_path in sorted(image_files):
            logger.info(img_path)

    result = process_images(
        image_files,
        bounds,
        clamp=args.clamp,
        workers=args.workers,
        verbose=args.verbose,
    )

    logger.info(f"Cropped {len(result.succeeded)} of {result.total} files.")
    if result.failed:
        logger.error(f"{len(result.failed)} file(s) failed.")

    if not directory_found or result.failed:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
