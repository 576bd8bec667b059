# cli.py
"""
Command-line interface for webp_recompress.

Collects JPEG/PNG inputs (files or folders), recompresses each one in turn and
prints a savings summary.
"""
import argparse
import logging
import os
import sys

from .imaging import CWEBP, JPEG_REGEX, PNG_REGEX, is_tool_installed
from .search import (
    DEFAULT_START,
    DEFAULT_THRESHOLD,
    DEFAULT_THRESHOLD_MULTIPLIER,
    webp_recompress,
)

# Relaxations per image before giving up.
DEFAULT_MAX_RELAXATIONS = 25


def setup_logging(verbose: bool, log_file: str = None):
    handlers = []
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    if verbose:
        handlers.append(logging.StreamHandler())
    if not handlers:
        handlers.append(logging.NullHandler())
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(message)s', handlers=handlers, force=True)


def collect_inputs(paths: list) -> list:
    """Expand folders into the JPEG and PNG files they contain, sorted by name."""
    inputs = []
    for path in paths:
        if os.path.isdir(path):
            for filename in sorted(os.listdir(path)):
                if JPEG_REGEX.search(filename) or PNG_REGEX.search(filename):
                    inputs.append(os.path.join(path, filename))
        else:
            inputs.append(path)
    return inputs


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Find the lowest WebP quality that stays within an SSIM threshold of a JPEG '
                    'and is smaller than it. PNG inputs are encoded as lossless WebP.'
    )
    parser.add_argument('inputs', nargs='+', help='JPEG/PNG files or folders containing them')
    parser.add_argument('--threshold', type=float, default=DEFAULT_THRESHOLD,
                        help='Maximum acceptable 1 - SSIM (0..1)')
    parser.add_argument('--threshold-multiplier', dest='threshold_multiplier', type=float,
                        default=DEFAULT_THRESHOLD_MULTIPLIER,
                        help='Factor the threshold is relaxed by when no candidate is found')
    parser.add_argument('--start', type=int, default=DEFAULT_START,
                        help='Starting quality when the JPEG quality cannot be guessed')
    parser.add_argument('--max-relaxations', dest='max_relaxations', type=int,
                        default=DEFAULT_MAX_RELAXATIONS,
                        help='Give up on an image after this many threshold relaxations')
    parser.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    parser.add_argument('--log-file', help='Log file path')
    parser.add_argument('-v', '--verbose', action='store_true', help='Print every trial')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    if not is_tool_installed(CWEBP):
        print(f"ERROR: '{CWEBP}' was not found. Please install the WebP tools.", file=sys.stderr)
        return 1

    inputs = collect_inputs(args.inputs)
    if not inputs:
        print("No matching images found.")
        return 1

    total_savings = 0
    image_count = 0
    failures = 0

    for input_path in inputs:
        result = webp_recompress(
            input_path,
            threshold=args.threshold,
            threshold_multiplier=args.threshold_multiplier,
            start=args.start,
            quiet=args.quiet,
            verbose=args.verbose,
            max_relaxations=args.max_relaxations,
        )
        if not result.ok:
            failures += 1
            print(f"✗ {input_path}: {result.message}", file=sys.stderr)
            continue

        image_count += 1
        total_savings += result.input_size - result.output_size
        if not args.quiet:
            print(f"✓ {result.message}")

    if not args.quiet and image_count > 0:
        print("\n--- Summary ---")
        print(f"Images recompressed: {image_count}")
        print(f"Total size savings: {total_savings / 1024:.1f} KiB")

    return 1 if failures else 0


if __name__ == '__main__':
    sys.exit(main())
