# imaging.py
"""
Everything that touches image files or external binaries: size probes, the JPEG
quality guess, cwebp encodes, decoding back to PNG and the SSIM-based score.
"""
import logging
import os
import re
import shutil
import subprocess
from collections import namedtuple

import numpy as np
from PIL import Image
from skimage.metrics import structural_similarity as ssim

from .errors import (
    CleanupFailure,
    ConversionFailure,
    EncodeFailure,
    GuessFailure,
    ProbeFailure,
    TrialFailure,
)
from .quality import round_to

# --- CONFIGURATION ---
CWEBP = 'cwebp'

# Compression method (0-6). 6 is the slowest but produces the smallest files.
WEBP_METHOD = 6

JPEG_REGEX = re.compile(r'\.jpe?g$', re.IGNORECASE)
PNG_REGEX = re.compile(r'\.png$', re.IGNORECASE)
# --- END OF CONFIGURATION ---

# IJG / Annex K luminance table the libjpeg quality setting scales from.
STANDARD_LUMINANCE_TABLE = [
    16, 11, 10, 16, 24, 40, 51, 61,
    12, 12, 14, 19, 26, 58, 60, 55,
    14, 13, 16, 24, 40, 57, 69, 56,
    14, 17, 22, 29, 51, 87, 80, 62,
    18, 22, 37, 56, 68, 109, 103, 77,
    24, 35, 55, 64, 81, 104, 113, 92,
    49, 64, 78, 87, 103, 121, 120, 101,
    72, 92, 95, 98, 112, 100, 103, 99,
]

WorkingFileSet = namedtuple('WorkingFileSet', ['ref_png', 'output_webp', 'webp_png'])


def is_tool_installed(name):
    """Check whether a command-line tool is on the PATH."""
    return shutil.which(name) is not None


def working_files_for(input_path: str) -> WorkingFileSet:
    """Reference PNG, output WebP and decoded comparison PNG, all beside the input."""
    return WorkingFileSet(
        ref_png=os.path.abspath(JPEG_REGEX.sub('-ref.png', input_path)),
        output_webp=os.path.abspath(JPEG_REGEX.sub('.webp', input_path)),
        webp_png=os.path.abspath(JPEG_REGEX.sub('-webp.png', input_path)),
    )


def probe_byte_size(path: str) -> int:
    try:
        return os.path.getsize(path)
    except OSError as e:
        raise ProbeFailure(f"Couldn't get the size of {path}: {e}") from e


def guess_original_quality(path: str) -> int:
    """
    Estimate the quality setting a JPEG was saved with from its luminance
    quantization table, inverting the libjpeg scaling formula.
    """
    try:
        with Image.open(path) as img:
            tables = getattr(img, 'quantization', None)
    except OSError as e:
        raise GuessFailure(f"Couldn't read {path}: {e}") from e

    if not tables or 0 not in tables:
        raise GuessFailure(f"No quantization tables in {path}")

    luminance = list(tables[0])
    if len(luminance) != 64:
        raise GuessFailure(f"Unexpected quantization table in {path}")

    # Sums are independent of zigzag vs. natural ordering.
    scale = sum(luminance) * 100.0 / sum(STANDARD_LUMINANCE_TABLE)
    if scale <= 100:
        quality = (200 - scale) / 2
    else:
        quality = 5000 / scale
    return max(1, min(100, int(round(quality))))


def make_reference_image(source_path: str, dest_path: str):
    """Decode the JPEG once into a PNG every trial is scored against."""
    try:
        with Image.open(source_path) as img:
            img.save(dest_path, format='PNG')
    except (OSError, ValueError) as e:
        raise ConversionFailure(f"Couldn't create a PNG reference from the JPEG given: {e}") from e


def _run_cwebp(args, dest_path):
    cmd = [CWEBP] + args + ['-o', dest_path]
    logging.info('Run: %s', ' '.join(cmd))
    try:
        subprocess.run(cmd, capture_output=True, check=True)
    except FileNotFoundError as e:
        raise EncodeFailure(f"'{CWEBP}' was not found. Please install the WebP tools.") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b'').decode(errors='replace').strip()
        raise EncodeFailure(f"cwebp exited with status {e.returncode}: {stderr}") from e


def encode_lossy(source_path: str, dest_path: str, quality: int):
    _run_cwebp(['-q', str(quality), '-m', str(WEBP_METHOD), '-mt', source_path], dest_path)


def encode_lossless(source_path: str, dest_path: str):
    _run_cwebp(['-lossless', '-q', '100', '-m', str(WEBP_METHOD), '-mt', source_path], dest_path)


def decode_webp(source_path: str, dest_path: str):
    with Image.open(source_path) as img:
        img.save(dest_path, format='PNG')


def calculate_score(reference_path: str, candidate_path: str) -> float:
    """
    1 - SSIM on luminance. 0.0 means identical; larger is worse.
    """
    with Image.open(reference_path) as ref, Image.open(candidate_path) as cand:
        img1 = ref.convert('L')
        img2 = cand.convert('L')

    # Make sure both images have the same size
    if img1.size != img2.size:
        img2 = img2.resize(img1.size, Image.Resampling.LANCZOS)

    img1_arr = np.array(img1)
    img2_arr = np.array(img2)

    smallest = min(img1_arr.shape)
    if smallest < 3:
        diff = np.abs(img1_arr.astype(np.float64) - img2_arr.astype(np.float64))
        return float(diff.mean() / 255.0)

    win_size = min(7, smallest if smallest % 2 else smallest - 1)
    similarity = ssim(img1_arr, img2_arr, data_range=255, win_size=win_size)
    return max(0.0, float(1.0 - similarity))


def run_trial(source_path: str, input_size: int, files: WorkingFileSet, quality: int,
              quiet: bool, trials) -> "tuple[float, int]":
    """
    Encode at `quality`, decode the result back to PNG and score it against the
    reference. Returns (score, output size in bytes).
    """
    try:
        encode_lossy(source_path, files.output_webp, quality)
        decode_webp(files.output_webp, files.webp_png)
        score = calculate_score(files.ref_png, files.webp_png)
        size = probe_byte_size(files.output_webp)
    except (EncodeFailure, ProbeFailure) as e:
        raise TrialFailure(f"Couldn't run image trial: {e}") from e
    except (OSError, ValueError) as e:
        raise TrialFailure(f"Couldn't run image trial: {type(e).__name__}: {e}") from e

    previous = trials.get(quality) if trials is not None else None
    retry = f" (retry {previous.attempts})" if previous else ''
    msg = (f"  -> q{quality}{retry}: score {score:.5f}, "
           f"{round_to(size / 1024)} KB ({round_to(size * 100 / max(input_size, 1))}% of input)")
    logging.info(msg)
    if not quiet:
        print(msg)
    return score, size


def clean_up(files: WorkingFileSet, keep_output: bool = True):
    """Remove the intermediate PNGs, and the WebP too when `keep_output` is False."""
    paths = [files.ref_png, files.webp_png]
    if not keep_output:
        paths.append(files.output_webp)
    for path in paths:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            raise CleanupFailure(f"Couldn't remove {path}: {e}") from e
