# search.py
"""
Adaptive quality search.

A JPEG is probed at a starting quality (its guessed original quality when that
can be read) and the quality is moved up or down by a step proportional to how
far the score is from the threshold, until an encode is both smaller than the
source and within the threshold. A quality revisited too often means the search
is oscillating; that attempt is abandoned, the threshold is multiplied by
`threshold_multiplier` and the search resumes from where it stopped, keeping
every measurement made so far. Once an attempt converges, the smallest passing
encode in the whole history is re-encoded as the final WebP.

PNG inputs skip the search and are encoded once as lossless WebP.
"""
import logging
import os
from dataclasses import dataclass

from . import imaging
from .errors import (
    CleanupFailure,
    ConversionFailure,
    EncodeFailure,
    GuessFailure,
    InputFormatError,
    InvalidOption,
    ProbeFailure,
    RecompressError,
    SearchExhausted,
    ThresholdOutOfRange,
)
from .quality import TrialTable, clamp_quality, get_final_quality, get_quality_interval, round_to

# --- CONFIGURATION ---
# Maximum acceptable 1 - SSIM. 0.02 means SSIM >= 0.98, "visually hard to tell apart".
DEFAULT_THRESHOLD = 0.02
DEFAULT_THRESHOLD_MULTIPLIER = 1.5
DEFAULT_START = 75
THRESHOLD_PRECISION = 4

# A quality measured more than MAX_ATTEMPTS times ends the attempt, after moving
# ESCAPE_NUDGE points away from it.
MAX_ATTEMPTS = 3
ESCAPE_NUDGE = 2
# --- END OF CONFIGURATION ---


@dataclass
class SearchOutcome:
    converged: bool
    quality: int
    score: float
    size: int


@dataclass
class RecompressResult:
    ok: bool
    message: str
    quality: int = None
    input_size: int = None
    output_size: int = None
    threshold: float = None


def _kb(size):
    return round_to(size / 1024, 2)


def validate_threshold(threshold):
    if threshold > 1 or threshold < 0:
        raise ThresholdOutOfRange("Threshold must be between 0 and 1.")


def relax_threshold(threshold, threshold_multiplier):
    """
    Loosen the threshold by `threshold_multiplier`. The result is rounded to
    THRESHOLD_PRECISION decimals unless rounding would undo the increase; a
    zero threshold moves to the smallest rounded step.
    """
    relaxed = threshold * threshold_multiplier
    rounded = round_to(relaxed, THRESHOLD_PRECISION)
    if rounded > threshold:
        return rounded
    if relaxed > threshold:
        return relaxed
    return 10 ** -THRESHOLD_PRECISION


def search_quality(input_path, input_size, files, quality, threshold, trials,
                   quiet=False, trial=None, max_attempts=MAX_ATTEMPTS,
                   escape_nudge=ESCAPE_NUDGE) -> SearchOutcome:
    """
    Run trials from `quality` until one passes or the search starts oscillating.

    Every trial is recorded in `trials`. Returns a converged outcome for the
    passing quality, or a non-converged one carrying the quality to resume from.
    TrialFailure from `trial` propagates unchanged.
    """
    trial = trial or imaging.run_trial
    quality = clamp_quality(quality)

    while True:
        score, size = trial(input_path, input_size, files, quality, quiet, trials)
        record = trials.record(quality, score, size)

        # Pass is checked before the attempt cap; attempt counts survive
        # relaxation. See "Passing before capping" in DESIGN.md.
        if size < input_size and score <= threshold:
            return SearchOutcome(True, quality, score, size)

        if record.attempts > max_attempts:
            logging.info("q%d tried %d times; leaving threshold %s", quality, record.attempts, threshold)
            if size >= input_size:
                quality = clamp_quality(quality - escape_nudge)
            else:
                quality = clamp_quality(quality + escape_nudge)
            return SearchOutcome(False, quality, score, size)

        interval = get_quality_interval(score, threshold, quality)

        # Larger than the source is rejected whatever the score.
        if size >= input_size:
            quality = clamp_quality(quality - interval)
        else:
            quality = clamp_quality(quality + interval)


def select_final_candidate(input_path, input_size, files, outcome, threshold, trials, trial=None):
    """
    Choose the smallest passing encode across the whole trial history and
    write it out once more as the final WebP. Returns (quality, size).
    """
    trial = trial or imaging.run_trial
    quality, size = get_final_quality(outcome.score, trials, threshold, input_size)
    # The confirming encode is not fed back into the history.
    trial(input_path, input_size, files, quality, True, TrialTable())
    return quality, size


def _clean_up(files, keep_output=True):
    try:
        imaging.clean_up(files, keep_output=keep_output)
    except CleanupFailure as e:
        logging.warning("Cleanup failed: %s", e)


def recompress_png(input_path, quiet=False) -> RecompressResult:
    """Encode a PNG as lossless WebP. No search, no retry."""
    try:
        input_size = imaging.probe_byte_size(input_path)
    except ProbeFailure as e:
        raise ProbeFailure(f"Couldn't get the size of PNG input: {e}") from e
    output_webp = os.path.abspath(imaging.PNG_REGEX.sub('.webp', input_path))

    if not quiet:
        print(f"Input: {input_path}")

    try:
        imaging.encode_lossless(input_path, output_webp)
    except EncodeFailure as e:
        raise EncodeFailure(f"Couldn't encode lossless WebP from PNG input: {e}") from e
    output_size = imaging.probe_byte_size(output_webp)

    return RecompressResult(
        True,
        f"Encoded lossless WebP from PNG input: {_kb(input_size)} KB -> {_kb(output_size)} KB",
        input_size=input_size,
        output_size=output_size,
    )


def _recompress_jpeg(input_path, threshold, threshold_multiplier, start, quiet, verbose,
                     max_relaxations) -> RecompressResult:
    start = clamp_quality(start)
    validate_threshold(threshold)
    if threshold_multiplier <= 1:
        raise InvalidOption("Threshold multiplier must be greater than 1.")

    input_size = imaging.probe_byte_size(input_path)
    files = imaging.working_files_for(input_path)

    if not quiet:
        print(f"Input: {input_path}")

    try:
        quality = imaging.guess_original_quality(input_path)
        if verbose and not quiet:
            print(f"Guessed JPEG quality at q{quality}")
    except GuessFailure as e:
        logging.info("Quality guess failed for %s: %s", input_path, e)
        quality = start
        if verbose and not quiet:
            print(f"Couldn't guess JPEG quality. Starting at q{quality}")

    for path in (files.ref_png, files.webp_png):
        if os.path.exists(path):
            raise ConversionFailure(f"Refusing to overwrite existing file {path}")

    trials = TrialTable()
    relaxations = 0

    try:
        imaging.make_reference_image(input_path, files.ref_png)

        while True:
            validate_threshold(threshold)
            if verbose and not quiet:
                print(f"Trying for threshold: {threshold}...")
            logging.info("Searching %s at threshold %s from q%d", input_path, threshold, quality)

            outcome = search_quality(input_path, input_size, files, quality, threshold, trials,
                                     quiet=quiet or not verbose)
            if outcome.converged:
                break

            smallest = trials.get(0)
            if outcome.size >= input_size and smallest is not None and smallest.size >= input_size:
                raise SearchExhausted(
                    f"No WebP encode is smaller than the input, even at q0 ({_kb(smallest.size)} KB "
                    f">= {_kb(input_size)} KB)"
                )

            if max_relaxations is not None and relaxations >= max_relaxations:
                raise SearchExhausted(
                    f"No candidate found after {relaxations} threshold relaxations (threshold {threshold})"
                )
            relaxations += 1
            threshold = relax_threshold(threshold, threshold_multiplier)
            quality = outcome.quality

        quality, size = select_final_candidate(input_path, input_size, files, outcome, threshold, trials)
    except RecompressError:
        _clean_up(files, keep_output=False)
        raise

    _clean_up(files)

    return RecompressResult(
        True,
        f"Candidate found at q{quality}: {_kb(input_size)} KB -> {_kb(size)} KB",
        quality=quality,
        input_size=input_size,
        output_size=size,
        threshold=threshold,
    )


def webp_recompress(input_path, threshold=DEFAULT_THRESHOLD,
                    threshold_multiplier=DEFAULT_THRESHOLD_MULTIPLIER, start=DEFAULT_START,
                    quiet=False, verbose=False, max_relaxations=None) -> RecompressResult:
    """
    Recompress one JPEG or PNG to WebP. Never raises for search or collaborator
    failures; they come back as a result with ok=False and the reason in message.
    """
    try:
        if imaging.PNG_REGEX.search(input_path):
            return recompress_png(input_path, quiet=quiet)
        if not imaging.JPEG_REGEX.search(input_path):
            raise InputFormatError("Input must be a JPEG or PNG image.")
        return _recompress_jpeg(input_path, threshold, threshold_multiplier, start, quiet,
                                verbose, max_relaxations)
    except RecompressError as e:
        logging.error("%s: %s", input_path, e)
        return RecompressResult(False, str(e))
