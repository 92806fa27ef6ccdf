"""
Whole-sequence sweeps.

Slides the window optimizer from left to right over a mapped sequence and
estimates how long the remaining work will take.
"""

import time
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .data_models import ConfigurationError, SequenceResult
from .evaluation import FitnessContext
from .window import RippleSettings, optimize_window


def ripple_sequence(
    sequence: SequenceResult,
    settings: RippleSettings,
    context: FitnessContext,
    start: int = 0,
    batches: Optional[Sequence[Sequence[int]]] = None,
    timings: Optional[List[float]] = None
) -> SequenceResult:
    """
    Re-order every window of a sequence in one left-to-right pass.

    Each window is optimised on the best sequence found so far. This is a
    single pass; call it again (or use ripple_until_stable) to converge.

    Args:
        sequence: Mapped input sequence
        settings: Window and strategy parameters
        context: Estimator, objective and tolerance
        start: First window start position (0-based)
        batches: Marker batches of the whole run, used only to predict finish time
        timings: List that receives the duration of every window, in seconds

    Returns:
        Best sequence after the pass
    """
    ws = settings.window_size
    n_markers = len(sequence.items)

    if start < 0:
        raise ConfigurationError(f"Start position must be non-negative, got {start}")
    if start + ws > n_markers:
        return sequence

    if timings is None:
        timings = []

    started_at = datetime.now()
    best = sequence

    for i in range(start, n_markers - ws + 1):
        tic = time.perf_counter()
        best = optimize_window(best, i, settings, context)
        timings.append(time.perf_counter() - tic)

        if settings.verbosity.time:
            estimate = predict_finish_time(batches, ws, timings)
            if estimate is not None:
                mean, sd = estimate
                settings.verbosity.emit(
                    "time",
                    f"The current best estimate for the total time is {mean:.0f}s +/- {sd:.0f}s."
                )
                settings.verbosity.emit(
                    "time", f"Predicted finish time: {started_at + timedelta(seconds=mean)}"
                )

    return best


def ripple_until_stable(
    sequence: SequenceResult,
    settings: RippleSettings,
    context: FitnessContext,
    max_passes: int = 10,
    start: int = 0,
    batches: Optional[Sequence[Sequence[int]]] = None,
    timings: Optional[List[float]] = None
) -> Tuple[SequenceResult, int]:
    """
    Repeat passes until the order stops changing.

    The first pass resumes at `start`; later passes cover the whole sequence,
    and only a full pass without changes ends the loop early.

    Args:
        sequence: Mapped input sequence
        settings: Window and strategy parameters
        context: Estimator, objective and tolerance
        max_passes: Upper bound on the number of passes
        start: First window start position of the first pass
        batches: Marker batches of the whole run, used only to predict finish time
        timings: List that receives the duration of every window, in seconds

    Returns:
        Tuple of (best_sequence, passes_run)
    """
    if max_passes < 1:
        raise ConfigurationError(f"max_passes must be at least 1, got {max_passes}")

    best = sequence
    for passes in range(1, max_passes + 1):
        improved = ripple_sequence(
            best, settings, context,
            start=start if passes == 1 else 0,
            batches=batches,
            timings=timings,
        )
        # a resumed first pass does not prove the whole order stable
        if improved.items == best.items and (passes > 1 or start == 0):
            return improved, passes
        best = improved

    return best, max_passes


def predict_finish_time(
    batches: Optional[Sequence[Sequence[int]]],
    window_size: int,
    timings: Sequence[float]
) -> Optional[Tuple[float, float]]:
    """
    Estimate total run time from the window durations seen so far.

    The number of windows is counted over all batches, discounting the
    markers each batch shares with the previous one.

    Args:
        batches: Marker batches of the whole run
        window_size: Window size
        timings: Durations of completed windows, in seconds

    Returns:
        Tuple of (estimate_seconds, sd_seconds), or None without batches or timings
    """
    if not batches or len(timings) == 0:
        return None

    samples = np.asarray(timings, dtype=float)
    median = float(np.median(samples))
    sd = float(np.std(samples, ddof=1)) if samples.size > 1 else 0.0

    total = len(batches[0]) - window_size
    for previous, current in zip(batches[:-1], batches[1:]):
        overlap = len(set(previous) & set(current))
        total += len(current) - overlap - window_size

    return float(round(median * total)), float(round(sd * total))


def split_into_batches(
    items: Sequence[int],
    batch_size: int,
    overlap: int = 0
) -> List[List[int]]:
    """
    Cut an order into consecutive batches sharing `overlap` markers.

    Example:
        >>> split_into_batches(list(range(10)), 4, 1)
        [[0, 1, 2, 3], [3, 4, 5, 6], [6, 7, 8, 9]]
    """
    if batch_size < 1:
        raise ConfigurationError(f"batch_size must be positive, got {batch_size}")
    if not 0 <= overlap < batch_size:
        raise ConfigurationError(
            f"overlap must be in [0, {batch_size}), got {overlap}"
        )

    items = list(items)
    step = batch_size - overlap
    batches = []
    begin = 0
    while True:
        batches.append(items[begin:begin + batch_size])
        if begin + batch_size >= len(items):
            break
        begin += step
    return batches
