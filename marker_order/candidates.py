"""
Candidate order generation for window re-ordering.

Implements the three strategies for proposing alternative orders of one
window: exhaustive permutation, pairwise swaps, and similarity-weighted
sampling of permutations.
"""

from itertools import permutations
from math import factorial
from typing import Optional, Sequence

import numpy as np
from scipy.stats import spearmanr

from .data_models import ConfigurationError, check_unique_items


STRATEGIES = ("exhaustive", "pairwise", "sampled")
PREFERENCES = ("neutral", "similar", "dissimilar")


def validate_window(order: Sequence[int], p: int, ws: int) -> None:
    """
    Check that the window [p, p+ws) fits inside the order.

    Raises:
        ConfigurationError: If the window is invalid or the order repeats markers
    """
    check_unique_items(order)
    if ws < 2:
        raise ConfigurationError(f"Window size must be at least 2, got {ws}")
    if p < 0:
        raise ConfigurationError(f"Window start must be non-negative, got {p}")
    if p + ws > len(order):
        raise ConfigurationError(
            f"Window [{p}, {p + ws}) does not fit in a sequence of {len(order)} markers"
        )


def splice_window(order: Sequence[int], p: int, ws: int, windows: np.ndarray) -> np.ndarray:
    """
    Place alternative window contents back between the unchanged prefix and suffix.

    Args:
        order: Current full order
        p: Window start
        ws: Window size
        windows: Array of shape (n, ws) with window rows

    Returns:
        Array of shape (n, len(order)) with full orders
    """
    order = np.asarray(order, dtype=int)
    windows = np.asarray(windows, dtype=int).reshape(-1, ws)

    rows = np.tile(order, (windows.shape[0], 1))
    rows[:, p:p + ws] = windows
    return rows


def window_permutations(order: Sequence[int], p: int, ws: int) -> np.ndarray:
    """All ws! arrangements of the window items, identity first."""
    window = list(order[p:p + ws])
    return np.array(list(permutations(window)), dtype=int).reshape(-1, ws)


def generate_all(order: Sequence[int], p: int, ws: int) -> np.ndarray:
    """
    Every permutation of the window.

    Mirror images are kept, so ws=4 yields 24 rows including the identity.
    """
    validate_window(order, p, ws)
    return splice_window(order, p, ws, window_permutations(order, p, ws))


def generate_pairwise(
    order: Sequence[int],
    p: int,
    ws: int,
    no_reverse: bool = True
) -> np.ndarray:
    """
    Orders reachable by swapping exactly one pair of window positions.

    Args:
        order: Current full order
        p: Window start
        ws: Window size
        no_reverse: If False, also include the reverse of every swapped window

    Returns:
        Array of distinct full orders, identity excluded
    """
    validate_window(order, p, ws)
    reference = list(order[p:p + ws])

    windows = [tuple(reference)]
    swapped = []
    for i in range(ws - 1):
        for j in range(ws - 1, i, -1):
            row = list(reference)
            row[i], row[j] = row[j], row[i]
            swapped.append(tuple(row))

    windows.extend(swapped)
    if not no_reverse:
        windows.extend(tuple(reversed(row)) for row in swapped)

    # first occurrence wins; the identity sits at index 0 and is then dropped
    unique = list(dict.fromkeys(windows))[1:]

    if not unique:
        return np.empty((0, len(order)), dtype=int)

    return splice_window(order, p, ws, np.array(unique, dtype=int))


def similarity_scores(reference: Sequence[int], windows: np.ndarray) -> np.ndarray:
    """
    Spearman correlation of every window row with the reference window,
    min-max normalised to [0, 1].
    """
    scores = np.array([spearmanr(reference, row)[0] for row in windows], dtype=float)

    span = scores.max() - scores.min()
    if span == 0:
        return np.zeros_like(scores)
    return (scores - scores.min()) / span


def generate_sampled(
    order: Sequence[int],
    p: int,
    ws: int,
    n: Optional[int] = None,
    preference: str = "neutral",
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Sample n window permutations, optionally biased by similarity.

    With "similar" the sampling weight is the normalised Spearman score of the
    permuted window against the current one; with "dissimilar" it is one minus
    that score. The current window itself carries no weight in either case.

    Args:
        order: Current full order
        p: Window start
        ws: Window size
        n: Number of orders to draw (default ws!/2)
        preference: "neutral", "similar" or "dissimilar"
        rng: Random number generator

    Returns:
        Array of n distinct full orders
    """
    validate_window(order, p, ws)
    if preference not in PREFERENCES:
        raise ConfigurationError(
            f"Invalid preference: '{preference}'. Must be one of {list(PREFERENCES)}"
        )

    total = factorial(ws)
    if n is None:
        n = max(total // 2, 1)
    if n < 1 or n > total:
        raise ConfigurationError(f"Cannot draw {n} orders from {total} permutations")

    if rng is None:
        rng = np.random.default_rng()

    windows = window_permutations(order, p, ws)
    reference = list(order[p:p + ws])

    if preference == "neutral":
        chosen = rng.choice(total, size=n, replace=False)
        return splice_window(order, p, ws, windows[chosen])

    scores = similarity_scores(reference, windows)
    if preference == "similar":
        weights = np.where(scores == 1, 0.0, scores)
    else:
        weights = 1.0 - scores

    positive = np.flatnonzero(weights > 0)
    if n <= len(positive):
        chosen = rng.choice(total, size=n, replace=False, p=weights / weights.sum())
    else:
        zero = np.flatnonzero(weights <= 0)
        filler = rng.choice(zero, size=n - len(positive), replace=False)
        chosen = np.concatenate([positive, filler])

    return splice_window(order, p, ws, windows[chosen])


def generate_candidates(
    order: Sequence[int],
    p: int,
    ws: int,
    strategy: str = "pairwise",
    n: Optional[int] = None,
    preference: str = "neutral",
    no_reverse: bool = True,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Produce the candidate set for one window.

    Args:
        order: Current full order
        p: Window start (0-based)
        ws: Window size
        strategy: "exhaustive", "pairwise" or "sampled"
        n: Number of samples for "sampled"
        preference: Sampling preference for "sampled"
        no_reverse: Skip reversed swaps for "pairwise"
        rng: Random number generator for "sampled"

    Returns:
        Array of shape (n_candidates, len(order))

    Raises:
        ConfigurationError: If the strategy or window is invalid
    """
    if strategy == "exhaustive":
        return generate_all(order, p, ws)
    elif strategy == "pairwise":
        return generate_pairwise(order, p, ws, no_reverse=no_reverse)
    elif strategy == "sampled":
        return generate_sampled(order, p, ws, n=n, preference=preference, rng=rng)
    raise ConfigurationError(
        f"Invalid strategy: '{strategy}'. Must be one of {list(STRATEGIES)}"
    )
