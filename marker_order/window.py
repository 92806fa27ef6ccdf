"""
Window re-ordering.

Re-orders one window of a mapped sequence: proposes alternative orders for
the window, scores them, and keeps the best one only if it improves on the
current sequence.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .data_models import ConfigurationError, SequenceResult, Verbosity
from .candidates import STRATEGIES, PREFERENCES, generate_candidates, validate_window
from .evaluation import (
    FitnessContext,
    evaluate,
    evaluate_candidates,
    count_candidates,
    fitness_of,
)


@dataclass
class RippleSettings:
    """
    Parameters for window re-ordering.

    Attributes:
        window_size: Number of markers re-ordered at once
        strategy: "exhaustive", "pairwise" or "sampled"
        n: Number of orders drawn by "sampled" (default ws!/2)
        preference: "neutral", "similar" or "dissimilar" for "sampled"
        no_reverse: For "pairwise", skip reversed swaps
        workers: Candidate orders evaluated concurrently
        seed: Base seed for "sampled"; each window derives its own generator
        verbosity: Progress reporting switches
    """
    window_size: int = 4
    strategy: str = "pairwise"
    n: Optional[int] = None
    preference: str = "neutral"
    no_reverse: bool = True
    workers: int = 1
    seed: Optional[int] = None
    verbosity: Verbosity = field(default_factory=Verbosity)

    def __post_init__(self):
        """Validate settings once, before any search begins."""
        if self.window_size < 2:
            raise ConfigurationError(f"Window size must be at least 2, got {self.window_size}")
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Invalid strategy: '{self.strategy}'. Must be one of {list(STRATEGIES)}"
            )
        if self.preference not in PREFERENCES:
            raise ConfigurationError(
                f"Invalid preference: '{self.preference}'. Must be one of {list(PREFERENCES)}"
            )
        if self.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")
        if self.n is not None and self.n < 1:
            raise ConfigurationError(f"n must be positive, got {self.n}")

    def rng_for(self, p: int) -> np.random.Generator:
        """Random generator for the window starting at p."""
        if self.seed is None:
            return np.random.default_rng()
        return np.random.default_rng([self.seed, p])


def describe_window(items: list, p: int, ws: int) -> str:
    """One-line view of a window and its neighbours."""
    left = items[p - 1] if p > 0 else ""
    right = items[p + ws] if p + ws < len(items) else ""
    window = "-".join(str(item) for item in items[p:p + ws])
    return f"{p - 1}...{left}|{window}|{right}...{p + ws + 1}"


def optimize_window(
    sequence: SequenceResult,
    p: int,
    settings: RippleSettings,
    context: FitnessContext
) -> SequenceResult:
    """
    Find the best order of the window [p, p+ws) of a mapped sequence.

    Args:
        sequence: Current mapped sequence
        p: Window start (0-based)
        settings: Window and strategy parameters
        context: Estimator, objective and tolerance

    Returns:
        The improved sequence, or the input sequence if no candidate is better

    Raises:
        ConfigurationError: If the window does not fit the sequence
    """
    ws = settings.window_size
    items = list(sequence.items)
    validate_window(items, p, ws)

    settings.verbosity.emit("order", describe_window(items, p, ws))

    candidates = generate_candidates(
        items, p, ws,
        strategy=settings.strategy,
        n=settings.n,
        preference=settings.preference,
        no_reverse=settings.no_reverse,
        rng=settings.rng_for(p),
    )

    if len(candidates) == 0:
        return sequence

    def _report(i: int, total: int) -> None:
        settings.verbosity.emit(
            "position", f"Trying order {i + 1} of {total} for start position {p}"
        )

    if context.objective == "count":
        return _select_by_count(sequence, candidates, settings, context, _report)

    seeds = sequence.phases[:p] if p > 0 else None
    outcomes = evaluate_candidates(
        candidates, context.with_seeds(seeds), settings.workers, on_start=_report
    )

    scores = [fitness_of(outcome) for outcome in outcomes]
    best = int(np.argmax(scores))

    if scores[best] > sequence.likelihood:
        return outcomes[best]
    return sequence


def _select_by_count(
    sequence: SequenceResult,
    candidates: np.ndarray,
    settings: RippleSettings,
    context: FitnessContext,
    report
) -> SequenceResult:
    """
    Keep the candidate with the fewest expected recombinants, then map it.

    The current order is appended last, so it wins only when no candidate
    ties or beats it.
    """
    rows = np.vstack([candidates, np.asarray(sequence.items, dtype=int)])
    weights = context.estimator.pairwise_transition_weights()

    counts = count_candidates(rows, weights, settings.workers, on_start=report)
    best = int(np.argmin(counts))

    outcome = evaluate(rows[best], context.with_seeds(None))
    if fitness_of(outcome) == float('-inf'):
        return sequence
    return outcome
