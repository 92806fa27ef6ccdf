"""
Fitness evaluation for candidate orders.

Wraps the estimator behind a single evaluate(order) contract and scores
candidate sets on a bounded thread pool. Estimation failures are returned as
EvaluationFailure values and never raised.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from .data_models import (
    ConfigurationError,
    EvaluationFailure,
    EvaluationOutcome,
)
from .estimator_interface import MappingEstimator


OBJECTIVES = ("likelihood", "count")


@dataclass
class FitnessContext:
    """
    What to call when scoring an order.

    Attributes:
        estimator: Mapping estimator
        objective: "likelihood" or "count"
        tolerance: Convergence tolerance passed to the estimator
        phase_workers: Workers the estimator may use for phase estimation
        seeds: Known phases of the leading intervals; None for a full estimate
    """
    estimator: MappingEstimator
    objective: str = "likelihood"
    tolerance: float = 1e-3
    phase_workers: int = 1
    seeds: Optional[List[int]] = None

    def __post_init__(self):
        if self.objective not in OBJECTIVES:
            raise ConfigurationError(
                f"Invalid objective: '{self.objective}'. Must be one of {list(OBJECTIVES)}"
            )
        if self.tolerance <= 0:
            raise ConfigurationError(f"Tolerance must be positive, got {self.tolerance}")
        if self.phase_workers < 1:
            raise ConfigurationError(f"phase_workers must be at least 1, got {self.phase_workers}")

    def with_seeds(self, seeds: Optional[Sequence[int]]) -> "FitnessContext":
        """Copy of this context with a different phase prefix."""
        return FitnessContext(
            estimator=self.estimator,
            objective=self.objective,
            tolerance=self.tolerance,
            phase_workers=self.phase_workers,
            seeds=list(seeds) if seeds is not None else None,
        )


def evaluate(order: Sequence[int], context: FitnessContext) -> EvaluationOutcome:
    """
    Map one order.

    Args:
        order: Marker identifiers
        context: Estimator and settings

    Returns:
        SequenceResult, or EvaluationFailure if the estimator raised
    """
    order = [int(item) for item in order]
    try:
        if context.seeds:
            return context.estimator.estimate_seeded_map(
                order, context.seeds, context.tolerance, context.phase_workers
            )
        return context.estimator.estimate_map(
            order, context.tolerance, context.phase_workers
        )
    except Exception as e:
        return EvaluationFailure(items=order, reason=f"{type(e).__name__}: {e}")


def fitness_of(outcome: EvaluationOutcome) -> float:
    """Likelihood used for ranking; -inf for failures."""
    if isinstance(outcome, EvaluationFailure):
        return float('-inf')
    return float(outcome.likelihood)


def transition_count(weights: np.ndarray, order: Sequence[int]) -> float:
    """
    Sum of transition weights between adjacent markers.

    Undefined (NaN) weights count as zero.
    """
    order = np.asarray(order, dtype=int)
    return float(np.nansum(weights[order[:-1], order[1:]]))


def _run_pool(
    func: Callable,
    rows: Sequence,
    workers: int
) -> list:
    """Apply func to every row, in parallel when more than one worker is allowed."""
    if workers is None or workers <= 1 or len(rows) <= 1:
        return [func(i, row) for i, row in enumerate(rows)]

    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(func, range(len(rows)), rows))


def evaluate_candidates(
    rows: np.ndarray,
    context: FitnessContext,
    workers: int = 1,
    on_start: Optional[Callable[[int, int], None]] = None
) -> List[EvaluationOutcome]:
    """
    Map every candidate order.

    Args:
        rows: Candidate orders, one per row
        context: Estimator and settings
        workers: Maximum concurrent evaluations
        on_start: Called with (index, total) before each evaluation

    Returns:
        Outcomes in candidate order
    """
    rows = [list(row) for row in np.asarray(rows, dtype=int)]
    total = len(rows)

    def _score(i: int, row: list) -> EvaluationOutcome:
        if on_start is not None:
            on_start(i, total)
        return evaluate(row, context)

    return _run_pool(_score, rows, workers)


def count_candidates(
    rows: np.ndarray,
    weights: np.ndarray,
    workers: int = 1,
    on_start: Optional[Callable[[int, int], None]] = None
) -> List[float]:
    """Transition-count statistic for every candidate order, in candidate order."""
    rows = [list(row) for row in np.asarray(rows, dtype=int)]
    total = len(rows)

    def _count(i: int, row: list) -> float:
        if on_start is not None:
            on_start(i, total)
        return transition_count(weights, row)

    return _run_pool(_count, rows, workers)
