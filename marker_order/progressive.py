"""
Progressive order construction.

Builds an order from scratch: a framework is established for the most
informative markers, the remaining markers are inserted one at a time when
their best position is unambiguous, and markers that never pass the LOD
threshold are finally forced into their most likely position.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .data_models import (
    ConfigurationError,
    EstimationError,
    SeedFrameworkError,
    OrderResult,
    SequenceResult,
    Verbosity,
    check_unique_items,
)
from .estimator_interface import MappingEstimator
from .evaluation import FitnessContext, evaluate


THRESHOLD_EPS = 1e-9

# Dominant segregation categories: D1 markers are tried before D2 ones
# unless D2 markers are the majority.
CATEGORY_D1 = 6
CATEGORY_D2 = 7
CATEGORY_DEMOTED = 8


@dataclass
class OrderSettings:
    """
    Parameters for progressive construction.

    Attributes:
        seed_size: Number of informative markers in the initial framework
        threshold: LOD margin required to accept an insertion
        touchdown: Retry unplaced markers with threshold - 1
        tolerance: Estimator tolerance during insertion
        final_tolerance: Estimator tolerance for the returned maps
        seed: Seed for breaking ties during forced placement
        verbosity: Progress reporting switches
    """
    seed_size: int = 5
    threshold: float = 3.0
    touchdown: bool = False
    tolerance: float = 1e-1
    final_tolerance: float = 1e-4
    seed: Optional[int] = None
    verbosity: Verbosity = field(default_factory=Verbosity)

    def __post_init__(self):
        """Validate settings once, before any work begins."""
        if self.seed_size < 2:
            raise ConfigurationError(
                f"'seed_size' must be greater than or equal to 2, got {self.seed_size}"
            )
        if not isinstance(self.touchdown, bool):
            raise ConfigurationError("'touchdown' must be a boolean")
        if not self.touchdown and self.threshold <= THRESHOLD_EPS:
            raise ConfigurationError("Threshold must be greater than 0 if 'touchdown' is False")
        if self.touchdown and self.threshold <= 1 + THRESHOLD_EPS:
            raise ConfigurationError("Threshold must be greater than 1 if 'touchdown' is True")
        if self.tolerance <= 0 or self.final_tolerance <= 0:
            raise ConfigurationError("Tolerances must be positive")


def rank_by_informativeness(categories: Sequence[int]) -> List[int]:
    """
    Indices of markers from most to least informative.

    Ties keep their input order.
    """
    categories = np.asarray(categories, dtype=int).copy()
    if np.sum(categories == CATEGORY_D2) > np.sum(categories == CATEGORY_D1):
        categories[categories == CATEGORY_D1] = CATEGORY_DEMOTED
    return np.argsort(categories, kind="stable").tolist()


def is_unambiguous(lods: np.ndarray, threshold: float) -> bool:
    """True if every position but the best scores below -threshold."""
    best = int(np.argmax(lods))
    others = np.delete(lods, best)
    return bool(np.all(others < -threshold))


def second_best(lods: np.ndarray) -> float:
    """Highest LOD once the best position is removed."""
    lods = np.asarray(lods, dtype=float)
    if lods.size < 2:
        return float('-inf')
    return float(np.max(np.delete(lods, int(np.argmax(lods)))))


def insert_at(order: Sequence[int], item: int, position: int) -> List[int]:
    order = list(order)
    return order[:position] + [item] + order[position:]


def try_insertions(
    order: List[int],
    items: Sequence[int],
    estimator: MappingEstimator,
    threshold: float,
    tolerance: float,
    verbosity: Verbosity
) -> Tuple[List[int], List[int]]:
    """
    Insert markers one by one where their best position is unambiguous.

    Args:
        order: Current positioned order
        items: Markers to try, in order
        estimator: Mapping estimator
        threshold: Required LOD margin
        tolerance: Estimator tolerance
        verbosity: Progress reporting switches

    Returns:
        Tuple of (new_order, markers_left_out)
    """
    order = list(order)
    left_out = []

    for item in items:
        try:
            lods = np.asarray(estimator.score_insertion(order, item, tolerance), dtype=float)
        except Exception as e:
            verbosity.emit("position", f"  Marker {item}: could not be scored ({e})")
            left_out.append(item)
            continue

        if is_unambiguous(lods, threshold):
            position = int(np.argmax(lods))
            order = insert_at(order, item, position)
            verbosity.emit("position", f"  Marker {item}: positioned at {position}")
        else:
            left_out.append(item)
            verbosity.emit("position", f"  Marker {item}: ambiguous, left unpositioned")

    return order, left_out


def build_order(
    items: Sequence[int],
    estimator: MappingEstimator,
    settings: Optional[OrderSettings] = None
) -> OrderResult:
    """
    Construct an order for a set of markers.

    Algorithm:
        1. Rank markers by informativeness and take the first seed_size as seed
        2. Order the seed with the estimator's framework builder
        3. Insert remaining markers where the LOD margin exceeds the threshold
        4. Optionally retry unplaced markers with threshold - 1 (touchdown)
        5. Record LOD profiles of markers still unplaced
        6. Force unplaced markers into their most likely position,
           most confident first
        7. Re-estimate both orders with the final tolerance; an order that
           cannot be mapped is returned unrefined with likelihood -inf

    Args:
        items: Markers to order
        estimator: Mapping estimator
        settings: Construction parameters

    Returns:
        OrderResult with the safe order, unplaced markers and the forced order

    Raises:
        ConfigurationError: If parameters or markers are invalid
        SeedFrameworkError: If the seed markers cannot be mapped
    """
    if settings is None:
        settings = OrderSettings()
    items = check_unique_items(items)
    if len(items) < 2:
        raise ConfigurationError(f"At least 2 markers are needed, got {len(items)}")

    verbosity = settings.verbosity
    rng = np.random.default_rng(settings.seed)

    if len(items) <= settings.seed_size:
        verbosity.emit(
            "order",
            f"Sequence has no more than {settings.seed_size} markers; "
            f"returning the best framework order"
        )
        framework = items if len(items) == 2 else _framework(estimator, items)
        seq = _estimate_seed(estimator, framework, settings.final_tolerance)
        return OrderResult(
            positioned=seq,
            unpositioned=[],
            lod_unpositioned=None,
            threshold=settings.threshold,
            forced=seq.copy(),
        )

    ranking = rank_by_informativeness(estimator.marker_categories(items))
    ranked = [items[i] for i in ranking]
    seed_items = ranked[:settings.seed_size]

    framework = _framework(estimator, seed_items)
    framework_seq = _estimate_seed(estimator, framework, settings.tolerance)

    verbosity.emit(
        "order",
        f"Framework order: {framework} (log-likelihood {framework_seq.likelihood:.4f})"
    )

    positioned, unpositioned = try_insertions(
        framework, ranked[settings.seed_size:], estimator,
        settings.threshold, settings.tolerance, verbosity
    )
    verbosity.emit("order", f"LOD threshold = {settings.threshold}")
    verbosity.emit("order", f"Positioned markers: {positioned}")
    verbosity.emit("order", f"Markers not placed on the map: {unpositioned}")

    if settings.touchdown and unpositioned:
        relaxed = settings.threshold - 1
        verbosity.emit("order", f"Trying to map remaining markers with LOD threshold {relaxed}")
        positioned, unpositioned = try_insertions(
            positioned, unpositioned, estimator,
            relaxed, settings.tolerance, verbosity
        )
        verbosity.emit("order", f"Positioned markers: {positioned}")
        verbosity.emit("order", f"Markers not placed on the map: {unpositioned}")

    lod_unpositioned = None
    forced = list(positioned)

    if unpositioned:
        lod_unpositioned = np.full((len(unpositioned), len(positioned) + 1), np.nan)
        for row, item in enumerate(unpositioned):
            try:
                lod_unpositioned[row] = estimator.score_insertion(
                    positioned, item, settings.tolerance
                )
            except Exception as e:
                verbosity.emit("position", f"  Marker {item}: no LOD profile ({e})")

        confidence = [
            second_best(row) if not np.isnan(row).all() else float('inf')
            for row in lod_unpositioned
        ]
        for idx in np.argsort(confidence, kind="stable"):
            forced = _force_place(
                forced, unpositioned[idx], estimator, settings.tolerance, rng, verbosity
            )

    verbosity.emit("order", f"Estimating final maps using tol = {settings.final_tolerance}")
    positioned_seq = _final_estimate(estimator, positioned, settings)
    forced_seq = _final_estimate(estimator, forced, settings)

    return OrderResult(
        positioned=positioned_seq,
        unpositioned=unpositioned,
        lod_unpositioned=lod_unpositioned,
        threshold=settings.threshold,
        forced=forced_seq,
    )


def _framework(estimator: MappingEstimator, seed_items: List[int]) -> List[int]:
    try:
        framework = estimator.build_framework(seed_items)
    except EstimationError as e:
        raise SeedFrameworkError(f"Could not build a framework for markers {seed_items}: {e}")
    if sorted(framework) != sorted(seed_items):
        raise SeedFrameworkError(
            f"Framework {framework} does not hold the seed markers {seed_items}"
        )
    return list(framework)


def _estimate_seed(estimator: MappingEstimator, order: List[int], tolerance: float):
    try:
        return estimator.estimate_map(order, tolerance)
    except EstimationError as e:
        raise SeedFrameworkError(f"Could not map framework order {order}: {e}")


def _final_estimate(
    estimator: MappingEstimator,
    order: List[int],
    settings: OrderSettings
) -> SequenceResult:
    """
    Map an order at the final tolerance.

    An order the estimator cannot map (e.g. one holding a marker unlinked to
    its neighbours) is kept unrefined: likelihood -inf, undefined fractions.
    """
    context = FitnessContext(estimator, tolerance=settings.final_tolerance)
    outcome = evaluate(order, context)
    if isinstance(outcome, SequenceResult):
        return outcome

    settings.verbosity.emit("order", f"Final estimate failed for {order}: {outcome.reason}")
    intervals = len(order) - 1
    return SequenceResult(
        items=list(order),
        likelihood=float('-inf'),
        rf=[float('nan')] * intervals,
        phases=[0] * intervals,
        metadata={'tolerance': settings.final_tolerance, 'estimate_failed': outcome.reason},
    )


def _force_place(
    order: List[int],
    item: int,
    estimator: MappingEstimator,
    tolerance: float,
    rng: np.random.Generator,
    verbosity: Verbosity
) -> List[int]:
    """Insert a marker at one of its most likely positions, ties broken at random."""
    try:
        lods = np.asarray(estimator.score_insertion(order, item, tolerance), dtype=float)
    except Exception as e:
        verbosity.emit("position", f"  Marker {item}: could not be scored ({e}), appended at end")
        return order + [item]

    best = np.flatnonzero(np.isclose(lods, lods.max()))
    position = int(rng.choice(best))
    verbosity.emit("position", f"  Marker {item}: forced at position {position}")
    return insert_at(order, item, position)
