"""
Estimator interface for marker ordering.

Defines the contract the search engine uses to map candidate orders, and a
reference estimator built on a precomputed two-point recombination-fraction
matrix.
"""

from abc import ABC, abstractmethod
from itertools import permutations
from typing import List, Optional, Sequence

import numpy as np

from .data_models import SequenceResult, EstimationError, check_unique_items


RF_FLOOR = 1e-6
RF_CEILING = 0.5
EXHAUSTIVE_FRAMEWORK_LIMIT = 7


class MappingEstimator(ABC):
    """
    Collaborators consumed by the ordering engine.

    Implementations must be safe to call from several threads at once:
    the window optimizer evaluates candidate orders concurrently.
    """

    @abstractmethod
    def estimate_map(
        self,
        order: Sequence[int],
        tolerance: float,
        workers: int = 1
    ) -> SequenceResult:
        """Estimate the multipoint map for an order. Raises EstimationError."""

    @abstractmethod
    def estimate_seeded_map(
        self,
        order: Sequence[int],
        seeds: Sequence[int],
        tolerance: float,
        workers: int = 1
    ) -> SequenceResult:
        """Estimate the map keeping the phases of the leading intervals fixed."""

    @abstractmethod
    def build_framework(self, items: Sequence[int]) -> List[int]:
        """Return an initial order for a small set of informative markers."""

    @abstractmethod
    def score_insertion(
        self,
        order: Sequence[int],
        item: int,
        tolerance: float
    ) -> np.ndarray:
        """LOD score for inserting ``item`` at each of the len(order)+1 positions."""

    @abstractmethod
    def pairwise_transition_weights(self) -> np.ndarray:
        """Symmetric marker-by-marker weight matrix with a zero diagonal."""

    @abstractmethod
    def marker_categories(self, items: Sequence[int]) -> List[int]:
        """Informativeness category per marker (lower is more informative)."""

    def marker_names(self, items: Sequence[int]) -> List[str]:
        """Human-readable marker names."""
        return [str(item) for item in items]


class TwoPointEstimator(MappingEstimator):
    """
    Reference estimator working from pairwise recombination fractions.

    Each adjacent interval contributes the binomial log-likelihood of its
    two-point recombination fraction, so orders whose neighbours are tightly
    linked score higher. Linkage phases are not modelled: every interval is
    reported in coupling unless phases are seeded.
    """

    def __init__(
        self,
        rf_matrix: np.ndarray,
        n_individuals: int,
        categories: Optional[Sequence[int]] = None,
        names: Optional[Sequence[str]] = None
    ):
        """
        Initialize estimator from a recombination-fraction matrix.

        Args:
            rf_matrix: Square symmetric matrix of recombination fractions (NaN = undefined)
            n_individuals: Number of genotyped individuals
            categories: Informativeness category per marker (default: all 1)
            names: Marker names (default: marker index)
        """
        rf_matrix = np.asarray(rf_matrix, dtype=float)
        if rf_matrix.ndim != 2 or rf_matrix.shape[0] != rf_matrix.shape[1]:
            raise ValueError(f"Recombination matrix must be square, got shape {rf_matrix.shape}")
        if n_individuals <= 0:
            raise ValueError(f"n_individuals must be positive, got {n_individuals}")

        self.rf_matrix = rf_matrix
        self.n_individuals = int(n_individuals)
        self.n_markers = rf_matrix.shape[0]

        if categories is None:
            categories = [1] * self.n_markers
        if len(categories) != self.n_markers:
            raise ValueError("One category per marker is required")
        self.categories = [int(c) for c in categories]

        if names is None:
            names = [f"M{i + 1}" for i in range(self.n_markers)]
        if len(names) != self.n_markers:
            raise ValueError("One name per marker is required")
        self.names = list(names)

    def _interval_fractions(self, order: Sequence[int]) -> np.ndarray:
        """Recombination fractions between adjacent markers of an order."""
        order = np.asarray(order, dtype=int)
        if order.size and (order.min() < 0 or order.max() >= self.n_markers):
            raise EstimationError(f"Order references unknown markers: {order.tolist()}")

        rf = self.rf_matrix[order[:-1], order[1:]]
        undefined = np.flatnonzero(np.isnan(rf))
        if undefined.size:
            k = int(undefined[0])
            raise EstimationError(
                f"Undefined recombination fraction between markers "
                f"{self.names[order[k]]} and {self.names[order[k + 1]]}"
            )
        return np.clip(rf, RF_FLOOR, RF_CEILING)

    def _log_likelihood(self, rf: np.ndarray) -> float:
        n = self.n_individuals
        return float(np.sum(n * (rf * np.log10(rf) + (1.0 - rf) * np.log10(1.0 - rf))))

    def estimate_map(
        self,
        order: Sequence[int],
        tolerance: float = 1e-3,
        workers: int = 1
    ) -> SequenceResult:
        """
        Map an order from its adjacent two-point fractions.

        Args:
            order: Marker identifiers
            tolerance: Convergence tolerance (recorded; no iteration is needed)
            workers: Phase-estimation workers (unused, phases are not estimated)

        Returns:
            SequenceResult for the order

        Raises:
            EstimationError: If an adjacent fraction is undefined
        """
        if tolerance <= 0:
            raise EstimationError(f"Tolerance must be positive, got {tolerance}")

        order = check_unique_items(order)
        rf = self._interval_fractions(order)

        return SequenceResult(
            items=order,
            likelihood=self._log_likelihood(rf),
            rf=rf.tolist(),
            phases=[1] * len(rf),
            metadata={'tolerance': tolerance, 'estimator': 'two-point'}
        )

    def estimate_seeded_map(
        self,
        order: Sequence[int],
        seeds: Sequence[int],
        tolerance: float = 1e-3,
        workers: int = 1
    ) -> SequenceResult:
        """Map an order, copying known phases into its leading intervals."""
        result = self.estimate_map(order, tolerance, workers)

        seeds = list(seeds)
        if len(seeds) > len(result.phases):
            raise EstimationError(
                f"{len(seeds)} seed phases given for {len(result.phases)} intervals"
            )
        result.phases[:len(seeds)] = [int(ph) for ph in seeds]
        result.metadata['seeded_intervals'] = len(seeds)
        return result

    def build_framework(self, items: Sequence[int]) -> List[int]:
        """
        Order a small set of markers.

        Up to EXHAUSTIVE_FRAMEWORK_LIMIT markers, every order with its first
        marker smaller than its last (n!/2 orders) is mapped and the best kept.
        Larger sets are chained greedily from the first marker by nearest
        neighbour.
        """
        items = check_unique_items(items)
        if len(items) <= 2:
            return items

        if len(items) > EXHAUSTIVE_FRAMEWORK_LIMIT:
            return self._nearest_neighbour_chain(items)

        best_order = None
        best_like = float('-inf')

        for perm in permutations(items):
            if perm[0] > perm[-1]:
                continue
            try:
                like = self._log_likelihood(self._interval_fractions(perm))
            except EstimationError:
                continue
            if like > best_like:
                best_like = like
                best_order = list(perm)

        if best_order is None:
            raise EstimationError(f"No order of markers {items} could be mapped")

        return best_order

    def _nearest_neighbour_chain(self, items: List[int]) -> List[int]:
        chain = [items[0]]
        remaining = items[1:]

        while remaining:
            last = chain[-1]
            dist = self.rf_matrix[last, remaining]
            dist = np.where(np.isnan(dist), np.inf, dist)
            nxt = remaining[int(np.argmin(dist))]
            chain.append(nxt)
            remaining.remove(nxt)

        return chain

    def score_insertion(
        self,
        order: Sequence[int],
        item: int,
        tolerance: float = 1e-1
    ) -> np.ndarray:
        """
        LOD scores for every insertion position of a marker.

        Args:
            order: Current (partial) order
            item: Marker to insert
            tolerance: Convergence tolerance

        Returns:
            Array of len(order)+1 LOD scores; the best position scores 0,
            positions that cannot be mapped score -inf

        Raises:
            EstimationError: If no position can be mapped
        """
        order = list(order)
        if item in order:
            raise EstimationError(f"Marker {item} is already in the order")

        likes = np.full(len(order) + 1, float('-inf'))
        for pos in range(len(order) + 1):
            candidate = order[:pos] + [item] + order[pos:]
            try:
                likes[pos] = self._log_likelihood(self._interval_fractions(candidate))
            except EstimationError:
                continue

        if not np.isfinite(likes).any():
            raise EstimationError(f"Marker {item} could not be placed at any position")

        return likes - likes.max()

    def pairwise_transition_weights(self) -> np.ndarray:
        """
        Expected recombinant counts between marker pairs.

        Undefined fractions count as unlinked (0.5); self-transitions weigh 0.
        """
        r = np.where(np.isnan(self.rf_matrix), 0.5, self.rf_matrix)
        np.fill_diagonal(r, 0.0)
        return r * self.n_individuals

    def marker_categories(self, items: Sequence[int]) -> List[int]:
        return [self.categories[item] for item in items]

    def marker_names(self, items: Sequence[int]) -> List[str]:
        return [self.names[item] for item in items]
