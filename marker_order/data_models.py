"""
Data models for marker ordering.

Core data structures representing mapped sequences, evaluation failures,
ordering results and progress verbosity settings.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Any, Iterable, Union

import numpy as np


VERBOSITY_CHANNELS = ("order", "position", "time")


class ConfigurationError(ValueError):
    """Raised when search parameters are invalid."""
    pass


class EstimationError(RuntimeError):
    """Raised by an estimator when an order cannot be mapped."""
    pass


class SeedFrameworkError(RuntimeError):
    """Raised when no framework order can be established for the seed markers."""
    pass


def check_unique_items(items: Iterable[int]) -> list[int]:
    """
    Validate that an order holds every item at most once.

    Args:
        items: Marker identifiers

    Returns:
        Items as a list of ints

    Raises:
        ConfigurationError: If an item appears more than once
    """
    items = [int(item) for item in items]
    counts = Counter(items)
    repeated = sorted(item for item, count in counts.items() if count > 1)
    if repeated:
        raise ConfigurationError(f"Order contains repeated markers: {repeated}")
    return items


@dataclass
class SequenceResult:
    """
    A marker order together with its multipoint estimate.

    Attributes:
        items: Marker identifiers in map order
        likelihood: Log-likelihood of the order (higher is better)
        rf: Recombination fraction for each adjacent interval
        phases: Linkage phase code for each adjacent interval
        lod: Optional LOD scores against a reference order
        metadata: Additional information (tolerance, estimator name, etc.)
    """
    items: list[int]
    likelihood: float
    rf: list[float]
    phases: list[int]
    lod: Optional[list[float]] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate interval vectors against the number of markers."""
        self.items = [int(item) for item in self.items]
        self.rf = [float(r) for r in self.rf]
        self.phases = [int(ph) for ph in self.phases]
        intervals = max(len(self.items) - 1, 0)

        if not self.items:
            raise ValueError("SequenceResult must contain at least one marker")
        if len(self.rf) != intervals:
            raise ValueError(
                f"Expected {intervals} recombination fractions, got {len(self.rf)}"
            )
        if len(self.phases) != intervals:
            raise ValueError(
                f"Expected {intervals} phases, got {len(self.phases)}"
            )

    def __len__(self) -> int:
        """Number of markers in the order."""
        return len(self.items)

    def copy(self) -> "SequenceResult":
        """Return an independent copy."""
        return SequenceResult(
            items=list(self.items),
            likelihood=self.likelihood,
            rf=list(self.rf),
            phases=list(self.phases),
            lod=list(self.lod) if self.lod is not None else None,
            metadata=self.metadata.copy(),
        )

    def total_length(self) -> float:
        """Sum of recombination fractions over all intervals."""
        return float(sum(self.rf))


@dataclass
class EvaluationFailure:
    """
    An order the estimator could not map.

    Ranks below every successful estimate: its likelihood is -inf.
    """
    items: list[int]
    reason: str

    @property
    def likelihood(self) -> float:
        return float("-inf")


EvaluationOutcome = Union[SequenceResult, EvaluationFailure]


@dataclass
class OrderResult:
    """
    Outcome of progressive order construction.

    Attributes:
        positioned: The "safe" order holding markers that passed the LOD threshold
        unpositioned: Markers that could not be placed unambiguously
        lod_unpositioned: LOD scores per unpositioned marker and insertion position
        threshold: LOD threshold used for insertion
        forced: Order with every marker, unpositioned ones forced into their best position
    """
    positioned: SequenceResult
    unpositioned: list[int]
    lod_unpositioned: Optional[np.ndarray]
    threshold: float
    forced: SequenceResult

    def __post_init__(self):
        """Validate that positioned and unpositioned markers are disjoint."""
        overlap = set(self.positioned.items) & set(self.unpositioned)
        if overlap:
            raise ValueError(f"Markers both positioned and unpositioned: {sorted(overlap)}")
        if self.lod_unpositioned is not None:
            expected = (len(self.unpositioned), len(self.positioned.items) + 1)
            if self.lod_unpositioned.shape != expected:
                raise ValueError(
                    f"LOD matrix shape {self.lod_unpositioned.shape} does not match {expected}"
                )

    def all_items(self) -> set[int]:
        """All markers handled by the run."""
        return set(self.positioned.items) | set(self.unpositioned)


@dataclass
class Verbosity:
    """
    Progress reporting switches.

    Attributes:
        order: Report window boundaries and positioned/unpositioned markers
        position: Report each candidate order as it is tried
        time: Report predicted finish time after each window
    """
    order: bool = False
    position: bool = False
    time: bool = False

    @classmethod
    def from_channels(cls, channels: Optional[Iterable[str]]) -> "Verbosity":
        """
        Build verbosity settings from a list of channel names.

        Args:
            channels: Channel names, any of "order", "position", "time"

        Returns:
            Verbosity instance

        Raises:
            ConfigurationError: If an unknown channel is named
        """
        if channels is None:
            return cls()
        if isinstance(channels, str):
            channels = [channels]

        channels = list(channels)
        unknown = [c for c in channels if c not in VERBOSITY_CHANNELS]
        if unknown:
            raise ConfigurationError(
                f"Unknown verbosity channel(s): {unknown}. "
                f"Must be among {list(VERBOSITY_CHANNELS)}"
            )
        return cls(**{c: True for c in channels})

    def enabled(self, channel: str) -> bool:
        return bool(getattr(self, channel, False))

    def emit(self, channel: str, message: str) -> None:
        """Print a progress line if the channel is enabled."""
        if self.enabled(channel):
            print(message)
