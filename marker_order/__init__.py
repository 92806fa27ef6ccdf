"""
Marker ordering for linkage maps

This package orders genetic markers along a linkage group so as to maximise
the multipoint likelihood reported by an external mapping estimator.

Key Features:
- Window re-ordering with exhaustive, pairwise or similarity-sampled candidates
- Concurrent candidate evaluation (failed estimates rank last, never abort)
- Left-to-right sweeps with finish-time prediction
- Progressive construction with LOD-threshold insertion and forced placement

Modules:
- data_models: Core data structures (SequenceResult, OrderResult, Verbosity)
- estimator_interface: Estimator contract and two-point reference estimator
- candidates: Candidate order generation for one window
- evaluation: Fitness evaluation and the worker pool
- window: Single-window re-ordering
- sweep: Whole-sequence sweeps and finish-time prediction
- progressive: Progressive order construction
- io_utils: CSV/YAML input and output
- visualization_utils: Unpositioned-marker report and LOD plot
- cli: Command-line run configuration and dispatch
"""

__version__ = "0.1.0"
__author__ = "Linkage Mapping Team"

from .data_models import (
    SequenceResult,
    EvaluationFailure,
    OrderResult,
    Verbosity,
    ConfigurationError,
    EstimationError,
    SeedFrameworkError,
)
from .estimator_interface import MappingEstimator, TwoPointEstimator
from .evaluation import FitnessContext
from .window import RippleSettings, optimize_window
from .sweep import ripple_sequence, predict_finish_time
from .progressive import OrderSettings, build_order

__all__ = [
    "SequenceResult",
    "EvaluationFailure",
    "OrderResult",
    "Verbosity",
    "ConfigurationError",
    "EstimationError",
    "SeedFrameworkError",
    "MappingEstimator",
    "TwoPointEstimator",
    "FitnessContext",
    "RippleSettings",
    "optimize_window",
    "ripple_sequence",
    "predict_finish_time",
    "OrderSettings",
    "build_order",
]
