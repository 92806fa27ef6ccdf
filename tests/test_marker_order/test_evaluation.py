"""
Tests for fitness evaluation and the candidate worker pool.
"""

import threading
import unittest

import numpy as np

from marker_order.data_models import (
    ConfigurationError,
    EstimationError,
    EvaluationFailure,
    SequenceResult,
)
from marker_order.estimator_interface import MappingEstimator
from marker_order.evaluation import (
    FitnessContext,
    evaluate,
    evaluate_candidates,
    count_candidates,
    fitness_of,
    transition_count,
)


class RecordingEstimator(MappingEstimator):
    """Scores an order by how close it is to sorted; remembers every call."""

    def __init__(self, failing=()):
        self.failing = {tuple(order) for order in failing}
        self.calls = []
        self.lock = threading.Lock()

    def _result(self, order, phases=None):
        order = list(order)
        if tuple(order) in self.failing:
            raise EstimationError(f"cannot map {order}")
        displacement = sum(abs(item - pos) for pos, item in enumerate(order))
        return SequenceResult(
            items=order,
            likelihood=-float(displacement),
            rf=[0.1] * (len(order) - 1),
            phases=phases or [1] * (len(order) - 1),
        )

    def estimate_map(self, order, tolerance, workers=1):
        with self.lock:
            self.calls.append(('full', list(order), None))
        return self._result(order)

    def estimate_seeded_map(self, order, seeds, tolerance, workers=1):
        with self.lock:
            self.calls.append(('seeded', list(order), list(seeds)))
        phases = list(seeds) + [1] * (len(order) - 1 - len(seeds))
        return self._result(order, phases)

    def build_framework(self, items):
        return sorted(items)

    def score_insertion(self, order, item, tolerance):
        return np.zeros(len(order) + 1)

    def pairwise_transition_weights(self):
        return np.ones((6, 6)) - np.eye(6)

    def marker_categories(self, items):
        return [1] * len(items)


class TestFitnessContext(unittest.TestCase):
    """Test context validation."""

    def test_invalid_objective(self):
        with self.assertRaises(ConfigurationError):
            FitnessContext(RecordingEstimator(), objective="parsimony")

    def test_invalid_tolerance(self):
        with self.assertRaises(ConfigurationError):
            FitnessContext(RecordingEstimator(), tolerance=0)

    def test_with_seeds_keeps_settings(self):
        context = FitnessContext(RecordingEstimator(), objective="count", tolerance=0.01)
        seeded = context.with_seeds([2, 1])

        self.assertEqual(seeded.seeds, [2, 1])
        self.assertEqual(seeded.objective, "count")
        self.assertEqual(seeded.tolerance, 0.01)
        self.assertIsNone(context.seeds)


class TestEvaluate(unittest.TestCase):
    """Test the single-order evaluation contract."""

    def test_success(self):
        context = FitnessContext(RecordingEstimator())
        outcome = evaluate([0, 2, 1], context)

        self.assertIsInstance(outcome, SequenceResult)
        self.assertEqual(fitness_of(outcome), -2.0)

    def test_failure_becomes_negative_infinity(self):
        """Estimator errors are returned, never raised."""
        context = FitnessContext(RecordingEstimator(failing=[[1, 0, 2]]))
        outcome = evaluate([1, 0, 2], context)

        self.assertIsInstance(outcome, EvaluationFailure)
        self.assertEqual(fitness_of(outcome), float('-inf'))
        self.assertEqual(outcome.likelihood, float('-inf'))
        self.assertIn("EstimationError", outcome.reason)

    def test_seeded_call(self):
        estimator = RecordingEstimator()
        outcome = evaluate([0, 1, 2, 3], FitnessContext(estimator, seeds=[2]))

        self.assertEqual(estimator.calls[0][0], 'seeded')
        self.assertEqual(outcome.phases, [2, 1, 1])

    def test_empty_seed_list_uses_full_estimate(self):
        estimator = RecordingEstimator()
        evaluate([0, 1, 2], FitnessContext(estimator, seeds=[]))
        self.assertEqual(estimator.calls[0][0], 'full')


class TestCandidatePool(unittest.TestCase):
    """Test evaluation of candidate sets."""

    def setUp(self):
        self.rows = np.array([
            [0, 1, 2, 3],
            [1, 0, 2, 3],
            [3, 2, 1, 0],
            [0, 2, 1, 3],
            [0, 1, 3, 2],
        ])

    def test_results_align_with_rows(self):
        """Outcome i belongs to row i whatever the number of workers."""
        for workers in (1, 3):
            context = FitnessContext(RecordingEstimator(failing=[[3, 2, 1, 0]]))
            outcomes = evaluate_candidates(self.rows, context, workers=workers)

            self.assertEqual(len(outcomes), len(self.rows))
            for row, outcome in zip(self.rows, outcomes):
                self.assertEqual(outcome.items, row.tolist())
            self.assertIsInstance(outcomes[2], EvaluationFailure)
            self.assertEqual([fitness_of(o) for o in outcomes],
                             [0.0, -2.0, float('-inf'), -2.0, -2.0])

    def test_progress_callback(self):
        seen = []
        context = FitnessContext(RecordingEstimator())
        evaluate_candidates(self.rows, context, workers=2,
                            on_start=lambda i, total: seen.append((i, total)))

        self.assertEqual(sorted(seen), [(i, 5) for i in range(5)])

    def test_count_candidates(self):
        weights = np.arange(16, dtype=float).reshape(4, 4)
        weights = weights + weights.T
        np.fill_diagonal(weights, 0)

        counts = count_candidates(self.rows, weights, workers=2)
        expected = [transition_count(weights, row) for row in self.rows]
        self.assertEqual(counts, expected)


class TestTransitionCount(unittest.TestCase):
    """Test the recombinant-count statistic."""

    def test_sum_of_adjacent_weights(self):
        weights = np.array([
            [0.0, 1.0, 5.0],
            [1.0, 0.0, 2.0],
            [5.0, 2.0, 0.0],
        ])
        self.assertEqual(transition_count(weights, [0, 1, 2]), 3.0)
        self.assertEqual(transition_count(weights, [1, 0, 2]), 6.0)

    def test_undefined_weights_count_zero(self):
        weights = np.array([
            [0.0, np.nan, 5.0],
            [np.nan, 0.0, 2.0],
            [5.0, 2.0, 0.0],
        ])
        self.assertEqual(transition_count(weights, [0, 1, 2]), 2.0)


if __name__ == '__main__':
    unittest.main()
