"""
Tests for run configuration validation and end-to-end runs.
"""

import io
import shutil
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

import numpy as np
import yaml

from marker_order.cli import (
    ConfigValidationError,
    load_run_config,
    validate_run_config,
    run_from_config,
)
from marker_order.io_utils import save_rf_matrix, load_order

import order_cli


def haldane_matrix(positions_cm):
    pos = np.asarray(positions_cm, dtype=float)
    dist = np.abs(pos[:, None] - pos[None, :]) / 100.0
    return 0.5 * (1.0 - np.exp(-2.0 * dist))


def read_yaml(path):
    with open(path) as f:
        return yaml.safe_load(f)


class CLITestCase(unittest.TestCase):
    """Writes a small linkage group to a temporary directory."""

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.names = [f"M{i + 1}" for i in range(7)]
        self.rf_path = save_rf_matrix(
            self.names, haldane_matrix(np.arange(7) * 10), self.test_dir / "rf.csv"
        )

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def base_config(self, mode):
        return {
            'mode': mode,
            'input': {'rf_matrix': str(self.rf_path), 'n_individuals': 200},
            'output': {'root': str(self.test_dir / "out")},
        }

    def write_config(self, config):
        path = self.test_dir / "run.yaml"
        with open(path, 'w') as f:
            yaml.safe_dump(config, f)
        return path


class TestValidation(CLITestCase):
    """Test configuration validation."""

    def assertInvalid(self, config):
        with self.assertRaises(ConfigValidationError):
            validate_run_config(config)

    def test_valid_configs(self):
        validate_run_config(self.base_config('ripple'))
        validate_run_config(self.base_config('order'))

    def test_missing_mode(self):
        config = self.base_config('ripple')
        del config['mode']
        self.assertInvalid(config)

    def test_invalid_mode(self):
        self.assertInvalid(self.base_config('anneal'))

    def test_missing_output_root(self):
        config = self.base_config('order')
        config['output'] = {}
        self.assertInvalid(config)

    def test_missing_matrix_file(self):
        config = self.base_config('order')
        config['input']['rf_matrix'] = str(self.test_dir / "absent.csv")
        self.assertInvalid(config)

    def test_bad_individual_count(self):
        config = self.base_config('order')
        config['input']['n_individuals'] = 0
        self.assertInvalid(config)

    def test_unknown_verbosity(self):
        config = self.base_config('ripple')
        config['verbosity'] = ['order', 'debug']
        self.assertInvalid(config)

    def test_ripple_options(self):
        bad_values = [
            ('window_size', 1),
            ('strategy', 'greedy'),
            ('preference', 'close'),
            ('objective', 'parsimony'),
            ('workers', 0),
            ('no_reverse', 'yes'),
            ('tolerance', -1),
        ]
        for key, value in bad_values:
            config = self.base_config('ripple')
            config['ripple'] = {key: value}
            with self.subTest(key=key):
                self.assertInvalid(config)

    def test_order_options(self):
        bad_sections = [
            {'seed_size': 1},
            {'threshold': 0},
            {'touchdown': 'no'},
            {'touchdown': True, 'threshold': 1},
        ]
        for section in bad_sections:
            config = self.base_config('order')
            config['order'] = section
            with self.subTest(section=section):
                self.assertInvalid(config)

    def test_load_empty_config(self):
        path = self.test_dir / "empty.yaml"
        path.write_text("")
        with self.assertRaises(ConfigValidationError):
            load_run_config(path)

    def test_load_missing_config(self):
        with self.assertRaises(FileNotFoundError):
            load_run_config(self.test_dir / "absent.yaml")


class TestRuns(CLITestCase):
    """Run both modes end to end."""

    def test_ripple_mode(self):
        order_path = self.test_dir / "start.csv"
        order_path.write_text("position,marker\n" + "".join(
            f"{i + 1},{name}\n" for i, name in enumerate(["M2", "M1", "M3", "M4", "M6", "M5", "M7"])
        ))

        config = self.base_config('ripple')
        config['input']['order'] = str(order_path)
        config['ripple'] = {'window_size': 4, 'strategy': 'exhaustive', 'workers': 2,
                            'batch_size': 7}
        config['verbosity'] = ['time']

        with redirect_stdout(io.StringIO()):
            run_from_config(self.write_config(config))

        out = self.test_dir / "out"
        self.assertEqual(load_order(out / "order.csv", self.names), list(range(7)))

        summary = read_yaml(out / "summary.yaml")
        self.assertEqual(summary['mode'], 'ripple')
        self.assertEqual(summary['windows_tested'], 4)
        self.assertGreater(summary['final']['log_likelihood'], summary['initial']['log_likelihood'])
        self.assertIn('predicted_total_seconds', summary)

    def test_ripple_until_stable(self):
        config = self.base_config('ripple')
        config['input']['markers'] = ["M3", "M1", "M2", "M4", "M5", "M7", "M6"]
        config['ripple'] = {'window_size': 3, 'strategy': 'pairwise', 'passes': 4}

        with redirect_stdout(io.StringIO()):
            run_from_config(self.write_config(config))

        summary = read_yaml(self.test_dir / "out" / "summary.yaml")
        self.assertLessEqual(summary['passes'], 4)
        self.assertNotIn('predicted_total_seconds', summary)

    def test_ripple_passes_resume_at_start(self):
        config = self.base_config('ripple')
        config['input']['markers'] = list(self.names)
        config['ripple'] = {'window_size': 3, 'strategy': 'pairwise', 'passes': 2,
                            'start': 2, 'batch_size': 7}
        config['verbosity'] = ['time']

        buffer = io.StringIO()
        with redirect_stdout(buffer):
            run_from_config(self.write_config(config))

        summary = read_yaml(self.test_dir / "out" / "summary.yaml")
        self.assertEqual(summary['passes'], 2)
        # 3 windows from position 2, then all 5
        self.assertEqual(summary['windows_tested'], 8)
        self.assertIn('predicted_total_seconds', summary)
        self.assertIn("Predicted finish time", buffer.getvalue())

    def test_order_mode(self):
        config = self.base_config('order')
        config['order'] = {'seed_size': 4, 'threshold': 3.0}
        config['random_seed'] = 5

        with redirect_stdout(io.StringIO()):
            run_from_config(self.write_config(config))

        out = self.test_dir / "out"
        for name in ("order_safe.csv", "order_forced.csv", "report.txt", "summary.yaml"):
            self.assertTrue((out / name).exists(), name)

        forced = load_order(out / "order_forced.csv", self.names)
        self.assertEqual(sorted(forced), list(range(7)))
        summary = read_yaml(out / "summary.yaml")
        self.assertEqual(summary['unpositioned'], [])

    def test_existing_output_refused(self):
        (self.test_dir / "out").mkdir()
        config = self.base_config('order')

        with redirect_stdout(io.StringIO()):
            with self.assertRaises(FileExistsError):
                run_from_config(self.write_config(config))


class TestEntryPoint(CLITestCase):
    """Run the order_cli.py script entry point."""

    def run_main(self, *args):
        buffer = io.StringIO()
        with mock.patch.object(sys, 'argv', ['order_cli.py', *args]):
            with redirect_stdout(buffer), redirect_stderr(io.StringIO()):
                order_cli.main()
        return buffer.getvalue()

    def test_modes_summary(self):
        output = self.run_main('--modes')
        self.assertIn("ripple mode", output)
        self.assertIn("order mode", output)
        self.assertIn("order_forced.csv", output)

    def test_config_option(self):
        config = self.base_config('ripple')
        config['ripple'] = {'window_size': 3, 'strategy': 'pairwise'}
        self.run_main('--config', str(self.write_config(config)))

        self.assertTrue((self.test_dir / "out" / "order.csv").exists())

    def test_positional_config(self):
        self.run_main(str(self.write_config(self.base_config('order'))))
        self.assertTrue((self.test_dir / "out" / "order_forced.csv").exists())

    def test_config_required(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main()
        self.assertEqual(ctx.exception.code, 2)

    def test_failure_exits_with_error(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main(str(self.test_dir / "absent.yaml"))
        self.assertEqual(ctx.exception.code, 1)


if __name__ == '__main__':
    unittest.main()
