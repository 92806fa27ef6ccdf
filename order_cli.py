#!/usr/bin/env python3
"""
Marker Ordering CLI

Runs one YAML run configuration. Both modes read a recombination-fraction
matrix ('input.rf_matrix', square CSV with marker names as header and first
column), the number of individuals it was estimated from
('input.n_individuals') and optionally a marker category CSV
('input.categories'). Results are written under 'output.root'.

ripple mode
    Improves an existing order by re-ordering each window of
    'ripple.window_size' markers from left to right. The starting order comes
    from 'input.order' (position,marker CSV), 'input.markers' or the matrix
    order. Options: strategy, preference, no_reverse, objective, tolerance,
    workers, passes, start, batch_size, batch_overlap.
    Writes order.csv and summary.yaml (likelihoods, window timings and the
    predicted total time when batch_size is set).

order mode
    Builds an order from scratch: a seed framework of 'order.seed_size'
    markers, then insertion of every marker whose best position beats the
    runner-up by 'order.threshold' LOD ('order.touchdown' retries at
    threshold - 1). Options: tolerance, final_tolerance.
    Writes order_safe.csv, order_forced.csv, report.txt, summary.yaml,
    and for markers left unpositioned lod_unpositioned.csv (plus
    lod_unpositioned.png with 'output.plot').
"""

import argparse
import sys
from pathlib import Path

# Add project root to path if needed
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


def main():
    """Main entry point for marker ordering CLI."""
    parser = argparse.ArgumentParser(
        description="Marker ordering from pairwise recombination fractions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 order_cli.py configs/ripple_run.yaml           # Improve an existing order
  python3 order_cli.py --config configs/order_run.yaml   # Build an order from scratch
        """
    )
    parser.add_argument(
        'config',
        nargs='?',
        help='Run configuration file path'
    )
    parser.add_argument(
        '--config', '-c',
        dest='config_option',
        help='Run configuration file path (alternative to the positional argument)'
    )
    parser.add_argument(
        '--modes',
        action='store_true',
        help='Describe the inputs and outputs of both modes and exit'
    )

    args = parser.parse_args()

    if args.modes:
        print(__doc__)
        return

    config_path = args.config_option or args.config
    if config_path is None:
        parser.error("a run configuration file is required")

    try:
        from marker_order.cli import run_from_config
        run_from_config(config_path)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
