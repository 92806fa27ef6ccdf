"""
Orchestration module for marker ordering.

Implements the ripple and order mode workflows.
"""

from typing import Dict, List, Tuple
from pathlib import Path

import numpy as np

from .data_models import Verbosity
from .estimator_interface import TwoPointEstimator
from .evaluation import FitnessContext
from .io_utils import (
    load_rf_matrix,
    load_marker_categories,
    load_order,
    resolve_markers,
    save_order,
    save_lod_table,
    save_metadata,
    sequence_summary,
)
from .progressive import OrderSettings, build_order
from .sweep import ripple_until_stable, split_into_batches, predict_finish_time
from .visualization_utils import format_order_report, plot_unpositioned_lods
from .window import RippleSettings


def load_estimator(input_config: Dict) -> Tuple[TwoPointEstimator, List[str]]:
    """
    Build the two-point estimator described by the input section.

    Args:
        input_config: 'input' section of the run configuration

    Returns:
        Tuple of (estimator, marker_names)
    """
    rf_path = input_config['rf_matrix']
    print(f"Loading recombination fractions from: {rf_path}")
    names, matrix = load_rf_matrix(rf_path)
    print(f"Markers in matrix: {len(names)}")

    categories = None
    if 'categories' in input_config:
        print(f"Loading marker categories from: {input_config['categories']}")
        categories = load_marker_categories(input_config['categories'], names)

    estimator = TwoPointEstimator(
        rf_matrix=matrix,
        n_individuals=input_config['n_individuals'],
        categories=categories,
        names=names,
    )
    return estimator, names


def prepare_output(output_config: Dict) -> Tuple[Path, bool]:
    """Create the output directory, refusing to reuse one unless overwrite is set."""
    output_root = Path(output_config['root'])
    overwrite = output_config.get('overwrite', False)

    if output_root.exists() and not overwrite:
        raise FileExistsError(
            f"Output directory already exists: {output_root}\n"
            f"Set 'output.overwrite: true' in config to overwrite"
        )

    output_root.mkdir(parents=True, exist_ok=overwrite)
    print(f"Output directory: {output_root}\n")
    return output_root, overwrite


def run_ripple_mode(run_config: Dict) -> None:
    """
    Improve an existing order with sliding-window re-ordering.

    Algorithm:
        1. Load estimator and starting order (order CSV, marker list or matrix order)
        2. Map the starting order
        3. Run one or more left-to-right passes of window re-ordering
        4. Save improved order, timings and summary

    Args:
        run_config: Run configuration dict from YAML

    Returns:
        None (writes to disk)
    """
    print("=" * 70)
    print("RIPPLE MODE")
    print("=" * 70)

    input_config = run_config['input']
    estimator, names = load_estimator(input_config)

    if 'order' in input_config:
        print(f"Loading starting order from: {input_config['order']}")
        items = load_order(input_config['order'], names)
    else:
        items = resolve_markers(input_config.get('markers'), names)
    print(f"Markers to order: {len(items)}")

    ripple_config = run_config.get('ripple', {})
    verbosity = Verbosity.from_channels(run_config.get('verbosity'))

    settings = RippleSettings(
        window_size=ripple_config.get('window_size', 4),
        strategy=ripple_config.get('strategy', 'pairwise'),
        n=ripple_config.get('n'),
        preference=ripple_config.get('preference', 'neutral'),
        no_reverse=ripple_config.get('no_reverse', True),
        workers=ripple_config.get('workers', 1),
        seed=run_config.get('random_seed'),
        verbosity=verbosity,
    )
    context = FitnessContext(
        estimator=estimator,
        objective=ripple_config.get('objective', 'likelihood'),
        tolerance=ripple_config.get('tolerance', 1e-3),
        phase_workers=ripple_config.get('phase_workers', 1),
    )
    print(f"Window size: {settings.window_size}, strategy: {settings.strategy}, "
          f"objective: {context.objective}")

    output_root, overwrite = prepare_output(run_config['output'])

    initial = estimator.estimate_map(items, context.tolerance, context.phase_workers)
    print(f"Starting log-likelihood: {initial.likelihood:.4f}")

    batches = None
    if 'batch_size' in ripple_config:
        batches = split_into_batches(
            items, ripple_config['batch_size'], ripple_config.get('batch_overlap', 0)
        )
        print(f"Time prediction over {len(batches)} batches")

    timings: List[float] = []
    best, passes_run = ripple_until_stable(
        initial, settings, context,
        max_passes=ripple_config.get('passes', 1),
        start=ripple_config.get('start', 0),
        batches=batches,
        timings=timings,
    )

    order_path = save_order(best, names, output_root / 'order.csv', overwrite=overwrite)

    summary = {
        'mode': 'ripple',
        'window_size': settings.window_size,
        'strategy': settings.strategy,
        'objective': context.objective,
        'passes': passes_run,
        'windows_tested': len(timings),
        'initial': sequence_summary(initial, names),
        'final': sequence_summary(best, names),
        'timings_seconds': [round(t, 6) for t in timings],
    }
    estimate = predict_finish_time(batches, settings.window_size, timings)
    if estimate is not None:
        summary['predicted_total_seconds'] = {'mean': estimate[0], 'sd': estimate[1]}

    summary_path = save_metadata(summary, output_root / 'summary.yaml', overwrite=overwrite)

    print()
    print("=" * 70)
    print("SUMMARY")
    print("=" * 70)
    print(f"Windows tested: {len(timings)} in {passes_run} pass(es)")
    if timings:
        print(f"Median window time: {np.median(timings):.3f}s")
    print(f"Log-likelihood: {initial.likelihood:.4f} -> {best.likelihood:.4f}")
    print(f"Order changed: {best.items != initial.items}")
    print(f"Order: {order_path}")
    print(f"Summary: {summary_path}")


def run_order_mode(run_config: Dict) -> None:
    """
    Build an order from scratch by progressive insertion.

    Algorithm:
        1. Load estimator and markers
        2. Build framework, insert markers, force remaining ones
        3. Save safe and forced orders, LOD table, report and optional plot

    Args:
        run_config: Run configuration dict from YAML

    Returns:
        None (writes to disk)
    """
    print("=" * 70)
    print("ORDER MODE")
    print("=" * 70)

    input_config = run_config['input']
    estimator, names = load_estimator(input_config)
    items = resolve_markers(input_config.get('markers'), names)
    print(f"Markers to order: {len(items)}")

    order_config = run_config.get('order', {})
    settings = OrderSettings(
        seed_size=order_config.get('seed_size', 5),
        threshold=order_config.get('threshold', 3.0),
        touchdown=order_config.get('touchdown', False),
        tolerance=order_config.get('tolerance', 1e-1),
        final_tolerance=order_config.get('final_tolerance', 1e-4),
        seed=run_config.get('random_seed'),
        verbosity=Verbosity.from_channels(run_config.get('verbosity')),
    )
    print(f"Seed size: {settings.seed_size}, LOD threshold: {settings.threshold}, "
          f"touchdown: {settings.touchdown}")

    output_root, overwrite = prepare_output(run_config['output'])

    result = build_order(items, estimator, settings)

    safe_path = save_order(result.positioned, names, output_root / 'order_safe.csv', overwrite=overwrite)
    forced_path = save_order(result.forced, names, output_root / 'order_forced.csv', overwrite=overwrite)
    lod_path = save_lod_table(result, names, output_root / 'lod_unpositioned.csv', overwrite=overwrite)

    report = format_order_report(result, names)
    report_path = output_root / 'report.txt'
    if report_path.exists() and not overwrite:
        raise FileExistsError(f"Output file already exists: {report_path}")
    report_path.write_text(report + "\n")

    if run_config['output'].get('plot', False):
        plot_unpositioned_lods(result, names, output_root / 'lod_unpositioned.png')

    summary = {
        'mode': 'order',
        'seed_size': settings.seed_size,
        'threshold': settings.threshold,
        'touchdown': settings.touchdown,
        'safe': sequence_summary(result.positioned, names),
        'forced': sequence_summary(result.forced, names),
        'unpositioned': [names[item] for item in result.unpositioned],
    }
    summary_path = save_metadata(summary, output_root / 'summary.yaml', overwrite=overwrite)

    print()
    print(report)
    print()
    print("=" * 70)
    print("SUMMARY")
    print("=" * 70)
    print(f"Positioned: {len(result.positioned.items)}/{len(items)} markers")
    print(f"Unpositioned: {len(result.unpositioned)} markers")
    print(f"Safe order: {safe_path}")
    print(f"Forced order: {forced_path}")
    if lod_path is not None:
        print(f"LOD table: {lod_path}")
    print(f"Summary: {summary_path}")
