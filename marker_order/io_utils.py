"""
I/O utilities for marker ordering.

Handles CSV parsing of recombination-fraction matrices, marker categories
and orders, CSV/YAML export of results, and configuration loading.
"""

import csv
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import yaml

from .data_models import OrderResult, SequenceResult


MISSING_VALUES = {"", "na", "nan", "none"}


def _parse_fraction(value: str) -> float:
    if value.strip().lower() in MISSING_VALUES:
        return float('nan')
    return float(value)


def load_rf_matrix(csv_path: Union[str, Path]) -> Tuple[List[str], np.ndarray]:
    """
    Load a recombination-fraction matrix CSV.

    CSV format:
        marker,M1,M2,M3
        M1,0,0.05,0.2
        M2,0.05,0,NA
        M3,0.2,NA,0

    Args:
        csv_path: Path to CSV file

    Returns:
        Tuple of (marker_names, matrix); undefined entries are NaN

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If the matrix is not square, symmetric or labelled consistently
    """
    csv_path = Path(csv_path)

    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path, 'r', newline='') as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if not header or len(header) < 2:
            raise ValueError(f"Invalid matrix format in {csv_path}. Expected header: marker,<names>")

        names = [name.strip() for name in header[1:]]
        rows = []
        row_names = []
        for line_no, row in enumerate(reader, start=2):
            if not row:
                continue
            if len(row) != len(names) + 1:
                raise ValueError(
                    f"Row {line_no} of {csv_path} has {len(row) - 1} values, expected {len(names)}"
                )
            row_names.append(row[0].strip())
            rows.append([_parse_fraction(v) for v in row[1:]])

    if row_names != names:
        raise ValueError(f"Row labels in {csv_path} do not match the header")

    matrix = np.array(rows, dtype=float).reshape(len(names), len(names))
    if not np.allclose(matrix, matrix.T, equal_nan=True):
        raise ValueError(f"Recombination matrix in {csv_path} is not symmetric")

    return names, matrix


def save_rf_matrix(
    names: List[str],
    matrix: np.ndarray,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """Save a recombination-fraction matrix in the format read by load_rf_matrix."""
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Output file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['marker'] + list(names))
        for name, row in zip(names, matrix):
            writer.writerow([name] + ['NA' if np.isnan(v) else f"{v:.6g}" for v in row])

    return output_path


def load_marker_categories(
    csv_path: Union[str, Path],
    names: List[str]
) -> List[int]:
    """
    Load informativeness categories and align them to matrix markers.

    CSV format:
        name,category
        M1,1
        M2,3

    Markers missing from the file get the least informative category seen.

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If CSV format is invalid or names are unknown
    """
    csv_path = Path(csv_path)

    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    categories: Dict[str, int] = {}
    with open(csv_path, 'r', newline='') as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames or not {'name', 'category'}.issubset(reader.fieldnames):
            raise ValueError(f"Invalid CSV format in {csv_path}. Expected columns: name,category")

        for row in reader:
            categories[row['name'].strip()] = int(row['category'])

    unknown = sorted(set(categories) - set(names))
    if unknown:
        raise ValueError(f"Categories given for unknown markers: {unknown}")

    fallback = max(categories.values()) if categories else 1
    return [categories.get(name, fallback) for name in names]


def resolve_markers(
    markers: Optional[List[Union[str, int]]],
    names: List[str]
) -> List[int]:
    """
    Translate marker names (or indices) to matrix indices.

    None selects every marker in matrix order.
    """
    if markers is None:
        return list(range(len(names)))

    index = {name: i for i, name in enumerate(names)}
    resolved = []
    for marker in markers:
        if isinstance(marker, int):
            if not 0 <= marker < len(names):
                raise ValueError(f"Marker index out of range: {marker}")
            resolved.append(marker)
        elif marker in index:
            resolved.append(index[marker])
        else:
            raise ValueError(f"Unknown marker: {marker}")
    return resolved


def load_order(csv_path: Union[str, Path], names: List[str]) -> List[int]:
    """
    Load an order from a CSV with a 'marker' column (e.g. one written by save_order).

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        ValueError: If the column is missing or a marker is unknown
    """
    csv_path = Path(csv_path)

    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path, 'r', newline='') as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames or 'marker' not in reader.fieldnames:
            raise ValueError(f"Invalid CSV format in {csv_path}. Expected column: marker")
        markers = [row['marker'].strip() for row in reader]

    return resolve_markers(markers, names)


def save_order(
    sequence: SequenceResult,
    names: List[str],
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save a mapped sequence to CSV.

    CSV format:
        position,marker,rf,phase
        1,M3,0.05,1
        2,M1,0.1,1
        3,M2,,

    The rf and phase of a row describe the interval to the next marker.

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Output file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['position', 'marker', 'rf', 'phase'])

        for pos, item in enumerate(sequence.items):
            if pos < len(sequence.rf):
                writer.writerow([pos + 1, names[item], f"{sequence.rf[pos]:.6g}", sequence.phases[pos]])
            else:
                writer.writerow([pos + 1, names[item], '', ''])

    return output_path


def save_lod_table(
    result: OrderResult,
    names: List[str],
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Optional[Path]:
    """
    Save LOD scores of unpositioned markers, one row per marker.

    Column k holds the LOD of inserting the marker before the k-th positioned
    marker; the last column is the end of the map. Returns None when every
    marker was positioned.
    """
    if result.lod_unpositioned is None:
        return None

    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Output file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    positions = [f"before_{names[item]}" for item in result.positioned.items] + ['end']
    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['marker'] + positions)
        for item, row in zip(result.unpositioned, result.lod_unpositioned):
            writer.writerow([names[item]] + ['NA' if np.isnan(v) else f"{v:.4f}" for v in row])

    return output_path


def save_metadata(
    metadata: dict,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save metadata to YAML sidecar file.

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Metadata file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    metadata = dict(metadata)
    metadata.setdefault('saved_at', datetime.now().isoformat())

    with open(output_path, 'w') as f:
        yaml.safe_dump(metadata, f, default_flow_style=False, sort_keys=False)

    return output_path


def sequence_summary(sequence: SequenceResult, names: List[str]) -> dict:
    """Plain-Python summary of a sequence, suitable for YAML export."""
    return {
        'markers': [names[item] for item in sequence.items],
        'log_likelihood': float(sequence.likelihood),
        'total_rf': float(sequence.total_length()),
    }
