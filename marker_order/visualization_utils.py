"""
Visualization utilities for marker ordering.

Provides a text table of likely positions for unpositioned markers and a
plot of their LOD profiles along the positioned order.
"""

from pathlib import Path
from typing import List, Tuple

import numpy as np

from .data_models import OrderResult


def lod_symbol(lod: float) -> str:
    """Star code for a LOD score: *** best, ** > -1, * > -2."""
    if np.isnan(lod):
        return "?"
    if lod > -0.0001:
        return "***"
    if lod > -1.0:
        return "**"
    if lod > -2.0:
        return "*"
    return ""


def format_order_report(result: OrderResult, names: List[str]) -> str:
    """
    Render the safe order with likely positions of unpositioned markers.

    Every positioned marker occupies a row; the rows between them are the
    insertion positions, marked with the star code of each unpositioned
    marker's LOD there.

    Args:
        result: Progressive construction result
        names: Marker names indexed by marker identifier

    Returns:
        Multi-line report
    """
    lines = ["Best sequence found."]
    lines.append("Markers: " + " ".join(names[item] for item in result.positioned.items))
    lines.append(f"Log-likelihood: {result.positioned.likelihood:.4f}")

    if not result.unpositioned:
        return "\n".join(lines)

    lines.append("")
    lines.append("The following markers could not be uniquely positioned.")
    lines.append("Printing most likely positions for each unpositioned marker:")
    lines.append("")

    unpos = [names[item] for item in result.unpositioned]
    width_cell = max(3, max(len(name) for name in unpos))
    width_seq = max(len(names[item]) for item in result.positioned.items)
    lods = result.lod_unpositioned

    def _slot_row(pos: int) -> str:
        cells = [lod_symbol(lods[j, pos]).ljust(width_cell) for j in range(len(unpos))]
        return "| " + " " * width_seq + " | " + " | ".join(cells) + " |"

    rule = "-" * (width_seq + 4 + len(unpos) * (width_cell + 3))
    lines.append(rule)
    lines.append("| " + " " * width_seq + " | " + " | ".join(n.rjust(width_cell) for n in unpos) + " |")
    lines.append(rule)
    lines.append(_slot_row(0))
    for pos, item in enumerate(result.positioned.items):
        blanks = " | ".join(" " * width_cell for _ in unpos)
        lines.append("| " + names[item].rjust(width_seq) + " | " + blanks + " |")
        lines.append(_slot_row(pos + 1))
    lines.append(rule)
    lines.append("")
    lines.append("'***' indicates the most likely position(s) (LOD = 0.0)")
    lines.append("'**' indicates very likely positions (LOD > -1.0)")
    lines.append("'*' indicates likely positions (LOD > -2.0)")

    return "\n".join(lines)


def plot_unpositioned_lods(
    result: OrderResult,
    names: List[str],
    output_path: Path,
    figsize: Tuple[int, int] = (10, 6)
) -> bool:
    """
    Plot the LOD profile of every unpositioned marker.

    Args:
        result: Progressive construction result
        names: Marker names indexed by marker identifier
        output_path: Path to save PNG file
        figsize: Figure size (width, height) in inches

    Returns:
        True if a plot was written, False when every marker was positioned
    """
    if result.lod_unpositioned is None:
        return False

    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    positions = np.arange(result.lod_unpositioned.shape[1])
    fig, ax = plt.subplots(figsize=figsize)

    for item, row in zip(result.unpositioned, result.lod_unpositioned):
        ax.plot(positions, np.where(np.isfinite(row), row, np.nan), marker="o", label=names[item])

    ax.axhline(-result.threshold, color="grey", linestyle="--", label=f"-LOD {result.threshold}")
    ax.set_xticks(positions)
    ax.set_xticklabels(
        [f"<{names[item]}" for item in result.positioned.items] + ["end"],
        rotation=90
    )
    ax.set_xlabel("Insertion position")
    ax.set_ylabel("LOD")
    ax.set_title("Unpositioned markers")
    ax.legend(loc="lower right")
    fig.tight_layout()
    fig.savefig(output_path, dpi=100)
    plt.close(fig)

    print(f"  Saved visualization: {output_path}")
    return True
