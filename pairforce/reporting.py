# pairforce/reporting.py
"""Human-readable output of a force pass."""

import numpy as np
from typing import Iterator, Optional, Tuple

from scipy.spatial.distance import pdist

from pairforce.utils import format_value_scientific

MAX_N_SEPARATION = 5000 # pdist needs N*(N-1)/2 doubles


def format_force_line(i: int, force) -> str:
    return f"Force on atom {i}: ({force[0]:f}, {force[1]:f}, {force[2]:f})"


def iter_force_lines(forces: np.ndarray) -> Iterator[str]:
    """Yields one 'Force on atom <i>: (<fx>, <fy>, <fz>)' line per particle."""
    for i in range(forces.shape[0]):
        yield format_force_line(i, forces[i])


def print_forces(forces: np.ndarray):
    for line in iter_force_lines(forces):
        print(line)


def min_max_separation(positions: np.ndarray) -> Tuple[Optional[float], Optional[float]]:
    """Smallest and largest pair distance, or (None, None) when N < 2 or N is too large."""
    N = positions.shape[0]
    if N < 2: return None, None
    if N > MAX_N_SEPARATION:
        print(f"Warn: N={N} too large for min/max separation report. Skipping.")
        return None, None
    distances = pdist(positions)
    return float(np.min(distances)), float(np.max(distances))


def summarize(forces: np.ndarray, positions: Optional[np.ndarray] = None,
              energy: Optional[float] = None) -> str:
    """Multi-line summary: net force (should vanish), largest |F|, separation range, energy."""
    net = forces.sum(axis=0) if forces.size else np.zeros(3)
    max_f = float(np.max(np.linalg.norm(forces, axis=1))) if forces.size else 0.0
    lines = [
        f"  N = {forces.shape[0]}",
        f"  Net force     = ({format_value_scientific(net[0], 3)}, {format_value_scientific(net[1], 3)}, {format_value_scientific(net[2], 3)})",
        f"  Max |F|       = {format_value_scientific(max_f, 3)}",
    ]
    if positions is not None:
        min_sep, max_sep = min_max_separation(positions)
        if min_sep is not None:
            lines.append(f"  Separation    = [{format_value_scientific(min_sep, 3)}, {format_value_scientific(max_sep, 3)}]")
    if energy is not None:
        lines.append(f"  Potential E   = {format_value_scientific(energy, 6)}")
    return "\n".join(lines)
