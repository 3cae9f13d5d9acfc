# pairforce/initial_conditions.py
"""Initial particle coordinates: random box, random ball, or a coordinate file."""

import numpy as np
from typing import Dict, Optional


def random_box_positions(N: int, box_size: float, rng: np.random.Generator) -> np.ndarray:
    """Uniform positions in [0, box_size)^3."""
    return rng.uniform(0.0, box_size, size=(N, 3))


def random_sphere_positions(N: int, radius: float, rng: np.random.Generator) -> np.ndarray:
    """Uniform positions inside a ball of `radius` centred on the origin."""
    r = radius * np.cbrt(rng.uniform(0.0, 1.0, size=N))
    theta = np.arccos(2.0 * rng.uniform(0.0, 1.0, size=N) - 1.0)
    phi = 2.0 * np.pi * rng.uniform(0.0, 1.0, size=N)
    pos = np.empty((N, 3), dtype=np.float64)
    pos[:, 0] = r * np.sin(theta) * np.cos(phi)
    pos[:, 1] = r * np.sin(theta) * np.sin(phi)
    pos[:, 2] = r * np.cos(theta)
    return pos


def load_positions(path: str) -> np.ndarray:
    """Reads an (N, 3) whitespace-separated x y z table ('#' starts a comment)."""
    pos = np.loadtxt(path, dtype=np.float64, ndmin=2)
    if pos.shape[1] != 3:
        raise ValueError(f"{path}: expected 3 columns (x y z), got {pos.shape[1]}")
    if pos.shape[0] == 0:
        raise ValueError(f"{path}: no particles found")
    return pos


def generate_positions(config: Dict, N: Optional[int] = None) -> np.ndarray:
    """Builds the initial positions described by `config` ('positions_init', 'box_size', 'radius', 'seed')."""
    N = int(config['N'] if N is None else N)
    if N < 1: raise ValueError(f"N must be positive, got {N}")
    rng = np.random.default_rng(config.get('seed'))
    mode = config.get('positions_init', 'box')
    if mode == 'box':
        return random_box_positions(N, float(config['box_size']), rng)
    if mode == 'sphere':
        return random_sphere_positions(N, float(config['radius']), rng)
    raise ValueError(f"Unknown positions_init '{mode}'. Valid: 'box', 'sphere'")
