# pairforce/physics/lj/lj_pp_cpu.py
"""
Reference Lennard-Jones implementation in pure NumPy.

Enumerates the upper triangle with np.triu_indices and scatters each pair
force into both particles with np.add.at / np.subtract.at, the unbuffered
host counterpart of the device atomic add. Needs O(N^2) temporary memory;
intended for validation and small N.
"""

import numpy as np
from typing import Tuple

from pairforce.physics.base.pair_force import PairForceModel
from pairforce.particle_data import ParticleData
from pairforce.utils import timing_decorator


def lj_pair_terms(pos: np.ndarray, r2_min: float, clamp: bool) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, int]:
    """
    Evaluates every unordered pair i < j once.

    Returns:
        (i_idx, j_idx, d, r2, n_singular) for the pairs that contribute, where
        d = pos[i] - pos[j] and r2 is already clamped under the 'clamp' policy.
    """
    N = pos.shape[0]
    i_idx, j_idx = np.triu_indices(N, k=1)
    d = pos[i_idx] - pos[j_idx]
    r2 = np.einsum('ij,ij->i', d, d)
    singular = r2 < r2_min
    n_singular = int(np.count_nonzero(singular))
    if clamp:
        r2 = np.where(singular, r2_min, r2)
    elif n_singular:
        keep = ~singular
        i_idx, j_idx, d, r2 = i_idx[keep], j_idx[keep], d[keep], r2[keep]
    return i_idx, j_idx, d, r2, n_singular


class LJPPCpu(PairForceModel):
    """Direct upper-triangle Lennard-Jones forces using vectorised NumPy."""

    def setup(self, pd: ParticleData):
        super().setup(pd)
        self.N = pd.get_n()
        print(f"LJPPCpu Setup: N={self.N}, sigma={self.params.sigma}, epsilon={self.params.epsilon}")

    @timing_decorator
    def compute_forces(self, pd: ParticleData):
        pos = pd.get("positions", "cpu").astype(np.float64, copy=False)
        p = self.params
        i_idx, j_idx, d, r2, n_singular = lj_pair_terms(pos, self.r2_threshold, p.clamp)
        self._handle_singular_pairs(n_singular)

        forces = np.zeros_like(pos, dtype=np.float64)
        if i_idx.size:
            # overflow shows up as Inf/NaN and is rejected by _publish_host_forces
            with np.errstate(over="ignore", invalid="ignore"):
                r6 = r2 * r2 * r2
                r12 = r6 * r6
                f = 24.0 * p.epsilon * (2.0 * p.sigma * p.sigma / r12 - p.sigma / r6) / r2
                f_ij = f[:, np.newaxis] * d
                np.add.at(forces, i_idx, f_ij)
                np.subtract.at(forces, j_idx, f_ij)
        self._publish_host_forces(pd, forces)

    @timing_decorator
    def compute_potential_energy(self, pd: ParticleData) -> float:
        if pd.get_n() < 2: return 0.0
        pos = pd.get("positions", "cpu").astype(np.float64, copy=False)
        p = self.params
        _, _, _, r2, n_singular = lj_pair_terms(pos, self.r2_threshold, p.clamp)
        self._handle_singular_pairs(n_singular)
        with np.errstate(over="ignore", invalid="ignore"):
            r6 = r2 * r2 * r2
            r12 = r6 * r6
            return float(np.sum(4.0 * p.epsilon * (p.sigma * p.sigma / r12 - p.sigma / r6)))
