# pairforce/physics/lj/lj_gather_numba.py
"""
Lennard-Jones forces on the CPU with Numba, parallel over particles.

Same gather strategy as LJGatherTaichi: each prange iteration owns one
particle and writes only its own row, so no atomics are required.
"""

import numpy as np

from numba import njit, prange

from pairforce.physics.base.pair_force import PairForceModel
from pairforce.particle_data import ParticleData
from pairforce.utils import timing_decorator


@njit(cache=True, parallel=True, fastmath=False)
def lj_forces_gather_numba(pos, sigma, epsilon, r2_min, clamp):
    """(Numba Kernel) Net force on every particle; returns (forces, n_singular)."""
    N = pos.shape[0]
    forces = np.zeros((N, 3), dtype=np.float64)
    singular = np.zeros(N, dtype=np.int64) # per-row counts, summed after the loop
    for i in prange(N):
        fx = 0.0; fy = 0.0; fz = 0.0
        for j in range(N):
            if i == j: continue
            dx = pos[i, 0] - pos[j, 0]
            dy = pos[i, 1] - pos[j, 1]
            dz = pos[i, 2] - pos[j, 2]
            r2 = dx * dx + dy * dy + dz * dz
            if r2 < r2_min:
                if i < j: singular[i] += 1
                if not clamp: continue
                r2 = r2_min
            r6 = r2 * r2 * r2
            r12 = r6 * r6
            f = 24.0 * epsilon * (2.0 * sigma * sigma / r12 - sigma / r6) / r2
            fx += f * dx; fy += f * dy; fz += f * dz
        forces[i, 0] = fx; forces[i, 1] = fy; forces[i, 2] = fz
    return forces, singular.sum()


@njit(cache=True, parallel=True, fastmath=False)
def lj_energy_numba(pos, sigma, epsilon, r2_min, clamp):
    """(Numba Kernel) Total energy over pairs j > i; returns (energy, n_singular)."""
    N = pos.shape[0]
    energies = np.zeros(N, dtype=np.float64)
    singular = np.zeros(N, dtype=np.int64)
    for i in prange(N):
        e_i = 0.0
        for j in range(i + 1, N):
            dx = pos[i, 0] - pos[j, 0]
            dy = pos[i, 1] - pos[j, 1]
            dz = pos[i, 2] - pos[j, 2]
            r2 = dx * dx + dy * dy + dz * dz
            if r2 < r2_min:
                singular[i] += 1
                if not clamp: continue
                r2 = r2_min
            r6 = r2 * r2 * r2
            r12 = r6 * r6
            e_i += 4.0 * epsilon * (sigma * sigma / r12 - sigma / r6)
        energies[i] = e_i
    return energies.sum(), singular.sum()


class LJGatherNumba(PairForceModel):
    """Lennard-Jones forces via a Numba parallel per-particle loop (CPU)."""

    def setup(self, pd: ParticleData):
        super().setup(pd)
        self.N = pd.get_n()
        print(f"LJGatherNumba Setup: N={self.N}, sigma={self.params.sigma}, epsilon={self.params.epsilon}")

    def _positions_f64(self, pd: ParticleData) -> np.ndarray:
        return np.ascontiguousarray(pd.get("positions", "cpu"), dtype=np.float64)

    @timing_decorator
    def compute_forces(self, pd: ParticleData):
        p = self.params
        forces, n_singular = lj_forces_gather_numba(self._positions_f64(pd), p.sigma, p.epsilon, self.r2_threshold, p.clamp)
        self._handle_singular_pairs(int(n_singular))
        self._publish_host_forces(pd, forces)

    @timing_decorator
    def compute_potential_energy(self, pd: ParticleData) -> float:
        if pd.get_n() < 2: return 0.0
        p = self.params
        energy, n_singular = lj_energy_numba(self._positions_f64(pd), p.sigma, p.epsilon, self.r2_threshold, p.clamp)
        self._handle_singular_pairs(int(n_singular))
        return float(energy)
