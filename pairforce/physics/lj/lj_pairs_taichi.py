# pairforce/physics/lj/lj_pairs_taichi.py
"""
All-pairs Lennard-Jones forces with one Taichi work item per (i, j) grid slot.

The dispatch covers the full N x N index grid. Work item k maps to
i = k // N, j = k % N and only the upper triangle (i < j) does any work, so
every unordered pair is evaluated exactly once and self pairs never are. The
pair force is added to particle i and subtracted from particle j with atomic
adds; up to N-1 work items write to the same accumulator concurrently.

Accumulation order is unspecified, so results can differ from run to run in
the last bits of each component.
"""

import numpy as np
import traceback
from typing import Dict, Optional, Tuple

from pairforce.physics.base.pair_force import PairForceModel
from pairforce.particle_data import ParticleData
from pairforce.errors import AllocationError, DispatchError

try:
    import taichi as ti
    HAVE_TAICHI = True
except ImportError:
    ti = None
    HAVE_TAICHI = False

# i = k // N and j = k % N are evaluated in i32 on the device
MAX_GRID_ITEMS = 2**31 - 1

# ==============================
# --- Taichi Kernels ---
# ==============================

if HAVE_TAICHI:
    @ti.kernel
    def lj_forces_pairs_ti_kernel(
        pos_field: ti.template(),
        forces_out: ti.template(),   # zeroed by the caller before launch
        n_singular: ti.template(),   # 0-d i32 counter of pairs with r2 < r2_min
        N: ti.i32,
        sigma: float, epsilon: float,
        r2_min: float, clamp: ti.i32,
        block_dim: ti.template()
    ):
        """(Taichi Kernel) Upper-triangular pair forces over an N*N grid."""
        ti.loop_config(block_dim=block_dim)
        for item in range(N * N):
            i = item // N
            j = item % N
            if i < j:
                d = pos_field[i] - pos_field[j]
                r2 = d.dot(d)
                evaluate = True
                if r2 < r2_min:
                    ti.atomic_add(n_singular[None], 1)
                    if clamp:
                        r2 = r2_min
                    else:
                        evaluate = False
                if evaluate:
                    r6 = r2 * r2 * r2
                    r12 = r6 * r6
                    f = 24.0 * epsilon * (2.0 * sigma * sigma / r12 - sigma / r6) / r2
                    f_ij = f * d
                    # augmented assignment on a global field in a parallel loop is an atomic add
                    forces_out[i] += f_ij
                    forces_out[j] -= f_ij

    @ti.kernel
    def lj_energy_pairs_ti_kernel(
        pos_field: ti.template(),
        energy_out: ti.template(),   # 0-d accumulator, zeroed by the caller
        n_singular: ti.template(),
        N: ti.i32,
        sigma: float, epsilon: float,
        r2_min: float, clamp: ti.i32,
        block_dim: ti.template()
    ):
        """(Taichi Kernel) Total Lennard-Jones energy over the same pair grid."""
        ti.loop_config(block_dim=block_dim)
        for item in range(N * N):
            i = item // N
            j = item % N
            if i < j:
                d = pos_field[i] - pos_field[j]
                r2 = d.dot(d)
                evaluate = True
                if r2 < r2_min:
                    ti.atomic_add(n_singular[None], 1)
                    if clamp:
                        r2 = r2_min
                    else:
                        evaluate = False
                if evaluate:
                    r6 = r2 * r2 * r2
                    r12 = r6 * r6
                    ti.atomic_add(energy_out[None], 4.0 * epsilon * (sigma * sigma / r12 - sigma / r6))

    @ti.kernel
    def pair_visit_count_ti_kernel(
        counts_out: ti.template(),   # i32 per particle, zeroed by the caller
        n_pairs: ti.template(),      # 0-d i32
        N: ti.i32,
        block_dim: ti.template()
    ):
        """(Taichi Kernel) Same enumeration as the force kernel, adding 1 instead of a force."""
        ti.loop_config(block_dim=block_dim)
        for item in range(N * N):
            i = item // N
            j = item % N
            if i < j:
                ti.atomic_add(counts_out[i], 1)
                ti.atomic_add(counts_out[j], 1)
                ti.atomic_add(n_pairs[None], 1)

# ==============================
# --- Python Class Definition ---
# ==============================

class LJPairsTaichi(PairForceModel):
    """Lennard-Jones forces from an N^2 pair grid with atomic accumulation (Taichi)."""

    def __init__(self, config: Optional[Dict] = None):
        super().__init__(config)
        if not HAVE_TAICHI:
            raise ImportError("Taichi is required for LJPairsTaichi but not found.")
        try: self.ti_fp_dtype = ti.lang.impl.current_cfg().default_fp
        except Exception as e: raise RuntimeError("Taichi not initialized before LJPairsTaichi init?") from e
        self.ti_forces_out: Optional[ti.Field] = None
        self.ti_energy_out: Optional[ti.Field] = None
        self.ti_n_singular: Optional[ti.Field] = None
        self.ti_visit_counts: Optional[ti.Field] = None
        self.ti_n_pairs: Optional[ti.Field] = None
        self.N: int = 0

    def _compute_dtype(self, pd: ParticleData):
        return np.float32 if self.ti_fp_dtype == ti.f32 else pd.get_dtype("forces")

    def setup(self, pd: ParticleData):
        """Validates the launch configuration and allocates the device accumulators."""
        super().setup(pd)
        self.N = pd.get_n()
        if self.N * self.N > MAX_GRID_ITEMS:
            self._is_setup = False
            raise DispatchError(f"LJPairsTaichi: N={self.N} gives {self.N * self.N} work items, "
                                f"more than the {MAX_GRID_ITEMS} an i32 grid index can address.")

        print(f"LJPairsTaichi Setup: N={self.N}, sigma={self.params.sigma}, epsilon={self.params.epsilon}, "
              f"block_dim={self.block_dim}, policy={self.params.singularity_policy}, TaichiFP={self.ti_fp_dtype}")

        pd.ensure("positions", "gpu:ti")
        try:
            if self.ti_forces_out is None or self.ti_forces_out.shape[0] != self.N:
                self.ti_forces_out = ti.Vector.field(3, dtype=self.ti_fp_dtype, shape=self.N)
            if self.ti_energy_out is None:
                self.ti_energy_out = ti.field(dtype=self.ti_fp_dtype, shape=())
                self.ti_n_singular = ti.field(dtype=ti.i32, shape=())
        except Exception as e:
            self._is_setup = False
            print(f"ERROR: LJPairsTaichi failed allocating device accumulators for N={self.N}: {e}")
            raise AllocationError(f"Device allocation of force accumulators (N={self.N}) failed.") from e
        self.ti_forces_out.fill(0.0)

    def _launch(self, name: str, kernel, *args):
        try:
            kernel(*args)
            ti.sync() # completion barrier before any host read
        except Exception as e:
            print(f"ERROR during LJPairsTaichi {name} launch (N={self.N}, block_dim={self.block_dim}): {e}")
            traceback.print_exc()
            raise DispatchError(f"LJPairsTaichi: {name} kernel launch failed.") from e

    def _check_ready(self, pd: ParticleData):
        if not self._is_setup or self.ti_forces_out is None:
            raise RuntimeError("LJPairsTaichi used before setup().")
        if pd.get_n() != self.N:
            raise ValueError(f"LJPairsTaichi set up for N={self.N}, got ParticleData with N={pd.get_n()}.")

    def compute_forces(self, pd: ParticleData):
        """Zeroes the accumulator, launches the pair kernel and publishes the result in pd."""
        self._check_ready(pd)
        pd.ensure("positions", "gpu:ti")
        pos_field = pd.get("positions", "gpu:ti")
        p = self.params

        # fill and kernel go to the same queue, so the zeroing completes before any pair is accumulated
        self.ti_forces_out.fill(0.0)
        self.ti_n_singular.fill(0)
        self._launch("force", lj_forces_pairs_ti_kernel,
                     pos_field, self.ti_forces_out, self.ti_n_singular,
                     np.int32(self.N), p.sigma, p.epsilon, self.r2_threshold, np.int32(p.clamp), self.block_dim)

        self._handle_singular_pairs(int(self.ti_n_singular[None]))
        pd.mark_device_authoritative("forces", "gpu:ti", self.ti_forces_out)

    def compute_potential_energy(self, pd: ParticleData) -> float:
        """Total Lennard-Jones energy of the configuration."""
        self._check_ready(pd)
        if self.N < 2: return 0.0
        pd.ensure("positions", "gpu:ti")
        pos_field = pd.get("positions", "gpu:ti")
        p = self.params

        self.ti_energy_out.fill(0.0)
        self.ti_n_singular.fill(0)
        self._launch("energy", lj_energy_pairs_ti_kernel,
                     pos_field, self.ti_energy_out, self.ti_n_singular,
                     np.int32(self.N), p.sigma, p.epsilon, self.r2_threshold, np.int32(p.clamp), self.block_dim)
        self._handle_singular_pairs(int(self.ti_n_singular[None]))
        return float(self.ti_energy_out[None])

    def count_pair_visits(self, pd: ParticleData) -> Tuple[np.ndarray, int]:
        """
        Runs the instrumented enumeration.

        Returns:
            (counts, n_pairs): how many pairs touched each particle (N-1 each when
            the enumeration is complete) and the number of pairs evaluated
            (N*(N-1)/2).
        """
        self._check_ready(pd)
        if self.ti_visit_counts is None or self.ti_visit_counts.shape[0] != self.N:
            try:
                self.ti_visit_counts = ti.field(dtype=ti.i32, shape=self.N)
                self.ti_n_pairs = ti.field(dtype=ti.i32, shape=())
            except Exception as e:
                raise AllocationError(f"Device allocation of visit counters (N={self.N}) failed.") from e
        self.ti_visit_counts.fill(0)
        self.ti_n_pairs.fill(0)
        self._launch("visit count", pair_visit_count_ti_kernel,
                     self.ti_visit_counts, self.ti_n_pairs, np.int32(self.N), self.block_dim)
        return self.ti_visit_counts.to_numpy(), int(self.ti_n_pairs[None])

    def cleanup(self):
        """Drops the model's device fields."""
        super().cleanup()
        self.ti_forces_out = None
        self.ti_energy_out = None
        self.ti_n_singular = None
        self.ti_visit_counts = None
        self.ti_n_pairs = None
