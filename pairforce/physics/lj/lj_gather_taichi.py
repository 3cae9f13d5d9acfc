# pairforce/physics/lj/lj_gather_taichi.py
"""
Lennard-Jones forces with one Taichi work item per particle.

Each work item loops over every partner and writes only its own accumulator,
so no atomics are needed for the forces. Every pair distance is computed twice
(once from each side) in exchange.
"""

import numpy as np
import traceback
from typing import Dict, Optional

from pairforce.physics.base.pair_force import PairForceModel
from pairforce.particle_data import ParticleData
from pairforce.errors import AllocationError, DispatchError

try:
    import taichi as ti
    HAVE_TAICHI = True
except ImportError:
    ti = None
    HAVE_TAICHI = False

# ==============================
# --- Taichi Kernels ---
# ==============================

if HAVE_TAICHI:
    @ti.kernel
    def lj_forces_gather_ti_kernel(
        pos_field: ti.template(),
        forces_out: ti.template(),
        n_singular: ti.template(),
        N: ti.i32,
        sigma: float, epsilon: float,
        r2_min: float, clamp: ti.i32,
        block_dim: ti.template()
    ):
        """(Taichi Kernel) Per-particle gather over all partners j != i."""
        ti.loop_config(block_dim=block_dim)
        for i in range(N):
            force_i = ti.Vector([0.0, 0.0, 0.0])
            pos_i = pos_field[i]
            for j in range(N):
                if i == j: continue
                d = pos_i - pos_field[j]
                r2 = d.dot(d)
                evaluate = True
                if r2 < r2_min:
                    if i < j: ti.atomic_add(n_singular[None], 1) # count each pair once
                    if clamp:
                        r2 = r2_min
                    else:
                        evaluate = False
                if evaluate:
                    r6 = r2 * r2 * r2
                    r12 = r6 * r6
                    force_i += 24.0 * epsilon * (2.0 * sigma * sigma / r12 - sigma / r6) / r2 * d
            forces_out[i] = force_i

    @ti.kernel
    def lj_energy_gather_ti_kernel(
        pos_field: ti.template(),
        energy_out: ti.template(),
        n_singular: ti.template(),
        N: ti.i32,
        sigma: float, epsilon: float,
        r2_min: float, clamp: ti.i32,
        block_dim: ti.template()
    ):
        """(Taichi Kernel) Total energy; particle i sums its partners j > i."""
        ti.loop_config(block_dim=block_dim)
        for i in range(N):
            pos_i = pos_field[i]
            for j in range(i + 1, N):
                d = pos_i - pos_field[j]
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

# ==============================
# --- Python Class Definition ---
# ==============================

class LJGatherTaichi(PairForceModel):
    """Lennard-Jones forces, one worker per particle, no atomic accumulation (Taichi)."""

    def __init__(self, config: Optional[Dict] = None):
        super().__init__(config)
        if not HAVE_TAICHI:
            raise ImportError("Taichi is required for LJGatherTaichi but not found.")
        try: self.ti_fp_dtype = ti.lang.impl.current_cfg().default_fp
        except Exception as e: raise RuntimeError("Taichi not initialized before LJGatherTaichi init?") from e
        self.ti_forces_out = None
        self.ti_energy_out = None
        self.ti_n_singular = None
        self.N: int = 0

    def _compute_dtype(self, pd: ParticleData):
        return np.float32 if self.ti_fp_dtype == ti.f32 else pd.get_dtype("forces")

    def setup(self, pd: ParticleData):
        super().setup(pd)
        self.N = pd.get_n()
        print(f"LJGatherTaichi Setup: N={self.N}, sigma={self.params.sigma}, epsilon={self.params.epsilon}, "
              f"block_dim={self.block_dim}, TaichiFP={self.ti_fp_dtype}")
        pd.ensure("positions", "gpu:ti")
        try:
            if self.ti_forces_out is None or self.ti_forces_out.shape[0] != self.N:
                self.ti_forces_out = ti.Vector.field(3, dtype=self.ti_fp_dtype, shape=self.N)
            if self.ti_energy_out is None:
                self.ti_energy_out = ti.field(dtype=self.ti_fp_dtype, shape=())
                self.ti_n_singular = ti.field(dtype=ti.i32, shape=())
        except Exception as e:
            self._is_setup = False
            print(f"ERROR: LJGatherTaichi failed allocating device fields for N={self.N}: {e}")
            raise AllocationError(f"Device allocation of force output (N={self.N}) failed.") from e

    def _launch(self, name: str, kernel, pos_field, out_field):
        p = self.params
        try:
            kernel(pos_field, out_field, self.ti_n_singular, np.int32(self.N),
                   p.sigma, p.epsilon, self.r2_threshold, np.int32(p.clamp), self.block_dim)
            ti.sync()
        except Exception as e:
            print(f"ERROR during LJGatherTaichi {name} launch: {e}")
            traceback.print_exc()
            raise DispatchError(f"LJGatherTaichi: {name} kernel launch failed.") from e

    def compute_forces(self, pd: ParticleData):
        if not self._is_setup: raise RuntimeError("LJGatherTaichi used before setup().")
        pd.ensure("positions", "gpu:ti")
        self.ti_n_singular.fill(0)
        # every slot of forces_out is overwritten, no zeroing pass needed
        self._launch("force", lj_forces_gather_ti_kernel, pd.get("positions", "gpu:ti"), self.ti_forces_out)
        self._handle_singular_pairs(int(self.ti_n_singular[None]))
        pd.mark_device_authoritative("forces", "gpu:ti", self.ti_forces_out)

    def compute_potential_energy(self, pd: ParticleData) -> float:
        if not self._is_setup: raise RuntimeError("LJGatherTaichi used before setup().")
        if self.N < 2: return 0.0
        pd.ensure("positions", "gpu:ti")
        self.ti_energy_out.fill(0.0)
        self.ti_n_singular.fill(0)
        self._launch("energy", lj_energy_gather_ti_kernel, pd.get("positions", "gpu:ti"), self.ti_energy_out)
        self._handle_singular_pairs(int(self.ti_n_singular[None]))
        return float(self.ti_energy_out[None])

    def cleanup(self):
        super().cleanup()
        self.ti_forces_out = None
        self.ti_energy_out = None
        self.ti_n_singular = None
