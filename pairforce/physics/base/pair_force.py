# pairforce/physics/base/pair_force.py
"""
defines the ABC for pairwise (non-bonded) force models and the Lennard-Jones
parameter set they share.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Dict

import numpy as np

from .physics import PhysicsModel
from pairforce.particle_data import ParticleData
from pairforce.errors import DispatchError, SingularityError

SINGULARITY_POLICIES = ("error", "skip", "clamp")
MAX_BLOCK_DIM = 1024


def precision_r2_floor(dtype) -> float:
    """
    Smallest squared distance the LJ kernels accept in floating type `dtype`.

    The repulsive term grows like 48 / r2**7; below this floor it overflows
    (and r2**6 underflows) in `dtype`, with three decades of headroom for
    sigma, epsilon and summation. About 1.5e-5 for float32, 4e-44 for float64.
    """
    return float((48.0e3 / float(np.finfo(dtype).max)) ** (1.0 / 7.0))


def count_nonfinite(values) -> int:
    return int(np.size(values) - np.count_nonzero(np.isfinite(values)))


@dataclass(frozen=True)
class LJParameters:
    """
    Lennard-Jones parameters for one force pass.

    Attributes:
        sigma: characteristic distance
        epsilon: well depth
        r2_min: squared distance below which a pair counts as singular (> 0)
        singularity_policy: 'error', 'skip' or 'clamp'
    """
    sigma: float = 1.0
    epsilon: float = 1.0
    r2_min: float = 1e-10
    singularity_policy: str = "error"

    def __post_init__(self):
        if not self.sigma > 0: raise ValueError(f"sigma must be positive, got {self.sigma}")
        if not self.epsilon >= 0: raise ValueError(f"epsilon must be non-negative, got {self.epsilon}")
        if not self.r2_min > 0: raise ValueError(f"r2_min must be positive, got {self.r2_min}")
        if self.singularity_policy not in SINGULARITY_POLICIES:
            raise ValueError(f"singularity_policy must be one of {SINGULARITY_POLICIES}, got '{self.singularity_policy}'")

    @property
    def clamp(self) -> bool:
        return self.singularity_policy == "clamp"

    @classmethod
    def from_config(cls, config: Dict) -> "LJParameters":
        try:
            return cls(
                sigma=float(config.get('sigma', 1.0)),
                epsilon=float(config.get('epsilon', 1.0)),
                r2_min=float(config.get('r2_min', 1e-10)),
                singularity_policy=str(config.get('singularity_policy', 'error')),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid Lennard-Jones config value: {e}") from e


class PairForceModel(PhysicsModel):
    """
    ABC for models computing pairwise forces and the matching potential energy.

    After setup the model exposes `params`, `block_dim` and `r2_threshold`, the
    singular-pair cutoff actually passed to the kernels: the configured r2_min,
    raised to `precision_r2_floor` of the working precision when that is larger.
    """

    @abstractmethod
    def compute_forces(self, pd: ParticleData):
        """Overwrites pd 'forces' with the net force on every particle."""
        pass

    @abstractmethod
    def compute_potential_energy(self, pd: ParticleData) -> float:
        pass

    def _compute_dtype(self, pd: ParticleData):
        """Floating type the force values pass through (storage or kernel precision)."""
        return pd.get_dtype("forces")

    def setup(self, pd: ParticleData):
        self._fp_dtype = self._compute_dtype(pd)
        self._derive_settings()
        super().setup(pd)

    def _derive_settings(self):
        """Parses params and block_dim from self.config; leaves the old values on failure."""
        params = LJParameters.from_config(self.config)
        try:
            block_dim = int(self.config.get('block_dim', 128))
        except (TypeError, ValueError) as e:
            raise DispatchError(f"Invalid block_dim: {e}") from e
        if not 1 <= block_dim <= MAX_BLOCK_DIM:
            raise DispatchError(f"block_dim must be in [1, {MAX_BLOCK_DIM}], got {block_dim}")

        floor = precision_r2_floor(self._fp_dtype)
        if params.r2_min < floor:
            print(f"Warning ({self.__class__.__name__}): r2_min={params.r2_min:.1e} is below the "
                  f"{np.dtype(self._fp_dtype).name} limit; using {floor:.2e}.")
        self.params = params
        self.block_dim = block_dim
        self.r2_threshold = max(params.r2_min, floor)

    def update_config(self, config: Dict):
        """Merges `config`; once set up, re-derives and validates params and block_dim."""
        previous = dict(self.config)
        super().update_config(config)
        if self._is_setup:
            try:
                self._derive_settings()
            except Exception:
                self.config = previous
                raise

    def _handle_singular_pairs(self, n_singular: int):
        """Applies the singularity policy after a pass that found `n_singular` close pairs."""
        if n_singular <= 0: return
        if self.params.singularity_policy == "error":
            raise SingularityError(n_singular, self.r2_threshold)
        action = "clamped to r2_min" if self.params.clamp else "skipped"
        print(f"Warning ({self.__class__.__name__}): {n_singular} near-coincident pair(s) {action}.")

    def _check_finite(self, values):
        """Raises SingularityError if `values` (forces or an energy) hold NaN or Inf."""
        n_bad = count_nonfinite(values)
        if n_bad:
            raise SingularityError(0, self.r2_threshold, n_nonfinite=n_bad)

    def _publish_host_forces(self, pd: ParticleData, forces: np.ndarray):
        """Stores host-computed forces in pd after casting to its precision and checking finiteness."""
        with np.errstate(over="ignore"):
            forces = np.asarray(forces, dtype=pd.get_dtype("forces"))
        self._check_finite(forces)
        pd.set("forces", forces)
