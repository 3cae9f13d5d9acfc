# pairforce/errors.py
"""
Exception types for the fatal and data-dependent failures of a force pass.

Allocation and dispatch failures end the run. A SingularityError is raised
when near-coincident particles are found under the 'error' policy, and when a
pass produced non-finite forces or energy in the working precision.
"""


class AllocationError(RuntimeError):
    """Host or device memory for a particle attribute could not be allocated."""


class DispatchError(RuntimeError):
    """A kernel could not be launched (bad grid/block configuration or runtime failure)."""


class SingularityError(ValueError):
    """One or more particle pairs are too close for a finite Lennard-Jones force."""

    def __init__(self, n_pairs: int, r2_min: float, n_nonfinite: int = 0):
        self.n_pairs = int(n_pairs)
        self.r2_min = float(r2_min)
        self.n_nonfinite = int(n_nonfinite)
        if self.n_nonfinite:
            message = (f"{self.n_nonfinite} non-finite force/energy value(s) after the pass; "
                       f"the Lennard-Jones force is singular for pairs this close in the working precision "
                       f"(threshold sqrt(r2)={self.r2_min ** 0.5:.3e}). Check positions, sigma and epsilon.")
        else:
            message = (f"{self.n_pairs} particle pair(s) closer than sqrt(r2_min)={self.r2_min ** 0.5:.3e}; "
                       f"Lennard-Jones force is singular there. Use singularity_policy 'skip' or 'clamp' to continue.")
        super().__init__(message)
