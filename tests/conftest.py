"""Shared fixtures: Taichi on the CPU arch in double precision, particle builders."""

import numpy as np
import pytest

from pairforce.backend import init_taichi
from pairforce.force_manager import ForceManager
from pairforce.particle_data import ParticleData

MODEL_IDS = ["lj_pairs_taichi", "lj_gather_taichi", "lj_gather_numba", "lj_pp_cpu"]


@pytest.fixture(scope="session")
def backend_flags():
    """Initialise Taichi once; accelerator kernels run on the CPU arch."""
    flags = init_taichi("cpu", double_precision=True)
    if not flags["taichi"]:
        pytest.skip("Taichi could not be initialised")
    return flags


@pytest.fixture
def restore_double_precision(backend_flags):
    """Re-initialises Taichi in f64 on the CPU arch after a test that switched precision."""
    yield
    init_taichi("cpu", double_precision=True)


@pytest.fixture
def single_precision_flags(restore_double_precision):
    """Taichi on the CPU arch in f32 for one test."""
    flags = init_taichi("cpu", double_precision=False)
    assert flags["taichi"] and not flags["f64"]
    return flags


def jittered_lattice(nx=4, ny=4, nz=3, spacing=1.5, jitter=0.1, seed=7):
    """Particles near lattice sites; keeps every pair well away from the singular core."""
    rng = np.random.default_rng(seed)
    grid = np.stack(np.meshgrid(np.arange(nx), np.arange(ny), np.arange(nz), indexing="ij"), axis=-1)
    pos = grid.reshape(-1, 3).astype(np.float64) * spacing
    return pos + rng.uniform(-jitter, jitter, size=pos.shape)


@pytest.fixture
def make_pd(backend_flags):
    def _make(positions):
        positions = np.asarray(positions, dtype=np.float64)
        pd = ParticleData(positions.shape[0], numpy_precision=np.float64, taichi_is_active=True)
        pd.set("positions", positions)
        return pd
    return _make


@pytest.fixture
def make_manager(backend_flags, make_pd):
    """Returns a builder (model_id, positions, **config) -> (ForceManager, ParticleData)."""
    managers = []

    def _make(model_id, positions, **config):
        if model_id == "lj_gather_numba":
            pytest.importorskip("numba")
        pd = make_pd(positions)
        settings = {"sigma": 1.0, "epsilon": 1.0, "r2_min": 1e-10,
                    "singularity_policy": "error", "block_dim": 128}
        settings.update(config)
        manager = ForceManager(pd, settings, backend_flags)
        manager.select_model(model_id)
        managers.append(manager)
        return manager, pd

    yield _make
    for manager in managers:
        manager.cleanup_models()


@pytest.fixture
def lattice_positions():
    return jittered_lattice()
