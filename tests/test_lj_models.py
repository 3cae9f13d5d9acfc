"""
Tests for the Lennard-Jones force models.

Every model is checked against the same analytic cases; the accelerator
models are additionally compared against the NumPy reference.
"""

import numpy as np
import pytest

from conftest import MODEL_IDS
from pairforce.errors import SingularityError
from pairforce.force_manager import ForceManager
from pairforce.particle_data import ParticleData
from pairforce.physics.base.pair_force import LJParameters, precision_r2_floor


def two_particles(r):
    return np.array([[0.0, 0.0, 0.0], [r, 0.0, 0.0]])


def pair_force_x(make_manager, model_id, r, **config):
    """x force on particle 0 of a two-particle system at separation r."""
    manager, _ = make_manager(model_id, two_particles(r), **config)
    return manager.compute_forces()[0, 0]


@pytest.mark.parametrize("model_id", MODEL_IDS)
class TestAnalyticCases:

    def test_known_value_unit_distance(self, make_manager, model_id):
        """r = 1, sigma = epsilon = 1 gives f = 24: (-24, 0, 0) on particle 0, (24, 0, 0) on particle 1."""
        manager, _ = make_manager(model_id, two_particles(1.0))
        forces = manager.compute_forces()
        np.testing.assert_allclose(forces[0], [-24.0, 0.0, 0.0], rtol=1e-12)
        np.testing.assert_allclose(forces[1], [24.0, 0.0, 0.0], rtol=1e-12)

    def test_single_particle_has_zero_force(self, make_manager, model_id):
        manager, _ = make_manager(model_id, [[1.0, 2.0, 3.0]])
        forces = manager.compute_forces()
        assert forces.shape == (1, 3)
        np.testing.assert_array_equal(forces, 0.0)

    def test_zero_force_at_equilibrium(self, make_manager, model_id):
        """2 sigma^2 / r^12 = sigma / r^6 at r^6 = 2 sigma."""
        sigma = 1.3
        r_eq = (2.0 * sigma) ** (1.0 / 6.0)
        fx = pair_force_x(make_manager, model_id, r_eq, sigma=sigma)
        assert abs(fx) < 1e-10

    def test_epsilon_scales_linearly(self, make_manager, model_id):
        f1 = pair_force_x(make_manager, model_id, 1.1, epsilon=1.0)
        f3 = pair_force_x(make_manager, model_id, 1.1, epsilon=3.0)
        assert f3 == pytest.approx(3.0 * f1, rel=1e-12)

    def test_newton_third_law_on_lattice(self, make_manager, model_id, lattice_positions):
        manager, _ = make_manager(model_id, lattice_positions)
        forces = manager.compute_forces()
        assert np.all(np.isfinite(forces))
        scale = np.abs(forces).sum()
        assert scale > 0
        np.testing.assert_allclose(forces.sum(axis=0), 0.0, atol=1e-12 * scale)

    def test_energy_at_unit_distance_is_zero(self, make_manager, model_id):
        manager, _ = make_manager(model_id, two_particles(1.0))
        assert manager.compute_potential_energy() == pytest.approx(0.0, abs=1e-12)

    def test_energy_minimum_at_equilibrium(self, make_manager, model_id):
        """With sigma = 1 the well depth is -epsilon at r = 2^(1/6)."""
        manager, _ = make_manager(model_id, two_particles(2.0 ** (1.0 / 6.0)), epsilon=2.5)
        assert manager.compute_potential_energy() == pytest.approx(-2.5, rel=1e-10)


@pytest.mark.parametrize("model_id", MODEL_IDS)
class TestDistanceDependence:

    def test_attraction_decays_monotonically(self, make_manager, model_id):
        # |F| peaks at r = (26/7)^(1/6) sigma and decreases beyond it
        radii = np.linspace(1.25, 4.0, 12)
        magnitudes = [abs(pair_force_x(make_manager, model_id, r)) for r in radii]
        assert all(a > b for a, b in zip(magnitudes, magnitudes[1:]))

    def test_repulsion_diverges_towards_zero(self, make_manager, model_id):
        radii = [1.0, 0.5, 0.1, 0.01]
        repulsion = [-pair_force_x(make_manager, model_id, r) for r in radii]
        assert all(f > 0 for f in repulsion)
        assert all(b > a for a, b in zip(repulsion, repulsion[1:]))
        assert repulsion[-1] > 1e25


@pytest.mark.parametrize("model_id", MODEL_IDS)
class TestSingularityPolicy:

    coincident = np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])

    def test_error_policy_raises(self, make_manager, model_id):
        manager, _ = make_manager(model_id, self.coincident, singularity_policy="error")
        with pytest.raises(SingularityError) as excinfo:
            manager.compute_forces()
        assert excinfo.value.n_pairs == 1

    def test_error_policy_leaves_no_nan(self, make_manager, model_id):
        manager, pd = make_manager(model_id, self.coincident, singularity_policy="error")
        with pytest.raises(SingularityError):
            manager.compute_forces()
        assert np.all(np.isfinite(pd.get("forces", "cpu")))

    @pytest.mark.parametrize("policy", ["skip", "clamp"])
    def test_coincident_pair_contributes_nothing(self, make_manager, model_id, policy, capsys):
        manager, _ = make_manager(model_id, self.coincident, singularity_policy=policy)
        forces = manager.compute_forces()
        np.testing.assert_allclose(forces, [[-24.0, 0, 0], [-24.0, 0, 0], [48.0, 0, 0]], rtol=1e-12, atol=1e-12)
        assert "near-coincident" in capsys.readouterr().out

    def test_clamp_bounds_near_coincident_force(self, make_manager, model_id):
        r2_min = 1e-2
        close = two_particles(1e-4)
        manager, _ = make_manager(model_id, close, singularity_policy="clamp", r2_min=r2_min)
        forces = manager.compute_forces()
        r6 = r2_min ** 3
        bound = 24.0 * (2.0 / r6 ** 2 - 1.0 / r6) / r2_min * 1e-4
        assert np.all(np.isfinite(forces))
        assert forces[0, 0] == pytest.approx(-bound, rel=1e-10)

    def test_energy_follows_policy(self, make_manager, model_id):
        manager, _ = make_manager(model_id, self.coincident, singularity_policy="error")
        with pytest.raises(SingularityError):
            manager.compute_potential_energy()
        manager.update_config({"singularity_policy": "skip"})
        assert manager.compute_potential_energy() == pytest.approx(0.0, abs=1e-12)


@pytest.mark.parametrize("model_id", ["lj_pairs_taichi", "lj_gather_taichi", "lj_gather_numba"])
def test_matches_numpy_reference(make_manager, model_id, lattice_positions):
    reference, _ = make_manager("lj_pp_cpu", lattice_positions)
    expected = reference.compute_forces().copy()
    expected_energy = reference.compute_potential_energy()

    manager, _ = make_manager(model_id, lattice_positions, block_dim=32)
    forces = manager.compute_forces()
    scale = np.abs(expected).max()
    np.testing.assert_allclose(forces, expected, rtol=1e-10, atol=1e-12 * scale)
    assert manager.compute_potential_energy() == pytest.approx(expected_energy, rel=1e-10)


def test_repeated_passes_rezero_the_accumulator(make_manager, lattice_positions):
    manager, _ = make_manager("lj_pairs_taichi", lattice_positions)
    first = manager.compute_forces().copy()
    second = manager.compute_forces()
    np.testing.assert_allclose(second, first, rtol=1e-12, atol=1e-12 * np.abs(first).max())


@pytest.mark.parametrize("r2_min", [0.0, -1e-10, float("nan")])
def test_r2_min_must_be_positive(r2_min):
    with pytest.raises(ValueError, match="r2_min must be positive"):
        LJParameters(r2_min=r2_min)


@pytest.mark.parametrize("model_id", MODEL_IDS)
def test_zero_r2_min_is_rejected_at_selection(make_manager, model_id):
    with pytest.raises(ValueError, match="r2_min"):
        make_manager(model_id, TestSingularityPolicy.coincident, r2_min=0.0)


def test_precision_floor_covers_float32_overflow():
    floor = precision_r2_floor(np.float32)
    assert 1e-6 < floor < 1e-4
    r2 = np.float32(floor)
    with np.errstate(over="raise"):
        f = np.float32(48.0) / (r2 ** 6) / r2
    assert np.isfinite(f)
    assert precision_r2_floor(np.float64) < 1e-40


def single_precision_manager(flags, model_id, positions, **config):
    if model_id == "lj_gather_numba":
        pytest.importorskip("numba")
    positions = np.asarray(positions, dtype=np.float32)
    pd = ParticleData(positions.shape[0], numpy_precision=np.float32, taichi_is_active=True)
    pd.set("positions", positions)
    settings = {"sigma": 1.0, "epsilon": 1.0, "r2_min": 1e-10, "singularity_policy": "error"}
    settings.update(config)
    manager = ForceManager(pd, settings, flags)
    manager.select_model(model_id)
    return manager, pd


@pytest.mark.parametrize("model_id", MODEL_IDS)
class TestSinglePrecision:
    """A pair at 3e-5 is well above r2_min = 1e-10 but its force overflows float32."""

    close = [[0.0, 0.0, 0.0], [3e-5, 0.0, 0.0], [1.0, 0.0, 0.0]]

    def test_close_pair_is_singular(self, single_precision_flags, model_id):
        manager, pd = single_precision_manager(single_precision_flags, model_id, self.close)
        try:
            with pytest.raises(SingularityError) as excinfo:
                manager.compute_forces()
            assert excinfo.value.n_pairs == 1
            assert excinfo.value.r2_min >= precision_r2_floor(np.float32)
            np.testing.assert_array_equal(pd.get("forces", "cpu"), 0.0)
        finally:
            manager.cleanup_models()

    def test_skip_policy_gives_finite_forces(self, single_precision_flags, model_id):
        manager, _ = single_precision_manager(single_precision_flags, model_id, self.close,
                                              singularity_policy="skip")
        try:
            forces = manager.compute_forces()
            assert forces.dtype == np.float32
            assert np.all(np.isfinite(forces))
            assert forces[2, 0] == pytest.approx(48.0, rel=1e-3)
        finally:
            manager.cleanup_models()


@pytest.mark.parametrize("model_id", MODEL_IDS)
def test_overflowing_forces_raise_singularity(make_manager, model_id):
    """epsilon = 1e300 overflows float64 at r = 0.01 even though r2 is far above r2_min."""
    manager, pd = make_manager(model_id, two_particles(0.01), epsilon=1e300)
    with pytest.raises(SingularityError) as excinfo:
        manager.compute_forces()
    assert excinfo.value.n_nonfinite > 0
    np.testing.assert_array_equal(pd.get("forces", "cpu"), 0.0)


@pytest.mark.parametrize("model_id", MODEL_IDS)
def test_overflowing_energy_raises_singularity(make_manager, model_id):
    manager, _ = make_manager(model_id, two_particles(0.01), epsilon=1e300)
    with pytest.raises(SingularityError):
        manager.compute_potential_energy()
