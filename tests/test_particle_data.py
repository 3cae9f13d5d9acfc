"""Tests for ParticleData storage and host/device transfers."""

import numpy as np
import pytest

from pairforce.particle_data import ParticleData


def test_from_components_stacks_columns():
    pd = ParticleData.from_components([0.0, 1.0], [2.0, 3.0], [4.0, 5.0])
    assert pd.get_n() == 2
    np.testing.assert_array_equal(pd.get("positions"), [[0.0, 2.0, 4.0], [1.0, 3.0, 5.0]])
    np.testing.assert_array_equal(pd.get("forces"), 0.0)


def test_from_components_rejects_unequal_lengths():
    with pytest.raises(ValueError, match="differ in length"):
        ParticleData.from_components([0.0, 1.0], [0.0], [0.0, 1.0])


@pytest.mark.parametrize("N", [0, -3])
def test_rejects_non_positive_n(N):
    with pytest.raises(ValueError):
        ParticleData(N)


def test_set_validates_shape_and_finiteness():
    pd = ParticleData(2)
    with pytest.raises(ValueError, match="Shape mismatch"):
        pd.set("positions", np.zeros((3, 3)))
    with pytest.raises(ValueError, match="NaN"):
        pd.set("positions", np.array([[0.0, 0.0, np.nan], [1.0, 1.0, 1.0]]))
    with pytest.raises(KeyError):
        pd.set("velocities", np.zeros((2, 3)))


def test_set_copies_input():
    pd = ParticleData(1)
    src = np.array([[1.0, 2.0, 3.0]])
    pd.set("positions", src)
    src[0, 0] = 99.0
    assert pd.get("positions")[0, 0] == 1.0


def test_writeable_lock():
    pd = ParticleData(2)
    forces = pd.get("forces", "cpu", writeable=True)
    forces[:] = 1.0
    with pytest.raises(RuntimeError, match="locked"):
        pd.get("forces", "cpu", writeable=True)
    pd.release_writeable("forces")
    np.testing.assert_array_equal(pd.get("forces", "cpu", writeable=True), 1.0)


def test_device_requires_active_taichi():
    pd = ParticleData(2, taichi_is_active=False)
    with pytest.raises(RuntimeError, match="not active"):
        pd.get("positions", "gpu:ti")


def test_upload_and_readback(make_pd):
    positions = np.arange(12, dtype=np.float64).reshape(4, 3)
    pd = make_pd(positions)
    pd.ensure("positions", "gpu:ti")
    field = pd.get("positions", "gpu:ti")
    assert field.shape == (4,)
    np.testing.assert_array_equal(field.to_numpy(), positions)

    # a host write invalidates the device copy, the next ensure re-uploads it
    pd.set("positions", positions + 1.0)
    pd.ensure("positions", "gpu:ti")
    np.testing.assert_array_equal(pd.get("positions", "gpu:ti").to_numpy(), positions + 1.0)


def test_device_authoritative_forces_are_read_back(make_pd, backend_flags):
    import taichi as ti

    pd = make_pd(np.zeros((3, 3)))
    field = ti.Vector.field(3, dtype=ti.f64, shape=3)
    field.from_numpy(np.full((3, 3), 2.5))
    pd.mark_device_authoritative("forces", "gpu:ti", field)
    assert pd.get_location("forces") == "gpu:ti"

    fx, fy, fz = pd.get_force_components()
    np.testing.assert_array_equal(fx, 2.5)
    assert pd.get_location("forces") == "cpu"

    pd.cleanup_gpu_resources()
    np.testing.assert_array_equal(pd.get("forces"), 2.5)
