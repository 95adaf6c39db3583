import numpy as np

from gridfluid.boundary import BoundaryPolicy
from gridfluid.config import SimulationConfig
from gridfluid.diffuse import diffuse, relax
from gridfluid.grid import Grid
from gridfluid.operators import laplacian


def solid_policy(shape):
    config = SimulationConfig(width=shape[0], height=shape[1]).validate()
    return BoundaryPolicy.from_config(Grid(config.shape), config)


def test_zero_rate_copies_source():
    source = np.random.default_rng(0).normal(size=(8, 8))
    out = np.empty_like(source)
    diffuse(out, source, rate=0.0, dt=0.1, spacing=1.0)
    np.testing.assert_array_equal(out, source)


def test_spike_spreads_to_neighbours():
    policy = solid_policy((15, 15))
    source = np.zeros((15, 15))
    source[7, 7] = 1.0
    out = np.empty_like(source)
    diffuse(out, source, rate=1.0, dt=1.0, spacing=1.0, iterations=20, boundary=policy.apply_scalar)

    assert out[7, 7] < 1.0
    assert out[6, 7] > 0.0 and out[7, 8] > 0.0
    assert out[6, 7] < out[7, 7]
    # implicit diffusion keeps the field bounded by its initial range
    assert out.min() >= 0.0 and out.max() <= 1.0
    np.testing.assert_allclose(out[1:-1, 1:-1].sum(), 1.0, rtol=0.05)


def test_constant_field_is_unchanged():
    policy = solid_policy((10, 10))
    source = np.full((10, 10), 2.5)
    out = np.empty_like(source)
    diffuse(out, source, rate=0.3, dt=0.5, spacing=1.0, boundary=policy.apply_scalar)
    np.testing.assert_allclose(out, 2.5)


def test_more_sweeps_reduce_the_residual():
    policy = solid_policy((12, 12))
    source = np.random.default_rng(1).normal(size=(12, 12))
    policy.apply_scalar(source)

    def residual(x):
        r = (x - 0.5 * laplacian(x, 1.0)) - source
        return np.abs(r[1:-1, 1:-1]).max()

    few = np.empty_like(source)
    many = np.empty_like(source)
    diffuse(few, source, rate=0.5, dt=1.0, spacing=1.0, iterations=2, boundary=policy.apply_scalar)
    diffuse(many, source, rate=0.5, dt=1.0, spacing=1.0, iterations=40, boundary=policy.apply_scalar)
    assert residual(many) < residual(few)


def test_relax_plain_jacobi_matches_closed_form():
    # (I - a*L) x = b  with the classic update x = (b + a*neighbours) / (1 + 4a)
    rng = np.random.default_rng(2)
    b = rng.normal(size=(6, 6))
    a = 0.25

    x = b.copy()
    relax(x, b, lambda v: v - a * laplacian(v, 1.0), 1.0 / (1 + 4 * a), iterations=1)

    expected = b.copy()
    nb = b[2:, 1:-1] + b[:-2, 1:-1] + b[1:-1, 2:] + b[1:-1, :-2]
    expected[1:-1, 1:-1] = (b[1:-1, 1:-1] + a * nb) / (1 + 4 * a)
    np.testing.assert_allclose(x, expected)


def test_vector_diffusion_keeps_walls():
    policy = solid_policy((10, 10))
    vel = np.zeros((2, 10, 10))
    vel[0, 5, 5] = 1.0
    out = np.empty_like(vel)
    diffuse(out, vel, rate=1.0, dt=1.0, spacing=1.0, boundary=policy.apply_velocity, vector=True)
    assert out[0, 4, 5] > 0.0
    assert np.all(out[0][0, 1:-1] == 0.0)
    assert np.all(out[1] == 0.0)
