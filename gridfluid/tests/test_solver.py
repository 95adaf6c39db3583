import numpy as np
import pytest

from gridfluid.boundary import BoundaryPolicy
from gridfluid.config import SimulationConfig
from gridfluid.grid import Grid
from gridfluid.operators import divergence
from gridfluid.solver import pressure_inverse_diagonal, project


def make_policy(shape, spacing=1.0, **boundaries):
    config = SimulationConfig(width=shape[0], height=shape[1],
                              depth=shape[2] if len(shape) == 3 else None,
                              spacing=spacing, boundaries=boundaries).validate()
    return BoundaryPolicy.from_config(Grid(config.shape, spacing), config)


def impulse(shape, axis=0, value=1.0):
    vel = np.zeros((len(shape),) + shape)
    vel[(axis,) + tuple(n // 2 for n in shape)] = value
    return vel


def interior_div(vel, policy):
    return divergence(vel, policy.grid.spacing)[policy.grid.interior]


@pytest.mark.parametrize("shape,spacing", [((16, 16), 1.0), ((16, 16), 0.5), ((10, 10, 10), 1.0)])
def test_divergence_below_epsilon_after_projection(shape, spacing):
    policy = make_policy(shape, spacing)
    vel = impulse(shape)
    pressure = np.zeros(shape)

    metrics = project(vel, pressure, policy, iterations=1000)

    assert metrics["divergence_before_max"] > 0.1
    assert np.abs(interior_div(vel, policy)).max() < 1e-3
    assert metrics["divergence_after_max"] < 1e-3


def test_divergence_bound_with_wrap():
    policy = make_policy((16, 16), x_min="wrap", x_max="wrap")
    vel = impulse((16, 16), axis=1)
    project(vel, np.zeros((16, 16)), policy, iterations=1000)
    assert np.abs(interior_div(vel, policy)).max() < 1e-3


def test_twenty_sweeps_meet_the_bound():
    policy = make_policy((32, 32))
    vel = impulse((32, 32))
    metrics = project(vel, np.zeros((32, 32)), policy, iterations=20)
    assert metrics["iterations"] == 20
    assert metrics["divergence_after_max"] < 1e-3
    assert np.abs(interior_div(vel, policy)).max() < 1e-3


def test_few_sweeps_still_reduce_divergence():
    policy = make_policy((32, 32))
    vel = impulse((32, 32))
    before = np.linalg.norm(interior_div(vel, policy))
    project(vel, np.zeros((32, 32)), policy, iterations=20)
    after = np.linalg.norm(interior_div(vel, policy))
    assert after < 0.5 * before


def test_divergence_free_field_is_left_alone():
    policy = make_policy((12, 10), x_min="wrap", x_max="wrap")
    vel = np.zeros((2, 12, 10))
    vel[0] = -1.0
    policy.apply_velocity(vel)
    before = vel.copy()
    pressure = np.zeros((12, 10))
    project(vel, pressure, policy, iterations=40)
    np.testing.assert_array_equal(vel, before)
    assert np.all(pressure == 0.0)


def test_no_warm_start():
    policy = make_policy((16, 16))
    pressure = np.zeros((16, 16))

    project(impulse((16, 16)), pressure, policy, iterations=10)
    first = pressure.copy()
    pressure += 123.0
    project(impulse((16, 16)), pressure, policy, iterations=10)
    np.testing.assert_array_equal(pressure, first)


def test_inverse_diagonal():
    policy = make_policy((6, 6))
    inv = pressure_inverse_diagonal(policy)
    assert np.all(inv[0] == 0.0)
    # corner interior cell: one free neighbour per axis
    assert inv[1, 1] == pytest.approx(-4.0 / 2)
    # deep interior cell: two per axis
    assert inv[3, 3] == pytest.approx(-4.0 / 4)

    wrapped = pressure_inverse_diagonal(make_policy((6, 6), x_min="wrap", x_max="wrap"))
    assert wrapped[1, 1] == pytest.approx(-4.0 / 3)
