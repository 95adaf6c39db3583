import numpy as np
import pytest

from gridfluid.boundary import BoundaryPolicy
from gridfluid.config import SimulationConfig
from gridfluid.grid import BoundaryMask, CellType, Grid


def make_policy(shape, boundaries=None, inflow=None, mask=None):
    config = SimulationConfig(width=shape[0], height=shape[1],
                              depth=shape[2] if len(shape) == 3 else None,
                              boundaries=boundaries or {}, inflow_velocity=inflow or {}).validate()
    grid = Grid(config.shape)
    mask_obj = None
    if mask is not None:
        mask_obj = BoundaryMask(grid, mask, inflow_velocity=(0.5,) * len(shape))
    return BoundaryPolicy.from_config(grid, config, mask_obj)


SCENARIOS = [
    ((9, 7), {}, {}),
    ((9, 7), {"x_min": "wrap", "x_max": "wrap"}, {}),
    ((9, 7), {"x_min": "wrap", "x_max": "wrap", "y_min": "wrap", "y_max": "wrap"}, {}),
    ((9, 7), {"x_min": "inflow", "y_max": "inflow"}, {"x_min": (1.0, 0.0), "y_max": (0.0, -1.0)}),
    ((6, 5, 7), {}, {}),
    ((6, 5, 7), {"z_min": "wrap", "z_max": "wrap", "x_max": "inflow"}, {"x_max": (-1.0, 0.0, 0.5)}),
]


@pytest.mark.parametrize("shape,boundaries,inflow", SCENARIOS)
def test_boundary_application_is_idempotent(shape, boundaries, inflow):
    rng = np.random.default_rng(0)
    policy = make_policy(shape, boundaries, inflow)

    vel = rng.normal(size=(len(shape),) + shape)
    once = policy.apply_velocity(vel.copy())
    twice = policy.apply_velocity(once.copy())
    np.testing.assert_array_equal(once, twice)

    rho = rng.normal(size=shape)
    once = policy.apply_scalar(rho.copy())
    np.testing.assert_array_equal(once, policy.apply_scalar(once.copy()))

    p = rng.normal(size=shape)
    once = policy.apply_pressure(p.copy())
    np.testing.assert_array_equal(once, policy.apply_pressure(once.copy()))


def test_idempotent_with_mask():
    rng = np.random.default_rng(1)
    mask = np.zeros((9, 7), dtype=np.uint8)
    mask[1:3, 2:4] = CellType.SOLID
    mask[5, 1] = CellType.INFLOW
    policy = make_policy((9, 7), mask=mask)

    vel = rng.normal(size=(2, 9, 7))
    once = policy.apply_velocity(vel.copy())
    np.testing.assert_array_equal(once, policy.apply_velocity(once.copy()))
    assert np.all(once[:, 1:3, 2:4] == 0.0)
    assert once[:, 5, 1].tolist() == [0.5, 0.5]


def test_solid_is_free_slip():
    rng = np.random.default_rng(2)
    policy = make_policy((9, 7))
    vel = policy.apply_velocity(rng.normal(size=(2, 9, 7)))

    rows = slice(1, -1)
    # normal component zero on the x walls, tangential copied from the interior
    assert np.all(vel[0][0, rows] == 0.0)
    assert np.all(vel[0][-1, rows] == 0.0)
    np.testing.assert_array_equal(vel[1][0, rows], vel[1][1, rows])
    np.testing.assert_array_equal(vel[1][-1, rows], vel[1][-2, rows])
    # same on the y walls
    assert np.all(vel[1][:, 0] == 0.0)
    np.testing.assert_array_equal(vel[0][1:-1, -1], vel[0][1:-1, -2])


def test_wrap_reads_opposite_edge():
    rng = np.random.default_rng(3)
    policy = make_policy((9, 7), {"x_min": "wrap", "x_max": "wrap"})
    assert policy.wrap_axes == (True, False)

    rho = policy.apply_scalar(rng.normal(size=(9, 7)))
    np.testing.assert_array_equal(rho[0], rho[7])
    np.testing.assert_array_equal(rho[8], rho[1])

    vel = policy.apply_velocity(rng.normal(size=(2, 9, 7)))
    np.testing.assert_array_equal(vel[:, 0, 1:-1], vel[:, 7, 1:-1])
    np.testing.assert_array_equal(vel[:, 8, 1:-1], vel[:, 1, 1:-1])


def test_inflow_pins_edge_velocity():
    policy = make_policy((9, 7), {"x_min": "inflow"}, {"x_min": (2.0, 0.5)})
    vel = policy.apply_velocity(np.zeros((2, 9, 7)))
    assert np.all(vel[0][0, 1:-1] == 2.0)
    assert np.all(vel[1][0, 1:-1] == 0.5)

    homogeneous = policy.apply_velocity(np.ones((2, 9, 7)), homogeneous=True)
    assert np.all(homogeneous[:, 0, 1:-1] == 0.0)


def test_pressure_ghosts():
    policy = make_policy((9, 7), {"y_min": "wrap", "y_max": "wrap"})
    p = policy.apply_pressure(np.ones((9, 7)))
    assert np.all(p[0] == 0.0) and np.all(p[-1] == 0.0)
    np.testing.assert_array_equal(p[1:-1, 0], p[1:-1, 5])
