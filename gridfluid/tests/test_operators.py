import numpy as np

from gridfluid.operators import divergence, gradient, laplacian, neighbour_sum


def coords(shape, h):
    return np.meshgrid(*(np.arange(n) * h for n in shape), indexing="ij")


def test_gradient_of_linear_field():
    x, y = coords((8, 6), 0.5)
    g = gradient(3.0 * x - 2.0 * y, 0.5)
    np.testing.assert_allclose(g[0][1:-1, 1:-1], 3.0)
    np.testing.assert_allclose(g[1][1:-1, 1:-1], -2.0)
    # edge layer untouched
    assert np.all(g[:, 0, :] == 0.0)


def test_divergence_of_radial_field():
    x, y, z = coords((6, 6, 6), 0.25)
    div = divergence(np.stack([x, y, z]), 0.25)
    np.testing.assert_allclose(div[1:-1, 1:-1, 1:-1], 3.0)
    assert np.all(div[0] == 0.0)


def test_divergence_free_rotation():
    x, y = coords((9, 9), 1.0)
    assert np.allclose(divergence(np.stack([-y, x]), 1.0), 0.0)


def test_laplacian_of_quadratic():
    x, y = coords((7, 7), 0.5)
    lap = laplacian(x ** 2 + y ** 2, 0.5)
    np.testing.assert_allclose(lap[1:-1, 1:-1], 4.0)


def test_vector_laplacian_is_per_component():
    x, y = coords((7, 7), 1.0)
    lap = laplacian(np.stack([x ** 2, 3.0 * y]), 1.0, vector=True)
    np.testing.assert_allclose(lap[0][1:-1, 1:-1], 2.0)
    np.testing.assert_allclose(lap[1][1:-1, 1:-1], 0.0, atol=1e-12)


def test_operators_do_not_mutate():
    rng = np.random.default_rng(0)
    vel = rng.normal(size=(2, 6, 6))
    before = vel.copy()
    divergence(vel, 1.0)
    laplacian(vel, 1.0, vector=True)
    gradient(vel[0], 1.0)
    np.testing.assert_array_equal(vel, before)


def test_neighbour_sum_shape():
    field = np.ones((5, 6, 7))
    total = neighbour_sum(field)
    assert total.shape == (3, 4, 5)
    assert np.all(total == 6.0)
