# -*- coding: utf-8 -*-
# mypy: ignore-errors

import jax
import numpy as np
import pytest

from celeritex import CeleriteMatrix
from celeritex.test_utils import assert_allclose, random_system, to_dense


@pytest.fixture(params=[(1, 2), (3, 1), (40, 3)])
def system(random, request):
    N, J = request.param
    return random_system(random, N, J, nrhs=5)


def test_to_dense(system):
    a, U, V, P, _ = system
    matrix = CeleriteMatrix(a=a, U=U, V=V, P=P)
    assert matrix.shape == (len(a), len(a))
    assert_allclose(matrix.to_dense(), to_dense(a, U, V, P))


def test_matmul(system):
    a, U, V, P, Y = system
    matrix = CeleriteMatrix(a=a, U=U, V=V, P=P)
    K = to_dense(a, U, V, P)
    assert_allclose(matrix @ Y, K @ Y)
    assert_allclose(matrix.matmul(Y[:, 0]), K @ Y[:, 0])


def test_factor(system):
    a, U, V, P, Y = system
    matrix = CeleriteMatrix(a=a, U=U, V=V, P=P)
    factor = matrix.factor()
    K = to_dense(a, U, V, P)

    assert int(factor.status) == 0
    assert factor.shape == K.shape
    assert_allclose(factor.solve(Y), np.linalg.solve(K, Y))
    assert_allclose(factor.solve(Y[:, 0]), np.linalg.solve(K, Y[:, 0]))
    assert_allclose(factor.log_determinant(), np.linalg.slogdet(K)[1])

    # Solving and then multiplying is the identity
    assert_allclose(matrix @ factor.solve(Y), Y)


def test_factor_failure():
    N = 5
    matrix = CeleriteMatrix(
        a=np.array([2.0, 2.0, 0.5, 2.0, 2.0]),
        U=np.ones((N, 1)),
        V=np.ones((N, 1)),
        P=np.ones((N - 1, 1)),
    )
    assert int(matrix.factor().status) == 2


def test_first_pivot_not_checked():
    matrix = CeleriteMatrix(
        a=np.array([-1.0, 5.0]),
        U=np.ones((2, 1)),
        V=np.ones((2, 1)),
        P=np.ones((1, 1)),
    )
    assert np.any(np.linalg.eigvalsh(matrix.to_dense()) < 0)
    factor = matrix.factor()
    assert int(factor.status) == 0
    assert_allclose(factor.d, np.array([-1.0, 6.0]))


def test_as_pytree(system):
    a, U, V, P, Y = system
    matrix = CeleriteMatrix(a=a, U=U, V=V, P=P)
    expect = jax.jit(lambda m: m.factor().solve(Y))(matrix)
    flat, spec = jax.tree_util.tree_flatten(matrix)
    calc = jax.tree_util.tree_unflatten(spec, flat).factor().solve(Y)
    assert_allclose(calc, expect)


@pytest.mark.parametrize(
    "shapes",
    [
        ((5, 1), (5, 2), (5, 2), (4, 2)),
        ((5,), (4, 2), (5, 2), (4, 2)),
        ((5,), (5, 2), (5, 3), (4, 2)),
        ((5,), (5, 2), (5, 2), (5, 2)),
        ((5,), (5,), (5,), (4,)),
    ],
)
def test_invalid_shapes(shapes):
    a, U, V, P = (np.ones(s) for s in shapes)
    with pytest.raises(ValueError):
        CeleriteMatrix(a=a, U=U, V=V, P=P)
