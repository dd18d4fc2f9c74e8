# -*- coding: utf-8 -*-
# mypy: ignore-errors

import jax.numpy as jnp
import numpy as np
import pytest

from celeritex import terms
from celeritex.test_utils import assert_allclose


@pytest.fixture
def data(random):
    x1 = np.sort(random.uniform(-3, 3, 50))
    x2 = np.sort(random.uniform(-5, 5, 45))
    return x1, x2


def _complex_kernel(tau, a, b, c, d):
    tau = tau[:, :, None]
    return jnp.sum(
        jnp.exp(-c * tau) * (a * jnp.cos(d * tau) + b * jnp.sin(d * tau)),
        axis=-1,
    )


@pytest.mark.parametrize(
    "args",
    [
        (1.5, 0.8, 2.4, 1.3),
        (
            jnp.array([1.5, 1.7]),
            jnp.array([0.8, 0.7]),
            jnp.array([2.4, 2.6]),
            jnp.array([1.3, 0.9]),
        ),
    ],
)
def test_complex_term(data, args):
    x1, x2 = data
    term = terms.ComplexTerm(*args)
    tau = jnp.abs(x1[:, None] - x2[None, :])
    assert_allclose(term(x1, x2), _complex_kernel(tau, *args), atol=1e-6)

    matrix = term.to_matrix(x1, diag=0.1)
    assert matrix.U.shape == (len(x1), 2 * len(jnp.atleast_1d(args[0])))
    assert_allclose(matrix.to_dense(), term(x1) + 0.1 * np.eye(len(x1)))

    # Check that invalid (multivariate) data raises
    with pytest.raises(ValueError):
        term.to_matrix(jnp.repeat(x1[:, None], 2, -1))


def test_real_term(data):
    x1, x2 = data
    term = terms.RealTerm(a=jnp.array([1.2, 0.3]), c=jnp.array([0.5, 2.1]))
    tau = jnp.abs(x1[:, None] - x2[None, :])
    expected = 1.2 * jnp.exp(-0.5 * tau) + 0.3 * jnp.exp(-2.1 * tau)
    assert_allclose(term(x1, x2), expected)

    matrix = term.to_matrix(x1)
    assert matrix.U.shape == (len(x1), 2)
    assert_allclose(matrix.to_dense(), term(x1))


def test_term_sum(data):
    x1, _ = data
    real = terms.RealTerm(a=0.7, c=0.3)
    cplx = terms.ComplexTerm(a=1.1, b=0.1, c=0.9, d=2.3)
    term = real + cplx + real
    assert isinstance(term, terms.TermSum)
    assert len(term.terms) == 3

    assert_allclose(term(x1), 2 * real(x1) + cplx(x1))
    matrix = term.to_matrix(x1, diag=jnp.full(len(x1), 0.5))
    assert matrix.U.shape == (len(x1), 4)
    assert_allclose(matrix.to_dense(), term(x1) + 0.5 * np.eye(len(x1)))


def test_factor_terms(data):
    x1, _ = data
    term = terms.RealTerm(a=0.7, c=0.3) + terms.ComplexTerm(
        a=1.1, b=0.1, c=0.9, d=2.3
    )
    y = jnp.sin(x1)
    K = term(x1) + 0.1 * np.eye(len(x1))
    factor = term.to_matrix(x1, diag=0.1).factor()
    assert int(factor.status) == 0
    assert_allclose(factor.solve(y), np.linalg.solve(K, y))


def test_invalid_coefficients():
    with pytest.raises(ValueError):
        terms.RealTerm(a=jnp.ones((2, 2)), c=1.0)
    with pytest.raises(ValueError):
        terms.ComplexTerm(a=jnp.ones((2, 2)), b=0.0, c=1.0, d=1.0)
