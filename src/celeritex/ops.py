"""
Differentiable versions of the celerite kernels. The reverse mode rules for
these operations are the hand-derived adjoints from :mod:`celeritex.core`, so
``jax.grad`` never differentiates through the recurrences themselves.
"""

from __future__ import annotations

__all__ = ["factor", "solve"]

import jax

from celeritex import core
from celeritex.helpers import JAXArray


@jax.custom_vjp
def factor(
    U: JAXArray, P: JAXArray, a: JAXArray, V: JAXArray
) -> tuple[JAXArray, JAXArray, JAXArray]:
    """Factorize a celerite matrix, returning ``(d, W, S)``

    See :func:`celeritex.core.factor` for details. The status code is not
    returned here; use :func:`celeritex.core.pivot_status` on ``d``.
    """
    _, d, W, S = core.factor(U, P, a, V)
    return d, W, S


def _factor_fwd(U, P, a, V):  # type: ignore
    _, d, W, S = core.factor(U, P, a, V)
    return (d, W, S), (U, P, d, W, S)


def _factor_bwd(res, g):  # type: ignore
    U, P, d, W, S = res
    bd, bW, bS = g
    ba, bU, bV, bP = core.factor_grad(U, P, d, W, S, bd, bW, bS)
    return bU, bP, ba, bV


factor.defvjp(_factor_fwd, _factor_bwd)


@jax.custom_vjp
def solve(
    U: JAXArray, P: JAXArray, d: JAXArray, W: JAXArray, Y: JAXArray
) -> tuple[JAXArray, JAXArray, JAXArray]:
    """Solve a factorized celerite system, returning ``(Z, F, G)``

    See :func:`celeritex.core.solve` for details.
    """
    return core.solve(U, P, d, W, Y)


def _solve_fwd(U, P, d, W, Y):  # type: ignore
    Z, F, G = core.solve(U, P, d, W, Y)
    return (Z, F, G), (U, P, d, W, Z, F, G)


def _solve_bwd(res, g):  # type: ignore
    U, P, d, W, Z, F, G = res
    bZ, bF, bG = g
    bU, bP, bd, bW, bY = core.solve_grad(U, P, d, W, Z, F, G, bZ, bF, bG)
    return bU, bP, bd, bW, bY


solve.defvjp(_solve_fwd, _solve_bwd)
