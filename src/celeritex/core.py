r"""
The low-level linear algebra for celerite matrices. The algorithms implemented
here are based on `Foreman-Mackey et al. (2017)
<https://arxiv.org/abs/1703.09710>`_ and `Foreman-Mackey (2018)
<https://arxiv.org/abs/1801.10156>`_.

A celerite matrix :math:`K` of size :math:`N \times N` and rank :math:`J` is
represented by a diagonal :math:`a`, two :math:`N \times J` matrices :math:`U`
and :math:`V`, and an :math:`(N-1) \times J` matrix of decay factors :math:`P`:

.. math::

  K_{nm} = \left \{ \begin{array}{ll}
    a_n\quad, & \mbox{if }\, n = m \\
    \sum_j U_{nj}\,V_{mj}\,\prod_{k=m}^{n-1} P_{kj}\quad, & \mbox{if }\, n > m \\
    K_{mn}\quad, & \mbox{if }\, n < m \\
  \end{array}\right .

The factorization computed by :func:`factor` is the structured analogue of an
:math:`L\,D\,L^T` decomposition, parameterized by the pivots :math:`d`, the
factor :math:`W` and the running state :math:`S`.

Each of :func:`factor` and :func:`solve` has a hand-derived reverse mode
companion, :func:`factor_grad` and :func:`solve_grad`. These replay the forward
recurrences backwards, reconstructing the intermediate state that was not
stored on the way forward, so they must be given the exact outputs of the
forward pass. None of these functions check their inputs: the shapes must be
consistent, ``P`` must have ``N - 1`` rows, and its entries should have
magnitude ``<= 1`` and (for the gradients) be non-zero. Since the gradients
rebuild the state by dividing by ``P``, rounding errors grow roughly like
``prod(1 / P**2)`` along the series, so very strongly decaying components over
long series will give inaccurate gradients.
"""

from __future__ import annotations

__all__ = ["pivot_status", "factor", "factor_grad", "solve", "solve_grad"]

import jax
import jax.numpy as jnp

from celeritex.helpers import JAXArray


def _accumulate(init: JAXArray | None, value: JAXArray) -> JAXArray:
    if init is None:
        return value
    return init + value


def pivot_status(d: JAXArray) -> JAXArray:
    """The status code of a factorization given its pivots

    Returns ``0`` if all the pivots ``d[1:]`` are positive, and otherwise the
    index of the first row where a non-positive pivot was found. The first pivot
    is the input diagonal itself, so it is not checked.
    """
    if d.shape[0] < 2:
        return jnp.zeros((), dtype=jnp.int32)
    failed = d[1:] <= 0
    return jnp.where(jnp.any(failed), jnp.argmax(failed) + 1, 0).astype(jnp.int32)


@jax.jit
def factor(
    U: JAXArray, P: JAXArray, a: JAXArray, V: JAXArray
) -> tuple[JAXArray, JAXArray, JAXArray, JAXArray]:
    """Factorize a celerite matrix

    Args:
        U (N, J): The left low-rank factor.
        P (N-1, J): The decay factors between consecutive rows.
        a (N,): The diagonal of the matrix.
        V (N, J): The right low-rank factor.

    Returns:
        A tuple ``(status, d, W, S)``. ``status`` is ``0`` on success, or the
        first row ``n >= 1`` where the pivot was non-positive, in which case the
        rows ``n`` and above of the other outputs are meaningless. ``d`` has
        shape ``(N,)``, ``W`` has shape ``(N, J)``, and ``S`` is the ``(J, J)``
        state after the last row.
    """

    def impl(carry, data):  # type: ignore
        Sp, dp, wp = carry
        pn, un, an, vn = data
        Sn = (Sp + dp * jnp.outer(wp, wp)) * jnp.outer(pn, pn)
        tmp = un @ Sn
        dn = an - tmp @ un
        wn = (vn - tmp) / dn
        return (Sn, dn, wn), (dn, wn)

    d0 = a[0]
    w0 = V[0] / d0
    init = (jnp.zeros_like(jnp.outer(w0, w0)), d0, w0)
    (S, _, _), (d, W) = jax.lax.scan(impl, init, (P, U[1:], a[1:], V[1:]))
    d = jnp.concatenate((d0[None], d))
    W = jnp.concatenate((w0[None], W))
    return pivot_status(d), d, W, S


def factor_grad(
    U: JAXArray,
    P: JAXArray,
    d: JAXArray,
    W: JAXArray,
    S: JAXArray,
    bd: JAXArray,
    bW: JAXArray,
    bS: JAXArray,
    *,
    ba: JAXArray | None = None,
    bU: JAXArray | None = None,
    bV: JAXArray | None = None,
    bP: JAXArray | None = None,
) -> tuple[JAXArray, JAXArray, JAXArray, JAXArray]:
    """The reverse mode gradient of :func:`factor`

    Args:
        U, P, d, W, S: The inputs and outputs of a successful call to
            :func:`factor`.
        bd, bW, bS: The gradients of some scalar with respect to ``d``, ``W``,
            and ``S``.
        ba, bU, bV, bP: Optional gradients accumulated so far for ``a``, ``U``,
            ``V``, and ``P``. The contributions from this function are added to
            these.

    Returns:
        The tuple ``(ba, bU, bV, bP)``.
    """
    return _factor_grad(U, P, d, W, S, bd, bW, bS, ba, bU, bV, bP)


@jax.jit
def _factor_grad(U, P, d, W, S, bd, bW, bS, ba, bU, bV, bP):  # type: ignore
    def impl(carry, data):  # type: ignore
        bd_, bS_, S_, bw_ = carry
        un, wn, pp, wp, dp, bdp, bwp = data

        # W[n] = (V[n] - U[n] S) / d[n]
        bd_ = bd_ - wn @ bw_
        bvn = bw_
        bun = -bw_ @ S_
        bS_ = bS_ - jnp.outer(un, bw_)

        # d[n] = a[n] - U[n] S U[n]^T
        ban = bd_
        bun = bun - 2.0 * bd_ * (un @ S_)
        bS_ = bS_ - bd_ * jnp.outer(un, un)

        # S = M * (P[n-1] P[n-1]^T)
        S_ = S_ / pp[None, :]
        bpp = jnp.diag(bS_ @ S_ + S_.T @ bS_)

        # M = S + d[n-1] W[n-1]^T W[n-1]
        bS_ = pp[:, None] * bS_ * pp[None, :]
        bd_ = bdp + wp @ (bS_ @ wp)
        bw_ = bwp / dp + wp @ (bS_ + bS_.T)

        # Downdate to the state at row n-1
        S_ = S_ / pp[:, None]
        S_ = S_ - dp * jnp.outer(wp, wp)

        return (bd_, bS_, S_, bw_), (ban, bun, bvn, bpp)

    init = (bd[-1], bS, S, bW[-1] / d[-1])
    args = (U[1:], W[1:], P, W[:-1], d[:-1], bd[:-1], bW[:-1])
    (bd_, _, _, bw_), (ba_, bU_, bV_, bP_) = jax.lax.scan(
        impl, init, args, reverse=True
    )

    # The first row: W[0] = V[0] / a[0]
    bd_ = bd_ - bw_ @ W[0]
    ba_ = jnp.concatenate((bd_[None], ba_))
    bU_ = jnp.concatenate((jnp.zeros_like(bw_)[None], bU_))
    bV_ = jnp.concatenate((bw_[None], bV_))

    return (
        _accumulate(ba, ba_),
        _accumulate(bU, bU_),
        _accumulate(bV, bV_),
        _accumulate(bP, bP_),
    )


@jax.jit
def solve(
    U: JAXArray, P: JAXArray, d: JAXArray, W: JAXArray, Y: JAXArray
) -> tuple[JAXArray, JAXArray, JAXArray]:
    """Solve a linear system using a factorized celerite matrix

    Args:
        U (N, J): The left low-rank factor.
        P (N-1, J): The decay factors.
        d (N,): The pivots from a successful call to :func:`factor`.
        W (N, J): The factor from a successful call to :func:`factor`.
        Y (N, Nrhs): The right hand side.

    Returns:
        A tuple ``(Z, F, G)`` where ``Z`` is the solution ``K^-1 Y``, and ``F``
        and ``G`` are the ``(J, Nrhs)`` accumulators of the forward and backward
        sweeps. These are required by :func:`solve_grad`.
    """

    def forward(carry, data):  # type: ignore
        Fp, zp = carry
        wp, pp, un, yn = data
        Fn = pp[:, None] * (Fp + jnp.outer(wp, zp))
        zn = yn - un @ Fn
        return (Fn, zn), zn

    def backward(carry, data):  # type: ignore
        Gp, zp = carry
        un, pn, wn, zn = data
        Gn = pn[:, None] * (Gp + jnp.outer(un, zp))
        zn = zn - wn @ Gn
        return (Gn, zn), zn

    init = jnp.zeros_like(jnp.outer(W[0], Y[0]))

    (F, _), Z = jax.lax.scan(forward, (init, Y[0]), (W[:-1], P, U[1:], Y[1:]))
    Z = jnp.concatenate((Y[:1], Z))

    Z = Z / d[:, None]

    (G, _), Z_ = jax.lax.scan(
        backward, (init, Z[-1]), (U[1:], P, W[:-1], Z[:-1]), reverse=True
    )
    Z = jnp.concatenate((Z_, Z[-1:]))

    return Z, F, G


def solve_grad(
    U: JAXArray,
    P: JAXArray,
    d: JAXArray,
    W: JAXArray,
    Z: JAXArray,
    F: JAXArray,
    G: JAXArray,
    bZ: JAXArray,
    bF: JAXArray,
    bG: JAXArray,
    *,
    bU: JAXArray | None = None,
    bP: JAXArray | None = None,
    bd: JAXArray | None = None,
    bW: JAXArray | None = None,
) -> tuple[JAXArray, JAXArray, JAXArray, JAXArray, JAXArray]:
    """The reverse mode gradient of :func:`solve`

    Args:
        U, P, d, W: The inputs to :func:`solve`.
        Z, F, G: The outputs of :func:`solve`.
        bZ, bF, bG: The gradients of some scalar with respect to ``Z``, ``F``,
            and ``G``.
        bU, bP, bd, bW: Optional gradients accumulated so far for ``U``, ``P``,
            ``d``, and ``W``. The contributions from this function are added to
            these.

    Returns:
        The tuple ``(bU, bP, bd, bW, bY)``, where ``bY`` is the gradient with
        respect to the right hand side ``Y``.
    """
    return _solve_grad(U, P, d, W, Z, F, G, bZ, bF, bG, bU, bP, bd, bW)


@jax.jit
def _solve_grad(U, P, d, W, Z, F, G, bZ, bF, bG, bU, bP, bd, bW):  # type: ignore
    def backward_grad(carry, data):  # type: ignore
        bG_, G_, extra = carry
        wn, pn, un1, zn, zn1, bzn = data
        byn = bzn + extra

        # Z[n] -= W[n] G
        bwn = -(G_ @ byn)
        bG_ = bG_ - jnp.outer(wn, byn)
        zn = zn + wn @ G_

        # G = P[n] * G
        G_ = G_ / pn[:, None]
        bpn = jnp.sum(bG_ * G_, axis=1)
        bG_ = pn[:, None] * bG_

        # G += U[n+1]^T Z[n+1]
        G_ = G_ - jnp.outer(un1, zn1)
        bun1 = bG_ @ zn1
        extra = un1 @ bG_

        return (bG_, G_, extra), (byn, bwn, bpn, bun1, zn)

    def forward_grad(carry, data):  # type: ignore
        bF_, F_, extra = carry
        un, pp, wp, zp, byn = data
        byn = byn + extra

        # Z[n] -= U[n] F
        bun = -(F_ @ byn)
        bF_ = bF_ - jnp.outer(un, byn)

        # F = P[n-1] * F
        F_ = F_ / pp[:, None]
        bpp = jnp.sum(bF_ * F_, axis=1)
        bF_ = pp[:, None] * bF_

        # F += W[n-1]^T Z[n-1]
        F_ = F_ - jnp.outer(wp, zp)
        bwp = bF_ @ zp
        extra = wp @ bF_

        return (bF_, F_, extra), (byn, bun, bpp, bwp)

    zero_row = jnp.zeros_like(W[0])[None]

    init = (bG, G, jnp.zeros_like(bZ[0]))
    args = (W[:-1], P, U[1:], Z[:-1], Z[1:], bZ[:-1])
    (_, _, extra), (bY, bW1, bP1, bU1, Z_) = jax.lax.scan(backward_grad, init, args)
    bY = jnp.concatenate((bY, (bZ[-1] + extra)[None]))
    Z_ = jnp.concatenate((Z_, Z[-1:]))
    bW1 = jnp.concatenate((bW1, zero_row))
    bU1 = jnp.concatenate((zero_row, bU1))

    # Z = Z / d
    bY = bY / d[:, None]
    bd_ = -jnp.sum(Z_ * bY, axis=1)
    Z_ = Z_ * d[:, None]

    init = (bF, F, jnp.zeros_like(bZ[0]))
    args = (U[1:], P, W[:-1], Z_[:-1], bY[1:])
    (_, _, extra), (bY_, bU2, bP2, bW2) = jax.lax.scan(
        forward_grad, init, args, reverse=True
    )
    bY = jnp.concatenate(((bY[0] + extra)[None], bY_))
    bU2 = jnp.concatenate((zero_row, bU2))
    bW2 = jnp.concatenate((bW2, zero_row))

    return (
        _accumulate(bU, bU1 + bU2),
        _accumulate(bP, bP1 + bP2),
        _accumulate(bd, bd_),
        _accumulate(bW, bW1 + bW2),
        bY,
    )
