"""
Containers for celerite matrices and their factorizations. These are thin
:class:`equinox.Module` wrappers around the kernels in :mod:`celeritex.core`,
which check shapes at construction time and expose the usual matrix
operations. Everything is differentiable, with gradients provided by the
hand-derived rules in :mod:`celeritex.ops`.
"""

from __future__ import annotations

__all__ = ["CeleriteMatrix", "CeleriteFactor"]

from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp

from celeritex import core, ops
from celeritex.helpers import JAXArray, handle_matvec_shapes


class CeleriteMatrix(eqx.Module):
    """A symmetric celerite matrix

    Args:
        a (N,): The diagonal elements.
        U (N, J): The left low-rank factor.
        V (N, J): The right low-rank factor.
        P (N-1, J): The decay factors between consecutive rows. These should
            have magnitude ``<= 1``.
    """

    a: JAXArray
    U: JAXArray
    V: JAXArray
    P: JAXArray

    def __check_init__(self) -> None:
        if jnp.ndim(self.a) != 1:
            raise ValueError("The diagonal must be a 1-D array")
        N = jnp.shape(self.a)[0]
        if N < 1:
            raise ValueError("A celerite matrix must have at least one row")
        if jnp.ndim(self.U) != 2 or jnp.shape(self.U)[0] != N:
            raise ValueError(
                f"Invalid shape for U: expected ({N}, J), got {jnp.shape(self.U)}"
            )
        J = jnp.shape(self.U)[1]
        if jnp.shape(self.V) != (N, J):
            raise ValueError(
                f"Invalid shape for V: expected {(N, J)}, got {jnp.shape(self.V)}"
            )
        if jnp.shape(self.P) != (N - 1, J):
            raise ValueError(
                f"Invalid shape for P: expected {(N - 1, J)}, "
                f"got {jnp.shape(self.P)}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        n = self.a.shape[0]
        return (n, n)

    def to_dense(self) -> JAXArray:
        """Render this representation to a dense matrix

        This implementation is not optimized and should really only ever be used
        for testing purposes.
        """
        return self.matmul(jnp.eye(self.shape[0], dtype=self.a.dtype))

    @jax.jit
    @handle_matvec_shapes
    def matmul(self, x: JAXArray) -> JAXArray:
        """The dot product of this matrix with a dense vector or matrix

        Args:
            x (N, ...): A matrix or vector with leading dimension matching this
                matrix.
        """

        def lower(f, data):  # type: ignore
            vp, pp, un, xp = data
            fn = pp[:, None] * (f + jnp.outer(vp, xp))
            return fn, un @ fn

        def upper(f, data):  # type: ignore
            un, pp, vp, xn = data
            fp = pp[:, None] * (f + jnp.outer(un, xn))
            return fp, vp @ fp

        init = jnp.zeros_like(jnp.outer(self.U[0], x[0]))
        _, lo = jax.lax.scan(
            lower, init, (self.V[:-1], self.P, self.U[1:], x[:-1])
        )
        _, up = jax.lax.scan(
            upper, init, (self.U[1:], self.P, self.V[:-1], x[1:]), reverse=True
        )
        zero = jnp.zeros_like(x[:1])
        return (
            self.a[:, None] * x
            + jnp.concatenate((zero, lo))
            + jnp.concatenate((up, zero))
        )

    def factor(self) -> CeleriteFactor:
        """The structured factorization of this matrix

        Check :attr:`CeleriteFactor.status` before using the result: a non-zero
        value means that the matrix is not numerically positive definite. The
        first pivot, ``d[0] = a[0]``, is not checked, so a zero status only
        guarantees positive definiteness when ``a[0] > 0``.
        """
        d, W, S = ops.factor(self.U, self.P, self.a, self.V)
        return CeleriteFactor(U=self.U, P=self.P, d=d, W=W, S=S)

    def __matmul__(self, other: Any) -> Any:
        return self.matmul(other)


class CeleriteFactor(eqx.Module):
    """The factorization of a :class:`CeleriteMatrix`

    Args:
        U (N, J): The left low-rank factor of the original matrix.
        P (N-1, J): The decay factors of the original matrix.
        d (N,): The pivots.
        W (N, J): The factored right low-rank factor.
        S (J, J): The final state of the factorization.
    """

    U: JAXArray
    P: JAXArray
    d: JAXArray
    W: JAXArray
    S: JAXArray

    @property
    def shape(self) -> tuple[int, int]:
        n = self.d.shape[0]
        return (n, n)

    @property
    def status(self) -> JAXArray:
        """``0`` on success, otherwise the first row with a non-positive pivot

        Only rows ``1`` through ``N - 1`` are checked. The first pivot is
        ``a[0]`` itself and callers must make sure that it is positive.
        """
        return core.pivot_status(self.d)

    def log_determinant(self) -> JAXArray:
        """The log determinant of the original matrix"""
        return jnp.sum(jnp.log(self.d))

    @handle_matvec_shapes
    def solve(self, y: JAXArray) -> JAXArray:
        """Solve a linear system with the original matrix

        If the original matrix is called ``K``, this solves ``K @ x = y`` for
        ``x`` given ``y``.

        Args:
            y (N, ...): A matrix or vector with leading dimension matching this
                matrix.
        """
        return ops.solve(self.U, self.P, self.d, self.W, y)[0]
