from __future__ import annotations

__all__ = ["GaussianProcess"]

from typing import Callable

import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np

from celeritex.helpers import JAXArray
from celeritex.matrix import CeleriteFactor, CeleriteMatrix
from celeritex.terms import Term


class GaussianProcess(eqx.Module):
    """A Gaussian Process model for 1-D data with a celerite kernel

    Args:
        term (Term): The kernel function.
        t (JAXArray): The sorted input coordinates, with shape ``(N_data,)``.
        diag (JAXArray, optional): The value to add to the diagonal of the
            covariance matrix, often used to capture measurement uncertainty.
            This should be a scalar or have the shape ``(N_data,)``. If not
            provided, this will default to the square root of machine epsilon
            for the data type being used.
        mean (Callable, optional): A callable or constant mean function that
            will be evaluated with ``t`` as input.
        check_sorted (bool, optional): If ``True``, check that the input
            coordinates are sorted and throw an error if they are not. This
            can introduce a runtime overhead.
    """

    num_data: int = eqx.field(static=True)
    term: Term
    t: JAXArray
    mean: JAXArray
    matrix: CeleriteMatrix
    factor: CeleriteFactor

    def __init__(
        self,
        term: Term,
        t: JAXArray,
        *,
        diag: JAXArray | None = None,
        mean: Callable[[JAXArray], JAXArray] | JAXArray | None = None,
        check_sorted: bool = False,
    ):
        t = jnp.asarray(t)
        if t.ndim != 1:
            raise ValueError(
                "Invalid coordinate shape: " f"expected ndim = 1, got ndim={t.ndim}"
            )
        if check_sorted:
            jax.debug.callback(_check_sorted, t)

        self.term = term
        self.t = t
        self.num_data = t.shape[0]

        if mean is None:
            mean = jnp.zeros(t.shape, dtype=jnp.result_type(t, float))
        elif callable(mean):
            mean = jax.vmap(mean)(t)
        mean = jnp.asarray(mean)
        mean = mean.astype(jnp.result_type(mean, float))
        self.mean = jnp.broadcast_to(mean, t.shape)

        diag = _default_diag(self.mean) if diag is None else diag
        self.matrix = term.to_matrix(t, jnp.broadcast_to(diag, t.shape))
        self.factor = self.matrix.factor()

    @property
    def variance(self) -> JAXArray:
        return self.matrix.a

    @property
    def covariance(self) -> JAXArray:
        return self.matrix.to_dense()

    @property
    def status(self) -> JAXArray:
        """``0`` if the covariance matrix was factorized successfully"""
        return self.factor.status

    def apply_inverse(self, y: JAXArray) -> JAXArray:
        """Apply the inverse of the covariance matrix to a vector or matrix"""
        return self.factor.solve(y)

    def log_probability(self, y: JAXArray) -> JAXArray:
        """Compute the log probability of this multivariate normal

        Args:
            y (JAXArray): The observed data. This should have the shape
                ``(N_data,)``, where ``N_data`` was the size of the ``t``
                data provided when instantiating this object.

        Returns:
            The marginal log probability of this multivariate normal model,
            evaluated at ``y``. If the covariance matrix is not positive
            definite, this is ``-inf``.
        """
        r = y - self.mean
        alpha = self.factor.solve(r)
        loglike = -0.5 * (
            r @ alpha
            + self.factor.log_determinant()
            + self.num_data * np.log(2 * np.pi)
        )
        ok = jnp.logical_and(self.status == 0, jnp.isfinite(loglike))
        return jnp.where(ok, loglike, -jnp.inf)


def _default_diag(reference: JAXArray) -> JAXArray:
    """Default to adding some amount of jitter to the diagonal, just in case,
    we use sqrt(eps) for the dtype of the mean because that seems to
    give sensible results in general.
    """
    return jnp.sqrt(jnp.finfo(reference.dtype).eps)


def _check_sorted(t: JAXArray) -> None:
    if np.any(np.diff(t) < 0.0):
        raise ValueError("Input coordinates must be sorted")
