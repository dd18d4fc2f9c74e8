"""
Celerite terms are the kernel functions that can be evaluated using the
structured linear algebra in :mod:`celeritex.core`. Each term is a sum of
exponentially decaying components, and it knows how to build the ``(a, U, V,
P)`` representation of its covariance matrix for sorted 1-D coordinates.
Terms can be added together to build more expressive models:

.. code-block:: python

    term = RealTerm(a=1.0, c=0.5) + ComplexTerm(a=0.8, b=0.1, c=1.2, d=3.4)
"""

from __future__ import annotations

__all__ = ["Term", "TermSum", "RealTerm", "ComplexTerm"]

from abc import abstractmethod

import equinox as eqx
import jax
import jax.numpy as jnp

from celeritex.helpers import JAXArray
from celeritex.matrix import CeleriteMatrix


class Term(eqx.Module):
    """The base class for all celerite terms

    Subclasses implement the ``left``, ``right``, and ``decay`` vectors for the
    components of the term, such that the covariance between two coordinates
    ``t1 >= t2`` is ``left(t1) @ (decay(t1 - t2) * right(t2))``.
    """

    @abstractmethod
    def left(self, t: JAXArray) -> JAXArray:
        """The left (``U``) elements for a scalar coordinate"""
        raise NotImplementedError

    @abstractmethod
    def right(self, t: JAXArray) -> JAXArray:
        """The right (``V``) elements for a scalar coordinate"""
        raise NotImplementedError

    @abstractmethod
    def decay(self, dt: JAXArray) -> JAXArray:
        """The decay (``P``) elements for a non-negative coordinate step"""
        raise NotImplementedError

    def evaluate(self, t1: JAXArray, t2: JAXArray) -> JAXArray:
        """Evaluate the kernel at a pair of scalar coordinates"""
        if jnp.ndim(t1) != 0 or jnp.ndim(t2) != 0:
            raise ValueError("Only 1D inputs are supported")
        return jnp.where(
            t1 >= t2,
            self.left(t1) @ (self.decay(t1 - t2) * self.right(t2)),
            self.left(t2) @ (self.decay(t2 - t1) * self.right(t1)),
        )

    def __call__(self, t1: JAXArray, t2: JAXArray | None = None) -> JAXArray:
        """Evaluate the dense kernel matrix between two sets of coordinates"""
        if t2 is None:
            t2 = t1
        return jax.vmap(
            jax.vmap(self.evaluate, in_axes=(None, 0)), in_axes=(0, None)
        )(t1, t2)

    def to_matrix(
        self, t: JAXArray, diag: JAXArray | None = None
    ) -> CeleriteMatrix:
        """The celerite matrix representation of this kernel

        Args:
            t (N,): The sorted input coordinates.
            diag (N,): Optionally, a diagonal to add to the matrix, often used
                to capture measurement uncertainty. This can be a scalar.
        """
        t = jnp.asarray(t)
        if jnp.ndim(t) != 1:
            raise ValueError("Only 1D inputs are supported")
        U = jax.vmap(self.left)(t)
        V = jax.vmap(self.right)(t)
        P = jax.vmap(self.decay)(jnp.diff(t))
        a = jnp.sum(U * V, axis=1)
        if diag is not None:
            a += diag
        return CeleriteMatrix(a=a, U=U, V=V, P=P)

    def __add__(self, other: Term) -> Term:
        return TermSum(self, other)


class TermSum(Term):
    """A sum of celerite terms"""

    terms: tuple[Term, ...]

    def __init__(self, *terms: Term):
        flat: list[Term] = []
        for term in terms:
            if isinstance(term, TermSum):
                flat.extend(term.terms)
            else:
                flat.append(term)
        self.terms = tuple(flat)

    def left(self, t: JAXArray) -> JAXArray:
        return jnp.concatenate([term.left(t) for term in self.terms])

    def right(self, t: JAXArray) -> JAXArray:
        return jnp.concatenate([term.right(t) for term in self.terms])

    def decay(self, dt: JAXArray) -> JAXArray:
        return jnp.concatenate([term.decay(dt) for term in self.terms])


class RealTerm(Term):
    r"""A sum of exponentially decaying components

    .. math::

        k(\tau) = \sum_j a_j\,\exp(-c_j\,\tau)

    Args:
        a: The amplitudes. A scalar or 1-D array.
        c: The decay rates. A scalar or 1-D array, broadcastable with ``a``.
    """

    a: JAXArray
    c: JAXArray

    def __init__(self, a: JAXArray, c: JAXArray):
        a, c = jnp.broadcast_arrays(a, c)
        if jnp.ndim(a) > 1:
            raise ValueError("Only scalar or 1-D coefficients are supported")
        self.a = jnp.atleast_1d(a)
        self.c = jnp.atleast_1d(c)

    def left(self, t: JAXArray) -> JAXArray:
        return self.a * jnp.ones_like(t)

    def right(self, t: JAXArray) -> JAXArray:
        return jnp.ones_like(self.a) * jnp.ones_like(t)

    def decay(self, dt: JAXArray) -> JAXArray:
        return jnp.exp(-self.c * dt)


class ComplexTerm(Term):
    r"""A sum of exponentially decaying, oscillating components

    .. math::

        k(\tau) = \sum_j \exp(-c_j\,\tau)\,\left[a_j\,\cos(d_j\,\tau) +
            b_j\,\sin(d_j\,\tau)\right]

    Each component contributes two columns to the low-rank factors. The kernel
    is only positive definite when ``a * c >= |b * d|``.

    Args:
        a, b, c, d: The coefficients. Each is a scalar or 1-D array, and they
            must all be broadcastable with each other.
    """

    a: JAXArray
    b: JAXArray
    c: JAXArray
    d: JAXArray

    def __init__(self, a: JAXArray, b: JAXArray, c: JAXArray, d: JAXArray):
        a, b, c, d = jnp.broadcast_arrays(a, b, c, d)
        if jnp.ndim(a) > 1:
            raise ValueError("Only scalar or 1-D coefficients are supported")
        self.a = jnp.atleast_1d(a)
        self.b = jnp.atleast_1d(b)
        self.c = jnp.atleast_1d(c)
        self.d = jnp.atleast_1d(d)

    def left(self, t: JAXArray) -> JAXArray:
        arg = self.d * t
        cos = jnp.cos(arg)
        sin = jnp.sin(arg)
        return jnp.concatenate(
            (self.a * cos + self.b * sin, self.a * sin - self.b * cos)
        )

    def right(self, t: JAXArray) -> JAXArray:
        arg = self.d * t
        return jnp.concatenate((jnp.cos(arg), jnp.sin(arg)))

    def decay(self, dt: JAXArray) -> JAXArray:
        factor = jnp.exp(-self.c * dt)
        return jnp.concatenate((factor, factor))
