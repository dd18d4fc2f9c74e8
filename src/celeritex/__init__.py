"""
``celeritex`` implements the structured linear algebra for *celerite* matrices,
the covariance matrices of scalable Gaussian Process models for 1-D data, built
on top of `jax <https://github.com/google/jax>`_. The low-level kernels in
:mod:`celeritex.core` factorize and solve these matrices in linear time, and
come with hand-derived reverse mode gradients that are registered with ``jax``
in :mod:`celeritex.ops`. Most users will interact with the library through the
:class:`GaussianProcess` object and the terms in :mod:`celeritex.terms`.
"""

from celeritex import core as core, ops as ops, terms as terms
from celeritex.gp import GaussianProcess as GaussianProcess
from celeritex.matrix import (
    CeleriteFactor as CeleriteFactor,
    CeleriteMatrix as CeleriteMatrix,
)

__version__ = "0.1.0"
__uri__ = "https://github.com/celeritex/celeritex"
__author__ = "celeritex developers"
__email__ = "celeritex@users.noreply.github.com"
__license__ = "BSD"
__description__ = "Linear-time celerite matrix algebra with hand-derived gradients"
