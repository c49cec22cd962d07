"""
``francis`` computes real Schur decompositions of general real square matrices
in Python, built on top of `jax <https://github.com/google/jax>`_. A matrix is
first reduced to upper Hessenberg form (:mod:`francis.hessenberg`), and then
the implicit double shift QR algorithm of Francis reduces it to quasi upper
triangular form (:mod:`francis.schur`). The eigenvalues can be read off the
diagonal blocks of the result (:mod:`francis.eigen`).

Double precision requires JAX's ``jax_enable_x64`` flag to be set.
"""

__version__ = "0.1.0"
__author__ = "The francis developers"
__email__ = "francis-dev@googlegroups.com"
__uri__ = "https://github.com/francis-linalg/francis"
__license__ = "BSD"
__description__ = "Real Schur decompositions with the Francis QR algorithm in JAX"

from francis import (
    eigen as eigen,
    hessenberg as hessenberg,
    schur as schur,
)
from francis.eigen import (
    eigvals as eigvals,
    schur_blocks as schur_blocks,
    schur_eigenvalues as schur_eigenvalues,
)
from francis.errors import (
    ConvergenceError as ConvergenceError,
    NonSquareMatrixError as NonSquareMatrixError,
)
from francis.hessenberg import (
    HessenbergTransformer as HessenbergTransformer,
    hessenberg_reduce as hessenberg_reduce,
)
from francis.schur import (
    SchurResult as SchurResult,
    SchurTransformer as SchurTransformer,
    ShiftInfo as ShiftInfo,
    real_schur as real_schur,
    schur_transform as schur_transform,
)
