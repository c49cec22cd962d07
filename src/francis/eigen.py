"""
Eigenvalues of general real matrices, read off the diagonal blocks of the real
Schur form computed by :class:`francis.schur.SchurTransformer`.
"""

from __future__ import annotations

__all__ = ["eigvals", "schur_blocks", "schur_eigenvalues"]

from typing import Any

import jax
import jax.numpy as jnp
import numpy as np

from francis.helpers import JAXArray
from francis.schur import MAX_ITERATIONS, SchurTransformer

# Subdiagonal entries at or below this magnitude separate diagonal blocks
BLOCK_TOLERANCE = 1e-12


def _block_starts(sub: JAXArray) -> JAXArray:
    # A large subdiagonal entry opens a 2x2 block, unless its row already
    # closes the previous one
    def step(prev, coupled):  # type: ignore
        start = coupled & ~prev
        return start, start

    _, starts = jax.lax.scan(step, jnp.zeros((), dtype=bool), sub)
    return starts


@jax.jit
def schur_eigenvalues(t: JAXArray, *, tol: float = BLOCK_TOLERANCE) -> JAXArray:
    """Compute the eigenvalues encoded in a quasi upper triangular matrix

    A ``1 x 1`` diagonal block contributes its entry. A ``2 x 2`` block at rows
    ``i, i + 1`` contributes ``x + p ± sqrt(p^2 + t[i + 1, i] t[i, i + 1])``
    with ``x = t[i + 1, i + 1]`` and ``p = (t[i, i] - x) / 2``: a complex
    conjugate pair (positive imaginary part first) when the discriminant is
    negative and a pair of real values otherwise.

    Args:
        t (n, n): A quasi upper triangular matrix, usually the ``T`` factor of
            a real Schur decomposition.
        tol: Subdiagonal entries with magnitude at most ``tol`` are treated as
            zero.

    Returns:
        The ``n`` eigenvalues as a complex array, in diagonal order.
    """
    n = t.shape[0]
    dtype = jnp.result_type(t.dtype, jnp.complex64)
    if n == 0:
        return jnp.zeros(0, dtype=dtype)

    diag = jnp.diagonal(t)
    sub = jnp.append(jnp.diagonal(t, -1), 0.0)
    sup = jnp.append(jnp.diagonal(t, 1), 0.0)
    starts = _block_starts(jnp.abs(sub) > tol)

    x = jnp.append(diag[1:], 0.0)
    p = 0.5 * (diag - x)
    disc = p * p + sub * sup
    root = jnp.sqrt(jnp.abs(disc))
    offset = jnp.where(disc < 0, 1j * root, root)
    center = x + p

    closes = jnp.append(False, starts[:-1])
    return jnp.where(
        starts,
        center + offset,
        jnp.where(closes, jnp.roll(center - offset, 1), diag),
    ).astype(dtype)


def schur_blocks(t: Any, *, tol: float = BLOCK_TOLERANCE) -> list[tuple[int, int]]:
    """List the diagonal blocks of a quasi upper triangular matrix

    Args:
        t (n, n): A quasi upper triangular matrix.
        tol: Subdiagonal entries with magnitude at most ``tol`` are treated as
            zero.

    Returns:
        The ``(start, size)`` of each diagonal block, where ``size`` is 1 or 2.
    """
    t = np.asarray(t)
    n = t.shape[0]
    coupled = np.abs(np.diagonal(t, -1)) > tol
    blocks = []
    i = 0
    while i < n:
        if i < n - 1 and coupled[i]:
            blocks.append((i, 2))
            i += 2
        else:
            blocks.append((i, 1))
            i += 1
    return blocks


def eigvals(a: Any, *, max_iterations: int = MAX_ITERATIONS) -> JAXArray:
    """Compute the eigenvalues of a general real square matrix

    For example, a rotation by a quarter turn has the eigenvalues ``±i``:

    .. code-block:: python

        >>> import numpy as np
        >>> from francis import eigvals
        >>> print(np.asarray(eigvals([[0.0, -1.0], [1.0, 0.0]])))
        [0.+1.j 0.-1.j]

    Args:
        a (n, n): The matrix.
        max_iterations: The maximum number of QR steps allowed on any single
            block before giving up.

    Returns:
        The eigenvalues as a complex array, ordered as they appear along the
        diagonal of the Schur form.

    Raises:
        NonSquareMatrixError: If ``a`` is not square.
        ConvergenceError: If the QR iteration does not converge.
    """
    transformer = SchurTransformer(a, max_iterations=max_iterations)
    return schur_eigenvalues(transformer.t())
