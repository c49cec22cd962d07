"""
Orthogonal reduction of a general real square matrix to upper Hessenberg form.
This is the usual first stage of QR based eigenvalue algorithms: the Hessenberg
structure is preserved by the QR iteration, which makes each step ``O(n^2)``
instead of ``O(n^3)``.

The reduction uses Householder reflectors built column by column, following the
``orthes`` procedure from EISPACK (and its descendant in the JAMA library), with
the sub-column scaled by its L1 norm before the reflector is formed.
"""

from __future__ import annotations

__all__ = ["HessenbergTransformer", "hessenberg_reduce"]

from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp

from francis.helpers import JAXArray, as_float_matrix, check_square


@jax.jit
def hessenberg_reduce(a: JAXArray) -> tuple[JAXArray, JAXArray]:
    """Reduce a square matrix to upper Hessenberg form

    Args:
        a (n, n): The matrix to reduce.

    Returns:
        A tuple ``(H, P)`` where ``H`` is upper Hessenberg and ``P`` is
        orthogonal with ``a = P @ H @ P.T``.
    """
    n = a.shape[0]
    p = jnp.eye(n, dtype=a.dtype)
    if n < 3:
        return a, p
    rows = jnp.arange(n)

    def step(m, carry):  # type: ignore
        h, p = carry
        below = rows >= m
        column = jnp.where(below, h[:, m - 1], 0.0)
        scale = jnp.sum(jnp.abs(column))

        def reflect(carry):  # type: ignore
            h, p = carry
            ort = column / scale
            norm = jnp.sum(jnp.square(ort))
            g = jnp.sqrt(norm)
            g = jnp.where(ort[m] > 0, -g, g)
            norm = norm - ort[m] * g
            ort = ort.at[m].add(-g)

            # Apply Q = I - u u^T / norm on both sides and accumulate it into P
            h = h - jnp.outer(ort, ort @ h) / norm
            h = h - jnp.outer(h @ ort, ort) / norm
            p = p - jnp.outer(p @ ort, ort) / norm

            h = h.at[:, m - 1].set(jnp.where(below, 0.0, h[:, m - 1]))
            h = h.at[m, m - 1].set(scale * g)
            return h, p

        return jax.lax.cond(scale == 0.0, lambda carry: carry, reflect, (h, p))

    h, p = jax.lax.fori_loop(1, n - 1, step, (a, p))
    return jnp.triu(h, -1), p


class HessenbergTransformer(eqx.Module):
    """The Hessenberg form of a general real matrix

    The decomposition is ``A = P @ H @ P.T`` where ``H`` is upper Hessenberg
    (zero below the first subdiagonal) and ``P`` is orthogonal.

    Args:
        matrix: The square matrix to transform.

    Raises:
        NonSquareMatrixError: If ``matrix`` is not square.
    """

    h_value: JAXArray
    p_value: JAXArray

    def __init__(self, matrix: Any):
        check_square(matrix)
        self.h_value, self.p_value = hessenberg_reduce(as_float_matrix(matrix))

    def h(self) -> JAXArray:
        """The upper Hessenberg matrix"""
        return self.h_value

    def p(self) -> JAXArray:
        """The orthogonal transform"""
        return self.p_value

    def pt(self) -> JAXArray:
        """The transpose of the orthogonal transform"""
        return self.p_value.transpose()
