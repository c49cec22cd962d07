from __future__ import annotations

__all__ = ["JAXArray", "as_float_matrix", "check_square"]

from typing import Any

import jax
import jax.numpy as jnp

from francis.errors import NonSquareMatrixError

JAXArray = jax.Array


def as_float_matrix(a: Any) -> JAXArray:
    """Convert an array-like to a JAX array with a floating point dtype

    Integer and boolean inputs are promoted to the default floating point type,
    which is ``float64`` when ``jax_enable_x64`` is set and ``float32``
    otherwise.
    """
    a = jnp.asarray(a)
    if not jnp.issubdtype(a.dtype, jnp.floating):
        a = a.astype(jnp.result_type(float))
    return a


def check_square(a: Any) -> int:
    """The size of a square matrix, or an error for any other shape"""
    shape = jnp.shape(a)
    if len(shape) != 2:
        raise ValueError(
            "Invalid matrix shape: " f"expected ndim = 2, got ndim={len(shape)}"
        )
    rows, columns = shape
    if rows != columns:
        raise NonSquareMatrixError(rows, columns)
    return rows
