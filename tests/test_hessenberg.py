# mypy: ignore-errors

import jax.numpy as jnp
import numpy as np
import pytest

from francis.errors import NonSquareMatrixError
from francis.hessenberg import HessenbergTransformer, hessenberg_reduce
from francis.test_utils import (
    assert_allclose,
    assert_orthogonal,
    assert_quasi_triangular,
)


def test_reconstruction(general_matrix):
    h, p = hessenberg_reduce(jnp.asarray(general_matrix))
    assert_allclose(p @ h @ p.T, general_matrix, atol=1e-12)
    assert_orthogonal(p)
    assert_quasi_triangular(h)


def test_symmetric_is_tridiagonal(symmetric_matrix):
    h, _ = hessenberg_reduce(jnp.asarray(symmetric_matrix))
    h = np.asarray(h)
    assert_allclose(np.triu(h, 2), 0.0, atol=1e-12)


def test_diagonal():
    a = jnp.diag(jnp.array([1.0, -2.0, 3.5, 0.5]))
    h, p = hessenberg_reduce(a)
    assert_allclose(h, a, atol=0, rtol=0)
    assert_allclose(p, np.eye(4), atol=0, rtol=0)


def test_already_hessenberg_keeps_eigenvalues(random):
    a = np.triu(random.standard_normal((6, 6)), -1)
    h, p = hessenberg_reduce(jnp.asarray(a))
    assert_allclose(p @ h @ p.T, a, atol=1e-12)
    assert_allclose(
        np.sort_complex(np.linalg.eigvals(np.asarray(h))),
        np.sort_complex(np.linalg.eigvals(a)),
        atol=1e-10,
    )


def test_transformer(general_matrix):
    transformer = HessenbergTransformer(general_matrix)
    h, p = hessenberg_reduce(jnp.asarray(general_matrix))
    assert_allclose(transformer.h(), h)
    assert_allclose(transformer.p(), p)
    assert_allclose(transformer.pt(), p.T)


def test_non_square():
    with pytest.raises(NonSquareMatrixError):
        HessenbergTransformer(np.ones((2, 3)))
