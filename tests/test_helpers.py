# mypy: ignore-errors

import jax.numpy as jnp
import numpy as np
import pytest

from francis.errors import ConvergenceError, NonSquareMatrixError
from francis.helpers import as_float_matrix, check_square


def test_as_float_matrix():
    assert as_float_matrix(np.eye(2, dtype=int)).dtype == jnp.float64
    assert as_float_matrix(np.eye(2, dtype=np.float32)).dtype == jnp.float32


def test_check_square():
    assert check_square(np.zeros((4, 4))) == 4
    with pytest.raises(NonSquareMatrixError) as excinfo:
        check_square(np.zeros((3, 2)))
    assert excinfo.value.rows == 3
    assert excinfo.value.columns == 2
    assert isinstance(excinfo.value, ValueError)
    with pytest.raises(ValueError):
        check_square(np.zeros((2, 2, 2)))


def test_convergence_error():
    error = ConvergenceError(100, 4)
    assert error.max_iterations == 100
    assert error.index == 4
    assert "100" in str(error)
    assert isinstance(ConvergenceError(7), RuntimeError)
