from typing import Any

import numpy as np

from francis.helpers import JAXArray

_TOLERANCES = {
    "float32": 5e-4,
    "float64": 5e-7,
    "complex64": 5e-4,
    "complex128": 5e-7,
}


def assert_allclose(
    calculated: JAXArray, expected: JAXArray, *args: Any, **kwargs: Any
):
    """Compare arrays with tolerances that default to the working precision"""
    calculated = np.asarray(calculated)
    expected = np.asarray(expected)
    dtype = np.result_type(calculated.dtype, expected.dtype, np.float32).name
    kwargs["atol"] = kwargs.get("atol", _TOLERANCES.get(dtype, 5e-7))
    kwargs["rtol"] = kwargs.get("rtol", _TOLERANCES.get(dtype, 5e-7))
    np.testing.assert_allclose(calculated, expected, *args, **kwargs)


def assert_quasi_triangular(t: JAXArray, *, atol: float = 0.0):
    """Check that ``t`` vanishes below its first subdiagonal"""
    t = np.asarray(t)
    np.testing.assert_allclose(np.tril(t, -2), 0.0, atol=atol, rtol=0)


def assert_orthogonal(p: JAXArray, *, atol: float = 1e-12):
    """Check that ``p.T @ p`` is the identity"""
    p = np.asarray(p)
    np.testing.assert_allclose(p.T @ p, np.eye(len(p)), atol=atol, rtol=0)
