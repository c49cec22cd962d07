# -*- coding: utf-8 -*-
# mypy: ignore-errors

import jax
import numpy as np
import pytest

jax.config.update("jax_enable_x64", True)


@pytest.fixture
def random():
    return np.random.default_rng(5968)


@pytest.fixture(params=[1, 2, 3, 5, 8, 13])
def size(request):
    return request.param


@pytest.fixture
def general_matrix(random, size):
    return random.standard_normal((size, size))


@pytest.fixture
def symmetric_matrix(random, size):
    a = random.standard_normal((size, size))
    return 0.5 * (a + a.T)


@pytest.fixture
def cyclic_permutation():
    return np.array(
        [
            [0.0, 1.0, 0.0],
            [0.0, 0.0, 1.0],
            [1.0, 0.0, 0.0],
        ]
    )
