import numpy as np
import pytest

from oavi import fit
from oavi.metrics import coefficient_sparsity, gram_error, inverse_error, purge_violations, vanishing_extents


def test_gram_and_inverse_errors():
    rng = np.random.default_rng(0)
    A = rng.standard_normal((10, 3))
    G = A.T @ A
    assert gram_error(A, G) == pytest.approx(0.0, abs=1e-14)
    assert gram_error(A, G + 10.0) > 0.5
    assert inverse_error(G, np.linalg.inv(G)) < 1e-10


def test_vanishing_extents():
    G = np.array([[1.0, 0.0], [-1.0, 2.0]])
    np.testing.assert_allclose(vanishing_extents(G), [1.0, 2.0])
    assert vanishing_extents(np.zeros((0, 3))).shape == (3,)


def test_purge_violations():
    terms = np.array([[2, 1, 0], [0, 1, 2]])
    assert purge_violations(terms, np.array([[1], [1]])) == 1
    assert purge_violations(terms, np.array([[3], [0]])) == 0


def test_coefficient_sparsity_bounds():
    X = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
    _, basis = fit(X, psi=0.1, tau=10, oracle="ABM")
    sparsity = coefficient_sparsity(basis)
    assert 0.0 <= sparsity <= 1.0
    # x^2 - x has a zero coefficient on y.
    assert sparsity > 0.0
