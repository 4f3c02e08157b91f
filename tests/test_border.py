import numpy as np
import pytest

from oavi.border import construct_border, degree_one_terms, divisible, evaluate_terms, purge

SQUARE = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])


def test_first_border_is_degree_one_monomials():
    raw, raw_eval, kept = construct_border(None, None, SQUARE)
    np.testing.assert_array_equal(raw, np.eye(2, dtype=np.int64))
    np.testing.assert_array_equal(raw_eval, SQUARE)
    assert kept.is_identity()


def test_first_border_on_single_point():
    X = np.array([[2.0, 3.0, 5.0]])
    raw, raw_eval, kept = construct_border(None, None, X)
    assert raw.shape == (3, 3)
    assert raw_eval.shape == (1, 3)
    assert len(kept) == 3


def test_degree_two_border_is_deduplicated_and_sorted():
    deg1, deg1_eval, _ = construct_border(None, None, SQUARE)
    raw, raw_eval, kept = construct_border(deg1, deg1_eval, SQUARE, deg1, deg1_eval)
    assert raw.shape == (2, 4)
    np.testing.assert_array_equal(raw[:, 1], deg1[:, 0] + deg1[:, 1])
    np.testing.assert_array_equal(kept.apply(raw), [[2, 1, 0], [0, 1, 2]])
    np.testing.assert_allclose(kept.apply(raw_eval), evaluate_terms(kept.apply(raw), SQUARE))


def test_border_generation_is_complete_and_unique():
    rng = np.random.default_rng(3)
    X = rng.uniform(-1.0, 1.0, size=(7, 3))
    deg1 = degree_one_terms(3)
    terms = rng.integers(0, 3, size=(3, 5))
    raw, raw_eval, kept = construct_border(terms, evaluate_terms(terms, X), X,
                                           deg1, evaluate_terms(deg1, X))
    assert raw.shape[1] == 3 * 5
    sums = {tuple(deg1[:, i] + terms[:, j]) for i in range(3) for j in range(5)}
    border = kept.apply(raw)
    assert {tuple(c) for c in border.T} == sums
    assert len({tuple(c) for c in border.T}) == border.shape[1]
    np.testing.assert_allclose(raw_eval, evaluate_terms(raw, X))


def test_purging_removes_exactly_the_multiples():
    rng = np.random.default_rng(4)
    X = rng.uniform(0.5, 1.5, size=(5, 3))
    deg1 = degree_one_terms(3)
    terms = rng.integers(0, 3, size=(3, 8))
    purging = np.array([[1, 0], [1, 0], [0, 2]])
    raw, _, kept = construct_border(terms, evaluate_terms(terms, X), X,
                                    deg1, evaluate_terms(deg1, X), purging)
    retained = kept.apply(raw)
    for t in retained.T:
        for p in purging.T:
            assert np.any(t - p < 0)
    retained_set = {tuple(c) for c in retained.T}
    for t in raw.T:
        if tuple(t) not in retained_set:
            assert any(np.all(t - p >= 0) for p in purging.T)


def test_purge_drops_multiple_of_leading_term():
    deg1, deg1_eval, _ = construct_border(None, None, SQUARE)
    raw, _, kept = construct_border(deg1, deg1_eval, SQUARE, deg1, deg1_eval,
                                    purging_terms=np.array([[1], [1]]))
    np.testing.assert_array_equal(kept.apply(raw), [[2, 0], [0, 2]])


def test_purge_returns_aligned_evaluations():
    terms = np.array([[2, 1, 0], [0, 1, 2]])
    evaluations = np.array([[1.0, 2.0, 3.0]])
    kept_terms, kept_eval, kept = purge(terms, evaluations, np.array([[0], [2]]))
    np.testing.assert_array_equal(kept_terms, [[2, 1], [0, 1]])
    np.testing.assert_array_equal(kept_eval, [[1.0, 2.0]])
    np.testing.assert_array_equal(kept.indices, [0, 1])
    assert not divisible(terms, np.zeros((2, 0), dtype=np.int64)).any()


def test_evaluate_terms_is_multiplicative():
    X = np.array([[2.0, 3.0], [0.0, -1.0]])
    terms = np.array([[2, 0, 0], [1, 0, 3]])
    np.testing.assert_allclose(evaluate_terms(terms, X), [[12.0, 1.0, 27.0], [0.0, 1.0, -1.0]])


def test_dimension_mismatch_is_rejected():
    deg1 = degree_one_terms(2)
    terms = np.ones((3, 2), dtype=np.int64)
    with pytest.raises(ValueError):
        construct_border(terms, np.ones((4, 2)), SQUARE, deg1, SQUARE)
    with pytest.raises(ValueError):
        construct_border(deg1, np.ones((3, 2)), SQUARE, deg1, SQUARE)
    with pytest.raises(ValueError):
        evaluate_terms(terms, SQUARE)
    with pytest.raises(ValueError):
        purge(deg1, SQUARE, np.ones((3, 1), dtype=np.int64))
