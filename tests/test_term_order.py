import numpy as np
import pytest

from oavi.term_order import IndexMap, compare, sort, unique


def test_compare_degree_first_then_trailing_variables():
    assert compare([1, 0], [0, 1]) == -1
    assert compare([0, 1], [1, 0]) == 1
    assert compare([0, 3], [2, 0]) == 1
    assert compare([2, 0], [1, 1]) == -1
    assert compare([1, 2, 0], [1, 2, 0]) == 0


def test_compare_rejects_different_lengths():
    with pytest.raises(ValueError):
        compare([1, 0], [1, 0, 0])


def test_sort_orders_columns_and_aux():
    terms = np.array([[0, 1, 2, 1],
                      [2, 1, 0, 0]])
    aux = np.array([[10.0, 11.0, 12.0, 13.0]])
    sorted_terms, sorted_aux, order = sort(terms, aux)
    np.testing.assert_array_equal(order.indices, [3, 2, 1, 0])
    np.testing.assert_array_equal(sorted_terms, [[1, 2, 1, 0], [0, 0, 1, 2]])
    np.testing.assert_array_equal(sorted_aux, [[13.0, 12.0, 11.0, 10.0]])


def test_sort_agrees_with_compare():
    rng = np.random.default_rng(0)
    terms = rng.integers(0, 4, size=(3, 40))
    sorted_terms, _, _ = sort(terms)
    for j in range(sorted_terms.shape[1] - 1):
        assert compare(sorted_terms[:, j], sorted_terms[:, j + 1]) <= 0


def test_sort_is_idempotent():
    rng = np.random.default_rng(1)
    terms = rng.integers(0, 3, size=(4, 25))
    sorted_terms, _, _ = sort(terms)
    again, _, order = sort(sorted_terms)
    assert order.is_identity()
    np.testing.assert_array_equal(again, sorted_terms)


def test_unique_drops_duplicates_and_traces_input_columns():
    terms = np.array([[1, 0, 1, 2, 0],
                      [1, 1, 1, 0, 1]])
    aux = np.arange(10.0).reshape(2, 5)
    unique_terms, unique_aux, kept = unique(terms, aux)
    np.testing.assert_array_equal(unique_terms, [[0, 2, 1], [1, 0, 1]])
    assert unique_terms.shape[1] == len({tuple(c) for c in terms.T})
    np.testing.assert_array_equal(kept.apply(terms), unique_terms)
    np.testing.assert_array_equal(kept.apply(aux), unique_aux)
    assert kept.source_size == 5


def test_empty_term_set_returns_empty_outputs():
    terms = np.zeros((2, 0), dtype=np.int64)
    unique_terms, unique_aux, kept = unique(terms, np.zeros((3, 0)))
    assert unique_terms.shape == (2, 0)
    assert unique_aux.shape == (3, 0)
    assert len(kept) == 0


def test_sort_rejects_misaligned_aux():
    with pytest.raises(ValueError):
        sort(np.eye(2, dtype=np.int64), np.zeros((4, 3)))


def test_index_map_composition():
    first = IndexMap([2, 0, 1], 3)
    second = IndexMap([0, 2], 3)
    composed = first.then(second)
    np.testing.assert_array_equal(composed.indices, [2, 1])
    source = np.array([[5, 6, 7]])
    np.testing.assert_array_equal(composed.apply(source), second.apply(first.apply(source)))


def test_index_map_rejects_bad_input():
    with pytest.raises(ValueError):
        IndexMap([3], 3)
    with pytest.raises(ValueError):
        IndexMap([0, 1], 3).then(IndexMap([0], 3))
    with pytest.raises(ValueError):
        IndexMap.identity(2).apply(np.zeros((1, 3)))
