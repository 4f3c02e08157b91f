"""Border construction and purging.

The border of a set of terms ``T`` is the set of products ``x_i * t`` for every
variable ``x_i`` and every ``t`` in ``T``.  In exponent notation this is the sum
of a degree-1 exponent vector and an exponent vector of ``T``.  Evaluations
over the data follow the same rule: the evaluation of a product of monomials
is the pointwise product of their evaluations, so border evaluations are
obtained without touching the data again.

Example
-------

```python
import numpy as np
from oavi.border import construct_border

X = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
deg1, deg1_eval, idx = construct_border(None, None, X)
deg2, deg2_eval, idx = construct_border(deg1, deg1_eval, X, deg1, deg1_eval)
border = idx.apply(deg2)   # x^2, x*y, y^2
```
"""

from __future__ import annotations

import numpy as np

from .term_order import IndexMap, unique


def as_data_matrix(X) -> np.ndarray:
    """Return ``X`` as a float matrix of shape (k, n).

    Accepts a 2-D array or a sequence of equally long n-vectors.
    """
    data = np.asarray(X, dtype=float)
    if data.ndim != 2:
        raise ValueError(f"data must be a (points, features) matrix, got shape {data.shape}.")
    return data


def degree_one_terms(n: int) -> np.ndarray:
    """The ``n`` degree-1 monomials as columns of an identity matrix."""
    return np.eye(n, dtype=np.int64)


def evaluate_terms(terms: np.ndarray, X) -> np.ndarray:
    """Evaluate monomials over data points.

    Parameters
    ----------
    terms : ndarray of shape (n, m)
        Exponent vectors as columns.
    X : array_like of shape (k, n)
        Data points as rows.

    Returns
    -------
    evaluations : ndarray of shape (k, m)
        Column ``j`` holds term ``j`` evaluated at every point.
    """
    X = as_data_matrix(X)
    terms = np.asarray(terms, dtype=np.int64)
    if terms.ndim != 2 or terms.shape[0] != X.shape[1]:
        raise ValueError(
            f"terms of shape {terms.shape} do not match data with {X.shape[1]} features."
        )
    return np.prod(X[:, :, None] ** terms[None, :, :], axis=1)


def divisible(terms: np.ndarray, purging_terms: np.ndarray) -> np.ndarray:
    """Boolean mask marking the columns of ``terms`` divisible by a purging term."""
    terms = np.asarray(terms)
    purging_terms = np.asarray(purging_terms)
    if purging_terms.shape[1] == 0 or terms.shape[1] == 0:
        return np.zeros(terms.shape[1], dtype=bool)
    return np.all(terms[:, :, None] >= purging_terms[:, None, :], axis=0).any(axis=1)


def purge(terms: np.ndarray,
          terms_evaluated: np.ndarray,
          purging_terms: np.ndarray) -> tuple[np.ndarray, np.ndarray, IndexMap]:
    """Remove every term divisible by at least one purging term.

    A term ``t`` is divisible by ``p`` iff ``t - p`` has no negative entry.

    Returns
    -------
    terms_purged : ndarray
    terms_evaluated_purged : ndarray
    kept : IndexMap
        Positions of the surviving columns in ``terms``.
    """
    terms = np.asarray(terms)
    purging_terms = np.asarray(purging_terms)
    if purging_terms.ndim != 2 or purging_terms.shape[0] != terms.shape[0]:
        raise ValueError(
            f"purging terms of shape {purging_terms.shape} do not match terms "
            f"with {terms.shape[0]} variables."
        )
    kept = IndexMap(np.flatnonzero(~divisible(terms, purging_terms)), terms.shape[1])
    return kept.apply(terms), kept.apply(terms_evaluated), kept


def construct_border(terms: np.ndarray | None,
                     terms_evaluated: np.ndarray | None,
                     X,
                     degree_1_terms: np.ndarray | None = None,
                     degree_1_evaluated: np.ndarray | None = None,
                     purging_terms: np.ndarray | None = None
                     ) -> tuple[np.ndarray, np.ndarray, IndexMap]:
    """Construct the border of ``terms``.

    Parameters
    ----------
    terms : ndarray of shape (n, m) or None
        Terms whose border is built.  Ignored on the first call, see below.
    terms_evaluated : ndarray of shape (k, m) or None
        Evaluations of ``terms`` over ``X``.
    X : array_like of shape (k, n)
        Data.
    degree_1_terms, degree_1_evaluated : ndarray, optional
        Degree-1 monomials and their evaluations.  When omitted (the first
        call) the border is the ``n`` degree-1 monomials themselves and their
        evaluations are the columns of ``X``.
    purging_terms : ndarray of shape (n, p), optional
        Terms whose multiples are removed from the border.

    Returns
    -------
    border_terms_raw : ndarray of shape (n, r)
        Every sum of a degree-1 monomial and a term, before deduplication and
        purging.  Column ``i * m + j`` is ``degree_1_terms[:, i] + terms[:, j]``.
    border_evaluations_raw : ndarray of shape (k, r)
        Evaluations aligned with ``border_terms_raw``.
    non_purging_indices : IndexMap
        Selects from the raw border the sorted, deduplicated, non-purged
        border.
    """
    X = as_data_matrix(X)
    k, n = X.shape

    if degree_1_terms is None or np.asarray(degree_1_terms).shape[1] == 0:
        border_terms_raw = degree_one_terms(n)
        border_evaluations_raw = X.copy()
    else:
        degree_1_terms = np.asarray(degree_1_terms, dtype=np.int64)
        degree_1_evaluated = np.asarray(degree_1_evaluated, dtype=float)
        terms = np.asarray(terms, dtype=np.int64)
        terms_evaluated = np.asarray(terms_evaluated, dtype=float)
        if degree_1_terms.shape[0] != n or terms.ndim != 2 or terms.shape[0] != n:
            raise ValueError(
                f"terms with {terms.shape[0]} and {degree_1_terms.shape[0]} variables "
                f"do not match data with {n} features."
            )
        if (terms_evaluated.shape != (k, terms.shape[1])
                or degree_1_evaluated.shape != (k, degree_1_terms.shape[1])):
            raise ValueError("evaluation matrices are not aligned with their terms and the data.")

        border_terms_raw = (degree_1_terms[:, :, None] + terms[:, None, :]).reshape(n, -1)
        border_evaluations_raw = (
            degree_1_evaluated[:, :, None] * terms_evaluated[:, None, :]
        ).reshape(k, -1)

    unique_terms, unique_evaluations, non_purging_indices = unique(
        border_terms_raw, border_evaluations_raw)

    if purging_terms is not None and np.asarray(purging_terms).shape[-1] != 0:
        _, _, kept = purge(unique_terms, unique_evaluations, purging_terms)
        non_purging_indices = non_purging_indices.then(kept)

    return border_terms_raw, border_evaluations_raw, non_purging_indices
