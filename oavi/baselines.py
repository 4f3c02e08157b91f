"""Closed-form baselines.

This module provides reference computations against which the streaming and
conditional gradient machinery can be compared:

* :func:`abm` – the SVD-based approximate Buchberger-Moeller oracle, which
  finds the best unit-norm relation among ``[A | b]`` in one decomposition and
  has no L1 constraint.
* :func:`recompute_gram` and :func:`recompute_stream` – Gram matrices (and
  inverses) computed from scratch, the expensive alternative to the
  incremental updates of :mod:`oavi.streaming_gram`.
"""

from __future__ import annotations

import numpy as np
from numpy.linalg import inv, lstsq, norm, svd


def abm(data: np.ndarray,
        labels: np.ndarray,
        data_squared: np.ndarray | None = None,
        data_labels: np.ndarray | None = None,
        labels_squared: float | None = None,
        tol: float = 1e-12) -> tuple[np.ndarray, float, float]:
    """Smallest right singular vector of ``[data | labels]``.

    Parameters
    ----------
    data : ndarray of shape (m, n)
        Evaluations of the O-terms.
    labels : ndarray of shape (m,)
        Evaluation of the candidate term.
    data_squared, data_labels, labels_squared : optional
        Precomputed Gram quantities.  When there are more rows than columns
        the decomposition runs on the ``(n+1) x (n+1)`` Gram form built from
        them instead of on the data.
    tol : float
        If the label entry of the singular vector is below ``tol`` in
        magnitude the relation does not involve the candidate term; the least
        squares solution is returned instead.

    Returns
    -------
    coefficient_vector : ndarray of shape (n,)
        ``x`` such that ``labels - data @ x`` is the discovered relation,
        i.e. the singular vector rescaled to a unit label entry.
    loss : float
        ``||[data | labels] @ v||^2 / m`` for the unit singular vector ``v``,
        the squared smallest singular value over ``m``.
    leading_coefficient : float
        ``|v[-1]|``.  The unit-norm relation is
        ``leading_coefficient * (labels - data @ x)`` and its mean squared
        value is ``loss``.  In the least squares fallback it is ``1`` and
        ``loss`` is the residual of ``labels - data @ x``.
    """
    labels = np.asarray(labels, dtype=float).reshape(-1)
    m, n = data.shape
    data_with_labels = np.hstack((data, labels[:, None]))

    if m > n + 1:
        if data_squared is None:
            data_squared = data.T @ data
        if data_labels is None:
            data_labels = data.T @ labels
        if labels_squared is None:
            labels_squared = float(labels @ labels)
        M = np.empty((n + 1, n + 1))
        M[:n, :n] = data_squared
        M[:n, n] = data_labels
        M[n, :n] = data_labels
        M[n, n] = labels_squared
        _, _, Vt = svd(M)
    else:
        _, _, Vt = svd(data_with_labels, full_matrices=True)

    v = Vt[-1]
    if abs(v[-1]) < tol:
        x = lstsq(data, labels, rcond=None)[0]
        return x, float(norm(data @ x - labels) ** 2 / m), 1.0
    if v[-1] < 0:
        v = -v
    x = -v[:-1] / v[-1]
    return x, float(norm(data_with_labels @ v) ** 2 / m), float(v[-1])


def recompute_gram(A: np.ndarray,
                   with_inverse: bool = False) -> tuple[np.ndarray, np.ndarray | None]:
    """Gram matrix of ``A`` (and its inverse) computed from scratch."""
    G = A.T @ A
    G_inv = inv(G) if with_inverse else None
    return G, G_inv


def recompute_stream(A0: np.ndarray,
                     columns: list[np.ndarray],
                     with_inverse: bool = False) -> dict[str, list]:
    """Recompute the Gram matrix after every appended column.

    Parameters
    ----------
    A0 : ndarray of shape (k, m)
        Initial matrix (may have zero columns).
    columns : list of ndarray of shape (k,)
        Columns appended one at a time.
    with_inverse : bool
        Also invert the Gram matrix at every step.

    Returns
    -------
    results : dict
        Keys ``'G'`` and ``'G_inv'`` with one entry per appended column.
    """
    A_current = np.array(A0, dtype=float)
    grams = []
    inverses = []
    for column in columns:
        A_current = np.hstack((A_current, np.asarray(column, dtype=float)[:, None]))
        G, G_inv = recompute_gram(A_current, with_inverse)
        grams.append(G)
        inverses.append(G_inv)
    return {'G': grams, 'G_inv': inverses}
