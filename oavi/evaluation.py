"""Applying a fitted basis to new data.

Evaluation replays the term structure found during the fit: O-terms and the
border terms of every polynomial block are evaluated as monomials over the new
points and combined with the stored coefficient vectors.  Nothing is
optimised and the basis is only read.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .basis_state import BasisState, BasisView
from .border import as_data_matrix, evaluate_terms


@dataclass(frozen=True)
class EvaluationResult:
    O_evaluations: np.ndarray
    G_evaluations: np.ndarray


def evaluate_polynomials(basis: BasisView, X) -> EvaluationResult:
    """Evaluate the O-terms and G-polynomials of ``basis`` over ``X``."""
    X = as_data_matrix(X)
    if X.shape[1] != basis.n_features:
        raise ValueError(
            f"data has {X.shape[1]} features, the basis was fitted on {basis.n_features}."
        )
    O_evaluations = evaluate_terms(basis.O_terms, X)
    columns = [np.zeros((X.shape[0], 0))]
    for block in basis.blocks:
        border_evaluations = evaluate_terms(block.border_terms, X)
        columns.append(block.evaluate(O_evaluations, border_evaluations))
    return EvaluationResult(O_evaluations=O_evaluations, G_evaluations=np.hstack(columns))


def evaluate(basis: BasisView | BasisState, X) -> tuple[np.ndarray, EvaluationResult]:
    """Transform ``X`` with a fitted basis.

    Parameters
    ----------
    basis : BasisView or BasisState
        Result of a fit.
    X : array_like of shape (k, n)
        Points to transform; ``n`` must match the training data.

    Returns
    -------
    X_transformed : ndarray of shape (k, g)
        Absolute values of the G-polynomials at every point.
    result : EvaluationResult
        The signed O- and G-evaluations.
    """
    if isinstance(basis, BasisState):
        basis = basis.view()
    result = evaluate_polynomials(basis, X)
    return np.abs(result.G_evaluations), result
