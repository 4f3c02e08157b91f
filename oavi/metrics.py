"""Diagnostic metrics for fitted bases and streaming Gram updates."""

from __future__ import annotations

import numpy as np
from numpy.linalg import norm

from .basis_state import BasisView
from .border import divisible


def gram_error(A: np.ndarray, G: np.ndarray) -> float:
    """Relative Frobenius error ``||A.T A - G||_F / max(1, ||A.T A||_F)``.

    Parameters
    ----------
    A : ndarray of shape (k, m)
        Accumulated matrix.
    G : ndarray of shape (m, m)
        Incrementally maintained Gram matrix.

    Returns
    -------
    err : float
        Zero up to rounding when ``G`` matches the Gram matrix computed from
        scratch.
    """
    reference = A.T @ A
    return norm(reference - G, 'fro') / max(1.0, norm(reference, 'fro'))


def inverse_error(G: np.ndarray, G_inv: np.ndarray) -> float:
    """Deviation ``||I - G G_inv||_F`` of a maintained inverse."""
    m = G.shape[0]
    return norm(np.eye(m) - G @ G_inv, 'fro')


def vanishing_extents(G_evaluations: np.ndarray) -> np.ndarray:
    """Mean squared value of every G-polynomial over the points it was evaluated on.

    This is the quantity the oracle compares against ``psi`` (without the
    regularisation term).
    """
    if G_evaluations.shape[0] == 0:
        return np.zeros(G_evaluations.shape[1])
    return np.mean(G_evaluations ** 2, axis=0)


def coefficient_sparsity(basis: BasisView, tol: float = 1e-12) -> float:
    """Fraction of zero entries among the O-coefficients of all G-polynomials.

    Only the rows of O-terms that were available to a polynomial are counted,
    so the structural padding of the border index space does not inflate the
    figure.
    """
    total = 0
    zeros = 0
    for block in basis.blocks:
        admitted = np.ones(block.border_terms.shape[1], dtype=bool)
        admitted[block.leading_indices] = False
        for column, position in zip(block.coefficients.T, block.leading_indices):
            # Rows of O-terms available when the leading term was classified.
            rows = block.n_previous + np.flatnonzero(admitted[:position])
            available = np.concatenate((column[:block.n_previous], column[rows]))
            total += available.size
            zeros += int(np.sum(np.abs(available) <= tol))
    if total == 0:
        return 0.0
    return zeros / total


def purge_violations(retained: np.ndarray, purging_terms: np.ndarray) -> int:
    """Number of retained terms divisible by some purging term."""
    return int(np.sum(divisible(retained, purging_terms)))


def summarize(basis: BasisView) -> dict[str, object]:
    """Plain summary of a fit, one entry per degree plus totals."""
    return {
        'n_O': int(basis.O_terms.shape[1]),
        'n_G': int(basis.n_polynomials),
        'degrees': [
            {
                'degree': rec.degree,
                'border': rec.border_size,
                'purged': rec.purged,
                'admitted': rec.admitted,
                'vanished': rec.vanished,
                'unconverged': rec.unconverged,
            }
            for rec in basis.trace
        ],
    }
