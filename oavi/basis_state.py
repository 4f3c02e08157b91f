"""Accumulated result of a fit: O-terms, leading terms and G-polynomials.

:class:`BasisState` is created empty when a fit starts, mutated only by the
fit loop and frozen when the fit returns.  Readers (evaluation, diagnostics,
tests) work on a :class:`BasisView`, whose arrays are read-only copies.

G-polynomials are stored per degree in a :class:`PolynomialBlock`.  The rows of
a block's coefficient matrix index ``[O-terms admitted before the degree ;
purged border terms of the degree]``.  The column of a polynomial holds a positive
leading coefficient ``c`` on its leading term, ``-c * x`` on the O-terms it
was fitted against and zeros elsewhere, including on the other leading terms
of the same degree.  ``c`` is ``1`` for the conditional gradient oracles and
makes the polynomial unit-norm for ABM.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

import numpy as np

from .term_order import IndexMap


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.setflags(write=False)
    return a


@dataclass(frozen=True)
class PolynomialBlock:
    """G-polynomials whose leading terms were found at one degree.

    Attributes
    ----------
    degree : int
        Degree of the border the leading terms belong to.
    n_previous : int
        Number of O-terms admitted before this degree.
    border_terms : ndarray of shape (n, p)
        Purged border terms of the degree.
    leading_indices : ndarray of shape (q,)
        Columns of ``border_terms`` that became leading terms.
    coefficients : ndarray of shape (n_previous + p, q)
        One coefficient vector per polynomial.
    """

    degree: int
    n_previous: int
    border_terms: np.ndarray
    leading_indices: np.ndarray
    coefficients: np.ndarray

    def __post_init__(self) -> None:
        for name in ("border_terms", "leading_indices", "coefficients"):
            object.__setattr__(self, name, _readonly(getattr(self, name)))

    @property
    def leading_terms(self) -> np.ndarray:
        return self.border_terms[:, self.leading_indices]

    @property
    def n_polynomials(self) -> int:
        return self.coefficients.shape[1]

    def evaluate(self, O_evaluations: np.ndarray, border_evaluations: np.ndarray) -> np.ndarray:
        """Evaluate the block's polynomials.

        ``O_evaluations`` must hold at least the first ``n_previous`` O-term
        columns; ``border_evaluations`` must be aligned with ``border_terms``.
        """
        stacked = np.hstack((O_evaluations[:, :self.n_previous], border_evaluations))
        return stacked @ self.coefficients


@dataclass
class DegreeRecord:
    """Diagnostics of one degree of a fit."""

    degree: int
    border_size: int
    purged: int
    admitted: int = 0
    vanished: int = 0
    losses: list[float] = field(default_factory=list)
    unconverged: int = 0


@dataclass(frozen=True)
class BasisView:
    """Read-only snapshot of a :class:`BasisState`."""

    n_features: int
    n_samples: int
    O_terms: np.ndarray
    O_evaluations: np.ndarray
    degree_boundaries: tuple[int, ...]
    leading_terms: np.ndarray
    blocks: tuple[PolynomialBlock, ...]
    G_evaluations: np.ndarray
    non_purging_indices: tuple[IndexMap, ...]
    trace: tuple[DegreeRecord, ...]
    version: int

    @property
    def G_coefficients(self) -> list[np.ndarray]:
        return [block.coefficients for block in self.blocks]

    @property
    def n_polynomials(self) -> int:
        return self.G_evaluations.shape[1]

    @property
    def max_degree(self) -> int:
        """Highest degree that produced an O-term."""
        return len(self.degree_boundaries)


class BasisState:
    """Mutable accumulator of one fit run.

    Parameters
    ----------
    n_features : int
        Dimensionality of the data.
    n_samples : int
        Number of training points.

    Notes
    -----
    Every mutating method bumps :attr:`version`.  After :meth:`freeze` all
    mutating methods raise ``RuntimeError``.
    """

    def __init__(self, n_features: int, n_samples: int) -> None:
        self.n_features = int(n_features)
        self.n_samples = int(n_samples)
        self.O_terms = np.zeros((self.n_features, 0), dtype=np.int64)
        self.O_evaluations = np.zeros((self.n_samples, 0))
        self.degree_boundaries: list[int] = []
        self.border_raw: list[np.ndarray] = []
        self.border_evaluations_raw: list[np.ndarray] = []
        self.non_purging_indices: list[IndexMap] = []
        self.leading_terms = np.zeros((self.n_features, 0), dtype=np.int64)
        self.blocks: list[PolynomialBlock] = []
        self.G_evaluations = np.zeros((self.n_samples, 0))
        self.trace: list[DegreeRecord] = []
        self.version = 0
        self.frozen = False

    def _touch(self) -> None:
        if self.frozen:
            raise RuntimeError("basis state is frozen; start a new fit instead.")
        self.version += 1

    @property
    def n_O(self) -> int:
        return self.O_terms.shape[1]

    def O_of_degree(self, degree: int) -> tuple[np.ndarray, np.ndarray]:
        """O-terms (and evaluations) admitted at ``degree``."""
        if degree < 1 or degree > len(self.degree_boundaries):
            return self.O_terms[:, :0], self.O_evaluations[:, :0]
        start = self.degree_boundaries[degree - 1]
        stop = (self.degree_boundaries[degree]
                if degree < len(self.degree_boundaries) else self.n_O)
        return self.O_terms[:, start:stop], self.O_evaluations[:, start:stop]

    def update_border(self, border_raw: np.ndarray, border_evaluations_raw: np.ndarray,
                      non_purging_indices: IndexMap) -> None:
        self._touch()
        self.border_raw.append(border_raw)
        self.border_evaluations_raw.append(border_evaluations_raw)
        self.non_purging_indices.append(non_purging_indices)

    def update_O(self, terms: np.ndarray, evaluations: np.ndarray) -> None:
        """Append the O-terms of a new degree and record its boundary."""
        if terms.shape[1] != evaluations.shape[1]:
            raise ValueError("O-terms and their evaluations are not aligned.")
        self._touch()
        self.degree_boundaries.append(self.n_O)
        self.O_terms = np.hstack((self.O_terms, terms))
        self.O_evaluations = np.hstack((self.O_evaluations, evaluations))

    def update_G(self, block: PolynomialBlock, evaluations: np.ndarray) -> None:
        """Append a block of G-polynomials and their training evaluations."""
        if evaluations.shape != (self.n_samples, block.n_polynomials):
            raise ValueError("G-evaluations do not match the polynomial block.")
        self._touch()
        self.blocks.append(block)
        self.leading_terms = np.hstack((self.leading_terms, block.leading_terms))
        self.G_evaluations = np.hstack((self.G_evaluations, evaluations))

    def record(self, entry: DegreeRecord) -> None:
        self._touch()
        self.trace.append(entry)

    def freeze(self) -> BasisView:
        self.frozen = True
        return self.view()

    def view(self) -> BasisView:
        return BasisView(
            n_features=self.n_features,
            n_samples=self.n_samples,
            O_terms=_readonly(self.O_terms),
            O_evaluations=_readonly(self.O_evaluations),
            degree_boundaries=tuple(self.degree_boundaries),
            leading_terms=_readonly(self.leading_terms),
            blocks=tuple(self.blocks),
            G_evaluations=_readonly(self.G_evaluations),
            non_purging_indices=tuple(self.non_purging_indices),
            trace=tuple(replace(rec, losses=list(rec.losses)) for rec in self.trace),
            version=self.version,
        )
