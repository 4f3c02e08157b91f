"""Degree-by-degree construction of an approximate vanishing ideal.

This module defines the :class:`OAVI` class, which fits a set ``O`` of
non-vanishing monomials and a set ``G`` of nearly vanishing polynomials to a
finite point set.  Each degree runs through the same steps:

1. build the border of the O-terms admitted at the previous degree, dropping
   multiples of known leading terms;
2. for every border term, in term order, ask the oracle for the best
   coefficient vector over the current O-evaluations;
3. if the loss is at most ``psi`` the term becomes a leading term and
   ``term - O @ x`` a G-polynomial, otherwise the term joins ``O`` and its
   evaluation is appended to the streaming Gram accumulator;
4. commit the degree's O-terms and G-polynomials.

The fit stops when a whole border vanishes or ``max_degree`` is reached.  The
classification of a term depends on every decision before it, so the loop is
strictly sequential.
"""

from __future__ import annotations

import logging

import numpy as np

from .basis_state import BasisState, BasisView, DegreeRecord, PolynomialBlock
from .border import as_data_matrix, construct_border
from .evaluation import EvaluationResult, evaluate
from .oracles import OracleSpec, solve
from .streaming_gram import DEFAULT_STABILITY_THRESHOLD, InverseBoost, StreamingGram
from .utils import OAVIConfig, derive_tau

logger = logging.getLogger(__name__)


def _scatter(x: np.ndarray, n_previous: int, admitted: list[int], position: int,
             leading: float = 1.0) -> np.ndarray:
    """Coefficient column of ``leading * (term - O @ x)`` over ``[O_previous ; border[:position+1]]``."""
    column = np.zeros(n_previous + position + 1)
    column[:n_previous] = -leading * x[:n_previous]
    column[[n_previous + j for j in admitted]] = -leading * x[n_previous:]
    column[n_previous + position] = leading
    return column


class OAVI:
    """Oracle approximate vanishing ideal feature transformation.

    Parameters
    ----------
    max_degree : int
        Upper bound on the degree of the border.
    psi : float
        Vanishing extent; a term whose oracle loss is at most ``psi`` vanishes.
    epsilon : float
        Convergence tolerance of the built-in conditional gradient solvers.
    tau : float, optional
        L1 radius of the feasible region.  Derived from ``psi`` if ``None``.
    lmbda : float
        Ridge weight.  Must be zero with inverse hessian boosting.
    oracle : str or callable
        ``"CG"``, ``"BCG"``, ``"BPCG"``, ``"ABM"`` or an external solver
        ``solver(f, grad, feasible_region, x0) -> (x_opt, info)``.
    inverse_hessian_boost : {"none", "weak", "full"}
        Whether and how to maintain the inverse Gram matrix.
    max_iters : int
        Iteration budget of the built-in solvers per border term.
    oracle_kwargs : dict, optional
        Extra keyword arguments forwarded to the solver.  An external solver
        receives these and nothing else, so ``epsilon`` and ``max_iters`` go
        here if it needs them.
    stability_threshold : float
        Relative threshold below which an inverse update counts as
        ill-conditioned.

    Notes
    -----
    All options are validated in the constructor, so that invalid input fails
    before any state exists.  One instance owns at most one basis state; a
    second call to :meth:`fit` replaces it.
    """

    def __init__(self,
                 max_degree: int = 10,
                 psi: float = 0.1,
                 epsilon: float = 0.001,
                 tau: float | None = None,
                 lmbda: float = 0.0,
                 oracle="CG",
                 inverse_hessian_boost: InverseBoost | str = "none",
                 max_iters: int = 10000,
                 oracle_kwargs: dict | None = None,
                 stability_threshold: float = DEFAULT_STABILITY_THRESHOLD) -> None:
        if int(max_degree) < 1:
            raise ValueError(f"max_degree must be at least 1, got {max_degree}.")
        if not psi > 0:
            raise ValueError(f"psi must be positive, got {psi}.")
        if not epsilon > 0:
            raise ValueError(f"epsilon must be positive, got {epsilon}.")
        if lmbda < 0:
            raise ValueError(f"lmbda must be non-negative, got {lmbda}.")
        if int(max_iters) < 1:
            raise ValueError(f"max_iters must be at least 1, got {max_iters}.")
        self.max_degree = int(max_degree)
        self.psi = float(psi)
        self.epsilon = float(epsilon)
        self.tau = derive_tau(self.psi) if tau is None else float(tau)
        if not self.tau > 0:
            raise ValueError(f"tau must be positive, got {tau}.")
        self.lmbda = float(lmbda)
        self.oracle = OracleSpec.parse(oracle, oracle_kwargs)
        self.inverse_hessian_boost = InverseBoost.parse(inverse_hessian_boost)
        if self.lmbda != 0.0 and self.inverse_hessian_boost is not InverseBoost.NONE:
            raise ValueError("regularisation and inverse hessian boosting are mutually exclusive.")
        self.max_iters = int(max_iters)
        self.stability_threshold = float(stability_threshold)

        self.state: BasisState | None = None
        self.basis: BasisView | None = None

    @classmethod
    def from_config(cls, cfg: OAVIConfig | dict) -> "OAVI":
        if not isinstance(cfg, OAVIConfig):
            cfg = OAVIConfig.from_dict(cfg)
        return cls(max_degree=cfg.max_degree, psi=cfg.psi, epsilon=cfg.epsilon, tau=cfg.tau,
                   lmbda=cfg.lmbda, oracle=cfg.oracle,
                   inverse_hessian_boost=cfg.inverse_hessian_boost,
                   max_iters=cfg.max_iters, oracle_kwargs=cfg.oracle_kwargs)

    def _classify(self, gram: StreamingGram, labels: np.ndarray,
                  data_labels: np.ndarray, labels_squared: float):
        return solve(self.oracle, gram.A, labels, gram.G, data_labels, labels_squared,
                     tau=self.tau, lmbda=self.lmbda, epsilon=self.epsilon,
                     max_iters=self.max_iters, psi=self.psi,
                     data_squared_inverse=gram.G_inv, boost=gram.boost)

    def _fit_degree(self, state: BasisState, gram: StreamingGram, degree: int,
                    border_terms: np.ndarray, border_evaluations: np.ndarray,
                    record: DegreeRecord) -> tuple[list[int], PolynomialBlock]:
        """Classify every border term of one degree."""
        n_previous = state.n_O
        admitted: list[int] = []
        leading: list[int] = []
        coefficients = np.zeros((n_previous, 0))

        for position in range(border_terms.shape[1]):
            # Keep coefficient vectors aligned with the border index space.
            coefficients = np.vstack((coefficients, np.zeros((1, coefficients.shape[1]))))

            labels = border_evaluations[:, position]
            data_labels = gram.cross(labels)
            labels_squared = float(labels @ labels)
            result = self._classify(gram, labels, data_labels, labels_squared)
            record.losses.append(result.loss)
            if not result.info.get("converged", True):
                record.unconverged += 1
                logger.debug("Oracle %s did not converge on term %s (gap %.3e), using best iterate",
                             self.oracle.name, border_terms[:, position].tolist(),
                             result.info.get("gap", np.nan))

            if result.loss <= self.psi:
                leading.append(position)
                column = _scatter(result.coefficients, n_previous, admitted, position,
                                  result.leading_coefficient)
                coefficients = np.hstack((coefficients, column[:, None]))
                logger.debug("Term %s vanishes (loss %.3e)",
                             border_terms[:, position].tolist(), result.loss)
            else:
                admitted.append(position)
                gram.append(labels, data_labels, labels_squared)
                logger.debug("Term %s admitted to O (loss %.3e)",
                             border_terms[:, position].tolist(), result.loss)

        padding = n_previous + border_terms.shape[1] - coefficients.shape[0]
        coefficients = np.vstack((coefficients, np.zeros((padding, coefficients.shape[1]))))
        block = PolynomialBlock(
            degree=degree,
            n_previous=n_previous,
            border_terms=border_terms,
            leading_indices=np.asarray(leading, dtype=np.int64),
            coefficients=coefficients,
        )
        return admitted, block

    def fit(self, X) -> tuple[np.ndarray, BasisView]:
        """Fit the transformation to ``X``.

        Parameters
        ----------
        X : array_like of shape (k, n)
            Training points as rows.

        Returns
        -------
        X_transformed : ndarray of shape (k, g)
            Absolute values of the G-polynomials evaluated on ``X``; ``g`` may
            be zero.
        basis : BasisView
            Read-only view of the fitted basis, usable with
            :func:`oavi.evaluation.evaluate`.
        """
        X = as_data_matrix(X)
        k, n = X.shape
        if k == 0 or n == 0:
            raise ValueError(f"cannot fit on data of shape {X.shape}.")

        state = BasisState(n, k)
        self.state = state
        gram = StreamingGram(k, self.inverse_hessian_boost, self.stability_threshold)
        degree_1_terms = degree_1_evaluations = None

        for degree in range(1, self.max_degree + 1):
            if degree == 1:
                raw, raw_evaluations, kept = construct_border(None, None, X)
                degree_1_terms, degree_1_evaluations = raw, raw_evaluations
            else:
                terms, evaluations = state.O_of_degree(degree - 1)
                raw, raw_evaluations, kept = construct_border(
                    terms, evaluations, X, degree_1_terms, degree_1_evaluations,
                    state.leading_terms)
            state.update_border(raw, raw_evaluations, kept)
            border_terms = kept.apply(raw)
            border_evaluations = kept.apply(raw_evaluations)

            record = DegreeRecord(degree=degree, border_size=border_terms.shape[1],
                                  purged=raw.shape[1] - border_terms.shape[1])
            n_previous = state.n_O
            admitted, block = self._fit_degree(state, gram, degree, border_terms,
                                               border_evaluations, record)
            record.admitted = len(admitted)
            record.vanished = block.n_polynomials

            if block.n_polynomials:
                state.update_G(block, block.evaluate(state.O_evaluations[:, :n_previous],
                                                     border_evaluations))
            state.record(record)
            logger.info("Degree %d: %d border terms, %d admitted to O, %d vanishing",
                        degree, record.border_size, record.admitted, record.vanished)

            if not admitted:
                logger.info("Border of degree %d vanished entirely; stopping", degree)
                break
            state.update_O(border_terms[:, admitted], border_evaluations[:, admitted])
        else:
            logger.info("Reached max_degree=%d", self.max_degree)

        if gram.degraded:
            logger.warning("Inverse hessian boosting was disabled during the fit")

        self.basis = state.freeze()
        X_transformed = np.abs(self.basis.G_evaluations)
        if X_transformed.shape[1] == 0:
            logger.info("No vanishing polynomials found")
        return X_transformed, self.basis

    def transform(self, X) -> tuple[np.ndarray, EvaluationResult]:
        """Apply the fitted transformation to new data."""
        if self.basis is None:
            raise ValueError("OAVI instance is not fitted yet; call fit first.")
        return evaluate(self.basis, X)

    def fit_transform(self, X) -> np.ndarray:
        return self.fit(X)[0]


def fit(X, **kwargs) -> tuple[np.ndarray, BasisView]:
    """Fit an :class:`OAVI` transformation with the given options."""
    return OAVI(**kwargs).fit(X)
