"""Convex oracles deciding whether a border term vanishes.

Every oracle solves the same problem.  Given the evaluations ``A`` of the
current O-terms, the evaluation ``b`` of a candidate border term, an L1 radius
``tau`` and a ridge weight ``lmbda``, find

    x* = argmin_{||x||_1 <= tau}  ||A x - b||_2^2 / m + lmbda * ||x||_2^2

and report the loss at ``x*``.  The objective is assembled from the Gram
quantities ``A.T @ A``, ``A.T @ b`` and ``b.T @ b`` only, so that the caller can
maintain them incrementally.

Built-in solvers are conditional gradient methods over the L1 ball:

* ``CG``   – vanilla Frank-Wolfe;
* ``BCG``  – blended conditional gradients (simplex descent steps over the
  active set blended with lazy Frank-Wolfe steps);
* ``BPCG`` – blended pairwise conditional gradients.

``ABM`` delegates to the SVD-based closed form in :mod:`oavi.baselines`.  An
external solver can be plugged in as long as it follows the signature
``solver(f, grad, feasible_region, x0) -> (x_opt, info)``; the keyword
arguments given with it are forwarded unchanged and are the only ones it
receives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import numpy as np

from .baselines import abm
from .streaming_gram import InverseBoost



class OracleKind(Enum):
    CG = "CG"
    BCG = "BCG"
    BPCG = "BPCG"
    ABM = "ABM"
    EXTERNAL = "external"

    @property
    def is_conditional_gradient(self) -> bool:
        return self in (OracleKind.CG, OracleKind.BCG, OracleKind.BPCG)


@dataclass(frozen=True)
class OracleSpec:
    """Which oracle to run, parsed once before a fit starts.

    ``function`` is only set for :attr:`OracleKind.EXTERNAL`.  ``kwargs`` is an
    opaque bag of keyword arguments forwarded to the solver.
    """

    kind: OracleKind
    function: Callable | None = None
    kwargs: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, oracle, kwargs: dict[str, Any] | None = None) -> "OracleSpec":
        kwargs = dict(kwargs or {})
        if isinstance(oracle, cls):
            return cls(oracle.kind, oracle.function, {**oracle.kwargs, **kwargs})
        if isinstance(oracle, OracleKind):
            if oracle is OracleKind.EXTERNAL:
                raise ValueError("an external oracle needs a callable, not the bare kind.")
            return cls(oracle, None, kwargs)
        if isinstance(oracle, str):
            key = oracle.strip().upper()
            if key in ("CG", "BCG", "BPCG", "ABM"):
                return cls(OracleKind(key), None, kwargs)
            raise ValueError(
                f"unsupported oracle {oracle!r}; expected one of CG, BCG, BPCG, ABM "
                f"or a callable solver."
            )
        if callable(oracle):
            return cls(OracleKind.EXTERNAL, oracle, kwargs)
        raise TypeError(f"oracle must be a name or a callable, got {type(oracle).__name__}.")

    @property
    def name(self) -> str:
        if self.kind is OracleKind.EXTERNAL:
            return getattr(self.function, "__name__", "external")
        return self.kind.value


@dataclass
class OracleResult:
    """Coefficient vector ``x`` of the relation ``labels - data @ x`` and its loss.

    The stored polynomial is ``leading_coefficient * (labels - data @ x)``.
    """

    coefficients: np.ndarray
    loss: float
    info: dict[str, Any] = field(default_factory=dict)
    leading_coefficient: float = 1.0


def l1_projection(x: np.ndarray, radius: float = 1.0) -> np.ndarray:
    """Euclidean projection of ``x`` onto the L1 ball of the given radius.

    Uses the sort-and-threshold method of Duchi et al., "Efficient projections
    onto the l1-ball for learning in high dimensions" (ICML 2008).  Vectors
    already inside the ball are returned unchanged (as a copy).

    Raises
    ------
    ValueError
        If ``radius`` is not strictly positive.
    """
    if not radius > 0:
        raise ValueError(f"radius must be positive, got {radius}.")
    x = np.asarray(x, dtype=float)
    if np.abs(x).sum() <= radius:
        return x.copy()
    v = np.abs(x).reshape(-1)
    u = np.sort(v)[::-1]
    css = np.cumsum(u)
    ks = np.arange(1, v.size + 1)
    rho = np.flatnonzero(u * ks > css - radius)[-1]
    theta = (css[rho] - radius) / (rho + 1)
    return (np.sign(x) * np.maximum(np.abs(x) - theta, 0.0)).reshape(x.shape)


class L1Ball:
    """The L1 ball ``{x : ||x||_1 <= radius}`` in ``dim`` dimensions.

    Its vertices are ``±radius * e_i``; a vertex is identified by the key
    ``(i, sign)``.
    """

    def __init__(self, radius: float, dim: int) -> None:
        if not radius > 0:
            raise ValueError(f"radius must be positive, got {radius}.")
        self.radius = float(radius)
        self.dim = int(dim)

    def contains(self, x: np.ndarray, atol: float = 1e-12) -> bool:
        return float(np.abs(x).sum()) <= self.radius * (1.0 + atol)

    def vertex(self, key: tuple[int, int]) -> np.ndarray:
        i, sign = key
        v = np.zeros(self.dim)
        v[i] = sign * self.radius
        return v

    def linear_minimizer(self, g: np.ndarray) -> tuple[int, int]:
        """Key of the vertex minimising ``<g, v>``."""
        i = int(np.argmax(np.abs(g)))
        return i, (-1 if g[i] > 0 else 1)

    def lmo(self, g: np.ndarray) -> np.ndarray:
        return self.vertex(self.linear_minimizer(g))

    def score(self, g: np.ndarray, key: tuple[int, int]) -> float:
        """``<g, vertex(key)>`` without materialising the vertex."""
        i, sign = key
        return sign * self.radius * float(g[i])

    def combine(self, active: dict[tuple[int, int], float]) -> np.ndarray:
        x = np.zeros(self.dim)
        for (i, sign), w in active.items():
            x[i] += sign * self.radius * w
        return x

    def decompose(self, x: np.ndarray) -> dict[tuple[int, int], float]:
        """Write a feasible ``x`` as a convex combination of vertices."""
        x = np.asarray(x, dtype=float)
        if not self.contains(x):
            raise ValueError("point lies outside the L1 ball.")
        active: dict[tuple[int, int], float] = {}
        for i in np.flatnonzero(x):
            active[(int(i), 1 if x[i] > 0 else -1)] = abs(float(x[i])) / self.radius
        slack = max(0.0, 1.0 - sum(active.values()))
        if slack > 0.0:
            # Split the slack evenly between two opposite vertices.
            for key in ((0, 1), (0, -1)):
                active[key] = active.get(key, 0.0) + slack / 2.0
        return active


@dataclass
class L2Objective:
    """Regularised least-squares objective built from Gram quantities.

    ``f(x) = x.T G x / m - 2 x.T A.T b / m + b.T b / m + lmbda ||x||^2``.  When
    the inverse Gram matrix is supplied, :attr:`solution` holds the
    unconstrained minimiser ``G^{-1} A.T b``; this is only defined without
    regularisation.
    """

    n_samples: int
    data_squared: np.ndarray
    data_labels: np.ndarray
    labels_squared: float
    lmbda: float = 0.0
    data_squared_inverse: np.ndarray | None = None

    def __post_init__(self) -> None:
        if self.lmbda < 0:
            raise ValueError(f"lmbda must be non-negative, got {self.lmbda}.")
        if self.data_squared_inverse is not None and self.lmbda != 0.0:
            raise ValueError("regularisation is not available for hessian-based updates.")
        m = float(self.n_samples)
        n = self.data_squared.shape[0]
        self.hessian = (2.0 / m) * self.data_squared + 2.0 * self.lmbda * np.eye(n)
        self.linear = (-2.0 / m) * np.asarray(self.data_labels, dtype=float).reshape(-1)
        self.constant = float(self.labels_squared) / m
        self.solution = None
        if self.data_squared_inverse is not None:
            self.solution = self.data_squared_inverse @ self.data_labels

    def evaluate_function(self, x: np.ndarray) -> float:
        return float(0.5 * x @ self.hessian @ x + self.linear @ x + self.constant)

    def evaluate_gradient(self, x: np.ndarray) -> np.ndarray:
        return self.hessian @ x + self.linear

    def loss(self, x: np.ndarray) -> float:
        # Rounding can push an exact fit slightly below zero.
        return max(self.evaluate_function(x), 0.0)


def _line_search(f: Callable, x: np.ndarray, direction: np.ndarray,
                 slope: float, gamma_max: float) -> float:
    """Exact step along ``direction`` for a quadratic ``f``.

    The curvature is recovered from one extra function value, so only ``f``
    and the directional derivative ``slope`` are needed.
    """
    if slope >= 0.0:
        return 0.0
    curvature = 2.0 * (f(x + direction) - f(x) - slope)
    if curvature <= 0.0:
        return gamma_max
    return min(-slope / curvature, gamma_max)


def _prune(active: dict[tuple[int, int], float], tol: float = 1e-14) -> None:
    for key in [k for k, w in active.items() if w <= tol]:
        del active[key]


def _info(iterations: int, converged: bool, gap: float, **extra) -> dict[str, Any]:
    return {"iterations": iterations, "converged": converged, "gap": float(gap), **extra}


def frank_wolfe(f: Callable, grad: Callable, feasible_region: L1Ball, x0: np.ndarray,
                epsilon: float = 1e-3, max_iters: int = 10000) -> tuple[np.ndarray, dict]:
    """Vanilla Frank-Wolfe with exact line search.

    Stops once the Frank-Wolfe gap ``<grad(x), x - v>`` drops to ``epsilon``.
    """
    x = np.array(x0, dtype=float)
    gap = np.inf
    for it in range(max_iters):
        g = grad(x)
        d = feasible_region.lmo(g) - x
        gap = -float(g @ d)
        if gap <= epsilon:
            return x, _info(it, True, gap)
        gamma = _line_search(f, x, d, -gap, 1.0)
        x = x + gamma * d
    return x, _info(max_iters, False, gap)


def blended_pairwise_conditional_gradient(f: Callable, grad: Callable, feasible_region: L1Ball,
                                          x0: np.ndarray, epsilon: float = 1e-3,
                                          max_iters: int = 10000) -> tuple[np.ndarray, dict]:
    """Blended pairwise conditional gradients (Tsuji, Tanaka and Pokutta, 2022).

    A pairwise step between the away vertex and the best active vertex is
    taken whenever its local gap is at least the Frank-Wolfe gap; otherwise a
    Frank-Wolfe step is taken.
    """
    active = feasible_region.decompose(x0)
    x = feasible_region.combine(active)
    gap = np.inf
    for it in range(max_iters):
        g = grad(x)
        fw_key = feasible_region.linear_minimizer(g)
        gap = float(g @ x) - feasible_region.score(g, fw_key)
        if gap <= epsilon:
            return x, _info(it, True, gap, active_set_size=len(active))

        scores = {key: feasible_region.score(g, key) for key in active}
        away = max(scores, key=scores.get)
        local = min(scores, key=scores.get)
        local_gap = scores[away] - scores[local]

        if local_gap >= gap:
            d = feasible_region.vertex(local) - feasible_region.vertex(away)
            gamma_max = active[away]
            gamma = _line_search(f, x, d, -local_gap, gamma_max)
            active[local] += gamma
            active[away] = 0.0 if gamma >= gamma_max else active[away] - gamma
        else:
            d = feasible_region.vertex(fw_key) - x
            gamma = _line_search(f, x, d, -gap, 1.0)
            if gamma >= 1.0:
                active = {fw_key: 1.0}
            else:
                for key in active:
                    active[key] *= 1.0 - gamma
                active[fw_key] = active.get(fw_key, 0.0) + gamma
        _prune(active)
        x = feasible_region.combine(active)
    return x, _info(max_iters, False, gap, active_set_size=len(active))


def blended_conditional_gradient(f: Callable, grad: Callable, feasible_region: L1Ball,
                                 x0: np.ndarray, epsilon: float = 1e-3,
                                 max_iters: int = 10000,
                                 lazy_factor: float = 2.0) -> tuple[np.ndarray, dict]:
    """Blended conditional gradients (Braun, Pokutta, Tu and Wright, 2019).

    Keeps a dual gap estimate ``phi``.  While the spread of the gradient over
    the active vertices exceeds ``phi``, a simplex gradient descent step is
    taken on the convex weights; otherwise a lazy Frank-Wolfe step is taken if
    it promises at least ``phi / lazy_factor``, and ``phi`` is halved if not.
    """
    active = feasible_region.decompose(x0)
    x = feasible_region.combine(active)
    g = grad(x)
    phi = max(float(g @ x) - feasible_region.score(g, feasible_region.linear_minimizer(g)), 0.0) / 2.0
    gap = np.inf
    for it in range(max_iters):
        g = grad(x)
        fw_key = feasible_region.linear_minimizer(g)
        gap = float(g @ x) - feasible_region.score(g, fw_key)
        if gap <= epsilon:
            return x, _info(it, True, gap, active_set_size=len(active))

        keys = list(active)
        c = np.array([feasible_region.score(g, key) for key in keys])
        spread = float(c.max() - c.min())
        if spread > 0.0 and spread >= phi:
            w = np.array([active[key] for key in keys])
            dw = c - c.mean()
            d = -sum(dw_j * feasible_region.vertex(key) for dw_j, key in zip(dw, keys))
            shrinking = dw > 0
            eta = float(np.min(w[shrinking] / dw[shrinking]))
            gamma = _line_search(f, x, d, float(g @ d), eta)
            w = w - gamma * dw
            if gamma >= eta:
                w[np.argmin(np.where(shrinking, w, np.inf))] = 0.0
            active = {key: float(wi) for key, wi in zip(keys, w)}
        elif gap >= phi / lazy_factor:
            d = feasible_region.vertex(fw_key) - x
            gamma = _line_search(f, x, d, -gap, 1.0)
            if gamma >= 1.0:
                active = {fw_key: 1.0}
            else:
                for key in active:
                    active[key] *= 1.0 - gamma
                active[fw_key] = active.get(fw_key, 0.0) + gamma
        else:
            phi /= 2.0
            continue
        _prune(active)
        x = feasible_region.combine(active)
    return x, _info(max_iters, False, gap, active_set_size=len(active))


SOLVERS: dict[OracleKind, Callable] = {
    OracleKind.CG: frank_wolfe,
    OracleKind.BCG: blended_conditional_gradient,
    OracleKind.BPCG: blended_pairwise_conditional_gradient,
}


def conditional_gradients(solver: Callable,
                          objective: L2Objective,
                          tau: float,
                          psi: float | None = None,
                          boost: InverseBoost = InverseBoost.NONE,
                          solver_kwargs: dict[str, Any] | None = None) -> OracleResult:
    """Run a conditional gradient solver on ``objective`` over the L1 ball.

    With an inverse Gram matrix available (``objective.solution`` set), the
    closed-form minimiser short-cuts the solver: under ``full`` boosting it is
    returned directly when feasible, under ``weak`` boosting its loss serves as
    a lower bound and the term is reported as non-vanishing without solving
    when that bound already exceeds ``psi``.

    The solver is called as ``solver(f, grad, feasible_region, x0,
    **solver_kwargs)``; nothing else is passed to it.
    """
    n = objective.data_squared.shape[0]
    region = L1Ball(tau, n)
    solution = objective.solution
    if solution is not None:
        closed_loss = objective.loss(solution)
        if boost is InverseBoost.FULL and region.contains(solution):
            return OracleResult(solution, closed_loss, _info(0, True, 0.0, method="closed_form"))
        if boost is InverseBoost.WEAK and psi is not None and closed_loss > psi:
            return OracleResult(solution, closed_loss, _info(0, True, 0.0, method="lower_bound"))

    x, info = solver(objective.evaluate_function, objective.evaluate_gradient, region,
                     np.zeros(n), **(solver_kwargs or {}))
    x = np.asarray(x, dtype=float).reshape(-1)
    if x.size != n:
        raise ValueError(f"solver returned {x.size} coefficients, expected {n}.")
    info = dict(info or {})
    info.setdefault("converged", True)
    return OracleResult(x, objective.loss(x), info)


def solve(spec: OracleSpec,
          data: np.ndarray,
          labels: np.ndarray,
          data_squared: np.ndarray,
          data_labels: np.ndarray,
          labels_squared: float,
          *,
          tau: float,
          lmbda: float = 0.0,
          epsilon: float = 1e-3,
          max_iters: int = 10000,
          psi: float | None = None,
          data_squared_inverse: np.ndarray | None = None,
          boost: InverseBoost = InverseBoost.NONE) -> OracleResult:
    """Find the coefficient vector of ``labels`` over ``data`` and its loss.

    Parameters
    ----------
    spec : OracleSpec
        Oracle to use.
    data : ndarray of shape (m, n)
        Evaluations of the current O-terms.
    labels : ndarray of shape (m,)
        Evaluation of the candidate border term.
    data_squared, data_labels, labels_squared
        ``data.T @ data``, ``data.T @ labels`` and ``labels @ labels``.
    tau : float
        L1 radius of the feasible region.
    lmbda : float
        Ridge weight.  Must be zero when ``data_squared_inverse`` is given.
    epsilon : float
        Convergence tolerance of the built-in solvers.
    max_iters : int
        Iteration budget of the built-in solvers.  An external solver only
        receives the keyword arguments of ``spec``.
    psi : float, optional
        Vanishing threshold, used by weak inverse hessian boosting.
    data_squared_inverse : ndarray, optional
        Inverse of ``data_squared``.
    boost : InverseBoost
        How to use ``data_squared_inverse``.

    Returns
    -------
    result : OracleResult
        Coefficient vector ``x`` of the relation ``labels - data @ x`` and the
        achieved loss.  Without O-terms the coefficient vector is empty and
        the loss is ``labels @ labels / m``.
    """
    labels = np.asarray(labels, dtype=float).reshape(-1)
    m, n = data.shape
    if labels.size != m:
        raise ValueError(f"labels have {labels.size} entries, data has {m} rows.")
    if n == 0:
        return OracleResult(np.zeros(0), float(labels_squared) / m,
                            _info(0, True, 0.0, method="empty"))

    if spec.kind is OracleKind.ABM:
        x, loss, leading = abm(data, labels, data_squared, data_labels, labels_squared)
        return OracleResult(x, loss, _info(0, True, 0.0, method="ABM"), leading)

    objective = L2Objective(m, data_squared, data_labels, labels_squared, lmbda=lmbda,
                            data_squared_inverse=data_squared_inverse)
    if spec.kind is OracleKind.EXTERNAL:
        solver, solver_kwargs = spec.function, spec.kwargs
    else:
        solver = SOLVERS[spec.kind]
        solver_kwargs = {"epsilon": epsilon, "max_iters": max_iters, **spec.kwargs}
    return conditional_gradients(solver, objective, tau, psi=psi, boost=boost,
                                 solver_kwargs=solver_kwargs)
