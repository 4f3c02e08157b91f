"""Streaming updates of a Gram matrix and its inverse.

This module maintains ``G = A.T @ A`` (and optionally ``G^{-1}``) for a matrix
``A`` that grows by one column at a time.  Given a new column ``c``, the cross
term ``b = A.T @ c`` and the scalar ``s = c.T @ c``, the extended Gram matrix is
the block matrix

    G' = [[G,   b],
          [b.T, s]],

which costs ``O(m)`` once ``b`` is known.  The inverse is extended through the
Schur complement ``d = s - b.T @ G^{-1} @ b``: with ``u = G^{-1} @ b``,

    G'^{-1} = [[G^{-1} + u u.T / d, -u / d],
               [-u.T / d,            1 / d]],

an ``O(m^2)`` update instead of the ``O(m^3)`` of a fresh inversion.  When
``|d|`` is tiny the new column is (numerically) in the span of ``A`` and the
update is refused.

Example
-------

```python
import numpy as np
from oavi.streaming_gram import extend

A = np.random.randn(50, 3)
G = A.T @ A
G_inv = np.linalg.inv(G)
c = np.random.randn(50)
A, G, G_inv = extend(A, G, c, A.T @ c, c @ c, G_inv=G_inv)
```
"""

from __future__ import annotations

import logging
from enum import Enum

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_STABILITY_THRESHOLD = 1e-10


class IllConditionedUpdate(FloatingPointError):
    """Raised when the Schur complement of an inverse update is too small."""


class InverseBoost(str, Enum):
    """Policy for maintaining the inverse Gram matrix during a fit.

    ``none`` never maintains it.  ``weak`` maintains it while the matrix is
    narrower than the number of data points (beyond that the Gram matrix is
    singular) and uses it to rule out vanishing candidates cheaply.  ``full``
    always maintains it and uses the closed-form solution directly when it is
    feasible.  Both ``weak`` and ``full`` fall back to ``none`` on an
    ill-conditioned update.
    """

    NONE = "none"
    WEAK = "weak"
    FULL = "full"

    @classmethod
    def parse(cls, value) -> "InverseBoost":
        if isinstance(value, cls):
            return value
        if value is None or value is False:
            return cls.NONE
        key = str(value).strip().lower()
        if key == "false":
            return cls.NONE
        try:
            return cls(key)
        except ValueError:
            raise ValueError(
                f"unknown inverse_hessian_boost {value!r}; expected one of "
                f"{[m.value for m in cls]}."
            ) from None


def extend(A: np.ndarray,
           G: np.ndarray,
           column: np.ndarray,
           A_column_dot: np.ndarray,
           column_squared_norm: float,
           G_inv: np.ndarray | None = None,
           threshold: float = DEFAULT_STABILITY_THRESHOLD
           ) -> tuple[np.ndarray, np.ndarray, np.ndarray | None]:
    """Append ``column`` to ``A`` and extend ``G`` and ``G_inv`` accordingly.

    Parameters
    ----------
    A : ndarray of shape (k, m)
        Current matrix.
    G : ndarray of shape (m, m)
        ``A.T @ A``.
    column : ndarray of shape (k,)
        Column to append.
    A_column_dot : ndarray of shape (m,)
        ``A.T @ column``.
    column_squared_norm : float
        ``column @ column``.
    G_inv : ndarray of shape (m, m), optional
        Inverse of ``G``.  If given, the inverse of the extended Gram matrix is
        returned as well.
    threshold : float
        Relative stability threshold; the inverse update is refused when
        ``|d| <= threshold * column_squared_norm``.

    Returns
    -------
    A_new : ndarray of shape (k, m+1)
    G_new : ndarray of shape (m+1, m+1)
    G_inv_new : ndarray of shape (m+1, m+1) or None

    Raises
    ------
    ValueError
        If the shapes are inconsistent.
    IllConditionedUpdate
        If ``G_inv`` is given and the Schur complement is below the threshold.
        Nothing is returned in that case; the caller decides how to continue.
    """
    A = np.asarray(A, dtype=float)
    G = np.asarray(G, dtype=float)
    column = np.asarray(column, dtype=float).reshape(-1)
    b = np.asarray(A_column_dot, dtype=float).reshape(-1)
    s = float(column_squared_norm)
    k, m = A.shape
    if column.size != k:
        raise ValueError(f"column has {column.size} entries, matrix has {k} rows.")
    if G.shape != (m, m) or b.size != m:
        raise ValueError(
            f"Gram matrix {G.shape} and cross term {b.shape} do not match {m} columns."
        )

    G_inv_new = None
    if G_inv is not None:
        G_inv = np.asarray(G_inv, dtype=float)
        if G_inv.shape != (m, m):
            raise ValueError(f"inverse Gram matrix {G_inv.shape} does not match {m} columns.")
        u = G_inv @ b
        d = s - b @ u
        if not np.isfinite(d) or abs(d) <= threshold * max(s, np.finfo(float).tiny):
            raise IllConditionedUpdate(
                f"Schur complement {d:.3e} too small for column norm {s:.3e}."
            )
        G_inv_new = np.empty((m + 1, m + 1))
        G_inv_new[:m, :m] = G_inv + np.outer(u, u) / d
        G_inv_new[:m, m] = -u / d
        G_inv_new[m, :m] = -u / d
        G_inv_new[m, m] = 1.0 / d

    G_new = np.empty((m + 1, m + 1))
    G_new[:m, :m] = G
    G_new[:m, m] = b
    G_new[m, :m] = b
    G_new[m, m] = s
    A_new = np.hstack((A, column[:, None]))
    return A_new, G_new, G_inv_new


class StreamingGram:
    """Growing matrix together with its Gram matrix and, optionally, inverse.

    Parameters
    ----------
    n_rows : int
        Number of rows (data points) of the matrix.
    boost : InverseBoost or str
        Inverse maintenance policy.
    threshold : float
        Stability threshold passed to :func:`extend`.

    Notes
    -----
    The accumulator starts with zero columns, for which the Gram matrix and
    its inverse are both empty ``(0, 0)`` matrices.  An ill-conditioned update
    is not an error: the inverse is dropped, :attr:`degraded` is set and the
    policy switches to ``none`` for the lifetime of the object.
    """

    def __init__(self,
                 n_rows: int,
                 boost: InverseBoost | str = InverseBoost.NONE,
                 threshold: float = DEFAULT_STABILITY_THRESHOLD) -> None:
        self.n_rows = int(n_rows)
        self.boost = InverseBoost.parse(boost)
        self.threshold = float(threshold)
        self.degraded = False
        self.A = np.zeros((self.n_rows, 0))
        self.G = np.zeros((0, 0))
        self.G_inv = np.zeros((0, 0)) if self.boost is not InverseBoost.NONE else None

    @property
    def size(self) -> int:
        return self.A.shape[1]

    def cross(self, column: np.ndarray) -> np.ndarray:
        """``A.T @ column``."""
        return self.A.T @ column

    def _disable_inverse(self, reason: str) -> None:
        self.G_inv = None
        self.boost = InverseBoost.NONE
        self.degraded = True
        logger.warning("Inverse Gram maintenance disabled at %d columns: %s", self.size, reason)

    def _retire_inverse(self) -> None:
        self.G_inv = None
        self.boost = InverseBoost.NONE
        logger.debug("Weak inverse Gram maintenance ends at %d columns (%d data points)",
                     self.size, self.n_rows)

    def append(self,
               column: np.ndarray,
               cross: np.ndarray | None = None,
               squared_norm: float | None = None) -> None:
        """Append a column, reusing precomputed inner products when given."""
        column = np.asarray(column, dtype=float).reshape(-1)
        if cross is None:
            cross = self.cross(column)
        if squared_norm is None:
            squared_norm = float(column @ column)

        G_inv = self.G_inv
        if G_inv is not None and self.boost is InverseBoost.WEAK and self.size + 1 > self.n_rows:
            self._retire_inverse()
            G_inv = None

        try:
            self.A, self.G, self.G_inv = extend(
                self.A, self.G, column, cross, squared_norm,
                G_inv=G_inv, threshold=self.threshold)
        except IllConditionedUpdate as exc:
            self._disable_inverse(str(exc))
            self.A, self.G, self.G_inv = extend(
                self.A, self.G, column, cross, squared_norm, threshold=self.threshold)
