"""Degree-lexicographic ordering of monomial terms.

Monomials are stored as integer exponent vectors, one term per column of a
matrix of shape ``(n, m)`` (``n`` variables, ``m`` terms).  This module
provides the total order used throughout the package together with the
sorting and deduplication routines built on top of it.

The order compares total degree first.  Ties are broken on the exponent
vectors read from the last variable backwards, so that for two variables the
degree-2 terms come out as ``x^2, x*y, y^2``.

Index bookkeeping across sorting, deduplication and purging is done with
:class:`IndexMap`, which records which source columns survive a sequence of
permutations and filters.  Composing maps keeps every index expressed in terms
of the columns the sequence started from.
"""

from __future__ import annotations

import numpy as np


class IndexMap:
    """Selection of columns from a source of known width.

    Parameters
    ----------
    indices : array_like of int
        Positions in the source that are kept, in output order.
    source_size : int
        Number of columns of the source the positions refer to.

    Notes
    -----
    A map is immutable.  ``a.then(b)`` composes two maps where ``b`` selects
    from the output of ``a``; the result selects directly from the source of
    ``a``.
    """

    __slots__ = ("_indices", "_source_size")

    def __init__(self, indices, source_size: int) -> None:
        idx = np.asarray(indices, dtype=np.int64).reshape(-1)
        source_size = int(source_size)
        if idx.size and (idx.min() < 0 or idx.max() >= source_size):
            raise ValueError(
                f"indices out of range for a source of {source_size} columns."
            )
        idx.setflags(write=False)
        self._indices = idx
        self._source_size = source_size

    @classmethod
    def identity(cls, size: int) -> "IndexMap":
        return cls(np.arange(size), size)

    @property
    def indices(self) -> np.ndarray:
        return self._indices

    @property
    def source_size(self) -> int:
        return self._source_size

    def __len__(self) -> int:
        return int(self._indices.size)

    def __repr__(self) -> str:
        return f"IndexMap({self._indices.tolist()}, source_size={self._source_size})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IndexMap):
            return NotImplemented
        return (self._source_size == other._source_size
                and np.array_equal(self._indices, other._indices))

    def is_identity(self) -> bool:
        return (len(self) == self._source_size
                and bool(np.all(self._indices == np.arange(self._source_size))))

    def then(self, other: "IndexMap") -> "IndexMap":
        """Compose with a map that selects from the output of ``self``."""
        if other.source_size != len(self):
            raise ValueError(
                f"cannot compose: map yields {len(self)} columns but the next "
                f"map expects {other.source_size}."
            )
        return IndexMap(self._indices[other.indices], self._source_size)

    def apply(self, matrix: np.ndarray) -> np.ndarray:
        """Select the mapped columns of ``matrix``."""
        matrix = np.asarray(matrix)
        if matrix.shape[-1] != self._source_size:
            raise ValueError(
                f"matrix has {matrix.shape[-1]} columns, map expects {self._source_size}."
            )
        return matrix[..., self._indices]


def total_degree(terms: np.ndarray) -> np.ndarray:
    """Total degree of every column of ``terms``."""
    return np.asarray(terms).sum(axis=0)


def compare(t1: np.ndarray, t2: np.ndarray) -> int:
    """Compare two exponent vectors under the degree-lexicographic order.

    Returns ``-1`` if ``t1`` sorts before ``t2``, ``1`` if after and ``0`` if
    the vectors are equal.
    """
    t1 = np.asarray(t1).reshape(-1)
    t2 = np.asarray(t2).reshape(-1)
    if t1.shape != t2.shape:
        raise ValueError(f"terms have different lengths: {t1.size} and {t2.size}.")
    d1, d2 = int(t1.sum()), int(t2.sum())
    if d1 != d2:
        return -1 if d1 < d2 else 1
    for a, b in zip(t1[::-1], t2[::-1]):
        if a != b:
            return -1 if a < b else 1
    return 0


def _check_aux(terms: np.ndarray, aux: np.ndarray | None) -> None:
    if aux is not None and np.asarray(aux).shape[-1] != terms.shape[1]:
        raise ValueError(
            f"auxiliary matrix has {np.asarray(aux).shape[-1]} columns but there "
            f"are {terms.shape[1]} terms."
        )


def sort(terms: np.ndarray,
         aux: np.ndarray | None = None) -> tuple[np.ndarray, np.ndarray | None, IndexMap]:
    """Sort the columns of ``terms`` and permute ``aux`` accordingly.

    Parameters
    ----------
    terms : ndarray of shape (n, m)
        Exponent vectors as columns.
    aux : ndarray of shape (k, m), optional
        Matrix whose columns are aligned with ``terms`` (typically the
        evaluations of the terms over the data).

    Returns
    -------
    sorted_terms : ndarray of shape (n, m)
    sorted_aux : ndarray of shape (k, m) or None
    order : IndexMap
        The sorting permutation.  The sort is stable, so an already sorted
        matrix yields the identity permutation.
    """
    terms = np.asarray(terms)
    if terms.ndim != 2:
        raise ValueError(f"terms must be a 2-D matrix, got shape {terms.shape}.")
    _check_aux(terms, aux)
    m = terms.shape[1]
    if m == 0:
        return terms.copy(), None if aux is None else np.asarray(aux).copy(), IndexMap.identity(0)

    # np.lexsort uses the last key as the primary one.
    keys = [terms[i] for i in range(terms.shape[0])]
    keys.append(total_degree(terms))
    order = IndexMap(np.lexsort(keys), m)
    sorted_aux = None if aux is None else order.apply(aux)
    return order.apply(terms), sorted_aux, order


def unique(terms: np.ndarray,
           aux: np.ndarray | None = None) -> tuple[np.ndarray, np.ndarray | None, IndexMap]:
    """Sort ``terms`` and drop duplicate columns.

    The first occurrence (in sorted order) of every exponent vector is kept.
    The returned map selects the kept columns directly from the unsorted input,
    i.e. it is the composition of the sorting permutation with the
    deduplication filter.
    """
    sorted_terms, sorted_aux, order = sort(terms, aux)
    m = sorted_terms.shape[1]
    if m == 0:
        return sorted_terms, sorted_aux, order

    keep = np.ones(m, dtype=bool)
    keep[1:] = np.any(sorted_terms[:, 1:] != sorted_terms[:, :-1], axis=0)
    dedup = IndexMap(np.flatnonzero(keep), m)
    unique_aux = None if sorted_aux is None else dedup.apply(sorted_aux)
    return dedup.apply(sorted_terms), unique_aux, order.then(dedup)
