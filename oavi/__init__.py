"""Oracle approximate vanishing ideal (OAVI) package.

This package computes an approximate vanishing ideal of a finite point set and
turns it into a feature transformation.  The main components include:

* :mod:`term_order` – degree-lexicographic ordering, deduplication and index maps;
* :mod:`border` – border construction, monomial evaluation and purging;
* :mod:`streaming_gram` – incremental Gram matrix and inverse updates;
* :mod:`oracles` – conditional gradient oracles over the L1 ball and the
  L1 projection;
* :mod:`baselines` – the SVD-based ABM oracle and from-scratch Gram computations;
* :mod:`basis_state` – the accumulated O-terms, leading terms and G-polynomials;
* :mod:`fit_loop` – the degree-by-degree fit;
* :mod:`evaluation` – applying a fitted basis to new data;
* :mod:`metrics` – diagnostics of fits and Gram updates;
* :mod:`plotting` – figures of a fit trace;
* :mod:`utils` – seeding, timers and configuration parsing.

The top-level API exports the :class:`OAVI` class for convenience.

"""

from .evaluation import evaluate  # noqa: F401
from .fit_loop import OAVI, fit  # noqa: F401

__all__ = ["OAVI", "fit", "evaluate"]
