"""Miscellaneous helpers: seeding, timing and configuration."""

from __future__ import annotations

import logging
import math
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, fields
from typing import Any

import numpy as np
import yaml

logger = logging.getLogger(__name__)


def set_seed(seed: int | None) -> np.random.Generator:
    """Set the global NumPy random seed and return a generator.

    Parameters
    ----------
    seed : int or None
        Seed for the random number generator.  If ``None``, a random seed is
        drawn from the operating system.

    Returns
    -------
    rng : numpy.random.Generator
        A NumPy random number generator initialised with the given seed.
    """
    if seed is None:
        seed = np.random.SeedSequence().entropy
    rng = np.random.default_rng(seed)
    np.random.seed(seed % 2**32)  # for legacy APIs
    return rng


@contextmanager
def timer(message: str | None = None):
    """A context manager logging the time spent in a block of code.

    Parameters
    ----------
    message : str, optional
        If provided, this string is logged together with the elapsed time
        upon exit.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if message:
            logger.info("%s: %.3f s", message, elapsed)


def load_config(config_path: str) -> dict:
    """Load a YAML configuration file.

    Parameters
    ----------
    config_path : str
        Path to a YAML file.

    Returns
    -------
    cfg : dict
        Configuration dictionary (empty for an empty file).
    """
    with open(config_path, 'r', encoding='utf-8') as f:
        cfg = yaml.safe_load(f)
    return cfg or {}


def derive_tau(psi: float) -> float:
    """Default L1 radius for a vanishing extent ``psi``.

    ``tau = (3/2) ** ceil(-log(psi) / log(4))``.
    """
    if not psi > 0:
        raise ValueError(f"psi must be positive, got {psi}.")
    return 1.5 ** math.ceil(-math.log(psi) / math.log(4))


@dataclass
class OAVIConfig:
    """Options recognised by :class:`oavi.fit_loop.OAVI`.

    ``lmbda`` is spelled ``lambda`` in configuration files.  ``tau=None`` means
    the radius is derived from ``psi`` with :func:`derive_tau`.
    """

    max_degree: int = 10
    psi: float = 0.1
    epsilon: float = 0.001
    tau: float | None = None
    lmbda: float = 0.0
    oracle: str = "CG"
    inverse_hessian_boost: str = "none"
    max_iters: int = 10000
    oracle_kwargs: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> "OAVIConfig":
        cfg = dict(cfg or {})
        if "lambda" in cfg:
            cfg["lmbda"] = cfg.pop("lambda")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(cfg) - known)
        if unknown:
            raise ValueError(f"unknown configuration keys: {unknown}.")
        return cls(**cfg)

    @classmethod
    def from_yaml(cls, config_path: str) -> "OAVIConfig":
        return cls.from_dict(load_config(config_path))

    def to_dict(self) -> dict[str, Any]:
        cfg = asdict(self)
        cfg["lambda"] = cfg.pop("lmbda")
        return cfg
