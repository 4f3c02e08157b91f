"""Plotting utilities for inspecting OAVI fits."""

from __future__ import annotations

import matplotlib.pyplot as plt
import numpy as np

from .basis_state import BasisView


def plot_losses(basis: BasisView,
                psi: float,
                title: str = "Oracle loss per border term",
                outfile: str | None = None) -> None:
    """Plot the oracle loss of every classified border term against ``psi``.

    Parameters
    ----------
    basis : BasisView
        Fitted basis; its trace supplies the losses in classification order.
    psi : float
        Vanishing extent, drawn as a horizontal line.
    title : str, optional
        Title of the plot.
    outfile : str, optional
        If provided, the figure is saved to this path instead of shown.
    """
    fig, ax = plt.subplots(figsize=(10, 5))
    offset = 0
    for rec in basis.trace:
        steps = np.arange(offset, offset + len(rec.losses))
        # Exact fits have zero loss; keep them visible on the log axis.
        losses = np.maximum(np.asarray(rec.losses, dtype=float), np.finfo(float).tiny)
        ax.semilogy(steps, losses, marker='o', linestyle='', label=f"degree {rec.degree}")
        offset += len(rec.losses)
    ax.axhline(psi, color='k', linestyle='--', linewidth=1.0, label="psi")
    ax.set_xlabel("Border term")
    ax.set_ylabel("Loss")
    ax.grid(True, which='both', linestyle='--', linewidth=0.5)
    ax.legend(loc='best')

    plt.title(title)
    plt.tight_layout()
    if outfile:
        plt.savefig(outfile)
        plt.close(fig)
    else:
        plt.show()


def plot_degree_sizes(basis: BasisView,
                      title: str = "O-terms and G-polynomials per degree",
                      outfile: str | None = None) -> None:
    """Bar chart of admitted O-terms and vanishing terms at every degree."""
    degrees = np.array([rec.degree for rec in basis.trace])
    admitted = np.array([rec.admitted for rec in basis.trace])
    vanished = np.array([rec.vanished for rec in basis.trace])
    purged = np.array([rec.purged for rec in basis.trace])

    width = 0.27
    fig, ax = plt.subplots(figsize=(6, 5))
    ax.bar(degrees - width, admitted, width, label="O")
    ax.bar(degrees, vanished, width, label="G")
    ax.bar(degrees + width, purged, width, label="purged")
    ax.set_xlabel("Degree")
    ax.set_ylabel("Terms")
    ax.set_xticks(degrees)
    ax.set_title(title)
    ax.grid(True, axis='y', linestyle='--', linewidth=0.5)
    ax.legend(loc='best')
    plt.tight_layout()
    if outfile:
        plt.savefig(outfile)
        plt.close(fig)
    else:
        plt.show()
