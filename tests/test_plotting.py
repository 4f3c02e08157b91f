import matplotlib

matplotlib.use("Agg")

import numpy as np  # noqa: E402

from oavi import fit  # noqa: E402
from oavi.plotting import plot_degree_sizes, plot_losses  # noqa: E402


def test_plots_are_written(tmp_path):
    X = np.random.default_rng(0).uniform(0.0, 1.0, size=(15, 2))
    _, basis = fit(X, psi=0.005, oracle="ABM", max_degree=3)
    losses = tmp_path / "losses.png"
    sizes = tmp_path / "sizes.png"
    plot_losses(basis, psi=0.005, outfile=str(losses))
    plot_degree_sizes(basis, outfile=str(sizes))
    assert losses.stat().st_size > 0
    assert sizes.stat().st_size > 0
