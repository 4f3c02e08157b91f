import numpy as np
import pytest

from oavi.oracles import (
    L1Ball,
    L2Objective,
    OracleKind,
    OracleSpec,
    blended_conditional_gradient,
    blended_pairwise_conditional_gradient,
    frank_wolfe,
    l1_projection,
    solve,
)
from oavi.streaming_gram import InverseBoost

SOLVERS = [frank_wolfe, blended_conditional_gradient, blended_pairwise_conditional_gradient]


def _problem(seed=0, m=30):
    rng = np.random.default_rng(seed)
    A = rng.standard_normal((m, 3))
    x_true = np.array([0.5, -0.3, 0.1])
    b = A @ x_true
    return A, b, x_true


def _objective(A, b, **kwargs):
    return L2Objective(A.shape[0], A.T @ A, A.T @ b, float(b @ b), **kwargs)


def test_l1_projection_inside_is_noop():
    x = np.array([0.2, -0.3])
    np.testing.assert_array_equal(l1_projection(x, radius=1.0), x)


def test_l1_projection_known_value():
    np.testing.assert_allclose(l1_projection(np.array([3.0, 1.0]), radius=2.0), [2.0, 0.0])


def test_l1_projection_lands_on_sphere_and_is_closest():
    rng = np.random.default_rng(1)
    x = rng.standard_normal(6) * 3.0
    p = l1_projection(x, radius=1.5)
    assert np.abs(p).sum() == pytest.approx(1.5)
    for _ in range(50):
        q = l1_projection(rng.standard_normal(6), radius=1.5)
        assert np.linalg.norm(x - p) <= np.linalg.norm(x - q) + 1e-12


@pytest.mark.parametrize("radius", [0.0, -1.0])
def test_l1_projection_rejects_non_positive_radius(radius):
    with pytest.raises(ValueError):
        l1_projection(np.ones(3), radius=radius)


def test_l1_ball_decompose_and_combine():
    ball = L1Ball(1.0, 2)
    x = np.array([0.5, -0.25])
    active = ball.decompose(x)
    assert sum(active.values()) == pytest.approx(1.0)
    assert all(w >= 0 for w in active.values())
    np.testing.assert_allclose(ball.combine(active), x)
    with pytest.raises(ValueError):
        ball.decompose(np.array([1.0, 1.0]))


def test_objective_matches_direct_loss():
    A, b, _ = _problem()
    objective = _objective(A, b, lmbda=0.1)
    x = np.array([0.1, 0.2, -0.3])
    direct = np.sum((A @ x - b) ** 2) / A.shape[0] + 0.1 * x @ x
    assert objective.evaluate_function(x) == pytest.approx(direct)
    eps = 1e-6
    numeric = np.array([
        (objective.evaluate_function(x + eps * e) - objective.evaluate_function(x - eps * e)) / (2 * eps)
        for e in np.eye(3)
    ])
    np.testing.assert_allclose(objective.evaluate_gradient(x), numeric, rtol=1e-5, atol=1e-7)


def test_objective_rejects_regularisation_with_inverse():
    A, b, _ = _problem()
    with pytest.raises(ValueError):
        _objective(A, b, lmbda=0.5, data_squared_inverse=np.linalg.inv(A.T @ A))
    with pytest.raises(ValueError):
        _objective(A, b, lmbda=-1.0)


@pytest.mark.parametrize("solver", SOLVERS)
def test_solvers_recover_interior_solution(solver):
    A, b, x_true = _problem()
    objective = _objective(A, b)
    x, info = solver(objective.evaluate_function, objective.evaluate_gradient,
                     L1Ball(2.0, 3), np.zeros(3), epsilon=1e-7, max_iters=20000)
    assert info["converged"]
    np.testing.assert_allclose(x, x_true, atol=1e-2)
    assert objective.loss(x) < 1e-5


def test_solvers_agree_on_constrained_problem():
    A, b, _ = _problem(seed=5)
    objective = _objective(A, b)
    losses = []
    for solver in SOLVERS:
        x, _ = solver(objective.evaluate_function, objective.evaluate_gradient,
                      L1Ball(0.5, 3), np.zeros(3), epsilon=1e-6, max_iters=5000)
        assert np.abs(x).sum() <= 0.5 + 1e-9
        losses.append(objective.loss(x))
    assert max(losses) - min(losses) < 1e-2


def test_solver_reports_non_convergence():
    A, b, _ = _problem()
    objective = _objective(A, b)
    _, info = frank_wolfe(objective.evaluate_function, objective.evaluate_gradient,
                          L1Ball(2.0, 3), np.zeros(3), epsilon=1e-12, max_iters=3)
    assert not info["converged"]
    assert info["iterations"] == 3


def test_solve_without_o_terms():
    b = np.array([1.0, 2.0])
    result = solve(OracleSpec.parse("CG"), np.zeros((2, 0)), b, np.zeros((0, 0)),
                   np.zeros(0), float(b @ b), tau=1.0)
    assert result.coefficients.shape == (0,)
    assert result.loss == pytest.approx(2.5)


@pytest.mark.parametrize("name", ["CG", "BCG", "BPCG", "ABM"])
def test_solve_finds_exact_relation(name):
    A, b, x_true = _problem(seed=2)
    result = solve(OracleSpec.parse(name), A, b, A.T @ A, A.T @ b, float(b @ b),
                   tau=2.0, epsilon=1e-7)
    assert result.loss < 1e-5
    np.testing.assert_allclose(result.coefficients, x_true, atol=1e-2)


def test_full_boost_uses_closed_form_when_feasible():
    A, b, x_true = _problem(seed=3)
    G = A.T @ A
    result = solve(OracleSpec.parse("CG"), A, b, G, A.T @ b, float(b @ b), tau=2.0,
                   data_squared_inverse=np.linalg.inv(G), boost=InverseBoost.FULL)
    assert result.info["method"] == "closed_form"
    np.testing.assert_allclose(result.coefficients, x_true, atol=1e-10)


def test_weak_boost_skips_solver_for_clearly_non_vanishing_terms():
    rng = np.random.default_rng(6)
    A = rng.standard_normal((20, 2))
    b = rng.standard_normal(20) * 5.0
    G = A.T @ A
    result = solve(OracleSpec.parse("BPCG"), A, b, G, A.T @ b, float(b @ b), tau=2.0,
                   psi=0.1, data_squared_inverse=np.linalg.inv(G), boost=InverseBoost.WEAK)
    assert result.info["method"] == "lower_bound"
    assert result.loss > 0.1


def test_external_solver_receives_only_its_own_kwargs():
    calls = []

    def solver(f, grad, feasible_region, x0, **kwargs):
        calls.append(kwargs)
        return frank_wolfe(f, grad, feasible_region, x0, epsilon=kwargs["epsilon"])

    A, b, x_true = _problem(seed=4)
    spec = OracleSpec.parse(solver, {"epsilon": 1e-7, "tag": "custom"})
    assert spec.kind is OracleKind.EXTERNAL
    result = solve(spec, A, b, A.T @ A, A.T @ b, float(b @ b), tau=2.0, epsilon=0.5,
                   max_iters=3)
    assert calls == [{"epsilon": 1e-7, "tag": "custom"}]
    np.testing.assert_allclose(result.coefficients, x_true, atol=1e-2)


def test_oracle_spec_parsing():
    assert OracleSpec.parse("bpcg").kind is OracleKind.BPCG
    assert OracleSpec.parse(OracleKind.ABM).kind is OracleKind.ABM
    assert OracleSpec.parse("CG").kind.is_conditional_gradient
    assert not OracleSpec.parse("ABM").kind.is_conditional_gradient
    with pytest.raises(ValueError):
        OracleSpec.parse("newton")
    with pytest.raises(ValueError):
        OracleSpec.parse(OracleKind.EXTERNAL)
    with pytest.raises(TypeError):
        OracleSpec.parse(42)


def test_external_solver_with_plain_signature():
    def solver(f, grad, feasible_region, x0):
        assert isinstance(feasible_region, L1Ball)
        return frank_wolfe(f, grad, feasible_region, x0, epsilon=1e-7)

    A, b, x_true = _problem(seed=7)
    result = solve(OracleSpec.parse(solver), A, b, A.T @ A, A.T @ b, float(b @ b), tau=2.0)
    assert result.leading_coefficient == 1.0
    np.testing.assert_allclose(result.coefficients, x_true, atol=1e-2)


def test_abm_result_carries_unit_norm_scaling():
    rng = np.random.default_rng(8)
    a = rng.standard_normal(40)
    b = 3.0 * a + 0.1 * rng.standard_normal(40)
    A = a[:, None]
    result = solve(OracleSpec.parse("ABM"), A, b, A.T @ A, A.T @ b, float(b @ b), tau=2.0)
    relation = result.leading_coefficient * (b - A @ result.coefficients)
    assert 0.0 < result.leading_coefficient < 1.0
    assert result.loss == pytest.approx(np.mean(relation ** 2))
