import logging

import pytest
import torch

from solvers.dense import SingularProjectionError, invert_projection, tridiagonal
from solvers.lanczos import LanczosSolver
from solvers.metrics import SolverTimers


class DenseOperator:
    def __init__(self, A):
        self.A = A

    def apply(self, u):
        return self.A @ u


def _spread_operator(n=20):
    """Symmetric matrix with eigenvalues spread over [1, 1.5]."""
    gen = torch.Generator().manual_seed(0)
    Q, _ = torch.linalg.qr(torch.randn((n, n), generator=gen, dtype=torch.float64))
    return Q @ torch.diag(torch.linspace(1.0, 1.5, n, dtype=torch.float64)) @ Q.T


def test_tridiagonal():
    H = tridiagonal(torch.tensor([1.0, 2.0, 3.0]), torch.tensor([4.0, 5.0]))
    expected = torch.tensor([[1.0, 4.0, 0.0], [4.0, 2.0, 5.0], [0.0, 5.0, 3.0]])
    assert torch.equal(H, expected)
    with pytest.raises(ValueError):
        tridiagonal(torch.tensor([1.0, 2.0]), torch.tensor([4.0, 5.0]))


def test_invert_projection_singular():
    with pytest.raises(SingularProjectionError):
        invert_projection(torch.tensor([[1.0, 1.0], [1.0, 1.0]], dtype=torch.float64))


def test_full_basis_solves_exactly():
    gen = torch.Generator().manual_seed(1)
    S = torch.randn((6, 6), generator=gen, dtype=torch.float64)
    A = 4.0 * torch.eye(6, dtype=torch.float64) + 0.1 * (S + S.T)
    b = torch.randn(6, generator=gen, dtype=torch.float64)

    result = LanczosSolver(max_iter=6).solve(DenseOperator(A), b)
    assert result.iterations == 6
    torch.testing.assert_close(result.x, torch.linalg.solve(A, b), atol=1e-8, rtol=1e-8)


def test_fixed_budget_runs_to_the_end():
    A = _spread_operator()
    b = torch.ones(20, dtype=torch.float64)
    result = LanczosSolver().solve(DenseOperator(A), b)

    assert result.iterations == 10
    assert result.converged
    assert len(result.diff_norms) == 8
    for earlier, later in zip(result.diff_norms, result.diff_norms[1:]):
        assert later <= earlier * (1.0 + 1e-6) + 1e-14
    torch.testing.assert_close(result.x, torch.linalg.solve(A, b), atol=1e-5, rtol=0.0)


def test_stop_on_convergence_ends_early():
    A = _spread_operator()
    b = torch.ones(20, dtype=torch.float64)
    result = LanczosSolver(stop_on_convergence=True).solve(DenseOperator(A), b)

    assert result.converged
    assert 3 <= result.iterations < 10
    assert result.diff_norms[-1] < 1e-5
    torch.testing.assert_close(result.x, torch.linalg.solve(A, b), atol=1e-4, rtol=0.0)


def test_indefinite_operator_with_zero_first_projection():
    A = torch.tensor([[0.0, 1.0], [1.0, 0.0]], dtype=torch.float64)
    b = torch.tensor([1.0, 0.0], dtype=torch.float64)
    expected = torch.tensor([0.0, 1.0], dtype=torch.float64)

    result = LanczosSolver(max_iter=2).solve(DenseOperator(A), b)
    assert result.iterations == 2
    torch.testing.assert_close(result.x, expected)

    result = LanczosSolver().solve(DenseOperator(A), b)
    assert result.converged
    torch.testing.assert_close(result.x, expected)


def test_single_iteration_budget():
    A = 2.0 * torch.eye(3, dtype=torch.float64)
    b = torch.tensor([1.0, -2.0, 3.0], dtype=torch.float64)
    result = LanczosSolver(max_iter=1).solve(DenseOperator(A), b)
    assert result.iterations == 1
    torch.testing.assert_close(result.x, 0.5 * b)


def test_identity_hits_invariant_subspace():
    b = torch.tensor([1.0, -2.0, 3.0], dtype=torch.float64)
    result = LanczosSolver().solve(DenseOperator(torch.eye(3, dtype=torch.float64)), b)
    assert result.iterations == 1
    assert result.converged
    torch.testing.assert_close(result.x, b)


def test_zero_right_hand_side():
    result = LanczosSolver().solve(DenseOperator(torch.eye(3, dtype=torch.float64)), torch.zeros(3, dtype=torch.float64))
    assert result.iterations == 0
    assert torch.count_nonzero(result.x) == 0


def test_singular_operator_is_fatal():
    with pytest.raises(SingularProjectionError):
        LanczosSolver().solve(DenseOperator(torch.zeros((3, 3), dtype=torch.float64)), torch.ones(3, dtype=torch.float64))


def test_invalid_budget():
    with pytest.raises(ValueError):
        LanczosSolver(max_iter=0)


def test_dpd_friction_solve(fluid):
    system, pair, neighbors = fluid
    rhs = pair.compute(system, neighbors, dt=0.04)
    op = pair.operator(system, neighbors, dt=0.04)

    result = LanczosSolver().solve(op, rhs)
    residual = torch.linalg.vector_norm(op.apply(result.x) - rhs) / torch.linalg.vector_norm(rhs)
    assert result.converged
    assert residual.item() < 1e-8


def test_timers_track_applications(caplog):
    timers = SolverTimers()
    solver = LanczosSolver(timers=timers)
    solver.solve(DenseOperator(_spread_operator()), torch.ones(20, dtype=torch.float64))

    assert timers.n_apply == 10
    assert timers.n_solve == 1
    assert timers.time_inv >= timers.time_mvm >= 0.0

    with caplog.at_level(logging.INFO, logger="solvers"):
        totals = timers.report()
    assert totals["n_solve"] == 1
    assert "time(mvm)" in caplog.text

    timers.reset()
    assert timers.n_apply == 0 and timers.time_inv == 0.0
