from __future__ import annotations
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Protocol
import logging
import torch
from solvers.dense import tridiagonal, invert_projection, unit_vector
from solvers.metrics import SolverTimers

logger = logging.getLogger(__name__)


class LinearOperator(Protocol):
    """Symmetric linear map on state vectors, applied without forming its matrix."""

    def apply(self, u: torch.Tensor) -> torch.Tensor: ...


@dataclass
class LanczosResult:
    x: torch.Tensor
    iterations: int
    converged: bool
    diff_norms: list[float] = field(default_factory=list)


class LanczosSolver:
    """
    Approximate solution of A x = b for a symmetric matrix-free operator A by
    projection onto the Krylov subspace span{b, Ab, A^2 b, ...}.

    Each iteration extends the orthonormal basis V with the three-term Lanczos
    recurrence, assembles the k x k tridiagonal projection H_k and forms
    x_k = |b| V_k H_k^{-1} e_1 from k = 2 on (k = 1 only for a budget of one
    or an invariant first vector). From k = 3 on, |x_k - x_{k-1}| < tol marks
    convergence.

    Parameters
    ----------
    max_iter : int
        Size of the largest Krylov basis (iteration budget).
    tol : float
        Threshold on |x_k - x_{k-1}|.
    stop_on_convergence : bool
        If False the full budget always runs and convergence is only reported,
        which keeps results identical regardless of the tolerance.
    breakdown_tol : float
        Relative size of the new Lanczos vector below which the Krylov subspace
        is taken to be invariant and the current solution exact.
    timers : SolverTimers, optional
        Accumulators charged with the time spent in operator applications and solves.
    """

    def __init__(self, max_iter: int = 10, tol: float = 1e-5, stop_on_convergence: bool = False, breakdown_tol: float = 1e-12, timers: SolverTimers | None = None):
        if max_iter < 1:
            raise ValueError("Lanczos needs an iteration budget of at least 1")
        if tol <= 0:
            raise ValueError("Lanczos tolerance must be positive")
        self.max_iter = max_iter
        self.tol = tol
        self.stop_on_convergence = stop_on_convergence
        self.breakdown_tol = breakdown_tol
        self.timers = timers

    def _apply(self, op: LinearOperator, v: torch.Tensor) -> torch.Tensor:
        with self.timers.mvm() if self.timers is not None else nullcontext():
            return op.apply(v)

    @staticmethod
    def _reconstruct(V: list[torch.Tensor], alpha: list[float], beta: list[float], norm: float) -> torch.Tensor:
        Vk = torch.stack(V)                                               # (k, 3N)
        H = tridiagonal(Vk.new_tensor(alpha), Vk.new_tensor(beta))        # (k, k)
        coeffs = invert_projection(H) @ unit_vector(len(V), device=Vk.device, dtype=Vk.dtype)
        return norm * (coeffs @ Vk)

    def solve(self, op: LinearOperator, b: torch.Tensor) -> LanczosResult:
        with self.timers.inv() if self.timers is not None else nullcontext():
            return self._solve(op, b)

    def _solve(self, op: LinearOperator, b: torch.Tensor) -> LanczosResult:
        norm = float(torch.linalg.vector_norm(b))
        if norm == 0.0:
            return LanczosResult(x=torch.zeros_like(b), iterations=0, converged=True)

        V = [b / norm]
        alpha, beta = [], []
        rk = self._apply(op, V[0])
        alpha.append(float(torch.dot(V[0], rk)))
        xk = None  # H_1 alone may be singular, first solve at k = 2

        diff_norms = []
        converged = False
        for k in range(2, self.max_iter + 1):
            rk = rk - alpha[-1] * V[-1]
            if k > 2:
                rk = rk - beta[-1] * V[-2]

            beta_k = float(torch.linalg.vector_norm(rk))
            scale = max(abs(alpha[-1]), beta[-1] if beta else 0.0)
            if beta_k <= self.breakdown_tol * scale:
                logger.debug("Lanczos invariant subspace reached at k=%d", k - 1)
                converged = True
                break

            beta.append(beta_k)
            V.append(rk / beta_k)
            rk = self._apply(op, V[-1])
            alpha.append(float(torch.dot(V[-1], rk)))

            x_new = self._reconstruct(V, alpha, beta, norm)
            if k >= 3:
                diff_norm = float(torch.linalg.vector_norm(xk - x_new))
                diff_norms.append(diff_norm)
                if diff_norm < self.tol and not converged:
                    converged = True
                    logger.debug("Lanczos converged at k=%d, |dx| = %g", k, diff_norm)
                    if self.stop_on_convergence:
                        xk = x_new
                        break
            xk = x_new

        if xk is None:
            xk = self._reconstruct(V, alpha, beta, norm)
        return LanczosResult(x=xk, iterations=len(V), converged=converged, diff_norms=diff_norms)

    def __repr__(self) -> str:
        return f"LanczosSolver(max_iter={self.max_iter}, tol={self.tol:.3g}, stop_on_convergence={self.stop_on_convergence})"
