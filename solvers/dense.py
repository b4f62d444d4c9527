from __future__ import annotations
import torch

"""dense.py
Small dense matrices of the Lanczos projection. Sizes never exceed the iteration budget.
"""

class SingularProjectionError(RuntimeError):
    """The projected tridiagonal system cannot be inverted."""


def tridiagonal(alpha: torch.Tensor, beta: torch.Tensor) -> torch.Tensor:
    """
    Symmetric tridiagonal matrix with diagonal `alpha` (k,) and off-diagonal `beta` (k-1,).
    """
    if beta.shape[0] != alpha.shape[0] - 1:
        raise ValueError(f"off-diagonal needs {alpha.shape[0] - 1} entries, got {beta.shape[0]}")
    H = torch.diag(alpha)
    if beta.numel():
        H = H + torch.diag(beta, 1) + torch.diag(beta, -1)
    return H


def invert_projection(H: torch.Tensor) -> torch.Tensor:
    """Inverse of the small projected matrix; singular or non-finite input is fatal."""
    inverse, info = torch.linalg.inv_ex(H)
    if int(info) != 0 or not bool(torch.isfinite(inverse).all()):
        raise SingularProjectionError(f"projected {H.shape[0]}x{H.shape[0]} Lanczos matrix is singular")
    return inverse


def unit_vector(k: int, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float64) -> torch.Tensor:
    e1 = torch.zeros(k, device=device, dtype=dtype)
    e1[0] = 1.0
    return e1
