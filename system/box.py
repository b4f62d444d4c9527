from __future__ import annotations
import torch

"""box.py
Orthorhombic simulation box for DPD runs. Stored numbers are assumed to already be in simulation units.

* angles fixed at 90 deg, 90 deg, 90 deg
* Helpers (`volume`, `wrap`, `minimum_image`, `separation`)
"""

class Box:
    """Axis‑aligned simulation box.

    Parameters
    ----------
    edges : (3,) array‑like [Lx, Ly, Lz] – edge lengths in simulation units.
    bcs : (3,) sequence of 'p' (periodic) or 's' (shrinkwrap / open) per axis.
    device, dtype : torch kwargs for internal tensor representation.
    """
    edges: torch.Tensor
    # --- construction --------------------------------------------------------
    def __init__(self, edges: tuple[float, float, float] | torch.Tensor, bcs: tuple[str, str, str] = ("p", "p", "p"), *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float64):
        e = torch.as_tensor(edges, device=device, dtype=dtype).flatten()
        if e.numel() != 3:
            raise ValueError("Box expects three edge lengths [Lx, Ly, Lz].")
        if not torch.all(e > 0):
            raise ValueError("All box edge lengths must be positive.")

        if len(bcs) != 3:
            raise ValueError("Box expects three boundary conditions (e.g., ['p', 'p', 's']).")
        if not all(bc in {'p', 's'} for bc in bcs):
            raise ValueError("Boundary conditions must be either 'p' (periodic) or 's' (shrinkwrap).")

        self.edges = e
        self.bcs = tuple(bcs)
        self.device = torch.device(device)
        self.dtype = dtype
        self.periodic = torch.tensor([bc == 'p' for bc in self.bcs], device=self.device)

    # --- properties --------------------------------------------------------
    @property
    def volume(self) -> torch.Tensor:
        return self.edges.prod()

    @property
    def half_min_periodic_edge(self) -> float:
        """Largest cutoff for which the minimum image is unique."""
        if not bool(self.periodic.any()):
            return float("inf")
        return 0.5 * float(self.edges[self.periodic].min())

    # --- PBC helpers --------------------------------------------------------
    def wrap(self, pos: torch.Tensor) -> torch.Tensor:
        """Return positions wrapped into the primary cell along periodic axes."""
        wrapped = pos - torch.floor(pos / self.edges) * self.edges
        return torch.where(self.periodic, wrapped, pos)

    def minimum_image(self, delta: torch.Tensor) -> torch.Tensor:
        """
        Apply minimum image convention to displacement vectors.

        Parameters
        ----------
        delta : torch.Tensor
            Displacement vectors of shape (..., 3)

        Returns
        -------
        torch.Tensor
            Minimum image corrected displacement vectors
        """
        if not bool(self.periodic.any()):
            return delta
        image_shift = -self.edges * torch.floor(delta / self.edges + 0.5)
        return delta + image_shift * self.periodic

    def separation(self, pos: torch.Tensor, pairs: torch.Tensor) -> torch.Tensor:
        """Minimum image vectors x_i - x_j for a (M, 2) pair index tensor."""
        return self.minimum_image(pos[pairs[:, 0]] - pos[pairs[:, 1]])  # (M, 3)

    # --- misc --------------------------------------------------------
    def __repr__(self):
        Lx, Ly, Lz = self.edges.tolist()
        bcx, bcy, bcz = self.bcs
        return f"Box({Lx:g}{bcx}, {Ly:g}{bcy}, {Lz:g}{bcz})"
