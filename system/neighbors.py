from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol
import torch
from system.system import System
from system.topology import Topology

@dataclass(frozen=True)
class Neighbors:
    """Half neighbor list: every interacting pair appears once.

    pairs  : (M, 2) LongTensor of local bead indices (i, j)
    factor : (M,) exclusion scale of each pair
    """
    pairs: torch.Tensor
    factor: torch.Tensor

    def __len__(self) -> int:
        return self.pairs.shape[0]


class NeighborProvider(Protocol):
    def build(self, system: System) -> Neighbors: ...


class BruteForceNeighbors:
    """All-pairs neighbor list with minimum image separations.

    Parameters
    ----------
    cutoff : float
        Largest pair cutoff in the coefficient table; pairs further apart are skipped.
    topology : Topology, optional
        Source of special-bond weights. Pairs with weight 0 are left out of the list.
    skin : float
        Extra distance kept beyond the cutoff.
    """

    def __init__(self, cutoff: float, topology: Topology | None = None, skin: float = 0.0):
        if cutoff <= 0:
            raise ValueError("neighbor cutoff must be positive")
        if skin < 0:
            raise ValueError("neighbor skin must be non-negative")
        self.cutoff = cutoff
        self.skin = skin
        self.topology = topology

    def build(self, system: System) -> Neighbors:
        reach = self.cutoff + self.skin
        if reach > system.box.half_min_periodic_edge:
            raise ValueError(f"cutoff + skin = {reach:g} exceeds half the periodic box length, minimum image is ambiguous")

        N = system.n_atoms
        pairs = torch.triu_indices(N, N, offset=1, device=system.device).T  # (M, 2)
        rsq = system.box.separation(system.pos, pairs).pow(2).sum(dim=-1)
        pairs = pairs[rsq < reach * reach]

        if self.topology is None:
            factor = torch.ones(pairs.shape[0], device=system.device, dtype=system.dtype)
        else:
            factor = self.topology.special_factor(pairs).to(device=system.device, dtype=system.dtype)
            keep = factor > 0.0
            pairs, factor = pairs[keep], factor[keep]
        return Neighbors(pairs=pairs, factor=factor)

    def __repr__(self):
        return f"BruteForceNeighbors(cutoff={self.cutoff:g}, skin={self.skin:g})"
