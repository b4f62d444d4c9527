from __future__ import annotations
from typing import Sequence
import torch

class Topology:
    """Bond topology of a DPD system, used only to scale pair interactions between bonded beads.

    Beads separated by one, two or three bonds get the special weights
    ``(w12, w13, w14)``; every other pair keeps weight 1.0.
    """
    # --- construction --------------------------------------------------------
    def __init__(self, n_atoms: int, special: Sequence[float] = (0.0, 0.0, 0.0), *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float64):
        """
        Parameters
        ----------
        n_atoms : int
            Number of beads the topology refers to.
        special : sequence of 3 floats
            Weights applied to 1-2, 1-3 and 1-4 neighbors.
        """
        if len(special) != 3:
            raise ValueError("special must hold the three weights (w12, w13, w14)")
        if any(w < 0.0 or w > 1.0 for w in special):
            raise ValueError("special weights must lie in [0, 1]")

        self.n_atoms = n_atoms
        self.special = tuple(float(w) for w in special)
        self.bonds = set()

        # Cache of the bead-pair -> weight map, rebuilt after add_bond
        self._weights = None

        self.device = torch.device(device)
        self.dtype = dtype

    # --- helpers --------------------------------------------------------
    def add_bond(self, i: int, j: int):
        """
        Add a bond between beads i and j.

        Parameters
        ----------
        i, j : int
            Bead indices, 0 <= i, j < n_atoms, i != j.
        """
        if i == j:
            raise ValueError("a bead cannot be bonded to itself")
        if not (0 <= i < self.n_atoms and 0 <= j < self.n_atoms):
            raise ValueError(f"bond ({i}, {j}) out of range for {self.n_atoms} beads")
        self.bonds.add((min(i, j), max(i, j)))
        self._weights = None

    def _special_weights(self) -> dict[tuple[int, int], float]:
        if self._weights is not None:
            return self._weights

        adjacency = {}
        for i, j in self.bonds:
            adjacency.setdefault(i, set()).add(j)
            adjacency.setdefault(j, set()).add(i)

        # breadth first out to three bonds; the shortest path decides the weight
        weights = {}
        for start in adjacency:
            seen = {start}
            frontier = {start}
            for depth in range(3):
                frontier = {n for f in frontier for n in adjacency[f]} - seen
                seen |= frontier
                for other in frontier:
                    key = (min(start, other), max(start, other))
                    weights.setdefault(key, self.special[depth])
        self._weights = weights
        return weights

    def special_factor(self, pairs: torch.Tensor) -> torch.Tensor:
        """
        Return the interaction weight of every pair.

        Parameters
        ----------
        pairs : torch.Tensor
            (M, 2) LongTensor of bead indices.

        Returns
        -------
        torch.Tensor
            (M,) tensor of weights, 1.0 for pairs that are not special.
        """
        weights = self._special_weights()
        factor = torch.ones(pairs.shape[0], device=self.device, dtype=self.dtype)
        if not weights:
            return factor
        for m, (i, j) in enumerate(pairs.tolist()):
            w = weights.get((min(i, j), max(i, j)))
            if w is not None:
                factor[m] = w
        return factor

    # --- misc --------------------------------------------------------
    def __repr__(self):
        w12, w13, w14 = self.special
        return f"Topology(beads={self.n_atoms}, bonds={len(self.bonds)}, special=({w12:g}, {w13:g}, {w14:g}))"
