import torch
from system.box import Box
from system.units import UnitSystem

class System:
    def __init__(self, pos: torch.Tensor, vel: torch.Tensor, types: torch.Tensor, box: Box, units: UnitSystem, tags: torch.Tensor = None, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float64):
        """
        Initialize the particle state of one partition.

        Parameters
        ----------
        pos : torch.Tensor
            Bead positions of shape (N, 3).
        vel : torch.Tensor
            Bead velocities of shape (N, 3), same shape as `pos`.
        types : torch.Tensor
            Integer bead types of shape (N,), 1-based.
        box : Box
            Simulation box defining boundaries.
        units : UnitSystem
            Unit system providing kB.
        tags : torch.Tensor
            Dense 0-based relabeling of the beads of shape (N,). Row `n` of every
            per-bead tensor occupies entries `3*tags[n] + c` of a state vector.
            Defaults to `arange(N)`.
        """
        self.device = torch.device(device)
        self.dtype = dtype

        pos = torch.as_tensor(pos, device=self.device, dtype=self.dtype)
        vel = torch.as_tensor(vel, device=self.device, dtype=self.dtype)
        types = torch.as_tensor(types, device=self.device, dtype=torch.long)

        # --- shape checks -------------------------------------------------
        if pos.shape != vel.shape or pos.ndim != 2 or pos.shape[-1] != 3:
            raise ValueError("pos and vel must both be (N, 3)")
        N = pos.shape[0]
        if types.shape != (N,):
            raise ValueError(f"types must be ({N},), got {tuple(types.shape)}")
        if N and int(types.min()) < 1:
            raise ValueError("bead types are 1-based")

        if tags is None:
            tags = torch.arange(N, device=self.device)
        else:
            tags = torch.as_tensor(tags, device=self.device, dtype=torch.long)
            if tags.shape != (N,):
                raise ValueError(f"tags must be ({N},), got {tuple(tags.shape)}")
            if not torch.equal(torch.sort(tags).values, torch.arange(N, device=self.device)):
                raise ValueError("tags must be a dense 0-based relabeling of the beads")

        # --- store --------------------------------------------------------
        self.pos   = pos
        self.vel   = vel
        self.types = types
        self.tags  = tags
        self.box   = box
        self.units = units

    @property
    def n_atoms(self) -> int:
        return self.pos.shape[0]

    @property
    def ntypes(self) -> int:
        return int(self.types.max()) if self.n_atoms else 0

    # --- state vectors --------------------------------------------------------

    def to_state(self, per_atom: torch.Tensor) -> torch.Tensor:
        """Scatter an (N, 3) per-bead tensor into a (3N,) state vector ordered by tag."""
        state = torch.zeros_like(per_atom)
        state[self.tags] = per_atom
        return state.reshape(-1)

    def from_state(self, state: torch.Tensor) -> torch.Tensor:
        """Gather a (3N,) state vector back into (N, 3) rows in local order."""
        return state.reshape(-1, 3)[self.tags]

    # --- observables --------------------------------------------------------

    def momentum(self) -> torch.Tensor:
        """Total momentum for unit-mass beads."""
        return self.vel.sum(dim=0)

    def kinetic_energy(self) -> torch.Tensor:
        return 0.5 * self.vel.pow(2).sum()

    def temperature(self) -> torch.Tensor:
        """Instantaneous temperature via equipartition theorem."""
        return 2 * self.kinetic_energy() / (3 * self.n_atoms * self.units.kB)

    def __repr__(self):
        return (
            f"System(Atoms: {self.n_atoms}, Types: {self.ntypes}, "
            f"Box: {self.box}, Units: {self.units})"
        )
