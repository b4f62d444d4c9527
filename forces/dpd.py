from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol
import math
import torch
from forces.coeffs import PairCoeffTable
from forces.noise import NoiseSource
from system.neighbors import Neighbors
from system.system import System

EPSILON = 1.0e-10  # closer pairs are skipped


class TallySink(Protocol):
    def reset(self) -> None: ...

    def record(self, i: torch.Tensor, j: torch.Tensor, energy: torch.Tensor, fpair: torch.Tensor, delta: torch.Tensor) -> None: ...


class VirialTally:
    """Accumulates the conservative pair energy and the pair virial (xx, yy, zz, xy, xz, yz)."""

    def __init__(self, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float64):
        self.device = torch.device(device)
        self.dtype = dtype
        self.reset()

    def reset(self) -> None:
        self.eng_vdwl = 0.0
        self.virial = torch.zeros(6, device=self.device, dtype=self.dtype)

    def record(self, i, j, energy, fpair, delta) -> None:
        self.eng_vdwl += float(energy.sum())
        dx, dy, dz = delta.unbind(dim=-1)
        self.virial += torch.stack([dx*dx, dy*dy, dz*dz, dx*dy, dx*dz, dy*dz]) @ fpair.to(self.dtype)

    def __repr__(self) -> str:
        return f"VirialTally(eng_vdwl={self.eng_vdwl:.6g})"


@dataclass(frozen=True)
class PairGeometry:
    """In-cutoff, non-degenerate pairs of one neighbor list."""
    i: torch.Tensor        # (M,) local index of the first bead
    j: torch.Tensor        # (M,) local index of the second bead
    delta: torch.Tensor    # (M, 3) minimum image x_i - x_j
    r: torch.Tensor        # (M,)
    wd: torch.Tensor       # (M,) 1 - r/rc
    factor: torch.Tensor   # (M,) exclusion scale
    itype: torch.Tensor
    jtype: torch.Tensor


class FrictionOperator:
    """
    Matrix-free (I - dt/2 Gamma) acting on (3N,) state vectors ordered by tag.

    For every pair the relative trial velocity is projected on the separation
    and scaled by -gamma w^2 / r; the result enters both beads with opposite
    sign. The pair geometry is frozen at construction, so the map is linear
    and deterministic for the lifetime of the object.
    """

    def __init__(self, geometry: PairGeometry, tags: torch.Tensor, gamma: torch.Tensor, dt: float):
        pre = -dt / 2.0
        g = geometry
        self.ti = tags[g.i]
        self.tj = tags[g.j]
        self.delta = g.delta
        self.coef = -gamma * g.wd * g.wd * pre * g.factor / (g.r * g.r)  # (M,)
        self.size = 3 * tags.shape[0]

    def apply(self, u: torch.Tensor) -> torch.Tensor:
        if u.shape != (self.size,):
            raise ValueError(f"state vector must be ({self.size},), got {tuple(u.shape)}")
        u3 = u.reshape(-1, 3)
        dot = ((u3[self.ti] - u3[self.tj]) * self.delta).sum(dim=-1)   # (M,)
        contrib = self.delta * (self.coef * dot).unsqueeze(-1)          # (M, 3)

        out = u3.clone()  # identity
        out.index_add_(0, self.ti, contrib)
        out.index_add_(0, self.tj, -contrib)
        return out.reshape(-1)


class DPDPair:
    """Dissipative particle dynamics pair style with an implicitly treated friction term.

    Conservative and random forces are evaluated explicitly in `compute`;
    the friction force enters through the linear operator returned by
    `operator` / applied by `compute_step`.

    Parameters
    ----------
    coeffs : PairCoeffTable
        Pair coefficients; must be initialized (`init`) before evaluation.
    noise : NoiseSource
        Supplier of one standard normal number per pair and evaluation.
    """

    def __init__(self, coeffs: PairCoeffTable, noise: NoiseSource):
        self.coeffs = coeffs
        self.noise = noise

    def init(self, kB: float) -> float:
        """Initialize all type pairs; returns the largest cutoff for the neighbor list."""
        return self.coeffs.init(kB)

    def geometry(self, system: System, neighbors: Neighbors) -> PairGeometry:
        if system.ntypes > self.coeffs.ntypes:
            raise ValueError(f"system uses {system.ntypes} bead types, coefficient table holds {self.coeffs.ntypes}")
        pairs = neighbors.pairs
        i, j = pairs[:, 0], pairs[:, 1]
        itype, jtype = system.types[i], system.types[j]
        self.coeffs.check_types(itype, jtype)

        delta = system.box.separation(system.pos, pairs)   # (M, 3)
        rsq = delta.pow(2).sum(dim=-1)
        r = torch.sqrt(rsq)
        keep = (rsq < self.coeffs.cutsq[itype, jtype]) & (r >= EPSILON)

        i, j, itype, jtype = i[keep], j[keep], itype[keep], jtype[keep]
        r = r[keep]
        return PairGeometry(
            i=i, j=j, delta=delta[keep], r=r,
            wd=1.0 - r / self.coeffs.cut[itype, jtype],
            factor=neighbors.factor[keep],
            itype=itype, jtype=jtype,
        )

    # --- full mode --------------------------------------------------------
    def pair_forces(self, system: System, neighbors: Neighbors, dt: float, tally: TallySink | None = None) -> torch.Tensor:
        """Conservative plus random forces on every bead, shape (N, 3)."""
        g = self.geometry(system, neighbors)
        a0 = self.coeffs.a0[g.itype, g.jtype]
        sigma = self.coeffs.sigma[g.itype, g.jtype]
        randnum = self.noise.draw(g.r.shape[0]).to(device=g.r.device, dtype=g.r.dtype)

        # conservative a0 w, random sigma w xi / sqrt(dt)
        fpair = a0 * g.wd + sigma * g.wd * randnum / math.sqrt(dt)
        fpair = fpair * g.factor / g.r

        contrib = g.delta * fpair.unsqueeze(-1)
        f = torch.zeros_like(system.pos)
        f.index_add_(0, g.i, contrib)
        f.index_add_(0, g.j, -contrib)

        if tally is not None:
            # energy shifted to zero at the cutoff
            evdwl = 0.5 * a0 * self.coeffs.cut[g.itype, g.jtype] * g.wd * g.wd * g.factor
            tally.record(g.i, g.j, evdwl, fpair, g.delta)
        return f

    def compute(self, system: System, neighbors: Neighbors, dt: float, tally: TallySink | None = None) -> torch.Tensor:
        """Right-hand side dt^2/2 F + dt v of the implicit step, as a (3N,) state vector."""
        f = self.pair_forces(system, neighbors, dt, tally)
        return system.to_state(0.5 * dt * dt * f + dt * system.vel)

    # --- step mode --------------------------------------------------------
    def operator(self, system: System, neighbors: Neighbors, dt: float) -> FrictionOperator:
        g = self.geometry(system, neighbors)
        return FrictionOperator(g, system.tags, self.coeffs.gamma[g.itype, g.jtype], dt)

    def compute_step(self, system: System, neighbors: Neighbors, dt: float, u: torch.Tensor) -> torch.Tensor:
        """Apply (I - dt/2 Gamma) to the trial state vector `u`."""
        return self.operator(system, neighbors, dt).apply(u)

    # --- single pair --------------------------------------------------------
    def single(self, rsq: float, itype: int, jtype: int, factor: float = 1.0) -> tuple[float, float]:
        """Conservative energy and force/r of one pair at squared distance rsq."""
        r = math.sqrt(rsq)
        if r < EPSILON:
            return 0.0, 0.0
        p = self.coeffs.params(itype, jtype)
        if rsq >= p["cut"] * p["cut"]:
            return 0.0, 0.0
        wd = 1.0 - r / p["cut"]
        fforce = p["a0"] * wd * factor / r
        phi = 0.5 * p["a0"] * p["cut"] * wd * wd
        return factor * phi, fforce

    def __repr__(self) -> str:
        return f"DPDPair({self.coeffs}, noise={self.noise})"
