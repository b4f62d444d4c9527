from __future__ import annotations
from dataclasses import dataclass, replace
from typing import BinaryIO, TextIO
import math
import struct
import torch
from system.comm import Communicator, SerialComm

"""coeffs.py
Per type-pair DPD coefficients and their persisted restart block.

Restart layout (native byte order):
  settings : temperature f64, cut_global f64, seed i32, mix_flag i32
  per pair : for i in 1..n, j in i..n -> setflag i32, then a0 f64, gamma f64, cut f64 if set
"""

_SETTINGS = struct.Struct("=ddii")
_FLAG = struct.Struct("=i")
_COEFFS = struct.Struct("=ddd")

TypeRange = int | tuple[int, int]


@dataclass(frozen=True)
class DPDSettings:
    """Global DPD settings.

    Parameters
    ----------
    temperature : float
        Target temperature entering the fluctuation-dissipation relation.
    cut_global : float
        Default cutoff for pairs set without an explicit one.
    seed : int
        Positive random seed; every partition offsets it by its rank.
    mix_flag : int
        Mixing rule flag, persisted for restart compatibility.
    """

    temperature: float
    cut_global: float
    seed: int
    mix_flag: int = 0

    def __post_init__(self):
        if self.temperature < 0:
            raise ValueError("DPD temperature must be non-negative")
        if self.cut_global <= 0:
            raise ValueError("DPD global cutoff must be positive")
        if self.seed <= 0:
            raise ValueError("DPD seed must be a positive integer")


def _read(fp: BinaryIO, fmt: struct.Struct) -> tuple:
    data = fp.read(fmt.size)
    if len(data) != fmt.size:
        raise EOFError(f"restart block truncated: expected {fmt.size} bytes, got {len(data)}")
    return fmt.unpack(data)


class PairCoeffTable:
    """Symmetric table of DPD pair coefficients indexed by 1-based bead types.

    Coefficients are assigned on the upper triangle (i <= j) and mirrored onto
    the lower one by `init_one`. `sigma` is derived there from the
    fluctuation-dissipation relation sigma = sqrt(2 kB T gamma).
    """

    def __init__(self, ntypes: int, settings: DPDSettings, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float64):
        if ntypes < 1:
            raise ValueError("a coefficient table needs at least one bead type")
        self.ntypes = ntypes
        self._settings = settings
        self.device = torch.device(device)
        self.dtype = dtype

        n = ntypes + 1  # row/column 0 unused, types are 1-based
        self.setflag = torch.zeros((n, n), device=self.device, dtype=torch.bool)
        self.a0    = torch.zeros((n, n), device=self.device, dtype=self.dtype)
        self.gamma = torch.zeros((n, n), device=self.device, dtype=self.dtype)
        self.sigma = torch.zeros((n, n), device=self.device, dtype=self.dtype)
        self.cut   = torch.zeros((n, n), device=self.device, dtype=self.dtype)
        self._initialized = torch.zeros((n, n), device=self.device, dtype=torch.bool)

    # --- settings --------------------------------------------------------
    @property
    def settings(self) -> DPDSettings:
        return self._settings

    @settings.setter
    def settings(self, settings: DPDSettings) -> None:
        """Replace the global settings; pairs already set fall back to the new global cutoff."""
        self._settings = settings
        for i in range(1, self.ntypes + 1):
            for j in range(i, self.ntypes + 1):
                if self.setflag[i, j]:
                    self.cut[i, j] = settings.cut_global
        self._initialized.zero_()

    @property
    def cutsq(self) -> torch.Tensor:
        return self.cut * self.cut

    # --- assignment --------------------------------------------------------
    def _bounds(self, types: TypeRange) -> tuple[int, int]:
        lo, hi = (types, types) if isinstance(types, int) else types
        if not (1 <= lo <= hi <= self.ntypes):
            raise ValueError(f"type range {types} outside 1..{self.ntypes}")
        return lo, hi

    def set(self, itypes: TypeRange, jtypes: TypeRange, a0: float, gamma: float, cut: float | None = None) -> int:
        """
        Assign coefficients to every pair in the upper triangle of itypes x jtypes.

        Parameters
        ----------
        itypes, jtypes : int or (lo, hi)
            Single type or inclusive type range.
        a0 : float
            Conservative force strength.
        gamma : float
            Friction coefficient.
        cut : float, optional
            Pair cutoff; defaults to the global cutoff.

        Returns
        -------
        int
            Number of pairs assigned.
        """
        ilo, ihi = self._bounds(itypes)
        jlo, jhi = self._bounds(jtypes)
        if gamma < 0:
            raise ValueError("DPD gamma must be non-negative")
        cut_one = self._settings.cut_global if cut is None else cut
        if cut_one <= 0:
            raise ValueError("DPD pair cutoff must be positive")

        count = 0
        for i in range(ilo, ihi + 1):
            for j in range(max(jlo, i), jhi + 1):
                self.a0[i, j] = a0
                self.gamma[i, j] = gamma
                self.cut[i, j] = cut_one
                self.setflag[i, j] = True
                self._initialized[i, j] = self._initialized[j, i] = False
                count += 1

        if count == 0:
            raise ValueError(f"no type pair matched itypes={itypes}, jtypes={jtypes}")
        return count

    # --- initialization --------------------------------------------------------
    def init_one(self, i: int, j: int, kB: float) -> float:
        """Derive sigma for pair (i, j), mirror it onto (j, i) and return its cutoff."""
        i, j = min(i, j), max(i, j)
        if not self.setflag[i, j]:
            raise ValueError(f"pair coefficients not set for types ({i}, {j})")

        self.sigma[i, j] = math.sqrt(2.0 * kB * self._settings.temperature * float(self.gamma[i, j]))

        self.cut[j, i] = self.cut[i, j]
        self.a0[j, i] = self.a0[i, j]
        self.gamma[j, i] = self.gamma[i, j]
        self.sigma[j, i] = self.sigma[i, j]
        self._initialized[i, j] = self._initialized[j, i] = True

        return float(self.cut[i, j])

    def init(self, kB: float) -> float:
        """Initialize every type pair; returns the largest cutoff."""
        cutmax = 0.0
        for i in range(1, self.ntypes + 1):
            for j in range(i, self.ntypes + 1):
                cutmax = max(cutmax, self.init_one(i, j, kB))
        return cutmax

    def params(self, itype: int, jtype: int) -> dict[str, float]:
        """Coefficients of one pair; fails if the pair was never initialized."""
        if not self._initialized[itype, jtype]:
            raise ValueError(f"pair coefficients for types ({itype}, {jtype}) are not initialized")
        return {
            "a0": float(self.a0[itype, jtype]),
            "gamma": float(self.gamma[itype, jtype]),
            "sigma": float(self.sigma[itype, jtype]),
            "cut": float(self.cut[itype, jtype]),
        }

    def check_types(self, itype: torch.Tensor, jtype: torch.Tensor) -> None:
        """Fail if any of the given type pairs is used before initialization."""
        missing = ~self._initialized[itype, jtype]
        if bool(missing.any()):
            m = int(missing.nonzero()[0, 0])
            raise ValueError(f"pair coefficients for types ({int(itype[m])}, {int(jtype[m])}) are not initialized")

    # --- restart --------------------------------------------------------
    def write_restart_settings(self, fp: BinaryIO) -> None:
        s = self._settings
        fp.write(_SETTINGS.pack(s.temperature, s.cut_global, s.seed, s.mix_flag))

    def read_restart_settings(self, fp: BinaryIO, comm: Communicator | None = None) -> None:
        comm = comm or SerialComm()
        values = _read(fp, _SETTINGS) if comm.rank == 0 else None
        temperature, cut_global, seed, mix_flag = comm.bcast(values, root=0)
        self._settings = DPDSettings(temperature=temperature, cut_global=cut_global, seed=seed, mix_flag=mix_flag)

    def write_restart(self, fp: BinaryIO) -> None:
        self.write_restart_settings(fp)
        for i in range(1, self.ntypes + 1):
            for j in range(i, self.ntypes + 1):
                flag = bool(self.setflag[i, j])
                fp.write(_FLAG.pack(int(flag)))
                if flag:
                    fp.write(_COEFFS.pack(float(self.a0[i, j]), float(self.gamma[i, j]), float(self.cut[i, j])))

    def read_restart(self, fp: BinaryIO, comm: Communicator | None = None) -> None:
        """Read the block written by `write_restart`; rank 0 reads and broadcasts."""
        comm = comm or SerialComm()
        self.read_restart_settings(fp, comm)
        self.setflag.zero_()
        self._initialized.zero_()
        for i in range(1, self.ntypes + 1):
            for j in range(i, self.ntypes + 1):
                flag = _read(fp, _FLAG)[0] if comm.rank == 0 else None
                flag = comm.bcast(flag, root=0)
                self.setflag[i, j] = bool(flag)
                if flag:
                    values = _read(fp, _COEFFS) if comm.rank == 0 else None
                    self.a0[i, j], self.gamma[i, j], self.cut[i, j] = comm.bcast(values, root=0)

    @classmethod
    def from_restart(cls, fp: BinaryIO, ntypes: int, comm: Communicator | None = None, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float64) -> "PairCoeffTable":
        # placeholder settings, overwritten by the settings block
        table = cls(ntypes, DPDSettings(temperature=0.0, cut_global=1.0, seed=1), device=device, dtype=dtype)
        table.read_restart(fp, comm)
        return table

    # --- data file --------------------------------------------------------
    def write_data(self, fp: TextIO) -> None:
        for i in range(1, self.ntypes + 1):
            fp.write(f"{i} {float(self.a0[i, i]):g} {float(self.gamma[i, i]):g}\n")

    def write_data_all(self, fp: TextIO) -> None:
        for i in range(1, self.ntypes + 1):
            for j in range(i, self.ntypes + 1):
                fp.write(f"{i} {j} {float(self.a0[i, j]):g} {float(self.gamma[i, j]):g} {float(self.cut[i, j]):g}\n")

    def with_settings(self, **changes) -> DPDSettings:
        """New settings with the given fields replaced, for use with the `settings` setter."""
        return replace(self._settings, **changes)

    def __repr__(self):
        s = self._settings
        return f"PairCoeffTable(ntypes={self.ntypes}, T={s.temperature:g}, cut_global={s.cut_global:g}, seed={s.seed})"
