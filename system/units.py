from __future__ import annotations

"""units.py
Unit record for DPD runs.

* DPD works in reduced units: the cutoff is the length unit, kB*T the energy unit and the bead mass the mass unit.
* `UnitSystem.from_dpd` maps such a choice back onto SI and derives kB in simulation units.
"""

from dataclasses import dataclass
from functools import cached_property
import math

# --- SI constants --------------------------------------------------------
_BOLTZMANN = 1.380_649e-23          # J K^{-1}  (per particle)


@dataclass(frozen=True)
class UnitSystem:
    """Conversion factors between simulation units and SI.

    Parameters
    ----------
    L : float
        Metres per simulation length‑unit.
    E : float
        Joules per simulation energy‑unit.
    M : float
        Kilograms per simulation mass‑unit.
    kB : float
        Simulation‑energy units per unit temperature.
    """

    L: float = 1.0
    E: float = 1.0
    M: float = 1.0
    kB: float = 1.0

    def __post_init__(self):
        if min(self.L, self.E, self.M) <= 0:
            raise ValueError("Unit scale factors L, E, M must be positive.")
        if self.kB <= 0:
            raise ValueError("Boltzmann constant must be positive.")

    # --- derived scales --------------------------------------------------------
    @cached_property
    def time(self) -> float:              # seconds per sim time‑unit
        return math.sqrt(self.M * self.L ** 2 / self.E)

    # --- convenient defaults --------------------------------------------------------
    @classmethod
    def reduced(cls) -> "UnitSystem":
        """Dimensionless DPD units with kB = 1."""
        return cls()

    @classmethod
    def from_dpd(cls, *, cutoff: float, bead_mass: float, temperature: float) -> "UnitSystem":
        """Reduced units built from a physical cutoff (m), bead mass (kg) and reference temperature (K).

        The energy unit is kB*T at the reference temperature, so the reference
        temperature itself is 1.0 in simulation units.
        """
        if temperature <= 0:
            raise ValueError("Reference temperature must be positive.")
        E = _BOLTZMANN * temperature
        return cls(L=cutoff, E=E, M=bead_mass, kB=_BOLTZMANN / E)

    # --- misc --------------------------------------------------------
    def __repr__(self):
        return (
            f"UnitSystem(L={self.L:.3g} m/uL, E={self.E:.3g} J/uE, "
            f"M={self.M:.3g} kg/um, kB={self.kB:.3g} uE/K)"
        )
