from __future__ import annotations
from typing import Protocol
import torch
from system.comm import Communicator, SerialComm

class NoiseSource(Protocol):
    """Supplier of the per-pair random numbers used by the dissipative pair style.

    Any implementation (e.g. a temporally correlated source built from a memory
    kernel) can be handed to `DPDPair` in place of `GaussianNoise`.
    """

    def draw(self, n: int) -> torch.Tensor: ...


class GaussianNoise:
    """Independent standard normal draws from a per-partition stream.

    Parameters
    ----------
    seed : int
        Positive seed shared by all partitions.
    comm : Communicator, optional
        Each partition seeds its generator with `seed + comm.rank` so no two
        partitions share a stream.
    """

    def __init__(self, seed: int, comm: Communicator | None = None, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float64):
        if seed <= 0:
            raise ValueError("noise seed must be a positive integer")
        comm = comm or SerialComm()
        self.seed = seed + comm.rank
        self.device = torch.device(device)
        self.dtype = dtype
        self.generator = torch.Generator(device=self.device)
        self.generator.manual_seed(self.seed)

    def draw(self, n: int) -> torch.Tensor:
        return torch.randn(n, generator=self.generator, device=self.device, dtype=self.dtype)

    def __repr__(self) -> str:
        return f"GaussianNoise(seed={self.seed})"
