import pytest
import torch

from forces.coeffs import DPDSettings, PairCoeffTable
from forces.dpd import DPDPair
from forces.noise import GaussianNoise
from system.box import Box
from system.neighbors import BruteForceNeighbors
from system.system import System
from system.units import UnitSystem


class FakeComm:
    """Stand-in for a partition other than rank 0 of a two-partition run."""

    def __init__(self, rank=1, size=2):
        self.rank = rank
        self.size = size

    def allreduce(self, value, op="sum"):
        return value * self.size if op == "sum" else value

    def bcast(self, value, root=0):
        return value


@pytest.fixture
def units():
    return UnitSystem.reduced()


@pytest.fixture
def make_system(units):
    def _make(pos, vel=None, types=None, edges=(10.0, 10.0, 10.0), tags=None):
        pos = torch.as_tensor(pos, dtype=torch.float64)
        vel = torch.zeros_like(pos) if vel is None else torch.as_tensor(vel, dtype=torch.float64)
        types = torch.ones(pos.shape[0], dtype=torch.long) if types is None else torch.as_tensor(types)
        return System(pos, vel, types, Box(edges), units, tags=tags)
    return _make


@pytest.fixture
def make_pair():
    def _make(a0=25.0, gamma=4.5, temperature=1.0, cut=1.0, ntypes=1, seed=12345, kB=1.0):
        table = PairCoeffTable(ntypes, DPDSettings(temperature=temperature, cut_global=cut, seed=seed))
        table.set((1, ntypes), (1, ntypes), a0=a0, gamma=gamma)
        pair = DPDPair(table, GaussianNoise(seed))
        pair.init(kB)
        return pair
    return _make


@pytest.fixture
def fluid(make_system, make_pair):
    """20 beads of two types in a periodic 3x3x3 box, with their pair style and neighbor list."""
    gen = torch.Generator().manual_seed(7)
    pos = 3.0 * torch.rand((20, 3), generator=gen, dtype=torch.float64)
    vel = torch.randn((20, 3), generator=gen, dtype=torch.float64)
    types = torch.tensor([1, 2] * 10)
    system = make_system(pos, vel, types, edges=(3.0, 3.0, 3.0))
    pair = make_pair(ntypes=2)
    neighbors = BruteForceNeighbors(cutoff=1.0).build(system)
    return system, pair, neighbors
