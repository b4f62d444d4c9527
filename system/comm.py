from __future__ import annotations
from typing import Protocol

"""comm.py
Collective operations across spatial partitions. The transport belongs to the host engine;
this module only fixes the calls the pair style and solver make.
"""

_OPS = {
    "sum": sum,
    "max": max,
    "min": min,
}


class Communicator(Protocol):
    rank: int
    size: int

    def allreduce(self, value: float, op: str = "sum") -> float: ...

    def bcast(self, value, root: int = 0): ...


class SerialComm:
    """Communicator for a run with a single partition."""

    rank = 0
    size = 1

    def allreduce(self, value: float, op: str = "sum") -> float:
        if op not in _OPS:
            raise ValueError(f"unknown reduction '{op}', expected one of {sorted(_OPS)}")
        return _OPS[op]([value])

    def bcast(self, value, root: int = 0):
        if root != 0:
            raise ValueError("a serial communicator only has root 0")
        return value

    def __repr__(self):
        return "SerialComm(rank=0, size=1)"
