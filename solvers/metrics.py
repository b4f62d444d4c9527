from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
import logging
from system.comm import Communicator, SerialComm

logger = logging.getLogger(__name__)


@dataclass
class SolverTimers:
    """Wall-time accumulators for one simulation run.

    time_mvm : seconds spent applying the friction operator
    time_inv : seconds spent inside implicit solves (includes time_mvm)
    """

    time_mvm: float = 0.0
    time_inv: float = 0.0
    n_apply: int = 0
    n_solve: int = 0

    def reset(self) -> None:
        self.time_mvm = self.time_inv = 0.0
        self.n_apply = self.n_solve = 0

    @contextmanager
    def mvm(self):
        t1 = perf_counter()
        try:
            yield
        finally:
            self.time_mvm += perf_counter() - t1
            self.n_apply += 1

    @contextmanager
    def inv(self):
        t1 = perf_counter()
        try:
            yield
        finally:
            self.time_inv += perf_counter() - t1
            self.n_solve += 1

    def report(self, comm: Communicator | None = None) -> dict[str, float]:
        """Log per-partition timings and return the totals summed over partitions."""
        comm = comm or SerialComm()
        logger.info("processor %d: time(mvm) = %f", comm.rank, self.time_mvm)
        logger.info("processor %d: time(inv) = %f", comm.rank, self.time_inv)
        totals = {
            "time_mvm": comm.allreduce(self.time_mvm, op="sum"),
            "time_inv": comm.allreduce(self.time_inv, op="sum"),
            "n_apply": comm.allreduce(self.n_apply, op="sum"),
            "n_solve": comm.allreduce(self.n_solve, op="sum"),
        }
        if comm.rank == 0:
            logger.info(
                "all %d processors: time(mvm) = %f, time(inv) = %f over %d solves",
                comm.size, totals["time_mvm"], totals["time_inv"], totals["n_solve"],
            )
        return totals
