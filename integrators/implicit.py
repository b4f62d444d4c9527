import logging
import torch
from forces.dpd import DPDPair, TallySink
from solvers.lanczos import LanczosSolver
from solvers.metrics import SolverTimers
from system.comm import Communicator, SerialComm
from system.neighbors import NeighborProvider

logger = logging.getLogger(__name__)


class ImplicitDPD:
    """
    Semi-implicit DPD integrator with the pairwise friction treated implicitly.

    Each step solves (I - dt/2 Gamma) dr = dt v + dt^2/2 F for the displacement
    dr with the Lanczos solver, where F holds the conservative and random pair
    forces and Gamma the pair friction. Beads have unit mass.

    Parameters
    ----------
    dt : float
        Time step (simulation units).
    pair : DPDPair
        Pair style providing the right-hand side and the friction operator.
    solver : LanczosSolver
        Krylov solver for the implicit system.
    neighbors : NeighborProvider
        Rebuilds the neighbor list before every step.
    tally : TallySink, optional
        Receives pair energies and forces of the explicit force evaluation; reset at the start of every step.
    timers : SolverTimers, optional
        Reported once the step counter reaches `nsteps`. Defaults to the solver's timers.
    comm : Communicator, optional
        Used to reduce the timing report over partitions.
    nsteps : int, optional
        Length of the run; enables the final timing report.

    Expected `system` interface
    ---------------------------
    system.pos      : (N, 3) tensor – current positions
    system.vel      : (N, 3) tensor – current velocities
    system.box      : Box used to wrap positions after the step
    system.to_state / system.from_state – (N, 3) <-> (3N,) by tag
    """
    def __init__(self, dt: float, pair: DPDPair, solver: LanczosSolver, neighbors: NeighborProvider, tally: TallySink = None, timers: SolverTimers = None, comm: Communicator = None, nsteps: int = None):
        if dt <= 0:
            raise ValueError("time step must be positive")
        self.dt = dt
        self.pair = pair
        self.solver = solver
        self.neighbors = neighbors
        self.tally = tally
        self.timers = timers if timers is not None else solver.timers
        self.comm = comm or SerialComm()
        self.nsteps = nsteps
        self.ntimestep = 0
        self.last_result = None

    def step(self, system) -> torch.Tensor:
        neighbors = self.neighbors.build(system)
        if self.tally is not None:
            self.tally.reset()
        rhs = self.pair.compute(system, neighbors, self.dt, self.tally)
        op = self.pair.operator(system, neighbors, self.dt)
        self.last_result = self.solver.solve(op, rhs)

        dr = system.from_state(self.last_result.x)
        system.pos = system.box.wrap(system.pos + dr)
        system.vel = 2.0 * dr / self.dt - system.vel
        self.ntimestep += 1

        if not self.last_result.converged:
            logger.debug("step %d: Lanczos not converged after %d iterations", self.ntimestep, self.last_result.iterations)
        if self.nsteps is not None and self.ntimestep == self.nsteps and self.timers is not None:
            self.timers.report(self.comm)
        return dr

    def run(self, system, nsteps: int) -> None:
        logger.info("Running %d steps of dt = %g (%.3g s)", nsteps, self.dt, nsteps * self.dt * system.units.time)
        self.nsteps = self.ntimestep + nsteps
        for _ in range(nsteps):
            self.step(system)

    def __repr__(self) -> str:
        return f"ImplicitDPD(dt={self.dt:.3g}, solver={self.solver})"
