"""Process table with a lottery scheduler."""

from __future__ import annotations

import enum
import errno
import threading
from dataclasses import dataclass, field

from .layout import KernelPanic

NPROC = 64
DEFAULT_SEED = 1898888478
RAND_MAX = (1 << 31) - 1
DEFAULT_TICKETS = 10


class ProcState(enum.IntEnum):
    """Life-cycle state of a process slot."""

    UNUSED = 0
    EMBRYO = 1
    SLEEPING = 2
    RUNNABLE = 3
    RUNNING = 4
    ZOMBIE = 5


_DUMP_NAMES = {
    ProcState.UNUSED: "unused",
    ProcState.EMBRYO: "embryo",
    ProcState.SLEEPING: "sleep ",
    ProcState.RUNNABLE: "runble",
    ProcState.RUNNING: "run   ",
    ProcState.ZOMBIE: "zombie",
}

_PSTAT_LETTERS = {
    ProcState.EMBRYO: "E",
    ProcState.RUNNING: "R",
    ProcState.RUNNABLE: "A",
    ProcState.SLEEPING: "S",
    ProcState.ZOMBIE: "Z",
}


@dataclass(eq=False)
class Process:
    """One slot of the process table."""

    state: ProcState = ProcState.UNUSED
    pid: int = 0
    parent: "Process | None" = field(default=None, repr=False)
    chan: object = field(default=None, repr=False)
    killed: bool = False
    name: str = ""
    tickets: int = 0
    ticks: int = 0


@dataclass(frozen=True)
class PStat:
    """A snapshot of one process-table slot."""

    inuse: bool
    tickets: int
    pid: int
    ticks: int
    name: str
    state: str | None


class LotteryRandom:
    """Linear congruential generator yielding values in [0, 2**31)."""

    def __init__(self, seed: int = DEFAULT_SEED) -> None:
        self.seed = seed

    def next(self) -> int:
        self.seed = (self.seed * 1103515245 + 12345) & RAND_MAX
        return self.seed


class ProcessTable:
    """A fixed number of process slots scheduled by lottery."""

    def __init__(self, nproc: int = NPROC, seed: int = DEFAULT_SEED) -> None:
        if nproc < 1:
            raise ValueError("the process table needs at least one slot")
        self._lock = threading.RLock()
        self.procs = [Process() for _ in range(nproc)]
        self.random = LotteryRandom(seed)
        self.nextpid = 1
        self.initproc: Process | None = None

    def _allocproc(self) -> Process | None:
        p = next((p for p in self.procs if p.state is ProcState.UNUSED), None)
        if p is None:
            return None
        p.state = ProcState.EMBRYO
        p.pid = self.nextpid
        self.nextpid += 1
        return p

    def _wakeup1(self, chan) -> None:
        for p in self.procs:
            if p.state is ProcState.SLEEPING and p.chan is chan:
                p.state = ProcState.RUNNABLE
                p.chan = None

    def userinit(self) -> Process:
        """Create the first process."""
        with self._lock:
            p = self._allocproc()
            if p is None:
                raise KernelPanic("userinit: no free process slot")
            self.initproc = p
            p.ticks = 0
            p.tickets = DEFAULT_TICKETS
            p.name = "initcode"
            p.state = ProcState.RUNNABLE
            return p

    def fork(self, parent: Process) -> Process:
        """Create a runnable child of ``parent``."""
        with self._lock:
            np = self._allocproc()
            if np is None:
                raise OSError(errno.EAGAIN, "process table full")
            np.ticks = 0
            np.tickets = max(DEFAULT_TICKETS, parent.tickets)
            np.parent = parent
            np.name = parent.name
            np.killed = False
            np.state = ProcState.RUNNABLE
            return np

    def exit(self, proc: Process) -> None:
        """Turn ``proc`` into a zombie, handing its children to init."""
        with self._lock:
            if proc is self.initproc:
                raise KernelPanic("init exiting")
            self._wakeup1(proc.parent)
            for p in self.procs:
                if p.parent is proc:
                    p.parent = self.initproc
                    if p.state is ProcState.ZOMBIE:
                        self._wakeup1(self.initproc)
            proc.state = ProcState.ZOMBIE

    def wait(self, parent: Process) -> int | None:
        """Reap an exited child and return its pid.

        Returns None when children exist but none has exited yet; ``parent``
        is then put to sleep until a child exits.  Raises ChildProcessError
        when there are no children and InterruptedError when ``parent`` was
        killed.
        """
        with self._lock:
            havekids = False
            for p in self.procs:
                if p.parent is not parent:
                    continue
                havekids = True
                if p.state is ProcState.ZOMBIE:
                    pid = p.pid
                    p.pid = 0
                    p.parent = None
                    p.name = ""
                    p.killed = False
                    p.state = ProcState.UNUSED
                    return pid
            if not havekids:
                raise ChildProcessError(errno.ECHILD, "no children")
            if parent.killed:
                raise InterruptedError(errno.EINTR, "process was killed")
            parent.chan = parent
            parent.state = ProcState.SLEEPING
            return None

    def kill(self, pid: int) -> None:
        """Mark process ``pid`` killed, waking it if it sleeps."""
        with self._lock:
            for p in self.procs:
                if p.pid == pid:
                    p.killed = True
                    if p.state is ProcState.SLEEPING:
                        p.state = ProcState.RUNNABLE
                        p.chan = None
                    return
        raise ProcessLookupError(errno.ESRCH, f"no process {pid}")

    def settickets(self, proc: Process | None, number: int) -> None:
        """Give ``proc`` ``number`` lottery tickets."""
        if proc is None:
            raise ValueError("no process to give tickets to")
        with self._lock:
            proc.tickets = number

    def schedule(self) -> Process | None:
        """Hold one lottery among runnable processes and run the winner for a tick.

        Returns the winner, or None when nothing is runnable.
        """
        with self._lock:
            runnable = [p for p in self.procs if p.state is ProcState.RUNNABLE]
            total = sum(p.tickets for p in runnable)
            if total <= 0:
                return None
            winner = self.random.next() % total
            running = 0
            for p in runnable:
                running += p.tickets
                if running > winner:
                    p.state = ProcState.RUNNING
                    p.ticks += 1
                    # The time slice ends and the process yields.
                    if p.state is ProcState.RUNNING:
                        p.state = ProcState.RUNNABLE
                    return p
            return None

    def pstat(self) -> list[PStat]:
        """A snapshot of every slot of the table."""
        with self._lock:
            return [
                PStat(
                    inuse=True,
                    tickets=p.tickets,
                    pid=p.pid,
                    ticks=p.ticks,
                    name=p.name,
                    state=_PSTAT_LETTERS.get(p.state),
                )
                for p in self.procs
            ]

    def procdump(self) -> list[str]:
        """One line per used slot: pid, state and name."""
        return [
            f"{p.pid} {_DUMP_NAMES.get(p.state, '???')} {p.name}"
            for p in self.procs
            if p.state is not ProcState.UNUSED
        ]