"""
Process termination for the orchestration module.

ProcessReaper stops a supervised xcodebuild process, or every process whose
command line matches a pattern, by walking an ordered table of signals. After
each signal it polls for the process to die for a bounded time before
escalating to the next one.
"""

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

import psutil

from ..system.processes import get_pids_using_pattern
from ..validation import ProcessTerminationError
from .shared_state import TimeoutConstants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TerminationPhase:
    """One step of the escalation table."""
    name: str
    signal: signal.Signals
    # Milliseconds to wait for the process to die; None means do not wait.
    wait_ms: Optional[float]


DEFAULT_TERMINATION_PHASES = (
    TerminationPhase("interrupt", signal.SIGINT, TimeoutConstants.TERMINATION_WAIT_MS),
    TerminationPhase("terminate", signal.SIGTERM, TimeoutConstants.TERMINATION_WAIT_MS),
    TerminationPhase("force_kill", signal.SIGKILL, None),
)


class ProcessReaper:
    """
    Terminates processes with escalating signals and a bounded wait.

    The reaper never owns processes. Processes that are already gone at any
    stage count as successfully terminated; every other failure to deliver a
    signal is raised as ProcessTerminationError.
    """

    def __init__(
        self,
        phases: Sequence[TerminationPhase] = DEFAULT_TERMINATION_PHASES,
        poll_interval_ms: float = TimeoutConstants.TERMINATION_POLL_INTERVAL_MS,
    ):
        if not phases:
            raise ValueError("At least one termination phase is required")
        if phases[-1].wait_ms is not None:
            raise ValueError("The final termination phase must not wait")
        self.phases = tuple(phases)
        self.poll_interval_ms = poll_interval_ms

    async def terminate(self, process, name: str = "process") -> None:
        """
        Terminate a single process.

        Args:
            process: An asyncio subprocess, a psutil.Process, a PID, or None.
            name: Human-readable name used in log messages.
        """
        target = self._resolve_target(process)
        if target is None:
            return
        logger.info(f"Shutting down '{name}' process (pid '{target.pid}')")
        await self._escalate(lambda: [target], name)

    async def kill_matching(self, pattern: str) -> None:
        """
        Terminate every process whose full command line matches a pattern.

        Matches are looked up again before each signal, so processes spawned
        or reaped in between are taken into account.
        """
        def lookup() -> List[psutil.Process]:
            targets = []
            for pid in get_pids_using_pattern(pattern):
                try:
                    targets.append(psutil.Process(pid))
                except psutil.NoSuchProcess:
                    continue
            return targets

        await self._escalate(lookup, f"processes matching '{pattern}'")

    async def _escalate(self, lookup: Callable[[], Iterable], name: str) -> None:
        for phase in self.phases:
            targets = [p for p in lookup() if self._is_process_alive(p)]
            if not targets:
                logger.debug(f"No live {name} left before phase '{phase.name}'")
                return

            logger.debug(f"Sending {phase.signal.name} to {len(targets)} {name}")
            for target in targets:
                self._send_signal(target, phase)

            if phase.wait_ms is None:
                # Nothing survives SIGKILL, there is no point in waiting
                return

            if await self._wait_for_exit(targets, phase.wait_ms):
                logger.debug(f"{name} terminated after {phase.signal.name}")
                return
            logger.debug(f"{name} did not end within {phase.wait_ms}ms after {phase.signal.name}")

    def _resolve_target(self, process):
        if process is None:
            return None
        if isinstance(process, asyncio.subprocess.Process):
            if process.returncode is not None:
                return None
            process = process.pid
        if isinstance(process, int):
            try:
                return psutil.Process(process)
            except psutil.NoSuchProcess:
                logger.debug(f"Process {process} is already gone")
                return None
        return process

    def _send_signal(self, target, phase: TerminationPhase) -> None:
        try:
            target.send_signal(phase.signal)
        except psutil.NoSuchProcess:
            logger.debug(f"PID {target.pid} exited before {phase.signal.name} was delivered")
        except (psutil.AccessDenied, OSError) as e:
            raise ProcessTerminationError(
                f"Cannot send {phase.signal.name} to PID {target.pid}: {e}", pid=target.pid
            ) from e

    async def _wait_for_exit(self, targets: List, wait_ms: float) -> bool:
        """Poll liveness until all targets are dead or wait_ms elapses."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_ms / 1000
        while True:
            if not any(self._is_process_alive(t) for t in targets):
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval_ms / 1000)

    @staticmethod
    def _is_process_alive(process) -> bool:
        """Safely check if a process is still alive and not a zombie.

        A process whose status cannot be read is assumed alive, so that
        signalling it reports the permission problem.
        """
        try:
            if not process.is_running():
                return False
            return process.status() not in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True


async def kill_app_using_pattern(pattern: str, reaper: Optional[ProcessReaper] = None) -> None:
    """Terminate every process whose command line matches the pattern."""
    await (reaper or ProcessReaper()).kill_matching(pattern)


async def reset_test_processes(udid: str, is_simulator: bool) -> None:
    """
    Kill XCTest processes left behind for a particular device.

    Args:
        udid: The device identifier.
        is_simulator: Also look for simulator-only runner processes.
    """
    process_patterns = [f"xcodebuild.*{udid}"]
    if is_simulator:
        process_patterns.append(f"{udid}.*XCTRunner")
        # idb-launched runners
        process_patterns.append(f"xctest.*{udid}")
    logger.debug(f"Killing running processes '{', '.join(process_patterns)}' for the device {udid}...")
    await asyncio.gather(*(kill_app_using_pattern(p) for p in process_patterns))
