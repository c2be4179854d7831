"""
Process query utilities.

This module finds processes by full command line and by listening port. It
only looks processes up; terminating them is ProcessReaper's job.
"""

import inspect
import logging
import re
from typing import Awaitable, Callable, List, Optional, Union

import psutil

from .commands import run_command

logger = logging.getLogger(__name__)

CmdlineFilter = Callable[[str], Union[bool, Awaitable[bool]]]


def _process_cmdline(process: psutil.Process) -> Optional[str]:
    try:
        return " ".join(process.cmdline())
    except (psutil.NoSuchProcess, psutil.ZombieProcess):
        return None
    except psutil.AccessDenied:
        logger.debug(f"Access denied reading command line of PID {process.pid}")
        return None


def get_pids_using_pattern(pattern: str) -> List[int]:
    """Return PIDs of processes whose full command line matches a pattern.

    Matching is a case-insensitive regular expression search, the way
    `pgrep -if` matches. The calling process is never included.

    Args:
        pattern: Regular expression applied to the joined command line.
    """
    regex = re.compile(pattern, re.IGNORECASE)
    own_pid = psutil.Process().pid
    matched = []
    for proc in psutil.process_iter(["pid", "cmdline"]):
        try:
            cmdline = proc.info.get("cmdline")
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if not cmdline or proc.info["pid"] == own_pid:
            continue
        if regex.search(" ".join(cmdline)):
            matched.append(proc.info["pid"])
    if not matched:
        logger.debug(f"No running processes match the pattern '{pattern}'")
    return matched


async def get_pids_listening_on_port(
    port: Union[int, str],
    filtering_func: Optional[CmdlineFilter] = None,
) -> List[int]:
    """Get the IDs of processes listening on a TCP port.

    Args:
        port: The port number.
        filtering_func: Optional predicate receiving the command line of each
            listening process; only PIDs for which it returns True are kept.
            It may be a coroutine function.

    Returns:
        The matched process ids.
    """
    return_code, stdout, stderr = await run_command(["lsof", "-ti", f"tcp:{port}"])
    if return_code != 0:
        # lsof exits with 1 when nothing listens on the port
        if return_code != 1:
            logger.debug(f"Error getting processes listening on port '{port}': {stderr or return_code}")
        return []

    pids = [int(x) for x in stdout.split() if x.strip().isdigit()]
    if filtering_func is None:
        return pids

    result = []
    for pid in pids:
        try:
            cmdline = _process_cmdline(psutil.Process(pid))
        except psutil.NoSuchProcess:
            continue
        if cmdline is None:
            continue
        verdict = filtering_func(cmdline)
        if inspect.isawaitable(verdict):
            verdict = await verdict
        if verdict:
            result.append(pid)
    return result
