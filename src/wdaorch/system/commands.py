"""
Command execution utilities.

This module runs external tools (xcodebuild, security, lsof) as asyncio
subprocesses and captures their output.
"""

import asyncio
import logging
import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


async def run_command(
    args: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Tuple[int, str, str]:
    """Execute a command and capture its output without raising on failure.

    Args:
        args: Program and arguments.
        cwd: Working directory for the command.
        env: Full environment for the child, inherited when None.

    Returns:
        Tuple of (return_code, stdout_string, stderr_string).
        return_code is -1 when the program could not be started.
    """
    logger.debug(f"Executing command: '{' '.join(args)}'" + (f" in '{cwd}'" if cwd else ""))
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd else None,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        logger.error(f"Command not found: {args[0]}: {type(e).__name__}: {e}")
        return -1, "", f"Error: Command not found '{args[0]}'"

    stdout, stderr = await process.communicate()
    return (
        process.returncode,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


async def exec_command(
    args: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Tuple[str, str]:
    """Execute a command and raise if it does not succeed.

    Returns:
        Tuple of (stdout_string, stderr_string).

    Raises:
        subprocess.CalledProcessError: If the command exits with a nonzero code
            or cannot be started.
    """
    return_code, stdout, stderr = await run_command(args, cwd=cwd, env=env)
    if return_code != 0:
        raise subprocess.CalledProcessError(return_code, list(args), output=stdout, stderr=stderr)
    return stdout, stderr


def build_child_environment(overrides: Mapping[str, object]) -> dict:
    """Copy the current environment and apply string-converted overrides.

    Overrides whose value is None are skipped.
    """
    env = os.environ.copy()
    for key, value in overrides.items():
        if value is None:
            continue
        env[key] = str(value)
    return env
