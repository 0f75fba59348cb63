"""
clusterform/utils/async_command_runner.py

Asynchronous runner for the external tools clusterform drives (terraform,
ansible-playbook). Supports retries, an optional error_parser callback that
turns known stderr messages into short user-friendly errors, and an optional
timeout after which the child process is killed.

Usage example:
    from clusterform.utils.async_command_runner import run_command, CommandError

    try:
        output = await run_command(["terraform", "version"], retries=1)
        print(output)
    except CommandError as err:
        print(f"Command failed: {err}")
"""

from __future__ import annotations

import os
import asyncio
import logging
from typing import Callable, Dict, List, Optional

from clusterform.utils.async_retry import async_retry

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Represents a failure when executing a local command.

    Attributes:
        message (str): The error message describing the command failure.
        return_code (Optional[int]): The exit code if available.
    """

    def __init__(self, message: str, return_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.return_code = return_code


def _build_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    """Merge extra variables into a copy of os.environ, or return None to inherit."""
    if env is None:
        return None
    proc_env = os.environ.copy()
    proc_env.update(env)
    return proc_env


async def run_command(
    command: List[str],
    *,
    sensitive: bool = True,
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    input_data: Optional[str] = None,
    successful_return_codes: Optional[List[int]] = None,
    retries: int = 3,
    retry_delay: float = 1.0,
    timeout: Optional[float] = None,
    error_parser: Optional[Callable[[str], Optional[str]]] = None,
) -> str:
    """
    Executes a local command in a subprocess, asynchronously, with optional
    retries, timeout and error parser callback.

    If the command exits with a code not in `successful_return_codes`, a
    CommandError is raised. When `error_parser` returns a non-None string for
    the captured stderr, that string becomes the error message. When
    `sensitive=True`, the command line, stdout and stderr are left out of the
    error message.

    Args:
        command: The command and arguments to execute.
        sensitive: If True, hides command details in the raised error.
        env: Additional environment variables to add or override.
        cwd: Working directory for the command.
        input_data: If provided, passed to stdin.
        successful_return_codes: Return codes that are not errors. Defaults to [0].
        retries: Total number of attempts. Defaults to 3. With more than one,
            each failed attempt is logged as a warning.
        retry_delay: Delay in seconds between attempts. Defaults to 1.0.
        timeout: Seconds to wait for the process before killing it. None waits forever.
        error_parser: Callback receiving stderr, returning a short message or None.

    Returns:
        str: The captured, stripped stdout of the command on success.

    Raises:
        CommandError: If the command cannot be started, times out, or fails
            after all attempts.
    """
    ok_codes = successful_return_codes if successful_return_codes is not None else [0]

    @async_retry(
        retries=retries,
        delay=retry_delay,
        noisy=retries > 1,
        retry_on=(CommandError,),
    )
    async def _inner_run_command() -> str:
        proc_env = _build_env(env)
        stdin = asyncio.subprocess.PIPE if input_data else asyncio.subprocess.DEVNULL

        logger.debug("Running %s (cwd=%s)", command[0], cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=proc_env,
                cwd=cwd,
            )
        except FileNotFoundError as exc:
            raise CommandError(f"Executable not found: {command[0]}") from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(input=input_data.encode() if input_data else None),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise CommandError(
                f"Command {command[0]} timed out after {timeout} seconds."
            ) from exc

        stdout_str = stdout_bytes.decode(errors="replace").strip()
        stderr_str = stderr_bytes.decode(errors="replace").strip()

        if proc.returncode not in ok_codes:
            short_message = error_parser(stderr_str) if error_parser else None
            if short_message is not None:
                raise CommandError(short_message, proc.returncode)

            detail = ""
            if not sensitive:
                detail = (
                    f"\nCommand: {' '.join(command)}"
                    f"\nStdout: {stdout_str}"
                    f"\nStderr: {stderr_str}"
                )

            raise CommandError(
                f"Command failed with return code {proc.returncode}.{detail}",
                proc.returncode,
            )

        return stdout_str

    return await _inner_run_command()
