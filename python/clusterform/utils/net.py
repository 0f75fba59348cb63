"""
clusterform/utils/net.py

TCP reachability polling used before handing nodes to Ansible. A freshly
booted instance accepts SSH some time after the provider reports it running,
so the handoff polls port 22 until a handshake succeeds or a deadline passes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class HostUnreachableError(Exception):
    """Raised when a host does not accept TCP connections before the deadline.

    Attributes:
        host (str): The polled address.
        port (int): The polled port.
        attempts (int): Number of connection attempts made.
        elapsed (float): Seconds spent polling.
    """

    def __init__(self, host: str, port: int, attempts: int, elapsed: float) -> None:
        super().__init__(
            f"{host}:{port} unreachable after {attempts} attempt(s) in {elapsed:.1f}s."
        )
        self.host = host
        self.port = port
        self.attempts = attempts
        self.elapsed = elapsed


async def probe_port(host: str, port: int, connect_timeout: float = 5.0) -> bool:
    """Attempt one TCP handshake. Returns True if the connection was accepted."""
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=connect_timeout
        )
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


async def wait_for_port(
    host: str,
    port: int = 22,
    *,
    interval: float = 5.0,
    timeout: Optional[float] = 600.0,
    connect_timeout: float = 5.0,
) -> int:
    """Poll `host:port` every `interval` seconds until a handshake succeeds.

    Args:
        host: Address to poll.
        port: TCP port, 22 for SSH.
        interval: Seconds between attempts.
        timeout: Overall deadline in seconds. None polls without a deadline.
        connect_timeout: Per-attempt connection timeout.

    Returns:
        int: The number of attempts it took.

    Raises:
        HostUnreachableError: If the deadline passes first.
    """
    loop = asyncio.get_running_loop()
    started = loop.time()
    deadline = None if timeout is None else started + timeout
    attempts = 0

    while True:
        attempts += 1
        per_attempt = connect_timeout
        if deadline is not None:
            per_attempt = max(min(connect_timeout, deadline - loop.time()), 0.001)
        if await probe_port(host, port, per_attempt):
            logger.info("%s:%d reachable after %d attempt(s)", host, port, attempts)
            return attempts

        now = loop.time()
        if deadline is not None and now >= deadline:
            raise HostUnreachableError(host, port, attempts, now - started)
        logger.debug("%s:%d not reachable yet (attempt %d)", host, port, attempts)
        delay = interval if deadline is None else min(interval, deadline - now)
        await asyncio.sleep(delay)
