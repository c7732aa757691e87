"""TCP reachability probe.

A device is considered reachable when it accepts a TCP connection on the
probe port (SMB, 445, by default). Renames are only attempted on devices
that answer.
"""

import asyncio
import logging

from ..domain.ports import IHostProbe

logger = logging.getLogger(__name__)


class TcpHostProbe(IHostProbe):
    """Checks reachability by opening (and immediately closing) a TCP connection."""

    def __init__(self, port: int = 445, timeout: float = 3.0):
        self.port = port
        self.timeout = timeout

    async def is_reachable(self, host: str) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, self.port),
                timeout=self.timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"{host}:{self.port} unreachable: {e!r}")
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
