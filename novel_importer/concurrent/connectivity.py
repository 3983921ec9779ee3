"""
Network reachability probe used before dispatching requests.
"""

import socket
from typing import Callable, Optional

from novel_importer.utils.logging import get_logger


logger = get_logger(__name__)


class ConnectivityChecker:
    """Reports whether the network is reachable by opening a TCP connection."""

    def __init__(self,
                 host: str = "8.8.8.8",
                 port: int = 53,
                 timeout: float = 3.0,
                 enabled: bool = True,
                 probe: Optional[Callable[[], bool]] = None):
        """
        Args:
            host: Host to connect to
            port: Port to connect to
            timeout: Connection timeout in seconds
            enabled: When False the network is always reported available
            probe: Optional callable replacing the TCP probe
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.enabled = enabled
        self._probe = probe

    def is_network_available(self) -> bool:
        if not self.enabled:
            return True

        if self._probe is not None:
            return bool(self._probe())

        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logger.warning("Connectivity probe failed", host=self.host, port=self.port, error=str(e))
            return False
