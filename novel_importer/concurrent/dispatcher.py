"""
Request dispatcher combining the connectivity probe with the request gate.
"""

from typing import Any, Callable, TypeVar

from novel_importer.utils.logging import get_logger
from novel_importer.utils.errors import NetworkError
from .connectivity import ConnectivityChecker
from .request_gate import RequestGate


logger = get_logger(__name__)

T = TypeVar("T")

NO_CONNECTION_MESSAGE = "Network unavailable, please check your connection"


class RequestDispatcher:
    """Runs outbound operations through the shared gate after a reachability check."""

    def __init__(self, connectivity_checker: ConnectivityChecker, gate: RequestGate):
        self.connectivity_checker = connectivity_checker
        self.gate = gate

    def execute_request(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run an operation if the network is reachable.

        Raises:
            NetworkError: With is_no_connection set, before any slot is taken
        """
        if not self.connectivity_checker.is_network_available():
            logger.warning("Request rejected, network unavailable")
            raise NetworkError(NO_CONNECTION_MESSAGE, is_no_connection=True)

        return self.gate.enqueue(operation, *args, **kwargs)

    def execute_request_without_check(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run an operation through the gate without probing connectivity."""
        return self.gate.enqueue(operation, *args, **kwargs)

    def is_network_available(self) -> bool:
        return self.connectivity_checker.is_network_available()

    def get_active_request_count(self) -> int:
        return self.gate.active_count

    def get_max_concurrent_requests(self) -> int:
        return self.gate.max_concurrent

    def can_execute_immediately(self) -> bool:
        return self.gate.can_execute_immediately()
