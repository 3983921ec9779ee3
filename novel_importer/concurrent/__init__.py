"""
Concurrency control for outbound requests.

Main Components:
- RequestGate: FIFO-fair bound on concurrent fetches
- ConnectivityChecker: Reachability probe
- RequestDispatcher: Connectivity check in front of the gate
"""

from .thread_safe import ThreadSafeCounter, ThreadSafeFlag
from .request_gate import RequestGate
from .connectivity import ConnectivityChecker
from .dispatcher import RequestDispatcher

__all__ = [
    'ThreadSafeCounter',
    'ThreadSafeFlag',
    'RequestGate',
    'ConnectivityChecker',
    'RequestDispatcher'
]
