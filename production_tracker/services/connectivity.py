"""
Network connectivity probe.

The RecordStore asks "is the device online?" before every remote call and
takes the local-cache path when the answer is no. The probe must be cheap
and must never raise.
"""

import socket
from enum import Enum
from typing import Callable, Optional

from production_tracker.config import AppSettings


ConnectivityProbe = Callable[[], bool]


class BackendStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    DISABLED = "disabled"  # No remote table configured


def socket_probe(
    host: str = "8.8.8.8",
    port: int = 53,
    timeout: float = 1.5,
) -> ConnectivityProbe:
    """Probe that opens (and closes) a TCP connection to host:port."""

    def _probe() -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False

    return _probe


def probe_from_settings(settings: Optional[AppSettings] = None) -> ConnectivityProbe:
    settings = settings or AppSettings()
    return socket_probe(
        host=settings.connectivity_host,
        port=settings.connectivity_port,
        timeout=settings.connectivity_timeout_seconds,
    )
