"""
Ephemeral TCP port allocation.

A port is reserved by binding to port 0, reading the number the OS picked,
and releasing the socket. Another process can grab the port between release
and reuse; callers accept that window.
"""

import logging
import socket
from dataclasses import dataclass

from .errors import PortAllocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortPair:
    """
    Ingress ports handed to the collector under test.

    Attributes:
        grpc_port: Port for the OTLP/gRPC receiver
        http_port: Port for the OTLP/HTTP receiver
    """

    grpc_port: int
    http_port: int

    def __post_init__(self):
        for name in ("grpc_port", "http_port"):
            value = getattr(self, name)
            if not 0 < value <= 65535:
                raise ValueError(f"{name} must be in 1..65535, got {value}")
        if self.grpc_port == self.http_port:
            raise ValueError(f"grpc_port and http_port must differ, both are {self.grpc_port}")


class PortAllocator:
    """Hands out currently unused TCP ports on a local interface."""

    def __init__(self, host: str = "127.0.0.1"):
        self.host = host

    def _probe(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((self.host, 0))
        except OSError as e:
            sock.close()
            raise PortAllocationError(f"Failed to bind ephemeral port on {self.host}: {e}") from e
        return sock

    def allocate(self) -> int:
        """
        Reserve a single ephemeral port.

        Returns:
            The port number, already released

        Raises:
            PortAllocationError: If the bind fails
        """
        sock = self._probe()
        try:
            port = sock.getsockname()[1]
        finally:
            sock.close()
        logger.debug("Allocated port %d on %s", port, self.host)
        return port

    def allocate_pair(self) -> PortPair:
        """
        Reserve two distinct ephemeral ports.

        Both probe sockets stay open until the second port is known, so the
        OS cannot return the same number twice.
        """
        first = self._probe()
        try:
            second = self._probe()
            try:
                pair = PortPair(
                    grpc_port=first.getsockname()[1],
                    http_port=second.getsockname()[1],
                )
            finally:
                second.close()
        finally:
            first.close()
        logger.debug("Allocated ports grpc=%d http=%d", pair.grpc_port, pair.http_port)
        return pair
