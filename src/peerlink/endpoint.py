"""Socket endpoints for local and remote peer addresses."""

import ipaddress
from dataclasses import dataclass
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class Endpoint:
    """An IPv4 or IPv6 socket address, as produced by address discovery.

    Attributes:
        host: The IP address.
        port: UDP port (0-65535).
        interface: Optional interface name the address was found on.
        netmask: Optional subnet mask reported for the interface.
    """

    host: IPAddress
    port: int
    interface: Optional[str] = None
    netmask: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"Port out of range: {self.port}")

    @property
    def family(self) -> int:
        """IP version (4 or 6)."""
        return self.host.version

    @classmethod
    def of(cls, host: str, port: int, **kwargs) -> "Endpoint":
        """Build an endpoint from a textual address."""
        return cls(host=ipaddress.ip_address(host), port=port, **kwargs)

    @classmethod
    def parse(cls, text: str) -> "Endpoint":
        """
        Parse "1.2.3.4:5000" or "[::1]:5000".

        Raises:
            ValueError: If the text is not a valid endpoint
        """
        if text.startswith("["):
            host, sep, port = text[1:].partition("]:")
        else:
            host, sep, port = text.rpartition(":")
        if not sep or not port.isdigit():
            raise ValueError(f"Invalid endpoint: {text!r}")
        return cls.of(host, int(port))

    def as_tuple(self) -> tuple:
        """Address tuple suitable for socket.sendto."""
        return (str(self.host), self.port)

    def __str__(self) -> str:
        if self.family == 6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"
