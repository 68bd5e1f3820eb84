"""Progress transports."""

from buildrelay.transports.base import ProgressTransport
from buildrelay.transports.factory import create_transport
from buildrelay.transports.pipe import DirectPipeTransport
from buildrelay.transports.socket_relay import SocketRelayTransport, generate_endpoint_name

__all__ = [
    "DirectPipeTransport",
    "ProgressTransport",
    "SocketRelayTransport",
    "create_transport",
    "generate_endpoint_name",
]
