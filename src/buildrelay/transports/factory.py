"""Transport factory."""

from __future__ import annotations

from buildrelay.contracts.operation import TransportKind
from buildrelay.transports.base import ProgressTransport
from buildrelay.transports.pipe import DirectPipeTransport
from buildrelay.transports.socket_relay import SocketRelayTransport

TRANSPORTS: dict[TransportKind, type[ProgressTransport]] = {
    TransportKind.PIPE: DirectPipeTransport,
    TransportKind.SOCKET_RELAY: SocketRelayTransport,
}


def create_transport(kind: TransportKind | str, *, operation_name: str = "operation") -> ProgressTransport:
    try:
        resolved = TransportKind(kind)
    except ValueError as exc:
        raise ValueError(f"Unknown transport: {kind}") from exc

    transport_cls = TRANSPORTS[resolved]
    if transport_cls is SocketRelayTransport:
        return SocketRelayTransport(operation_name=operation_name)
    return transport_cls()
