from __future__ import annotations

import enum
import logging
import socket
from dataclasses import dataclass
from typing import Optional, Tuple

from . import packet
from .constants import DEFAULT_BIND_HOST, HEADER_SIZE
from .errors import TransportError
from .packet import Ack, Packet, ReadRequest, TransferMode

Address = Tuple[str, int]

log = logging.getLogger(__name__)


class SendResult(enum.Enum):
    SENT = "sent"
    WOULD_BLOCK = "would_block"


@dataclass(frozen=True, slots=True)
class Inbound:
    """A decoded datagram, its sender, and the buffer the packet borrows from."""

    packet: Packet
    addr: Address
    buffer: bytearray


class UdpTransport:
    """Non-blocking datagram socket talking to one remote transfer endpoint.

    The remote address starts as the server's well-known port and follows the
    source address of every datagram received, since servers answer from a
    fresh ephemeral port.
    """

    def __init__(self, sock: socket.socket, remote_addr: Address):
        self.sock = sock
        self.remote_addr = remote_addr
        self._ack_buf = bytearray(HEADER_SIZE)

    @classmethod
    def bound(
        cls,
        remote_addr: Address,
        host: str = DEFAULT_BIND_HOST,
        port: int = 0,
    ) -> "UdpTransport":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
            sock.setblocking(False)
        except OSError as exc:
            sock.close()
            raise TransportError("bind", exc) from exc
        return cls(sock, remote_addr)

    @property
    def local_addr(self) -> Address:
        return self.sock.getsockname()

    def fileno(self) -> int:
        return self.sock.fileno()

    def _sendto(self, data, operation: str) -> SendResult:
        try:
            self.sock.sendto(data, self.remote_addr)
        except BlockingIOError:
            return SendResult.WOULD_BLOCK
        except OSError as exc:
            raise TransportError(operation, exc) from exc
        return SendResult.SENT

    def send_read_request(self, path: str, mode: TransferMode) -> SendResult:
        data = packet.encode(ReadRequest(path, mode))
        result = self._sendto(data, "send read request")
        if result is SendResult.SENT:
            log.debug("RRQ %r (%s) -> %s:%d", path, mode.value, *self.remote_addr)
        return result

    def send_ack(self, block_id: int) -> SendResult:
        n = packet.encode_into(Ack(block_id), self._ack_buf)
        return self._sendto(memoryview(self._ack_buf)[:n], "send ack")

    def receive(self, buffer: bytearray) -> Optional[Inbound]:
        """Receive into ``buffer`` without blocking.

        Returns ``None`` when no datagram is waiting. The returned packet may
        borrow from ``buffer``, which travels back to the caller inside the
        ``Inbound`` and must not be reused until the packet has been consumed.
        """
        try:
            n, addr = self.sock.recvfrom_into(buffer)
        except BlockingIOError:
            return None
        except OSError as exc:
            raise TransportError("receive", exc) from exc

        decoded = packet.decode(memoryview(buffer)[:n])
        if addr != self.remote_addr:
            log.debug("remote endpoint is now %s:%d", *addr)
            self.remote_addr = addr
        return Inbound(decoded, addr, buffer)

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "UdpTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
