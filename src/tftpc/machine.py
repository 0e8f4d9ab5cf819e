"""Read-transfer state machine.

The machine never touches the multiplexer. Each state names the readiness it
is waiting for through ``interest``; the runner keeps the socket registration
in line with it. ``TransferMachine.step`` is the only transition function and
is driven with whatever readiness the poller reported.

    AwaitingRequestSend --RRQ sent--> ReceivingData(1)
    ReceivingData(n) --DATA n--> SendAck --ack sent--> ReceivingData(n+1) | Done
    ReceivingData(n) --DATA m != n--> ReceivingData(n)
    any --ERROR / failure--> Failed
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Protocol, Union

from .constants import BLOCK_ID_MODULUS, FIRST_BLOCK_ID, RECV_BUFFER_SIZE
from .errors import ServerError, SinkError, TftpError, UnexpectedOpcode
from .net import Inbound, SendResult, UdpTransport
from .packet import Data, Opcode, TransferMode
from .poller import Readiness

log = logging.getLogger(__name__)


class Sink(Protocol):
    def write(self, data) -> object: ...


@dataclass(slots=True)
class TransferStats:
    blocks: int = 0
    bytes_received: int = 0
    discarded: int = 0
    ack_would_block: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_received * 8 / 1_000_000) / self.duration_s


@dataclass(frozen=True, slots=True)
class AwaitingRequestSend:
    interest: ClassVar[Readiness] = Readiness.WRITABLE
    terminal: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class ReceivingData:
    interest: ClassVar[Readiness] = Readiness.READABLE
    terminal: ClassVar[bool] = False
    expected_id: int


@dataclass(frozen=True, slots=True)
class SendAck:
    interest: ClassVar[Readiness] = Readiness.WRITABLE
    terminal: ClassVar[bool] = False
    inbound: Inbound

    @property
    def data(self) -> Data:
        return self.inbound.packet


@dataclass(frozen=True, slots=True)
class Done:
    interest: ClassVar[Readiness] = Readiness(0)
    terminal: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class Failed:
    interest: ClassVar[Readiness] = Readiness(0)
    terminal: ClassVar[bool] = True
    error: TftpError


State = Union[AwaitingRequestSend, ReceivingData, SendAck, Done, Failed]


def next_block_id(block_id: int) -> int:
    return (block_id + 1) % BLOCK_ID_MODULUS


class TransferMachine:
    """Owns one read session: the transport, the sink and the receive buffer."""

    def __init__(
        self,
        transport: UdpTransport,
        sink: Sink,
        path: str,
        mode: TransferMode = TransferMode.OCTET,
        stats: Optional[TransferStats] = None,
    ):
        self.transport = transport
        self.sink = sink
        self.path = path
        self.mode = mode
        self.stats = stats or TransferStats()
        # None while lent to the transport or held by a pending SendAck.
        self._buffer: Optional[bytearray] = bytearray(RECV_BUFFER_SIZE)

    def initial(self) -> State:
        return AwaitingRequestSend()

    def step(self, state: State, events: Readiness) -> State:
        if state.terminal:
            return state
        try:
            if isinstance(state, AwaitingRequestSend):
                if events & Readiness.WRITABLE:
                    return self._send_request(state)
            elif isinstance(state, ReceivingData):
                if events & Readiness.READABLE:
                    return self._receive(state)
            elif isinstance(state, SendAck):
                if events & Readiness.WRITABLE:
                    return self._send_ack(state)
            else:
                raise TypeError(f"unknown state: {state!r}")
        except TftpError as exc:
            return self._fail(exc)
        return state

    def _send_request(self, state: AwaitingRequestSend) -> State:
        if self.transport.send_read_request(self.path, self.mode) is SendResult.WOULD_BLOCK:
            return state
        self.stats.start_ts = time.monotonic()
        log.info("requested %r (%s) from %s:%d", self.path, self.mode.value, *self.transport.remote_addr)
        return ReceivingData(FIRST_BLOCK_ID)

    def _lend_buffer(self) -> bytearray:
        buf = self._buffer
        if buf is None:
            raise RuntimeError("receive buffer is still in use")
        self._buffer = None
        return buf

    def _receive(self, state: ReceivingData) -> State:
        buf = self._lend_buffer()
        inbound = self.transport.receive(buf)
        if inbound is None:
            self._buffer = buf
            return state

        pkt = inbound.packet
        if pkt.opcode == Opcode.ERROR:
            raise ServerError(pkt.code, pkt.message)
        if pkt.opcode != Opcode.DATA:
            raise UnexpectedOpcode(int(pkt.opcode), Opcode.DATA.name)

        if pkt.block_id != state.expected_id:
            self.stats.discarded += 1
            log.debug("discarding block %d, expecting %d", pkt.block_id, state.expected_id)
            self._buffer = inbound.buffer
            return state

        return self._send_ack(SendAck(inbound))

    def _send_ack(self, state: SendAck) -> State:
        data = state.data
        if self.transport.send_ack(data.block_id) is SendResult.WOULD_BLOCK:
            self.stats.ack_would_block += 1
            log.debug("ack %d would block; waiting for writable", data.block_id)
            return state

        self._write_all(data)

        size = len(data.payload)
        self.stats.blocks += 1
        self.stats.bytes_received += size
        log.debug("block %d: %d bytes", data.block_id, size)
        last = data.last
        self._buffer = state.inbound.buffer

        if last:
            self.stats.end_ts = time.monotonic()
            log.info("transfer of %r complete: %d bytes in %d blocks", self.path, self.stats.bytes_received, self.stats.blocks)
            return Done()
        return ReceivingData(next_block_id(data.block_id))

    def _write_all(self, data: Data) -> None:
        """Hand the whole payload to the sink, following short writes.

        A ``None`` return (buffered files, sinks that do not report a count)
        means everything was taken.
        """
        view = memoryview(data.payload)
        while view:
            try:
                written = self.sink.write(view)
            except Exception as exc:
                raise SinkError(f"writing block {data.block_id} failed: {exc}") from exc
            if written is None:
                return
            if written <= 0:
                raise SinkError(f"sink accepted no bytes of block {data.block_id}")
            view = view[written:]

    def _fail(self, error: TftpError) -> Failed:
        self.stats.end_ts = time.monotonic()
        log.debug("transfer of %r failed: %s", self.path, error)
        return Failed(error)
