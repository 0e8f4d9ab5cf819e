"""TFTP packet framing (RFC 1350).

Every datagram starts with a big-endian 16-bit opcode. Requests carry two
NUL-terminated ASCII strings, DATA and ACK carry a 16-bit block id and ERROR a
16-bit code plus a NUL-terminated message.

Decoding never copies a DATA payload: ``Data.payload`` is a ``memoryview`` into
the buffer handed to ``decode`` and stays valid only until that buffer is
reused for the next datagram.
"""
from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple, Union

from .constants import ACK, BLOCK_HEADER_FORMAT, DATA, ERROR, HEADER_SIZE, MAX_BLOCK_SIZE, OPCODE_FORMAT, RRQ, U16_FORMAT, WRQ
from .errors import MalformedPacket, Truncated, UnexpectedOpcode, UnknownOpcode

Buffer = Union[bytes, bytearray, memoryview]


class Opcode(enum.IntEnum):
    RRQ = RRQ
    WRQ = WRQ
    DATA = DATA
    ACK = ACK
    ERROR = ERROR


class TransferMode(str, enum.Enum):
    NETASCII = "netascii"
    OCTET = "octet"
    MAIL = "mail"

    @classmethod
    def parse(cls, name: str) -> "TransferMode":
        try:
            return cls(name.lower())
        except ValueError:
            raise ValueError(f"unknown transfer mode: {name!r}") from None


class ErrorCode(enum.IntEnum):
    NOT_DEFINED = 0
    FILE_NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TID = 5
    FILE_EXISTS = 6
    NO_SUCH_USER = 7


@dataclass(frozen=True, slots=True)
class ReadRequest:
    opcode: ClassVar[Opcode] = Opcode.RRQ
    path: str
    mode: TransferMode = TransferMode.OCTET


@dataclass(frozen=True, slots=True)
class WriteRequest:
    opcode: ClassVar[Opcode] = Opcode.WRQ
    path: str
    mode: TransferMode = TransferMode.OCTET


@dataclass(frozen=True, slots=True)
class Data:
    opcode: ClassVar[Opcode] = Opcode.DATA
    block_id: int
    payload: Buffer = b""

    @property
    def last(self) -> bool:
        return len(self.payload) < MAX_BLOCK_SIZE


@dataclass(frozen=True, slots=True)
class Ack:
    opcode: ClassVar[Opcode] = Opcode.ACK
    block_id: int


@dataclass(frozen=True, slots=True)
class Error:
    opcode: ClassVar[Opcode] = Opcode.ERROR
    code: int
    message: str = ""

    def describe(self) -> str:
        try:
            name = ErrorCode(self.code).name.lower().replace("_", " ")
        except ValueError:
            name = "unknown error"
        return f"{name} ({self.code}): {self.message}" if self.message else f"{name} ({self.code})"


Packet = Union[ReadRequest, WriteRequest, Data, Ack, Error]


def _ascii(value: str, what: str) -> bytes:
    if "\x00" in value:
        raise ValueError(f"{what} must not contain NUL")
    try:
        return value.encode("ascii")
    except UnicodeEncodeError:
        raise ValueError(f"{what} must be ASCII: {value!r}") from None


def _check_u16(value: int, what: str) -> None:
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"{what} out of range: {value}")


def encoded_size(packet: Packet) -> int:
    op = packet.opcode
    if op in (Opcode.RRQ, Opcode.WRQ):
        return 2 + len(packet.path) + 1 + len(packet.mode.value) + 1
    if op == Opcode.DATA:
        return HEADER_SIZE + len(packet.payload)
    if op == Opcode.ACK:
        return HEADER_SIZE
    if op == Opcode.ERROR:
        return HEADER_SIZE + len(packet.message) + 1
    raise TypeError(f"not a packet: {packet!r}")


def encode_into(packet: Packet, buffer: Union[bytearray, memoryview], offset: int = 0) -> int:
    """Write ``packet`` into ``buffer`` at ``offset`` and return its length."""
    size = encoded_size(packet)
    if len(buffer) - offset < size:
        raise ValueError(f"buffer too small: need {size} bytes, have {len(buffer) - offset}")

    op = packet.opcode
    if op in (Opcode.RRQ, Opcode.WRQ):
        path = _ascii(packet.path, "path")
        mode = packet.mode.value.encode("ascii")
        struct.pack_into(OPCODE_FORMAT, buffer, offset, int(op))
        pos = offset + 2
        for field in (path, mode):
            buffer[pos : pos + len(field)] = field
            pos += len(field)
            buffer[pos] = 0
            pos += 1
    elif op == Opcode.DATA:
        _check_u16(packet.block_id, "block id")
        n = len(packet.payload)
        if n > MAX_BLOCK_SIZE:
            raise ValueError(f"payload too large: {n}")
        struct.pack_into(BLOCK_HEADER_FORMAT, buffer, offset, int(op), packet.block_id)
        buffer[offset + HEADER_SIZE : offset + HEADER_SIZE + n] = packet.payload
    elif op == Opcode.ACK:
        _check_u16(packet.block_id, "block id")
        struct.pack_into(BLOCK_HEADER_FORMAT, buffer, offset, int(op), packet.block_id)
    elif op == Opcode.ERROR:
        _check_u16(packet.code, "error code")
        message = _ascii(packet.message, "message")
        struct.pack_into(BLOCK_HEADER_FORMAT, buffer, offset, int(op), packet.code)
        pos = offset + HEADER_SIZE
        buffer[pos : pos + len(message)] = message
        buffer[pos + len(message)] = 0
    else:
        raise TypeError(f"not a packet: {packet!r}")
    return size


def encode(packet: Packet) -> bytes:
    buf = bytearray(encoded_size(packet))
    encode_into(packet, buf)
    return bytes(buf)


def _read_cstring(view: memoryview, what: str) -> Tuple[bytes, memoryview]:
    raw = view.tobytes()
    end = raw.find(b"\x00")
    if end < 0:
        raise Truncated(f"{what} is not NUL-terminated")
    return raw[:end], view[end + 1 :]


def _decode_request(op: Opcode, body: memoryview) -> Packet:
    raw_path, rest = _read_cstring(body, "path")
    raw_mode, rest = _read_cstring(rest, "mode")
    if len(rest):
        raise MalformedPacket(f"{len(rest)} trailing bytes after request")
    try:
        path = raw_path.decode("ascii")
        mode = TransferMode.parse(raw_mode.decode("ascii"))
    except ValueError as exc:
        raise MalformedPacket(str(exc)) from exc
    return ReadRequest(path, mode) if op == Opcode.RRQ else WriteRequest(path, mode)


def decode(data: Buffer, kind: Optional[Opcode] = None) -> Packet:
    """Decode one datagram.

    ``kind`` pins the expected opcode; a different opcode on the wire raises
    ``UnexpectedOpcode``. Malformed input raises a ``DecodeError`` subclass.
    """
    view = memoryview(data)
    if len(view) < 2:
        raise Truncated(f"datagram of {len(view)} bytes has no opcode")

    (raw_op,) = struct.unpack_from(OPCODE_FORMAT, view)
    try:
        op = Opcode(raw_op)
    except ValueError:
        raise UnknownOpcode(raw_op) from None
    if kind is not None and op != kind:
        raise UnexpectedOpcode(raw_op, kind.name)

    body = view[2:]
    if op in (Opcode.RRQ, Opcode.WRQ):
        return _decode_request(op, body)

    if len(body) < 2:
        raise Truncated(f"{op.name} packet of {len(view)} bytes is missing its header")
    (number,) = struct.unpack_from(U16_FORMAT, body)

    if op == Opcode.DATA:
        payload = body[2:]
        if len(payload) > MAX_BLOCK_SIZE:
            raise MalformedPacket(f"payload too large: {len(payload)}")
        return Data(number, payload)
    if op == Opcode.ACK:
        if len(body) > 2:
            raise MalformedPacket(f"{len(body) - 2} trailing bytes after ACK")
        return Ack(number)

    # Some servers omit the terminator on the error message; take what is there.
    raw = body[2:].tobytes()
    end = raw.find(b"\x00")
    message = raw if end < 0 else raw[:end]
    return Error(number, message.decode("ascii", errors="replace"))
