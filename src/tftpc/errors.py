from __future__ import annotations


class TftpError(Exception):
    """Base class for every failure that ends a transfer."""


class TransportError(TftpError):
    """The datagram socket failed (bind, send or receive)."""

    def __init__(self, operation: str, cause: OSError):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class SinkError(TftpError):
    """Writing received bytes to the destination failed."""


class TransferCancelled(TftpError):
    pass


class ProtocolError(TftpError):
    pass


class ServerError(ProtocolError):
    def __init__(self, code: int, message: str):
        super().__init__(f"server error {code}: {message}")
        self.code = code
        self.message = message


class UnexpectedOpcode(ProtocolError):
    def __init__(self, opcode: int, expected: str):
        super().__init__(f"unexpected opcode {opcode} while expecting {expected}")
        self.opcode = opcode
        self.expected = expected


class DecodeError(ProtocolError, ValueError):
    """A datagram could not be decoded into a packet."""


class UnknownOpcode(DecodeError):
    def __init__(self, opcode: int):
        super().__init__(f"unknown opcode {opcode}")
        self.opcode = opcode


class Truncated(DecodeError):
    pass


class MalformedPacket(DecodeError):
    pass
