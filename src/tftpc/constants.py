from __future__ import annotations

OPCODE_FORMAT = "!H"
U16_FORMAT = "!H"
BLOCK_HEADER_FORMAT = "!HH"  # opcode, block id / error code

RRQ = 1
WRQ = 2
DATA = 3
ACK = 4
ERROR = 5

MAX_BLOCK_SIZE = 512
HEADER_SIZE = 4
# One spare byte so an oversized datagram reaches decode instead of being cut to a full block.
RECV_BUFFER_SIZE = MAX_BLOCK_SIZE + HEADER_SIZE + 1

BLOCK_ID_MODULUS = 1 << 16
FIRST_BLOCK_ID = 1

DEFAULT_PORT = 69
DEFAULT_BIND_HOST = "0.0.0.0"

# Ceiling on a single poll when a cancel token has to be observed.
CANCEL_POLL_INTERVAL_S = 0.5
