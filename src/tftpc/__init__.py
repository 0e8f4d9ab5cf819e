"""tftpc: a TFTP read client driven by non-blocking socket readiness.

- packet framing is separate from the transfer state machine
- the state machine never touches the multiplexer, only the runner does
- one socket, one thread, no timers
"""

from .client import ClientConfig, get
from .errors import TftpError

__all__ = ["ClientConfig", "TftpError", "get"]
