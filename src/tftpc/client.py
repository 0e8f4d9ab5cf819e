from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from .constants import DEFAULT_BIND_HOST, DEFAULT_PORT
from .machine import Sink, TransferMachine, TransferStats
from .net import UdpTransport
from .packet import TransferMode
from .poller import SelectorPoller
from .runner import Runner


@dataclass(frozen=True, slots=True)
class ClientConfig:
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    mode: TransferMode = TransferMode.OCTET
    bind_host: str = DEFAULT_BIND_HOST
    bind_port: int = 0
    poll_interval: Optional[float] = None

    @property
    def server_addr(self) -> tuple[str, int]:
        return (self.host, self.port)


def get(
    path: str,
    sink: Sink,
    config: Optional[ClientConfig] = None,
    cancel: Optional[threading.Event] = None,
) -> TransferStats:
    """Download ``path`` from the configured server into ``sink``.

    Raises a ``TftpError`` subclass if the transfer does not complete. Only
    acknowledged blocks are ever written to ``sink``.
    """
    config = config or ClientConfig()
    poller = SelectorPoller()
    try:
        with UdpTransport.bound(config.server_addr, config.bind_host, config.bind_port) as transport:
            machine = TransferMachine(transport, sink, path, config.mode)
            runner = Runner(poller, transport, poll_interval=config.poll_interval, cancel=cancel)
            return runner.run(machine)
    finally:
        poller.close()
