from __future__ import annotations

import logging
import threading
from typing import Optional

from .constants import CANCEL_POLL_INTERVAL_S
from .errors import TransferCancelled
from .machine import Failed, TransferMachine, TransferStats
from .net import UdpTransport
from .poller import Poller

log = logging.getLogger(__name__)


class Runner:
    """Drives one ``TransferMachine`` from readiness events on its socket.

    The socket is registered with the interest of the machine's current state
    and re-registered whenever a transition changes it. Wakeups that lead
    nowhere (empty polls, nothing to receive yet) just loop again.
    """

    def __init__(
        self,
        poller: Poller,
        transport: UdpTransport,
        poll_interval: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.poller = poller
        self.transport = transport
        self.cancel = cancel
        if poll_interval is None and cancel is not None:
            poll_interval = CANCEL_POLL_INTERVAL_S
        self.poll_interval = poll_interval

    def run(self, machine: TransferMachine) -> TransferStats:
        state = machine.initial()
        armed = state.interest
        self.poller.register(self.transport, armed)
        try:
            while not state.terminal:
                if self.cancel is not None and self.cancel.is_set():
                    raise TransferCancelled(f"transfer of {machine.path!r} cancelled")

                for events in self.poller.poll(self.poll_interval):
                    state = machine.step(state, events)
                    if state.terminal:
                        break
                    if state.interest != armed:
                        armed = state.interest
                        self.poller.modify(self.transport, armed)
        finally:
            self.poller.unregister(self.transport)

        if isinstance(state, Failed):
            raise state.error
        return machine.stats
