from __future__ import annotations

import enum
import selectors
from typing import List, Optional, Protocol


class Readiness(enum.IntFlag):
    READABLE = selectors.EVENT_READ
    WRITABLE = selectors.EVENT_WRITE


class Poller(Protocol):
    """Readiness multiplexer the runner drives. Only this seam varies per backend."""

    def register(self, fileobj, interest: Readiness) -> None: ...

    def modify(self, fileobj, interest: Readiness) -> None: ...

    def unregister(self, fileobj) -> None: ...

    def poll(self, timeout: Optional[float] = None) -> List[Readiness]: ...

    def close(self) -> None: ...


class SelectorPoller:
    """Level-triggered poller on top of ``selectors.DefaultSelector``."""

    def __init__(self, selector: Optional[selectors.BaseSelector] = None):
        self._selector = selector or selectors.DefaultSelector()

    def register(self, fileobj, interest: Readiness) -> None:
        self._selector.register(fileobj, int(interest))

    def modify(self, fileobj, interest: Readiness) -> None:
        self._selector.modify(fileobj, int(interest))

    def unregister(self, fileobj) -> None:
        self._selector.unregister(fileobj)

    def poll(self, timeout: Optional[float] = None) -> List[Readiness]:
        return [Readiness(mask) for _key, mask in self._selector.select(timeout)]

    def close(self) -> None:
        self._selector.close()
