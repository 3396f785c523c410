"""asyncio-backed scheduler used by the HTTP runtime."""

import asyncio
from typing import Callable


class LoopScheduler:
    """Tiny adapter exposing `now_ms` and `call_later` atop the running asyncio loop.

    Must be used from inside the loop (request handlers and timer callbacks
    both are).
    """

    def now_ms(self) -> int:
        return int(asyncio.get_running_loop().time() * 1000)

    def call_later(self, ms: int, cb: Callable[[], None]):
        handle = asyncio.get_running_loop().call_later(ms / 1000.0, cb)

        def cancel():
            handle.cancel()

        return cancel
