import secrets
import threading
import time
from typing import Callable

DEFAULT_PREFIX = "REF"


class ReferenceGenerator:
    """Issues pledge references shaped like ``REF-<millis>-<hex>``.

    The millisecond part never repeats or goes backwards within a process,
    even when several pledges arrive in the same millisecond; the random
    suffix keeps separate worker processes apart. Output only uses
    ``[A-Za-z0-9-]`` so it is safe in URLs.
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX, suffix_bytes: int = 4,
                 clock: Callable[[], float] = time.time) -> None:
        self.prefix = prefix
        self.suffix_bytes = suffix_bytes
        self.clock = clock
        self._lock = threading.Lock()
        self._last_ms = 0

    def _next_ms(self) -> int:
        with self._lock:
            ms = max(int(self.clock() * 1000), self._last_ms + 1)
            self._last_ms = ms
            return ms

    def __call__(self) -> str:
        ms = self._next_ms()
        return f"{self.prefix}-{ms}-{secrets.token_hex(self.suffix_bytes)}"
