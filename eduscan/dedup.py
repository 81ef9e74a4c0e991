"""
Scan dedup guard.

A badge held in front of a continuously sampling camera decodes many times a
second. The guard remembers the last identity that got through and suppresses
the same identity until the cooldown has elapsed. It is keyed on the parsed
identity, so different encodings of the same id still dedup.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class ScanCooldownEntry:
    identity: str
    timestamp: int  # epoch milliseconds


class ScanDedupGuard:
    """In-memory, single-entry guard; reset on restart."""

    def __init__(self, cooldown_ms: int = 4500):
        self.cooldown_ms = max(0, int(cooldown_ms))
        self._last: ScanCooldownEntry | None = None

    @property
    def last(self) -> ScanCooldownEntry | None:
        return self._last

    def should_accept(self, identity: str, now_ms: int) -> bool:
        last = self._last
        if last is None or last.identity != identity or now_ms - last.timestamp >= self.cooldown_ms:
            self._last = ScanCooldownEntry(identity=identity, timestamp=int(now_ms))
            return True
        return False

    def retry_after_ms(self, identity: str, now_ms: int) -> int:
        last = self._last
        if last is None or last.identity != identity:
            return 0
        return max(0, self.cooldown_ms - (now_ms - last.timestamp))

    def reset(self) -> None:
        self._last = None
