"""Time-ordered string IDs for business rows (positions, orders, pools, bets).

Snowflake-style 64-bit layout, simplified for a single process:
  - 41 bits: milliseconds since a custom epoch
  - 10 bits: node id
  - 12 bits: per-millisecond sequence
"""

import threading
import time

_EPOCH_MS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
_NODE_BITS = 10
_SEQ_BITS = 12
_SEQ_MASK = (1 << _SEQ_BITS) - 1


class SnowflakeIdGenerator:
    def __init__(self, node_id: int = 0) -> None:
        if not (0 <= node_id < (1 << _NODE_BITS)):
            raise ValueError(f"node_id must be 0-{(1 << _NODE_BITS) - 1}")
        self._node_id = node_id
        self._seq = 0
        self._last_ms = -1
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            now_ms = int(time.time() * 1000)
            if now_ms <= self._last_ms:
                # Same millisecond (or clock went backwards): keep monotonic
                now_ms = self._last_ms
                self._seq = (self._seq + 1) & _SEQ_MASK
                if self._seq == 0:
                    now_ms += 1
            else:
                self._seq = 0
            self._last_ms = now_ms
            value = (
                ((now_ms - _EPOCH_MS) << (_NODE_BITS + _SEQ_BITS))
                | (self._node_id << _SEQ_BITS)
                | self._seq
            )
            return str(value)


_default_generator = SnowflakeIdGenerator()


def generate_id() -> str:
    """Unique, monotonically increasing string ID from the module-level generator."""
    return _default_generator.next_id()
