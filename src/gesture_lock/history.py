"""Sliding-window motion history for dynamic gestures.

Keeps a fixed-capacity FIFO of scalar samples per feature (a wrist's y,
the head's x, ...). Oscillating gestures push one sample per frame and
then look for back-and-forth movement in the window.

Usage:
    history = MotionHistory(capacity=30)
    hands = history.scope("oscillating_hands")
    hands.push("left_wrist_y", lm.y)
    if is_oscillating(hands.window("left_wrist_y"), min_samples=15, ...):
        ...
"""

from __future__ import annotations

from collections import deque
from typing import Hashable, Optional, Sequence


class MotionHistory:
    """Arena of bounded sample buffers, keyed by feature.

    A buffer never holds more than ``capacity`` samples; the oldest sample
    is evicted on overflow.
    """

    def __init__(self, capacity: int = 30):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._buffers: dict[Hashable, deque[float]] = {}

    def push(self, feature: Hashable, value: float):
        buf = self._buffers.get(feature)
        if buf is None:
            buf = self._buffers[feature] = deque(maxlen=self.capacity)
        buf.append(float(value))

    def window(self, feature: Hashable) -> list[float]:
        """Current samples for a feature, oldest first."""
        buf = self._buffers.get(feature)
        return list(buf) if buf is not None else []

    def clear(self, feature: Optional[Hashable] = None):
        """Drop one feature's buffer, or all of them."""
        if feature is None:
            self._buffers.clear()
        else:
            self._buffers.pop(feature, None)

    def scope(self, prefix: Hashable) -> ScopedHistory:
        return ScopedHistory(self, prefix)

    def features(self) -> list[Hashable]:
        return list(self._buffers)

    def __len__(self) -> int:
        return len(self._buffers)


class ScopedHistory:
    """View over a MotionHistory that namespaces keys as ``(prefix, feature)``."""

    def __init__(self, arena: MotionHistory, prefix: Hashable):
        self._arena = arena
        self.prefix = prefix

    @property
    def capacity(self) -> int:
        return self._arena.capacity

    def push(self, feature: str, value: float):
        self._arena.push((self.prefix, feature), value)

    def window(self, feature: str) -> list[float]:
        return self._arena.window((self.prefix, feature))

    def clear(self, feature: Optional[str] = None):
        if feature is not None:
            self._arena.clear((self.prefix, feature))
            return
        for key in self._arena.features():
            if isinstance(key, tuple) and key and key[0] == self.prefix:
                self._arena.clear(key)


# --- Oscillation analysis ---

def value_range(window: Sequence[float]) -> float:
    """Peak-to-peak amplitude of a window (0 when empty)."""
    if not window:
        return 0.0
    return max(window) - min(window)


def direction_changes(window: Sequence[float], noise_floor: float) -> int:
    """Count direction reversals between consecutive samples.

    Steps no larger than ``noise_floor`` are treated as jitter: they are
    skipped and do not reset the last seen direction.
    """
    changes = 0
    last_dir = 0
    for prev, cur in zip(window, window[1:]):
        delta = cur - prev
        if abs(delta) <= noise_floor:
            continue
        direction = 1 if delta > 0 else -1
        if last_dir != 0 and direction != last_dir:
            changes += 1
        last_dir = direction
    return changes


def is_oscillating(
    window: Sequence[float],
    min_samples: int,
    min_amplitude: float,
    noise_floor: float,
    min_reversals: int,
) -> bool:
    """True when a window shows sustained back-and-forth motion."""
    if len(window) < min_samples:
        return False
    if value_range(window) < min_amplitude:
        return False
    return direction_changes(window, noise_floor) >= min_reversals
