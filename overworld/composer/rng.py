"""
Seeded pseudo-random source shared by every composition stage.

One SeededRNG instance is threaded explicitly through the stages that
draw from it; the order of draws is part of the output contract, so a
stage must never create its own generator behind the caller's back.
"""

import math
from typing import Any, List, MutableSequence, Tuple

MASK_32 = 0xFFFFFFFF
TWO_POW_32 = 0x100000000

LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223


class SeededRNG:
    """
    32-bit linear congruential generator.

    Args:
        seed: Integer seed; reduced modulo 2**32
        trace: Record every public draw in `history` as (op, value)
    """

    def __init__(self, seed: int, trace: bool = False):
        self.state = int(seed) & MASK_32
        self.trace = trace
        self.history: List[Tuple[str, Any]] = []
        self.draw_count = 0

    def _step(self) -> float:
        self.state = (self.state * LCG_MULTIPLIER + LCG_INCREMENT) & MASK_32
        self.draw_count += 1
        return self.state / TWO_POW_32

    def _record(self, op: str, value):
        if self.trace:
            self.history.append((op, value))
        return value

    def next(self) -> float:
        """Returns a float in [0, 1)."""
        return self._record('next', self._step())

    def next_int(self, low: int, high: int) -> int:
        """Returns an integer in [low, high] inclusive."""
        return self._record('next_int', low + math.floor(self._step() * (high - low + 1)))

    def chance(self, probability: float) -> bool:
        """Returns True with the given probability."""
        return self._record('chance', self._step() < probability)

    def shuffle(self, items: MutableSequence) -> MutableSequence:
        """In-place Fisher-Yates shuffle; returns `items` for chaining."""
        for i in range(len(items) - 1, 0, -1):
            j = self._record('shuffle', math.floor(self._step() * (i + 1)))
            items[i], items[j] = items[j], items[i]
        return items

    def ops(self) -> List[str]:
        """Operation names of the traced draws, in order."""
        return [op for op, _ in self.history]

    def __repr__(self):
        return f"SeededRNG(state={self.state}, draws={self.draw_count})"


def hash_string(text: str) -> int:
    """
    Deterministic string hash (31-multiplier, wrapped to signed 32-bit).

    Returns:
        Absolute value of the wrapped hash
    """
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & MASK_32
    if value >= 0x80000000:
        value -= TWO_POW_32
    return abs(value)
