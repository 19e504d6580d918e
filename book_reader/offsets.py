from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class OffsetIndex:
    """Cumulative paragraph offsets in the unvirtualized document layout."""

    offsets: tuple[float, ...]
    heights: tuple[float, ...]
    total_height: float

    @classmethod
    def build(cls, heights: Iterable[float]) -> "OffsetIndex":
        offsets: list[float] = []
        collected: list[float] = []
        total = 0.0
        for height in heights:
            offsets.append(total)
            collected.append(height)
            total += height
        return cls(offsets=tuple(offsets), heights=tuple(collected), total_height=total)

    def __len__(self) -> int:
        return len(self.offsets)

    def offset_of(self, index: int) -> float:
        if 0 <= index < len(self.offsets):
            return self.offsets[index]
        return 0.0

    def first_after(self, position: float) -> int:
        """Return the first index whose offset is strictly greater than position.

        Returns ``len(self)`` when every offset is at or before the position.
        """
        return bisect_right(self.offsets, position)

    def last_at_or_before(self, position: float) -> int:
        """Return the index of the greatest offset <= position (0 when none)."""
        return max(0, self.first_after(position) - 1)

    def paragraph_at(self, position: float) -> int:
        """Return the paragraph intersecting ``position``.

        The first paragraph whose bottom edge lies below the position, or the
        final paragraph when the position is past the end. Returns -1 for an
        empty index.
        """
        if not self.offsets:
            return -1
        index = self.first_after(position) - 1
        if index < 0:
            return 0
        bottom = self.offsets[index] + self.heights[index]
        if position < bottom:
            return index
        return min(index + 1, len(self.offsets) - 1)

    def window(
        self, scroll_top: float, viewport_height: float, buffer_count: int
    ) -> tuple[int, int]:
        """Return the ``[start, end)`` paragraph range to materialize.

        Once ``scroll_top`` is at or past the last offset the window collapses
        to the final paragraph alone, without a leading buffer.
        """
        count = len(self.offsets)
        if count == 0:
            return 0, 0
        anchor = self.first_after(scroll_top)
        if anchor >= count:
            return count - 1, count
        start = max(0, anchor - buffer_count)
        end_anchor = self.first_after(scroll_top + viewport_height)
        if end_anchor >= count:
            end = count
        else:
            end = min(count, end_anchor + buffer_count)
        return start, max(start, end)

