from collections import OrderedDict
from typing import Callable, Iterator, Optional, Tuple


def walk_block_ranges(start: int, end: int, step: int = 1000) -> Iterator[Tuple[int, int]]:
    """Yield inclusive (from, to) windows covering [start, end]."""
    if step <= 0:
        raise ValueError(f"window size must be positive, got {step}")
    for i in range(start, end + 1, step):
        yield i, min(i + step - 1, end)


class BlockTimestampCache:
    """Bounded LRU of block → unix timestamp, filled through `fetch` on a miss."""

    def __init__(self, fetch: Callable[[int], int], maxsize: int = 2000):
        self._fetch = fetch
        self._maxsize = maxsize
        self._data: "OrderedDict[int, int]" = OrderedDict()

    def get(self, block_number: int) -> int:
        ts = self.peek(block_number)
        if ts is not None:
            return ts
        ts = int(self._fetch(block_number))
        self._data[block_number] = ts
        if len(self._data) > self._maxsize:
            self._data.popitem(last=False)
        return ts

    def peek(self, block_number: int) -> Optional[int]:
        if block_number in self._data:
            self._data.move_to_end(block_number)
            return self._data[block_number]
        return None

    def __len__(self) -> int:
        return len(self._data)
