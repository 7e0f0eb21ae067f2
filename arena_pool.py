"""
Arena / Object Pool for solver scratch storage

Three categories of reusable backing stores:
- INT_TABLE: growable int64 tables (DP values, chain heads)
- PATH_NODES: flat arena of (item_index, prev_index) path nodes
- ORDER_LIST: plain order lists

Buffers are reset to length 0 on checkout and always handed back on exit.
Nothing read from a buffer is trusted before it has been overwritten, so a
pool miss (or no pool at all) only costs a fresh allocation.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, NamedTuple, Optional

import numpy as np


logger = logging.getLogger(__name__)

INT_TABLE = "int_table"
PATH_NODES = "path_nodes"
ORDER_LIST = "order_list"

NO_NODE = -1


@dataclass(frozen=True)
class PoolConfig:
    """Sizing for the arena pool."""
    max_free_per_category: int = 8   # Buffers kept per category after release
    int_table_size: int = 1024       # Initial cells per int table
    path_arena_size: int = 512       # Initial nodes per path arena
    order_list_size: int = 128       # Nominal order list size (lists grow freely)


class PathNode(NamedTuple):
    """One link of a reconstruction chain."""
    item_index: int
    prev_index: int


class IntTable:
    """Growable int64 storage handing out overwritten prefixes."""

    def __init__(self, capacity: int = 1024):
        self._data = np.empty(max(1, capacity), dtype=np.int64)
        self.size = 0

    @property
    def capacity(self) -> int:
        return len(self._data)

    def reset(self) -> None:
        self.size = 0

    def allocate(self, length: int, fill: int) -> np.ndarray:
        """Return a view of `length` cells, every one set to `fill`."""
        if length > len(self._data):
            new_capacity = max(length, 2 * len(self._data))
            self._data = np.empty(new_capacity, dtype=np.int64)
        view = self._data[:length]
        view.fill(fill)
        self.size = length
        return view


class PathArena:
    """Flat store of path nodes; chains link through prev_index."""

    def __init__(self, capacity: int = 512):
        capacity = max(1, capacity)
        self._items = np.empty(capacity, dtype=np.int64)
        self._prevs = np.empty(capacity, dtype=np.int64)
        self.size = 0

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, index: int) -> PathNode:
        if not 0 <= index < self.size:
            raise IndexError(index)
        return PathNode(int(self._items[index]), int(self._prevs[index]))

    def reset(self) -> None:
        self.size = 0

    def _reserve(self, extra: int) -> None:
        needed = self.size + extra
        if needed <= len(self._items):
            return
        new_capacity = max(needed, 2 * len(self._items))
        items = np.empty(new_capacity, dtype=np.int64)
        prevs = np.empty(new_capacity, dtype=np.int64)
        items[:self.size] = self._items[:self.size]
        prevs[:self.size] = self._prevs[:self.size]
        self._items, self._prevs = items, prevs

    def append(self, item_index: int, prev_index: int) -> int:
        self._reserve(1)
        index = self.size
        self._items[index] = item_index
        self._prevs[index] = prev_index
        self.size += 1
        return index

    def extend(self, item_index: int, prev_indices: np.ndarray) -> np.ndarray:
        """
        Append one node per entry of prev_indices, all for the same item.

        Returns:
            Arena indices of the new nodes, in the order given
        """
        count = len(prev_indices)
        self._reserve(count)
        start = self.size
        self._items[start:start + count] = item_index
        self._prevs[start:start + count] = prev_indices
        self.size += count
        return np.arange(start, start + count, dtype=np.int64)

    def chain(self, head: int) -> List[int]:
        """Item indices along the chain starting at head (newest first)."""
        items = []
        index = head
        while index != NO_NODE:
            items.append(int(self._items[index]))
            index = int(self._prevs[index])
        return items


class OrderList(list):
    """Reusable order list."""

    def reset(self) -> None:
        self.clear()


def _build(category: str, config: PoolConfig):
    if category == INT_TABLE:
        return IntTable(config.int_table_size)
    if category == PATH_NODES:
        return PathArena(config.path_arena_size)
    if category == ORDER_LIST:
        return OrderList()
    raise ValueError(f"unknown pool category: {category!r}")


class ArenaPool:
    """Thread-safe, category-keyed free lists of scratch buffers."""

    def __init__(self, config: Optional[PoolConfig] = None):
        self.config = config or PoolConfig()
        self._lock = threading.Lock()
        self._free: Dict[str, list] = {INT_TABLE: [], PATH_NODES: [], ORDER_LIST: []}
        self.hits = 0
        self.misses = 0

    def _acquire(self, category: str):
        with self._lock:
            free = self._free.get(category)
            if free is None:
                raise ValueError(f"unknown pool category: {category!r}")
            if free:
                self.hits += 1
                buffer = free.pop()
            else:
                self.misses += 1
                buffer = None
        if buffer is None:
            logger.debug("arena pool miss for %s", category)
            buffer = _build(category, self.config)
        buffer.reset()
        return buffer

    def _release(self, category: str, buffer) -> None:
        buffer.reset()
        with self._lock:
            free = self._free[category]
            if len(free) < self.config.max_free_per_category:
                free.append(buffer)

    def free_count(self, category: str) -> int:
        with self._lock:
            return len(self._free[category])

    @contextmanager
    def checkout(self, category: str) -> Iterator:
        buffer = self._acquire(category)
        try:
            yield buffer
        finally:
            self._release(category, buffer)


@contextmanager
def checkout_from(pool: Optional[ArenaPool], category: str) -> Iterator:
    """Check out from `pool`, or allocate a throwaway buffer without one."""
    if pool is None:
        yield _build(category, PoolConfig())
        return
    with pool.checkout(category) as buffer:
        yield buffer
