"""Tests for the arena pool and its buffers."""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from arena_pool import (
    INT_TABLE,
    NO_NODE,
    ORDER_LIST,
    PATH_NODES,
    ArenaPool,
    IntTable,
    OrderList,
    PathArena,
    PathNode,
    PoolConfig,
    checkout_from,
)


def test_int_table_allocate_overwrites_cells():
    table = IntTable(capacity=8)
    view = table.allocate(5, 7)
    view[:] = np.arange(5)

    table.reset()
    again = table.allocate(3, -1)

    assert again.tolist() == [-1, -1, -1]
    assert table.size == 3


def test_int_table_grows():
    table = IntTable(capacity=4)

    view = table.allocate(5000, 0)

    assert len(view) == 5000
    assert table.capacity >= 5000
    assert not view.any()


def test_path_arena_chains():
    arena = PathArena(capacity=2)
    first = arena.append(0, NO_NODE)
    second = arena.append(3, first)
    new_nodes = arena.extend(5, np.array([second, NO_NODE]))

    assert new_nodes.tolist() == [2, 3]
    assert arena.chain(2) == [5, 3, 0]
    assert arena.chain(3) == [5]
    assert arena.chain(NO_NODE) == []
    assert arena[1] == PathNode(item_index=3, prev_index=0)
    assert len(arena) == 4


def test_path_arena_index_out_of_range():
    arena = PathArena()
    arena.append(1, NO_NODE)
    arena.reset()

    with pytest.raises(IndexError):
        arena[0]


def test_checkout_reuses_reset_buffers():
    pool = ArenaPool()

    with pool.checkout(ORDER_LIST) as orders:
        orders.extend([1, 2, 3])
        first = orders
    with pool.checkout(ORDER_LIST) as orders:
        second = orders
        assert len(orders) == 0

    assert first is second
    assert pool.hits == 1
    assert pool.misses == 1


def test_released_order_list_holds_no_orders():
    pool = ArenaPool()

    with pool.checkout(ORDER_LIST) as orders:
        orders.extend(["a", "b"])
        held = orders

    assert pool.free_count(ORDER_LIST) == 1
    assert len(held) == 0


def test_checkout_returns_buffer_on_error():
    pool = ArenaPool()

    with pytest.raises(RuntimeError):
        with pool.checkout(PATH_NODES):
            raise RuntimeError("boom")

    assert pool.free_count(PATH_NODES) == 1


def test_free_list_is_bounded():
    pool = ArenaPool(PoolConfig(max_free_per_category=1))

    with pool.checkout(INT_TABLE), pool.checkout(INT_TABLE), pool.checkout(INT_TABLE):
        pass

    assert pool.free_count(INT_TABLE) == 1


def test_unknown_category_rejected():
    pool = ArenaPool()

    with pytest.raises(ValueError):
        with pool.checkout("bitsets"):
            pass


@pytest.mark.parametrize("category, kind", [
    (INT_TABLE, IntTable),
    (PATH_NODES, PathArena),
    (ORDER_LIST, OrderList),
])
def test_checkout_without_pool_allocates(category, kind):
    with checkout_from(None, category) as buffer:
        assert isinstance(buffer, kind)


def test_concurrent_checkouts():
    pool = ArenaPool(PoolConfig(max_free_per_category=4))

    def worker(_):
        for _ in range(200):
            with pool.checkout(INT_TABLE) as table, pool.checkout(PATH_NODES) as arena:
                table.allocate(16, 1)
                arena.append(0, NO_NODE)
                assert len(arena) == 1

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(worker, range(8)))

    assert pool.hits + pool.misses == 8 * 200 * 2
    assert pool.free_count(INT_TABLE) <= 4
    assert pool.free_count(PATH_NODES) <= 4
