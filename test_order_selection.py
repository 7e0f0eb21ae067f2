"""
Tests for the tiered order selection optimizer.

Covers the plan invariants for every strategy, the selector thresholds,
each solver's documented behavior, fallback, pruning and cancellation.
"""

import logging
import time

import pytest

from arena_pool import ORDER_LIST, ArenaPool
from cancellation import CancellationToken, DeadlineExceeded, OperationCancelled
from constrained_problem import generate_orders
from data_models import Order
from evaluation_metrics import plan_is_consistent, reference_optimum
from order_selection import (
    OptimizerConfig,
    Partition,
    Strategy,
    assemble_plan,
    core_size,
    partition_orders,
    select_orders_for_delivery,
    select_strategy,
    solve_core,
    solve_exact,
    solve_fptas,
    solve_greedy,
)


BASIC = [
    Order(id=1, weight=5, value=10),
    Order(id=2, weight=4, value=40),
    Order(id=3, weight=6, value=30),
]

ALL_STRATEGIES = [None, Strategy.GREEDY, Strategy.CORE, Strategy.FPTAS, Strategy.EXACT]


class CountdownToken(CancellationToken):
    """Cancels itself on the n-th poll."""

    def __init__(self, polls: int):
        super().__init__()
        self.polls_left = polls
        self.polls = 0

    def raise_if_cancelled(self):
        self.polls += 1
        self.polls_left -= 1
        if self.polls_left <= 0:
            self.cancel()
        super().raise_if_cancelled()


# ============================================================================
# Basic behavior
# ============================================================================

def test_basic_instance_through_entry_point():
    plan = select_orders_for_delivery(BASIC, "robot", 9)

    assert plan.robot_id == "robot"
    assert plan.total_weight == 9
    assert plan.total_value == 50
    assert sorted(plan.order_ids) == [1, 2]


def test_exact_tier_is_optimal_on_basic_instance():
    plan = select_orders_for_delivery(BASIC, "robot", 9, strategy=Strategy.EXACT)

    assert plan.total_weight == 9
    assert plan.total_value == 50
    # Discovery order follows the ratio sort: id 2 (10/unit) before id 1 (2/unit)
    assert plan.order_ids == [2, 1]


@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
def test_every_strategy_finds_basic_optimum(strategy):
    plan = select_orders_for_delivery(BASIC, "robot", 9, strategy=strategy)

    assert plan.total_value == 50
    assert set(plan.order_ids) == {1, 2}


@pytest.mark.parametrize("orders, capacity", [
    ([], 10),
    (None, 10),
    ([], 0),
    (BASIC, 0),
    (BASIC, -5),
])
def test_empty_plan_has_empty_list(orders, capacity):
    plan = select_orders_for_delivery(orders, "robot", capacity)

    assert plan.orders == []
    assert isinstance(plan.orders, list)
    assert plan.total_weight == 0
    assert plan.total_value == 0


def test_all_orders_too_heavy_gives_empty_plan():
    orders = [Order(1, 11, 5), Order(2, 20, 50)]
    plan = select_orders_for_delivery(orders, "robot", 10)

    assert plan.orders == []


def test_zero_weight_orders_come_first():
    orders = [
        Order(id=1, weight=0, value=5),
        Order(id=2, weight=2, value=3),
        Order(id=3, weight=3, value=8),
    ]
    plan = select_orders_for_delivery(orders, "robot", 2)

    assert plan.total_weight == 2
    assert plan.total_value == 8
    assert plan.order_ids == [1, 2]


def test_only_zero_weight_orders():
    orders = [Order("a", 0, 1), Order("b", 0, 0), Order("c", 0, 7)]
    plan = select_orders_for_delivery(orders, "robot", 5)

    assert plan.order_ids == ["a", "b", "c"]
    assert plan.total_weight == 0
    assert plan.total_value == 8


@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
def test_zero_value_orders_still_selected(strategy):
    orders = [Order(id=1, weight=3, value=0), Order(id=2, weight=4, value=0)]
    plan = select_orders_for_delivery(orders, "robot", 5, strategy=strategy)

    assert plan.order_ids == [1]
    assert plan.total_weight == 3
    assert plan.total_value == 0


@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
def test_oversized_orders_never_selected(strategy):
    orders = [Order(1, 50, 10_000), Order(2, 4, 3), Order(3, 5, 4), Order(4, 11, 9_000)]
    plan = select_orders_for_delivery(orders, "robot", 10, strategy=strategy)

    assert 1 not in plan.order_ids
    assert 4 not in plan.order_ids
    assert plan.total_weight <= 10


# ============================================================================
# Invariants on random instances
# ============================================================================

@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
@pytest.mark.parametrize("seed", range(6))
def test_plan_invariants_hold(strategy, seed):
    orders = generate_orders(30, max_weight=40, max_value=500, zero_weight_fraction=0.15, seed=seed)
    capacity = 100
    plan = select_orders_for_delivery(orders, f"robot-{seed}", capacity, strategy=strategy)

    assert plan_is_consistent(plan, capacity)
    assert plan.total_weight <= capacity

    zero_weight = [o for o in orders if o.weight == 0]
    assert plan.orders[:len(zero_weight)] == zero_weight
    assert all(o.weight > 0 for o in plan.orders[len(zero_weight):])
    assert len(set(plan.order_ids)) == len(plan.orders)


@pytest.mark.parametrize("seed", range(8))
def test_exact_matches_reference_optimum(seed):
    orders = generate_orders(25, max_weight=30, max_value=300, zero_weight_fraction=0.1, seed=seed)
    capacity = 90
    plan = select_orders_for_delivery(orders, "robot", capacity, strategy=Strategy.EXACT)

    assert plan.total_value == reference_optimum(orders, capacity)


@pytest.mark.parametrize("seed", range(3))
def test_fptas_within_ten_percent_on_large_instances(seed):
    orders = generate_orders(150, max_weight=50, max_value=1000, seed=100 + seed)
    capacity = 600
    positive = [o for o in orders if 0 < o.weight <= capacity]
    assert select_strategy(len(positive), capacity) is Strategy.FPTAS

    plan = select_orders_for_delivery(orders, "robot", capacity)
    optimum = reference_optimum(orders, capacity)

    assert plan.total_weight <= capacity
    assert plan.total_value >= 0.9 * optimum


@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
def test_repeated_calls_are_identical(strategy):
    orders = generate_orders(60, max_weight=25, max_value=400, zero_weight_fraction=0.05, seed=7)
    pool = ArenaPool()

    first = select_orders_for_delivery(orders, "robot", 150, pool=pool, strategy=strategy)
    second = select_orders_for_delivery(orders, "robot", 150, pool=pool, strategy=strategy)
    unpooled = select_orders_for_delivery(orders, "robot", 150, strategy=strategy)

    assert first == second
    assert first == unpooled


def test_pool_buffers_are_returned():
    pool = ArenaPool()
    orders = generate_orders(60, max_weight=20, max_value=100, seed=3)

    select_orders_for_delivery(orders, "robot", 300, pool=pool, strategy=Strategy.EXACT)

    assert pool.free_count(ORDER_LIST) == 2
    assert pool.misses > 0


# ============================================================================
# Strategy selection
# ============================================================================

@pytest.mark.parametrize("n, capacity, expected", [
    (5, 1000, Strategy.GREEDY),
    (100, 20, Strategy.GREEDY),
    (1, 1, Strategy.GREEDY),
    (6, 21, Strategy.CORE),
    (50, 200, Strategy.CORE),
    (51, 200, Strategy.EXACT),
    (50, 201, Strategy.EXACT),
    (100, 500, Strategy.EXACT),
    (101, 100, Strategy.FPTAS),
    (60, 501, Strategy.FPTAS),
    (6, 10_000, Strategy.FPTAS),
])
def test_select_strategy_thresholds(n, capacity, expected):
    assert select_strategy(n, capacity) is expected


def test_select_strategy_uses_config():
    config = OptimizerConfig(greedy_max_items=10, fptas_min_capacity=1000)

    assert select_strategy(8, 100, config) is Strategy.GREEDY
    assert select_strategy(60, 800, config) is Strategy.EXACT


@pytest.mark.parametrize("n, expected", [
    (3, 3), (5, 5), (6, 5), (15, 5), (30, 10), (60, 20), (90, 20),
])
def test_core_size_clamped(n, expected):
    assert core_size(n) == expected


# ============================================================================
# Solvers
# ============================================================================

def test_partition_orders():
    orders = [Order(1, 0, 1), Order(2, 5, 5), Order(3, 11, 9), Order(4, 0, 2), Order(5, 3, 1)]
    partition = partition_orders(orders, 10)

    assert [o.id for o in partition.zero_weight] == [1, 4]
    assert [o.id for o in partition.positive] == [2, 5]
    assert partition.total_positive_weight == 8


def test_greedy_keeps_input_order_on_ties():
    orders = [Order("b", 2, 4), Order("a", 2, 4), Order("c", 1, 1)]

    selected = solve_greedy(orders, 2)

    assert [o.id for o in selected] == ["b"]


def test_greedy_fills_by_ratio():
    selected = solve_greedy(BASIC, 9)

    assert [o.id for o in selected] == [2, 1]


def test_core_fills_tail_greedily():
    # Ratios 9, 8, ..., 1 per unit: core is ids 1-5, tail starts at 6
    orders = [Order(i, 10, (10 - i) * 10) for i in range(1, 10)]

    selected = solve_core(orders, 60)

    assert [o.id for o in selected] == [1, 2, 3, 4, 5, 6]
    assert sum(o.value for o in selected) == 390


def test_exact_solver_respects_effective_capacity():
    orders = [Order(1, 2, 3), Order(2, 3, 4)]

    selected = solve_exact(orders, capacity=100, total_positive_weight=5)

    assert sorted(o.id for o in selected) == [1, 2]


def test_exact_pruning_is_optional():
    orders = [Order("dense", 1, 100), Order("bulky", 10, 5)]

    exact = solve_exact(orders, 11, 11)
    pruned = solve_exact(orders, 11, 11, config=OptimizerConfig(exact_pruning=True))

    assert sum(o.value for o in exact) == 105
    assert [o.id for o in pruned] == ["dense"]


def test_pruning_bound_percent_is_configurable():
    orders = [Order("dense", 1, 100), Order("bulky", 10, 5)]
    keep_all = OptimizerConfig(exact_pruning=True, prune_skip_divisor=1000)
    loose = OptimizerConfig(exact_pruning=True, prune_skip_divisor=1000, prune_bound_percent=100)

    assert [o.id for o in solve_exact(orders, 11, 11, config=keep_all)] == ["dense"]
    assert sum(o.value for o in solve_exact(orders, 11, 11, config=loose)) == 105


def test_fptas_returns_input_order():
    selected = solve_fptas(BASIC, 9)

    assert [o.id for o in selected] == [1, 2]


def test_fptas_logs_parent_table_size(caplog):
    caplog.set_level(logging.DEBUG, logger="order_selection")

    solve_fptas(BASIC, 9)

    assert "parent table" in caplog.text


def test_fptas_scales_large_values():
    orders = [Order(i, w, v) for i, (w, v) in enumerate(
        [(12, 90_000), (7, 52_000), (9, 61_000), (5, 33_000), (14, 99_000), (3, 20_500)], start=1)]
    capacity = 25

    selected = solve_fptas(orders, capacity)

    assert sum(o.weight for o in selected) <= capacity
    assert sum(o.value for o in selected) >= 0.9 * reference_optimum(orders, capacity)


def test_assemble_plan_fallback_prefers_value_then_lighter():
    partition = Partition(
        zero_weight=[Order("z", 0, 1)],
        positive=[Order(1, 3, 5), Order(2, 2, 5), Order(3, 4, 4)],
        total_positive_weight=9,
    )

    plan = assemble_plan("robot", partition, [], 4)

    assert plan.order_ids == ["z", 2]
    assert plan.total_weight == 2
    assert plan.total_value == 6


def test_assemble_plan_recomputes_totals():
    partition = Partition(zero_weight=[], positive=list(BASIC), total_positive_weight=15)

    plan = assemble_plan("robot", partition, [BASIC[1], BASIC[0]], 9)

    assert plan.total_weight == 9
    assert plan.total_value == 50


# ============================================================================
# Cancellation
# ============================================================================

@pytest.mark.parametrize("strategy", ALL_STRATEGIES)
def test_precancelled_token_reports_cancellation(strategy):
    orders = [Order(i + 1, 1, 1) for i in range(5)]
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        select_orders_for_delivery(orders, "robot", 3, token=token, strategy=strategy)


def test_expired_deadline_reports_deadline_exceeded():
    token = CancellationToken(deadline=time.monotonic() - 1.0)

    with pytest.raises(DeadlineExceeded):
        select_orders_for_delivery(BASIC, "robot", 9, token=token)


def test_trivial_input_short_circuits_before_cancellation():
    token = CancellationToken()
    token.cancel()

    plan = select_orders_for_delivery([], "robot", 10, token=token)

    assert plan.orders == []


@pytest.mark.parametrize("strategy", [Strategy.EXACT, Strategy.FPTAS])
def test_cancellation_polled_inside_table_loop(strategy):
    orders = [Order(1, 500, 10), Order(2, 500, 12)]
    config = OptimizerConfig(cancel_check_interval=10)
    token = CountdownToken(polls=6)

    with pytest.raises(OperationCancelled):
        select_orders_for_delivery(orders, "robot", 1000, token=token, config=config, strategy=strategy)

    assert token.polls == 6


def test_pool_released_after_cancellation():
    pool = ArenaPool()
    orders = [Order(1, 500, 10), Order(2, 500, 12)]
    token = CountdownToken(polls=6)

    with pytest.raises(OperationCancelled):
        select_orders_for_delivery(orders, "robot", 1000, token=token, pool=pool,
                                   config=OptimizerConfig(cancel_check_interval=10),
                                   strategy=Strategy.EXACT)

    assert pool.free_count(ORDER_LIST) == 2
