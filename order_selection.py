"""
Order Selection - tiered 0/1 knapsack optimizer for delivery robots

Pipeline for one planning call:
1. Partition: drop orders heavier than the robot's capacity, split the rest
   into zero-weight orders (always carried) and positive-weight candidates
2. Strategy selection on (n positive candidates, capacity):
   - GREEDY: n <= 5 or capacity <= 20
   - CORE:   n <= 50 and capacity <= 200 (exact DP on a dense core, greedy tail)
   - FPTAS:  n > 100 or capacity > 500 (value-scaled DP, >= (1 - eps) * optimum)
   - EXACT:  everything else (weight-indexed DP with arena path reconstruction)
3. Plan assembly: zero-weight orders first, then the solver's selection,
   totals recomputed from the final list, single-order fallback when the
   solver picked nothing

Cancellation is cooperative: the caller's token is polled before each item
and every `cancel_check_interval` table cells. A cancelled call raises and
returns no plan.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from arena_pool import (
    INT_TABLE,
    NO_NODE,
    ORDER_LIST,
    PATH_NODES,
    ArenaPool,
    checkout_from,
)
from cancellation import CancellationToken, check
from data_models import DeliveryPlan, Order


logger = logging.getLogger(__name__)


class Strategy(Enum):
    GREEDY = "greedy"
    CORE = "core"
    FPTAS = "fptas"
    EXACT = "exact"


@dataclass(frozen=True)
class OptimizerConfig:
    """Tunables for strategy selection and the individual solvers."""
    greedy_max_items: int = 5          # GREEDY when n <= this ...
    greedy_max_capacity: int = 20      # ... or capacity <= this
    core_max_items: int = 50           # CORE when n <= this ...
    core_max_capacity: int = 200       # ... and capacity <= this
    fptas_min_items: int = 100         # FPTAS when n > this ...
    fptas_min_capacity: int = 500      # ... or capacity > this
    core_min_size: int = 5             # Core prefix clamp (lower)
    core_max_size: int = 20            # Core prefix clamp (upper)
    fptas_epsilon: float = 0.1         # Approximation slack for FPTAS
    exact_pruning: bool = False        # Heuristic pruning in the EXACT tier (not optimality-preserving)
    prune_horizon: int = 5             # Items summed for the remaining-value bound
    prune_bound_percent: int = 110     # Stop once best + horizon falls under this % of best
    prune_skip_divisor: int = 10       # Skip items worth less than best / divisor
    cancel_check_interval: int = 4096  # Table cells between cancellation polls


@dataclass
class Partition:
    """Orders that fit the robot, split by weight class."""
    zero_weight: List[Order]
    positive: List[Order]
    total_positive_weight: int


def partition_orders(orders: Sequence[Order],
                     capacity: int,
                     zero_weight: Optional[List[Order]] = None,
                     positive: Optional[List[Order]] = None) -> Partition:
    """
    Split orders that fit `capacity` into zero-weight and positive-weight groups.

    Args:
        orders: Candidate orders in input order
        capacity: Robot weight budget
        zero_weight: Optional (empty) list to fill with zero-weight orders
        positive: Optional (empty) list to fill with positive-weight orders

    Returns:
        Partition preserving input order within each group
    """
    zero_weight = [] if zero_weight is None else zero_weight
    positive = [] if positive is None else positive
    total_positive_weight = 0
    for order in orders:
        if order.weight > capacity:
            continue
        if order.weight == 0:
            zero_weight.append(order)
            continue
        positive.append(order)
        total_positive_weight += order.weight
    return Partition(zero_weight, positive, total_positive_weight)


def select_strategy(n: int, capacity: int, config: Optional[OptimizerConfig] = None) -> Strategy:
    """First matching tier wins."""
    config = config or OptimizerConfig()
    if n <= config.greedy_max_items or capacity <= config.greedy_max_capacity:
        return Strategy.GREEDY
    if n <= config.core_max_items and capacity <= config.core_max_capacity:
        return Strategy.CORE
    if n > config.fptas_min_items or capacity > config.fptas_min_capacity:
        return Strategy.FPTAS
    return Strategy.EXACT


def _ratio_sorted(orders: Sequence[Order]) -> List[Order]:
    # Stable: equal ratios keep input order.
    return sorted(orders, key=lambda o: -o.ratio)


def _blocks(top: int, bottom: int, size: int) -> Iterator[Tuple[int, int]]:
    """Inclusive (lo, hi) cell ranges covering top..bottom, highest first."""
    hi = top
    while hi >= bottom:
        lo = max(bottom, hi - size + 1)
        yield lo, hi
        hi = lo - 1


def solve_greedy(positive: Sequence[Order],
                 capacity: int,
                 token: Optional[CancellationToken] = None,
                 config: Optional[OptimizerConfig] = None) -> List[Order]:
    """Fill capacity in value/weight order."""
    config = config or OptimizerConfig()
    check(token)
    interval = max(1, config.cancel_check_interval)
    selected = []
    remaining = capacity
    for step, order in enumerate(_ratio_sorted(positive), start=1):
        if order.weight <= remaining:
            selected.append(order)
            remaining -= order.weight
        if step % interval == 0:
            check(token)
    return selected


def _weight_dp(items: Sequence[Order],
               capacity: int,
               token: Optional[CancellationToken],
               pool: Optional[ArenaPool],
               config: OptimizerConfig,
               prune: bool = False) -> List[int]:
    """
    Capacity-indexed 0/1 knapsack with arena path reconstruction.

    best_value[c] holds the best value within weight c; best_path[c] is the
    head of that cell's chain in the path arena. Each strict improvement
    appends a node (item, chain head of the source cell), so reconstruction
    never needs per-cell item lists. Cells are relaxed from the top down in
    blocks of `cancel_check_interval`; each block reads only cells the
    current item has not written yet.

    Returns:
        Indices into `items` of the best selection, in item order
    """
    interval = max(1, config.cancel_check_interval)
    with checkout_from(pool, INT_TABLE) as values_buf, \
            checkout_from(pool, INT_TABLE) as heads_buf, \
            checkout_from(pool, PATH_NODES) as arena:
        best_value = values_buf.allocate(capacity + 1, 0)
        best_path = heads_buf.allocate(capacity + 1, NO_NODE)

        for i, order in enumerate(items):
            check(token)
            weight, value = order.weight, order.value
            if weight > capacity:
                continue

            if prune:
                current_best = int(best_value[capacity])
                if current_best > 0:
                    horizon = sum(o.value for o in items[i:i + config.prune_horizon])
                    if current_best + horizon < current_best * config.prune_bound_percent // 100:
                        break
                    if value < current_best // config.prune_skip_divisor:
                        continue

            for lo, hi in _blocks(capacity, weight, interval):
                target = best_value[lo:hi + 1]
                candidate = best_value[lo - weight:hi - weight + 1] + value
                improved = np.flatnonzero(candidate > target)
                if improved.size:
                    improved = improved[::-1]
                    prev = best_path[lo - weight:hi - weight + 1][improved]
                    target[improved] = candidate[improved]
                    best_path[lo:hi + 1][improved] = arena.extend(i, prev)
                check(token)

        # argmax returns the first cell holding the maximum
        best_cap = int(np.argmax(best_value))
        picked = arena.chain(int(best_path[best_cap]))
    picked.reverse()
    return picked


def solve_exact(positive: Sequence[Order],
                capacity: int,
                total_positive_weight: int,
                token: Optional[CancellationToken] = None,
                pool: Optional[ArenaPool] = None,
                config: Optional[OptimizerConfig] = None) -> List[Order]:
    """Exact weight-indexed DP over all candidates (optionally pruned)."""
    config = config or OptimizerConfig()
    check(token)
    effective_cap = min(capacity, total_positive_weight)
    if effective_cap <= 0:
        return []
    items = _ratio_sorted(positive)
    picked = _weight_dp(items, effective_cap, token, pool, config, prune=config.exact_pruning)
    return [items[i] for i in picked]


def core_size(n: int, config: Optional[OptimizerConfig] = None) -> int:
    config = config or OptimizerConfig()
    if n <= config.core_min_size:
        return n
    return min(n, max(config.core_min_size, min(config.core_max_size, n // 3)))


def solve_core(positive: Sequence[Order],
               capacity: int,
               token: Optional[CancellationToken] = None,
               pool: Optional[ArenaPool] = None,
               config: Optional[OptimizerConfig] = None) -> List[Order]:
    """Exact DP over the densest items, greedy fill with the rest."""
    config = config or OptimizerConfig()
    check(token)
    items = _ratio_sorted(positive)
    size = core_size(len(items), config)
    core = items[:size]

    core_cap = min(capacity, sum(o.weight for o in core))
    picked = _weight_dp(core, core_cap, token, pool, config) if core_cap > 0 else []
    selected = [core[i] for i in picked]

    remaining = capacity - sum(o.weight for o in selected)
    for order in items[size:]:
        if remaining <= 0:
            break
        if order.weight <= remaining:
            selected.append(order)
            remaining -= order.weight
    return selected


def solve_fptas(positive: Sequence[Order],
                capacity: int,
                token: Optional[CancellationToken] = None,
                config: Optional[OptimizerConfig] = None) -> List[Order]:
    """
    Value-scaled DP with a (1 - epsilon) guarantee.

    min_weight[v] is the lightest way to reach scaled value exactly v
    (capacity + 1 marks unreachable). parent[i, v] records that item i
    improved cell v, which is enough to walk the choices back from the last
    item.

    The parent table takes n * (sum of scaled values + 1) bytes. With widely
    spread values that grows close to n**3 / epsilon, about 1 GB at n=500.
    """
    config = config or OptimizerConfig()
    check(token)
    n = len(positive)
    if n == 0:
        return []

    max_value = max(o.value for o in positive)
    scale = max(1, int(max_value * config.fptas_epsilon / n))
    scaled = [o.value // scale for o in positive]
    max_scaled = sum(scaled)

    infeasible = capacity + 1
    min_weight = np.full(max_scaled + 1, infeasible, dtype=np.int64)
    min_weight[0] = 0
    logger.debug("fptas: %d items, scale %d, parent table %d x %d (%.1f MB)",
                 n, scale, n, max_scaled + 1, n * (max_scaled + 1) / 1e6)
    parent = np.zeros((n, max_scaled + 1), dtype=bool)

    interval = max(1, config.cancel_check_interval)
    reachable = 0
    for i, order in enumerate(positive):
        check(token)
        step = scaled[i]
        if step == 0:
            continue
        top = reachable + step
        for lo, hi in _blocks(top, step, interval):
            target = min_weight[lo:hi + 1]
            candidate = min_weight[lo - step:hi - step + 1] + order.weight
            improved = candidate < target
            target[improved] = candidate[improved]
            parent[i, lo:hi + 1] = improved
            check(token)
        reachable = top

    best = int(np.flatnonzero(min_weight <= capacity)[-1])

    picked = []
    v = best
    for i in range(n - 1, -1, -1):
        if v <= 0:
            break
        if parent[i, v]:
            picked.append(i)
            v -= scaled[i]
    picked.reverse()
    return [positive[i] for i in picked]


def _best_single(positive: Sequence[Order], capacity: int) -> Optional[Order]:
    """Highest value order that fits; ties go to the lighter, then the earlier one."""
    best = None
    for order in positive:
        if order.weight > capacity:
            continue
        if (best is None or order.value > best.value
                or (order.value == best.value and order.weight < best.weight)):
            best = order
    return best


def assemble_plan(robot_id: str,
                  partition: Partition,
                  selected: Sequence[Order],
                  capacity: int) -> DeliveryPlan:
    """Zero-weight orders first, then the solver's picks; totals recomputed."""
    chosen = list(selected)
    if not chosen:
        fallback = _best_single(partition.positive, capacity)
        if fallback is not None:
            chosen.append(fallback)
    return DeliveryPlan.from_orders(robot_id, list(partition.zero_weight) + chosen)


def _solve(strategy: Strategy,
           partition: Partition,
           capacity: int,
           token: Optional[CancellationToken],
           pool: Optional[ArenaPool],
           config: OptimizerConfig) -> List[Order]:
    if strategy is Strategy.GREEDY:
        return solve_greedy(partition.positive, capacity, token, config)
    if strategy is Strategy.CORE:
        return solve_core(partition.positive, capacity, token, pool, config)
    if strategy is Strategy.FPTAS:
        return solve_fptas(partition.positive, capacity, token, config)
    return solve_exact(partition.positive, capacity, partition.total_positive_weight,
                       token, pool, config)


def select_orders_for_delivery(orders: Sequence[Order],
                               robot_id: str,
                               capacity: int,
                               token: Optional[CancellationToken] = None,
                               pool: Optional[ArenaPool] = None,
                               config: Optional[OptimizerConfig] = None,
                               strategy: Optional[Strategy] = None) -> DeliveryPlan:
    """
    Choose the orders a robot should carry.

    Args:
        orders: Candidate orders (any order, any length)
        robot_id: Copied verbatim into the plan
        capacity: Weight budget; <= 0 yields an empty plan
        token: Caller's cancellation token, polled cooperatively
        pool: Arena pool for scratch buffers (fresh allocation without one)
        config: Solver tunables
        strategy: Force a tier instead of threshold selection

    Returns:
        DeliveryPlan with a (possibly empty) list of orders

    Raises:
        OperationCancelled: the token was cancelled or its deadline passed
    """
    config = config or OptimizerConfig()
    if capacity <= 0 or not orders:
        return DeliveryPlan(robot_id=robot_id)
    check(token)

    with checkout_from(pool, ORDER_LIST) as zero_buf, checkout_from(pool, ORDER_LIST) as positive_buf:
        partition = partition_orders(orders, capacity, zero_buf, positive_buf)
        if not partition.zero_weight and not partition.positive:
            return DeliveryPlan(robot_id=robot_id)
        if not partition.positive:
            return assemble_plan(robot_id, partition, [], capacity)

        chosen = strategy or select_strategy(len(partition.positive), capacity, config)
        logger.debug("robot %s: %d candidates, capacity %d -> %s",
                     robot_id, len(partition.positive), capacity, chosen.value)
        selected = _solve(chosen, partition, capacity, token, pool, config)
        plan = assemble_plan(robot_id, partition, selected, capacity)

    logger.debug("robot %s: %d orders, weight %d/%d, value %d",
                 robot_id, len(plan.orders), plan.total_weight, capacity, plan.total_value)
    return plan
