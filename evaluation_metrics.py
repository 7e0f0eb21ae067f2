"""
Evaluation Metrics for order selection

Tracks plan quality across benchmark runs:
- Value achieved vs the true optimum (value ratio)
- Capacity utilization
- Feasibility (weight within capacity, totals consistent)
- Runtime
"""

from typing import Dict, List, Sequence
from data_models import DeliveryPlan, Order


def reference_optimum(orders: Sequence[Order], capacity: int) -> int:
    """
    Optimal total value by a plain two-row DP.

    Independent of the optimizer's solvers (no sorting, no arena, no pruning),
    so it can serve as ground truth in tests and benchmarks. Zero-weight
    orders are always counted.

    Args:
        orders: Candidate orders
        capacity: Robot weight budget

    Returns:
        Best achievable total value (0 when capacity <= 0)
    """
    if capacity <= 0:
        return 0
    previous = [0] * (capacity + 1)
    for order in orders:
        if order.weight > capacity:
            continue
        current = previous[:]
        for cap in range(order.weight, capacity + 1):
            taken = previous[cap - order.weight] + order.value
            if taken > current[cap]:
                current[cap] = taken
        previous = current
    return previous[capacity]


def plan_is_consistent(plan: DeliveryPlan, capacity: int) -> bool:
    """Totals match the orders and respect capacity."""
    if plan.orders is None:
        return False
    weight_ok = plan.total_weight == sum(o.weight for o in plan.orders)
    value_ok = plan.total_value == sum(o.value for o in plan.orders)
    capacity_ok = capacity <= 0 or plan.total_weight <= capacity
    return weight_ok and value_ok and capacity_ok


class PlanMetrics:
    """Track and analyze plan quality metrics."""

    def __init__(self):
        """Initialize metrics tracker."""
        self.runs = []

    def track_plan(self,
                   label: str,
                   plan: DeliveryPlan,
                   capacity: int,
                   optimum: int,
                   runtime_seconds: float):
        """
        Track metrics for a single planning call.

        Args:
            label: Strategy or run name
            plan: Plan returned by the optimizer
            capacity: Robot capacity used for the call
            optimum: True optimal value for the instance
            runtime_seconds: Wall-clock time of the call
        """
        metrics = {
            'label': label,
            'num_orders': len(plan.orders),
            'total_weight': plan.total_weight,
            'total_value': plan.total_value,
            'optimum': optimum,
            'value_ratio': plan.total_value / optimum if optimum > 0 else 1.0,
            'utilization': plan.total_weight / capacity * 100 if capacity > 0 else 0.0,
            'consistent': plan_is_consistent(plan, capacity),
            'runtime_seconds': runtime_seconds,
        }
        self.runs.append(metrics)

    def runs_for(self, label: str) -> List[Dict]:
        return [m for m in self.runs if m['label'] == label]

    def get_summary(self, label: str) -> Dict:
        """
        Get aggregate metrics for one label.

        Returns:
            Dict with run-level statistics (empty when the label has no runs)
        """
        runs = self.runs_for(label)
        if not runs:
            return {}

        num_runs = len(runs)
        ratios = [m['value_ratio'] for m in runs]

        return {
            'label': label,
            'num_runs': num_runs,
            'avg_value_ratio': sum(ratios) / num_runs,
            'min_value_ratio': min(ratios),
            'optimal_runs': sum(1 for m in runs if m['total_value'] == m['optimum']),
            'inconsistent_runs': sum(1 for m in runs if not m['consistent']),
            'avg_utilization': sum(m['utilization'] for m in runs) / num_runs,
            'avg_runtime_ms': sum(m['runtime_seconds'] for m in runs) / num_runs * 1000,
            'max_runtime_ms': max(m['runtime_seconds'] for m in runs) * 1000,
        }
