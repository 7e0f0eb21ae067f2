"""
Synthetic Planning Problems for benchmarking the order optimizer

Problem definition:
- A pool of pending shipping orders with integer weight and value
- One robot with an integer capacity
- A configurable share of zero-weight orders (always carried)
- Values loosely correlated with weight, so ratio ordering matters

Instances are seeded through numpy, so a (size, seed) pair always produces
the same orders.
"""

import numpy as np
from typing import Dict, List
from data_models import Order


def generate_orders(
    num_orders: int,
    max_weight: int = 50,
    max_value: int = 1000,
    zero_weight_fraction: float = 0.0,
    seed: int = 42
) -> List[Order]:
    """
    Generate a reproducible list of orders.

    Args:
        num_orders: Number of orders to generate
        max_weight: Largest order weight (weights drawn from 1..max_weight)
        max_value: Largest order value
        zero_weight_fraction: Share of orders given weight 0
        seed: Random seed for reproducibility

    Returns:
        List of Order objects with ids 1..num_orders
    """
    rng = np.random.default_rng(seed)

    weights = rng.integers(1, max_weight + 1, size=num_orders)
    # Value tracks weight with noise: density varies between ~0.2x and ~1.8x
    density = rng.uniform(0.2, 1.8, size=num_orders)
    values = np.clip(np.round(weights / max_weight * density * max_value / 1.8), 0, max_value)

    zero_mask = rng.random(num_orders) < zero_weight_fraction
    weights[zero_mask] = 0

    return [
        Order(id=idx + 1, weight=int(w), value=int(v))
        for idx, (w, v) in enumerate(zip(weights, values))
    ]


def create_planning_problem(
    num_orders: int = 80,
    capacity: int = 300,
    max_weight: int = 50,
    max_value: int = 1000,
    zero_weight_fraction: float = 0.05,
    seed: int = 42
) -> Dict:
    """
    Create a complete planning problem.

    Args:
        num_orders: Pending orders offered to the robot
        capacity: Robot weight budget
        max_weight: Largest order weight
        max_value: Largest order value
        zero_weight_fraction: Share of zero-weight orders
        seed: Random seed

    Returns:
        Dict with:
        - orders: List[Order]
        - capacity: robot capacity
        - robot_id: label for the plan
        - total_weight: combined weight of all orders
        - supply_ratio: total weight / capacity
    """
    orders = generate_orders(num_orders, max_weight, max_value, zero_weight_fraction, seed)
    total_weight = sum(o.weight for o in orders)

    return {
        'orders': orders,
        'capacity': capacity,
        'robot_id': f"robot-{seed}",
        'num_orders': num_orders,
        'total_weight': total_weight,
        'supply_ratio': total_weight / capacity if capacity > 0 else 0.0,
    }


def print_problem_summary(problem: Dict):
    """Print summary of a planning problem."""
    orders = problem['orders']
    zero_weight = sum(1 for o in orders if o.weight == 0)
    oversized = sum(1 for o in orders if o.weight > problem['capacity'])

    print("\n" + "=" * 80)
    print("DELIVERY PLANNING PROBLEM")
    print("=" * 80)
    print(f"\nRobot: {problem['robot_id']}")
    print(f"Capacity: {problem['capacity']}")
    print(f"\nOrders: {problem['num_orders']}")
    print(f"  Zero-weight: {zero_weight}")
    print(f"  Heavier than capacity: {oversized}")
    print(f"  Total weight: {problem['total_weight']}")
    print(f"  Supply ratio: {problem['supply_ratio']:.2f}x capacity")
    print("\n" + "=" * 80)


if __name__ == "__main__":
    problem = create_planning_problem()
    print_problem_summary(problem)

    print(f"\nFirst orders:")
    for order in problem['orders'][:5]:
        print(f"  ID: {order.id}, Weight: {order.weight}, Value: {order.value}")
