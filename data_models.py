"""
Data Models - Orders and delivery plans

Orders are weight/value pairs offered to a delivery robot:
- Order: immutable (id, weight, value), id is opaque and unique per request
- DeliveryPlan: robot id, totals, selected orders (always a list, never None)
- StoredOrder: the order store's row, carrying the shipping status

Plan invariant: total_weight/total_value always equal the sums over orders.
"""

from dataclasses import dataclass, field
from typing import Hashable, List


SHIPPING = "shipping"
DELIVERING = "delivering"
COMPLETED = "completed"


@dataclass(frozen=True)
class Order:
    """A candidate shipping order as seen by the optimizer."""
    id: Hashable         # Opaque identifier
    weight: int          # Non-negative weight units
    value: int           # Non-negative value units

    @property
    def ratio(self) -> float:
        """Value per weight unit (only meaningful for weight > 0)."""
        return self.value / self.weight if self.weight > 0 else float("inf")


@dataclass
class DeliveryPlan:
    """Orders assigned to one robot for a single trip."""
    robot_id: str
    total_weight: int = 0
    total_value: int = 0
    orders: List[Order] = field(default_factory=list)

    @property
    def order_ids(self) -> list:
        return [order.id for order in self.orders]

    @classmethod
    def from_orders(cls, robot_id: str, orders: List[Order]) -> "DeliveryPlan":
        """Build a plan whose totals are recomputed from the selection."""
        return cls(
            robot_id=robot_id,
            total_weight=sum(o.weight for o in orders),
            total_value=sum(o.value for o in orders),
            orders=list(orders),
        )


@dataclass
class StoredOrder:
    """A row in the order store."""
    order_id: int
    weight: int
    value: int
    status: str = SHIPPING

    def to_order(self) -> Order:
        return Order(id=self.order_id, weight=self.weight, value=self.value)
