"""
Robot Service - planning calls against the order store

generate_delivery_plan runs the optimizer over the store's shipping orders and
marks the chosen ones as delivering inside the same transaction.
update_order_status records progress and, when an order completes, clones it
back into the shipping pool while supply is below the configured target.
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

from arena_pool import ArenaPool
from cancellation import CancellationToken
from data_models import COMPLETED, DELIVERING, DeliveryPlan
from order_selection import OptimizerConfig, select_orders_for_delivery
from order_store import InMemoryOrderStore


logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass(frozen=True)
class ServiceConfig:
    """Service-level settings."""
    clone_enabled: bool = True   # Re-stock completed orders as shipping
    supply_target: int = 500     # Shipping orders to keep available (0 disables cloning)
    plan_timeout: float = 2.0    # Seconds per service call
    insert_workers: int = 4      # Worker pool size for batch order creation

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceConfig":
        """
        Read ROBOT_SHIPPING_CLONE_ENABLED / ROBOT_SHIPPING_SUPPLY_TARGET.

        Unparseable values keep the defaults; a negative target becomes 0.
        """
        environ = os.environ if environ is None else environ
        defaults = cls()
        clone_enabled = defaults.clone_enabled
        raw = environ.get("ROBOT_SHIPPING_CLONE_ENABLED", "")
        if raw in _TRUE:
            clone_enabled = True
        elif raw in _FALSE:
            clone_enabled = False

        supply_target = defaults.supply_target
        raw = environ.get("ROBOT_SHIPPING_SUPPLY_TARGET", "")
        if raw:
            try:
                supply_target = int(raw)
            except ValueError:
                logger.warning("ignoring ROBOT_SHIPPING_SUPPLY_TARGET=%r", raw)

        return cls(clone_enabled=clone_enabled, supply_target=max(0, supply_target))


def with_timeout(fn: Callable[[CancellationToken], T],
                 timeout: float,
                 token: Optional[CancellationToken] = None) -> T:
    """Run fn with a token that expires after `timeout` seconds (or with `token`)."""
    scoped = token.child(timeout) if token is not None else CancellationToken.with_timeout(timeout)
    return fn(scoped)


class RobotService:
    """Delivery planning and status updates for robots."""

    def __init__(self,
                 store: InMemoryOrderStore,
                 config: Optional[ServiceConfig] = None,
                 optimizer_config: Optional[OptimizerConfig] = None,
                 pool: Optional[ArenaPool] = None):
        self.store = store
        self.config = config or ServiceConfig()
        self.optimizer_config = optimizer_config or OptimizerConfig()
        self.pool = pool if pool is not None else ArenaPool()

    def generate_delivery_plan(self,
                               robot_id: str,
                               capacity: int,
                               token: Optional[CancellationToken] = None) -> DeliveryPlan:
        """
        Plan a trip and claim its orders atomically.

        Raises:
            OperationCancelled: cancelled or timed out; no status was changed
        """
        def run(scoped: CancellationToken) -> DeliveryPlan:
            with self.store.transaction() as tx:
                orders = tx.get_shipping_orders()
                plan = select_orders_for_delivery(
                    orders, robot_id, capacity,
                    token=scoped, pool=self.pool, config=self.optimizer_config,
                )
                if plan.orders:
                    scoped.raise_if_cancelled()
                    tx.update_statuses(plan.order_ids, DELIVERING)
                    logger.info("Updated status to '%s' for %d orders", DELIVERING, len(plan.orders))
            return plan

        return with_timeout(run, self.config.plan_timeout, token)

    def update_order_status(self,
                            order_id: int,
                            new_status: str,
                            token: Optional[CancellationToken] = None) -> None:
        def run(scoped: CancellationToken) -> None:
            with self.store.transaction() as tx:
                tx.update_statuses([order_id], new_status)
                if new_status != COMPLETED or not self.config.clone_enabled:
                    return
                if self.config.supply_target <= 0:
                    return
                if tx.count_shipping() < self.config.supply_target:
                    scoped.raise_if_cancelled()
                    new_ids = tx.clone_as_shipping([order_id])
                    logger.info("Cloned order %s as shipping (new id %s)", order_id, new_ids[0])

        with_timeout(run, self.config.plan_timeout, token)

    def create_orders(self, items) -> list:
        """Bulk-create (weight, value) shipping orders."""
        return self.store.create_orders(items, workers=self.config.insert_workers)
