"""
In-memory transactional order store.

Holds StoredOrder rows keyed by order id. transaction() serializes callers and
restores a snapshot when the block raises, so a plan and the status updates
that follow from it commit or roll back together.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from data_models import SHIPPING, Order, StoredOrder


logger = logging.getLogger(__name__)


class OrderNotFound(KeyError):
    """No order with the given id."""


def _new_row(weight: int, value: int, status: str = SHIPPING) -> StoredOrder:
    """Validated row without an id; the store assigns one on commit."""
    if weight < 0 or value < 0:
        raise ValueError(f"weight and value must be non-negative, got ({weight}, {value})")
    return StoredOrder(0, weight, value, status)


class InMemoryOrderStore:
    """Order rows with snapshot-based transactions."""

    def __init__(self, orders: Iterable[StoredOrder] = ()):
        self._lock = threading.RLock()
        self._orders: Dict[int, StoredOrder] = {}
        self._next_id = 1
        for order in orders:
            self._orders[order.order_id] = order
            self._next_id = max(self._next_id, order.order_id + 1)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryOrderStore"]:
        with self._lock:
            snapshot = {oid: replace(row) for oid, row in self._orders.items()}
            next_id = self._next_id
            try:
                yield self
            except BaseException:
                self._orders = snapshot
                self._next_id = next_id
                logger.debug("transaction rolled back")
                raise

    def insert(self, weight: int, value: int, status: str = SHIPPING) -> int:
        row = _new_row(weight, value, status)
        with self._lock:
            return self._commit(row)

    def _commit(self, row: StoredOrder) -> int:
        row.order_id = self._next_id
        self._next_id += 1
        self._orders[row.order_id] = row
        return row.order_id

    def create_orders(self, items: Sequence[Tuple[int, int]], workers: int = 4) -> List[int]:
        """
        Insert (weight, value) pairs, validating them on a bounded worker pool.

        Workers only build rows and never touch the lock, so this is safe to
        call inside transaction(). Valid rows are committed in input order by
        the calling thread; the first failure (in completion order) is
        re-raised afterwards.

        Returns:
            New order ids, aligned with `items`
        """
        if not items:
            return []
        rows: List[Optional[StoredOrder]] = [None] * len(items)
        first_error = None
        with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
            futures = {
                executor.submit(_new_row, weight, value): idx
                for idx, (weight, value) in enumerate(items)
            }
            for future in as_completed(futures):
                error = future.exception()
                if error is not None:
                    if first_error is None:
                        first_error = error
                    continue
                rows[futures[future]] = future.result()

        ids: List[int] = [0] * len(items)
        with self._lock:
            for idx, row in enumerate(rows):
                if row is not None:
                    ids[idx] = self._commit(row)
        if first_error is not None:
            raise first_error
        return ids

    def get(self, order_id: int) -> StoredOrder:
        with self._lock:
            try:
                return replace(self._orders[order_id])
            except KeyError:
                raise OrderNotFound(order_id) from None

    def get_shipping_orders(self) -> List[Order]:
        with self._lock:
            return [
                row.to_order()
                for _, row in sorted(self._orders.items())
                if row.status == SHIPPING
            ]

    def update_statuses(self, order_ids: Sequence[int], new_status: str) -> None:
        if not order_ids:
            return
        with self._lock:
            missing = [oid for oid in order_ids if oid not in self._orders]
            if missing:
                raise OrderNotFound(missing[0])
            for oid in order_ids:
                self._orders[oid].status = new_status

    def count_shipping(self) -> int:
        with self._lock:
            return sum(1 for row in self._orders.values() if row.status == SHIPPING)

    def clone_as_shipping(self, order_ids: Sequence[int]) -> List[int]:
        """Duplicate orders as fresh shipping rows; returns the new ids."""
        with self._lock:
            sources = [self.get(oid) for oid in order_ids]
            return [self.insert(row.weight, row.value, SHIPPING) for row in sources]
