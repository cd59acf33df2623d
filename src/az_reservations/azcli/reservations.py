from __future__ import annotations

from typing import List

from ..logging import get_logger
from ..normalize.schema import DiscoveryResult, Reservation, ReservationOrder
from ..normalize.transform import normalize_order, normalize_reservation
from ..util.errors import EXPECTED_DISCOVERY_KINDS, NOT_FOUND, AzCliError, guidance_for
from .runner import AzRunner, as_list

LOG = get_logger(__name__)


def list_orders_args() -> List[str]:
    return ["reservations", "reservation-order", "list"]


def list_reservations_args(order_name: str) -> List[str]:
    return ["reservations", "reservation", "list", "--reservation-order-id", order_name]


def list_reservation_orders(az: AzRunner) -> List[ReservationOrder]:
    """
    List reservation orders visible to the signed-in account.
    Raises AzCliError on failure; callers decide whether it is fatal.
    """
    items = as_list(az.run(list_orders_args()))
    orders = [normalize_order(it) for it in items if isinstance(it, dict)]
    return [o for o in orders if o.name]


def list_reservations_in_order(az: AzRunner, order: ReservationOrder) -> List[Reservation]:
    items = as_list(az.run(list_reservations_args(order.name)))
    return [normalize_reservation(it, order) for it in items if isinstance(it, dict)]


def discover_reservations(az: AzRunner) -> DiscoveryResult:
    """
    Enumerate all reservations across all reservation orders.

    - No orders, or an expected failure class (not found / permission denied)
      while listing orders: empty result with guidance text, never raises.
    - Any other failure listing orders propagates (fatal for the run).
    - A failing order is logged, recorded in failedOrders and skipped; the
      remaining orders still contribute.
    """
    try:
        orders = list_reservation_orders(az)
    except AzCliError as e:
        if e.kind not in EXPECTED_DISCOVERY_KINDS:
            raise
        guidance = guidance_for(e.kind)
        LOG.warning(
            "Listing reservation orders failed",
            extra={"error": str(e), "kind": e.kind},
        )
        return DiscoveryResult(orders=[], reservations=[], guidance=guidance)

    if not orders:
        LOG.warning("No reservation orders found")
        return DiscoveryResult(orders=[], reservations=[], guidance=guidance_for(NOT_FOUND))

    reservations: List[Reservation] = []
    failed: List[str] = []
    for order in orders:
        try:
            found = list_reservations_in_order(az, order)
        except AzCliError as e:
            LOG.warning(
                "Listing reservations for order failed; skipping",
                extra={"order": order.name, "error": str(e), "kind": e.kind},
            )
            failed.append(order.name)
            continue
        LOG.debug("Listed reservations for order", extra={"order": order.name, "count": len(found)})
        reservations.extend(found)

    return DiscoveryResult(orders=orders, reservations=reservations, failedOrders=failed)


def list_all_reservations(az: AzRunner) -> List[Reservation]:
    return discover_reservations(az).reservations

