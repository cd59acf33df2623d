from __future__ import annotations

from typing import Any, List, Mapping, Optional

from ..azcli.resources import list_reservation_summaries
from ..azcli.runner import AzRunner
from ..logging import get_logger
from ..normalize.schema import Reservation, UtilizationSummary
from ..normalize.transform import flatten_properties
from ..util.errors import AzCliError

LOG = get_logger(__name__)


def _pct(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def summarize_utilization(points: List[Mapping[str, Any]]) -> UtilizationSummary:
    """
    Reduce reservation summary data points to one UtilizationSummary:
    mean of averages, max of maxima, min of minima.
    """
    avgs: List[float] = []
    maxes: List[float] = []
    mins: List[float] = []
    for raw in points:
        flat = flatten_properties(raw)
        avg = _pct(flat.get("avgUtilizationPercentage"))
        if avg is None:
            continue
        avgs.append(avg)
        mx = _pct(flat.get("maxUtilizationPercentage"))
        mn = _pct(flat.get("minUtilizationPercentage"))
        maxes.append(mx if mx is not None else avg)
        mins.append(mn if mn is not None else avg)
    if not avgs:
        return UtilizationSummary.not_available("No utilization data points returned")
    return UtilizationSummary(
        available=True,
        averageUtilization=round(sum(avgs) / len(avgs), 2),
        maxUtilization=round(max(maxes), 2),
        minUtilization=round(min(mins), 2),
        dataPointCount=len(avgs),
    )


def get_utilization(az: AzRunner, reservation: Reservation, *, grain: str = "monthly") -> UtilizationSummary:
    """
    Best-effort utilization lookup. Never raises for az failures; returns the
    'not available' sentinel instead.
    """
    if not reservation.parentOrderName or not reservation.name:
        return UtilizationSummary.not_available("Reservation order is unknown")
    try:
        points = list_reservation_summaries(az, reservation.parentOrderName, reservation.name, grain)
    except AzCliError as e:
        LOG.warning(
            "Utilization lookup failed",
            extra={"reservation": reservation.name, "error": str(e), "kind": e.kind},
        )
        return UtilizationSummary.not_available(f"Utilization lookup failed: {e}")
    return summarize_utilization(points)
