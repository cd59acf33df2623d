from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List

from ..azcli.runner import AzRunner
from ..logging import get_logger
from ..normalize.schema import DetailedReservation, Reservation, UtilizationSummary
from ..normalize.status import classify_status
from ..util.errors import AzCliError
from .base import FinderResult, ResourceFinder
from .default import DefaultFinder
from .utilization import get_utilization

LOG = get_logger(__name__)

FinderFactory = Callable[[], ResourceFinder]


class FinderRegistry:
    """
    Registry mapping reservedResourceType strings to ResourceFinder factories.
    Falls back to DefaultFinder when no specific finder is registered.
    Lookups are case-insensitive.
    """

    def __init__(self) -> None:
        self._map: Dict[str, FinderFactory] = {}

    def register(self, resource_type: str, factory: FinderFactory) -> None:
        self._map[resource_type.lower()] = factory

    def is_registered(self, resource_type: str) -> bool:
        return (resource_type or "").lower() in self._map

    def get(self, resource_type: str) -> ResourceFinder:
        factory = self._map.get((resource_type or "").lower())
        if factory is not None:
            return factory()
        return DefaultFinder()


_global_registry = FinderRegistry()


def register_finder(resource_type: str, factory: FinderFactory) -> None:
    _global_registry.register(resource_type, factory)


def get_finder_for(resource_type: str) -> ResourceFinder:
    return _global_registry.get(resource_type)


def is_finder_registered(resource_type: str) -> bool:
    return _global_registry.is_registered(resource_type)


def find_affected_resources(az: AzRunner, reservation: Reservation) -> FinderResult:
    """
    Run the finder for the reservation's type. az failures become a
    descriptive entry instead of aborting enrichment; an empty match becomes
    a 'not found' placeholder.
    """
    finder = get_finder_for(reservation.reservedResourceType or "")
    try:
        res = finder.find(az, reservation)
    except AzCliError as e:
        LOG.warning(
            "Resource discovery failed",
            extra={"reservation": reservation.name, "finder": finder.label, "error": str(e)},
        )
        return FinderResult(resources=[f"Error discovering {finder.label}: {e}"])
    if not res.resources:
        return FinderResult(
            resources=[f"No matching {finder.label} found"],
            approximate=res.approximate,
            note=res.note,
        )
    return res


def enrich_reservation(
    az: AzRunner,
    reservation: Reservation,
    now: datetime,
    *,
    grain: str = "monthly",
) -> DetailedReservation:
    found = find_affected_resources(az, reservation)
    return DetailedReservation(
        reservation=reservation,
        status=classify_status(reservation, now),
        utilization=get_utilization(az, reservation, grain=grain),
        affectedResources=list(found.resources),
        resourcesApproximate=found.approximate,
        resourcesNote=found.note,
    )


def summarize_without_details(reservation: Reservation, now: datetime) -> DetailedReservation:
    """Status only; used when enrichment is switched off."""
    return DetailedReservation(
        reservation=reservation,
        status=classify_status(reservation, now),
        utilization=UtilizationSummary.not_available("Details were not requested"),
    )


def enrich_all(
    az: AzRunner,
    reservations: List[Reservation],
    now: datetime,
    *,
    details: bool = True,
    grain: str = "monthly",
) -> List[DetailedReservation]:
    if not details:
        return [summarize_without_details(r, now) for r in reservations]
    return [enrich_reservation(az, r, now, grain=grain) for r in reservations]


from .resources import register_resource_finders  # noqa: E402

register_resource_finders()
