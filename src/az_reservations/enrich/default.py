from __future__ import annotations

from ..azcli.runner import AzRunner
from ..normalize.schema import Reservation
from .base import FinderResult, ResourceFinder


class DefaultFinder(ResourceFinder):
    """
    Used for any reservedResourceType without a specific finder.
    Never calls az and never raises.
    """

    resource_type: str = "*"
    label: str = "resources"

    def find(self, az: AzRunner, reservation: Reservation) -> FinderResult:  # type: ignore[override]
        rtype = reservation.reservedResourceType or "unknown"
        return FinderResult(
            resources=[f"Automatic resource discovery is not implemented for reservation type '{rtype}'"],
        )
