from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, runtime_checkable

from ..azcli.runner import AzRunner
from ..normalize.schema import Reservation


@dataclass(frozen=True)
class FinderResult:
    resources: List[str] = field(default_factory=list)
    approximate: bool = False
    note: Optional[str] = None


@runtime_checkable
class ResourceFinder(Protocol):
    """
    Discovers resources that may be consuming a reservation of one
    reservedResourceType. Implementations may raise AzCliError; the caller
    turns failures into a descriptive entry.
    """

    resource_type: str
    label: str

    def find(self, az: AzRunner, reservation: Reservation) -> FinderResult:
        ...
