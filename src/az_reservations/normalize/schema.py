from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

ROLE_OWNER = "Owner"

PRINCIPAL_USER = "User"
PRINCIPAL_GROUP = "Group"

RESULT_SUCCESS = "Success"
RESULT_FAILED = "Failed"
RESULT_WHAT_IF = "WhatIf"

SUMMARY_CSV_FIELDS: Tuple[str, ...] = (
    "Name",
    "DisplayName",
    "SKU",
    "Type",
    "Quantity",
    "Term",
    "Status",
    "UsagePercent",
    "ExpiryDate",
    "ProvisioningState",
)

DETAILED_CSV_FIELDS: Tuple[str, ...] = (
    "Name",
    "DisplayName",
    "ReservationId",
    "OrderName",
    "SKU",
    "Type",
    "Quantity",
    "Term",
    "InstanceFlexibility",
    "ProvisioningState",
    "Status",
    "StatusExplanation",
    "DaysUntilExpiry",
    "EffectiveDate",
    "ExpiryDate",
    "UtilizationAvailable",
    "AverageUtilization",
    "MaxUtilization",
    "MinUtilization",
    "UtilizationDataPoints",
    "AffectedResources",
    "AffectedResourcesApproximate",
)

OWNERS_CSV_FIELDS: Tuple[str, ...] = (
    "ReservationName",
    "ReservationId",
    "PrincipalName",
    "PrincipalType",
    "PrincipalId",
    "Role",
)

STATUS_CSV_FIELDS: Tuple[str, ...] = (
    "Status",
    "Count",
    "Reservations",
)


@dataclass(frozen=True)
class ReservationOrder:
    id: str
    name: str
    displayName: Optional[str] = None


@dataclass(frozen=True)
class Reservation:
    id: str
    name: str
    displayName: Optional[str] = None
    skuName: Optional[str] = None
    reservedResourceType: Optional[str] = None
    quantity: Optional[int] = None
    term: Optional[str] = None
    instanceFlexibility: Optional[str] = None
    provisioningState: Optional[str] = None
    effectiveDateTime: Optional[datetime] = None
    expiryDateTime: Optional[datetime] = None
    parentOrderName: Optional[str] = None
    parentOrderId: Optional[str] = None
    # an effective or expiry value was supplied but could not be parsed
    datesUnparsable: bool = False

    @property
    def label(self) -> str:
        return self.displayName or self.name


@dataclass(frozen=True)
class UtilizationSummary:
    available: bool
    averageUtilization: Optional[float] = None
    maxUtilization: Optional[float] = None
    minUtilization: Optional[float] = None
    dataPointCount: int = 0
    note: Optional[str] = None

    @classmethod
    def not_available(cls, note: str = "Utilization data not available") -> UtilizationSummary:
        return cls(available=False, note=note)


@dataclass(frozen=True)
class StatusInfo:
    status: str
    explanation: str
    daysUntilExpiry: Optional[int] = None


@dataclass(frozen=True)
class DetailedReservation:
    reservation: Reservation
    status: StatusInfo
    utilization: UtilizationSummary
    affectedResources: List[str] = field(default_factory=list)
    resourcesApproximate: bool = False
    resourcesNote: Optional[str] = None


@dataclass(frozen=True)
class Principal:
    id: str
    displayName: str
    principalType: str
    userPrincipalName: Optional[str] = None

    @property
    def label(self) -> str:
        if self.userPrincipalName:
            return f"{self.displayName} ({self.userPrincipalName})"
        return self.displayName


@dataclass(frozen=True)
class RoleAssignment:
    principalId: str
    principalName: str
    principalType: str
    roleDefinitionName: str
    scope: str


@dataclass(frozen=True)
class ReservationOwners:
    reservation: Reservation
    owners: List[RoleAssignment] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class AssignmentOutcome:
    reservation: Reservation
    principal: Principal
    result: str
    message: str = ""


@dataclass(frozen=True)
class BulkAssignmentResult:
    outcomes: List[AssignmentOutcome]

    @property
    def successCount(self) -> int:
        return sum(1 for o in self.outcomes if o.result == RESULT_SUCCESS)

    @property
    def failCount(self) -> int:
        return sum(1 for o in self.outcomes if o.result == RESULT_FAILED)

    @property
    def whatIfCount(self) -> int:
        return sum(1 for o in self.outcomes if o.result == RESULT_WHAT_IF)

    @property
    def failedItems(self) -> List[str]:
        return [o.reservation.label for o in self.outcomes if o.result == RESULT_FAILED]


@dataclass(frozen=True)
class DiscoveryResult:
    orders: List[ReservationOrder]
    reservations: List[Reservation]
    guidance: Optional[str] = None
    failedOrders: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExportPaths:
    root: Path
    summary_csv: Path
    detailed_csv: Path
    owners_csv: Path
    status_csv: Path


def resolve_export_paths(outdir: Path, timestamp: str) -> ExportPaths:
    return ExportPaths(
        root=outdir,
        summary_csv=outdir / f"reservations_summary_{timestamp}.csv",
        detailed_csv=outdir / f"reservations_detailed_{timestamp}.csv",
        owners_csv=outdir / f"reservation_owners_{timestamp}.csv",
        status_csv=outdir / f"reservation_status_{timestamp}.csv",
    )
