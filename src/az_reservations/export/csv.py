from __future__ import annotations

import csv
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..logging import get_logger
from ..normalize.schema import (
    DETAILED_CSV_FIELDS,
    OWNERS_CSV_FIELDS,
    STATUS_CSV_FIELDS,
    SUMMARY_CSV_FIELDS,
    DetailedReservation,
    ExportPaths,
    ReservationOwners,
    resolve_export_paths,
)
from ..normalize.status import status_sort_key
from ..util.errors import ExportError
from ..util.time import export_timestamp, format_date

LOG = get_logger(__name__)

LIST_SEPARATOR = "; "


def _fmt_pct(value: Optional[float]) -> str:
    return "" if value is None else f"{value:.2f}"


def summary_row(d: DetailedReservation) -> Dict[str, Any]:
    r = d.reservation
    return {
        "Name": r.name,
        "DisplayName": r.displayName or "",
        "SKU": r.skuName or "",
        "Type": r.reservedResourceType or "",
        "Quantity": "" if r.quantity is None else r.quantity,
        "Term": r.term or "",
        "Status": d.status.status,
        "UsagePercent": _fmt_pct(d.utilization.averageUtilization) if d.utilization.available else "N/A",
        "ExpiryDate": format_date(r.expiryDateTime),
        "ProvisioningState": r.provisioningState or "",
    }


def detailed_row(d: DetailedReservation) -> Dict[str, Any]:
    r = d.reservation
    u = d.utilization
    return {
        "Name": r.name,
        "DisplayName": r.displayName or "",
        "ReservationId": r.id,
        "OrderName": r.parentOrderName or "",
        "SKU": r.skuName or "",
        "Type": r.reservedResourceType or "",
        "Quantity": "" if r.quantity is None else r.quantity,
        "Term": r.term or "",
        "InstanceFlexibility": r.instanceFlexibility or "",
        "ProvisioningState": r.provisioningState or "",
        "Status": d.status.status,
        "StatusExplanation": d.status.explanation,
        "DaysUntilExpiry": "" if d.status.daysUntilExpiry is None else d.status.daysUntilExpiry,
        "EffectiveDate": format_date(r.effectiveDateTime),
        "ExpiryDate": format_date(r.expiryDateTime),
        "UtilizationAvailable": u.available,
        "AverageUtilization": _fmt_pct(u.averageUtilization),
        "MaxUtilization": _fmt_pct(u.maxUtilization),
        "MinUtilization": _fmt_pct(u.minUtilization),
        "UtilizationDataPoints": u.dataPointCount,
        "AffectedResources": LIST_SEPARATOR.join(d.affectedResources),
        "AffectedResourcesApproximate": d.resourcesApproximate,
    }


def owner_rows(owners: Iterable[ReservationOwners]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for entry in owners:
        r = entry.reservation
        if not entry.owners:
            rows.append(
                {
                    "ReservationName": r.label,
                    "ReservationId": r.id,
                    "PrincipalName": "(lookup failed)" if entry.error else "(no owners)",
                    "PrincipalType": "",
                    "PrincipalId": "",
                    "Role": "",
                }
            )
            continue
        for a in entry.owners:
            rows.append(
                {
                    "ReservationName": r.label,
                    "ReservationId": r.id,
                    "PrincipalName": a.principalName,
                    "PrincipalType": a.principalType,
                    "PrincipalId": a.principalId,
                    "Role": a.roleDefinitionName,
                }
            )
    return rows


def status_rows(details: Iterable[DetailedReservation]) -> List[Dict[str, Any]]:
    groups: Dict[str, List[str]] = {}
    for d in details:
        groups.setdefault(d.status.status, []).append(d.reservation.label)
    return [
        {"Status": status, "Count": len(names), "Reservations": LIST_SEPARATOR.join(sorted(names))}
        for status, names in sorted(groups.items(), key=lambda kv: status_sort_key(kv[0]))
    ]


def write_rows(path: Path, fields: Sequence[str], rows: Iterable[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(fields))
        writer.writeheader()
        for row in rows:
            writer.writerow({k: row.get(k, "") for k in fields})


def export_csv(
    outdir: Path,
    details: Sequence[DetailedReservation],
    owners: Optional[Sequence[ReservationOwners]] = None,
    *,
    now: Optional[datetime] = None,
) -> ExportPaths:
    """
    Write the summary, detailed, owners and status-breakdown CSV files.
    Rows are ordered by reservation label. The owners file is only written
    when owners were collected.
    Raises ExportError when the directory or a file cannot be written.
    """
    paths = resolve_export_paths(outdir, export_timestamp(now))
    ordered = sorted(details, key=lambda d: (d.reservation.label.lower(), d.reservation.id))
    try:
        write_rows(paths.summary_csv, SUMMARY_CSV_FIELDS, (summary_row(d) for d in ordered))
        write_rows(paths.detailed_csv, DETAILED_CSV_FIELDS, (detailed_row(d) for d in ordered))
        if owners is not None:
            write_rows(paths.owners_csv, OWNERS_CSV_FIELDS, owner_rows(owners))
        write_rows(paths.status_csv, STATUS_CSV_FIELDS, status_rows(ordered))
    except OSError as e:
        raise ExportError(f"Failed to write CSV export to {outdir}: {e}") from e
    LOG.info("CSV export written", extra={"outdir": str(outdir)})
    return paths
