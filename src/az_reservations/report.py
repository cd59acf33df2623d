from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .normalize.schema import (
    RESULT_FAILED,
    RESULT_SUCCESS,
    RESULT_WHAT_IF,
    BulkAssignmentResult,
    DetailedReservation,
    ExportPaths,
    ReservationOwners,
)
from .normalize.status import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_EXPIRES_TODAY,
    STATUS_EXPIRING,
    STATUS_EXPIRING_SOON,
    STATUS_FAILED,
    STATUS_FUTURE,
    STATUS_PENDING,
    status_sort_key,
)
from .util.time import format_date

DEFAULT_LOW_UTILIZATION_THRESHOLD = 50.0


def _default_status_styles() -> Mapping[str, str]:
    return MappingProxyType({
        STATUS_ACTIVE: "green",
        STATUS_EXPIRING: "yellow",
        STATUS_EXPIRING_SOON: "dark_orange",
        STATUS_EXPIRES_TODAY: "bold red",
        STATUS_EXPIRED: "red",
        STATUS_FUTURE: "cyan",
        STATUS_PENDING: "blue",
        STATUS_FAILED: "bold red",
        STATUS_CANCELLED: "magenta",
    })


@dataclass(frozen=True)
class ReportTheme:
    """Presentation settings, built once at startup and passed to every renderer."""

    status_styles: Mapping[str, str] = field(default_factory=_default_status_styles)
    default_style: str = "white"
    header_style: str = "bold"
    low_utilization_style: str = "red"
    unavailable_style: str = "dim"
    success_style: str = "green"
    failure_style: str = "red"
    what_if_style: str = "cyan"

    def style_for(self, status: str) -> str:
        return self.status_styles.get(status, self.default_style)


DEFAULT_THEME = ReportTheme()


@dataclass(frozen=True)
class ReportStatistics:
    total: int
    by_status: Dict[str, int]
    low_utilization: int
    utilization_available: int


def compute_statistics(
    details: Sequence[DetailedReservation],
    *,
    low_utilization_threshold: float = DEFAULT_LOW_UTILIZATION_THRESHOLD,
) -> ReportStatistics:
    by_status: Dict[str, int] = {}
    low = 0
    available = 0
    for d in details:
        by_status[d.status.status] = by_status.get(d.status.status, 0) + 1
        u = d.utilization
        if u.available and u.averageUtilization is not None:
            available += 1
            if u.averageUtilization < low_utilization_threshold:
                low += 1
    return ReportStatistics(
        total=len(details),
        by_status=dict(sorted(by_status.items(), key=lambda kv: status_sort_key(kv[0]))),
        low_utilization=low,
        utilization_available=available,
    )


def _usage_text(d: DetailedReservation, theme: ReportTheme, threshold: float) -> str:
    u = d.utilization
    if not u.available or u.averageUtilization is None:
        return f"[{theme.unavailable_style}]N/A[/{theme.unavailable_style}]"
    text = f"{u.averageUtilization:.1f}%"
    if u.averageUtilization < threshold:
        return f"[{theme.low_utilization_style}]{text}[/{theme.low_utilization_style}]"
    return text


def render_summary_table(
    details: Sequence[DetailedReservation],
    *,
    theme: ReportTheme = DEFAULT_THEME,
    low_utilization_threshold: float = DEFAULT_LOW_UTILIZATION_THRESHOLD,
    console: Optional[Console] = None,
) -> None:
    table = Table(title="Reservations", show_header=True, header_style=theme.header_style)
    for col in ("Name", "SKU", "Type", "Qty", "Term", "Status", "Usage %", "Expiry", "State"):
        table.add_column(col)
    for d in details:
        r = d.reservation
        style = theme.style_for(d.status.status)
        table.add_row(
            escape(r.label),
            escape(r.skuName or ""),
            escape(r.reservedResourceType or ""),
            "" if r.quantity is None else str(r.quantity),
            escape(r.term or ""),
            f"[{style}]{escape(d.status.status)}[/{style}]",
            _usage_text(d, theme, low_utilization_threshold),
            format_date(r.expiryDateTime),
            escape(r.provisioningState or ""),
        )
    (console or Console()).print(table)


def render_details(
    details: Sequence[DetailedReservation],
    *,
    theme: ReportTheme = DEFAULT_THEME,
    console: Optional[Console] = None,
) -> None:
    out = console or Console()
    for d in details:
        r = d.reservation
        u = d.utilization
        style = theme.style_for(d.status.status)
        lines: List[str] = [
            f"Reservation ID: {escape(r.id)}",
            f"Order: {escape(r.parentOrderName or 'unknown')}",
            f"Status: [{style}]{escape(d.status.status)}[/{style}] ({escape(d.status.explanation)})",
            f"Effective: {format_date(r.effectiveDateTime) or 'unknown'}    Expiry: {format_date(r.expiryDateTime) or 'unknown'}",
            f"Instance flexibility: {escape(r.instanceFlexibility or 'n/a')}",
        ]
        if u.available:
            lines.append(
                f"Utilization: avg {u.averageUtilization:.1f}% / max {u.maxUtilization:.1f}% / "
                f"min {u.minUtilization:.1f}% over {u.dataPointCount} data point(s)"
            )
        else:
            lines.append(f"Utilization: [{theme.unavailable_style}]{escape(u.note or 'not available')}[/{theme.unavailable_style}]")
        lines.append("Affected resources:")
        lines.extend(f"  - {escape(item)}" for item in d.affectedResources or ["(not collected)"])
        if d.resourcesApproximate and d.resourcesNote:
            lines.append(f"  [yellow]Note: {escape(d.resourcesNote)}[/yellow]")
        out.print(Panel("\n".join(lines), title=escape(f"{r.label} ({r.skuName or 'unknown SKU'})"), expand=False))


def render_statistics(
    stats: ReportStatistics,
    *,
    theme: ReportTheme = DEFAULT_THEME,
    low_utilization_threshold: float = DEFAULT_LOW_UTILIZATION_THRESHOLD,
    console: Optional[Console] = None,
) -> None:
    table = Table(title="Summary", show_header=True, header_style=theme.header_style)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Total reservations", str(stats.total))
    for status, count in stats.by_status.items():
        style = theme.style_for(status)
        table.add_row(f"[{style}]{escape(status)}[/{style}]", str(count))
    table.add_row(f"Utilization below {low_utilization_threshold:g}%", str(stats.low_utilization))
    table.add_row("Utilization data available", str(stats.utilization_available))
    (console or Console()).print(table)


def render_owners(
    owners: Sequence[ReservationOwners],
    *,
    theme: ReportTheme = DEFAULT_THEME,
    title: str = "Current Owners",
    console: Optional[Console] = None,
) -> None:
    table = Table(title=title, show_header=True, header_style=theme.header_style)
    for col in ("Reservation", "Owner", "Type", "Object ID"):
        table.add_column(col)
    for entry in owners:
        name = escape(entry.reservation.label)
        if entry.error:
            table.add_row(name, f"[{theme.failure_style}]lookup failed: {escape(entry.error)}[/{theme.failure_style}]", "", "")
            continue
        if not entry.owners:
            table.add_row(name, f"[{theme.unavailable_style}]no owners[/{theme.unavailable_style}]", "", "")
            continue
        for i, a in enumerate(entry.owners):
            table.add_row(name if i == 0 else "", escape(a.principalName), escape(a.principalType), escape(a.principalId))
    (console or Console()).print(table)


def render_assignment_results(
    result: BulkAssignmentResult,
    *,
    theme: ReportTheme = DEFAULT_THEME,
    console: Optional[Console] = None,
) -> None:
    out = console or Console()
    styles = {
        RESULT_SUCCESS: theme.success_style,
        RESULT_FAILED: theme.failure_style,
        RESULT_WHAT_IF: theme.what_if_style,
    }
    table = Table(title="Owner Assignment", show_header=True, header_style=theme.header_style)
    for col in ("Reservation", "Result", "Message"):
        table.add_column(col)
    for o in result.outcomes:
        style = styles.get(o.result, theme.default_style)
        table.add_row(escape(o.reservation.label), f"[{style}]{o.result}[/{style}]", escape(o.message))
    out.print(table)
    if result.whatIfCount:
        out.print(f"What-if: {result.whatIfCount} assignment(s) would be made; no changes applied.")
    out.print(f"Succeeded: {result.successCount}  Failed: {result.failCount}")
    if result.failedItems:
        out.print(f"[{theme.failure_style}]Failed reservations: {escape(', '.join(result.failedItems))}[/{theme.failure_style}]")


def render_verification(
    verified: Mapping[str, bool],
    *,
    theme: ReportTheme = DEFAULT_THEME,
    console: Optional[Console] = None,
) -> None:
    out = console or Console()
    for name, ok in sorted(verified.items()):
        if ok:
            out.print(f"[{theme.success_style}]Verified[/{theme.success_style}] owner on {escape(name)}")
        else:
            out.print(f"[yellow]Not yet visible[/yellow] on {escape(name)}; role assignments can take a few minutes to propagate")


def render_export_paths(paths: ExportPaths, *, console: Optional[Console] = None) -> None:
    out = console or Console()
    present = [p for p in (paths.summary_csv, paths.detailed_csv, paths.owners_csv, paths.status_csv) if p.exists()]
    out.print("Wrote:\n" + "\n".join(f"- {escape(str(p))}" for p in present))
