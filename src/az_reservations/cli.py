from __future__ import annotations

import logging
import sys
import time
from datetime import datetime
from time import perf_counter
from typing import Any, Callable, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape

from .azcli.identity import show_account
from .azcli.reservations import discover_reservations
from .azcli.runner import AzCli, AzRunner
from .config import RunConfig, dump_config, load_run_config
from .enrich import enrich_all
from .export.csv import export_csv
from .logging import LogConfig, get_logger, setup_logging
from .normalize.schema import (
    DetailedReservation,
    Principal,
    Reservation,
    ReservationOwners,
)
from .owners.manager import (
    assign_owner_bulk,
    filter_reservations,
    resolve_principal,
    show_current_owners,
    verify_assignments,
)
from .owners.prompt import PrincipalPrompt
from .report import (
    DEFAULT_THEME,
    ReportTheme,
    compute_statistics,
    render_assignment_results,
    render_details,
    render_export_paths,
    render_owners,
    render_statistics,
    render_summary_table,
    render_verification,
)
from .util.errors import AzCliError, ExportError, as_exit_code, guidance_for
from .util.time import utc_now

LOG = get_logger(__name__)


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    **extra: Any,
) -> None:
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(step)
        elif phase in {"complete", "error", "warning", "skipped"}:
            duration_ms = timers.finish(step)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def _make_az(cfg: RunConfig) -> AzRunner:
    return AzCli(az_path=cfg.az_path, timeout=cfg.az_timeout)


def _interactive_principal(az: AzRunner, console: Console) -> Optional[Principal]:
    return PrincipalPrompt(lambda ident: resolve_principal(az, ident), console=console).run()


def _stdin_is_interactive() -> bool:
    return sys.stdin is not None and sys.stdin.isatty()


def _discover(az: AzRunner, console: Console, timers: _StepTimers) -> List[Reservation]:
    _log_event(LOG, logging.INFO, "Discovering reservations", step="discovery", phase="start", timers=timers)
    result = discover_reservations(az)
    if result.failedOrders:
        console.print(
            f"[yellow]Could not list reservations for {len(result.failedOrders)} order(s): "
            f"{escape(', '.join(result.failedOrders))}[/yellow]"
        )
    if not result.reservations:
        _log_event(LOG, logging.WARNING, "No reservations found", step="discovery", phase="warning", timers=timers)
        console.print("[yellow]No reservations found.[/yellow]")
        if result.guidance:
            console.print(result.guidance)
        return []
    _log_event(
        LOG,
        logging.INFO,
        "Discovery complete",
        step="discovery",
        phase="complete",
        timers=timers,
        orders=len(result.orders),
        reservations=len(result.reservations),
    )
    return result.reservations


def _report(
    az: AzRunner,
    cfg: RunConfig,
    reservations: Sequence[Reservation],
    *,
    now: datetime,
    theme: ReportTheme,
    console: Console,
    timers: _StepTimers,
) -> List[DetailedReservation]:
    _log_event(LOG, logging.INFO, "Collecting reservation details", step="enrich", phase="start", timers=timers)
    details = enrich_all(az, list(reservations), now, details=cfg.details, grain=cfg.utilization_grain)
    _log_event(LOG, logging.INFO, "Details collected", step="enrich", phase="complete", timers=timers)

    render_summary_table(
        details, theme=theme, low_utilization_threshold=cfg.low_utilization_threshold, console=console
    )
    if cfg.details:
        render_details(details, theme=theme, console=console)
    stats = compute_statistics(details, low_utilization_threshold=cfg.low_utilization_threshold)
    render_statistics(stats, theme=theme, low_utilization_threshold=cfg.low_utilization_threshold, console=console)
    return details


def _export(
    cfg: RunConfig,
    details: Sequence[DetailedReservation],
    owners: Optional[Sequence[ReservationOwners]],
    *,
    console: Console,
    timers: _StepTimers,
) -> None:
    if not cfg.export_csv:
        return
    _log_event(LOG, logging.INFO, "Exporting CSV", step="export", phase="start", timers=timers)
    try:
        paths = export_csv(cfg.outdir, details, owners)
    except ExportError as e:
        _log_event(LOG, logging.ERROR, "CSV export failed", step="export", phase="error", timers=timers, error=str(e))
        console.print(f"[red]CSV export failed: {e}[/red]")
        return
    _log_event(LOG, logging.INFO, "CSV export complete", step="export", phase="complete", timers=timers)
    render_export_paths(paths, console=console)


def cmd_report(
    cfg: RunConfig,
    *,
    az: Optional[AzRunner] = None,
    console: Optional[Console] = None,
    now: Optional[datetime] = None,
    theme: ReportTheme = DEFAULT_THEME,
) -> int:
    az = az or _make_az(cfg)
    console = console or Console()
    timers = _StepTimers()
    LOG.debug("Run configuration", extra={"config": dump_config(cfg)})

    reservations = _discover(az, console, timers)
    if not reservations:
        return 0
    details = _report(az, cfg, reservations, now=now or utc_now(), theme=theme, console=console, timers=timers)

    owners: Optional[List[ReservationOwners]] = None
    if cfg.show_owners:
        owners = show_current_owners(az, reservations)
        render_owners(owners, theme=theme, console=console)

    _export(cfg, details, owners, console=console, timers=timers)
    return 0


def cmd_manage(
    cfg: RunConfig,
    *,
    az: Optional[AzRunner] = None,
    console: Optional[Console] = None,
    now: Optional[datetime] = None,
    theme: ReportTheme = DEFAULT_THEME,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Full workflow: discover, report, show owners, filter targets, resolve the
    principal (flag or interactive prompt), assign Owner, verify, export.
    Aborts and cancellations still export what was collected.
    """
    az = az or _make_az(cfg)
    console = console or Console()
    timers = _StepTimers()
    LOG.debug("Run configuration", extra={"config": dump_config(cfg)})

    reservations = _discover(az, console, timers)
    if not reservations:
        return 0
    details = _report(az, cfg, reservations, now=now or utc_now(), theme=theme, console=console, timers=timers)

    owners: Optional[List[ReservationOwners]] = None
    if cfg.show_owners:
        owners = show_current_owners(az, reservations)
        render_owners(owners, theme=theme, console=console)

    targets = filter_reservations(reservations, cfg.reservations)
    if not targets:
        LOG.warning("No reservations matched the requested names", extra={"names": cfg.reservations})
        console.print(f"[yellow]No reservations matched: {escape(', '.join(cfg.reservations or []))}. Nothing to do.[/yellow]")
        _export(cfg, details, owners, console=console, timers=timers)
        return 0

    principal: Optional[Principal]
    if cfg.principal:
        principal = resolve_principal(az, cfg.principal)
        if principal is None:
            console.print(
                f"[yellow]'{escape(cfg.principal)}' was not found as a user or a group; owner assignment cancelled.[/yellow]"
            )
    elif _stdin_is_interactive():
        principal = _interactive_principal(az, console)
    else:
        LOG.warning("No principal supplied and no interactive terminal; owner assignment cancelled")
        console.print("[yellow]No --principal given and input is not interactive; owner assignment cancelled.[/yellow]")
        principal = None
    if principal is None:
        _export(cfg, details, owners, console=console, timers=timers)
        return 0

    _log_event(
        LOG,
        logging.INFO,
        "Assigning Owner",
        step="assign",
        phase="start",
        timers=timers,
        principal_id=principal.id,
        targets=len(targets),
        what_if=cfg.what_if,
    )
    result = assign_owner_bulk(az, targets, principal, what_if=cfg.what_if)
    _log_event(
        LOG,
        logging.INFO if not result.failCount else logging.WARNING,
        "Owner assignment finished",
        step="assign",
        phase="complete",
        timers=timers,
        succeeded=result.successCount,
        failed=result.failCount,
    )
    render_assignment_results(result, theme=theme, console=console)

    if result.successCount:
        verified = verify_assignments(
            az,
            result,
            delay_seconds=cfg.propagation_delay,
            attempts=cfg.verify_attempts,
            sleep=sleep,
        )
        render_verification(verified, theme=theme, console=console)
        owners = show_current_owners(az, reservations)
        render_owners(owners, theme=theme, title="Owners After Assignment", console=console)

    _export(cfg, details, owners, console=console, timers=timers)
    return 0


def cmd_show_owners(
    cfg: RunConfig,
    *,
    az: Optional[AzRunner] = None,
    console: Optional[Console] = None,
    theme: ReportTheme = DEFAULT_THEME,
) -> int:
    az = az or _make_az(cfg)
    console = console or Console()
    timers = _StepTimers()
    found = _discover(az, console, timers)
    if not found:
        return 0
    reservations = filter_reservations(found, cfg.reservations)
    if not reservations:
        console.print(f"[yellow]No reservations matched: {escape(', '.join(cfg.reservations or []))}[/yellow]")
        return 0
    owners = show_current_owners(az, reservations)
    render_owners(owners, theme=theme, console=console)
    if cfg.export_csv:
        # owners-only export keeps the status columns meaningful
        details = enrich_all(az, reservations, utc_now(), details=False)
        _export(cfg, details, owners, console=console, timers=timers)
    return 0


def cmd_validate_auth(
    cfg: RunConfig,
    *,
    az: Optional[AzRunner] = None,
    console: Optional[Console] = None,
) -> int:
    az = az or _make_az(cfg)
    console = console or Console()
    try:
        account = show_account(az)
    except AzCliError as e:
        LOG.error("Azure CLI session check failed", extra={"error": str(e), "kind": e.kind})
        console.print(f"[red]FAILED:[/red] {guidance_for(e.kind)}")
        return 1
    user = account.get("user") if isinstance(account.get("user"), dict) else {}
    console.print(
        escape(
            f"OK: signed in as {user.get('name') or 'unknown'}; "
            f"subscription {account.get('name') or 'unknown'} ({account.get('id') or 'unknown'})"
        )
    )
    LOG.info("Authentication validated", extra={"subscription": account.get("id")})
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_run_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "report":
            code = cmd_report(cfg)
        elif command == "manage":
            code = cmd_manage(cfg)
        elif command == "show-owners":
            code = cmd_show_owners(cfg)
        elif command == "validate-auth":
            code = cmd_validate_auth(cfg)
        else:
            raise ValueError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())  # ensure something is configured
        LOG.error("Execution failed", exc_info=True, extra={"error": str(e)})
        if isinstance(e, AzCliError):
            print(guidance_for(e.kind), file=sys.stderr)
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
