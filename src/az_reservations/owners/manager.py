from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional, Sequence

from ..azcli import identity
from ..azcli.runner import AzRunner
from ..logging import get_logger
from ..normalize.schema import (
    PRINCIPAL_GROUP,
    PRINCIPAL_USER,
    RESULT_FAILED,
    RESULT_SUCCESS,
    RESULT_WHAT_IF,
    ROLE_OWNER,
    AssignmentOutcome,
    BulkAssignmentResult,
    Principal,
    Reservation,
    ReservationOwners,
)
from ..normalize.transform import normalize_principal
from ..util.errors import AzCliError

LOG = get_logger(__name__)


def get_reservation_owners(az: AzRunner, reservation: Reservation) -> ReservationOwners:
    try:
        assignments = identity.list_role_assignments(az, reservation.id)
    except AzCliError as e:
        LOG.warning(
            "Listing role assignments failed",
            extra={"reservation": reservation.name, "error": str(e), "kind": e.kind},
        )
        return ReservationOwners(reservation=reservation, owners=[], error=str(e))
    owners = [a for a in assignments if a.roleDefinitionName.lower() == ROLE_OWNER.lower()]
    owners.sort(key=lambda a: (a.principalType, a.principalName.lower()))
    return ReservationOwners(reservation=reservation, owners=owners)


def show_current_owners(az: AzRunner, reservations: Sequence[Reservation]) -> List[ReservationOwners]:
    """
    Owner role assignments for each reservation. Reservations without owners
    get an empty list; lookup failures are recorded per reservation.
    """
    return [get_reservation_owners(az, r) for r in reservations]


def resolve_principal(az: AzRunner, identifier: str) -> Optional[Principal]:
    """
    Resolve an identifier (UPN/email, group name or object id) to a Principal.

    Tries a user lookup first, then a group lookup; returns None only when
    both fail. The identifier's shape is never used to guess the type.
    """
    ident = (identifier or "").strip()
    if not ident:
        return None

    lookups: List[tuple[str, Callable[[AzRunner, str], Dict]]] = [
        (PRINCIPAL_USER, identity.get_user),
        (PRINCIPAL_GROUP, identity.get_group),
    ]
    for principal_type, lookup in lookups:
        try:
            raw = lookup(az, ident)
        except AzCliError as e:
            LOG.debug(
                "Principal lookup did not match",
                extra={"identifier": ident, "principal_type": principal_type, "error": str(e)},
            )
            continue
        if raw:
            principal = normalize_principal(raw, principal_type)
            if principal.id:
                LOG.info(
                    "Resolved principal",
                    extra={"identifier": ident, "principal_type": principal_type, "principal_id": principal.id},
                )
                return principal
    LOG.warning("Principal not found as user or group", extra={"identifier": ident})
    return None


def filter_reservations(reservations: Sequence[Reservation], names: Optional[Sequence[str]]) -> List[Reservation]:
    """
    Restrict to reservations whose name or display name is listed
    (case-insensitive). With no names, everything is kept.
    """
    wanted = {n.strip().lower() for n in (names or []) if n and n.strip()}
    if not wanted:
        return list(reservations)
    kept = [
        r for r in reservations if r.name.lower() in wanted or (r.displayName or "").lower() in wanted
    ]
    matched = {r.name.lower() for r in kept} | {(r.displayName or "").lower() for r in kept}
    unmatched = sorted(wanted - matched)
    if unmatched:
        LOG.debug("Reservation names not matched", extra={"names": unmatched})
    return kept


def assign_owner(
    az: AzRunner,
    reservation: Reservation,
    principal: Principal,
    *,
    what_if: bool = False,
) -> AssignmentOutcome:
    if what_if:
        return AssignmentOutcome(
            reservation=reservation,
            principal=principal,
            result=RESULT_WHAT_IF,
            message=f"Would assign {ROLE_OWNER} to {principal.label}",
        )
    try:
        identity.create_role_assignment(az, principal, reservation.id)
    except AzCliError as e:
        LOG.warning(
            "Owner assignment failed",
            extra={"reservation": reservation.name, "principal_id": principal.id, "error": str(e)},
        )
        return AssignmentOutcome(reservation=reservation, principal=principal, result=RESULT_FAILED, message=str(e))
    LOG.info("Owner assigned", extra={"reservation": reservation.name, "principal_id": principal.id})
    return AssignmentOutcome(
        reservation=reservation,
        principal=principal,
        result=RESULT_SUCCESS,
        message=f"Assigned {ROLE_OWNER} to {principal.label}",
    )


def assign_owner_bulk(
    az: AzRunner,
    reservations: Sequence[Reservation],
    principal: Principal,
    *,
    what_if: bool = False,
) -> BulkAssignmentResult:
    """Assign Owner on every reservation; one failure never stops the rest."""
    outcomes = [assign_owner(az, r, principal, what_if=what_if) for r in reservations]
    return BulkAssignmentResult(outcomes=outcomes)


def verify_assignments(
    az: AzRunner,
    result: BulkAssignmentResult,
    *,
    delay_seconds: float = 10.0,
    attempts: int = 3,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, bool]:
    """
    Poll Owner assignments until each successfully assigned reservation lists
    the principal, or attempts run out. Returns reservation name -> verified.
    Role assignments are eventually consistent, so an unverified entry is a
    hint rather than a failure.
    """
    pending = {o.reservation.name: o for o in result.outcomes if o.result == RESULT_SUCCESS}
    verified: Dict[str, bool] = {name: False for name in pending}
    for _ in range(max(1, attempts)):
        if not pending:
            break
        if delay_seconds > 0:
            sleep(delay_seconds)
        for name, outcome in list(pending.items()):
            owners = get_reservation_owners(az, outcome.reservation)
            if any(a.principalId == outcome.principal.id for a in owners.owners):
                verified[name] = True
                pending.pop(name)
    if pending:
        LOG.warning("Owner assignments not yet visible", extra={"reservations": sorted(pending)})
    return verified
