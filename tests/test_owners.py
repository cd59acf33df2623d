from __future__ import annotations

from typing import List

from az_reservations.azcli.identity import (
    group_show_args,
    role_assignment_create_args,
    role_assignment_list_args,
    user_show_args,
)
from az_reservations.normalize.schema import Principal, Reservation
from az_reservations.owners.manager import (
    assign_owner,
    assign_owner_bulk,
    filter_reservations,
    get_reservation_owners,
    resolve_principal,
    show_current_owners,
    verify_assignments,
)
from az_reservations.util.errors import AzCliError

from conftest import FakeAz

ALICE = Principal(id="u-alice", displayName="Alice", principalType="User", userPrincipalName="alice@contoso.com")


def _res(name: str, display: str = "") -> Reservation:
    return Reservation(
        id=f"/providers/Microsoft.Capacity/reservationOrders/o-1/reservations/{name}",
        name=name,
        displayName=display or None,
    )


def _assignment(pid: str, pname: str, role: str = "Owner", ptype: str = "User") -> dict:
    return {"principalId": pid, "principalName": pname, "principalType": ptype, "roleDefinitionName": role}


def _not_found() -> AzCliError:
    return AzCliError("not found", returncode=3, stderr="ResourceNotFound")


def test_owners_filtered_to_owner_role_and_sorted(fake_az: FakeAz) -> None:
    r = _res("r-1")
    fake_az.set(
        role_assignment_list_args(r.id),
        [
            _assignment("u-2", "zed@contoso.com"),
            _assignment("u-3", "reader@contoso.com", role="Reader"),
            _assignment("g-1", "FinOps", ptype="Group"),
            _assignment("u-1", "amy@contoso.com"),
        ],
    )
    owners = get_reservation_owners(fake_az, r)
    assert owners.error is None
    assert [a.principalName for a in owners.owners] == ["FinOps", "amy@contoso.com", "zed@contoso.com"]


def test_show_current_owners_records_failures_per_reservation(fake_az: FakeAz) -> None:
    r1, r2 = _res("r-1"), _res("r-2")
    fake_az.set(role_assignment_list_args(r1.id), [])
    fake_az.set(role_assignment_list_args(r2.id), AzCliError("denied", returncode=1, stderr="(AuthorizationFailed)"))

    result = show_current_owners(fake_az, [r1, r2])

    assert [o.reservation.name for o in result] == ["r-1", "r-2"]
    assert result[0].owners == [] and result[0].error is None
    assert result[1].owners == [] and result[1].error


def test_resolve_principal_user_first(fake_az: FakeAz) -> None:
    fake_az.set(user_show_args("alice@contoso.com"), {"id": "u-alice", "displayName": "Alice", "userPrincipalName": "alice@contoso.com"})
    p = resolve_principal(fake_az, " alice@contoso.com ")
    assert p == ALICE
    assert fake_az.called("ad", "group", "show") == []


def test_resolve_principal_falls_back_to_group(fake_az: FakeAz) -> None:
    fake_az.set(user_show_args("FinOps"), _not_found())
    fake_az.set(group_show_args("FinOps"), {"id": "g-1", "displayName": "FinOps"})
    p = resolve_principal(fake_az, "FinOps")
    assert p is not None
    assert p.principalType == "Group"
    assert p.id == "g-1"


def test_resolve_principal_unknown_and_empty(fake_az: FakeAz) -> None:
    fake_az.set(user_show_args("ghost"), _not_found())
    fake_az.set(group_show_args("ghost"), _not_found())
    assert resolve_principal(fake_az, "ghost") is None
    calls = len(fake_az.calls)
    assert resolve_principal(fake_az, "   ") is None
    assert len(fake_az.calls) == calls


def test_filter_reservations_by_name_or_display_name() -> None:
    rs = [_res("r-1", "VM_RI_01"), _res("r-2", "SQL_RI_01"), _res("r-3")]
    assert [r.name for r in filter_reservations(rs, ["vm_ri_01", "R-3"])] == ["r-1", "r-3"]
    assert filter_reservations(rs, None) == rs
    assert filter_reservations(rs, []) == rs
    assert filter_reservations(rs, ["nope"]) == []


def test_assign_owner_what_if_makes_no_calls(fake_az: FakeAz) -> None:
    outcome = assign_owner(fake_az, _res("r-1"), ALICE, what_if=True)
    assert outcome.result == "WhatIf"
    assert fake_az.calls == []


def test_bulk_assignment_continues_after_failure(fake_az: FakeAz) -> None:
    rs = [_res("r-1", "A"), _res("r-2", "B"), _res("r-3", "C")]
    fake_az.set(role_assignment_create_args(ALICE, rs[0].id), {"id": "ra-1"})
    fake_az.set(role_assignment_create_args(ALICE, rs[1].id), AzCliError("denied", returncode=1, stderr="(AuthorizationFailed)"))
    fake_az.set(role_assignment_create_args(ALICE, rs[2].id), {"id": "ra-3"})

    result = assign_owner_bulk(fake_az, rs, ALICE)

    assert [o.result for o in result.outcomes] == ["Success", "Failed", "Success"]
    assert result.successCount == 2
    assert result.failCount == 1
    assert result.failedItems == ["B"]
    assert len(fake_az.called("role", "assignment", "create")) == 3


def test_bulk_what_if_tally(fake_az: FakeAz) -> None:
    rs = [_res("r-1"), _res("r-2")]
    result = assign_owner_bulk(fake_az, rs, ALICE, what_if=True)
    assert result.whatIfCount == 2
    assert result.successCount == 0
    assert result.failCount == 0


def test_create_args_carry_principal_type_and_scope() -> None:
    r = _res("r-1")
    args = role_assignment_create_args(ALICE, r.id)
    assert args[args.index("--assignee-object-id") + 1] == "u-alice"
    assert args[args.index("--assignee-principal-type") + 1] == "User"
    assert args[args.index("--role") + 1] == "Owner"
    assert args[args.index("--scope") + 1] == r.id


def test_verify_assignments_polls_until_visible(fake_az: FakeAz) -> None:
    r1, r2 = _res("r-1"), _res("r-2")
    fake_az.set(role_assignment_create_args(ALICE, r1.id), {})
    fake_az.set(role_assignment_create_args(ALICE, r2.id), {})
    result = assign_owner_bulk(fake_az, [r1, r2], ALICE)

    fake_az.sequence(role_assignment_list_args(r1.id), [], [_assignment("u-alice", "alice@contoso.com")])
    fake_az.set(role_assignment_list_args(r2.id), [])
    sleeps: List[float] = []

    verified = verify_assignments(fake_az, result, delay_seconds=2.5, attempts=3, sleep=sleeps.append)

    assert verified == {"r-1": True, "r-2": False}
    assert sleeps == [2.5, 2.5, 2.5]
    # r-1 stops being polled once it is visible
    assert len(fake_az.called(*role_assignment_list_args(r1.id))) == 2
    assert len(fake_az.called(*role_assignment_list_args(r2.id))) == 3


def test_verify_assignments_ignores_non_successful_outcomes(fake_az: FakeAz) -> None:
    result = assign_owner_bulk(fake_az, [_res("r-1")], ALICE, what_if=True)
    sleeps: List[float] = []
    assert verify_assignments(fake_az, result, sleep=sleeps.append) == {}
    assert sleeps == []


def test_verify_assignments_zero_delay_does_not_sleep(fake_az: FakeAz) -> None:
    r = _res("r-1")
    fake_az.set(role_assignment_create_args(ALICE, r.id), {})
    fake_az.set(role_assignment_list_args(r.id), [_assignment("u-alice", "alice@contoso.com")])
    result = assign_owner_bulk(fake_az, [r], ALICE)
    sleeps: List[float] = []
    assert verify_assignments(fake_az, result, delay_seconds=0.0, sleep=sleeps.append) == {"r-1": True}
    assert sleeps == []
