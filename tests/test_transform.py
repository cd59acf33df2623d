from __future__ import annotations

from datetime import datetime, timezone

from az_reservations.normalize.schema import ReservationOrder
from az_reservations.normalize.transform import (
    flatten_properties,
    normalize_order,
    normalize_principal,
    normalize_reservation,
    normalize_role_assignment,
)

ORDER = ReservationOrder(
    id="/providers/Microsoft.Capacity/reservationOrders/o-111",
    name="o-111",
    displayName="VM order",
)


def test_flatten_properties_prefers_nested_values() -> None:
    flat = flatten_properties({"id": "x", "displayName": None, "properties": {"displayName": "RI", "term": "P1Y"}})
    assert flat == {"id": "x", "displayName": "RI", "term": "P1Y"}


def test_normalize_order_from_arm_shape() -> None:
    order = normalize_order(
        {
            "id": "/providers/Microsoft.Capacity/reservationOrders/o-111",
            "name": "o-111",
            "properties": {"displayName": "VM order"},
        }
    )
    assert order == ORDER


def test_normalize_reservation_arm_shape() -> None:
    raw = {
        "id": "/providers/Microsoft.Capacity/reservationOrders/o-111/reservations/r-1",
        "name": "o-111/r-1",
        "sku": {"name": "Standard_D2s_v3"},
        "properties": {
            "displayName": "VM_RI_01",
            "reservedResourceType": "VirtualMachines",
            "quantity": 3,
            "term": "P3Y",
            "instanceFlexibility": "On",
            "provisioningState": "Succeeded",
            "effectiveDateTime": "2024-01-15T10:00:00.1234567Z",
            "expiryDateTime": "2027-01-15T10:00:00Z",
        },
    }
    r = normalize_reservation(raw, ORDER)
    assert r.name == "r-1"
    assert r.label == "VM_RI_01"
    assert r.skuName == "Standard_D2s_v3"
    assert r.quantity == 3
    assert r.term == "P3Y"
    assert r.provisioningState == "Succeeded"
    assert r.effectiveDateTime == datetime(2024, 1, 15, 10, 0, 0, 123456, tzinfo=timezone.utc)
    assert r.expiryDateTime == datetime(2027, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
    assert r.parentOrderName == "o-111"
    assert r.parentOrderId == ORDER.id


def test_normalize_reservation_flat_shape_with_fallback_dates() -> None:
    raw = {
        "id": "/providers/Microsoft.Capacity/reservationOrders/o-111/reservations/r-2",
        "name": "r-2",
        "skuName": "SQL_GP_Gen5",
        "reservedResourceType": "SqlDatabases",
        "quantity": "4",
        "benefitStartTime": "2025-06-01T00:00:00Z",
        "expiryDate": "2026-06-01",
    }
    r = normalize_reservation(raw)
    assert r.label == "r-2"
    assert r.skuName == "SQL_GP_Gen5"
    assert r.quantity == 4
    assert r.effectiveDateTime == datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert r.expiryDateTime == datetime(2026, 6, 1, tzinfo=timezone.utc)
    assert r.parentOrderName is None
    assert r.datesUnparsable is False


def test_missing_or_bad_fields_become_none() -> None:
    r = normalize_reservation({"id": "/x/reservations/r-3", "quantity": "many", "expiryDateTime": "soon"})
    assert r.name == "r-3"
    assert r.quantity is None
    assert r.expiryDateTime is None
    assert r.datesUnparsable is True
    assert r.provisioningState is None


def test_normalize_role_assignment() -> None:
    a = normalize_role_assignment(
        {
            "principalId": "p-1",
            "principalName": "alice@contoso.com",
            "principalType": "User",
            "roleDefinitionName": "Owner",
            "scope": "/providers/Microsoft.Capacity/reservationOrders/o-111/reservations/r-1",
        }
    )
    assert a.principalName == "alice@contoso.com"
    assert a.roleDefinitionName == "Owner"


def test_normalize_principal_user_and_group() -> None:
    user = normalize_principal({"id": "u-1", "displayName": "Alice", "mail": "alice@contoso.com"}, "User")
    assert user.principalType == "User"
    assert user.userPrincipalName == "alice@contoso.com"
    assert user.label == "Alice (alice@contoso.com)"

    group = normalize_principal({"id": "g-1", "displayName": "FinOps", "userPrincipalName": "ignored"}, "Group")
    assert group.principalType == "Group"
    assert group.userPrincipalName is None
    assert group.label == "FinOps"
