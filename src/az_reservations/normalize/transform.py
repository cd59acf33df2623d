from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ..util.time import parse_azure_datetime
from .schema import PRINCIPAL_GROUP, PRINCIPAL_USER, Principal, Reservation, ReservationOrder, RoleAssignment


def _get(d: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return None


def flatten_properties(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge a nested 'properties' object over the top-level keys.

    az returns reservation objects either in the ARM shape (fields under
    'properties') or already flattened depending on the CLI/extension version.
    """
    flat: Dict[str, Any] = {k: v for k, v in raw.items() if k != "properties"}
    props = raw.get("properties")
    if isinstance(props, Mapping):
        for k, v in props.items():
            if v is not None or k not in flat:
                flat[k] = v
    return flat


def _last_segment(value: Any) -> str:
    text = str(value or "").strip().rstrip("/")
    if not text:
        return ""
    return text.rsplit("/", 1)[-1]


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _sku_name(flat: Mapping[str, Any]) -> Optional[str]:
    sku = flat.get("sku")
    if isinstance(sku, Mapping):
        return _str_or_none(sku.get("name"))
    if isinstance(sku, str):
        return _str_or_none(sku)
    return _str_or_none(_get(flat, "skuName", "sku_name"))


def normalize_order(raw: Mapping[str, Any]) -> ReservationOrder:
    flat = flatten_properties(raw)
    order_id = str(flat.get("id") or "")
    name = _last_segment(flat.get("name")) or _last_segment(order_id)
    return ReservationOrder(
        id=order_id,
        name=name,
        displayName=_str_or_none(flat.get("displayName")),
    )


def normalize_reservation(raw: Mapping[str, Any], order: Optional[ReservationOrder] = None) -> Reservation:
    """
    Map one az reservation object (either shape) to a canonical Reservation.

    'name' in ARM output is '<orderId>/<reservationId>'; only the reservation
    segment is kept.
    """
    flat = flatten_properties(raw)
    res_id = str(flat.get("id") or "")
    name = _last_segment(flat.get("name")) or _last_segment(res_id)
    raw_effective = _get(flat, "effectiveDateTime", "benefitStartTime")
    raw_expiry = _get(flat, "expiryDateTime", "expiryDate")
    effective = parse_azure_datetime(raw_effective)
    expiry = parse_azure_datetime(raw_expiry)
    unparsable = (effective is None and _str_or_none(raw_effective) is not None) or (
        expiry is None and _str_or_none(raw_expiry) is not None
    )
    return Reservation(
        id=res_id,
        name=name,
        displayName=_str_or_none(flat.get("displayName")),
        skuName=_sku_name(flat),
        reservedResourceType=_str_or_none(flat.get("reservedResourceType")),
        quantity=_to_int(flat.get("quantity")),
        term=_str_or_none(flat.get("term")),
        instanceFlexibility=_str_or_none(flat.get("instanceFlexibility")),
        provisioningState=_str_or_none(flat.get("provisioningState")),
        effectiveDateTime=effective,
        expiryDateTime=expiry,
        parentOrderName=order.name if order else None,
        parentOrderId=order.id if order else None,
        datesUnparsable=unparsable,
    )


def normalize_role_assignment(raw: Mapping[str, Any]) -> RoleAssignment:
    flat = flatten_properties(raw)
    return RoleAssignment(
        principalId=str(flat.get("principalId") or ""),
        principalName=str(flat.get("principalName") or flat.get("principalId") or ""),
        principalType=str(flat.get("principalType") or ""),
        roleDefinitionName=str(flat.get("roleDefinitionName") or ""),
        scope=str(flat.get("scope") or ""),
    )


def normalize_principal(raw: Mapping[str, Any], principal_type: str) -> Principal:
    if principal_type == PRINCIPAL_USER:
        upn = _str_or_none(_get(raw, "userPrincipalName", "mail"))
    else:
        upn = None
    object_id = str(_get(raw, "id", "objectId") or "")
    display = str(_get(raw, "displayName", "mailNickname") or upn or object_id)
    return Principal(
        id=object_id,
        displayName=display,
        principalType=principal_type if principal_type in (PRINCIPAL_USER, PRINCIPAL_GROUP) else PRINCIPAL_USER,
        userPrincipalName=upn,
    )
