from __future__ import annotations

from typing import Any, Dict, List

from .runner import AzRunner, as_list

SQL_DATABASE_RESOURCE_TYPE = "Microsoft.Sql/servers/databases"


def vm_list_args() -> List[str]:
    return ["vm", "list"]


def sql_database_list_args() -> List[str]:
    return ["resource", "list", "--resource-type", SQL_DATABASE_RESOURCE_TYPE]


def cosmosdb_list_args() -> List[str]:
    return ["cosmosdb", "list"]


def utilization_args(order_name: str, reservation_name: str, grain: str) -> List[str]:
    return [
        "consumption",
        "reservation",
        "summary",
        "list",
        "--reservation-order-id",
        order_name,
        "--reservation-id",
        reservation_name,
        "--grain",
        grain,
    ]


def _dicts(data: Any) -> List[Dict[str, Any]]:
    return [it for it in as_list(data) if isinstance(it, dict)]


def list_virtual_machines(az: AzRunner) -> List[Dict[str, Any]]:
    return _dicts(az.run(vm_list_args()))


def list_sql_databases(az: AzRunner) -> List[Dict[str, Any]]:
    return _dicts(az.run(sql_database_list_args()))


def list_cosmosdb_accounts(az: AzRunner) -> List[Dict[str, Any]]:
    return _dicts(az.run(cosmosdb_list_args()))


def list_reservation_summaries(az: AzRunner, order_name: str, reservation_name: str, grain: str) -> List[Dict[str, Any]]:
    return _dicts(az.run(utilization_args(order_name, reservation_name, grain)))
