from __future__ import annotations

from typing import Any, Dict, List, Mapping

from ..azcli import resources as az_resources
from ..azcli.runner import AzRunner
from ..normalize.schema import Reservation
from .base import FinderResult, ResourceFinder

NOT_SKU_FILTERED_NOTE = (
    "Listed {label} are all {label} in the subscription; they are not filtered by the "
    "reservation SKU and may not consume this reservation."
)


def _nested(d: Mapping[str, Any], *path: str) -> Any:
    cur: Any = d
    for key in path:
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(key)
    return cur


def _resource_group(item: Mapping[str, Any]) -> str:
    rg = item.get("resourceGroup")
    if rg:
        return str(rg)
    # /subscriptions/<sub>/resourceGroups/<rg>/providers/...
    parts = str(item.get("id") or "").split("/")
    for i, part in enumerate(parts[:-1]):
        if part.lower() == "resourcegroups":
            return parts[i + 1]
    return "unknown"


class VirtualMachineFinder(ResourceFinder):
    resource_type = "VirtualMachines"
    label = "virtual machines"

    def find(self, az: AzRunner, reservation: Reservation) -> FinderResult:  # type: ignore[override]
        sku = (reservation.skuName or "").lower()
        out: List[str] = []
        for vm in az_resources.list_virtual_machines(az):
            size = str(_nested(vm, "hardwareProfile", "vmSize") or "")
            if not sku or size.lower() != sku:
                continue
            out.append(
                f"VM: {vm.get('name')} (RG: {_resource_group(vm)}, Size: {size}, Location: {vm.get('location') or 'unknown'})"
            )
        return FinderResult(resources=sorted(out))


class SqlDatabaseFinder(ResourceFinder):
    resource_type = "SqlDatabases"
    label = "SQL databases"

    def find(self, az: AzRunner, reservation: Reservation) -> FinderResult:  # type: ignore[override]
        out: List[str] = []
        for db in az_resources.list_sql_databases(az):
            name = str(db.get("name") or "")
            # master is a system database on every logical server
            if name.rsplit("/", 1)[-1].lower() == "master":
                continue
            sku: Dict[str, Any] = db.get("sku") if isinstance(db.get("sku"), dict) else {}
            sku_label = "/".join(str(v) for v in (sku.get("name"), sku.get("tier")) if v) or "unknown"
            out.append(
                f"SQL Database: {name} (RG: {_resource_group(db)}, SKU: {sku_label}, Location: {db.get('location') or 'unknown'})"
            )
        return FinderResult(
            resources=sorted(out),
            approximate=True,
            note=NOT_SKU_FILTERED_NOTE.format(label=self.label),
        )


class CosmosDbFinder(ResourceFinder):
    resource_type = "CosmosDb"
    label = "Cosmos DB accounts"

    def find(self, az: AzRunner, reservation: Reservation) -> FinderResult:  # type: ignore[override]
        out: List[str] = []
        for account in az_resources.list_cosmosdb_accounts(az):
            out.append(
                f"Cosmos DB: {account.get('name')} (RG: {_resource_group(account)}, "
                f"Kind: {account.get('kind') or 'unknown'}, Location: {account.get('location') or 'unknown'})"
            )
        return FinderResult(
            resources=sorted(out),
            approximate=True,
            note=NOT_SKU_FILTERED_NOTE.format(label=self.label),
        )


def register_resource_finders() -> None:
    from . import register_finder

    register_finder(VirtualMachineFinder.resource_type, VirtualMachineFinder)
    register_finder(SqlDatabaseFinder.resource_type, SqlDatabaseFinder)
    register_finder(CosmosDbFinder.resource_type, CosmosDbFinder)
