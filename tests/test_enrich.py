from __future__ import annotations

from datetime import datetime, timedelta, timezone

from az_reservations.azcli.resources import (
    cosmosdb_list_args,
    sql_database_list_args,
    utilization_args,
    vm_list_args,
)
from az_reservations.enrich import (
    enrich_all,
    enrich_reservation,
    find_affected_resources,
    get_finder_for,
    is_finder_registered,
    register_finder,
)
from az_reservations.enrich.base import FinderResult
from az_reservations.enrich.default import DefaultFinder
from az_reservations.enrich.utilization import get_utilization, summarize_utilization
from az_reservations.normalize.schema import Reservation
from az_reservations.util.errors import AzCliError

from conftest import FakeAz

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _res(rtype: str = "VirtualMachines", sku: str = "Standard_D2s_v3", order: str = "o-1", name: str = "r-1") -> Reservation:
    return Reservation(
        id=f"/providers/Microsoft.Capacity/reservationOrders/{order}/reservations/{name}",
        name=name,
        skuName=sku,
        reservedResourceType=rtype,
        provisioningState="Succeeded",
        expiryDateTime=NOW + timedelta(days=200),
        parentOrderName=order,
    )


def _vm(name: str, size: str, rg: str = "rg-app", location: str = "westeurope") -> dict:
    return {"name": name, "resourceGroup": rg, "location": location, "hardwareProfile": {"vmSize": size}}


class _DummyFinder:
    resource_type = "unit:Dummy"
    label = "dummies"

    def find(self, az, reservation) -> FinderResult:  # type: ignore[override]
        return FinderResult(resources=["dummy-1"])


def test_registry_returns_default_when_not_registered(fake_az: FakeAz) -> None:
    finder = get_finder_for("unit:NotRegistered")
    assert isinstance(finder, DefaultFinder)
    res = finder.find(fake_az, _res(rtype="unit:NotRegistered"))
    assert res.resources == ["Automatic resource discovery is not implemented for reservation type 'unit:NotRegistered'"]
    assert fake_az.calls == []


def test_registry_returns_specific_when_registered(fake_az: FakeAz) -> None:
    register_finder("unit:Dummy", _DummyFinder)  # type: ignore[arg-type]
    assert is_finder_registered("UNIT:dummy")
    assert get_finder_for("unit:DUMMY").find(fake_az, _res()).resources == ["dummy-1"]


def test_builtin_finders_registered() -> None:
    for rtype in ("VirtualMachines", "SqlDatabases", "CosmosDb", "virtualmachines"):
        assert is_finder_registered(rtype)


def test_vm_finder_matches_sku_case_insensitively(fake_az: FakeAz) -> None:
    fake_az.set(
        vm_list_args(),
        [
            _vm("web-02", "standard_d2s_v3"),
            _vm("big-01", "Standard_E8s_v5"),
            _vm("web-01", "Standard_D2s_v3", rg="rg-web", location="northeurope"),
        ],
    )
    res = find_affected_resources(fake_az, _res())
    assert res.resources == [
        "VM: web-01 (RG: rg-web, Size: Standard_D2s_v3, Location: northeurope)",
        "VM: web-02 (RG: rg-app, Size: standard_d2s_v3, Location: westeurope)",
    ]
    assert res.approximate is False


def test_vm_finder_no_match_placeholder(fake_az: FakeAz) -> None:
    fake_az.set(vm_list_args(), [_vm("big-01", "Standard_E8s_v5")])
    res = find_affected_resources(fake_az, _res())
    assert res.resources == ["No matching virtual machines found"]


def test_finder_az_failure_becomes_entry(fake_az: FakeAz) -> None:
    fake_az.set(vm_list_args(), AzCliError("az vm list failed (exit 1): boom", returncode=1))
    res = find_affected_resources(fake_az, _res())
    assert len(res.resources) == 1
    assert res.resources[0].startswith("Error discovering virtual machines:")


def test_sql_finder_skips_master_and_is_approximate(fake_az: FakeAz) -> None:
    fake_az.set(
        sql_database_list_args(),
        [
            {
                "name": "sql-srv/master",
                "id": "/subscriptions/s/resourceGroups/rg-data/providers/Microsoft.Sql/servers/sql-srv/databases/master",
            },
            {
                "name": "sql-srv/orders",
                "id": "/subscriptions/s/resourceGroups/rg-data/providers/Microsoft.Sql/servers/sql-srv/databases/orders",
                "sku": {"name": "GP_Gen5_4", "tier": "GeneralPurpose"},
                "location": "westeurope",
            },
        ],
    )
    res = find_affected_resources(fake_az, _res(rtype="SqlDatabases", sku="SQL_GP_Gen5"))
    assert res.resources == [
        "SQL Database: sql-srv/orders (RG: rg-data, SKU: GP_Gen5_4/GeneralPurpose, Location: westeurope)"
    ]
    assert res.approximate is True
    assert res.note and "not filtered" in res.note


def test_cosmos_finder_empty_keeps_approximate_flag(fake_az: FakeAz) -> None:
    fake_az.set(cosmosdb_list_args(), [])
    res = find_affected_resources(fake_az, _res(rtype="CosmosDb", sku="Cosmos_DB_100RU"))
    assert res.resources == ["No matching Cosmos DB accounts found"]
    assert res.approximate is True


def test_summarize_utilization() -> None:
    summary = summarize_utilization(
        [
            {"properties": {"avgUtilizationPercentage": 80, "maxUtilizationPercentage": 100, "minUtilizationPercentage": 40}},
            {"avgUtilizationPercentage": 60.5, "maxUtilizationPercentage": 90, "minUtilizationPercentage": 20},
            {"usageDate": "2026-01-01"},
        ]
    )
    assert summary.available is True
    assert summary.averageUtilization == 70.25
    assert summary.maxUtilization == 100.0
    assert summary.minUtilization == 20.0
    assert summary.dataPointCount == 2


def test_summarize_utilization_without_points() -> None:
    assert summarize_utilization([]).available is False


def test_get_utilization_failure_is_not_available(fake_az: FakeAz) -> None:
    fake_az.set(utilization_args("o-1", "r-1", "monthly"), AzCliError("boom", returncode=1))
    summary = get_utilization(fake_az, _res())
    assert summary.available is False
    assert summary.averageUtilization is None


def test_get_utilization_without_order_makes_no_call(fake_az: FakeAz) -> None:
    r = Reservation(id="/x", name="r-1")
    assert get_utilization(fake_az, r).available is False
    assert fake_az.calls == []


def test_enrich_reservation_combines_status_utilization_and_resources(fake_az: FakeAz) -> None:
    fake_az.set(vm_list_args(), [_vm("web-01", "Standard_D2s_v3")])
    fake_az.set(utilization_args("o-1", "r-1", "daily"), [{"avgUtilizationPercentage": 42}])

    d = enrich_reservation(fake_az, _res(), NOW, grain="daily")

    assert d.status.status == "Active"
    assert d.status.daysUntilExpiry == 200
    assert d.utilization.averageUtilization == 42.0
    assert d.affectedResources == ["VM: web-01 (RG: rg-app, Size: Standard_D2s_v3, Location: westeurope)"]


def test_enrich_all_without_details_makes_no_calls(fake_az: FakeAz) -> None:
    details = enrich_all(fake_az, [_res(), _res(name="r-2")], NOW, details=False)
    assert [d.status.status for d in details] == ["Active", "Active"]
    assert all(not d.utilization.available for d in details)
    assert all(d.affectedResources == [] for d in details)
    assert fake_az.calls == []
