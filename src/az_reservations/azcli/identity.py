from __future__ import annotations

from typing import Any, Dict, List

from ..normalize.schema import ROLE_OWNER, Principal, RoleAssignment
from ..normalize.transform import normalize_role_assignment
from .runner import AzRunner, as_list


def show_account(az: AzRunner) -> Dict[str, Any]:
    data = az.run(["account", "show"])
    return data if isinstance(data, dict) else {}


def user_show_args(identifier: str) -> List[str]:
    return ["ad", "user", "show", "--id", identifier]


def group_show_args(identifier: str) -> List[str]:
    return ["ad", "group", "show", "--group", identifier]


def role_assignment_list_args(scope: str) -> List[str]:
    return ["role", "assignment", "list", "--scope", scope]


def role_assignment_create_args(principal: Principal, scope: str, role: str = ROLE_OWNER) -> List[str]:
    return [
        "role",
        "assignment",
        "create",
        "--assignee-object-id",
        principal.id,
        "--assignee-principal-type",
        principal.principalType,
        "--role",
        role,
        "--scope",
        scope,
    ]


def get_user(az: AzRunner, identifier: str) -> Dict[str, Any]:
    data = az.run(user_show_args(identifier))
    return data if isinstance(data, dict) else {}


def get_group(az: AzRunner, identifier: str) -> Dict[str, Any]:
    data = az.run(group_show_args(identifier))
    return data if isinstance(data, dict) else {}


def list_role_assignments(az: AzRunner, scope: str) -> List[RoleAssignment]:
    items = as_list(az.run(role_assignment_list_args(scope)))
    return [normalize_role_assignment(it) for it in items if isinstance(it, dict)]


def create_role_assignment(az: AzRunner, principal: Principal, scope: str, role: str = ROLE_OWNER) -> Any:
    return az.run(role_assignment_create_args(principal, scope, role))
