from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .util.errors import ConfigError
from .util.time import utc_now_iso

# --------
# Defaults
# --------
DEFAULT_OUTDIR = "out"
DEFAULT_AZ_PATH = "az"
DEFAULT_PROPAGATION_DELAY = 10.0
DEFAULT_VERIFY_ATTEMPTS = 3
DEFAULT_LOW_UTILIZATION_THRESHOLD = 50.0
DEFAULT_UTILIZATION_GRAIN = "monthly"
UTILIZATION_GRAINS = {"daily", "monthly"}

ALLOWED_CONFIG_KEYS = {
    "outdir",
    "export_csv",
    "principal",
    "reservations",
    "what_if",
    "show_owners",
    "details",
    "json_logs",
    "log_level",
    "az_path",
    "az_timeout",
    "propagation_delay",
    "verify_attempts",
    "low_utilization_threshold",
    "utilization_grain",
}
BOOL_CONFIG_KEYS = {"export_csv", "what_if", "show_owners", "details", "json_logs"}
INT_CONFIG_KEYS = {"verify_attempts"}
FLOAT_CONFIG_KEYS = {"az_timeout", "propagation_delay", "low_utilization_threshold"}
PATH_CONFIG_KEYS = {"outdir"}
STR_CONFIG_KEYS = {"principal", "log_level", "az_path", "utilization_grain"}


@dataclass(frozen=True)
class RunConfig:
    # Output
    outdir: Path = Path(DEFAULT_OUTDIR)
    export_csv: bool = False
    json_logs: bool = False
    log_level: str = "INFO"

    # Owner management
    principal: Optional[str] = None
    reservations: Optional[List[str]] = None
    what_if: bool = False
    show_owners: bool = False
    propagation_delay: float = DEFAULT_PROPAGATION_DELAY
    verify_attempts: int = DEFAULT_VERIFY_ATTEMPTS

    # Reporting
    details: bool = True
    low_utilization_threshold: float = DEFAULT_LOW_UTILIZATION_THRESHOLD
    utilization_grain: str = DEFAULT_UTILIZATION_GRAIN

    # Azure CLI
    az_path: str = DEFAULT_AZ_PATH
    az_timeout: Optional[float] = None

    # Internal/derived
    collected_at: str = field(default_factory=utc_now_iso)


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            # YAML is a superset of JSON for our purposes
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def _coerce_float(key: str, value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be a number")


def _split_names(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [n.strip() for n in value.split(",") if n.strip()]
    if isinstance(value, list) and all(isinstance(n, str) for n in value):
        return [n.strip() for n in value if n.strip()]
    raise ValueError("Config field 'reservations' must be a list of strings or comma-separated string")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
            continue
        if key == "reservations":
            normalized[key] = _split_names(value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
        elif key in FLOAT_CONFIG_KEYS:
            normalized[key] = _coerce_float(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string")
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="az-resv",
        description=(
            "Report on Azure reservations (status, utilization, affected resources) "
            "and manage Owner role assignments on them via the Azure CLI."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # common flags builder
    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument("--az-path", default=None, help=f"Azure CLI executable (default: {DEFAULT_AZ_PATH})")
        p.add_argument("--az-timeout", type=float, default=None, help="Per-command timeout in seconds")

    def add_output(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--export-csv",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Write summary/detail/owners/status CSV files",
        )
        p.add_argument("--outdir", type=Path, default=None, help=f"CSV output directory (default: {DEFAULT_OUTDIR})")

    def add_report(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--details",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Collect utilization and affected resources (default: on)",
        )
        p.add_argument(
            "--low-utilization-threshold",
            type=float,
            default=None,
            help=f"Percent below which utilization counts as low (default {DEFAULT_LOW_UTILIZATION_THRESHOLD:g})",
        )
        p.add_argument(
            "--utilization-grain",
            default=None,
            choices=sorted(UTILIZATION_GRAINS),
            help=f"Utilization summary grain (default {DEFAULT_UTILIZATION_GRAIN})",
        )

    # report
    p_report = subparsers.add_parser("report", help="Report reservations only (no changes)")
    add_common(p_report)
    add_output(p_report)
    add_report(p_report)
    p_report.add_argument(
        "--show-owners",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also list current Owner role assignments",
    )

    # manage
    p_manage = subparsers.add_parser("manage", help="Report, then grant Owner on reservations")
    add_common(p_manage)
    add_output(p_manage)
    add_report(p_manage)
    p_manage.add_argument(
        "--principal",
        default=None,
        help="User email/UPN, group name or object id to grant Owner (prompts when omitted)",
    )
    p_manage.add_argument(
        "--reservations",
        default=None,
        help="Comma-separated reservation names to target (default: all)",
    )
    p_manage.add_argument(
        "--what-if",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Simulate: show what would be assigned without making changes",
    )
    p_manage.add_argument(
        "--show-owners",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="List current owners before assigning (default: on)",
    )
    p_manage.add_argument(
        "--propagation-delay",
        type=float,
        default=None,
        help=f"Seconds to wait between verification checks (default {DEFAULT_PROPAGATION_DELAY:g})",
    )
    p_manage.add_argument(
        "--verify-attempts",
        type=int,
        default=None,
        help=f"Verification checks after assignment (default {DEFAULT_VERIFY_ATTEMPTS})",
    )

    # show-owners
    p_owners = subparsers.add_parser("show-owners", help="List Owner role assignments per reservation")
    add_common(p_owners)
    add_output(p_owners)
    p_owners.add_argument(
        "--reservations",
        default=None,
        help="Comma-separated reservation names to include (default: all)",
    )

    # validate-auth
    p_val = subparsers.add_parser("validate-auth", help="Show the Azure CLI account in use")
    add_common(p_val)

    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RunConfig) where command is one of: report|manage|show-owners|validate-auth
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    # defaults
    base: Dict[str, Any] = {
        "outdir": DEFAULT_OUTDIR,
        "export_csv": False,
        "principal": None,
        "reservations": None,
        "what_if": False,
        # owners are shown by default when managing, opt-in when reporting
        "show_owners": command in {"manage", "show-owners"},
        "details": True,
        "json_logs": False,
        "log_level": "INFO",
        "az_path": DEFAULT_AZ_PATH,
        "az_timeout": None,
        "propagation_delay": DEFAULT_PROPAGATION_DELAY,
        "verify_attempts": DEFAULT_VERIFY_ATTEMPTS,
        "low_utilization_threshold": DEFAULT_LOW_UTILIZATION_THRESHOLD,
        "utilization_grain": DEFAULT_UTILIZATION_GRAIN,
    }

    # config file
    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    # env
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "outdir": _env_str("AZ_RESV_OUTDIR"),
            "export_csv": _env_bool("AZ_RESV_EXPORT_CSV"),
            "principal": _env_str("AZ_RESV_PRINCIPAL"),
            "reservations": _env_str("AZ_RESV_RESERVATIONS"),
            "what_if": _env_bool("AZ_RESV_WHAT_IF"),
            "show_owners": _env_bool("AZ_RESV_SHOW_OWNERS"),
            "details": _env_bool("AZ_RESV_DETAILS"),
            "json_logs": _env_bool("AZ_RESV_JSON_LOGS"),
            "log_level": _env_str("AZ_RESV_LOG_LEVEL"),
            "az_path": _env_str("AZ_RESV_AZ_PATH"),
            "az_timeout": _env_float("AZ_RESV_AZ_TIMEOUT"),
            "propagation_delay": _env_float("AZ_RESV_PROPAGATION_DELAY"),
            "verify_attempts": _env_int("AZ_RESV_VERIFY_ATTEMPTS"),
            "low_utilization_threshold": _env_float("AZ_RESV_LOW_UTILIZATION_THRESHOLD"),
            "utilization_grain": _env_str("AZ_RESV_UTILIZATION_GRAIN"),
        }
    )

    # CLI
    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "outdir": getattr(ns, "outdir", None),
            "export_csv": getattr(ns, "export_csv", None),
            "principal": getattr(ns, "principal", None),
            "reservations": getattr(ns, "reservations", None),
            "what_if": getattr(ns, "what_if", None),
            "show_owners": getattr(ns, "show_owners", None),
            "details": getattr(ns, "details", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
            "az_path": getattr(ns, "az_path", None),
            "az_timeout": getattr(ns, "az_timeout", None),
            "propagation_delay": getattr(ns, "propagation_delay", None),
            "verify_attempts": getattr(ns, "verify_attempts", None),
            "low_utilization_threshold": getattr(ns, "low_utilization_threshold", None),
            "utilization_grain": getattr(ns, "utilization_grain", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    grain = str(merged.get("utilization_grain") or DEFAULT_UTILIZATION_GRAIN).lower()
    if grain not in UTILIZATION_GRAINS:
        raise ConfigError(f"utilization_grain must be one of: {', '.join(sorted(UTILIZATION_GRAINS))}")
    verify_attempts = int(merged["verify_attempts"])
    if verify_attempts < 1:
        raise ConfigError("verify_attempts must be >= 1")
    propagation_delay = float(merged["propagation_delay"])
    if propagation_delay < 0:
        raise ConfigError("propagation_delay must be >= 0")
    principal = merged.get("principal")
    timeout = merged.get("az_timeout")

    cfg = RunConfig(
        outdir=Path(merged["outdir"]),
        export_csv=bool(merged["export_csv"]),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged.get("log_level") or "INFO").upper(),
        principal=str(principal).strip() if principal and str(principal).strip() else None,
        reservations=_split_names(merged.get("reservations")) or None,
        what_if=bool(merged["what_if"]),
        show_owners=bool(merged["show_owners"]),
        propagation_delay=propagation_delay,
        verify_attempts=verify_attempts,
        details=bool(merged["details"]),
        low_utilization_threshold=float(merged["low_utilization_threshold"]),
        utilization_grain=grain,
        az_path=str(merged.get("az_path") or DEFAULT_AZ_PATH),
        az_timeout=float(timeout) if timeout else None,
    )
    return command, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "outdir": str(cfg.outdir),
        "export_csv": cfg.export_csv,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
        "principal": cfg.principal,
        "reservations": cfg.reservations,
        "what_if": cfg.what_if,
        "show_owners": cfg.show_owners,
        "propagation_delay": cfg.propagation_delay,
        "verify_attempts": cfg.verify_attempts,
        "details": cfg.details,
        "low_utilization_threshold": cfg.low_utilization_threshold,
        "utilization_grain": cfg.utilization_grain,
        "az_path": cfg.az_path,
        "az_timeout": cfg.az_timeout,
        "collected_at": cfg.collected_at,
    }
