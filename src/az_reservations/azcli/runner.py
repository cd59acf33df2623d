from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from ..logging import get_logger
from ..util.errors import NOT_INSTALLED, AzCliError, classify_az_error

LOG = get_logger(__name__)


class AzRunner(Protocol):
    """
    Anything that can execute an az command line and return parsed JSON.
    Implementations raise AzCliError on failure.
    """

    def run(self, args: Sequence[str]) -> Any:
        ...


@dataclass(frozen=True)
class AzCli:
    """
    Thin subprocess wrapper around the Azure CLI.

    The command is executed as `<az_path> <args...> -o json`; stdout is parsed
    as JSON (empty stdout -> None). Success and failure are decided solely by
    the process exit status.
    """

    az_path: str = "az"
    timeout: Optional[float] = None

    def run(self, args: Sequence[str]) -> Any:
        cmd = [self.az_path, *args, "-o", "json"]
        LOG.debug("Running az command", extra={"command": " ".join(cmd)})
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise AzCliError(f"Azure CLI not found at '{self.az_path}'", kind=NOT_INSTALLED) from e
        except subprocess.TimeoutExpired as e:
            raise AzCliError(f"az {' '.join(args[:3])} timed out after {self.timeout}s") from e

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            raise AzCliError(
                f"az {' '.join(args[:3])} failed (exit {proc.returncode}): {_first_line(stderr)}",
                returncode=proc.returncode,
                stderr=stderr,
                kind=classify_az_error(stderr),
            )

        out = (proc.stdout or "").strip()
        if not out:
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError as e:
            raise AzCliError(f"az {' '.join(args[:3])} returned non-JSON output: {e}") from e


def _first_line(text: str, max_len: int = 240) -> str:
    line = (text or "").strip().splitlines()[0] if (text or "").strip() else ""
    if len(line) <= max_len:
        return line
    return line[: max_len - 3] + "..."


def as_list(data: Any) -> list:
    """
    Coerce az output into a list of items. Some commands return a bare list,
    others an object with a 'value' array, and a few a single object.
    """
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        value = data.get("value")
        if isinstance(value, list):
            return value
        return [data]
    return []
