from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

import pytest

from az_reservations.util.errors import AzCliError


class FakeAz:
    """
    Scripted az runner: maps an argument tuple to a canned JSON value or to an
    AzCliError to raise. Unknown commands raise AzCliError(kind=not_found).
    A list of values under one key is consumed one per call (last one sticks).
    """

    def __init__(self, responses: Dict[Tuple[str, ...], Any] | None = None) -> None:
        self.responses: Dict[Tuple[str, ...], Any] = dict(responses or {})
        self.calls: List[Tuple[str, ...]] = []

    def set(self, args: Sequence[str], value: Any) -> None:
        self.responses[tuple(args)] = value

    def sequence(self, args: Sequence[str], *values: Any) -> None:
        self.responses[tuple(args)] = _Sequence(list(values))

    def run(self, args: Sequence[str]) -> Any:
        key = tuple(args)
        self.calls.append(key)
        if key not in self.responses:
            raise AzCliError(f"unscripted command: az {' '.join(key)}", returncode=3, stderr="ResourceNotFound")
        value = self.responses[key]
        if isinstance(value, _Sequence):
            value = value.next()
        if isinstance(value, BaseException):
            raise value
        return value

    def called(self, *prefix: str) -> List[Tuple[str, ...]]:
        return [c for c in self.calls if c[: len(prefix)] == prefix]


class _Sequence:
    def __init__(self, values: List[Any]) -> None:
        self._values = values

    def next(self) -> Any:
        if len(self._values) > 1:
            return self._values.pop(0)
        return self._values[0]


@pytest.fixture
def fake_az() -> FakeAz:
    return FakeAz()
