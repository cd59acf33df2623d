from __future__ import annotations

import io
from typing import Iterator, List, Optional

from rich.console import Console

from az_reservations.normalize.schema import Principal
from az_reservations.owners.prompt import PrincipalPrompt, PromptState

GROUP = Principal(id="g-1", displayName="FinOps", principalType="Group")


def _scripted(answers: List[object]):
    it: Iterator[object] = iter(answers)

    def _next(_prompt: str):
        value = next(it)
        if isinstance(value, BaseException):
            raise value
        return value

    return _next


def _resolver(known: dict):
    def resolve(identifier: str) -> Optional[Principal]:
        return known.get(identifier)

    return resolve


def _prompt(resolver, ask, confirm=None, retry=None) -> PrincipalPrompt:
    return PrincipalPrompt(
        resolver,
        ask=ask,
        confirm=confirm or _scripted([True]),
        retry=retry or _scripted([False]),
        console=Console(file=io.StringIO(), width=120),
    )


def test_happy_path_accepts_confirmed_principal() -> None:
    p = _prompt(_resolver({"FinOps": GROUP}), ask=_scripted(["  FinOps  "]))
    assert p.run() == GROUP
    assert p.transitions == [
        PromptState.PROMPT,
        PromptState.VALIDATE,
        PromptState.RESOLVE,
        PromptState.CONFIRM,
        PromptState.ACCEPT,
    ]


def test_empty_input_then_retry_then_success() -> None:
    p = _prompt(
        _resolver({"FinOps": GROUP}),
        ask=_scripted(["", "FinOps"]),
        retry=_scripted([True]),
    )
    assert p.run() == GROUP
    assert p.transitions[:4] == [PromptState.PROMPT, PromptState.VALIDATE, PromptState.RETRY, PromptState.PROMPT]


def test_unresolved_then_abort_returns_none() -> None:
    p = _prompt(_resolver({}), ask=_scripted(["ghost"]), retry=_scripted([False]))
    assert p.run() is None
    assert p.transitions == [
        PromptState.PROMPT,
        PromptState.VALIDATE,
        PromptState.RESOLVE,
        PromptState.CONFIRM,
        PromptState.RETRY,
        PromptState.ABORT,
    ]


def test_declined_confirmation_goes_to_retry() -> None:
    p = _prompt(
        _resolver({"FinOps": GROUP}),
        ask=_scripted(["FinOps"]),
        confirm=_scripted([False]),
        retry=_scripted([False]),
    )
    assert p.run() is None
    assert PromptState.RETRY in p.transitions
    assert PromptState.ACCEPT not in p.transitions


def test_end_of_input_aborts() -> None:
    p = _prompt(_resolver({}), ask=_scripted([EOFError()]))
    assert p.run() is None
    assert p.transitions == [PromptState.PROMPT, PromptState.ABORT]


def test_interrupt_during_confirm_aborts() -> None:
    p = _prompt(_resolver({"FinOps": GROUP}), ask=_scripted(["FinOps"]), confirm=_scripted([KeyboardInterrupt()]))
    assert p.run() is None
    assert p.transitions[-1] is PromptState.ABORT


def test_unresolved_principal_is_never_offered_for_confirmation() -> None:
    asked: List[str] = []

    def confirm(prompt: str) -> bool:
        asked.append(prompt)
        return True

    p = _prompt(_resolver({"FinOps": GROUP}), ask=_scripted(["ghost", "FinOps"]), confirm=confirm, retry=_scripted([True]))
    assert p.run() == GROUP
    assert len(asked) == 1
