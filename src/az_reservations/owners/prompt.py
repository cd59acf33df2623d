from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt

from ..normalize.schema import ROLE_OWNER, Principal


class PromptState(Enum):
    PROMPT = "prompt"
    VALIDATE = "validate"
    RESOLVE = "resolve"
    CONFIRM = "confirm"
    RETRY = "retry"
    ACCEPT = "accept"
    ABORT = "abort"


def _ask_str(prompt: str) -> str:
    return Prompt.ask(prompt, default="")


def _ask_bool(prompt: str) -> bool:
    return bool(Confirm.ask(prompt, default=False))


def _ask_retry(prompt: str) -> bool:
    ans = Prompt.ask(prompt, choices=["r", "a"], default="r")
    return ans == "r"


class PrincipalPrompt:
    """
    Interactive acquisition of the principal to grant Owner to.

    Explicit state machine:
      PROMPT -> VALIDATE -> RESOLVE -> CONFIRM -> ACCEPT
    with empty input (VALIDATE) and unresolved or declined principals (CONFIRM)
    going to RETRY, which leads back to PROMPT or to ABORT. All I/O is
    injected so a scripted sequence of answers can drive it.
    """

    def __init__(
        self,
        resolver: Callable[[str], Optional[Principal]],
        *,
        ask: Callable[[str], str] = _ask_str,
        confirm: Callable[[str], bool] = _ask_bool,
        retry: Callable[[str], bool] = _ask_retry,
        console: Optional[Console] = None,
    ) -> None:
        self._resolver = resolver
        self._ask = ask
        self._confirm = confirm
        self._retry = retry
        self._console = console or Console()
        self.transitions: List[PromptState] = []

    def run(self) -> Optional[Principal]:
        state = PromptState.PROMPT
        identifier = ""
        principal: Optional[Principal] = None
        reason = ""
        while True:
            self.transitions.append(state)
            try:
                if state is PromptState.PROMPT:
                    identifier = self._ask("Principal to grant Owner (email/UPN, group name or object id)")
                    state = PromptState.VALIDATE
                elif state is PromptState.VALIDATE:
                    identifier = (identifier or "").strip()
                    if identifier:
                        state = PromptState.RESOLVE
                    else:
                        reason = "No identifier entered."
                        state = PromptState.RETRY
                elif state is PromptState.RESOLVE:
                    self._console.print(f"Looking up [cyan]{escape(identifier)}[/cyan] as a user, then as a group...")
                    principal = self._resolver(identifier)
                    state = PromptState.CONFIRM
                elif state is PromptState.CONFIRM:
                    if principal is None:
                        reason = f"'{identifier}' was not found as a user or a group."
                        state = PromptState.RETRY
                        continue
                    self._console.print(
                        f"Found {principal.principalType}: [bold]{escape(principal.label)}[/bold] "
                        f"(object id {escape(principal.id)})"
                    )
                    if self._confirm(f"Grant {ROLE_OWNER} to this {principal.principalType.lower()}?"):
                        state = PromptState.ACCEPT
                    else:
                        reason = "Principal not confirmed."
                        principal = None
                        state = PromptState.RETRY
                elif state is PromptState.RETRY:
                    self._console.print(f"[yellow]{escape(reason)}[/yellow]")
                    state = PromptState.PROMPT if self._retry("[r]etry or [a]bort?") else PromptState.ABORT
                elif state is PromptState.ACCEPT:
                    return principal
                else:
                    self._console.print("[yellow]Owner assignment cancelled.[/yellow]")
                    return None
            except (EOFError, KeyboardInterrupt):
                state = PromptState.ABORT
