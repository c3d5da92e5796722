from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import typer

from .cli_shared import UsageError

TOKEN_PREFIX = "xox"
TOKEN_PROMPT = "Slack user token (xoxp-...)"


class InvalidTokenShapeError(UsageError):
    """Raised when a supplied token is not shaped like a Slack token."""


class SecretReader(Protocol):
    def read_secret(self) -> str: ...


class PromptSecretReader:
    """Masked terminal prompt."""

    def __init__(self, prompt: str = TOKEN_PROMPT) -> None:
        self.prompt = prompt

    def read_secret(self) -> str:
        return str(typer.prompt(self.prompt, hide_input=True))


@dataclass(frozen=True)
class StaticSecretReader:
    value: str

    def read_secret(self) -> str:
        return self.value


def preflight_token(raw: str | None) -> str:
    token = (raw or "").strip()
    if not token:
        raise InvalidTokenShapeError("missing token (paste a Slack token or pass --token)")
    if any(ch.isspace() for ch in token):
        raise InvalidTokenShapeError("token must not contain whitespace")
    if not token.startswith(TOKEN_PREFIX):
        raise InvalidTokenShapeError(f"token is not a Slack token (expected prefix {TOKEN_PREFIX!r})")
    return token
