from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs

import pytest
from keyring.errors import KeyringError, NoKeyringError, PasswordDeleteError, PasswordSetError

from slack_cli.credential_store import CredentialStore


class MemoryKeyring:
    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.entries.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.entries[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        if (service, username) not in self.entries:
            raise PasswordDeleteError("Password not found")
        del self.entries[(service, username)]


class BrokenKeyring:
    """Every call fails the way a locked or missing OS keyring does."""

    def get_password(self, service: str, username: str) -> str | None:
        raise NoKeyringError("No recommended backend was available")

    def set_password(self, service: str, username: str, password: str) -> None:
        raise PasswordSetError("access denied")

    def delete_password(self, service: str, username: str) -> None:
        raise KeyringError("locked")


class FakeSlack:
    """Stands in for `slack_cli.slack_api._http_request` and records every call."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self._routes: dict[str, list[tuple[int, dict[str, str], Any]]] = {}

    def on(self, api_method: str, payload: Any, *, status: int = 200, headers: dict[str, str] | None = None) -> None:
        self._routes.setdefault(api_method, []).append((status, headers or {}, payload))

    def methods(self) -> list[str]:
        return [c["method"] for c in self.calls]

    def forms(self, api_method: str) -> list[dict[str, str]]:
        return [c["form"] for c in self.calls if c["method"] == api_method]

    def __call__(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None = None,
        timeout_seconds: int = 30,
    ) -> tuple[int, dict[str, str], bytes]:
        api_method = url.rsplit("/", 1)[-1]
        form = {k: v[0] for k, v in parse_qs((body or b"").decode("utf-8")).items()}
        self.calls.append(
            {
                "http_method": method,
                "method": api_method,
                "url": url,
                "headers": headers,
                "form": form,
                "timeout_seconds": timeout_seconds,
            }
        )
        queue = self._routes.get(api_method)
        if not queue:
            raise AssertionError(f"unexpected Slack call: {api_method}")
        status, hdrs, payload = queue.pop(0) if len(queue) > 1 else queue[0]
        data = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        return status, hdrs, data


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("SLACK_TOKEN", "SLACK_API_BASE", "SLACK_HTTP_TIMEOUT", "SLACK_CLI_QUIET"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_keyring() -> MemoryKeyring:
    return MemoryKeyring()


@pytest.fixture
def store(memory_keyring: MemoryKeyring) -> CredentialStore:
    return CredentialStore(backend=memory_keyring)


@pytest.fixture
def fake_slack(monkeypatch) -> FakeSlack:
    fake = FakeSlack()
    monkeypatch.setattr("slack_cli.slack_api._http_request", fake)
    return fake


@pytest.fixture
def broken_store() -> CredentialStore:
    return CredentialStore(backend=BrokenKeyring())
