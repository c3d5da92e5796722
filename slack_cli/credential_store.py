from __future__ import annotations

from typing import Any

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .cli_shared import REINIT_HINT, StoreError

SERVICE = "slackcli_user"
ACCOUNT = "token"


class CredentialStore:
    """Single Slack token kept in the OS keyring under a fixed service/account pair.

    `backend` is anything exposing keyring's get/set/delete_password functions;
    it defaults to the `keyring` module itself.
    """

    def __init__(self, *, service: str = SERVICE, account: str = ACCOUNT, backend: Any = None) -> None:
        self.service = service
        self.account = account
        self._backend = backend if backend is not None else keyring

    def _label(self) -> str:
        return f"{self.service}/{self.account}"

    def get(self) -> str | None:
        try:
            raw = self._backend.get_password(self.service, self.account)
        except KeyringError as e:
            raise StoreError(f"keyring read failed for {self._label()}: {e} ({REINIT_HINT})") from e
        if raw is None or not str(raw).strip():
            return None
        return str(raw)

    def set(self, token: str) -> None:
        try:
            self._backend.set_password(self.service, self.account, token)
        except KeyringError as e:
            raise StoreError(f"keyring write failed for {self._label()}: {e} ({REINIT_HINT})") from e

    def clear(self) -> None:
        try:
            self._backend.delete_password(self.service, self.account)
            return
        except PasswordDeleteError:
            # Raised for a missing entry too; only a surviving entry is a failure.
            if self.get() is None:
                return
            raise StoreError(f"keyring delete failed for {self._label()}: entry still present ({REINIT_HINT})")
        except KeyringError as e:
            raise StoreError(f"keyring delete failed for {self._label()}: {e} ({REINIT_HINT})") from e
