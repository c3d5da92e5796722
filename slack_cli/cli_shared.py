from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse


class SlackCliError(Exception):
    pass


class UsageError(SlackCliError):
    pass


class OpError(SlackCliError):
    pass


class StoreError(OpError):
    """Raised when the OS credential store is unavailable or refuses access."""


class AuthError(OpError):
    """Raised when the token is missing, invalid or revoked."""


class NetworkError(OpError):
    """Raised when the HTTP transport fails before a response arrives."""


class ApiError(OpError):
    def __init__(self, code: str, message: str = "") -> None:
        self.code = code
        self.message = message
        super().__init__(message or code)


class NotInChannelError(ApiError):
    pass


class RateLimitedError(ApiError):
    def __init__(self, code: str, message: str = "", *, retry_after: int | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(code, message)


class GenericApiError(ApiError):
    pass


SLACK_TOKEN = "SLACK_TOKEN"
SLACK_API_BASE = "SLACK_API_BASE"
SLACK_HTTP_TIMEOUT = "SLACK_HTTP_TIMEOUT"
SLACK_CLI_QUIET = "SLACK_CLI_QUIET"

DEFAULT_API_BASE = "https://slack.com/api"
DEFAULT_TIMEOUT_SECONDS = 30
PROG_NAME = "slack"
INIT_HINT = f"run '{PROG_NAME} init'"
REINIT_HINT = f"check the OS keyring, then re-run '{PROG_NAME} init'"


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


@dataclass(frozen=True)
class GlobalOpts:
    api_base: str = DEFAULT_API_BASE
    json_output: bool = False
    pretty: bool = True
    quiet: bool = False
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _truthy(raw: str | None) -> bool:
    return str(raw or "").strip().lower() in {"1", "true", "yes", "on"}


def _require_str(val: str | None, name: str, *, hint: str) -> str:
    v = (val or "").strip()
    if not v:
        raise UsageError(f"missing {name} ({hint})")
    return v


def _parse_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    out: list[str] = []
    for part in raw.split(","):
        v = part.strip()
        if v:
            out.append(v)
    seen: set[str] = set()
    uniq: list[str] = []
    for item in out:
        if item in seen:
            continue
        seen.add(item)
        uniq.append(item)
    return uniq


def _api_base_url(raw: str) -> str:
    base = raw.strip().rstrip("/")
    parsed = urlparse(base)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise UsageError(f"invalid --api-base / {SLACK_API_BASE}: {raw!r} (expected an http(s) URL, e.g. {DEFAULT_API_BASE})")
    return base


def _timeout_from_env() -> int:
    raw = _env_or_none(SLACK_HTTP_TIMEOUT)
    if raw is None:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        val = int(raw)
    except ValueError as e:
        raise UsageError(f"invalid {SLACK_HTTP_TIMEOUT}: {raw!r} is not an integer") from e
    if val <= 0:
        raise UsageError(f"invalid {SLACK_HTTP_TIMEOUT}: must be positive")
    return val


def _print_json(obj: Any, *, pretty: bool) -> None:
    if pretty:
        sys.stdout.write(json.dumps(obj, indent=2, sort_keys=True) + "\n")
    else:
        sys.stdout.write(json.dumps(obj, separators=(",", ":"), sort_keys=True) + "\n")


def _cell(value: Any) -> str:
    text = " ".join(str(value or "").split())
    if not text:
        return "-"
    return text


def _print_table(*, headers: list[str], rows: list[list[str]], empty_message: str) -> None:
    if not rows:
        sys.stdout.write(f"{empty_message}\n")
        return
    widths: list[int] = [len(h) for h in headers]
    for row in rows:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], len(val))
    last = len(headers) - 1
    header_line = "  ".join(h.ljust(widths[i]) if i < last else h for i, h in enumerate(headers))
    divider_line = "  ".join("-" * widths[i] for i in range(len(headers)))
    sys.stdout.write(header_line + "\n")
    sys.stdout.write(divider_line + "\n")
    for row in rows:
        sys.stdout.write(
            "  ".join(row[i].ljust(widths[i]) if i < last else row[i] for i in range(len(headers))) + "\n"
        )
