from __future__ import annotations

import json
from http.client import HTTPException
from typing import Any, Iterator
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from . import __version__
from .cli_shared import (
    DEFAULT_API_BASE,
    DEFAULT_TIMEOUT_SECONDS,
    INIT_HINT,
    PROG_NAME,
    AuthError,
    GenericApiError,
    NetworkError,
    NotInChannelError,
    RateLimitedError,
    _eprint,
)
from .models import SlackUser, next_cursor

USER_AGENT = f"slackcli/{__version__}"

# Largest page size each method accepts.
MAX_LIMITS = {
    "conversations.list": 999,
    "conversations.history": 999,
    "users.list": 1000,
}

AUTH_ERROR_CODES = frozenset(
    {
        "invalid_auth",
        "not_authed",
        "token_revoked",
        "token_expired",
        "account_inactive",
    }
)

_USERS_MAX_PAGES = 50


def _http_request(
    *,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | None = None,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
) -> tuple[int, dict[str, str], bytes]:
    try:
        req = Request(url, data=body, method=str(method).upper())
        for k, v in headers.items():
            req.add_header(k, v)
        with urlopen(req, timeout=timeout_seconds) as resp:
            status = getattr(resp, "status", 200)
            hdrs = {k.lower(): v for k, v in dict(resp.headers).items()}
            data = resp.read()
            return int(status), hdrs, data
    except HTTPError as e:
        hdrs = {k.lower(): v for k, v in dict(e.headers or {}).items()}
        data = e.read() if hasattr(e, "read") else b""
        return int(getattr(e, "code", 0) or 0), hdrs, data
    except (OSError, ValueError, HTTPException) as e:
        raise NetworkError(f"http request failed: {url}: {e}") from e


def _retry_after(hdrs: dict[str, str]) -> int | None:
    raw = str(hdrs.get("retry-after") or "").strip()
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


def clamp_limit(method: str, limit: int) -> int:
    return min(int(limit), MAX_LIMITS.get(method, int(limit)))


def raise_for_slack_error(method: str, parsed: dict[str, Any], *, retry_after: int | None = None) -> None:
    if parsed.get("ok") is True:
        return
    code = str(parsed.get("error") or "unknown_error").strip()
    if code in AUTH_ERROR_CODES:
        raise AuthError(f"{method}: Slack rejected the token ({code}); {INIT_HINT}")
    if code == "not_in_channel":
        raise NotInChannelError(
            code,
            f"{method}: not a member of this channel (run '{PROG_NAME} join --channel <id>' first)",
        )
    if code == "ratelimited":
        raise RateLimitedError(code, _rate_limited_message(method, retry_after), retry_after=retry_after)
    message = f"{method}: Slack error: {code}"
    needed = str(parsed.get("needed") or "").strip()
    if needed:
        message += f" (needed scope: {needed})"
    raise GenericApiError(code, message)


def _rate_limited_message(method: str, retry_after: int | None) -> str:
    msg = f"{method}: rate limited by Slack"
    if retry_after is not None:
        msg += f"; retry after {retry_after}s"
    return msg


class SlackClient:
    """Bearer-authenticated Slack Web API caller. One POST per `call`."""

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._token = token
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def __repr__(self) -> str:
        return f"SlackClient(api_base={self.api_base!r})"

    def call(self, method: str, form: dict[str, Any] | None = None) -> dict[str, Any]:
        form_clean = {
            k: str(v)
            for k, v in (form or {}).items()
            if v is not None and str(v).strip() != ""
        }
        status, hdrs, data = _http_request(
            method="POST",
            url=f"{self.api_base}/{method}",
            headers={
                "authorization": f"Bearer {self._token}",
                "content-type": "application/x-www-form-urlencoded; charset=utf-8",
                "user-agent": USER_AGENT,
            },
            body=urlencode(form_clean).encode("utf-8"),
            timeout_seconds=self.timeout_seconds,
        )
        text = data.decode("utf-8", errors="replace")
        if status == 429:
            retry_after = _retry_after(hdrs)
            raise RateLimitedError("ratelimited", _rate_limited_message(method, retry_after), retry_after=retry_after)
        if status < 200 or status >= 300:
            raise GenericApiError(f"http_{status}", f"{method}: HTTP {status} from Slack: {text.strip()}")
        try:
            parsed = json.loads(text)
        except ValueError as e:
            raise GenericApiError("invalid_json", f"{method}: invalid JSON from Slack: {e}") from e
        if not isinstance(parsed, dict):
            raise GenericApiError("invalid_json", f"{method}: invalid JSON from Slack: expected object")
        raise_for_slack_error(method, parsed, retry_after=_retry_after(hdrs))
        return parsed

    def auth_test(self) -> dict[str, Any]:
        return self.call("auth.test")

    def conversations_list(self, *, types: str, limit: int) -> dict[str, Any]:
        return self.call(
            "conversations.list",
            {"types": types, "limit": clamp_limit("conversations.list", limit)},
        )

    def conversations_history(self, *, channel: str, limit: int) -> dict[str, Any]:
        return self.call(
            "conversations.history",
            {"channel": channel, "limit": clamp_limit("conversations.history", limit)},
        )

    def chat_post_message(self, *, channel: str, text: str, thread_ts: str | None = None) -> dict[str, Any]:
        return self.call(
            "chat.postMessage",
            {"channel": channel, "text": text, "thread_ts": thread_ts},
        )

    def conversations_join(self, *, channel: str) -> dict[str, Any]:
        return self.call("conversations.join", {"channel": channel})

    def conversations_open(self, *, users: list[str]) -> dict[str, Any]:
        return self.call("conversations.open", {"users": ",".join(users)})

    def users_list(self, *, limit: int, cursor: str | None = None) -> dict[str, Any]:
        return self.call(
            "users.list",
            {"limit": clamp_limit("users.list", limit), "cursor": cursor},
        )

    def iter_users(self, *, page_size: int = 200, quiet: bool = False) -> Iterator[SlackUser]:
        cursor: str | None = None
        for _ in range(_USERS_MAX_PAGES):
            resp = self.users_list(limit=page_size, cursor=cursor)
            yield from SlackUser.list_from_api(resp)
            cursor = next_cursor(resp)
            if not cursor:
                return
        if not quiet:
            _eprint(f"users.list: stopped after {_USERS_MAX_PAGES} pages; user results may be incomplete")
