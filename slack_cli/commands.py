from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Any

from .auth_inputs import InvalidTokenShapeError, SecretReader, preflight_token
from .cli_shared import (
    INIT_HINT,
    SLACK_TOKEN,
    AuthError,
    GenericApiError,
    GlobalOpts,
    UsageError,
    _cell,
    _eprint,
    _parse_csv,
    _print_json,
    _print_table,
    _require_str,
)
from .credential_store import CredentialStore
from .models import (
    AuthIdentity,
    Conversation,
    JoinResult,
    Message,
    OpenedConversation,
    PostedMessage,
)
from .slack_api import SlackClient, clamp_limit

CONVERSATION_TYPES = ("public_channel", "private_channel", "mpim", "im")
MAX_PROMPT_ATTEMPTS = 3
# conversations.list page used to map users to their DM channel ids.
_DM_LOOKUP_LIMIT = 999


@dataclass(frozen=True)
class Deps:
    store: CredentialStore
    reader: SecretReader


def _require_limit(raw: Any, *, method: str | None = None) -> int:
    try:
        limit = int(raw)
    except (TypeError, ValueError) as e:
        raise UsageError(f"invalid --limit: {raw!r} is not an integer") from e
    if limit <= 0:
        raise UsageError(f"invalid --limit: {limit} (must be a positive integer)")
    if method:
        return clamp_limit(method, limit)
    return limit


def _parse_types(raw: str | None) -> list[str]:
    types = _parse_csv(raw)
    if not types:
        raise UsageError("missing --types (comma-separated list of conversation types)")
    unknown = [t for t in types if t not in CONVERSATION_TYPES]
    if unknown:
        raise UsageError(
            f"unknown conversation type(s): {', '.join(unknown)} (expected: {', '.join(CONVERSATION_TYPES)})"
        )
    return types


def _client(g: GlobalOpts, token: str) -> SlackClient:
    return SlackClient(token, api_base=g.api_base, timeout_seconds=g.timeout_seconds)


def _ready_client(g: GlobalOpts, deps: Deps) -> SlackClient:
    env_token = (os.environ.get(SLACK_TOKEN) or "").strip()
    if env_token:
        if not g.quiet:
            _eprint(f"using token from {SLACK_TOKEN}")
        return _client(g, env_token)
    token = deps.store.get()
    if token is None:
        raise AuthError(f"no Slack token stored ({INIT_HINT} first)")
    return _client(g, token)


def _describe_identity(identity: AuthIdentity) -> str:
    team = identity.team or identity.team_id or "(unknown team)"
    user = identity.user or identity.user_id or "(unknown user)"
    return f"team {team} as {user}"


def _validate_token(g: GlobalOpts, token: str) -> AuthIdentity:
    return AuthIdentity.from_api(_client(g, token).auth_test())


def cmd_init(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    acquire = bool(args.force) or args.token is not None
    if args.reset:
        deps.store.clear()
        sys.stdout.write("cleared stored token\n")
        if not acquire:
            return 0

    if args.token is not None:
        token = preflight_token(args.token)
        identity = _validate_token(g, token)
        deps.store.set(token)
        sys.stdout.write(f"saved valid token for {_describe_identity(identity)}\n")
        return 0

    if not args.force:
        existing = deps.store.get()
        if existing is not None:
            try:
                identity = _validate_token(g, existing)
            except AuthError as e:
                _eprint(f"stored token no longer works: {e}")
            else:
                sys.stdout.write(f"token is present and valid for {_describe_identity(identity)}\n")
                return 0

    last_err = ""
    for attempt in range(1, MAX_PROMPT_ATTEMPTS + 1):
        raw = deps.reader.read_secret()
        try:
            token = preflight_token(raw)
            identity = _validate_token(g, token)
        except (InvalidTokenShapeError, AuthError) as e:
            last_err = str(e)
            _eprint(f"token rejected (attempt {attempt}/{MAX_PROMPT_ATTEMPTS}): {e}")
            continue
        deps.store.set(token)
        sys.stdout.write(f"saved valid token for {_describe_identity(identity)}\n")
        return 0
    raise AuthError(f"could not obtain a working token after {MAX_PROMPT_ATTEMPTS} attempts: {last_err}")


def cmd_whoami(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    del args
    client = _ready_client(g, deps)
    resp = client.auth_test()
    if g.json_output:
        _print_json(resp, pretty=g.pretty)
        return 0
    identity = AuthIdentity.from_api(resp)
    for label, value in (
        ("team", identity.team),
        ("team_id", identity.team_id),
        ("user", identity.user),
        ("user_id", identity.user_id),
        ("bot_id", identity.bot_id),
        ("url", identity.url),
    ):
        sys.stdout.write(f"{label}: {_cell(value)}\n")
    return 0


def cmd_channels(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    types = _parse_types(args.types)
    limit = _require_limit(args.limit, method="conversations.list")
    client = _ready_client(g, deps)
    resp = client.conversations_list(types=",".join(types), limit=limit)
    if g.json_output:
        _print_json(resp, pretty=g.pretty)
        return 0
    rows = [
        [_cell(ch.id), _cell(ch.name or "(dm or unnamed)"), ch.kind]
        for ch in Conversation.list_from_api(resp)
    ]
    _print_table(headers=["ID", "NAME", "TYPE"], rows=rows, empty_message="No conversations.")
    return 0


def cmd_msgs(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    channel = _require_str(args.channel, "--channel", hint="channel or DM id, e.g. C12345678")
    limit = _require_limit(args.limit, method="conversations.history")
    client = _ready_client(g, deps)
    resp = client.conversations_history(channel=channel, limit=limit)
    if g.json_output:
        _print_json(resp, pretty=g.pretty)
        return 0
    rows: list[list[str]] = []
    for msg in Message.list_from_api(resp):
        text = msg.text
        if msg.reply_count:
            text = f"{text} [{msg.reply_count} replies]"
        rows.append([_cell(msg.ts), _cell(msg.author), _cell(text)])
    _print_table(headers=["TS", "AUTHOR", "TEXT"], rows=rows, empty_message="No messages.")
    return 0


def _post(client: SlackClient, g: GlobalOpts, *, channel: str, text: str, thread_ts: str | None) -> dict[str, Any]:
    resp = client.chat_post_message(channel=channel, text=text, thread_ts=thread_ts)
    if not g.json_output:
        posted = PostedMessage.from_api(resp)
        sys.stdout.write(f"sent ok, channel={_cell(posted.channel or channel)} ts={_cell(posted.ts)}\n")
    return resp


def cmd_send(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    channel = _require_str(args.channel, "--channel", hint="channel or DM id, e.g. C12345678")
    text = args.text or ""
    if not text.strip():
        raise UsageError("--text must not be empty")
    thread_ts = (args.thread_ts or "").strip() or None
    client = _ready_client(g, deps)
    resp = _post(client, g, channel=channel, text=text, thread_ts=thread_ts)
    if g.json_output:
        _print_json(resp, pretty=g.pretty)
    return 0


def cmd_join(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    channel = _require_str(args.channel, "--channel", hint="public channel id, e.g. C12345678")
    client = _ready_client(g, deps)
    resp = client.conversations_join(channel=channel)
    if g.json_output:
        _print_json(resp, pretty=g.pretty)
        return 0
    joined = JoinResult.from_api(resp)
    name = f"#{joined.name}" if joined.name else (joined.channel_id or channel)
    if joined.already_in_channel:
        sys.stdout.write(f"already a member of {name}\n")
    else:
        sys.stdout.write(f"joined {name}\n")
    return 0


def cmd_directmsgs(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    limit = _require_limit(args.limit, method="conversations.list")
    client = _ready_client(g, deps)
    resp = client.conversations_list(types="im", limit=limit)
    if g.json_output:
        _print_json(resp, pretty=g.pretty)
        return 0
    ims = Conversation.list_from_api(resp)
    users = {u.id: u for u in client.iter_users(quiet=g.quiet)} if ims else {}
    rows: list[list[str]] = []
    for im in ims:
        user = users.get(im.user or "")
        rows.append(
            [
                _cell(im.id),
                _cell(im.user),
                f"@{user.display_name}" if user else "?",
                _cell(user.real_name if user else None),
                _cell(user.email if user else None),
            ]
        )
    _print_table(
        headers=["ID", "USER", "NAME", "REAL NAME", "EMAIL"],
        rows=rows,
        empty_message="No direct messages.",
    )
    return 0


def cmd_directmpmsgs(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    limit = _require_limit(args.limit, method="conversations.list")
    client = _ready_client(g, deps)
    resp = client.conversations_list(types="mpim", limit=limit)
    if g.json_output:
        _print_json(resp, pretty=g.pretty)
        return 0
    rows = [[_cell(ch.id), _cell(ch.name or "(mpdm)")] for ch in Conversation.list_from_api(resp)]
    _print_table(headers=["ID", "NAME"], rows=rows, empty_message="No multi-person direct messages.")
    return 0


def cmd_findperson(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    query = _require_str(args.query, "--query", hint="name, email or user id substring")
    limit = _require_limit(args.limit)
    client = _ready_client(g, deps)
    matches = [u for u in client.iter_users(quiet=g.quiet) if not u.deleted and u.matches(query)][:limit]
    dm_by_user: dict[str, str] = {}
    if matches:
        ims = client.conversations_list(types="im", limit=_DM_LOOKUP_LIMIT)
        for im in Conversation.list_from_api(ims):
            if im.user and im.id:
                dm_by_user[im.user] = im.id
    if g.json_output:
        payload = [
            {
                "id": u.id,
                "dm": dm_by_user.get(u.id),
                "display_name": u.display_name,
                "real_name": u.real_name,
                "email": u.email,
            }
            for u in matches
        ]
        _print_json(payload, pretty=g.pretty)
        return 0
    rows = [
        [u.id, dm_by_user.get(u.id, "-"), f"@{u.display_name}", _cell(u.real_name), _cell(u.email)]
        for u in matches
    ]
    _print_table(
        headers=["USER", "DM", "NAME", "REAL NAME", "EMAIL"],
        rows=rows,
        empty_message=f"No users matching {query!r}.",
    )
    return 0


def cmd_open(args: argparse.Namespace, g: GlobalOpts, deps: Deps) -> int:
    users = _parse_csv(args.users)
    if not users:
        raise UsageError("missing --users (comma-separated user ids, e.g. U123,U456)")
    text = args.text
    if text is not None and not text.strip():
        raise UsageError("--text must not be empty when given")
    client = _ready_client(g, deps)
    open_resp = client.conversations_open(users=users)
    opened = OpenedConversation.from_api(open_resp)
    if not opened.id:
        raise GenericApiError("invalid_response", "conversations.open: response did not include a channel id")
    if not g.json_output:
        note = " (already open)" if opened.already_open else ""
        sys.stdout.write(f"opened channel: {opened.id}{note}\n")
    post_resp: dict[str, Any] | None = None
    if text is not None:
        post_resp = _post(client, g, channel=opened.id, text=text, thread_ts=None)
    if g.json_output:
        _print_json({"open": open_resp, "message": post_resp}, pretty=g.pretty)
    return 0
