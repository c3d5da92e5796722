"""Typed views over Slack Web API responses.

Each struct keeps only the fields a command renders. Unknown keys are
ignored and missing keys fall back to None or an empty value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _str_or_none(raw: Any) -> str | None:
    if isinstance(raw, str) and raw.strip():
        return raw
    return None


def _obj(raw: Any) -> dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def _objs(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


def next_cursor(resp: dict[str, Any]) -> str:
    meta = _obj(resp.get("response_metadata"))
    return str(meta.get("next_cursor") or "").strip()


@dataclass(frozen=True)
class AuthIdentity:
    team: str | None = None
    team_id: str | None = None
    user: str | None = None
    user_id: str | None = None
    bot_id: str | None = None
    url: str | None = None

    @classmethod
    def from_api(cls, resp: dict[str, Any]) -> "AuthIdentity":
        return cls(
            team=_str_or_none(resp.get("team")),
            team_id=_str_or_none(resp.get("team_id")),
            user=_str_or_none(resp.get("user")),
            user_id=_str_or_none(resp.get("user_id")),
            bot_id=_str_or_none(resp.get("bot_id")),
            url=_str_or_none(resp.get("url")),
        )


@dataclass(frozen=True)
class Conversation:
    id: str
    name: str | None = None
    is_im: bool = False
    is_mpim: bool = False
    is_private: bool = False
    user: str | None = None

    @property
    def kind(self) -> str:
        if self.is_im:
            return "im"
        if self.is_mpim:
            return "mpim"
        if self.is_private:
            return "private_channel"
        return "public_channel"

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "Conversation":
        return cls(
            id=str(raw.get("id") or ""),
            name=_str_or_none(raw.get("name")) or _str_or_none(raw.get("name_normalized")),
            is_im=bool(raw.get("is_im")),
            is_mpim=bool(raw.get("is_mpim")),
            is_private=bool(raw.get("is_private")),
            user=_str_or_none(raw.get("user")),
        )

    @classmethod
    def list_from_api(cls, resp: dict[str, Any]) -> list["Conversation"]:
        return [cls.from_api(raw) for raw in _objs(resp.get("channels"))]


@dataclass(frozen=True)
class Message:
    ts: str
    author: str
    text: str = ""
    reply_count: int = 0

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "Message":
        author = (
            _str_or_none(raw.get("user"))
            or _str_or_none(raw.get("bot_id"))
            or _str_or_none(raw.get("username"))
            or "unknown"
        )
        try:
            replies = int(raw.get("reply_count") or 0)
        except (TypeError, ValueError):
            replies = 0
        return cls(
            ts=str(raw.get("ts") or ""),
            author=author,
            text=str(raw.get("text") or ""),
            reply_count=replies,
        )

    @classmethod
    def list_from_api(cls, resp: dict[str, Any]) -> list["Message"]:
        return [cls.from_api(raw) for raw in _objs(resp.get("messages"))]


@dataclass(frozen=True)
class PostedMessage:
    channel: str
    ts: str

    @classmethod
    def from_api(cls, resp: dict[str, Any]) -> "PostedMessage":
        return cls(channel=str(resp.get("channel") or ""), ts=str(resp.get("ts") or ""))


@dataclass(frozen=True)
class JoinResult:
    channel_id: str
    name: str | None = None
    already_in_channel: bool = False

    @classmethod
    def from_api(cls, resp: dict[str, Any]) -> "JoinResult":
        channel = _obj(resp.get("channel"))
        return cls(
            channel_id=str(channel.get("id") or ""),
            name=_str_or_none(channel.get("name")),
            already_in_channel=bool(resp.get("already_in_channel")),
        )


@dataclass(frozen=True)
class OpenedConversation:
    id: str
    already_open: bool = False

    @classmethod
    def from_api(cls, resp: dict[str, Any]) -> "OpenedConversation":
        channel = _obj(resp.get("channel"))
        return cls(id=str(channel.get("id") or ""), already_open=bool(resp.get("already_open")))


@dataclass(frozen=True)
class SlackUser:
    id: str
    display_name: str
    real_name: str | None = None
    email: str | None = None
    deleted: bool = False

    def matches(self, query: str) -> bool:
        q = query.lower()
        fields = (self.display_name, self.real_name or "", self.email or "", self.id)
        return any(q in f.lower() for f in fields)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "SlackUser":
        uid = str(raw.get("id") or "")
        profile = _obj(raw.get("profile"))
        display = _str_or_none(profile.get("display_name")) or _str_or_none(raw.get("name")) or uid
        return cls(
            id=uid,
            display_name=display,
            real_name=_str_or_none(profile.get("real_name")) or _str_or_none(raw.get("real_name")),
            email=_str_or_none(profile.get("email")),
            deleted=bool(raw.get("deleted")),
        )

    @classmethod
    def list_from_api(cls, resp: dict[str, Any]) -> list["SlackUser"]:
        return [cls.from_api(raw) for raw in _objs(resp.get("members")) if raw.get("id")]
