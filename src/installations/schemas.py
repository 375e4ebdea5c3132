"""Data models for bot installations and the chat scopes they cover.

An installation lives at a *location*: a community, a group chat or a direct
chat. Notifications are delivered to a *scope*: a group chat, a direct chat
or a channel inside a community. Every scope has exactly one root location,
and a scope is covered by an installation iff it is contained by the
installation's location.

Both scopes and locations serialize to an opaque, URL-safe storage key
(base64url of compact JSON) so they can be used as primary key columns.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Literal

LocationKind = Literal["community", "group", "direct"]
ScopeKind = Literal["group", "direct", "channel"]

VALID_LOCATION_KINDS: frozenset[str] = frozenset({"community", "group", "direct"})
VALID_SCOPE_KINDS: frozenset[str] = frozenset({"group", "direct", "channel"})

TEXT_PERMISSION = "Text"


class ScopeParseError(ValueError):
    """Raised when a scope or location string cannot be parsed."""


def _encode_key(payload: dict[str, Any]) -> str:
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def _decode_key(key: str) -> dict[str, Any]:
    padded = key + "=" * (-len(key) % 4)
    try:
        return json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, UnicodeError) as e:
        raise ScopeParseError(f"Malformed key {key!r}: {e}") from e


@dataclass(frozen=True)
class InstallationLocation:
    """Root of an installation: a community, a group or a direct chat."""

    kind: str
    id: str

    def __post_init__(self) -> None:
        if self.kind not in VALID_LOCATION_KINDS:
            raise ScopeParseError(
                f"Invalid location kind {self.kind!r}. "
                f"Must be one of: {sorted(VALID_LOCATION_KINDS)}"
            )
        if not self.id:
            raise ScopeParseError("Location id must not be empty")

    @property
    def key(self) -> str:
        """Storage key for this location."""
        return _encode_key({"kind": self.kind, "id": self.id})

    @classmethod
    def from_key(cls, key: str) -> "InstallationLocation":
        data = _decode_key(key)
        try:
            return cls(kind=data["kind"], id=data["id"])
        except (KeyError, TypeError) as e:
            raise ScopeParseError(f"Malformed location key {key!r}") from e

    @classmethod
    def parse(cls, value: str) -> "InstallationLocation":
        """Parse ``community:<id>``, ``group:<id>`` or ``direct:<id>``."""
        kind, sep, ident = value.partition(":")
        if not sep:
            raise ScopeParseError(
                f"Location {value!r} must look like '<kind>:<id>'"
            )
        return cls(kind=kind.strip(), id=ident.strip())

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


@dataclass(frozen=True)
class ChatScope:
    """A chat context where notifications are delivered.

    ``chat_id`` is the group, direct chat or channel identifier.
    ``community_id`` is required for channels and must be unset otherwise.
    """

    kind: str
    chat_id: str
    community_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in VALID_SCOPE_KINDS:
            raise ScopeParseError(
                f"Invalid scope kind {self.kind!r}. "
                f"Must be one of: {sorted(VALID_SCOPE_KINDS)}"
            )
        if not self.chat_id:
            raise ScopeParseError("Scope chat id must not be empty")
        if self.kind == "channel" and not self.community_id:
            raise ScopeParseError("Channel scopes require a community id")
        if self.kind != "channel" and self.community_id is not None:
            raise ScopeParseError(f"{self.kind} scopes cannot have a community id")

    @property
    def location(self) -> InstallationLocation:
        """The installation root this scope belongs to."""
        if self.kind == "channel":
            return InstallationLocation(kind="community", id=self.community_id)
        return InstallationLocation(kind=self.kind, id=self.chat_id)

    def is_contained_by(self, location: InstallationLocation) -> bool:
        return self.location == location

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "chat_id": self.chat_id}
        if self.community_id is not None:
            data["community_id"] = self.community_id
        return data

    @property
    def key(self) -> str:
        """Storage key for this scope."""
        return _encode_key(self.to_dict())

    @classmethod
    def from_key(cls, key: str) -> "ChatScope":
        data = _decode_key(key)
        try:
            return cls(
                kind=data["kind"],
                chat_id=data["chat_id"],
                community_id=data.get("community_id"),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ScopeParseError(f"Malformed scope key {key!r}") from e

    @classmethod
    def parse(cls, value: str) -> "ChatScope":
        """Parse ``group:<id>``, ``direct:<id>`` or ``channel:<community>/<channel>``."""
        kind, sep, rest = value.partition(":")
        kind = kind.strip()
        rest = rest.strip()
        if not sep:
            raise ScopeParseError(f"Scope {value!r} must look like '<kind>:<id>'")
        if kind == "channel":
            community_id, slash, channel_id = rest.partition("/")
            if not slash:
                raise ScopeParseError(
                    f"Channel scope {value!r} must look like "
                    "'channel:<community_id>/<channel_id>'"
                )
            return cls(kind=kind, chat_id=channel_id, community_id=community_id)
        return cls(kind=kind, chat_id=rest)

    def __str__(self) -> str:
        if self.kind == "channel":
            return f"channel:{self.community_id}/{self.chat_id}"
        return f"{self.kind}:{self.chat_id}"


@dataclass(frozen=True)
class Permissions:
    """Permission names granted to the bot, grouped by category."""

    chat: frozenset[str] = frozenset()
    community: frozenset[str] = frozenset()
    message: frozenset[str] = frozenset()

    def has_message_permission(self, permission: str) -> bool:
        return permission in self.message

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "chat": sorted(self.chat),
            "community": sorted(self.community),
            "message": sorted(self.message),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Permissions":
        data = data or {}
        return cls(
            chat=frozenset(data.get("chat", [])),
            community=frozenset(data.get("community", [])),
            message=frozenset(data.get("message", [])),
        )


@dataclass(frozen=True)
class Installation:
    """An installation record at a location.

    Attributes:
        location: Installation root.
        api_gateway: Base URL of the outbound gateway for this installation.
        autonomous_permissions: Permissions the bot may use unprompted.
        command_permissions: Permissions the bot may use inside commands.
    """

    location: InstallationLocation
    api_gateway: str
    autonomous_permissions: Permissions = field(default_factory=Permissions)
    command_permissions: Permissions = field(default_factory=Permissions)

    def can_send(self, permission: str = TEXT_PERMISSION) -> bool:
        """Whether autonomous messages of the given type may be sent."""
        return self.autonomous_permissions.has_message_permission(permission)
