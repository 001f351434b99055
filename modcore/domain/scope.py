from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from modcore.core.errors import InvalidArgumentError


class ScopeKind(str, Enum):
    global_ = "global"
    community = "community"
    hub = "hub"
    space = "space"


class RoleType(str, Enum):
    moderator = "moderator"
    administrator = "administrator"

    def implies(self, required: "RoleType") -> bool:
        # Administrators carry moderation capability; moderators only their own.
        if self is RoleType.administrator:
            return True
        return required is RoleType.moderator

    @classmethod
    def parse(cls, value: "RoleType | str") -> "RoleType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidArgumentError(f"Unknown role type: {value}") from exc


class BanType(str, Enum):
    # write_only users can still read; read_write bans block reading too.
    write_only = "write_only"
    read_write = "read_write"

    @classmethod
    def parse(cls, value: "BanType | str") -> "BanType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidArgumentError(f"Unknown ban type: {value}") from exc


class ReportStatus(str, Enum):
    pending = "pending"
    resolved = "resolved"
    dismissed = "dismissed"

    @property
    def is_terminal(self) -> bool:
        return self is not ReportStatus.pending

    @classmethod
    def parse(cls, value: "ReportStatus | str") -> "ReportStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise InvalidArgumentError(f"Unknown report status: {value}") from exc


class ModerationAction(str, Enum):
    assign_role = "assign_role"
    revoke_role = "revoke_role"
    ban_user = "ban_user"
    unban_user = "unban_user"
    ban_expired = "ban_expired"
    create_report = "create_report"
    comment_report = "comment_report"
    resolve_report = "resolve_report"
    dismiss_report = "dismiss_report"
    delete_post = "delete_post"
    delete_discussion = "delete_discussion"
    lock_discussion = "lock_discussion"
    unlock_discussion = "unlock_discussion"
    create_report_reason = "create_report_reason"
    delete_report_reason = "delete_report_reason"
    takedown_failed = "takedown_failed"


@dataclass(frozen=True)
class Scope:
    """One level of the Global -> Community -> Hub -> Space hierarchy.

    ``id`` is ``None`` only for the Global scope.
    """

    kind: ScopeKind
    id: str | None = None

    def __post_init__(self) -> None:
        if self.kind is ScopeKind.global_:
            if self.id is not None:
                raise InvalidArgumentError("Global scope does not take an id")
        elif not self.id:
            raise InvalidArgumentError(f"{self.kind.value} scope requires an id")
        elif "/" in self.id:
            # "/" separates segments of the persisted scope path.
            raise InvalidArgumentError(f"{self.kind.value} id must not contain '/'")

    @classmethod
    def global_scope(cls) -> "Scope":
        return cls(ScopeKind.global_)

    @classmethod
    def community(cls, community_id: str) -> "Scope":
        return cls(ScopeKind.community, community_id)

    @classmethod
    def hub(cls, hub_id: str) -> "Scope":
        return cls(ScopeKind.hub, hub_id)

    @classmethod
    def space(cls, space_id: str) -> "Scope":
        return cls(ScopeKind.space, space_id)

    @classmethod
    def from_ids(
        cls,
        *,
        community_id: str | None = None,
        hub_id: str | None = None,
        space_id: str | None = None,
    ) -> "Scope":
        # Scoped records carry at most one id; none set means Global.
        provided = [
            (kind, value)
            for kind, value in (
                (ScopeKind.community, community_id),
                (ScopeKind.hub, hub_id),
                (ScopeKind.space, space_id),
            )
            if value
        ]
        if len(provided) > 1:
            raise InvalidArgumentError("At most one of community_id, hub_id, space_id may be set")
        if not provided:
            return cls.global_scope()
        kind, value = provided[0]
        return cls(kind, value)

    @property
    def is_global(self) -> bool:
        return self.kind is ScopeKind.global_

    @property
    def key(self) -> str:
        if self.is_global:
            return "global"
        return f"{self.kind.value}:{self.id}"

    @property
    def community_id(self) -> str | None:
        return self.id if self.kind is ScopeKind.community else None

    @property
    def hub_id(self) -> str | None:
        return self.id if self.kind is ScopeKind.hub else None

    @property
    def space_id(self) -> str | None:
        return self.id if self.kind is ScopeKind.space else None

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class ScopeChain:
    """Ancestor chain ordered narrow-to-broad; the last element is always Global."""

    scopes: tuple[Scope, ...]

    def __post_init__(self) -> None:
        if not self.scopes or not self.scopes[-1].is_global:
            raise ValueError("ScopeChain must end with the Global scope")

    @classmethod
    def from_path(cls, path: str) -> "ScopeChain":
        # Inverse of ``path``: rebuild the chain a report or log row was stored under.
        scopes = [Scope.global_scope()]
        for segment in path.strip("/").split("/"):
            if not segment:
                continue
            kind, _, value = segment.partition(":")
            try:
                scopes.append(Scope(ScopeKind(kind), value))
            except ValueError as exc:
                raise InvalidArgumentError(f"Malformed scope path segment: {segment}") from exc
        return cls(tuple(reversed(scopes)))

    @property
    def scope(self) -> Scope:
        return self.scopes[0]

    @property
    def path(self) -> str:
        # Broad-to-narrow path used for descendant prefix matching, e.g. /community:c1/hub:h1/.
        segments = [item.key for item in reversed(self.scopes) if not item.is_global]
        if not segments:
            return "/"
        return "/" + "/".join(segments) + "/"

    @property
    def keys(self) -> list[str]:
        return [item.key for item in self.scopes]

    def contains(self, scope: Scope) -> bool:
        return scope in self.scopes

    def __iter__(self):
        return iter(self.scopes)

    def __len__(self) -> int:
        return len(self.scopes)


def scope_from_row(row: object) -> Scope:
    # Rebuild a Scope from any row exposing community_id/hub_id/space_id columns.
    return Scope.from_ids(
        community_id=getattr(row, "community_id", None),
        hub_id=getattr(row, "hub_id", None),
        space_id=getattr(row, "space_id", None),
    )
