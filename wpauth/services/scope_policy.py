"""OAuth2 scope catalogue and the capability rules that gate each scope.

A scope is only ever granted if, at consent time, the signed-in user holds
the WordPress capability behind it.  ``read`` is open to every user.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from wpauth.models.principal import Principal

DEFAULT_SCOPE = "read"


@dataclass(frozen=True, slots=True)
class Scope:
    name: str
    description: str
    capability: str | None  # None: no capability required
    icon: str = "🔧"

    def permits(self, principal: Principal) -> bool:
        return self.capability is None or principal.can(self.capability)


AVAILABLE_SCOPES: dict[str, Scope] = {
    s.name: s
    for s in (
        Scope("read", "View your posts, pages, and profile information", None, "👁️"),
        Scope("write", "Create and edit posts and pages", "edit_posts", "✏️"),
        Scope("delete", "Delete posts and pages", "delete_posts", "🗑️"),
        Scope(
            "manage_users",
            "View and manage user accounts (admin only)",
            "list_users",
            "👥",
        ),
        Scope("upload_files", "Upload and manage media files", "upload_files", "📁"),
        Scope(
            "edit_theme",
            "Modify theme and appearance settings (admin only)",
            "edit_theme_options",
            "🎨",
        ),
        Scope(
            "moderate_comments",
            "Moderate and manage comments",
            "moderate_comments",
            "💬",
        ),
        Scope(
            "view_stats",
            "Access website statistics and analytics",
            "view_query_monitor",
            "📊",
        ),
    )
}


def parse_scopes(scope_string: str | None) -> list[str]:
    """Split a space-delimited scope parameter, dropping blanks and repeats."""
    if not scope_string:
        return []
    return list(dict.fromkeys(s for s in scope_string.split(" ") if s.strip()))


def is_available(scope: str) -> bool:
    return scope in AVAILABLE_SCOPES


def describe(scope: str) -> str | None:
    s = AVAILABLE_SCOPES.get(scope)
    return s.description if s else None


def label(scope: str) -> str:
    """Human label for the consent screen: ``manage_users`` → ``Manage users``."""
    return scope.replace("_", " ").capitalize()


def icon(scope: str) -> str:
    s = AVAILABLE_SCOPES.get(scope)
    return s.icon if s else "🔧"


def user_may_request(scope: str, principal: Principal) -> bool:
    s = AVAILABLE_SCOPES.get(scope)
    return s is not None and s.permits(principal)


def filter_requestable(
    requested_scopes: Iterable[str], principal: Principal | None
) -> list[str]:
    """Keep the requested scopes that exist and that *principal* may hold.

    With no principal (the user has not signed in yet) only availability is
    checked; the capability filter runs again once the user is known.  An
    empty result must be treated as invalid_scope by the caller.
    """
    approved: list[str] = []
    for scope in requested_scopes:
        if not is_available(scope):
            continue
        if principal is not None and not user_may_request(scope, principal):
            continue
        if scope not in approved:
            approved.append(scope)
    return approved
