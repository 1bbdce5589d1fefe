from __future__ import annotations

from dataclasses import dataclass

# WordPress' built-in role → capability table, trimmed to the capabilities
# the OAuth2 scope policy and demo resources actually check.  Each role
# includes everything granted to the roles below it.
_SUBSCRIBER = frozenset({"read"})
_CONTRIBUTOR = _SUBSCRIBER | {"edit_posts", "delete_posts"}
_AUTHOR = _CONTRIBUTOR | {
    "upload_files",
    "publish_posts",
    "edit_published_posts",
    "delete_published_posts",
}
_EDITOR = _AUTHOR | {
    "moderate_comments",
    "manage_categories",
    "edit_pages",
    "edit_others_posts",
    "delete_others_posts",
}
_ADMINISTRATOR = _EDITOR | {
    "list_users",
    "edit_users",
    "create_users",
    "delete_users",
    "edit_theme_options",
    "manage_options",
    "view_query_monitor",
}

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    "subscriber": _SUBSCRIBER,
    "contributor": _CONTRIBUTOR,
    "author": _AUTHOR,
    "editor": _EDITOR,
    "administrator": _ADMINISTRATOR,
}


@dataclass(frozen=True, slots=True)
class User:
    id: int
    username: str
    email: str
    display_name: str
    password_hash: str
    roles: tuple[str, ...] = ("subscriber",)

    @property
    def capabilities(self) -> frozenset[str]:
        caps: set[str] = set()
        for role in self.roles:
            caps |= ROLE_CAPABILITIES.get(role, frozenset())
        return frozenset(caps)

    def can(self, capability: str) -> bool:
        return capability in self.capabilities
