from __future__ import annotations

from wpauth.models.principal import Principal
from wpauth.models.user import User
from wpauth.services import scope_policy


def _principal(*roles: str) -> Principal:
    return Principal.from_user(
        User(
            id=1,
            username="u",
            email="u@example.com",
            display_name="U",
            password_hash="x",
            roles=roles,
        )
    )


def test_parse_scopes() -> None:
    assert scope_policy.parse_scopes("read  write read ") == ["read", "write"]
    assert scope_policy.parse_scopes("") == []
    assert scope_policy.parse_scopes(None) == []


def test_catalogue() -> None:
    assert set(scope_policy.AVAILABLE_SCOPES) == {
        "read",
        "write",
        "delete",
        "manage_users",
        "upload_files",
        "edit_theme",
        "moderate_comments",
        "view_stats",
    }
    assert scope_policy.is_available("read")
    assert not scope_policy.is_available("openid")
    assert scope_policy.describe("write") == "Create and edit posts and pages"
    assert scope_policy.describe("nope") is None
    assert scope_policy.label("manage_users") == "Manage users"


def test_read_is_open_to_everyone() -> None:
    assert scope_policy.user_may_request("read", _principal("subscriber"))


def test_capability_gating() -> None:
    subscriber = _principal("subscriber")
    editor = _principal("editor")
    admin = _principal("administrator")

    assert not scope_policy.user_may_request("write", subscriber)
    assert scope_policy.user_may_request("write", editor)
    assert scope_policy.user_may_request("moderate_comments", editor)
    assert not scope_policy.user_may_request("manage_users", editor)
    assert scope_policy.user_may_request("manage_users", admin)
    assert scope_policy.user_may_request("edit_theme", admin)
    assert scope_policy.user_may_request("view_stats", admin)
    assert not scope_policy.user_may_request("unknown", admin)


def test_filter_requestable_keeps_order_and_drops_unknown() -> None:
    editor = _principal("editor")
    assert scope_policy.filter_requestable(
        ["write", "openid", "read", "manage_users", "write"], editor
    ) == ["write", "read"]


def test_filter_requestable_without_principal_checks_availability_only() -> None:
    assert scope_policy.filter_requestable(["manage_users", "openid"], None) == [
        "manage_users"
    ]
    assert scope_policy.filter_requestable(["openid"], None) == []
