from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from wpauth.models.user import User


class UserRepo(Protocol):
    def get_by_id(self, user_id: int) -> User | None: ...
    def get_by_login(self, login: str) -> User | None: ...
    def add(self, user: User) -> None: ...
    def update_password_hash(self, user_id: int, password_hash: str) -> None: ...
    def list_users(self) -> list[User]: ...


class InMemoryUserRepo:
    """Stand-in for the WordPress user table.

    Logins are case-insensitive on both username and email, as in
    WordPress' own login form.
    """

    def __init__(self) -> None:
        self._by_id: dict[int, User] = {}
        self._by_login: dict[str, User] = {}

    def get_by_id(self, user_id: int) -> User | None:
        return self._by_id.get(user_id)

    def get_by_login(self, login: str) -> User | None:
        return self._by_login.get(login.strip().lower())

    def add(self, user: User) -> None:
        keys = (user.username.lower(), user.email.lower())
        if user.id in self._by_id or any(k in self._by_login for k in keys):
            raise ValueError("user already exists")
        self._index(user)

    def update_password_hash(self, user_id: int, password_hash: str) -> None:
        u = self._by_id.get(user_id)
        if u is None:
            raise KeyError("user not found")
        self._index(replace(u, password_hash=password_hash))

    def list_users(self) -> list[User]:
        return sorted(self._by_id.values(), key=lambda u: u.id)

    def next_id(self) -> int:
        return max(self._by_id, default=0) + 1

    def _index(self, user: User) -> None:
        self._by_id[user.id] = user
        self._by_login[user.username.lower()] = user
        self._by_login[user.email.lower()] = user
