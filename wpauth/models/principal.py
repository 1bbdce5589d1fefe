from __future__ import annotations

from dataclasses import dataclass

from wpauth.models.user import User


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated user for the remainder of a request.

    Built either from the auth server's own session cookie (interactive
    /authorize, no scopes) or from a bearer access token, in which case
    ``scopes`` holds what the token was granted at consent time and
    ``client_id`` names the application acting for the user.
    """

    user_id: int
    username: str
    email: str
    display_name: str
    roles: frozenset[str]
    capabilities: frozenset[str]
    scopes: tuple[str, ...] = ()
    client_id: str | None = None

    @staticmethod
    def from_user(
        user: User,
        *,
        scopes: tuple[str, ...] = (),
        client_id: str | None = None,
    ) -> Principal:
        return Principal(
            user_id=user.id,
            username=user.username,
            email=user.email,
            display_name=user.display_name,
            roles=frozenset(user.roles),
            capabilities=user.capabilities,
            scopes=tuple(scopes),
            client_id=client_id,
        )

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes
