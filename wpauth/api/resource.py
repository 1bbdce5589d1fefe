from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from wpauth.api.dependencies import require_scope
from wpauth.api.login import user_repo
from wpauth.models.principal import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/resource", tags=["resource"])


class ProfileOut(BaseModel):
    id: int
    username: str
    name: str
    client_id: str | None
    message: str


class UserSummary(BaseModel):
    id: int
    username: str
    name: str
    roles: list[str]


@router.get("/me", response_model=ProfileOut)
def get_my_profile(
    principal: Annotated[Principal, Depends(require_scope("read"))],
) -> ProfileOut:
    """Protected endpoint: any access token carrying the ``read`` scope.

    The final leg of the flow, where the client spends its access token
    on a protected resource.
    """
    logger.info(
        "Resource accessed by user=%s via client_id=%s",
        principal.user_id,
        principal.client_id,
    )
    return ProfileOut(
        id=principal.user_id,
        username=principal.username,
        name=principal.display_name,
        client_id=principal.client_id,
        message=f"Hello {principal.display_name}, you have a valid token.",
    )


@router.get("/users", response_model=list[UserSummary])
def list_users(
    principal: Annotated[Principal, Depends(require_scope("manage_users"))],
) -> list[UserSummary]:
    # The scope alone was only grantable to a user holding list_users.
    logger.info("User list read by user=%s", principal.user_id)
    return [
        UserSummary(id=u.id, username=u.username, name=u.display_name, roles=list(u.roles))
        for u in user_repo.list_users()
    ]
