"""
Archetype Backend - User Route Handlers
=========================================

What:  CRUD endpoints for the user resource under /api/v1/users.
Why:   The reference resource showing how a handler sits behind the pipeline.
How:   Handlers are thin: read the validated input, call UserService, return
       the serialized entity. Auth and body validation already happened in
       the pipeline stages, driven by POLICIES below.

Route Inventory:
    GET    /api/v1/users            admin          list (limit/offset)
    GET    /api/v1/users/{user_id}  authenticated  get one
    POST   /api/v1/users            public         create  → 201
    PUT    /api/v1/users/{user_id}  authenticated  partial update
    DELETE /api/v1/users/{user_id}  admin          delete  → 204
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request, Response, status

from archetype.auth import Identity, current_identity, require_roles
from archetype.middleware.policies import protected, public
from archetype.schemas.user import ErrorResponse, UserCreate, UserResponse, UserUpdate
from archetype.services.user_service import UserService

logger = logging.getLogger(__name__)

PREFIX = "/api/v1/users"

router = APIRouter(prefix=PREFIX, tags=["Users"])

# ── Route policies (consumed by the authenticate/authorize/schema stages) ──
POLICIES = [
    protected("GET", PREFIX, roles=("admin",)),
    protected("GET", PREFIX + "/{user_id}"),
    public("POST", PREFIX, body=UserCreate),
    protected("PUT", PREFIX + "/{user_id}", body=UserUpdate),
    protected("DELETE", PREFIX + "/{user_id}", roles=("admin",)),
]

_ERRORS = {
    400: {"description": "Validation failed", "model": ErrorResponse},
    401: {"description": "Missing or invalid credential", "model": ErrorResponse},
    403: {"description": "Insufficient role", "model": ErrorResponse},
    404: {"description": "User not found", "model": ErrorResponse},
    429: {"description": "Rate limited", "model": ErrorResponse},
}


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


@router.get(
    "",
    response_model=List[UserResponse],
    responses=_ERRORS,
    summary="List users (admin)",
)
async def list_users(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    identity: Identity = Depends(require_roles("admin")),
    service: UserService = Depends(get_user_service),
) -> List[UserResponse]:
    users = await service.list_users(limit=limit, offset=offset)
    return [UserResponse.model_validate(user) for user in users]


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    responses=_ERRORS,
    summary="Get a user by id",
)
async def get_user(
    user_id: int,
    identity: Identity = Depends(current_identity),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    return UserResponse.model_validate(await service.get_user(user_id))


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: _ERRORS[400], 409: {"description": "Email taken", "model": ErrorResponse}},
    summary="Create a user",
)
async def create_user(
    payload: UserCreate,
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await service.create_user(email=payload.email, name=payload.name)
    return UserResponse.model_validate(user)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    responses=_ERRORS,
    summary="Update a user",
)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    identity: Identity = Depends(current_identity),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await service.update_user(user_id, name=payload.name, email=payload.email)
    logger.debug("User %s updated by %s", user_id, identity.subject)
    return UserResponse.model_validate(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERRORS,
    summary="Delete a user (admin)",
)
async def delete_user(
    user_id: int,
    identity: Identity = Depends(require_roles("admin")),
    service: UserService = Depends(get_user_service),
) -> Response:
    await service.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
