"""User account routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from core.container import container
from models.user import UserCreate, UserRead, UserUpdate
from services.users import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


def get_user_service() -> UserService:
    return container.user_service()


def require_self(request: Request, user_id: str) -> None:
    if request.state.user_id != user_id:
        raise HTTPException(status_code=403, detail="Not allowed to modify another user")


@router.post("", response_model=UserRead, status_code=201)
async def create_user(body: UserCreate, users: UserService = Depends(get_user_service)):
    return await users.create(body)


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    users: UserService = Depends(get_user_service)
):
    items, total = await users.list(page, limit)
    return {
        "items": [UserRead.model_validate(u).model_dump(mode="json") for u in items],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.get("/me", response_model=UserRead)
async def get_me(request: Request, users: UserService = Depends(get_user_service)):
    return await users.get(request.state.user_id)


@router.get("/{user_id}", response_model=UserRead)
async def get_user(user_id: str, users: UserService = Depends(get_user_service)):
    return await users.get(user_id)


@router.put("/{user_id}", response_model=UserRead)
async def update_user(
    user_id: str,
    body: UserUpdate,
    request: Request,
    users: UserService = Depends(get_user_service)
):
    require_self(request, user_id)
    return await users.update(user_id, body)


@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: str, request: Request, users: UserService = Depends(get_user_service)):
    require_self(request, user_id)
    await users.delete(user_id)
