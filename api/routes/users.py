"""User endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from api.auth import verify_api_key
from api.database import APIDatabaseService
from api.deps import get_db_service
from api.models import UserCreate, UserResponse, UserUpdate

router = APIRouter(prefix="/users", tags=["Users"], dependencies=[Depends(verify_api_key)])


def _not_found(user_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"User with ID '{user_id}' not found"
    )


@router.get("", response_model=List[UserResponse])
async def get_users(db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.get_users()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    user = await db_service.get_user_by_id(user_id)
    if not user:
        raise _not_found(user_id)
    return user


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user: UserCreate, db_service: APIDatabaseService = Depends(get_db_service)):
    """Register a user; e-mail addresses are unique."""
    return await db_service.create_user(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    update: UserUpdate,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    user = await db_service.update_user(user_id, update)
    if not user:
        raise _not_found(user_id)
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    if not await db_service.delete_user(user_id):
        raise _not_found(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
