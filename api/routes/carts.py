"""Cart endpoints, one cart per user."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from api.auth import verify_api_key
from api.database import APIDatabaseService
from api.deps import get_db_service
from api.models import CartItemRequest, CartItemResponse, CartResponse

router = APIRouter(prefix="/carts", tags=["Carts"], dependencies=[Depends(verify_api_key)])


@router.get("", response_model=List[CartResponse])
async def get_all_carts(db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.get_carts()


@router.get("/items", response_model=List[CartItemResponse])
async def get_all_cart_items(db_service: APIDatabaseService = Depends(get_db_service)):
    """Every item in every cart, tagged with the owning user."""
    return await db_service.get_cart_items()


@router.get("/{user_id}", response_model=CartResponse)
async def get_cart_by_user_id(user_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    cart = await db_service.get_cart(user_id)
    if not cart:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Cart for user '{user_id}' not found"
        )
    return cart


@router.post("/{user_id}", response_model=CartResponse)
async def add_to_cart(
    user_id: str,
    item: CartItemRequest,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    return await db_service.add_to_cart(user_id, item.book_id)


@router.delete("/{user_id}/{book_id}", response_model=CartResponse)
async def remove_from_cart(
    user_id: str,
    book_id: str,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    return await db_service.remove_from_cart(user_id, book_id)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_cart(user_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    if not await db_service.delete_cart(user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Cart for user '{user_id}' not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
