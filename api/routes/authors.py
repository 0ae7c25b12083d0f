"""Author endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from api.auth import verify_api_key
from api.database import APIDatabaseService
from api.deps import get_db_service
from api.models import AuthorCreate, AuthorResponse, AuthorUpdate

router = APIRouter(prefix="/authors", tags=["Authors"], dependencies=[Depends(verify_api_key)])


def _not_found(author_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Author with ID '{author_id}' not found"
    )


@router.get("", response_model=List[AuthorResponse])
async def get_authors(db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.get_authors()


@router.get("/{author_id}", response_model=AuthorResponse)
async def get_author(author_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    author = await db_service.get_author_by_id(author_id)
    if not author:
        raise _not_found(author_id)
    return author


@router.post("", response_model=AuthorResponse, status_code=status.HTTP_201_CREATED)
async def create_author(author: AuthorCreate, db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.create_author(author)


@router.put("/{author_id}", response_model=AuthorResponse)
async def update_author(
    author_id: str,
    update: AuthorUpdate,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    author = await db_service.update_author(author_id, update)
    if not author:
        raise _not_found(author_id)
    return author


@router.delete("/{author_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_author(author_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    if not await db_service.delete_author(author_id):
        raise _not_found(author_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
