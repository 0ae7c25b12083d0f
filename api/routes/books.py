"""
Book, copy and borrowing endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from api.auth import verify_api_key
from api.config import config
from api.database import APIDatabaseService
from api.deps import get_db_service
from api.models import (
    BookCopyResponse, BookCreate, BookListResponse, BookQueryParams, BookResponse, BookUpdate,
    BorrowedBookResponse, BorrowRequest,
)


router = APIRouter(prefix="/books", tags=["Books"], dependencies=[Depends(verify_api_key)])


def _not_found(book_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Book with ID '{book_id}' not found"
    )


@router.get("", response_model=BookListResponse)
async def get_books(
    search: Optional[str] = None,
    category: Optional[str] = None,
    author_id: Optional[str] = None,
    sort_by: str = "title",
    sort_order: str = "asc",
    page: int = 1,
    per_page: Optional[int] = None,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """
    Get books with filtering, sorting, and pagination.

    - **search**: Case-insensitive match on title or ISBN
    - **category**: Filter by category
    - **author_id**: Filter by author
    - **sort_by**: Sort field (title, published_year, created_at)
    - **sort_order**: Sort order (asc, desc)
    - **page**: Page number (starts from 1)
    - **per_page**: Items per page (1 to the configured maximum)
    """
    if per_page is None:
        per_page = config.default_page_size
    if per_page > config.max_page_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"per_page must not exceed {config.max_page_size}"
        )

    try:
        query_params = BookQueryParams(
            search=search,
            category=category,
            author_id=author_id,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            per_page=per_page
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return await db_service.get_books(query_params)


@router.get("/copies", response_model=List[BookCopyResponse])
async def get_all_copies(db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.get_all_copies()


@router.get("/borrowed", response_model=List[BorrowedBookResponse])
async def get_borrowed_books(
    user_id: Optional[str] = None,
    active_only: bool = False,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """
    List borrow records, newest first.

    - **user_id**: Only records of this user
    - **active_only**: Only books that have not been returned
    """
    return await db_service.get_borrowed_books(user_id=user_id, active_only=active_only)


@router.put("/borrowed/{borrow_id}/return", response_model=BorrowedBookResponse)
async def return_book(borrow_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.return_book(borrow_id)


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(book_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    book = await db_service.get_book_by_id(book_id)
    if not book:
        raise _not_found(book_id)
    return book


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(book: BookCreate, db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.create_book(book)


@router.put("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: str,
    update: BookUpdate,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    book = await db_service.update_book(book_id, update)
    if not book:
        raise _not_found(book_id)
    return book


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(book_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    if not await db_service.delete_book(book_id):
        raise _not_found(book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{book_id}/copies", response_model=List[BookCopyResponse])
async def get_book_copies(book_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.get_copies_for_book(book_id)


@router.post("/{book_id}/copies", response_model=BookCopyResponse, status_code=status.HTTP_201_CREATED)
async def add_book_copy(book_id: str, db_service: APIDatabaseService = Depends(get_db_service)):
    return await db_service.add_copy(book_id)


@router.post("/{book_id}/borrow", response_model=BorrowedBookResponse, status_code=status.HTTP_201_CREATED)
async def borrow_book(
    book_id: str,
    request: BorrowRequest,
    db_service: APIDatabaseService = Depends(get_db_service)
):
    """Borrow an available copy of the book for ``user_id``."""
    return await db_service.borrow_book(book_id, request.user_id)
