"""
Database service layer for the FastAPI application.
"""

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from api.errors import ConflictError, NotFoundError
from api.models import (
    AuthorCreate, AuthorResponse, AuthorUpdate,
    BookCopyResponse, BookCreate, BookListResponse, BookQueryParams, BookResponse, BookUpdate,
    BorrowedBookResponse, CartItemResponse, CartResponse, CopyStatus,
    SortOrder, UserCreate, UserResponse, UserUpdate,
)

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> Optional[ObjectId]:
    """Convert a string identifier to an ObjectId, None when it is not a valid one."""
    if isinstance(value, ObjectId):
        return value
    if value and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Replace MongoDB's ``_id`` with a string ``id``."""
    document = dict(document)
    document["id"] = str(document.pop("_id"))
    return document


class APIDatabaseService:
    """Database service for API operations."""

    def __init__(self, database: AsyncIOMotorDatabase, loan_period_days: int = 14):
        self.database = database
        self.loan_period_days = loan_period_days
        self.authors_collection = database.authors
        self.books_collection = database.books
        self.copies_collection = database.book_copies
        self.borrowed_collection = database.borrowed_books
        self.users_collection = database.users
        self.carts_collection = database.carts

    async def ensure_indexes(self) -> None:
        """Create indexes for uniqueness constraints and common lookups."""
        try:
            await self.books_collection.create_index("isbn", unique=True)
            await self.books_collection.create_index("category")
            await self.books_collection.create_index("author_ids")
            await self.copies_collection.create_index([("book_id", 1), ("status", 1)])
            await self.borrowed_collection.create_index("user_id")
            await self.users_collection.create_index("email", unique=True)
            await self.carts_collection.create_index("user_id", unique=True)
            logger.info("Successfully created MongoDB indexes")
        except PyMongoError as e:
            logger.error("Failed to create indexes", error=str(e))
            raise

    async def _find_by_id(self, collection, document_id: str) -> Optional[Dict[str, Any]]:
        object_id = to_object_id(document_id)
        if object_id is None:
            return None
        return await collection.find_one({"_id": object_id})

    async def _update_by_id(self, collection, document_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        object_id = to_object_id(document_id)
        if object_id is None:
            return None
        changes["updated_at"] = utcnow()
        return await collection.find_one_and_update(
            {"_id": object_id}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )

    async def _delete_by_id(self, collection, document_id: str) -> bool:
        object_id = to_object_id(document_id)
        if object_id is None:
            return False
        result = await collection.delete_one({"_id": object_id})
        return result.deleted_count > 0

    # Authors

    async def get_authors(self) -> List[AuthorResponse]:
        try:
            cursor = self.authors_collection.find({}).sort("name", 1)
            return [AuthorResponse(**serialize_document(doc)) async for doc in cursor]
        except PyMongoError as e:
            logger.error("Failed to get authors", error=str(e))
            raise

    async def get_author_by_id(self, author_id: str) -> Optional[AuthorResponse]:
        try:
            document = await self._find_by_id(self.authors_collection, author_id)
            return AuthorResponse(**serialize_document(document)) if document else None
        except PyMongoError as e:
            logger.error("Failed to get author by ID", author_id=author_id, error=str(e))
            raise

    async def create_author(self, author: AuthorCreate) -> AuthorResponse:
        document = author.model_dump()
        document["created_at"] = document["updated_at"] = utcnow()
        try:
            result = await self.authors_collection.insert_one(document)
        except PyMongoError as e:
            logger.error("Failed to create author", name=author.name, error=str(e))
            raise
        document["_id"] = result.inserted_id
        logger.info("Author created", author_id=str(result.inserted_id))
        return AuthorResponse(**serialize_document(document))

    async def update_author(self, author_id: str, update: AuthorUpdate) -> Optional[AuthorResponse]:
        try:
            document = await self._update_by_id(
                self.authors_collection, author_id, update.model_dump(exclude_unset=True)
            )
            return AuthorResponse(**serialize_document(document)) if document else None
        except PyMongoError as e:
            logger.error("Failed to update author", author_id=author_id, error=str(e))
            raise

    async def delete_author(self, author_id: str) -> bool:
        try:
            return await self._delete_by_id(self.authors_collection, author_id)
        except PyMongoError as e:
            logger.error("Failed to delete author", author_id=author_id, error=str(e))
            raise

    # Books

    async def _check_authors_exist(self, author_ids: List[str]) -> None:
        for author_id in author_ids:
            if await self._find_by_id(self.authors_collection, author_id) is None:
                raise NotFoundError(f"Author with ID '{author_id}' not found")

    def build_book_filter(self, query_params: BookQueryParams) -> Dict[str, Any]:
        """
        Build the MongoDB filter for a book listing.

        ``search`` matches title or ISBN case-insensitively; category is an
        exact case-insensitive match.
        """
        filter_query: Dict[str, Any] = {}

        if query_params.search:
            pattern = {"$regex": re.escape(query_params.search), "$options": "i"}
            filter_query["$or"] = [{"title": pattern}, {"isbn": pattern}]

        if query_params.category:
            filter_query["category"] = {"$regex": f"^{re.escape(query_params.category)}$", "$options": "i"}

        if query_params.author_id:
            filter_query["author_ids"] = query_params.author_id

        return filter_query

    async def get_books(self, query_params: BookQueryParams) -> BookListResponse:
        """
        Get books with filtering, sorting, and pagination.

        Args:
            query_params: Query parameters for filtering and pagination

        Returns:
            BookListResponse with paginated results
        """
        try:
            filter_query = self.build_book_filter(query_params)
            sort_direction = 1 if query_params.sort_order == SortOrder.ASC else -1
            skip = (query_params.page - 1) * query_params.per_page

            total = await self.books_collection.count_documents(filter_query)
            total_pages = math.ceil(total / query_params.per_page)

            cursor = (
                self.books_collection.find(filter_query)
                .sort([(query_params.sort_by.value, sort_direction)])
                .skip(skip)
                .limit(query_params.per_page)
            )
            books_docs = await cursor.to_list(length=query_params.per_page)

            return BookListResponse(
                books=[BookResponse(**serialize_document(doc)) for doc in books_docs],
                total=total,
                page=query_params.page,
                per_page=query_params.per_page,
                total_pages=total_pages,
                has_next=query_params.page < total_pages,
                has_prev=query_params.page > 1
            )

        except PyMongoError as e:
            logger.error("Failed to get books", error=str(e), query_params=query_params.model_dump())
            raise

    async def get_book_by_id(self, book_id: str) -> Optional[BookResponse]:
        try:
            document = await self._find_by_id(self.books_collection, book_id)
            return BookResponse(**serialize_document(document)) if document else None
        except PyMongoError as e:
            logger.error("Failed to get book by ID", book_id=book_id, error=str(e))
            raise

    async def create_book(self, book: BookCreate) -> BookResponse:
        """
        Insert a new book.

        Raises:
            NotFoundError: If a referenced author does not exist
            ConflictError: If the ISBN is already registered
        """
        await self._check_authors_exist(book.author_ids)
        document = book.model_dump()
        document["created_at"] = document["updated_at"] = utcnow()
        try:
            result = await self.books_collection.insert_one(document)
        except DuplicateKeyError:
            logger.warning("Book already exists", isbn=book.isbn)
            raise ConflictError(f"Book with ISBN '{book.isbn}' already exists")
        except PyMongoError as e:
            logger.error("Failed to create book", isbn=book.isbn, error=str(e))
            raise
        document["_id"] = result.inserted_id
        logger.info("Book created", book_id=str(result.inserted_id), isbn=book.isbn)
        return BookResponse(**serialize_document(document))

    async def update_book(self, book_id: str, update: BookUpdate) -> Optional[BookResponse]:
        changes = update.model_dump(exclude_unset=True)
        if changes.get("author_ids"):
            await self._check_authors_exist(changes["author_ids"])
        try:
            document = await self._update_by_id(self.books_collection, book_id, changes)
            return BookResponse(**serialize_document(document)) if document else None
        except PyMongoError as e:
            logger.error("Failed to update book", book_id=book_id, error=str(e))
            raise

    async def delete_book(self, book_id: str) -> bool:
        """Delete a book together with its copies."""
        try:
            deleted = await self._delete_by_id(self.books_collection, book_id)
            if deleted:
                result = await self.copies_collection.delete_many({"book_id": book_id})
                logger.info("Book deleted", book_id=book_id, copies_deleted=result.deleted_count)
            return deleted
        except PyMongoError as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise

    # Copies and borrowing

    async def get_all_copies(self) -> List[BookCopyResponse]:
        try:
            cursor = self.copies_collection.find({})
            return [BookCopyResponse(**serialize_document(doc)) async for doc in cursor]
        except PyMongoError as e:
            logger.error("Failed to get copies", error=str(e))
            raise

    async def get_copies_for_book(self, book_id: str) -> List[BookCopyResponse]:
        if await self.get_book_by_id(book_id) is None:
            raise NotFoundError(f"Book with ID '{book_id}' not found")
        cursor = self.copies_collection.find({"book_id": book_id})
        return [BookCopyResponse(**serialize_document(doc)) async for doc in cursor]

    async def add_copy(self, book_id: str) -> BookCopyResponse:
        if await self.get_book_by_id(book_id) is None:
            raise NotFoundError(f"Book with ID '{book_id}' not found")
        document = {"book_id": book_id, "status": CopyStatus.AVAILABLE.value, "created_at": utcnow()}
        try:
            result = await self.copies_collection.insert_one(document)
        except PyMongoError as e:
            logger.error("Failed to add copy", book_id=book_id, error=str(e))
            raise
        document["_id"] = result.inserted_id
        return BookCopyResponse(**serialize_document(document))

    async def _set_copy_status(self, copy_id: ObjectId, copy_status: CopyStatus) -> None:
        await self.copies_collection.update_one(
            {"_id": copy_id},
            {"$set": {"status": copy_status.value}},
        )

    async def borrow_book(self, book_id: str, user_id: str) -> BorrowedBookResponse:
        """
        Lend an available copy of a book to a user.

        The copy is claimed with a single conditional update, so two borrowers
        can never receive the same copy.

        Raises:
            NotFoundError: If the book or user does not exist
            ConflictError: If every copy is already borrowed
        """
        if await self.get_book_by_id(book_id) is None:
            raise NotFoundError(f"Book with ID '{book_id}' not found")
        if await self.get_user_by_id(user_id) is None:
            raise NotFoundError(f"User with ID '{user_id}' not found")

        try:
            copy = await self.copies_collection.find_one_and_update(
                {"book_id": book_id, "status": CopyStatus.AVAILABLE.value},
                {"$set": {"status": CopyStatus.BORROWED.value}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error("Failed to borrow book", book_id=book_id, user_id=user_id, error=str(e))
            raise
        if copy is None:
            raise ConflictError(f"No available copies of book '{book_id}'")

        borrowed_at = utcnow()
        record = {
            "book_id": book_id,
            "copy_id": str(copy["_id"]),
            "user_id": user_id,
            "borrowed_at": borrowed_at,
            "due_date": borrowed_at + timedelta(days=self.loan_period_days),
            "returned_at": None,
        }
        try:
            result = await self.borrowed_collection.insert_one(record)
        except PyMongoError as e:
            logger.error("Failed to record borrow, releasing copy",
                         book_id=book_id, user_id=user_id, copy_id=record["copy_id"], error=str(e))
            await self._set_copy_status(copy["_id"], CopyStatus.AVAILABLE)
            raise

        record["_id"] = result.inserted_id
        logger.info("Book borrowed", book_id=book_id, user_id=user_id, copy_id=record["copy_id"])
        return BorrowedBookResponse(**serialize_document(record))

    async def return_book(self, borrow_id: str) -> BorrowedBookResponse:
        """
        Close a borrow record and make its copy available again.

        Raises:
            NotFoundError: If the record does not exist
            ConflictError: If the book was already returned
        """
        object_id = to_object_id(borrow_id)
        if object_id is None:
            raise NotFoundError(f"Borrow record '{borrow_id}' not found")

        try:
            record = await self.borrowed_collection.find_one_and_update(
                {"_id": object_id, "returned_at": None},
                {"$set": {"returned_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
            if record is None:
                if await self.borrowed_collection.find_one({"_id": object_id}) is None:
                    raise NotFoundError(f"Borrow record '{borrow_id}' not found")
                raise ConflictError(f"Borrow record '{borrow_id}' is already returned")
        except PyMongoError as e:
            logger.error("Failed to return book", borrow_id=borrow_id, error=str(e))
            raise

        try:
            await self._set_copy_status(to_object_id(record["copy_id"]), CopyStatus.AVAILABLE)
        except PyMongoError as e:
            # Reopen the record so the return can be retried
            logger.error("Failed to release copy, reopening borrow record",
                         borrow_id=borrow_id, copy_id=record["copy_id"], error=str(e))
            await self.borrowed_collection.update_one(
                {"_id": object_id},
                {"$set": {"returned_at": None}},
            )
            raise

        logger.info("Book returned", borrow_id=borrow_id, copy_id=record["copy_id"])
        return BorrowedBookResponse(**serialize_document(record))

    async def get_borrowed_books(self, user_id: Optional[str] = None, active_only: bool = False) -> List[BorrowedBookResponse]:
        filter_query: Dict[str, Any] = {}
        if user_id:
            filter_query["user_id"] = user_id
        if active_only:
            filter_query["returned_at"] = None
        try:
            cursor = self.borrowed_collection.find(filter_query).sort("borrowed_at", -1)
            return [BorrowedBookResponse(**serialize_document(doc)) async for doc in cursor]
        except PyMongoError as e:
            logger.error("Failed to get borrowed books", user_id=user_id, error=str(e))
            raise

    # Users

    async def get_users(self) -> List[UserResponse]:
        try:
            cursor = self.users_collection.find({}).sort("last_name", 1)
            return [UserResponse(**serialize_document(doc)) async for doc in cursor]
        except PyMongoError as e:
            logger.error("Failed to get users", error=str(e))
            raise

    async def get_user_by_id(self, user_id: str) -> Optional[UserResponse]:
        try:
            document = await self._find_by_id(self.users_collection, user_id)
            return UserResponse(**serialize_document(document)) if document else None
        except PyMongoError as e:
            logger.error("Failed to get user by ID", user_id=user_id, error=str(e))
            raise

    async def create_user(self, user: UserCreate) -> UserResponse:
        document = user.model_dump(mode="json")
        document["created_at"] = document["updated_at"] = utcnow()
        try:
            result = await self.users_collection.insert_one(document)
        except DuplicateKeyError:
            logger.warning("User already exists", email=user.email)
            raise ConflictError(f"User with email '{user.email}' already exists")
        except PyMongoError as e:
            logger.error("Failed to create user", error=str(e))
            raise
        document["_id"] = result.inserted_id
        logger.info("User created", user_id=str(result.inserted_id))
        return UserResponse(**serialize_document(document))

    async def update_user(self, user_id: str, update: UserUpdate) -> Optional[UserResponse]:
        try:
            document = await self._update_by_id(
                self.users_collection, user_id, update.model_dump(mode="json", exclude_unset=True)
            )
            return UserResponse(**serialize_document(document)) if document else None
        except PyMongoError as e:
            logger.error("Failed to update user", user_id=user_id, error=str(e))
            raise

    async def delete_user(self, user_id: str) -> bool:
        """Delete a user and their cart."""
        try:
            deleted = await self._delete_by_id(self.users_collection, user_id)
            if deleted:
                await self.carts_collection.delete_one({"user_id": user_id})
            return deleted
        except PyMongoError as e:
            logger.error("Failed to delete user", user_id=user_id, error=str(e))
            raise

    # Carts

    async def get_carts(self) -> List[CartResponse]:
        try:
            cursor = self.carts_collection.find({})
            return [CartResponse(**serialize_document(doc)) async for doc in cursor]
        except PyMongoError as e:
            logger.error("Failed to get carts", error=str(e))
            raise

    async def get_cart_items(self) -> List[CartItemResponse]:
        """All items of all carts, each tagged with its owner."""
        carts = await self.get_carts()
        return [
            CartItemResponse(user_id=cart.user_id, **item.model_dump())
            for cart in carts
            for item in cart.items
        ]

    async def get_cart(self, user_id: str) -> Optional[CartResponse]:
        try:
            document = await self.carts_collection.find_one({"user_id": user_id})
            return CartResponse(**serialize_document(document)) if document else None
        except PyMongoError as e:
            logger.error("Failed to get cart", user_id=user_id, error=str(e))
            raise

    async def add_to_cart(self, user_id: str, book_id: str) -> CartResponse:
        """
        Add a book to a user's cart, creating the cart on first use.

        Adding a book that is already in the cart leaves the cart unchanged.
        """
        if await self.get_user_by_id(user_id) is None:
            raise NotFoundError(f"User with ID '{user_id}' not found")
        if await self.get_book_by_id(book_id) is None:
            raise NotFoundError(f"Book with ID '{book_id}' not found")

        try:
            await self.carts_collection.update_one(
                {"user_id": user_id},
                {"$setOnInsert": {"user_id": user_id, "items": []}},
                upsert=True,
            )
            await self.carts_collection.update_one(
                {"user_id": user_id, "items.book_id": {"$ne": book_id}},
                {"$push": {"items": {"book_id": book_id, "added_at": utcnow()}}},
            )
        except PyMongoError as e:
            logger.error("Failed to add to cart", user_id=user_id, book_id=book_id, error=str(e))
            raise

        return await self.get_cart(user_id)

    async def remove_from_cart(self, user_id: str, book_id: str) -> CartResponse:
        try:
            result = await self.carts_collection.update_one(
                {"user_id": user_id},
                {"$pull": {"items": {"book_id": book_id}}},
            )
        except PyMongoError as e:
            logger.error("Failed to remove from cart", user_id=user_id, book_id=book_id, error=str(e))
            raise

        if result.matched_count == 0:
            raise NotFoundError(f"Cart for user '{user_id}' not found")
        if result.modified_count == 0:
            raise NotFoundError(f"Book '{book_id}' is not in the cart")
        return await self.get_cart(user_id)

    async def delete_cart(self, user_id: str) -> bool:
        try:
            result = await self.carts_collection.delete_one({"user_id": user_id})
            return result.deleted_count > 0
        except PyMongoError as e:
            logger.error("Failed to delete cart", user_id=user_id, error=str(e))
            raise

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            books_count = await self.books_collection.count_documents({})
            users_count = await self.users_collection.count_documents({})

            return {
                "status": "healthy",
                "books_count": books_count,
                "users_count": users_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
