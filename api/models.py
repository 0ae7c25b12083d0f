"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CrudKind(str, Enum):
    """Operation kinds tracked by the CRUD statistics counter."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class OperationCounter(BaseModel):
    """Attempt counters for one operation kind."""
    total: int = Field(0, ge=0, description="Number of attempts")
    successful: int = Field(0, ge=0, description="Number of attempts answered with 2xx")


class CrudStats(BaseModel):
    """Counters for all four operation kinds."""
    create: OperationCounter = Field(default_factory=OperationCounter)
    read: OperationCounter = Field(default_factory=OperationCounter)
    update: OperationCounter = Field(default_factory=OperationCounter)
    delete: OperationCounter = Field(default_factory=OperationCounter)

    @classmethod
    def seed(cls) -> "CrudStats":
        """Initial counters; the read that creates the document counts as one successful read."""
        return cls(read=OperationCounter(total=1, successful=1))


class SortBy(str, Enum):
    """Sort options for book listings."""
    TITLE = "title"
    PUBLISHED_YEAR = "published_year"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    """Sort order options."""
    ASC = "asc"
    DESC = "desc"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class CopyStatus(str, Enum):
    """Availability of a physical copy."""
    AVAILABLE = "available"
    BORROWED = "borrowed"


# Authors

class AuthorCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Author name")
    biography: Optional[str] = Field(None, description="Short biography")


def reject_null(v):
    """Fields that may be omitted from an update but never set to null."""
    if v is None:
        raise ValueError('may be omitted but not set to null')
    return v


class AuthorUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    biography: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_not_null(cls, v):
        return reject_null(v)


class AuthorResponse(AuthorCreate):
    id: str = Field(..., description="Unique author identifier")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Books

class BookCreate(BaseModel):
    """Payload for creating a book."""
    isbn: str = Field(..., min_length=10, max_length=17, description="ISBN-10 or ISBN-13")
    title: str = Field(..., min_length=1, description="Book title")
    description: str = Field("", description="Book description")
    category: str = Field(..., min_length=1, description="Book category")
    publisher: Optional[str] = Field(None, description="Publisher")
    published_year: Optional[int] = Field(None, ge=0, le=9999, description="Year of publication")
    author_ids: List[str] = Field(default_factory=list, description="Author identifiers")

    @field_validator('isbn')
    @classmethod
    def validate_isbn(cls, v):
        """Accept digits, hyphens and a trailing X check character."""
        digits = v.replace("-", "")
        if len(digits) not in (10, 13):
            raise ValueError('ISBN must have 10 or 13 characters excluding hyphens')
        if not (digits[:-1].isdigit() and (digits[-1].isdigit() or digits[-1] in "xX")):
            raise ValueError('ISBN may only contain digits, hyphens and a final X')
        return digits.upper()


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1)
    publisher: Optional[str] = None
    published_year: Optional[int] = Field(None, ge=0, le=9999)
    author_ids: Optional[List[str]] = None

    @field_validator('title', 'description', 'category', 'author_ids')
    @classmethod
    def validate_not_null(cls, v):
        return reject_null(v)


class BookResponse(BookCreate):
    id: str = Field(..., description="Unique book identifier")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookListResponse(BaseModel):
    """Response model for book list with pagination."""
    books: List[BookResponse] = Field(..., description="List of books")
    total: int = Field(..., description="Total number of matching books")
    page: int = Field(..., description="Current page number")
    per_page: int = Field(..., description="Number of books per page")
    total_pages: int = Field(..., description="Total number of pages")
    has_next: bool = Field(..., description="Whether there is a next page")
    has_prev: bool = Field(..., description="Whether there is a previous page")


class BookQueryParams(BaseModel):
    """Query parameters for book listing."""
    search: Optional[str] = Field(None, description="Match title or ISBN")
    category: Optional[str] = Field(None, description="Filter by category")
    author_id: Optional[str] = Field(None, description="Filter by author")
    sort_by: SortBy = Field(SortBy.TITLE, description="Sort field")
    sort_order: SortOrder = Field(SortOrder.ASC, description="Sort order")
    page: int = Field(1, ge=1, description="Page number")
    per_page: int = Field(20, ge=1, description="Items per page, capped by the route at max_page_size")


class BookCopyResponse(BaseModel):
    id: str
    book_id: str
    status: CopyStatus
    created_at: Optional[datetime] = None


class BorrowRequest(BaseModel):
    user_id: str = Field(..., description="Borrowing user")


class BorrowedBookResponse(BaseModel):
    id: str
    book_id: str
    copy_id: str
    user_id: str
    borrowed_at: datetime
    due_date: datetime
    returned_at: Optional[datetime] = None


# Users

class UserCreate(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., description="Unique e-mail address")
    role: UserRole = Field(UserRole.USER)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError('email must look like name@domain.tld')
        return v


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    role: Optional[UserRole] = None

    @field_validator('first_name', 'last_name', 'role')
    @classmethod
    def validate_not_null(cls, v):
        return reject_null(v)


class UserResponse(UserCreate):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Carts

class CartItemRequest(BaseModel):
    book_id: str = Field(..., description="Book to add to the cart")


class CartItem(BaseModel):
    book_id: str
    added_at: datetime


class CartResponse(BaseModel):
    id: str
    user_id: str
    items: List[CartItem] = Field(default_factory=list)


class CartItemResponse(CartItem):
    user_id: str


# Shared

class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
