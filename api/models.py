"""
API models and schemas for the FastAPI application.

Request and response bodies use camelCase JSON names; Python attributes and
stored documents use snake_case.
"""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel

from catalog.models import EMAIL_PATTERN, UserRole, clean_email, normalize_genres


class APIModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


# Requests

class RegisterRequest(APIModel):
    """Account registration payload."""
    username: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., pattern=EMAIL_PATTERN, description="Email address")
    password: str = Field(..., min_length=8, description="Password, at least 8 characters")
    profile_picture: Optional[str] = Field(None, description="Profile picture file or URL")
    bio: Optional[str] = Field(None, description="Short biography")

    @validator('email', pre=True)
    def normalize_email(cls, v):
        return clean_email(v)


class LoginRequest(APIModel):
    """Login payload. Both fields are checked by the service."""
    email: Optional[str] = Field(None, description="Email address")
    password: Optional[str] = Field(None, description="Password")


class UserUpdate(APIModel):
    """Writable profile fields; anything else in the body is ignored."""
    username: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)
    profile_picture: Optional[str] = None
    bio: Optional[str] = None

    @validator('email', pre=True)
    def normalize_email(cls, v):
        return clean_email(v)


class BookCreate(APIModel):
    """Book creation payload. Rating fields are never accepted from clients."""
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    cover_image: Optional[str] = None
    genre: List[str] = Field(..., min_length=1)
    published_year: Optional[int] = None
    publisher: Optional[str] = None
    isbn: Optional[str] = None
    featured: bool = False


class BookUpdate(APIModel):
    """Partial book update."""
    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    cover_image: Optional[str] = None
    genre: Optional[List[str]] = None
    published_year: Optional[int] = None
    publisher: Optional[str] = None
    isbn: Optional[str] = None
    featured: Optional[bool] = None

    @validator('genre')
    def normalize_genre(cls, v):
        return normalize_genres(v) if v is not None else v


class ReviewCreate(APIModel):
    """Review creation payload."""
    book: str = Field(..., description="Identifier of the reviewed book")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    review: str = Field(..., min_length=1, description="Review text")
    final_review: Optional[str] = None
    ai_refined_review: Optional[str] = None


class ReviewUpdate(APIModel):
    """Partial review update."""
    rating: Optional[int] = Field(None, ge=1, le=5)
    review: Optional[str] = Field(None, min_length=1)
    final_review: Optional[str] = None
    ai_refined_review: Optional[str] = None


# Responses

class UserResponse(APIModel):
    """Public user representation; never includes the password hash."""
    id: str
    username: str
    email: Optional[str] = None
    role: UserRole = UserRole.USER
    profile_picture: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[str] = None


class ReviewerSummary(APIModel):
    """Author details embedded in reviews."""
    id: str
    username: str
    profile_picture: Optional[str] = None


class ReviewResponse(APIModel):
    """Review representation."""
    id: str
    book: str
    user: Union[ReviewerSummary, str, None] = None
    rating: int
    review: str
    final_review: Optional[str] = None
    ai_refined_review: Optional[str] = None
    created_at: Optional[str] = None


class BookResponse(APIModel):
    """
    Book representation. Every field but the id is optional so that field
    selection can return partial books.
    """
    id: str
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    cover_image: Optional[str] = None
    genre: Optional[List[str]] = None
    published_year: Optional[int] = None
    publisher: Optional[str] = None
    isbn: Optional[str] = None
    total_rating: Optional[int] = None
    rating_count: Optional[int] = None
    average_rating: Optional[float] = None
    featured: Optional[bool] = None
    created_by: Optional[str] = None
    created_at: Optional[str] = None
    reviews: Optional[List[ReviewResponse]] = None


class BookListData(APIModel):
    books: List[BookResponse]


class BookListResponse(APIModel):
    """Response model for book list with pagination."""
    status: str = "success"
    results: int = Field(..., description="Number of books on this page")
    total: Optional[int] = Field(None, description="Total number of matching books")
    page: Optional[int] = Field(None, description="Current page number")
    limit: Optional[int] = Field(None, description="Number of books per page")
    data: BookListData


class BookData(APIModel):
    book: BookResponse


class BookDetailResponse(APIModel):
    status: str = "success"
    data: BookData


class ReviewListData(APIModel):
    reviews: List[ReviewResponse]


class ReviewListResponse(APIModel):
    status: str = "success"
    results: int
    data: ReviewListData


class ReviewData(APIModel):
    review: ReviewResponse


class ReviewDetailResponse(APIModel):
    status: str = "success"
    data: ReviewData


class UserData(APIModel):
    user: UserResponse


class UserDetailResponse(APIModel):
    status: str = "success"
    data: UserData


class AuthResponse(APIModel):
    """Issued bearer token with the authenticated user."""
    status: str = "success"
    token: str
    data: UserData


class ErrorResponse(APIModel):
    """Uniform error envelope."""
    status: str = Field(..., description="'fail' for client errors, 'error' for server errors")
    message: str = Field(..., description="Error message")
    stack: Optional[str] = Field(None, description="Traceback, outside production only")


class HealthResponse(APIModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
