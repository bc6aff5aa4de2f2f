"""
Pydantic models for the documents stored by the book review platform.
Each model maps to one MongoDB collection: users, books and reviews.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, validator

from .database import to_object_id

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def clean_email(value: Any) -> Any:
    """Strip and lowercase an email address; non-strings are left to type validation."""
    return value.strip().lower() if isinstance(value, str) else value


def normalize_genres(values: List[str]) -> List[str]:
    """Drop blanks and duplicates while keeping the given order."""
    genres = []
    for genre in values:
        genre = genre.strip()
        if genre and genre not in genres:
            genres.append(genre)
    if not genres:
        raise ValueError('A book must have at least one genre')
    return genres


class UserRole(str, Enum):
    """Enum for account roles."""
    USER = "user"
    ADMIN = "admin"


class Identity(BaseModel):
    """
    Acting identity resolved from the credentials of an inbound request.
    """
    id: str = Field(..., description="User identifier")
    role: UserRole = Field(default=UserRole.USER, description="Role of the acting user")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserDocument(BaseModel):
    """User account as stored in the users collection."""
    username: str = Field(..., min_length=1, description="Display name")
    email: str = Field(..., pattern=EMAIL_PATTERN, description="Unique email address")
    password_hash: str = Field(..., description="Salted password hash")
    role: UserRole = Field(default=UserRole.USER, description="Account role")
    profile_picture: str = Field(default="default-user.jpg", description="Profile picture file or URL")
    bio: Optional[str] = Field(None, description="Short biography")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Registration time")

    @validator('username')
    def strip_username(cls, v):
        return v.strip()

    @validator('email', pre=True)
    def normalize_email(cls, v):
        return clean_email(v)

    def to_document(self) -> Dict[str, Any]:
        document = self.model_dump(exclude_none=True)
        document["role"] = self.role.value
        return document


class BookDocument(BaseModel):
    """
    Book as stored in the books collection.

    The rating fields are derived from the book's reviews and are only ever
    written by the rating aggregator.
    """
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Author name")
    description: str = Field(..., min_length=1, description="Book description")
    cover_image: str = Field(default="default-book.jpg", description="Cover image file or URL")
    genre: List[str] = Field(..., min_length=1, description="Genres, at least one")
    published_year: Optional[int] = Field(None, description="Year of first publication")
    publisher: Optional[str] = Field(None, description="Publisher name")
    isbn: Optional[str] = Field(None, description="Unique ISBN")
    total_rating: int = Field(default=0, ge=0, description="Sum of all review ratings")
    rating_count: int = Field(default=0, ge=0, description="Number of reviews")
    average_rating: float = Field(default=0, ge=0, description="total_rating / rating_count")
    featured: bool = Field(default=False, description="Show on the home page")
    created_by: str = Field(..., description="Identifier of the admin who added the book")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation time")

    @validator('title', 'author', 'description')
    def strip_text(cls, v):
        return v.strip()

    @validator('publisher', 'isbn', pre=True)
    def blank_to_none(cls, v):
        """Blank optional values are left out of the stored document."""
        if isinstance(v, str):
            v = v.strip()
        return v or None

    @validator('genre')
    def normalize_genre(cls, v):
        return normalize_genres(v)

    def to_document(self) -> Dict[str, Any]:
        document = self.model_dump(exclude_none=True)
        document["created_by"] = to_object_id(self.created_by)
        return document


class ReviewDocument(BaseModel):
    """Review as stored in the reviews collection."""
    book: str = Field(..., description="Identifier of the reviewed book")
    user: str = Field(..., description="Identifier of the reviewing user")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    review: str = Field(..., min_length=1, description="Review text")
    final_review: Optional[str] = Field(None, description="Published review text")
    ai_refined_review: Optional[str] = Field(None, description="Machine refined review text")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation time")

    @validator('review')
    def strip_review(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Review cannot be empty')
        return v

    @validator('final_review', always=True)
    def default_final_review(cls, v, values):
        """The published text falls back to the original review."""
        if not v:
            return values.get('review')
        return v

    def to_document(self) -> Dict[str, Any]:
        document = self.model_dump()
        document["book"] = to_object_id(self.book)
        document["user"] = to_object_id(self.user)
        return document


class RatingStats(BaseModel):
    """Rating statistics of a single book."""
    count: int = Field(default=0, ge=0, description="Number of ratings")
    total: int = Field(default=0, ge=0, description="Sum of ratings")
    average: float = Field(default=0, ge=0, description="Arithmetic mean, 0 without ratings")

    def to_book_fields(self) -> Dict[str, Any]:
        return {
            "rating_count": self.count,
            "total_rating": self.total,
            "average_rating": self.average,
        }
