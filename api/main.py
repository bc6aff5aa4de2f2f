"""
FastAPI main application for the Book Review Platform API.
"""

import traceback
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import TokenManager, get_current_identity
from api.database import APIDatabaseService
from api.models import (
    AuthResponse, BookCreate, BookDetailResponse, BookData, BookListResponse, BookUpdate,
    ErrorResponse, HealthResponse, LoginRequest, RegisterRequest, ReviewCreate,
    ReviewData, ReviewDetailResponse, ReviewListData, ReviewListResponse, ReviewUpdate,
    UserData, UserDetailResponse, UserUpdate
)
from catalog.database import MongoDBManager
from catalog.errors import AppError
from catalog.models import Identity
from utilities.config import config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)

# Global database service
db_service: Optional[APIDatabaseService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book Review API", environment=config.environment)

    global db_service
    db_manager = MongoDBManager(config.mongodb_url, config.mongodb_database)
    try:
        database = await db_manager.connect()
        db_service = APIDatabaseService(database, config)
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    yield

    logger.info("Shutting down Book Review API")
    await db_manager.disconnect()


app = FastAPI(
    title=config.api_title,
    description="""
    REST API for a book review platform.

    ## Features

    * **Books**: Browse the catalog with filtering, sorting, field selection and pagination
    * **Reviews**: One review per user and book; book ratings are kept in sync with reviews
    * **Users**: Registration, login and profile management

    ## Authentication

    Mutating endpoints require a bearer token obtained from `/api/auth/login`:

    ```
    Authorization: Bearer your_token_here
    ```
    """,
    version=config.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_db_service() -> APIDatabaseService:
    """Return the active database service."""
    if db_service is None:
        raise AppError("Database service not available", status.HTTP_503_SERVICE_UNAVAILABLE)
    return db_service


def render(model: BaseModel, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    """Serialize a response model with camelCase keys, leaving out empty fields."""
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", by_alias=True, exclude_none=True)
    )


def error_response(status_code: int, message: str, exc: Optional[BaseException] = None) -> JSONResponse:
    """Build the uniform error envelope; tracebacks only leave non-production deployments."""
    stack = None
    if exc is not None and not config.is_production():
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    return render(
        ErrorResponse(
            status="fail" if 400 <= status_code < 500 else "error",
            message=message,
            stack=stack
        ),
        status_code
    )


# Exception handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Handle errors raised by the service layer."""
    if exc.status_code >= 500:
        logger.error("Request failed", error=exc.message, path=request.url.path, cause=str(exc.__cause__))
    return error_response(exc.status_code, exc.message, exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions, including unknown routes."""
    message = exc.detail
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = f"Can't find {request.url.path} on this server!"
    response = error_response(exc.status_code, str(message))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc):
    """Handle invalid request bodies and parameters."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    )
    return error_response(status.HTTP_400_BAD_REQUEST, f"Invalid input data. {details}")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    message = "Something went wrong!" if config.is_production() else str(exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message, exc)


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    db_status = "unavailable"
    if db_service:
        health_info = await db_service.health_check()
        db_status = health_info.get("status", "unknown")

    return render(
        HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            timestamp=datetime.utcnow(),
            version=config.api_version,
            database_status=db_status
        )
    )


# Auth endpoints
@app.post("/api/auth/register", response_model=AuthResponse, status_code=201, tags=["Auth"])
async def register(payload: RegisterRequest):
    """Register a new user and log them in."""
    user = await get_db_service().register_user(payload)
    return render(
        AuthResponse(token=TokenManager.create_token(user.id), data=UserData(user=user)),
        status.HTTP_201_CREATED
    )


@app.post("/api/auth/login", response_model=AuthResponse, tags=["Auth"])
async def login(payload: LoginRequest):
    """Exchange email and password for a bearer token."""
    user = await get_db_service().authenticate(payload.email, payload.password)
    return render(AuthResponse(token=TokenManager.create_token(user.id), data=UserData(user=user)))


@app.get("/api/auth/logout", tags=["Auth"])
async def logout():
    """Tokens are discarded client-side; kept for client compatibility."""
    return {"status": "success"}


@app.get("/api/auth/me", response_model=UserDetailResponse, tags=["Auth"])
async def get_me(identity: Identity = Depends(get_current_identity)):
    """Get the profile of the logged in user."""
    user = await get_db_service().get_user(identity.id)
    return render(UserDetailResponse(data=UserData(user=user)))


# User endpoints
@app.get("/api/users/{user_id}", response_model=UserDetailResponse, tags=["Users"])
async def get_user(user_id: str, identity: Identity = Depends(get_current_identity)):
    """Get a user profile."""
    user = await get_db_service().get_user(user_id)
    return render(UserDetailResponse(data=UserData(user=user)))


@app.put("/api/users/{user_id}", response_model=UserDetailResponse, tags=["Users"])
async def update_user(user_id: str, payload: UserUpdate, identity: Identity = Depends(get_current_identity)):
    """Update a profile. Only the user themselves or an admin may do this."""
    user = await get_db_service().update_user(identity, user_id, payload)
    return render(UserDetailResponse(data=UserData(user=user)))


@app.delete("/api/users/{user_id}", status_code=204, tags=["Users"])
async def delete_user(user_id: str, identity: Identity = Depends(get_current_identity)):
    """Delete an account. Only the user themselves or an admin may do this."""
    await get_db_service().delete_user(identity, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Book endpoints
@app.get("/api/books", response_model=BookListResponse, tags=["Books"])
async def get_books(request: Request):
    """
    Get books with filtering, sorting, field selection and pagination.

    - **<field>=value**: equality filter, repeat the key for any-of matching
    - **<field>[gte|gt|lte|lt]=value**: comparison filter (publishedYear, averageRating, ratingCount, totalRating, createdAt)
    - **sort**: comma-separated fields, `-` prefix for descending (default `-createdAt`)
    - **fields**: comma-separated fields to return, or `-field` to leave out
    - **page**: page number (default 1)
    - **limit**: items per page (default 10)
    """
    result = await get_db_service().get_books(request.query_params.multi_items())
    return render(result)


@app.get("/api/books/featured", response_model=BookListResponse, tags=["Books"])
async def get_featured_books():
    """Get featured books."""
    return render(await get_db_service().get_featured_books())


@app.get("/api/books/{book_id}", response_model=BookDetailResponse, tags=["Books"])
async def get_book(book_id: str):
    """Get a single book with its reviews."""
    book = await get_db_service().get_book_by_id(book_id)
    return render(BookDetailResponse(data=BookData(book=book)))


@app.post("/api/books", response_model=BookDetailResponse, status_code=201, tags=["Books"])
async def create_book(payload: BookCreate, identity: Identity = Depends(get_current_identity)):
    """Add a book (admin only)."""
    book = await get_db_service().create_book(identity, payload)
    return render(BookDetailResponse(data=BookData(book=book)), status.HTTP_201_CREATED)


@app.put("/api/books/{book_id}", response_model=BookDetailResponse, tags=["Books"])
async def update_book(book_id: str, payload: BookUpdate, identity: Identity = Depends(get_current_identity)):
    """Update a book (admin only)."""
    book = await get_db_service().update_book(identity, book_id, payload)
    return render(BookDetailResponse(data=BookData(book=book)))


@app.delete("/api/books/{book_id}", status_code=204, tags=["Books"])
async def delete_book(book_id: str, identity: Identity = Depends(get_current_identity)):
    """Delete a book and its reviews (admin only)."""
    await get_db_service().delete_book(identity, book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Review endpoints
@app.get("/api/reviews", response_model=ReviewListResponse, tags=["Reviews"])
async def get_reviews(book_id: Optional[str] = Query(None, alias="bookId")):
    """
    Get reviews, newest first.

    - **bookId**: only reviews of this book
    """
    reviews = await get_db_service().get_reviews(book_id)
    return render(ReviewListResponse(results=len(reviews), data=ReviewListData(reviews=reviews)))


@app.get("/api/reviews/{review_id}", response_model=ReviewDetailResponse, tags=["Reviews"])
async def get_review(review_id: str):
    """Get a single review."""
    review = await get_db_service().get_review_by_id(review_id)
    return render(ReviewDetailResponse(data=ReviewData(review=review)))


@app.post("/api/reviews", response_model=ReviewDetailResponse, status_code=201, tags=["Reviews"])
async def create_review(payload: ReviewCreate, identity: Identity = Depends(get_current_identity)):
    """Review a book. Each user can review a book once."""
    review = await get_db_service().create_review(identity, payload)
    return render(ReviewDetailResponse(data=ReviewData(review=review)), status.HTTP_201_CREATED)


@app.put("/api/reviews/{review_id}", response_model=ReviewDetailResponse, tags=["Reviews"])
async def update_review(review_id: str, payload: ReviewUpdate, identity: Identity = Depends(get_current_identity)):
    """Update a review (author only)."""
    review = await get_db_service().update_review(identity, review_id, payload)
    return render(ReviewDetailResponse(data=ReviewData(review=review)))


@app.delete("/api/reviews/{review_id}", status_code=204, tags=["Reviews"])
async def delete_review(review_id: str, identity: Identity = Depends(get_current_identity)):
    """Delete a review (author or admin)."""
    await get_db_service().delete_review(identity, review_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
