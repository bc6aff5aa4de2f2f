"""
Database service layer for the FastAPI application.

One method per API operation. Mutations are authorized with the ownership
guard, and every review mutation is followed by a rating recomputation of the
review's book.
"""

from typing import Any, Dict, Iterable, List, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from api.auth import hash_password, verify_password
from api.models import (
    BookCreate, BookUpdate, BookResponse, BookListResponse, BookListData,
    ReviewCreate, ReviewUpdate, ReviewResponse, RegisterRequest, UserUpdate, UserResponse
)
from catalog.database import BOOKS, REVIEWS, USERS, serialize_document, to_object_id
from catalog.errors import (
    AuthenticationRequired, AuthorizationFailure, DuplicateConflict,
    NotFoundError, ValidationFailure
)
from catalog.guard import Action, ResourceKind, can_mutate
from catalog.models import BookDocument, Identity, ReviewDocument, UserDocument
from catalog.query_features import BOOK_QUERY_FIELDS, QueryFeatures
from catalog.ratings import RatingAggregator
from utilities.config import AppConfig, config as app_config

logger = structlog.get_logger(__name__)

REVIEW_SORT = [("created_at", DESCENDING), ("_id", DESCENDING)]
OPTIONAL_BOOK_TEXT = ("publisher", "isbn")


class APIDatabaseService:
    """Database service for API operations."""

    def __init__(self, database: AsyncIOMotorDatabase, settings: AppConfig = app_config):
        self.database = database
        self.settings = settings
        self.users_collection = database[USERS]
        self.books_collection = database[BOOKS]
        self.reviews_collection = database[REVIEWS]
        self.ratings = RatingAggregator(database)
        self.book_query = QueryFeatures(
            BOOK_QUERY_FIELDS,
            default_sort="-createdAt",
            default_limit=settings.default_page_limit,
            max_limit=settings.max_page_limit
        )

    # Users

    @staticmethod
    def _user_response(document: Dict[str, Any]) -> UserResponse:
        return UserResponse.model_validate(serialize_document(document))

    async def _find_user(self, user_id: str) -> Dict[str, Any]:
        user = await self.users_collection.find_one({"_id": to_object_id(user_id)})
        if not user:
            raise NotFoundError("No user found with that ID")
        return user

    async def register_user(self, payload: RegisterRequest) -> UserResponse:
        """
        Create a regular user account.

        Raises:
            DuplicateConflict: If the email is already registered
        """
        user = UserDocument(
            username=payload.username,
            email=payload.email,
            password_hash=hash_password(payload.password),
            profile_picture=payload.profile_picture or "default-user.jpg",
            bio=payload.bio
        )
        if await self.users_collection.find_one({"email": user.email}):
            raise DuplicateConflict("Email already registered")

        document = user.to_document()
        try:
            result = await self.users_collection.insert_one(document)
        except DuplicateKeyError:
            raise DuplicateConflict("Email already registered")

        document["_id"] = result.inserted_id
        logger.info("User registered", user_id=str(result.inserted_id))
        return self._user_response(document)

    async def authenticate(self, email: Optional[str], password: Optional[str]) -> UserResponse:
        """
        Check login credentials.

        Raises:
            ValidationFailure: If email or password is missing
            AuthenticationRequired: If the credentials do not match
        """
        if not email or not password:
            raise ValidationFailure("Please provide email and password")

        user = await self.users_collection.find_one({"email": email.strip().lower()})
        if not user or not verify_password(password, user.get("password_hash", "")):
            logger.warning("Failed login attempt", email=email)
            raise AuthenticationRequired("Incorrect email or password")

        return self._user_response(user)

    async def get_identity(self, user_id: str) -> Optional[Identity]:
        """Resolve a user id from a token to an acting identity, None if unknown."""
        try:
            user = await self.users_collection.find_one({"_id": to_object_id(user_id)}, {"role": 1})
        except ValidationFailure:
            return None
        if not user:
            return None
        return Identity(id=str(user["_id"]), role=user.get("role", "user"))

    async def get_user(self, user_id: str) -> UserResponse:
        return self._user_response(await self._find_user(user_id))

    async def update_user(self, identity: Identity, user_id: str, payload: UserUpdate) -> UserResponse:
        """
        Update profile fields of a user.

        Raises:
            AuthorizationFailure: Unless the identity is the user or an admin
            NotFoundError: If the user does not exist
            DuplicateConflict: If the new email is already registered
        """
        if not can_mutate(identity, user_id, Action.UPDATE, ResourceKind.USER):
            raise AuthorizationFailure("You do not have permission to update this profile")

        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        user_oid = to_object_id(user_id)
        if not changes:
            return await self.get_user(user_id)

        try:
            user = await self.users_collection.find_one_and_update(
                {"_id": user_oid},
                {"$set": changes},
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise DuplicateConflict("Email already registered")

        if not user:
            raise NotFoundError("No user found with that ID")

        logger.info("User updated", user_id=user_id, fields=sorted(changes))
        return self._user_response(user)

    async def delete_user(self, identity: Identity, user_id: str) -> None:
        """
        Delete a user account.

        Raises:
            AuthorizationFailure: Unless the identity is the user or an admin
            NotFoundError: If the user does not exist
        """
        if not can_mutate(identity, user_id, Action.DELETE, ResourceKind.USER):
            raise AuthorizationFailure("You do not have permission to delete this profile")

        user = await self.users_collection.find_one_and_delete({"_id": to_object_id(user_id)})
        if not user:
            raise NotFoundError("No user found with that ID")

        logger.info("User deleted", user_id=user_id, deleted_by=identity.id)

    # Books

    @staticmethod
    def _book_response(document: Dict[str, Any]) -> BookResponse:
        return BookResponse.model_validate(serialize_document(document))

    async def get_books(self, params: Iterable) -> BookListResponse:
        """
        Get books with filtering, sorting, field selection and pagination.

        Args:
            params: Raw query parameters as (key, value) pairs or a mapping

        Returns:
            BookListResponse with the requested page and the total match count
        """
        plan = self.book_query.build(params)
        try:
            documents, total = await plan.execute(self.books_collection)
        except Exception as e:
            logger.error("Failed to get books", error=str(e), filter=str(plan.filter))
            raise

        books = [self._book_response(document) for document in documents]
        return BookListResponse(
            results=len(books),
            total=total,
            page=plan.page,
            limit=plan.limit,
            data=BookListData(books=books)
        )

    async def get_featured_books(self) -> BookListResponse:
        """Get the newest featured books, at most `featured_limit` of them."""
        plan = self.book_query.build({}, base_filter={"featured": True}, limit=self.settings.featured_limit)
        documents, _ = await plan.execute(self.books_collection)

        books = [self._book_response(document) for document in documents]
        return BookListResponse(results=len(books), data=BookListData(books=books))

    async def get_book_by_id(self, book_id: str) -> BookResponse:
        """
        Get a single book together with its reviews.

        Raises:
            NotFoundError: If the book does not exist
        """
        book_oid = to_object_id(book_id)
        document = await self.books_collection.find_one({"_id": book_oid})
        if not document:
            raise NotFoundError("No book found with that ID")

        book = self._book_response(document)
        book.reviews = await self._get_reviews({"book": book_oid})
        return book

    async def create_book(self, identity: Identity, payload: BookCreate) -> BookResponse:
        """
        Add a book to the catalog, owned by the acting admin.

        Raises:
            AuthorizationFailure: Unless the identity is an admin
            DuplicateConflict: If the ISBN is already used
        """
        if not can_mutate(identity, None, Action.CREATE, ResourceKind.BOOK):
            raise AuthorizationFailure()

        fields = payload.model_dump(exclude_none=True)
        book = BookDocument(**fields, created_by=identity.id)
        document = book.to_document()

        try:
            result = await self.books_collection.insert_one(document)
        except DuplicateKeyError:
            raise DuplicateConflict("A book with this ISBN already exists")

        document["_id"] = result.inserted_id
        logger.info("Book created", book_id=str(result.inserted_id), created_by=identity.id)
        return self._book_response(document)

    async def update_book(self, identity: Identity, book_id: str, payload: BookUpdate) -> BookResponse:
        """
        Update catalog fields of a book. Rating fields are not writable.

        Raises:
            AuthorizationFailure: Unless the identity is an admin
            NotFoundError: If the book does not exist
            DuplicateConflict: If the new ISBN is already used
        """
        if not can_mutate(identity, None, Action.UPDATE, ResourceKind.BOOK):
            raise AuthorizationFailure()

        book_oid = to_object_id(book_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        for key in ("title", "author", "description", "publisher", "isbn"):
            if key in changes:
                changes[key] = changes[key].strip()

        # A blank optional value clears the field; a stored "" would collide on the isbn index
        cleared = {key: "" for key in OPTIONAL_BOOK_TEXT if key in changes and not changes[key]}
        for key in cleared:
            del changes[key]

        update = {}
        if changes:
            update["$set"] = changes
        if cleared:
            update["$unset"] = cleared

        if update:
            try:
                document = await self.books_collection.find_one_and_update(
                    {"_id": book_oid},
                    update,
                    return_document=ReturnDocument.AFTER
                )
            except DuplicateKeyError:
                raise DuplicateConflict("A book with this ISBN already exists")
        else:
            document = await self.books_collection.find_one({"_id": book_oid})

        if not document:
            raise NotFoundError("No book found with that ID")

        logger.info("Book updated", book_id=book_id, fields=sorted(changes), cleared=sorted(cleared))
        return self._book_response(document)

    async def delete_book(self, identity: Identity, book_id: str) -> None:
        """
        Delete a book and its reviews.

        Raises:
            AuthorizationFailure: Unless the identity is an admin
            NotFoundError: If the book does not exist
        """
        if not can_mutate(identity, None, Action.DELETE, ResourceKind.BOOK):
            raise AuthorizationFailure()

        book_oid = to_object_id(book_id)
        document = await self.books_collection.find_one_and_delete({"_id": book_oid})
        if not document:
            raise NotFoundError("No book found with that ID")

        result = await self.reviews_collection.delete_many({"book": book_oid})
        logger.info("Book deleted", book_id=book_id, reviews_deleted=result.deleted_count)

    # Reviews

    async def _attach_reviewers(self, documents: List[Dict[str, Any]]) -> List[ReviewResponse]:
        """Replace each review's user id with the author's public summary."""
        user_ids = list({document["user"] for document in documents if document.get("user")})
        reviewers = {}
        if user_ids:
            cursor = self.users_collection.find(
                {"_id": {"$in": user_ids}},
                {"username": 1, "profile_picture": 1}
            )
            for user in await cursor.to_list(length=None):
                reviewers[user["_id"]] = serialize_document(user)

        reviews = []
        for document in documents:
            review = serialize_document(document)
            review["user"] = reviewers.get(document.get("user"))
            reviews.append(ReviewResponse.model_validate(review))
        return reviews

    async def _get_reviews(self, query: Dict[str, Any]) -> List[ReviewResponse]:
        cursor = self.reviews_collection.find(query).sort(REVIEW_SORT)
        documents = await cursor.to_list(length=None)
        return await self._attach_reviewers(documents)

    async def _find_review(self, review_id: str) -> Dict[str, Any]:
        review = await self.reviews_collection.find_one({"_id": to_object_id(review_id)})
        if not review:
            raise NotFoundError("No review found with that ID")
        return review

    async def get_reviews(self, book_id: Optional[str] = None) -> List[ReviewResponse]:
        """Get all reviews, newest first, optionally only those of one book."""
        query = {}
        if book_id:
            query["book"] = to_object_id(book_id)
        return await self._get_reviews(query)

    async def get_review_by_id(self, review_id: str) -> ReviewResponse:
        reviews = await self._attach_reviewers([await self._find_review(review_id)])
        return reviews[0]

    async def create_review(self, identity: Identity, payload: ReviewCreate) -> ReviewResponse:
        """
        Create a review by the acting user and recompute the book's ratings.

        Raises:
            NotFoundError: If the book does not exist
            DuplicateConflict: If the user already reviewed the book
            RatingRecomputeError: If the book's ratings could not be updated
        """
        if not can_mutate(identity, identity.id, Action.CREATE, ResourceKind.REVIEW):
            raise AuthorizationFailure()

        book_oid = to_object_id(payload.book)
        if not await self.books_collection.find_one({"_id": book_oid}, {"_id": 1}):
            raise NotFoundError("No book found with that ID")

        review = ReviewDocument(
            book=payload.book,
            user=identity.id,
            rating=payload.rating,
            review=payload.review,
            final_review=payload.final_review,
            ai_refined_review=payload.ai_refined_review
        )
        document = review.to_document()

        try:
            result = await self.reviews_collection.insert_one(document)
        except DuplicateKeyError:
            raise DuplicateConflict("You have already reviewed this book")

        document["_id"] = result.inserted_id
        logger.info("Review created", review_id=str(result.inserted_id), book_id=payload.book, user_id=identity.id)

        await self.ratings.recompute(book_oid)
        return ReviewResponse.model_validate(serialize_document(document))

    async def update_review(self, identity: Identity, review_id: str, payload: ReviewUpdate) -> ReviewResponse:
        """
        Update a review owned by the acting user and recompute the book's ratings.

        Raises:
            NotFoundError: If the review does not exist
            AuthorizationFailure: Unless the identity wrote the review
            RatingRecomputeError: If the book's ratings could not be updated
        """
        review = await self._find_review(review_id)
        if not can_mutate(identity, str(review["user"]), Action.UPDATE, ResourceKind.REVIEW):
            raise AuthorizationFailure("You do not have permission to update this review")

        book_oid = review["book"]
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "review" in changes:
            changes["review"] = changes["review"].strip()
            if not changes["review"]:
                raise ValidationFailure("Review cannot be empty")
            if not changes.get("final_review"):
                changes["final_review"] = changes["review"]

        if changes:
            updated = await self.reviews_collection.find_one_and_update(
                {"_id": review["_id"]},
                {"$set": changes},
                return_document=ReturnDocument.AFTER
            )
            if not updated:
                raise NotFoundError("No review found with that ID")
        else:
            updated = review

        logger.info("Review updated", review_id=review_id, book_id=str(book_oid), fields=sorted(changes))

        await self.ratings.recompute(book_oid)
        return ReviewResponse.model_validate(serialize_document(updated))

    async def delete_review(self, identity: Identity, review_id: str) -> None:
        """
        Delete a review and recompute the book's ratings.

        Raises:
            NotFoundError: If the review does not exist
            AuthorizationFailure: Unless the identity wrote the review or is an admin
            RatingRecomputeError: If the book's ratings could not be updated
        """
        review = await self._find_review(review_id)
        if not can_mutate(identity, str(review["user"]), Action.DELETE, ResourceKind.REVIEW):
            raise AuthorizationFailure("You do not have permission to delete this review")

        # The book reference is gone with the review, keep it for the recompute
        book_oid = review["book"]
        result = await self.reviews_collection.delete_one({"_id": review["_id"]})
        if not result.deleted_count:
            raise NotFoundError("No review found with that ID")

        logger.info("Review deleted", review_id=review_id, book_id=str(book_oid), deleted_by=identity.id)

        await self.ratings.recompute(book_oid)

    # Health

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")

            return {
                "status": "healthy",
                "users_count": await self.users_collection.count_documents({}),
                "books_count": await self.books_collection.count_documents({}),
                "reviews_count": await self.reviews_collection.count_documents({}),
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
