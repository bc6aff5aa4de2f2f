"""
Rating aggregation for books.

A book's rating statistics are always recomputed from a full scan of its
reviews rather than incremented, so repeated or racing recomputations settle
on the true aggregate.
"""

from typing import Any, Iterable

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase

from .database import BOOKS, REVIEWS, to_object_id
from .errors import RatingRecomputeError
from .models import RatingStats

logger = structlog.get_logger(__name__)


def compute_rating_stats(ratings: Iterable[int]) -> RatingStats:
    """
    Compute count, sum and mean of a sequence of ratings in one pass.

    Args:
        ratings: Review ratings

    Returns:
        RatingStats, all zero for an empty sequence
    """
    count = 0
    total = 0
    for rating in ratings:
        count += 1
        total += rating

    average = total / count if count else 0
    return RatingStats(count=count, total=total, average=average)


class RatingAggregator:
    """Keeps the rating fields of books consistent with their reviews."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.reviews_collection = database[REVIEWS]
        self.books_collection = database[BOOKS]

    async def recompute(self, book_id: Any) -> RatingStats:
        """
        Rescan all reviews of a book and store the resulting statistics on it.

        Args:
            book_id: Identifier of the book, captured before any review deletion

        Returns:
            The statistics written to the book

        Raises:
            RatingRecomputeError: If the scan or the book update fails
        """
        book_oid = to_object_id(book_id)
        try:
            cursor = self.reviews_collection.find({"book": book_oid}, {"rating": 1})
            reviews = await cursor.to_list(length=None)
            stats = compute_rating_stats(review["rating"] for review in reviews)

            await self.books_collection.update_one(
                {"_id": book_oid},
                {"$set": stats.to_book_fields()}
            )

            logger.debug(
                "Recomputed book ratings",
                book_id=str(book_oid),
                rating_count=stats.count,
                total_rating=stats.total,
                average_rating=stats.average
            )
            return stats

        except Exception as e:
            logger.error("Failed to recompute book ratings", book_id=str(book_oid), error=str(e))
            raise RatingRecomputeError() from e
