"""
Tests for the sample data utility.
"""

import pytest
from bson import ObjectId

from catalog.database import BOOKS, REVIEWS, USERS
from manage_seed import SAMPLE_BOOKS, SAMPLE_REVIEWS, SAMPLE_USERS, import_data


@pytest.mark.asyncio
async def test_import_data(database):
    counts = await import_data(database)

    assert counts == {USERS: len(SAMPLE_USERS), BOOKS: len(SAMPLE_BOOKS), REVIEWS: len(SAMPLE_REVIEWS)}
    assert await database[USERS].count_documents({"role": "admin"}) == 1


@pytest.mark.asyncio
async def test_import_data_computes_ratings(database):
    await import_data(database)

    orwell = await database[BOOKS].find_one({"isbn": "9780451524935"})
    hobbit = await database[BOOKS].find_one({"isbn": "9780547928227"})

    assert (orwell["rating_count"], orwell["total_rating"], orwell["average_rating"]) == (1, 4, 4.0)
    assert hobbit["rating_count"] == 0
    assert isinstance(orwell["created_by"], ObjectId)


@pytest.mark.asyncio
async def test_newest_sample_book_listed_first(database):
    await import_data(database)

    newest = await database[BOOKS].find().sort("created_at", -1).to_list(length=1)

    assert newest[0]["title"] == SAMPLE_BOOKS[-1]["title"]
