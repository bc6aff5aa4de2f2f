#!/usr/bin/env python3
"""
Sample Data Management Utility

This script fills or empties the database:
- import  - Replace all users, books and reviews with the sample data set
- destroy - Delete all users, books and reviews
"""

import asyncio
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from motor.motor_asyncio import AsyncIOMotorDatabase

from api.auth import hash_password
from catalog.database import BOOKS, REVIEWS, USERS, MongoDBManager
from catalog.models import BookDocument, ReviewDocument, UserDocument, UserRole
from catalog.ratings import RatingAggregator
from utilities.config import config
from utilities.logger import setup_logging, get_logger

logger = get_logger(__name__)

SAMPLE_PASSWORD = "password123"

SAMPLE_USERS = [
    {"username": "admin", "email": "admin@example.com", "role": UserRole.ADMIN, "bio": "Admin user for the platform"},
    {"username": "user1", "email": "user1@example.com", "bio": "Regular book lover"},
    {"username": "user2", "email": "user2@example.com", "bio": "Avid reader and reviewer"},
]

SAMPLE_BOOKS = [
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "description": "A 1925 novel of the Jazz Age on Long Island, narrated by Nick Carraway, "
                       "about the mysterious millionaire Jay Gatsby and his obsession with Daisy Buchanan.",
        "genre": ["Fiction", "Classic", "Literary Fiction"],
        "published_year": 1925,
        "publisher": "Charles Scribner's Sons",
        "isbn": "9780743273565",
        "featured": True,
    },
    {
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "description": "A Pulitzer Prize winning novel published in 1960 and a classic of modern "
                       "American literature.",
        "genre": ["Fiction", "Classic", "Coming-of-age"],
        "published_year": 1960,
        "publisher": "J. B. Lippincott & Co.",
        "isbn": "9780061120084",
        "featured": True,
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "description": "A dystopian novel about totalitarianism, mass surveillance and repressive "
                       "regimentation, published in 1949.",
        "genre": ["Fiction", "Dystopian", "Science Fiction", "Classic"],
        "published_year": 1949,
        "publisher": "Secker & Warburg",
        "isbn": "9780451524935",
        "featured": True,
    },
    {
        "title": "Pride and Prejudice",
        "author": "Jane Austen",
        "description": "An 1813 romantic novel of manners following Elizabeth Bennet.",
        "genre": ["Fiction", "Classic", "Romance"],
        "published_year": 1813,
        "publisher": "T. Egerton",
        "isbn": "9780141439518",
        "featured": False,
    },
    {
        "title": "The Hobbit",
        "author": "J.R.R. Tolkien",
        "description": "A children's fantasy novel published on 21 September 1937 to wide critical acclaim.",
        "genre": ["Fiction", "Fantasy", "Adventure"],
        "published_year": 1937,
        "publisher": "George Allen & Unwin",
        "isbn": "9780547928227",
        "featured": False,
    },
    {
        "title": "Harry Potter and the Philosopher's Stone",
        "author": "J.K. Rowling",
        "description": "The first novel in the Harry Potter series, following a young wizard who "
                       "discovers his magical heritage.",
        "genre": ["Fiction", "Fantasy", "Young Adult"],
        "published_year": 1997,
        "publisher": "Bloomsbury",
        "isbn": "9780747532699",
        "featured": True,
    },
]

# (book index, user index, rating, text)
SAMPLE_REVIEWS = [
    (0, 1, 5, "This book is a masterpiece of American literature. Fitzgerald's prose is elegant "
              "and evocative, painting a vivid picture of the Jazz Age."),
    (1, 1, 5, "A timeless classic that everyone should read. The characters are complex and the "
              "story is as relevant today as it was when it was published."),
    (2, 2, 4, "Orwell's dystopian vision is chillingly prophetic. The concept of Big Brother has "
              "permeated our culture and vocabulary."),
    (3, 2, 5, "One of my favorite books of all time. The wit and social commentary are brilliant."),
]


async def import_data(database: AsyncIOMotorDatabase) -> Dict[str, int]:
    """
    Insert the sample users, books and reviews and compute book ratings.

    Returns:
        Number of inserted documents per collection
    """
    password_hash = hash_password(SAMPLE_PASSWORD)
    users = [UserDocument(password_hash=password_hash, **user).to_document() for user in SAMPLE_USERS]
    user_ids = (await database[USERS].insert_many(users)).inserted_ids
    admin_id = str(user_ids[0])

    # Spread creation times so the default newest-first order is deterministic
    now = datetime.utcnow()
    books: List[dict] = []
    for index, book in enumerate(SAMPLE_BOOKS):
        created_at = now - timedelta(minutes=len(SAMPLE_BOOKS) - index)
        books.append(BookDocument(created_by=admin_id, created_at=created_at, **book).to_document())
    book_ids = (await database[BOOKS].insert_many(books)).inserted_ids

    reviews = [
        ReviewDocument(book=str(book_ids[book]), user=str(user_ids[user]), rating=rating, review=text).to_document()
        for book, user, rating, text in SAMPLE_REVIEWS
    ]
    await database[REVIEWS].insert_many(reviews)

    aggregator = RatingAggregator(database)
    for book_id in book_ids:
        await aggregator.recompute(book_id)

    counts = {USERS: len(users), BOOKS: len(books), REVIEWS: len(reviews)}
    logger.info("Sample data imported", **counts)
    return counts


async def main():
    """Main function."""
    if len(sys.argv) < 2 or sys.argv[1].lower() not in ("import", "destroy"):
        print("Usage: python manage_seed.py [import|destroy]")
        print()
        print("Commands:")
        print("  import   - Replace all data with the sample data set")
        print("  destroy  - Delete all users, books and reviews")
        sys.exit(1)

    command = sys.argv[1].lower()

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    db_manager = MongoDBManager(config.mongodb_url, config.mongodb_database)
    try:
        database = await db_manager.connect()
        await db_manager.clear_collections()

        if command == "import":
            counts = await import_data(database)
            print(f"✅ Data imported successfully: {counts}")
            print(f"ℹ️  All sample accounts use the password '{SAMPLE_PASSWORD}'")
        else:
            print("✅ Data destroyed successfully")

    except Exception as e:
        logger.error("Seeding failed", command=command, error=str(e))
        print(f"❌ Error: {e}")
        sys.exit(1)
    finally:
        await db_manager.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
