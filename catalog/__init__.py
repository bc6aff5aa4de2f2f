"""
Catalog package: the domain core of the book review platform.

This package contains:
- Domain documents for users, books and reviews
- Query feature builder (filter, sort, field selection, pagination)
- Rating aggregation for books
- Ownership and role guard
- MongoDB connection and index management
"""

__version__ = "1.0.0"
