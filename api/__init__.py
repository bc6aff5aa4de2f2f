"""
FastAPI RESTful API for the Book Review Platform.

This module provides a REST API for:
- Book catalog browsing with filtering, sorting, field selection and pagination
- Reviews with book rating statistics kept in sync
- Registration, login and bearer token authentication
- Profile management with ownership and role checks
"""
