"""
FastAPI REST API for the Library Management System.

This package provides:
- Authors, books, copies and borrowing endpoints
- Users and shopping carts
- CRUD usage statistics collected by middleware
- API key-based authentication
"""
