"""Routers for the library resources and CRUD statistics."""
