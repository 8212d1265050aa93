"""
Database package initialization.

The package follows a modular structure:
- base: declarative base and common mixins
- connection: async engine and session factory management
- models: SQLAlchemy ORM models for orders, items and receipts
"""

__all__ = []
