"""
Database package initialization.

The package follows a modular structure:
- base: Declarative base and common mixins
- connection: Async engine and session management
- models: SQLAlchemy ORM models for all entities
"""

__all__ = []
