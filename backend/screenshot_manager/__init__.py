"""
Screenshot Manager API - Package Initializer
============================================

What: Marks `screenshot_manager` as a Python package and carries the version.
Who:  Imported by uvicorn (`screenshot_manager.main:app`), pytest and the health route.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │    Services (Token, Metadata, ...)  │  ← Business rules
    ├─────────────────────────────────────┤
    │          Schemas (Pydantic)         │  ← API contracts
    ├─────────────────────────────────────┤
    │     Storage (S3 / local backends)   │  ← Object store access
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
