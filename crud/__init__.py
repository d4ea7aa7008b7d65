"""
CRUD App: Application Package
=============================

What: Session-authenticated CRUD service for User and Account records.
Who:  Imported by uvicorn (``crud.main:app``), Alembic, and the test suite.

Layering:

    ┌─────────────────────────────────────┐
    │      Middleware Pipeline            │  ← recovery, logging, headers,
    │                                     │    CORS, rate limit, timeout,
    │                                     │    session attachment
    ├─────────────────────────────────────┤
    │      Routes (HTTP + auth gate)      │  ← thin handlers
    ├─────────────────────────────────────┤
    │      Services / Session / OAuth     │  ← validation and flow logic
    ├─────────────────────────────────────┤
    │      Models & Schemas (Data)        │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │      Database (Persistence)         │  ← async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
