"""
API Sync Backend - Application Package
=======================================

What: Tracks API endpoint specifications declared by frontend and backend
      teams and flags the places where the two disagree.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (aggregate, detector,    │  ← Reconciliation rules
    │   store, orchestration)             │
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    The conflict detector and the reconciliation store are pure and can be
    used without a database; the aggregate works on loaded ORM objects and
    never performs I/O itself.
"""

__version__ = "1.0.0"
