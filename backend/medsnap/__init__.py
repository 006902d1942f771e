"""
MedSnap Backend — Application Package Initializer
==================================================

What: Marks the `medsnap` directory as a Python package.
Why:  Enables module imports like `from medsnap.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend is a personal clinical-document library with a freemium gate:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Catalog, Quota Gate,    │  ← Business rules, sequencing
    │   Subscription Reconciler)          │
    ├─────────────────────────────────────┤
    │   Adapters (Data Store, Blob        │  ← SQLAlchemy rows, object storage,
    │   Storage, Payment Gateway)         │    Stripe
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Services never reach for module-level singletons of the adapters; they
    receive them through constructors, and routes wire them together with
    FastAPI dependencies (see medsnap/dependencies.py).
"""

__version__ = "1.0.0"
