"""
WhisperLog Backend — Application Package Initializer
======================================================

What: Marks the `whisperlog` directory as a Python package.
Why:  Enables module imports like `from whisperlog.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend turns free-form text or voice notes into documents shaped by a
    user-owned markdown template. It follows the same layered layout throughout:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Orchestrator, Stores)   │  ← Retry policy, ownership, queries
    ├─────────────────────────────────────┤
    │   Provider Adapters (Claude, GPT,   │  ← One integration per AI vendor
    │   Gemini)                           │
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Adapters and stores are built once by the application factory and handed
    to the orchestrator explicitly, so tests can swap any of them.
"""

__version__ = "1.0.0"
