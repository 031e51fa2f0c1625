"""
AiNote Backend — Application Package Initializer
==================================================

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, admission
    ├─────────────────────────────────────┤
    │    Services (Workflow, Supervisor)  │  ← Orchestration, readiness
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │  Dependency handles (Store, Gemini) │  ← Connection state per dependency
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
