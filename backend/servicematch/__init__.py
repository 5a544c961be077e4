"""
ServiceMatch Backend - Application Package
===========================================

Semantic matching between customer service requests and provider services.

Architecture:

    ┌─────────────────────────────────────┐
    │     Routes (API) / jobs (CLI)       │  ← HTTP and batch entry points
    ├─────────────────────────────────────┤
    │  Services (matching, fan-out, ...)  │  ← Orchestration and policy
    ├─────────────────────────────────────┤
    │  Embedding provider │ Store │ Queue │  ← External collaborators
    ├─────────────────────────────────────┤
    │   Models & Schemas (Data)           │  ← SQLAlchemy ORM + Pydantic
    └─────────────────────────────────────┘

    container.py wires the layers together once per process.
"""

__version__ = "1.0.0"
