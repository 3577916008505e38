"""
User API Backend — Application Package Initializer
===================================================

Architecture Note:
    ┌─────────────────────────────────────────┐
    │  Hosting adapters (FastAPI / Lambda)    │  ← app.adapters, app.main, app.lambda_handler
    ├─────────────────────────────────────────┤
    │  Request pipeline (middleware stages)   │  ← errors, correlation id, logging, CORS, rate limit
    ├─────────────────────────────────────────┤
    │  Business handlers                      │  ← app.routes
    ├─────────────────────────────────────────┤
    │  Services (business logic)              │  ← users, email, health, counters
    ├─────────────────────────────────────────┤
    │  Models & Schemas (data)                │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────────┤
    │  Database (persistence)                 │  ← async SQLAlchemy sessions
    └─────────────────────────────────────────┘

    Handlers never see the hosting platform; each layer is testable on its own.
"""

__version__ = "1.0.0"
