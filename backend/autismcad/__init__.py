"""
AutismCad Backend — Application Package
========================================

What: Clinic management API (patients, therapists, sessions, clinical record, reports).
Who:  Imported by uvicorn (`autismcad.main:app`), Alembic, the seed command and pytest.

Layers:
    routes/    HTTP concerns only (status codes, headers, guards)
    services/  business rules, one module per resource
    auth/      roles, permissions, sessions and patient access checks
    models/    SQLAlchemy tables; schemas/ holds the Pydantic request bodies
    database   async engine and per-request session
"""

__version__ = "1.0.0"
