"""
AutismCad Backend — Authentication & Authorization
===================================================

    permissions.py      role canonicalization and permission aliases (pure)
    password.py         bcrypt hashing with legacy SHA-256 verification
    session.py          signed session tokens
    access.py           loads a user's roles/permissions from the database
    paciente_access.py  therapist-to-patient access rule
    deps.py             FastAPI dependencies (require_user, require_permission, ...)
"""
