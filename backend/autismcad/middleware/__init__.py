"""
AutismCad Backend — Middleware Package
=======================================

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

Rate limiting runs first so abusive clients are rejected before any work;
the request ID is generated before logging so every access line carries it.
"""
