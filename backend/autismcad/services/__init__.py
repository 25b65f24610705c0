"""
AutismCad Backend — Services Layer
===================================

Business logic between routes (HTTP) and the database. Each service is a
stateless class with a module-level singleton; the session is passed in
per call so tests can hand in a mock.
"""
