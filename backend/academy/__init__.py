"""
Academy domain services: catalog, intakes, enrollments, payments, users and
customer contact.

Every service function takes an explicit SQLAlchemy `Session` as its first
argument and raises `backend.academy.errors.ServiceError` subclasses for
domain failures. Transactions are owned by the caller (`session_scope`).
"""
