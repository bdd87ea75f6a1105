"""
Database package for the QR payment service.

Exports database initialization, models, repository, and session management.
"""
from .init_db import initialize_database, get_db, get_async_session
from .models import Base, QRPaymentModel
from .repository import QRPaymentRepository

__all__ = [
    "initialize_database",
    "get_db",
    "get_async_session",
    "Base",
    "QRPaymentModel",
    "QRPaymentRepository",
]
