"""
Database Initialization Script

Creates the SQLite qr_payments table for the QR payment service.
"""
import logging
import sqlite3
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from ..config import settings

logger = logging.getLogger(__name__)


def create_tables(conn: sqlite3.Connection) -> None:
    """
    Create the qr_payments table with indexes.

    Also enables WAL mode for better concurrency.
    """
    cursor = conn.cursor()

    # Enable WAL mode for better concurrency (prevents most locking issues)
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 second timeout
    cursor.execute("PRAGMA synchronous=NORMAL")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS qr_payments (
            transaction_id TEXT PRIMARY KEY,
            order_id TEXT,
            amount NUMERIC(12, 2) NOT NULL CHECK(amount > 0),
            currency TEXT NOT NULL DEFAULT 'PHP',
            merchant_id TEXT NOT NULL,
            description TEXT,
            customer_name TEXT,
            customer_email TEXT,
            customer_phone TEXT,
            payment_method TEXT NOT NULL DEFAULT 'qr_payment',
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK(status IN ('pending', 'completed', 'expired', 'cancelled')),
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            expires_at TIMESTAMP NOT NULL,
            completed_at TIMESTAMP,
            cancelled_at TIMESTAMP,
            cancelled_reason TEXT,
            gateway_transaction_id TEXT,
            gateway_reference TEXT,
            payment_gateway TEXT,
            gateway_response TEXT
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_qr_payments_status ON qr_payments(status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_qr_payments_created ON qr_payments(created_at DESC)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_qr_payments_order_id ON qr_payments(order_id)")

    conn.commit()
    logger.info("qr_payments table ready")


def initialize_database():
    """
    Initialize the database with all required tables.

    This function is called during FastAPI startup.
    """
    db_path = Path(settings.database_path)

    logger.info(f"Initializing database at: {db_path}")

    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        create_tables(conn)
    finally:
        conn.close()


# ============================================================================
# SQLAlchemy Async Session Setup for FastAPI
# ============================================================================

DATABASE_URL = f"sqlite+aiosqlite:///{settings.database_path}"
engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args={
        "timeout": 30,  # 30 second timeout for lock acquisition
        "check_same_thread": False
    },
    pool_pre_ping=True,
    pool_recycle=3600
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions in FastAPI.

    Usage:
        @router.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


# Alias for FastAPI Depends
get_db = get_async_session


def main():
    """CLI entry point for initializing database."""
    logging.basicConfig(level=logging.INFO)
    initialize_database()


if __name__ == "__main__":
    main()
