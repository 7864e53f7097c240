# lms_analytics/core/database.py
"""Database connection and session management using SQLAlchemy."""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
import logging

from .config import settings

logger = logging.getLogger(__name__)

# Cohort batch jobs hold connections for long loops, so the pool is sized for them
engine = create_async_engine(
    settings.database_url,
    pool_size=8,
    max_overflow=12,
    pool_timeout=120,
    pool_recycle=3600,
    pool_pre_ping=True,
    echo=(settings.environment == 'development' and settings.log_level == 'debug'),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
    autoflush=False,
)

async def close_db_connections():
    """Properly close all database connections"""
    await engine.dispose()
    logger.info("Database connections closed")
