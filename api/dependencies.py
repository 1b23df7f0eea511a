"""
FastAPI dependencies
"""

from typing import AsyncGenerator
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import get_session
from ingestion.loaders.repository import ProductRepository
from ingestion.loaders.sqlalchemy_repository import SQLAlchemyProductRepository


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


async def get_repository(db: AsyncSession = Depends(get_db)) -> ProductRepository:
    """Repository bound to the request's session"""
    return SQLAlchemyProductRepository(db)
