"""
Health check endpoint with database and data integrity status
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_repository
from ingestion.loaders.product_loader import ProductLoader
from ingestion.loaders.repository import ProductRepository
from schemas.api import HealthCheckResponse
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(repository: ProductRepository = Depends(get_repository)):
    """
    Health check endpoint.
    
    Returns:
    - Database connectivity status
    - Result of the stored-data integrity sweep
    """
    db_connected = await repository.ping()

    integrity = None
    if db_connected:
        integrity = await ProductLoader(repository).validate_data_integrity()
        if not integrity.is_valid:
            logger.warning(f"Integrity issues: {'; '.join(integrity.issues)}")

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        integrity=integrity
    )
