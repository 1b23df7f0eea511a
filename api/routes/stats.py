"""
Product and ETL statistics endpoint
"""
from fastapi import APIRouter, Depends, Query, Request
from api.dependencies import get_repository
from ingestion.loaders.product_loader import ProductLoader
from ingestion.loaders.repository import ProductRepository
from schemas.api import StatsResponse
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    request: Request,
    limit: int = Query(10, ge=1, le=100, description="Number of recent jobs to return"),
    repository: ProductRepository = Depends(get_repository)
):
    """
    Get product statistics and ETL history.
    
    Returns:
    - Totals and averages over stored products
    - Category insights, largest categories first
    - Recent ETL jobs
    """
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    
    logger.info(f"[{request_id}] GET /stats")
    
    loader = ProductLoader(repository)
    
    return StatsResponse(
        request_id=request_id,
        database=await loader.get_database_stats(),
        category_insights=await repository.list_category_insights(),
        recent_jobs=await loader.get_recent_jobs(limit)
    )
