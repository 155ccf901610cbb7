"""
Database health and statistics endpoints
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from tour_admin.core.context import ServiceContext, get_context
from tour_admin.core.security import get_current_admin
from tour_admin.db.models import Collection

logger = logging.getLogger(__name__)
router = APIRouter()

# Collections shown in the back-office
CONTENT_COLLECTIONS = [
    Collection.TOURS, Collection.ARTICLES, Collection.BOOKINGS, Collection.REVIEWS, Collection.USERS,
]


@router.get("/health",
    responses={
        200: {"description": "Database is healthy"},
        503: {"description": "Database is unhealthy"}
    },
    summary="Database health check",
    description="Check database connectivity and connection pool status"
)
async def get_database_health(context: ServiceContext = Depends(get_context)):
    """Get comprehensive database health information"""
    health_info = await context.db.health_check()
    code = status.HTTP_200_OK if health_info["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=health_info)


@router.get("/stats",
    dependencies=[Depends(get_current_admin)],
    responses={
        200: {"description": "Connection statistics and document counts"},
        500: {"description": "Failed to retrieve statistics"}
    },
    summary="Database statistics",
    description="Connection pool statistics plus the number of documents in each collection"
)
async def get_database_statistics(context: ServiceContext = Depends(get_context)):
    try:
        stats = context.db.get_connection_stats()
        stats["documents"] = {
            collection.value: await context.store.count(collection.value)
            for collection in CONTENT_COLLECTIONS
        }
        return stats

    except Exception as e:
        logger.error(f"Failed to retrieve database statistics: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve database statistics"
        )
