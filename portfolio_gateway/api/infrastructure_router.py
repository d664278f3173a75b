"""
Infrastructure Monitoring Router
Health checks, counters and error statistics
"""

from fastapi import APIRouter, Depends
from datetime import datetime

from .. import __version__
from ..infrastructure.database import HealthChecker
from ..infrastructure.errors import error_tracker
from ..services.aggregation_gateway import AggregationGateway
from .dependencies import get_gateway, get_health_checker

router = APIRouter(prefix="/api/v1/infrastructure", tags=["Infrastructure"])

_start_time = datetime.now()


# ============================================
# HEALTH CHECKS
# ============================================

@router.get("/health")
async def health_check():
    """
    Basic health check - returns 200 if API is running.
    Use for load balancer health checks.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": __version__
    }


@router.get("/health/detailed")
async def detailed_health_check(health: HealthChecker = Depends(get_health_checker)):
    """Checks the store connection."""
    return await health.check_all()


# ============================================
# METRICS
# ============================================

@router.get("/stats")
async def get_stats(gateway: AggregationGateway = Depends(get_gateway)):
    """Account-age cache counters and upstream call counters."""
    return {
        **gateway.get_stats(),
        "uptime_seconds": (datetime.now() - _start_time).total_seconds(),
        "timestamp": datetime.now().isoformat()
    }


@router.get("/errors/stats")
async def get_error_stats():
    """Get error statistics"""
    return error_tracker.get_stats()
