"""
FastAPI dependencies resolving the objects built in the app lifespan.
"""

from fastapi import Request

from ..infrastructure.database import HealthChecker
from ..services.aggregation_gateway import AggregationGateway


def get_gateway(request: Request) -> AggregationGateway:
    return request.app.state.gateway


def get_health_checker(request: Request) -> HealthChecker:
    return request.app.state.health_checker
