# core/dependencies.py

"""
FastAPI dependencies shared by the routers
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from csv_aggregator.core.config import Settings
from csv_aggregator.services.aggregation_service import AggregationService

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    """Settings the running app was created with"""
    return request.app.state.settings


def get_aggregation_service(request: Request) -> AggregationService:
    """Aggregation engine owned by the running app"""
    return request.app.state.aggregation_service


async def verify_api_key(
        x_api_key: Optional[str] = Header(None),
        settings: Settings = Depends(get_settings)
):
    """Reject requests carrying a wrong X-API-Key; requests without one pass"""
    if not settings.api_key or not x_api_key:
        return

    if x_api_key != settings.api_key:
        logger.warning("Rejected request with invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
