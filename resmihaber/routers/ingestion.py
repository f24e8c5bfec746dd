"""
API endpoints for controlling ingestion runs and reading financial data.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Security, status
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from resmihaber.core.config import settings
from resmihaber.core.exceptions import DataUnavailable, NotFound
from resmihaber.services.control import DEFAULT_SCRAPING_SOURCES, IngestionController
from resmihaber.services.logging_service import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/ingestion", tags=["ingestion"])

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class ScrapingRequest(BaseModel):
    sources: List[str] = Field(default_factory=lambda: list(DEFAULT_SCRAPING_SOURCES), description="Source names")


def get_controller(request: Request) -> IngestionController:
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Ingestion is not running")
    return controller


async def require_api_key(api_key: Optional[str] = Security(api_key_header)) -> None:
    """Only enforced when CONTROL_API_KEY is configured."""
    if settings.CONTROL_API_KEY and api_key != settings.CONTROL_API_KEY:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@router.post("/rss", response_model=Dict[str, Any], dependencies=[Depends(require_api_key)])
async def run_rss_update(controller: IngestionController = Depends(get_controller)):
    """Fetch every RSS source now"""
    return await controller.run_rss_update()


@router.post("/scrape", response_model=Dict[str, Any], dependencies=[Depends(require_api_key)])
async def run_scraping(body: ScrapingRequest, controller: IngestionController = Depends(get_controller)):
    """Scrape the named sites now"""
    return await controller.run_scraping(body.sources)


@router.get("/scheduler", response_model=Dict[str, Any])
async def scheduler_status(controller: IngestionController = Depends(get_controller)):
    return controller.scheduler_status()


@router.post("/jobs/{kind}", response_model=Dict[str, Any], dependencies=[Depends(require_api_key)])
async def trigger_job(kind: str, controller: IngestionController = Depends(get_controller)):
    """Run one scheduler job and wait for its result"""
    try:
        return await controller.trigger_job(kind)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)


@router.get("/financial/rates", response_model=List[Dict[str, Any]])
async def exchange_rates(
    day: Optional[date] = Query(None, alias="date", description="Calendar date, default today in Istanbul"),
    controller: IngestionController = Depends(get_controller),
):
    try:
        return await controller.get_exchange_rates(day)
    except DataUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)


@router.get("/financial/gold", response_model=List[Dict[str, Any]])
async def gold_prices(
    day: Optional[date] = Query(None, alias="date"),
    controller: IngestionController = Depends(get_controller),
):
    try:
        return await controller.get_gold_prices(day)
    except DataUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)


@router.get("/financial/history/{code}", response_model=List[Dict[str, Any]])
async def historical_rates(
    code: str,
    days: int = Query(30, ge=1, le=3650),
    controller: IngestionController = Depends(get_controller),
):
    return controller.get_historical_rates(code, days)


@router.get("/financial/snapshot", response_model=Dict[str, Any])
async def financial_snapshot(controller: IngestionController = Depends(get_controller)):
    return await controller.get_financial_snapshot()
