"""
API — 快取檢視、背景回填與設定路由。
"""

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_ticker_service
from api.schemas import (
    AcceptedResponse,
    BackfillStatusResponse,
    CacheMaintenanceResponse,
    CacheSnapshotResponse,
    TickerConfigResponse,
    WatchlistUpdateRequest,
)
from application.ticker_service import TickerService
from domain.enums import CacheKind
from logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "/cache/{kind}",
    response_model=CacheSnapshotResponse,
    summary="Contents of one persisted cache",
)
def get_cache(
    kind: str,
    service: TickerService = Depends(get_ticker_service),
) -> CacheSnapshotResponse:
    try:
        cache_kind = CacheKind(kind)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown cache kind: {kind}",
        )
    return CacheSnapshotResponse(**service.cache_snapshot(cache_kind))


@router.post(
    "/cache/maintain",
    response_model=CacheMaintenanceResponse,
    summary="Run the daily cache refresh and retry a small batch of missing entries",
)
def maintain_caches(
    service: TickerService = Depends(get_ticker_service),
) -> CacheMaintenanceResponse:
    return CacheMaintenanceResponse(**service.maintain_caches())


@router.get(
    "/backfill/status",
    response_model=BackfillStatusResponse,
    summary="Background backfill progress",
)
def get_backfill_status(
    service: TickerService = Depends(get_ticker_service),
) -> BackfillStatusResponse:
    snapshot = service.backfill_status()
    return BackfillStatusResponse(
        running=snapshot.running,
        phase=snapshot.phase,
        completed=snapshot.completed,
        started_at=snapshot.started_at,
        finished_at=snapshot.finished_at,
        cancelled=snapshot.cancelled,
        last_batch_notifications=service.batch_notifications(),
    )


@router.post(
    "/backfill/restart",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel the running backfill and start a new one",
)
def restart_backfill(
    service: TickerService = Depends(get_ticker_service),
) -> AcceptedResponse:
    service.restart_backfill()
    return AcceptedResponse(message="Backfill restarted")


@router.get(
    "/config",
    response_model=TickerConfigResponse,
    summary="Current ticker configuration",
)
def get_config(
    service: TickerService = Depends(get_ticker_service),
) -> TickerConfigResponse:
    return TickerConfigResponse(**service.config.model_dump())


@router.put(
    "/config/watchlist",
    response_model=TickerConfigResponse,
    summary="Replace the watchlist and restart the backfill",
)
def update_watchlist(
    payload: WatchlistUpdateRequest,
    service: TickerService = Depends(get_ticker_service),
) -> TickerConfigResponse:
    config = service.update_watchlist(payload.watchlist)
    return TickerConfigResponse(**config.model_dump())
