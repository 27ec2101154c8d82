"""
API — 市場狀態與報價路由。
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_ticker_service
from api.schemas import (
    HolidayResponse,
    MarketStatusResponse,
    QuoteResponse,
    QuotesResponse,
)
from application.ticker_service import TickerService
from domain.entities import StockQuote
from logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _to_quote_response(quote: StockQuote) -> QuoteResponse:
    return QuoteResponse(
        symbol=quote.symbol,
        price=quote.price,
        previous_close=quote.previous_close,
        change=quote.change,
        change_percent=quote.change_percent,
        session=quote.session,
        market_state=quote.market_state,
        pre_market_price=quote.pre_market_price,
        pre_market_change_percent=quote.pre_market_change_percent,
        post_market_price=quote.post_market_price,
        post_market_change_percent=quote.post_market_change_percent,
    )


@router.get(
    "/market/status",
    response_model=MarketStatusResponse,
    summary="Current market session and next holiday",
)
def get_market_status(
    service: TickerService = Depends(get_ticker_service),
) -> MarketStatusResponse:
    today = service.today_schedule()
    holiday = service.next_holiday()
    return MarketStatusResponse(
        state=today.state,
        schedule=today.schedule,
        holiday_name=today.holiday_name,
        upstream_market_state=service.market_state,
        next_holiday=(
            HolidayResponse(
                date=holiday.date.isoformat(),
                name=holiday.name,
                early_close=holiday.early_close,
            )
            if holiday
            else None
        ),
    )


@router.get(
    "/quotes",
    response_model=QuotesResponse,
    summary="Refresh and return quotes for the configured symbols",
)
def get_quotes(
    service: TickerService = Depends(get_ticker_service),
) -> QuotesResponse:
    """依目前時段執行一次抓取計畫，回傳合併後的報價。上游失敗的標的不出現在結果中。"""
    result = service.refresh_quotes()
    quotes, index_quotes = service.quotes()
    return QuotesResponse(
        plan=result.plan.kind.value,
        market_state=service.market_state,
        quotes={s: _to_quote_response(q) for s, q in quotes.items()},
        index_quotes={s: _to_quote_response(q) for s, q in index_quotes.items()},
        refreshed_at=service.last_refresh,
    )
