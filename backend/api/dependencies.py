"""
API dependencies for the Ticker Tape backend (auth + service lookup).
"""

import hmac
import os
from typing import Annotated

from fastapi import Header, HTTPException, Request, status

from application.ticker_service import TickerService


def require_api_key(
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """
    Validate API key from X-API-Key header.

    Graceful dev-mode fallback: if TICKER_API_KEY is unset, auth is disabled.

    Raises:
        HTTPException: 401 if API key is invalid or missing (when auth is enabled)
    """
    expected_key = os.getenv("TICKER_API_KEY")

    # Dev mode: auth disabled when TICKER_API_KEY is unset
    if not expected_key:
        return

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header",
        )

    # Use constant-time comparison to prevent timing attacks
    if not hmac.compare_digest(x_api_key, expected_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )


def get_ticker_service(request: Request) -> TickerService:
    """取得 lifespan 建立的 TickerService（存放於 app.state）。"""
    service = getattr(request.app.state, "ticker_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return service
