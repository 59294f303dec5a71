import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request

from tornstock.collector import Collector
from tornstock.config import Settings
from tornstock.constants import (
    COUNTRY_CODES,
    STORAGE_API_KEY,
    STORAGE_COUNTRY_FILTER,
    STORAGE_STOCK_DATA,
    STORAGE_STOCK_VERSION,
)
from tornstock.context import CollectorContext
from tornstock.errors import RateLimitError, TornStockError
from tornstock.models import ApiKeyRequest, CountryFilterRequest, ManualRefreshRequest, StockSnapshot

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler - runs on startup and shutdown."""
    # Startup: open the store and start collecting in the background
    settings = Settings.from_env()
    context = CollectorContext.create(settings)
    collector = Collector(context)
    app.state.collector = collector
    init_task = asyncio.create_task(collector.initialize())

    yield

    # Shutdown: stop the timer and release clients
    if not init_task.done():
        init_task.cancel()
        try:
            await init_task
        except asyncio.CancelledError:
            pass
    await collector.stop()
    await context.close()


app = FastAPI(
    title="tornstock",
    description="Foreign stock and profit tracker for Torn, fed by YATA",
    version="0.1.0",
    lifespan=lifespan
)


def _collector(request: Request) -> Collector:
    return request.app.state.collector


@app.get("/")
def read_root():
    return {
        "message": "tornstock API",
        "docs": "/docs",
        "endpoints": {
            "stock": "/stock",
            "history": "/history/{country}/{item_id}",
            "status": "/collector/status",
            "restart": "/collector/restart",
            "refresh": "/collector/refresh",
            "api_key": "/api-key",
            "country_filter": "/country-filter",
        }
    }


@app.get("/stock")
def get_stock(request: Request) -> dict:
    """
    Get the latest aggregated result.

    Countries outside the stored country filter are left out.

    Returns:
        Per-country stock entries and the version stamp of the last cycle
    """
    storage = _collector(request).context.storage
    stored = storage.get_many([STORAGE_STOCK_DATA, STORAGE_STOCK_VERSION, STORAGE_COUNTRY_FILTER])
    stock_data = stored.get(STORAGE_STOCK_DATA, {})
    country_filter = stored.get(STORAGE_COUNTRY_FILTER)
    if country_filter:
        stock_data = {country: entries for country, entries in stock_data.items() if country in country_filter}
    return {
        "stockData": stock_data,
        "stockDataVersion": stored.get(STORAGE_STOCK_VERSION, 0),
    }


@app.get("/history/{country}/{item_id}")
async def get_history(
    request: Request,
    country: str,
    item_id: int,
    start: int = Query(0, description="Start of the range, epoch seconds"),
    end: Optional[int] = Query(None, description="End of the range, epoch seconds (defaults to now)")
) -> List[StockSnapshot]:
    """
    Get stored snapshots of one item in one country.

    Args:
        country: Country code (e.g. "mex")
        item_id: Torn item id
        start: Inclusive lower bound
        end: Inclusive upper bound

    Returns:
        Snapshots ordered by timestamp
    """
    if end is None:
        end = int(time.time())
    return await _collector(request).handle_message({
        "type": "get-historical-data",
        "country": country,
        "itemId": item_id,
        "startTime": start,
        "endTime": end,
    })


@app.get("/collector/status")
def get_status(request: Request) -> dict:
    collector = _collector(request)
    return {
        "state": collector.state.value,
        "running": collector.running,
        "api_key_set": bool(collector.context.api_key),
        "metadata_items": len(collector.context.metadata),
    }


@app.post("/collector/restart")
async def restart_collector(request: Request) -> dict:
    """Re-run initialization (reload key, caches and metadata)."""
    initialized = await _collector(request).handle_message({"type": "restart-collector"})
    return {"initialized": initialized}


@app.post("/collector/refresh")
async def manual_refresh(request: Request, body: ManualRefreshRequest) -> dict:
    """
    Run one cycle that also fetches live market prices.

    Raises:
        HTTPException: 502 if the cycle failed
    """
    refreshed = await _collector(request).handle_message({
        "type": "manual-refresh",
        "countries": body.countries,
    })
    if not refreshed:
        raise HTTPException(status_code=502, detail="Manual refresh failed, see collector logs")
    return get_stock(request)


@app.post("/api-key")
async def set_api_key(request: Request, body: ApiKeyRequest) -> dict:
    """
    Validate a Torn API key, store it and restart the collector.

    Raises:
        HTTPException: 400 for an invalid key, 429/502 on upstream errors
    """
    collector = _collector(request)
    try:
        valid = await collector.context.torn.validate_key(body.key)
    except RateLimitError:
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Please try again later.")
    except TornStockError as e:
        raise HTTPException(status_code=502, detail=f"Torn API error: {str(e)}")

    if not valid:
        raise HTTPException(status_code=400, detail="Invalid API key")

    collector.context.storage.set(STORAGE_API_KEY, body.key)
    initialized = await collector.handle_message({"type": "restart-collector"})
    return {"valid": True, "initialized": initialized}


@app.get("/country-filter")
def get_country_filter(request: Request) -> dict:
    countries = _collector(request).context.storage.get(STORAGE_COUNTRY_FILTER) or []
    return {"countries": countries}


@app.put("/country-filter")
def set_country_filter(request: Request, body: CountryFilterRequest) -> dict:
    """
    Store the countries shown by /stock.

    Raises:
        HTTPException: 400 for unknown country codes
    """
    unknown = [code for code in body.countries if code not in COUNTRY_CODES]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown country codes: {', '.join(unknown)}")

    _collector(request).context.storage.set(STORAGE_COUNTRY_FILTER, body.countries)
    return {"countries": body.countries}
