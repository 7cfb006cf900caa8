from fastapi import FastAPI, Query, HTTPException
from pydantic import BaseModel
from typing import List, Optional
import uvicorn
from contextlib import asynccontextmanager
import logging

from aggregator import GlobalSearchResult, SearchAggregator, Suggestion
from config import Settings
from data_loader import ApiClient, default_sources
from windowing import (
    DEFAULT_GRID_GAP,
    DEFAULT_OVERSCAN,
    GridWindowLayout,
    GridWindowSpec,
    WindowLayout,
    WindowSpec,
    compute_grid_layout,
    compute_layout,
)


class HealthResponse(BaseModel):
    status: str
    sources: List[str]


settings = Settings.from_env()
client = ApiClient(
    settings.api_url,
    timeout=settings.api_timeout,
    retry_attempts=settings.api_retry_attempts,
    retry_delay=settings.api_retry_delay,
    token=settings.api_token,
)
aggregator = SearchAggregator(
    default_sources(client),
    limit=settings.search_limit,
    min_query_length=settings.min_query_length,
    cache_ttl=settings.cache_ttl,
)


logger = logging.getLogger("coffeemeet-search")
logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Search service ready, sources: %s", ", ".join(aggregator.source_names))
    try:
        yield
    finally:
        aggregator.clear_cache()
        client.close()


app = FastAPI(title="Coffee Meeting Search", lifespan=lifespan)


def _check_limit(limit: int) -> None:
    if limit < 1 or limit > settings.max_page_size:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid limit: must be between 1 and {settings.max_page_size}",
        )


@app.get("/search", response_model=GlobalSearchResult)
async def search(q: str = Query(..., min_length=1, title="Search Query", description="Search campaigns, employees and evaluations"),
                 limit: Optional[int] = None):
    limit = settings.search_limit if limit is None else limit
    _check_limit(limit)
    return await aggregator.global_search(q, limit=limit)


@app.get("/suggestions", response_model=List[Suggestion])
async def suggestions(q: str = Query(..., min_length=1)):
    return await aggregator.get_search_suggestions(q)


@app.get("/window", response_model=WindowLayout)
def window(item_count: int, item_size: float, viewport_size: float, scroll_offset: float = 0,
           overscan: int = DEFAULT_OVERSCAN, estimated_item_size: Optional[float] = None):
    try:
        spec = WindowSpec(
            item_count=item_count,
            item_size=item_size,
            viewport_size=viewport_size,
            scroll_offset=scroll_offset,
            overscan=overscan,
            estimated_item_size=estimated_item_size,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return compute_layout(spec)


@app.get("/window/grid", response_model=GridWindowLayout)
def grid_window(item_count: int, item_width: float, item_height: float, viewport_size: float,
                container_width: Optional[float] = None, gap: float = DEFAULT_GRID_GAP,
                scroll_offset: float = 0, overscan: int = DEFAULT_OVERSCAN):
    try:
        spec = GridWindowSpec(
            item_count=item_count,
            item_width=item_width,
            item_height=item_height,
            viewport_size=viewport_size,
            container_width=container_width,
            gap=gap,
            scroll_offset=scroll_offset,
            overscan=overscan,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return compute_grid_layout(spec)


@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", sources=aggregator.source_names)



if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8080, log_level="info")
