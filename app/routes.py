import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from app.app_proxy.pages import render_home_page
from app.app_proxy.route import router as proxy_router
from app.rate_limit import enforce_rate_limit
from app.vars import PAGE_ENDPOINT, RESOURCE_ENDPOINT

router = APIRouter()

logger = logging.getLogger("uvicorn.error")

STARTED_AT = time.monotonic()

logger.info(f"Resource proxy at {RESOURCE_ENDPOINT}, page proxy at {PAGE_ENDPOINT}")


@router.get("/", response_class=HTMLResponse)
async def home():
    return HTMLResponse(content=render_home_page())


@router.get("/api/status", dependencies=[Depends(enforce_rate_limit)])
async def status():
    """Liveness probe."""
    return {
        "success": True,
        "message": "The proxy server is running.",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": time.monotonic() - STARTED_AT,
    }


router.include_router(proxy_router)
