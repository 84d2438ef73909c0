from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import List
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from quotedesk.settings import settings, validate_settings
from quotedesk.logger import setup_logging
from quotedesk.cache import ExpiringCache, KeyedExpiringCache
from quotedesk.rate_limiter import RateLimiter
from quotedesk.sheets_client import (
    DEFAULT_SHEET_NAME, SheetsClient, SheetsAPIError, SheetsTimeoutError, extract_sheet_id
)
from quotedesk.sheet_parser import rows_to_records, split_header
from quotedesk.brand_sync import BrandSyncError, BrandSyncService
from quotedesk.leads import LeadStore
from quotedesk.leads_sync import LeadSyncService, SyncError
from quotedesk.models import (
    BrandCreate, BrandOut, EstimateRequest, EstimateResponse, LeadActivityOut, LeadOut,
    ProductOut, SheetDataRequest, SheetDataResponse, SheetSyncRequest, SyncConfig,
    SyncConfigUpdate, ValidateSheetRequest
)

logger = logging.getLogger(__name__)

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
METADATA_CACHE_MAX_ENTRIES = 256


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler - runs on startup and shutdown."""
    setup_logging()
    validate_settings()

    # Startup: Initialize database
    from quotedesk.database import init_db
    init_db()

    app.state.sheets_client = SheetsClient(
        settings.GOOGLE_API_KEY,
        timeout=settings.SHEETS_TIMEOUT_S,
        metadata_cache=KeyedExpiringCache(
            settings.METADATA_CACHE_TTL_S, max_entries=METADATA_CACHE_MAX_ENTRIES
        ),
    )
    app.state.config_cache = ExpiringCache(settings.CONFIG_CACHE_TTL_S)
    app.state.lead_store = LeadStore()
    app.state.rate_limiter = RateLimiter(
        cooldown=settings.SUBMISSION_COOLDOWN_S,
        retention=settings.RATE_LIMIT_RETENTION_S,
        sweep_interval=settings.RATE_LIMIT_SWEEP_S,
    )
    app.state.rate_limiter.start()

    yield

    # Shutdown: stop background reclamation and release the HTTP client
    app.state.rate_limiter.stop()
    await app.state.sheets_client.close()


app = FastAPI(
    title="quotedesk",
    description="Lead sync and sheet functions for the fixtures admin dashboard",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=CORS_ALLOWED_HEADERS,
)


def get_sheets_client(request: Request) -> SheetsClient:
    return request.app.state.sheets_client


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_lead_store(request: Request) -> LeadStore:
    return request.app.state.lead_store


def get_sync_service(
    request: Request,
    sheets: SheetsClient = Depends(get_sheets_client),
    store: LeadStore = Depends(get_lead_store),
) -> LeadSyncService:
    return LeadSyncService(sheets, request.app.state.config_cache, store=store)


def get_brand_sync_service(sheets: SheetsClient = Depends(get_sheets_client)) -> BrandSyncService:
    return BrandSyncService(sheets)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    """JSON error payload in the shape the dashboard expects."""
    return JSONResponse({**extra, "error": message}, status_code=status_code)


def _has_tab(metadata: dict, sheet_name: str) -> bool:
    return any(
        (tab.get("properties") or {}).get("title") == sheet_name
        for tab in metadata.get("sheets") or []
    )


@app.get("/")
def read_root():
    return {
        "message": "quotedesk API",
        "docs": "/docs",
        "endpoints": {
            "fetch_sheet_data": "/functions/fetch-sheet-data",
            "validate_sheet": "/functions/validate-sheet",
            "fetch_leads": "/functions/fetch-leads",
            "scheduled_leads_sync": "/functions/scheduled-leads-sync",
            "run_sheet_sync": "/functions/run-sheet-sync",
            "schedule_sheet_sync": "/functions/schedule-sheet-sync",
            "scheduled_sync": "/functions/scheduled-sync",
            "estimates": "/calculator/estimates",
        }
    }


@app.post("/functions/fetch-sheet-data", response_model=SheetDataResponse)
async def fetch_sheet_data(
    body: SheetDataRequest,
    sheets: SheetsClient = Depends(get_sheets_client),
):
    """
    Read a sheet tab and return its rows keyed by the header row.

    Args:
        body: Sheet URL, optional tab name and 0-based header row index

    Returns:
        Header row and data rows
    """
    if not body.sheet_url:
        return _error(400, "Sheet URL is required")

    sheet_id = extract_sheet_id(body.sheet_url)
    if not sheet_id:
        return _error(400, "Invalid Google Sheet URL")

    try:
        payload = await sheets.get_values(sheet_id, body.sheet_name or DEFAULT_SHEET_NAME)
    except SheetsTimeoutError as e:
        return _error(408, str(e))
    except SheetsAPIError as e:
        return _error(500, f"Failed to fetch sheet data: {str(e)}")
    except Exception as e:
        logger.exception("Error processing fetch-sheet-data request")
        return _error(500, str(e) or "Unknown error occurred")

    values = payload.get("values")
    if not isinstance(values, list) or not values:
        return _error(400, "Sheet contains no data")

    header_index = body.header_row_index or 0
    split = split_header(values, header_index)
    if split is None:
        return _error(400, f"Header row {header_index + 1} does not exist in the sheet")
    headers, rows = split

    return SheetDataResponse(headers=headers, data=rows_to_records(headers, rows))


@app.post("/functions/validate-sheet")
async def validate_sheet(
    body: ValidateSheetRequest,
    sheets: SheetsClient = Depends(get_sheets_client),
):
    """
    Check that a sheet is reachable and, if given, that the tab exists.

    Args:
        body: Sheet URL and optional tab name

    Returns:
        {"valid": true} or {"valid": false, "error": ...}
    """
    if not body.sheet_url:
        return _error(400, "Sheet URL is required", valid=False)

    sheet_id = extract_sheet_id(body.sheet_url)
    if not sheet_id:
        return _error(400, "Invalid Google Sheet URL", valid=False)

    try:
        metadata = await sheets.get_metadata(sheet_id)
        if body.sheet_name and not _has_tab(metadata, body.sheet_name):
            # The cached copy may predate a newly added tab
            metadata = await sheets.get_metadata(sheet_id, fresh=True)
    except SheetsTimeoutError as e:
        return _error(408, str(e), valid=False)
    except SheetsAPIError:
        return _error(400, "Failed to access sheet", valid=False)
    except Exception as e:
        logger.exception("Error validating sheet")
        return _error(500, str(e) or "Unknown error occurred", valid=False)

    if body.sheet_name and not _has_tab(metadata, body.sheet_name):
        return _error(400, f'Sheet "{body.sheet_name}" not found', valid=False)

    return {"valid": True}


@app.post("/functions/fetch-leads")
async def fetch_leads(service: LeadSyncService = Depends(get_sync_service)):
    """Import new leads from the configured sheet."""
    try:
        return await service.sync_leads()
    except (SyncError, SheetsAPIError) as e:
        logger.error("Error fetching leads: %s", e)
        return _error(500, str(e), success=False)
    except Exception as e:
        logger.exception("Error fetching leads")
        return _error(500, str(e) or "Unknown error occurred", success=False)


@app.post("/functions/scheduled-leads-sync")
async def scheduled_leads_sync(service: LeadSyncService = Depends(get_sync_service)):
    """Entry point for the external cron trigger."""
    try:
        return await service.run_scheduled_sync()
    except (SyncError, SheetsAPIError) as e:
        logger.error("Error in scheduled sync: %s", e)
        return _error(500, str(e), success=False)
    except Exception as e:
        logger.exception("Error in scheduled sync")
        return _error(500, str(e) or "Unknown error occurred", success=False)


@app.post("/functions/run-sheet-sync")
async def run_sheet_sync(
    body: SheetSyncRequest,
    service: BrandSyncService = Depends(get_brand_sync_service),
):
    """
    Sync one brand's price list, or every scheduled brand when no brand is given.

    Args:
        body: Optional brandId

    Returns:
        The brand's sync result, or {"results": [...]} for the scheduled brands
    """
    try:
        if body.brand_id is None:
            return {"results": await service.run_scheduled()}
        return await service.run_brand(body.brand_id)
    except LookupError as e:
        return _error(404, str(e))
    except (BrandSyncError, SheetsAPIError) as e:
        logger.error("Error running sheet sync: %s", e)
        return _error(500, str(e))
    except Exception as e:
        logger.exception("Error running sheet sync")
        return _error(500, str(e) or "Unknown error occurred")


@app.post("/functions/schedule-sheet-sync")
def schedule_sheet_sync(
    body: SheetSyncRequest,
    service: BrandSyncService = Depends(get_brand_sync_service),
):
    """Register the daily sheet sync of a brand."""
    if body.brand_id is None:
        return _error(400, "Brand ID is required")
    try:
        return service.schedule(body.brand_id)
    except LookupError as e:
        return _error(404, str(e))


@app.post("/functions/scheduled-sync")
async def scheduled_sync(service: BrandSyncService = Depends(get_brand_sync_service)):
    """Entry point for the external cron trigger of brand sheet syncs."""
    now = datetime.now(timezone.utc)
    try:
        results = await service.run_scheduled()
    except Exception as e:
        logger.exception("Error running scheduled sync")
        return _error(500, str(e) or "Unknown error occurred")
    return {
        "success": True,
        "timestamp": now.isoformat(),
        "jobsProcessed": len(results),
        "results": results,
    }


@app.get("/leads/sync-config", response_model=SyncConfig)
def get_sync_config(service: LeadSyncService = Depends(get_sync_service)):
    config = service.get_sync_config()
    if config is None:
        raise HTTPException(404, "Sync configuration not found")
    return config


@app.put("/leads/sync-config", response_model=SyncConfig)
def put_sync_config(
    update: SyncConfigUpdate,
    service: LeadSyncService = Depends(get_sync_service),
):
    if not extract_sheet_id(update.sheet_url):
        raise HTTPException(400, "Invalid Google Sheet URL")
    return service.save_sync_config(update)


@app.get("/leads", response_model=List[LeadOut])
def list_leads(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: LeadStore = Depends(get_lead_store),
):
    return store.list_leads(limit=limit, offset=offset)


@app.get("/leads/{lead_id}", response_model=LeadOut)
def get_lead(lead_id: int, store: LeadStore = Depends(get_lead_store)):
    lead = store.get_lead(lead_id)
    if lead is None:
        raise HTTPException(404, f"Lead {lead_id} not found")
    return lead


@app.get("/leads/{lead_id}/activity", response_model=List[LeadActivityOut])
def get_lead_activity(lead_id: int, store: LeadStore = Depends(get_lead_store)):
    if store.get_lead(lead_id) is None:
        raise HTTPException(404, f"Lead {lead_id} not found")
    return store.activity_logs(lead_id)


@app.post("/brands", response_model=BrandOut, status_code=201)
def create_brand(
    body: BrandCreate,
    service: BrandSyncService = Depends(get_brand_sync_service),
):
    if body.sheet_url and not extract_sheet_id(body.sheet_url):
        raise HTTPException(400, "Invalid Google Sheet URL")
    return service.create_brand(body)


@app.get("/brands/{brand_id}/products", response_model=List[ProductOut])
def list_brand_products(
    brand_id: int,
    service: BrandSyncService = Depends(get_brand_sync_service),
):
    if service.get_brand(brand_id) is None:
        raise HTTPException(404, f"Brand {brand_id} not found")
    return service.list_products(brand_id)


@app.post("/calculator/estimates", response_model=EstimateResponse, status_code=201)
def submit_estimate(
    body: EstimateRequest,
    limiter: RateLimiter = Depends(get_rate_limiter),
    store: LeadStore = Depends(get_lead_store),
):
    """
    Record a calculator submission as a lead.

    Each email address may submit once per cooldown window.

    Raises:
        HTTPException: 429 when the email submitted too recently
    """
    if limiter.is_rate_limited(body.email):
        raise HTTPException(
            status_code=429,
            detail="Too many submissions. Please wait a moment before submitting again."
        )

    lead = store.create_lead(
        customer_name=body.name,
        email=body.email,
        phone=body.mobile,
        location=body.location or None,
        status="New",
        source="calculator",
    )
    logger.info("Calculator submission stored as lead %d", lead.id)
    return EstimateResponse(id=lead.id)
