"""
Keeps brand price lists in step with their Google Sheets.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from quotedesk.database import get_db_context
from quotedesk.db_models import Brand, Product, ScheduledJob
from quotedesk.models import BrandCreate, BrandOut, ProductOut
from quotedesk.sheet_parser import default_product_mapping, map_products, rows_to_records, split_header
from quotedesk.sheets_client import SheetsClient, extract_sheet_id

logger = logging.getLogger(__name__)

SHEET_SYNC_JOB = "sheet_sync"
DAILY_AT_TEN = "0 10 * * *"


class BrandSyncError(Exception):
    """A brand's sheet cannot be synced."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BrandSyncService:
    """
    Brand sheet sync operations.

    A sync reads the brand's sheet tab, maps each named row to a product and
    upserts products by name (case-insensitive) within the brand. Brands with
    an active "sheet_sync" job are synced by the scheduled run.
    """

    def __init__(self, sheets: SheetsClient, clock: Callable[[], datetime] = _utcnow):
        """
        Initialize sync service.

        Args:
            sheets: Client used to read brand sheets
            clock: Source of the current UTC time
        """
        self.sheets = sheets
        self._clock = clock

    def create_brand(self, brand: BrandCreate) -> BrandOut:
        with get_db_context() as db:
            row = Brand(**brand.model_dump(), created_at=self._clock())
            db.add(row)
            db.flush()
            return BrandOut.model_validate(row)

    def get_brand(self, brand_id: int) -> Optional[BrandOut]:
        with get_db_context() as db:
            row = db.get(Brand, brand_id)
            return BrandOut.model_validate(row) if row else None

    def list_products(self, brand_id: int) -> List[ProductOut]:
        with get_db_context() as db:
            rows = (
                db.query(Product)
                .filter(Product.brand_id == brand_id)
                .order_by(Product.name)
                .all()
            )
            return [ProductOut.model_validate(row) for row in rows]

    def schedule(self, brand_id: int) -> Dict[str, Any]:
        """
        Register (or reactivate) the daily sheet sync of a brand.

        Args:
            brand_id: Brand to sync

        Returns:
            The job, with a message saying whether it was created or updated

        Raises:
            LookupError: If the brand does not exist
        """
        now = self._clock()
        with get_db_context() as db:
            if db.get(Brand, brand_id) is None:
                raise LookupError(f"Brand {brand_id} not found")

            job = (
                db.query(ScheduledJob)
                .filter(ScheduledJob.brand_id == brand_id, ScheduledJob.job_type == SHEET_SYNC_JOB)
                .first()
            )
            if job is None:
                job = ScheduledJob(
                    brand_id=brand_id,
                    job_type=SHEET_SYNC_JOB,
                    schedule=DAILY_AT_TEN,
                    status="active",
                    created_at=now,
                )
                db.add(job)
                message = "Sync scheduled successfully"
            else:
                job.status = "active"
                job.last_updated = now
                message = "Sync schedule updated"
            db.flush()

            logger.info("Sheet sync for brand %d: %s", brand_id, message)
            return {
                "id": job.id,
                "brandId": job.brand_id,
                "jobType": job.job_type,
                "schedule": job.schedule,
                "status": job.status,
                "lastRun": job.last_run.isoformat() if job.last_run else None,
                "message": message,
            }

    async def sync_brand(self, brand_id: int) -> Dict[str, Any]:
        """
        Import one brand's price list from its sheet.

        Args:
            brand_id: Brand to sync

        Returns:
            Summary with product counts

        Raises:
            LookupError: If the brand does not exist
            BrandSyncError: On missing sheet settings or unusable sheet content
            SheetsAPIError: On upstream failures
        """
        brand = self.get_brand(brand_id)
        if brand is None:
            raise LookupError(f"Brand {brand_id} not found")
        if not brand.sheet_url or not brand.sheet_name:
            raise BrandSyncError(f"Brand {brand.name} does not have sheet information")

        sheet_id = extract_sheet_id(brand.sheet_url)
        if not sheet_id:
            raise BrandSyncError(f"Invalid sheet URL for brand {brand.name}")

        logger.info("Syncing products of brand %r from sheet %r", brand.name, brand.sheet_name)
        payload = await self.sheets.get_values(sheet_id, brand.sheet_name)
        values = payload.get("values")
        if not isinstance(values, list) or not values:
            raise BrandSyncError(f"No data found in sheet for brand {brand.name}")

        header_row = brand.header_row or 1
        split = split_header(values, header_row - 1)
        if split is None:
            raise BrandSyncError(
                f"Header row {header_row} does not exist in the sheet for brand {brand.name}"
            )
        headers, rows = split

        mapping = brand.column_mapping or default_product_mapping(headers)
        products = map_products(rows_to_records(headers, rows), headers, mapping)

        now = self._clock()
        with get_db_context() as db:
            existing = {
                name.lower(): product_id
                for product_id, name in db.query(Product.id, Product.name).filter(Product.brand_id == brand_id)
            }

            inserted = updated = 0
            for product in products:
                key = product["name"].lower()
                product_id = existing.get(key)
                if product_id is None:
                    row = Product(brand_id=brand_id, created_at=now, **product)
                    db.add(row)
                    db.flush()
                    existing[key] = row.id
                    inserted += 1
                else:
                    row = db.get(Product, product_id)
                    for field, value in product.items():
                        setattr(row, field, value)
                    row.updated_at = now
                    updated += 1

            total = db.query(Product).filter(Product.brand_id == brand_id).count()
            row = db.get(Brand, brand_id)
            if not brand.column_mapping:
                row.column_mapping = mapping
            row.product_count = total
            row.updated_at = now

        logger.info(
            "Brand %r: %d products processed, %d inserted, %d updated",
            brand.name, len(products), inserted, updated
        )
        return {
            "brandId": brand_id,
            "brandName": brand.name,
            "success": True,
            "productsProcessed": len(products),
            "productsInserted": inserted,
            "productsUpdated": updated,
            "totalProducts": total,
        }

    async def run_brand(self, brand_id: int) -> Dict[str, Any]:
        """Sync one brand on demand and stamp its sheet sync job, if any."""
        result = await self.sync_brand(brand_id)
        self._mark_run(brand_id)
        return result

    async def run_scheduled(self) -> List[Dict[str, Any]]:
        """
        Sync every brand with an active sheet sync job.

        A failing brand does not stop the others; it is reported in its own
        result with success false. Only jobs that succeeded get a new last_run.

        Returns:
            One result per job
        """
        with get_db_context() as db:
            jobs = [
                (job_id, brand_id)
                for job_id, brand_id in db.query(ScheduledJob.id, ScheduledJob.brand_id).filter(
                    ScheduledJob.job_type == SHEET_SYNC_JOB,
                    ScheduledJob.status == "active",
                )
            ]

        results = []
        for job_id, brand_id in jobs:
            try:
                result = await self.sync_brand(brand_id)
            except Exception as e:
                logger.error("Error processing sheet sync job %d (brand %d): %s", job_id, brand_id, e)
                results.append({
                    "jobId": job_id,
                    "brandId": brand_id,
                    "success": False,
                    "error": str(e) or type(e).__name__,
                })
                continue
            self._mark_run(brand_id)
            results.append(result)
        return results

    def _mark_run(self, brand_id: int):
        with get_db_context() as db:
            for job in db.query(ScheduledJob).filter(
                ScheduledJob.brand_id == brand_id,
                ScheduledJob.job_type == SHEET_SYNC_JOB,
            ):
                job.last_run = self._clock()
