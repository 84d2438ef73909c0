"""
Pulls leads from the configured Google Sheet into the leads table.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from quotedesk.cache import ExpiringCache
from quotedesk.database import get_db_context
from quotedesk.db_models import LeadSyncConfig
from quotedesk.leads import LeadStore
from quotedesk.models import SyncConfig, SyncConfigUpdate
from quotedesk.sheet_parser import map_leads, rows_to_records, split_header
from quotedesk.sheets_client import DEFAULT_SHEET_NAME, SheetsClient, extract_sheet_id

logger = logging.getLogger(__name__)

# Range read on every sync
SYNC_RANGE = "A1:Z1000"

# Activity log entry written for each imported lead
LEAD_CREATED = "Lead Created"
IMPORTED_FROM_SHEET = "Lead imported from Google Sheet"


class SyncError(Exception):
    """Lead sync could not run or the sheet content is unusable."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _format_next_sync(minutes: int) -> str:
    if minutes >= 60 and minutes % 60 == 0:
        hours = minutes // 60
        return f"Next sync scheduled in {hours} {'hour' if hours == 1 else 'hours'}"
    return f"Next sync scheduled in {minutes} {'minute' if minutes == 1 else 'minutes'}"


class LeadSyncService:
    """
    Lead sync operations.

    The sync configuration is read on every call but changes rarely, so it is
    memoised in an ExpiringCache shared across requests.
    """

    def __init__(
        self,
        sheets: SheetsClient,
        config_cache: ExpiringCache,
        store: Optional[LeadStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize sync service.

        Args:
            sheets: Client used to read the sheet
            config_cache: Cache holding the current SyncConfig
            store: Lead storage
            clock: Source of the current UTC time
        """
        self.sheets = sheets
        self.config_cache = config_cache
        self.store = store or LeadStore()
        self._clock = clock

    def get_sync_config(self) -> Optional[SyncConfig]:
        """
        Get the newest sync configuration.

        Returns:
            SyncConfig, or None if none has been saved
        """
        cached = self.config_cache.get()
        if cached is not None:
            return cached

        with get_db_context() as db:
            row = (
                db.query(LeadSyncConfig)
                .order_by(LeadSyncConfig.created_at.desc(), LeadSyncConfig.id.desc())
                .first()
            )
            if row is None:
                return None
            config = SyncConfig.model_validate(row)

        self.config_cache.set(config)
        return config

    def save_sync_config(self, update: SyncConfigUpdate) -> SyncConfig:
        """
        Update the newest configuration, or create the first one.

        Args:
            update: New settings

        Returns:
            Stored configuration
        """
        with get_db_context() as db:
            row = (
                db.query(LeadSyncConfig)
                .order_by(LeadSyncConfig.created_at.desc(), LeadSyncConfig.id.desc())
                .first()
            )
            if row is None:
                row = LeadSyncConfig(created_at=self._clock())
                db.add(row)

            for field, value in update.model_dump().items():
                setattr(row, field, value)
            db.flush()
            config = SyncConfig.model_validate(row)

        self.config_cache.clear()
        logger.info("Lead sync config saved (sheet=%s)", config.sheet_name or DEFAULT_SHEET_NAME)
        return config

    def _mark_synced(self, config_id: int, synced_at: datetime):
        with get_db_context() as db:
            row = db.get(LeadSyncConfig, config_id)
            if row is not None:
                row.last_sync_at = synced_at
        self.config_cache.clear()

    async def sync_leads(self) -> Dict[str, Any]:
        """
        Import new leads from the configured sheet.

        Leads are matched on phone number; rows whose phone is empty or already
        stored are skipped.

        Returns:
            Summary with totalLeads, newLeadsAdded and syncedAt

        Raises:
            SyncError: On missing/invalid configuration or unusable sheet content
            SheetsAPIError: On upstream failures
        """
        config = self.get_sync_config()
        if config is None:
            raise SyncError("Sync configuration not found")

        sheet_id = extract_sheet_id(config.sheet_url)
        if not sheet_id:
            raise SyncError("Invalid sheet URL in configuration")

        sheet_name = config.sheet_name or DEFAULT_SHEET_NAME
        header_row = config.header_row or 1
        logger.info("Syncing leads from sheet %r (header row %d)", sheet_name, header_row)

        payload = await self.sheets.get_values(sheet_id, sheet_name, SYNC_RANGE)
        values = payload.get("values")
        if not isinstance(values, list) or not values:
            raise SyncError("No data found in sheet")

        split = split_header(values, header_row - 1)
        if split is None:
            raise SyncError(
                f"Header row index ({header_row}) is greater than available rows ({len(values)})"
            )
        headers, rows = split

        now = self._clock()
        leads = map_leads(rows_to_records(headers, rows), config.column_mapping, now)

        known_phones = self.store.existing_phones()
        new_leads = []
        for lead in leads:
            phone = lead["phone"]
            if not phone or phone in known_phones:
                continue
            known_phones.add(phone)
            new_leads.append(lead)

        logger.info("Total leads found: %d, new leads to add: %d", len(leads), len(new_leads))
        if new_leads:
            self.store.add_leads(new_leads, action=LEAD_CREATED, details=IMPORTED_FROM_SHEET)

        self._mark_synced(config.id, now)

        return {
            "success": True,
            "totalLeads": len(leads),
            "newLeadsAdded": len(new_leads),
            "syncedAt": now.isoformat(),
        }

    async def run_scheduled_sync(self) -> Dict[str, Any]:
        """
        Sync if the configured interval has elapsed since the last sync.

        Returns:
            Either a "not yet" message or the sync result with the next due time
        """
        config = self.get_sync_config()
        if config is None:
            raise SyncError("Sync configuration not found")

        now = self._clock()
        last_sync = _as_utc(config.last_sync_at) if config.last_sync_at else datetime.fromtimestamp(0, timezone.utc)
        minutes_since = (now - last_sync).total_seconds() / 60

        if minutes_since < config.sync_interval_minutes:
            remaining = math.ceil(config.sync_interval_minutes - minutes_since)
            return {
                "success": True,
                "synced": False,
                "message": _format_next_sync(remaining),
            }

        result = await self.sync_leads()
        next_sync = now + timedelta(minutes=config.sync_interval_minutes)
        return {
            "success": True,
            "synced": True,
            "result": result,
            "nextSync": next_sync.isoformat(),
        }
