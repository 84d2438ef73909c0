"""
Lead storage and the lead details view model.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from quotedesk.database import get_db_context
from quotedesk.db_models import Lead, LeadActivityLog
from quotedesk.lifecycle import CancellationToken, FetchOperation, FetchOutcome, LifecycleScope
from quotedesk.models import LeadActivityOut, LeadOut
from quotedesk.notifications import NotificationCenter

logger = logging.getLogger(__name__)


class LeadStore:
    """Thin access layer over the leads table."""

    def get_lead(self, lead_id: int) -> Optional[LeadOut]:
        with get_db_context() as db:
            lead = db.get(Lead, lead_id)
            return LeadOut.model_validate(lead) if lead else None

    def list_leads(self, limit: int = 50, offset: int = 0) -> List[LeadOut]:
        """Newest leads first."""
        with get_db_context() as db:
            rows = (
                db.query(Lead)
                .order_by(Lead.lead_date.desc(), Lead.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [LeadOut.model_validate(row) for row in rows]

    def existing_phones(self) -> Set[str]:
        with get_db_context() as db:
            return {phone for (phone,) in db.query(Lead.phone).all() if phone}

    def add_leads(
        self,
        leads: Iterable[Dict[str, Any]],
        action: Optional[str] = None,
        details: Optional[str] = None,
    ) -> List[int]:
        """
        Insert leads in one transaction.

        Args:
            leads: Column dicts, as produced by sheet_parser.map_leads
            action: When given, an activity log entry is written for each new lead
            details: Details of that entry

        Returns:
            Ids of the inserted rows
        """
        with get_db_context() as db:
            rows = [Lead(**lead) for lead in leads]
            db.add_all(rows)
            db.flush()
            ids = [row.id for row in rows]
            if action:
                db.add_all([
                    LeadActivityLog(lead_id=lead_id, action=action, details=details)
                    for lead_id in ids
                ])
            return ids

    def activity_logs(self, lead_id: int) -> List[LeadActivityOut]:
        """Activity of one lead, newest first."""
        with get_db_context() as db:
            rows = (
                db.query(LeadActivityLog)
                .filter(LeadActivityLog.lead_id == lead_id)
                .order_by(LeadActivityLog.created_at.desc(), LeadActivityLog.id.desc())
                .all()
            )
            return [LeadActivityOut.model_validate(row) for row in rows]

    def create_lead(self, **fields: Any) -> LeadOut:
        with get_db_context() as db:
            lead = Lead(**fields)
            db.add(lead)
            db.flush()
            return LeadOut.model_validate(lead)


class LeadDetails:
    """
    State behind the lead details dialog.

    Opening the dialog for a lead loads it; opening it for another lead
    supersedes the first load; closing it drops whatever is still in flight.
    """

    def __init__(
        self,
        store: LeadStore,
        scope: LifecycleScope,
        notifications: Optional[NotificationCenter] = None,
    ):
        self._store = store
        self._notifications = notifications
        self._operation: FetchOperation[Optional[LeadOut]] = scope.operation(
            self._load,
            notify=self._notify if notifications is not None else None,
            name="lead details",
        )

    @property
    def lead(self) -> Optional[LeadOut]:
        return self._operation.data

    @property
    def lead_id(self) -> Optional[int]:
        return self._operation.key

    @property
    def is_loading(self) -> bool:
        return self._operation.is_loading

    async def open(self, lead_id: int) -> FetchOutcome:
        return await self._operation.fetch(lead_id)

    async def refresh(self) -> FetchOutcome:
        """Reload the lead currently shown. Nothing to do when the dialog is closed."""
        if self._operation.key is None:
            return FetchOutcome.DISCARDED
        return await self._operation.fetch(self._operation.key)

    def close(self):
        self._operation.close()

    async def _load(self, lead_id: int, token: CancellationToken) -> Optional[LeadOut]:
        lead = await asyncio.to_thread(self._store.get_lead, lead_id)
        token.raise_if_cancelled()
        if lead is None:
            raise LookupError(f"Lead {lead_id} not found")
        return lead

    def _notify(self, title: str, description: str):
        self._notifications.error(title, description)


class LeadActivity:
    """
    Activity log panel of the lead details dialog.

    Loads independently of the lead itself, so a slow log query never holds
    back the details.
    """

    def __init__(
        self,
        store: LeadStore,
        scope: LifecycleScope,
        notifications: Optional[NotificationCenter] = None,
    ):
        self._store = store
        self._notifications = notifications
        self._operation: FetchOperation[List[LeadActivityOut]] = scope.operation(
            self._load,
            notify=self._notify if notifications is not None else None,
            name="activity logs",
        )

    @property
    def entries(self) -> List[LeadActivityOut]:
        return self._operation.data or []

    @property
    def is_loading(self) -> bool:
        return self._operation.is_loading

    async def open(self, lead_id: int) -> FetchOutcome:
        return await self._operation.fetch(lead_id)

    def close(self):
        self._operation.close()

    async def _load(self, lead_id: int, token: CancellationToken) -> List[LeadActivityOut]:
        entries = await asyncio.to_thread(self._store.activity_logs, lead_id)
        token.raise_if_cancelled()
        return entries

    def _notify(self, title: str, description: str):
        self._notifications.error(title, description)
