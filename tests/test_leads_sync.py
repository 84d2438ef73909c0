import pytest

from conftest import SHEET_ID, SHEET_URL, FakeSheetsClient, FakeUtcClock
from quotedesk.cache import ExpiringCache
from quotedesk.leads import LeadStore
from quotedesk.leads_sync import LeadSyncService, SyncError
from quotedesk.models import SyncConfigUpdate

SHEET_VALUES = [
    ["Timestamp", "Full Name", "Phone", "Email", "City"],
    ["2026-02-20", "Asha Rao", "9845000001", "asha@example.com", "Bengaluru"],
    ["2026-02-21", "Ravi Kumar", "9845000002", "", "Mysuru"],
    ["2026-02-21", "Ravi K", "9845000002", "", "Mysuru"],
    ["2026-02-22", "", "9845000003", "", ""],
    ["2026-02-22", "No Phone", "", "", ""],
]

MAPPING = {
    "lead_date": "Timestamp",
    "customer_name": "Full Name",
    "phone": "Phone",
    "email": "Email",
    "location": "City",
}


def _service(sheets: FakeSheetsClient, clock: FakeUtcClock | None = None) -> LeadSyncService:
    return LeadSyncService(sheets, ExpiringCache(60.0), store=LeadStore(), clock=clock or FakeUtcClock())


def _configure(service: LeadSyncService, **overrides) -> None:
    fields = {"sheet_url": SHEET_URL, "sheet_name": "Leads", "column_mapping": MAPPING}
    fields.update(overrides)
    service.save_sync_config(SyncConfigUpdate(**fields))


@pytest.mark.asyncio
async def test_sync_inserts_new_leads_once(db) -> None:
    sheets = FakeSheetsClient(values=SHEET_VALUES)
    service = _service(sheets)
    _configure(service)

    result = await service.sync_leads()

    assert result["success"] is True
    assert result["totalLeads"] == 4
    assert result["newLeadsAdded"] == 2
    assert sheets.calls[0] == ("values", SHEET_ID, "Leads", "A1:Z1000")

    leads = LeadStore().list_leads()
    assert sorted(lead.customer_name for lead in leads) == ["Asha Rao", "Ravi Kumar"]

    again = await service.sync_leads()
    assert again["newLeadsAdded"] == 0
    assert len(LeadStore().list_leads()) == 2


@pytest.mark.asyncio
async def test_sync_logs_activity_for_each_imported_lead(db) -> None:
    service = _service(FakeSheetsClient(values=SHEET_VALUES))
    _configure(service)

    await service.sync_leads()

    store = LeadStore()
    for lead in store.list_leads():
        logs = store.activity_logs(lead.id)
        assert [(log.action, log.details) for log in logs] == [
            ("Lead Created", "Lead imported from Google Sheet")
        ]

    # Nothing new imported, nothing new logged
    await service.sync_leads()
    assert all(len(store.activity_logs(lead.id)) == 1 for lead in store.list_leads())


@pytest.mark.asyncio
async def test_sync_marks_config_synced(db) -> None:
    clock = FakeUtcClock()
    service = _service(FakeSheetsClient(values=SHEET_VALUES), clock)
    _configure(service)

    await service.sync_leads()

    config = service.get_sync_config()
    assert config.last_sync_at.replace(tzinfo=None) == clock.now.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_sync_honours_header_row(db) -> None:
    values = [["Lead export"], ["Full Name", "Phone"], ["Asha", "1"]]
    service = _service(FakeSheetsClient(values=values))
    _configure(service, header_row=2, column_mapping={"customer_name": "Full Name", "phone": "Phone"})

    result = await service.sync_leads()
    assert result["newLeadsAdded"] == 1


@pytest.mark.asyncio
async def test_sync_without_config_fails(db) -> None:
    service = _service(FakeSheetsClient(values=SHEET_VALUES))
    with pytest.raises(SyncError, match="Sync configuration not found"):
        await service.sync_leads()


@pytest.mark.asyncio
async def test_sync_rejects_empty_sheet_and_missing_header(db) -> None:
    service = _service(FakeSheetsClient(values=[]))
    _configure(service)
    with pytest.raises(SyncError, match="No data found"):
        await service.sync_leads()

    service = _service(FakeSheetsClient(values=[["Full Name"]]))
    _configure(service, header_row=5)
    with pytest.raises(SyncError, match="Header row index"):
        await service.sync_leads()


@pytest.mark.asyncio
async def test_sync_rejects_invalid_url(db) -> None:
    service = _service(FakeSheetsClient(values=SHEET_VALUES))
    _configure(service, sheet_url="https://example.com/not-a-sheet")
    with pytest.raises(SyncError, match="Invalid sheet URL"):
        await service.sync_leads()


def test_config_is_cached_until_saved(db) -> None:
    service = _service(FakeSheetsClient())
    _configure(service)

    first = service.get_sync_config()
    assert service.get_sync_config() is first

    _configure(service, sheet_name="Other")
    updated = service.get_sync_config()
    assert updated.sheet_name == "Other"
    assert updated.id == first.id


@pytest.mark.asyncio
async def test_scheduled_sync_waits_for_interval(db) -> None:
    clock = FakeUtcClock()
    service = _service(FakeSheetsClient(values=SHEET_VALUES), clock)
    _configure(service, sync_interval_minutes=120)

    first = await service.run_scheduled_sync()
    assert first["synced"] is True
    assert first["result"]["newLeadsAdded"] == 2

    clock.advance(minutes=30)
    waiting = await service.run_scheduled_sync()
    assert waiting == {"success": True, "synced": False, "message": "Next sync scheduled in 90 minutes"}

    clock.advance(minutes=30)
    waiting = await service.run_scheduled_sync()
    assert waiting["message"] == "Next sync scheduled in 1 hour"

    clock.advance(minutes=60)
    due = await service.run_scheduled_sync()
    assert due["synced"] is True
    assert due["result"]["newLeadsAdded"] == 0
