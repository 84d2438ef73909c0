import asyncio

import pytest

from conftest import FakeClock
from quotedesk.leads import LeadActivity, LeadDetails, LeadStore
from quotedesk.lifecycle import FetchOutcome, LifecycleScope
from quotedesk.notifications import NotificationCenter


@pytest.mark.asyncio
async def test_open_loads_lead(db) -> None:
    store = LeadStore()
    created = store.create_lead(customer_name="Asha Rao", phone="9845000001")

    async with LifecycleScope() as scope:
        details = LeadDetails(store, scope)
        assert await details.open(created.id) is FetchOutcome.APPLIED
        assert details.lead.customer_name == "Asha Rao"
        assert details.lead_id == created.id
        assert details.is_loading is False

        assert await details.refresh() is FetchOutcome.APPLIED

        details.close()
        assert details.lead is None
        assert await details.refresh() is FetchOutcome.DISCARDED


@pytest.mark.asyncio
async def test_missing_lead_is_reported_as_notification(db) -> None:
    notifications = NotificationCenter()

    async with LifecycleScope() as scope:
        details = LeadDetails(LeadStore(), scope, notifications)
        assert await details.open(404) is FetchOutcome.ERRORED

    active = notifications.active()
    assert len(active) == 1
    assert active[0].variant == "destructive"
    assert active[0].title == "Failed to load lead details"
    assert "Lead 404 not found" in active[0].description


@pytest.mark.asyncio
async def test_switching_leads_keeps_only_the_last(db) -> None:
    store = LeadStore()
    first = store.create_lead(customer_name="First", phone="1")
    second = store.create_lead(customer_name="Second", phone="2")

    async with LifecycleScope() as scope:
        details = LeadDetails(store, scope)
        outcomes = await asyncio.gather(details.open(first.id), details.open(second.id))

        assert outcomes[1] is FetchOutcome.APPLIED
        assert outcomes[0] is FetchOutcome.CANCELLED
        assert details.lead.customer_name == "Second"


def test_notifications_expire_and_dismiss() -> None:
    clock = FakeClock()
    center = NotificationCenter(duration=5.0, clock=clock)
    first = center.push("Saved")
    second = center.error("Failed", "boom")

    assert [n.id for n in center.active()] == [first.id, second.id]
    assert center.dismiss(first.id) is True
    assert center.dismiss(first.id) is False

    clock.advance(5.0)
    assert center.active() == []


@pytest.mark.asyncio
async def test_activity_panel_loads_entries_for_lead(db) -> None:
    store = LeadStore()
    first, second = store.add_leads(
        [
            {"customer_name": "Asha Rao", "phone": "9845000001"},
            {"customer_name": "Ravi Kumar", "phone": "9845000002"},
        ],
        action="Lead Created",
        details="Lead imported from Google Sheet",
    )

    async with LifecycleScope() as scope:
        activity = LeadActivity(store, scope)
        assert activity.entries == []

        assert await activity.open(first) is FetchOutcome.APPLIED
        assert [entry.lead_id for entry in activity.entries] == [first]
        assert activity.entries[0].action == "Lead Created"
        assert activity.is_loading is False

        activity.close()
        assert activity.entries == []

    assert [entry.lead_id for entry in store.activity_logs(second)] == [second]
