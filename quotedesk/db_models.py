"""
Database models for quotedesk.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Float, Text, DateTime, JSON, ForeignKey
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lead(Base):
    """
    Sales lead, either synced from a Google Sheet or submitted through the calculator.
    """
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    customer_name = Column(String, nullable=False)
    phone = Column(String, nullable=False, default="", index=True)
    email = Column(String, nullable=True)
    location = Column(String, nullable=True)
    project_type = Column(String, nullable=True)
    budget_preference = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="New")
    source = Column(String, nullable=False, default="sheet")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)


class LeadSyncConfig(Base):
    """
    Where and how often leads are pulled from a Google Sheet.

    Only the newest row is used.
    """
    __tablename__ = "lead_sync_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sheet_url = Column(String, nullable=False)
    sheet_name = Column(String, nullable=True)
    header_row = Column(Integer, nullable=False, default=1)
    column_mapping = Column(JSON, nullable=False, default=dict)
    sync_interval_minutes = Column(Integer, nullable=False, default=60)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class LeadActivityLog(Base):
    """
    Audit trail entry for a lead.
    """
    __tablename__ = "lead_activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String, nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Brand(Base):
    """
    Fixture brand whose price list is kept in a Google Sheet.

    column_mapping maps product fields to sheet headers; it is filled in from
    the header row on the first sync when left empty.
    """
    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    sheet_url = Column(String, nullable=True)
    sheet_name = Column(String, nullable=True)
    header_row = Column(Integer, nullable=False, default=1)
    column_mapping = Column(JSON, nullable=True)
    product_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class Product(Base):
    """
    Price-list row imported from a brand sheet. Names are unique per brand,
    ignoring case.
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(Integer, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    category = Column(String, nullable=False, default="")
    finish_color = Column(String, nullable=False, default="")
    series = Column(String, nullable=False, default="")
    model_code = Column(String, nullable=False, default="")
    size = Column(String, nullable=False, default="")
    mrp = Column(Float, nullable=False, default=0.0)
    landing_price = Column(Float, nullable=False, default=0.0)
    client_price = Column(Float, nullable=False, default=0.0)
    quotation_price = Column(Float, nullable=False, default=0.0)
    quantity = Column(Integer, nullable=False, default=0)
    extra_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True)


class ScheduledJob(Base):
    """
    Recurring job registered for a brand; only "sheet_sync" jobs exist.
    """
    __tablename__ = "scheduled_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    brand_id = Column(Integer, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    job_type = Column(String, nullable=False, default="sheet_sync")
    schedule = Column(String, nullable=False, default="0 10 * * *")
    status = Column(String, nullable=False, default="active")
    last_run = Column(DateTime(timezone=True), nullable=True)
    last_updated = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
