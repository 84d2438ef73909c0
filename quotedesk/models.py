"""
Request and response models for the quotedesk API.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator

from quotedesk.sheet_parser import LEAD_FIELDS, PRODUCT_FIELDS


class SheetDataRequest(BaseModel):
    """Body of the fetch-sheet-data function."""
    sheet_url: Optional[str] = Field(default=None, alias="sheetUrl")
    sheet_name: Optional[str] = Field(default=None, alias="sheetName")
    header_row_index: Optional[int] = Field(default=0, ge=0, alias="headerRowIndex")

    class Config:
        populate_by_name = True


class SheetDataResponse(BaseModel):
    """Sheet header row and the rows below it, keyed by header."""
    headers: List[str]
    data: List[Dict[str, Any]]


class ValidateSheetRequest(BaseModel):
    """Body of the validate-sheet function."""
    sheet_url: Optional[str] = Field(default=None, alias="sheetUrl")
    sheet_name: Optional[str] = Field(default=None, alias="sheetName")

    class Config:
        populate_by_name = True


class SyncConfig(BaseModel):
    """Stored lead sync configuration."""
    id: int
    sheet_url: str
    sheet_name: Optional[str] = None
    header_row: int = 1
    column_mapping: Dict[str, str] = Field(default_factory=dict)
    sync_interval_minutes: int = 60
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncConfigUpdate(BaseModel):
    """Editable part of the lead sync configuration."""
    sheet_url: str = Field(min_length=1)
    sheet_name: Optional[str] = None
    header_row: int = Field(default=1, ge=1)
    column_mapping: Dict[str, str] = Field(default_factory=dict)
    sync_interval_minutes: int = Field(default=60, ge=1)

    @field_validator("column_mapping")
    @classmethod
    def _known_fields(cls, mapping: Dict[str, str]) -> Dict[str, str]:
        unknown = sorted(set(mapping) - set(LEAD_FIELDS))
        if unknown:
            raise ValueError(f"Unknown lead fields: {', '.join(unknown)}")
        return mapping


class LeadOut(BaseModel):
    """Lead as returned by the API."""
    id: int
    lead_date: datetime
    customer_name: str
    phone: str = ""
    email: Optional[str] = None
    location: Optional[str] = None
    project_type: Optional[str] = None
    budget_preference: Optional[str] = None
    notes: Optional[str] = None
    status: str = "New"
    source: str = "sheet"
    created_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EstimateRequest(BaseModel):
    """Customer details submitted from the public calculator."""
    name: str = Field(min_length=1)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    mobile: str = Field(min_length=1)
    location: str = ""

    @field_validator("name", "email", "mobile", "location", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class EstimateResponse(BaseModel):
    id: int
    status: str = "received"


class LeadActivityOut(BaseModel):
    """Entry of a lead's activity log."""
    id: int
    lead_id: int
    action: str
    details: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class BrandCreate(BaseModel):
    """Brand with the sheet its price list is kept in."""
    name: str = Field(min_length=1)
    sheet_url: Optional[str] = None
    sheet_name: Optional[str] = None
    header_row: int = Field(default=1, ge=1)
    column_mapping: Optional[Dict[str, str]] = None

    @field_validator("column_mapping")
    @classmethod
    def _known_fields(cls, mapping: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if mapping is None:
            return None
        unknown = sorted(set(mapping) - set(PRODUCT_FIELDS))
        if unknown:
            raise ValueError(f"Unknown product fields: {', '.join(unknown)}")
        return mapping


class BrandOut(BaseModel):
    id: int
    name: str
    sheet_url: Optional[str] = None
    sheet_name: Optional[str] = None
    header_row: int = 1
    column_mapping: Optional[Dict[str, str]] = None
    product_count: int = 0
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProductOut(BaseModel):
    """Product as returned by the API."""
    id: int
    brand_id: int
    name: str
    description: str = ""
    category: str = ""
    finish_color: str = ""
    series: str = ""
    model_code: str = ""
    size: str = ""
    mrp: float = 0.0
    landing_price: float = 0.0
    client_price: float = 0.0
    quotation_price: float = 0.0
    quantity: int = 0
    extra_data: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class SheetSyncRequest(BaseModel):
    """Body of the run-sheet-sync and schedule-sheet-sync functions."""
    brand_id: Optional[int] = Field(default=None, alias="brandId")

    class Config:
        populate_by_name = True
