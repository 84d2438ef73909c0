"""
Google Sheets API client.
Read-only access to spreadsheet values and metadata using an API key.
"""

import asyncio
import logging
import re
import httpx
from typing import Optional, Dict, Any
from urllib.parse import quote

from quotedesk.cache import KeyedExpiringCache

logger = logging.getLogger(__name__)

_SHEETS_BASE = "https://sheets.googleapis.com/v4/spreadsheets"

# Spreadsheet ids are long runs of word characters and dashes
_SHEET_ID_RE = re.compile(r"[-\w]{25,}")

DEFAULT_SHEET_NAME = "Sheet1"


def extract_sheet_id(url: str) -> Optional[str]:
    """
    Extract the spreadsheet id from a Google Sheets URL.

    Args:
        url: Sheet URL, e.g. https://docs.google.com/spreadsheets/d/<id>/edit

    Returns:
        Spreadsheet id, or None if the URL contains none
    """
    match = _SHEET_ID_RE.search(url or "")
    return match.group(0) if match else None


class SheetsAPIError(Exception):
    """Google Sheets API error."""
    def __init__(self, message: str, status_code: Optional[int]):
        super().__init__(message)
        self.status_code = status_code


class SheetsTimeoutError(SheetsAPIError):
    """Request did not finish before the timeout."""
    def __init__(self, message: str = "Request timed out fetching sheet data"):
        super().__init__(message, 408)


class SheetsClient:
    """
    Google Sheets v4 API client.

    Every request is bounded by a total timeout; when it fires the request is
    abandoned and SheetsTimeoutError is raised instead of a network error.
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        metadata_cache: Optional[KeyedExpiringCache] = None,
    ):
        """
        Initialize Sheets client.

        Args:
            api_key: Google API key with Sheets API access
            timeout: Total seconds allowed per request
            transport: Optional httpx transport (used by tests)
            metadata_cache: Optional per-sheet cache for spreadsheet metadata
        """
        self.api_key = api_key
        self.timeout = timeout
        self.metadata_cache = metadata_cache
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def _fetch(self, url: str) -> Dict[str, Any]:
        """
        Fetch JSON from the Sheets API.

        Args:
            url: Fully built endpoint URL (without the key parameter)

        Returns:
            Parsed JSON response

        Raises:
            SheetsTimeoutError: When the timeout fires first
            SheetsAPIError: On non-2xx responses or transport errors
        """
        try:
            response = await asyncio.wait_for(
                self.client.get(url, params={"key": self.api_key}),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Sheets API request timed out after %ss", self.timeout)
            raise SheetsTimeoutError()
        except httpx.RequestError as e:
            raise SheetsAPIError(f"Request error: {str(e)}", None)

        if response.is_error:
            error_text = response.text
            logger.error("Google Sheets API error (%s): %s", response.status_code, error_text)
            raise SheetsAPIError(
                f"{response.status_code} {error_text if error_text else 'HTTP error'}",
                status_code=response.status_code
            )

        return response.json()

    async def get_values(
        self,
        sheet_id: str,
        sheet_name: str = DEFAULT_SHEET_NAME,
        cell_range: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Get cell values of one tab.

        Args:
            sheet_id: Spreadsheet id
            sheet_name: Tab name
            cell_range: Optional A1 range within the tab, e.g. "A1:Z1000"

        Returns:
            Values payload, with rows under "values"
        """
        target = quote(sheet_name or DEFAULT_SHEET_NAME, safe="")
        if cell_range:
            target = f"{target}!{cell_range}"
        return await self._fetch(f"{_SHEETS_BASE}/{sheet_id}/values/{target}")

    async def get_metadata(self, sheet_id: str, fresh: bool = False) -> Dict[str, Any]:
        """
        Get spreadsheet metadata (title, tabs).

        Args:
            sheet_id: Spreadsheet id
            fresh: Skip the cached copy and refetch; the result is still cached

        Returns:
            Metadata payload, with tabs under "sheets"
        """
        if self.metadata_cache is not None and not fresh:
            cached = self.metadata_cache.get(sheet_id)
            if cached is not None:
                return cached

        metadata = await self._fetch(f"{_SHEETS_BASE}/{sheet_id}")

        if self.metadata_cache is not None:
            self.metadata_cache.set(sheet_id, metadata)
        return metadata
