"""Read-only Google Workspace calls made on a connected user's behalf."""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from app.core.config import Settings
from app.core.errors import DownstreamError

SHEETS_VALUES_URL = "https://sheets.googleapis.com/v4/spreadsheets/{sheet_id}/values/{value_range}"
FORM_RESPONSES_URL = "https://forms.googleapis.com/v1/forms/{form_id}/responses"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
FORM_MIME_TYPE = "application/vnd.google-apps.form"
DEFAULT_SHEET_RANGE = "A:Z"

logger = logging.getLogger(__name__)


class GoogleWorkspaceClient:
    """Thin relay over the Sheets, Forms and Drive REST APIs.

    Response bodies are returned exactly as Google sends them; failures raise
    DownstreamError with Google's status code and body.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    async def get_sheet_values(
        self, access_token: str, sheet_id: str, value_range: str = DEFAULT_SHEET_RANGE
    ) -> Any:
        url = SHEETS_VALUES_URL.format(
            sheet_id=quote(sheet_id, safe=""), value_range=quote(value_range, safe="")
        )
        return await self._get(url, access_token)

    async def list_form_responses(self, access_token: str, form_id: str) -> Any:
        url = FORM_RESPONSES_URL.format(form_id=quote(form_id, safe=""))
        return await self._get(url, access_token)

    async def list_forms(self, access_token: str) -> Any:
        params = {
            "q": f"mimeType='{FORM_MIME_TYPE}'",
            "spaces": "drive",
            "fields": "files(id,name,description)",
            "pageSize": "100",
        }
        return await self._get(DRIVE_FILES_URL, access_token, params=params)

    async def _get(self, url: str, access_token: str, *, params: dict[str, str] | None = None) -> Any:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
                response = await client.get(url, headers=headers, params=params)
        except httpx.HTTPError as exc:
            logger.error("Google API request failed", exc_info=exc, extra={"url": url})
            raise DownstreamError(
                "Failed to communicate with Google API", detail=str(exc), status_code=502
            ) from exc

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        if response.status_code >= 400:
            logger.warning(
                "Google API error",
                extra={"url": url, "status_code": response.status_code, "body": response.text},
            )
            raise DownstreamError("Google API error", detail=body, status_code=response.status_code)
        return body
