"""
Remote Table Client
Generic Find/Add/Edit/Delete requests against the AppSheet tables API
"""
import asyncio
import json
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import aiohttp

from kho.core.config import Settings, settings as default_settings
from kho.core.exceptions import RemoteServiceError
from kho.core.logging import get_logger

logger = get_logger("remote")


class TableAction(str, Enum):
    FIND = "Find"
    ADD = "Add"
    EDIT = "Edit"
    DELETE = "Delete"


class TableClient(Protocol):
    """Anything that can run a table action; the manager depends only on this"""

    async def request(
        self,
        table: str,
        action: TableAction,
        rows: Optional[List[Dict[str, Any]]] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        ...


class AppSheetTableClient:
    """
    aiohttp client for ``POST {tables_url}/{table}/Action``

    Every call is a single request/response; there are no retries.
    """

    def __init__(self, config: Optional[Settings] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or default_settings
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.APPSHEET_TIMEOUT_SECONDS)
            )
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def request(
        self,
        table: str,
        action: TableAction,
        rows: Optional[List[Dict[str, Any]]] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Run one table action

        Returns the rows the API answered with (the full table for Find).
        Raises RemoteServiceError on transport failures and non-2xx replies.
        """
        action = TableAction(action)
        url = f"{self.config.appsheet_tables_url}/{table}/Action"
        body = {
            "Action": action.value,
            "Properties": properties or {},
            "Rows": rows or [],
        }
        headers = {
            "ApplicationAccessKey": self.config.APPSHEET_ACCESS_KEY,
            "Content-Type": "application/json",
        }

        logger.debug(f"{action.value} {table}: {len(body['Rows'])} row(s)")
        session = await self._get_session()
        try:
            async with session.post(url, json=body, headers=headers) as response:
                text = await response.text()
                if response.status >= 400:
                    logger.error(f"{action.value} {table} failed: HTTP {response.status} {text[:200]}")
                    raise RemoteServiceError(
                        "Lỗi kết nối dữ liệu",
                        detail=f"{action.value} {table} returned HTTP {response.status}",
                        status=response.status,
                    )
        except asyncio.TimeoutError:
            logger.error(f"{action.value} {table} timed out")
            raise RemoteServiceError("Lỗi kết nối dữ liệu", detail=f"{action.value} {table} timed out")
        except aiohttp.ClientError as e:
            logger.error(f"{action.value} {table} connection error: {e}")
            raise RemoteServiceError("Lỗi kết nối dữ liệu", detail=f"Connection error: {e}")

        return self._parse_rows(text, table, action)

    @staticmethod
    def _parse_rows(text: str, table: str, action: TableAction) -> List[Dict[str, Any]]:
        if not text or not text.strip():
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            raise RemoteServiceError(
                "Lỗi kết nối dữ liệu",
                detail=f"{action.value} {table} returned a non-JSON body",
            )
        if isinstance(payload, dict):
            payload = payload.get("Rows", [])
        if not isinstance(payload, list):
            return []
        return [row for row in payload if isinstance(row, dict)]
