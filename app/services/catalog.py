from __future__ import annotations

"""
Media catalog (read-only).

The transcoding pipeline records one item per title in a DynamoDB table
(keyed by `guid`). Client apps list the whole table to build their library
view; there is no filtering or projection on this side.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import botocore.exceptions

from app.core.exceptions import UpstreamException
from app.utils.aws import boto_resource

logger = logging.getLogger(__name__)

# DynamoDB caps a single scan page at 1 MB; this bounds total pages per request.
MAX_SCAN_PAGES = 100


def _plain(value: Any) -> Any:
    """Convert DynamoDB `Decimal`s (recursively) into int/float for JSON."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, set):
        return sorted(_plain(v) for v in value)
    return value


class MediaCatalog:
    """Scan the media table; `table` may be injected (tests)."""

    def __init__(self, table_name: str, *, table: Any = None) -> None:
        self.table_name = table_name
        self._table = table

    @property
    def table(self):
        if self._table is None:
            self._table = boto_resource("dynamodb").Table(self.table_name)
        return self._table

    def scan_all(self) -> List[Dict[str, Any]]:
        """Every item in the table, following `LastEvaluatedKey` pagination."""
        items: List[Dict[str, Any]] = []
        start_key: Optional[Dict[str, Any]] = None
        try:
            for _ in range(MAX_SCAN_PAGES):
                kwargs: Dict[str, Any] = {}
                if start_key:
                    kwargs["ExclusiveStartKey"] = start_key
                page = self.table.scan(**kwargs)
                items.extend(_plain(i) for i in page.get("Items", []))
                start_key = page.get("LastEvaluatedKey")
                if not start_key:
                    break
            else:
                logger.warning("catalog.scan stopped after %d pages table=%s", MAX_SCAN_PAGES, self.table_name)
        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            logger.error("catalog.scan failed table=%s err=%s", self.table_name, type(e).__name__)
            raise UpstreamException(message="Catalog unavailable") from e
        return items

    async def list_media(self) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.scan_all)


__all__ = ["MediaCatalog"]
