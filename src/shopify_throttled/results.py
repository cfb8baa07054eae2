"""
Bulk Result Reader
==================

Downloads and decodes the JSONL payload a completed bulk operation leaves at
its pre-signed ``url``. The download is a plain GET: no access token and no
Admin API throttling, since the file is served from storage, not the API.
"""

import json
from typing import Any, List, Optional

import httpx

from .exceptions import HTTPError, ParseError, TransportError
from .log import get_logger
from .models import BulkJob

logger = get_logger(__name__)


def parse_jsonl(payload: str) -> List[Any]:
    """
    Decode every non-empty line of ``payload``.

    Records are separated by line feeds only; a trailing carriage return is
    dropped. Other Unicode line breaks can appear unescaped inside JSON strings.

    All lines are decoded before anything is returned, so a malformed line
    yields no partial result.

    Raises:
        ParseError: A line is not valid JSON
    """
    records = []
    for line_number, line in enumerate(payload.split("\n"), start=1):
        if line.endswith("\r"):
            line = line[:-1]
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except ValueError as exc:
            raise ParseError(
                f"Bulk result line {line_number} is not valid JSON: {exc}",
                line_number=line_number,
            ) from exc
    return records


class ResultStreamReader:
    """
    Fetch and decode bulk operation results.

    Args:
        http_client: Transport for the download
        timeout: Receive timeout in seconds for large payloads

    Example:
        ```python
        reader = ResultStreamReader(http)
        records = await reader.read(url)
        ```
    """

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 120.0):
        self._http = http_client
        self._timeout = timeout

    async def read(self, url: Optional[str]) -> List[Any]:
        """
        Records at ``url`` in file order.

        A missing url means the job produced no rows and yields an empty list.

        Raises:
            TransportError: The download failed before a response arrived
            HTTPError: The storage server answered with a non-2xx status
            ParseError: The payload is not valid JSONL
        """
        if not url:
            return []

        try:
            response = await self._http.get(url, timeout=self._timeout)
        except httpx.TransportError as exc:
            raise TransportError(f"GET bulk result failed: {exc}", reason=type(exc).__name__) from exc

        if not 200 <= response.status_code < 300:
            raise HTTPError(
                f"GET bulk result returned {response.status_code}",
                response.status_code,
                response.text,
                response,
            )

        records = parse_jsonl(response.text)
        logger.debug("Bulk result decoded", records=len(records), bytes=len(response.content))
        return records

    async def read_job(self, job: BulkJob) -> List[Any]:
        """Records of a job, falling back to its partial data when there is no full result."""
        return await self.read(job.url or job.partial_data_url)
