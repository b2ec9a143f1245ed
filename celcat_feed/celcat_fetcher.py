"""HTTP client for the CELCAT timetable API."""

import logging
import time
from typing import Any, Optional

import httpx

from .core.exceptions import UpstreamHTTPError, UpstreamTransportError
from .core.http_client import (
    get_headers_with_correlation_id,
    get_shared_client,
    record_client_error,
    record_client_success,
)
from .domain.models import GroupSearchItem
from .domain.text_utils import clean_description_text

logger = logging.getLogger(__name__)

CELCAT_CLIENT_ID = "celcat"

# CELCAT "resource type" for student groups
GROUP_RESOURCE_TYPE = "103"

# Extra rows requested from the search endpoint to survive filtering
SEARCH_PAGE_PADDING = 5


def build_form_data(group_id: str, start: str, end: str) -> dict[str, str]:
    """Form body for a one-group calendar query."""
    return {
        "start": start,
        "end": end,
        "resType": GROUP_RESOURCE_TYPE,
        "calView": "month",
        "federationIds[]": group_id,
        "colourScheme": "3",
    }


def normalize_celcat_payload(data: Any, group_id: str = "") -> list[dict[str, Any]]:
    """Reduce a decoded CELCAT body to a list of event records.

    A bare array is the normal shape; ``{"d": [...]}`` and ``{"events": [...]}``
    wrappers are unwrapped. Null and non-object entries are dropped. Anything
    else means "no events".
    """
    if isinstance(data, dict):
        for key in ("d", "events"):
            if isinstance(data.get(key), list):
                data = data[key]
                break

    if not isinstance(data, list):
        if data is not None:
            logger.warning(
                "Unexpected CELCAT response shape for %s: %s", group_id, type(data).__name__
            )
        return []

    return [item for item in data if isinstance(item, dict)]


def build_search_params(term: str, page_size: int) -> dict[str, str]:
    """Query string for a resource-list search over student groups."""
    return {
        "myResources": "false",
        "searchTerm": term,
        "pageSize": str(page_size),
        "pageNumber": "1",
        "resType": GROUP_RESOURCE_TYPE,
        "_": str(int(time.time() * 1000)),
    }


def parse_search_results(data: Any, limit: int) -> list[GroupSearchItem]:
    """Turn a ``{"results": [{"id", "text"}]}`` body into at most ``limit`` items.

    HTML is stripped from the display text; entries without an id or text are skipped.
    """
    results = data.get("results") if isinstance(data, dict) else None
    if not isinstance(results, list):
        return []

    items: list[GroupSearchItem] = []
    for result in results:
        if not isinstance(result, dict):
            continue
        group_id = str(result.get("id") or "").strip()
        text = " ".join(clean_description_text(str(result.get("text") or "")).split())
        if group_id and text:
            items.append(GroupSearchItem(id=group_id, text=text))
        if len(items) >= limit:
            break
    return items


class CelcatClient:
    """Talks to the CELCAT calendar, resource search and home endpoints.

    Calendar queries are one POST per group. No retry happens here; the fetch
    coordinator owns retry policy.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        *,
        search_url: Optional[str] = None,
        status_url: Optional[str] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.search_url = search_url
        self.status_url = status_url
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return await get_shared_client(
            CELCAT_CLIENT_ID,
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
        )

    async def fetch_group(self, group_id: str, start: str, end: str) -> list[dict[str, Any]]:
        """Fetch raw events for one group over [start, end].

        Args:
            group_id: CELCAT federation id
            start: First day, YYYY-MM-DD
            end: Last day, YYYY-MM-DD

        Returns:
            Raw event records (possibly empty)

        Raises:
            UpstreamHTTPError: CELCAT answered with a non-2xx status
            UpstreamTransportError: Timeout, DNS or connection failure
        """
        client = await self._get_client()
        logger.info("Fetching from CELCAT: group=%s range=%s..%s", group_id, start, end)

        try:
            response = await client.post(
                self.url,
                data=build_form_data(group_id, start, end),
                headers=get_headers_with_correlation_id(),
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            await record_client_error(CELCAT_CLIENT_ID)
            logger.warning("CELCAT transport failure for %s: %s", group_id, e)
            raise UpstreamTransportError(e, group_key=group_id) from e

        if not response.is_success:
            await record_client_error(CELCAT_CLIENT_ID)
            logger.warning("CELCAT returned HTTP %d for %s", response.status_code, group_id)
            raise UpstreamHTTPError(response.status_code, group_key=group_id)

        await record_client_success(CELCAT_CLIENT_ID)

        try:
            data = response.json()
        except ValueError:
            logger.warning("CELCAT returned a non-JSON body for %s", group_id)
            return []

        events = normalize_celcat_payload(data, group_id)
        logger.info("Fetched %d events from CELCAT for %s", len(events), group_id)
        return events

    async def search_groups(self, term: str, limit: int = 15) -> list[GroupSearchItem]:
        """Search student groups by name.

        Raises:
            UpstreamHTTPError: CELCAT answered with a non-2xx status
            UpstreamTransportError: Timeout, DNS or connection failure
        """
        if not self.search_url:
            raise ValueError("CelcatClient has no search_url configured")

        client = await self._get_client()
        headers = get_headers_with_correlation_id()
        headers["X-Requested-With"] = "XMLHttpRequest"

        try:
            response = await client.get(
                self.search_url,
                params=build_search_params(term, limit + SEARCH_PAGE_PADDING),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            await record_client_error(CELCAT_CLIENT_ID)
            logger.warning("CELCAT search transport failure for %r: %s", term, e)
            raise UpstreamTransportError(e, group_key=term) from e

        if not response.is_success:
            await record_client_error(CELCAT_CLIENT_ID)
            logger.warning("CELCAT search returned HTTP %d for %r", response.status_code, term)
            raise UpstreamHTTPError(response.status_code, group_key=term)

        await record_client_success(CELCAT_CLIENT_ID)

        try:
            data = response.json()
        except ValueError:
            logger.warning("CELCAT search returned a non-JSON body for %r", term)
            return []
        return parse_search_results(data, limit)

    async def check_status(self, timeout: float = 3.0) -> bool:
        """HEAD the CELCAT home page; True when it answers with a 2xx status."""
        if not self.status_url:
            raise ValueError("CelcatClient has no status_url configured")

        client = await self._get_client()
        try:
            response = await client.head(
                self.status_url, headers=get_headers_with_correlation_id(), timeout=timeout
            )
        except httpx.HTTPError as e:
            logger.info("CELCAT status check failed: %s", e)
            return False
        return response.is_success
