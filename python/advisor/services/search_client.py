# Search Client - Brave web search
# Used to ground scholarship generation and by the /api/websearch proxy.

import logging
from contextlib import suppress
from typing import List, Optional

import httpx

from ..config import DEFAULT_BRAVE_URL
from ..errors import UpstreamSearchError
from ..models import WebResult
from ..utils.metrics import search_requests_total

logger = logging.getLogger(__name__)


class SearchClient:
    """Query an external web-search API and normalize its results to WebResult"""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BRAVE_URL,
        max_results: int = 5,
        timeout_s: float = 15.0,
        enabled: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BRAVE_URL
        self.max_results = max_results
        self.enabled = enabled
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def search(self, query: str, max_results: Optional[int] = None) -> List[WebResult]:
        """
        Return at most `max_results` results in upstream order.
        An empty result set is not an error; it is logged and returned as [].
        """
        if not self.enabled:
            logger.info("Web search disabled, returning no results")
            return []
        if not self.api_key:
            search_requests_total.labels(outcome="missing_credential").inc()
            raise UpstreamSearchError("missing_credential", "search API key not configured")

        limit = self.max_results if max_results is None else max_results
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self.api_key,
        }

        try:
            resp = await self.client.get(self.base_url, params={"q": query}, headers=headers)
        except httpx.HTTPError as e:
            search_requests_total.labels(outcome="transport").inc()
            raise UpstreamSearchError("transport", f"search request failed: {e}")

        if resp.status_code >= 400:
            search_requests_total.labels(outcome="http_status").inc()
            raise UpstreamSearchError(
                "http_status", f"search returned {resp.status_code}: {resp.text[:300]}", status=resp.status_code
            )

        try:
            data = resp.json()
            raw_results = (data.get("web") or {}).get("results") or []
            if not isinstance(raw_results, list):
                raise ValueError("'web.results' is not a list")
        except (ValueError, AttributeError) as e:
            search_requests_total.labels(outcome="decode").inc()
            raise UpstreamSearchError("decode", f"invalid search JSON: {e} (partial body: {resp.text[:300]})")

        results: List[WebResult] = []
        for r in raw_results:
            if limit > 0 and len(results) >= limit:
                break
            if not isinstance(r, dict):
                continue
            results.append(WebResult(
                title=str(r.get("title") or "").strip(),
                url=str(r.get("url") or "").strip(),
                snippet=str(r.get("description") or "").strip(),
            ))

        if not results:
            logger.info(f"Search returned no results for query: {query}")
        search_requests_total.labels(outcome="success").inc()
        return results

    async def close(self):
        if self._owns_client:
            with suppress(Exception):
                await self.client.aclose()
