"""Client for the Webflow CMS API (v2).

Only the two read endpoints the mirror needs are wrapped: the site's
collection list and the paginated live items of a collection.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
REQUEST_TIMEOUT_SECONDS = 30

HEADERS = {
    "Accept": "application/json",
    "User-Agent": "cms-mirror-search/1.0",
}


def _pagination_total(payload: Dict[str, Any]) -> Optional[int]:
    pagination = payload.get("pagination")
    if not isinstance(pagination, dict):
        return None
    total = pagination.get("total")
    if isinstance(total, bool) or not isinstance(total, int):
        return None
    return total


class CmsClient:
    def __init__(self, token: str, api_base: str, session: Optional[requests.Session] = None):
        self.api_base = api_base.rstrip("/")
        self._token = token
        self._session = session or requests.Session()

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.api_base}{path}"
        headers = dict(HEADERS, Authorization=f"Bearer {self._token}")
        try:
            resp = self._session.get(url, params=params, headers=headers, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            raise UpstreamError("Webflow API request failed", details=str(exc)) from exc

        if not resp.ok:
            raise UpstreamError(
                f"Webflow API error: {resp.status_code}",
                status=resp.status_code,
                details=f"GET {path} returned {resp.status_code}",
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError("Webflow API returned invalid JSON", status=resp.status_code) from exc

        if not isinstance(payload, dict):
            raise UpstreamError("Webflow API returned an unexpected payload", status=resp.status_code)
        return payload

    def list_collections(self, site_id: str) -> List[Dict[str, Any]]:
        payload = self._get_json(f"/sites/{site_id}/collections")
        collections = payload.get("collections") or []
        return [entry for entry in collections if isinstance(entry, dict)]

    def fetch_all_items(self, collection_id: str, page_size: int = DEFAULT_PAGE_SIZE) -> List[Dict[str, Any]]:
        """Return every live item of *collection_id*.

        Pages are requested at offsets 0, ``page_size``, ``2 * page_size`` ...
        until a page comes back short or the running count equals the total
        the server reports. A total that is already exceeded is treated as
        stale and ignored, so full pages keep the loop going. Any failed page
        aborts the whole fetch with ``UpstreamError``.
        """

        if page_size <= 0:
            raise ValueError("page_size must be positive")

        items: List[Dict[str, Any]] = []
        offset = 0
        pages = 0

        while True:
            payload = self._get_json(
                f"/collections/{collection_id}/items/live",
                params={"offset": offset, "limit": page_size},
            )
            pages += 1
            page = [entry for entry in payload.get("items") or [] if isinstance(entry, dict)]
            items.extend(page)

            if len(page) < page_size:
                break

            total = _pagination_total(payload)
            if total is not None and len(items) == total:
                break

            offset += page_size

        logger.info(
            "Fetched %d items for collection %s in %d page(s)", len(items), collection_id, pages
        )
        return items
