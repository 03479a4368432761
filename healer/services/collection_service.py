"""
Collection Service
==================
Thin async wrapper around the Postman collections API.

Operations:
    get_collection   — GET /collections/{id}
    get_request      — find an item (recursively through folders) by id
    update_request   — merge an updated item into the collection and PUT it back

Identifiers are passed explicitly on every call; the service keeps no
"current collection" state. Request ids are resolved through a pluggable
IdentifierNormalizer: the raw id is tried first, then its normalized forms.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from healer.core.config import POSTMAN_API_KEY, POSTMAN_BASE_URL, HTTP_TIMEOUT_SECONDS, REQUEST_ID_NORMALIZER
from healer.core.errors import NotFoundError, UpstreamError
from healer.utils.identifiers import IdentifierNormalizer, get_normalizer

logger = logging.getLogger(__name__)


def find_item(items: List[dict], request_id: str) -> Optional[dict]:
    """Depth-first search for an item with the given id."""
    for item in items or []:
        if item.get("id") == request_id:
            return item
        children = item.get("item")
        if isinstance(children, list):
            found = find_item(children, request_id)
            if found is not None:
                return found
    return None


def replace_item(items: List[dict], request_id: str, updated: Dict[str, Any]) -> bool:
    """Merge ``updated`` into the item with the given id, in place."""
    for i, item in enumerate(items or []):
        if item.get("id") == request_id:
            items[i] = {**item, **updated}
            return True
        children = item.get("item")
        if isinstance(children, list) and replace_item(children, request_id, updated):
            return True
    return False


class CollectionService:
    """
    Async client for the collection-storage backend.

    Usage:
        service = CollectionService(api_key="...")
        item = await service.get_request("col-id", "req-id")
        await service.close()
    """

    def __init__(
        self,
        api_key: str = POSTMAN_API_KEY or "",
        base_url: str = POSTMAN_BASE_URL,
        normalizer: Optional[IdentifierNormalizer] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.normalizer = normalizer or get_normalizer(REQUEST_ID_NORMALIZER)
        self._headers = {"X-Api-Key": api_key, "Content-Type": "application/json"}
        self._http = client
        self._timeout = timeout

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def _send(self, method: str, path: str, **kwargs) -> dict:
        http = await self._get_http()
        url = f"{self.base_url}{path}"
        try:
            resp = await http.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Collection backend unreachable: {e}") from e

        if resp.status_code == 404:
            raise NotFoundError(f"Collection resource not found: {path}")
        if resp.is_error:
            raise UpstreamError(f"Collection backend returned {resp.status_code}: {resp.text[:300]}")
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(f"Collection backend returned invalid JSON: {e}") from e

    async def get_collection(self, collection_id: str) -> dict:
        data = await self._send("GET", f"/collections/{collection_id}")
        if not isinstance(data.get("collection"), dict):
            raise UpstreamError("Collection backend response has no 'collection' object")
        return data

    async def get_request(self, collection_id: str, request_id: str) -> dict:
        """
        Fetch one request item.

        Raises
        ------
        NotFoundError
            If no candidate id matches an item in the collection.
        UpstreamError
            On network or backend failure.
        """
        collection = await self.get_collection(collection_id)
        items = collection["collection"].get("item", [])
        for candidate in self.normalizer.candidates(request_id):
            item = find_item(items, candidate)
            if item is not None:
                return item
        raise NotFoundError(f"Request {request_id} not found in collection {collection_id}")

    async def update_request(self, collection_id: str, request_id: str, updated_request: Dict[str, Any]) -> None:
        """Merge ``updated_request`` into the matching item and save the collection."""
        logger.info("Updating request %s in collection %s", request_id, collection_id)
        collection = await self.get_collection(collection_id)
        body = collection["collection"]
        items = body.setdefault("item", [])

        for candidate in self.normalizer.candidates(request_id):
            if replace_item(items, candidate, updated_request):
                break
        else:
            raise NotFoundError(f"Request {request_id} not found in collection {collection_id}")

        await self._send("PUT", f"/collections/{collection_id}", json={"collection": body})
        logger.info("Collection %s saved", collection_id)
