"""HTTP page fetcher for the VK database API."""

from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from .context import RunContext
from .errors import ApiError, DecodeError, TransportError
from .models import Entity, Page

REGIONS_RESOURCE = "database.getCities"
INSTITUTIONS_RESOURCE = "database.getUniversities"


def _decode_item(raw: Any, index: int) -> Entity:
    if not isinstance(raw, dict):
        raise DecodeError(f"Item {index} is not an object", {"index": index})
    item_id = raw.get("id")
    title = raw.get("title")
    # bool is an int subclass; reject it explicitly
    if not isinstance(item_id, int) or isinstance(item_id, bool):
        raise DecodeError(f"Item {index} has no integer 'id'", {"index": index, "id": item_id})
    if not isinstance(title, str):
        raise DecodeError(f"Item {index} has no string 'title'", {"index": index, "id": item_id})
    return Entity(remote_id=item_id, name=title)


def decode_envelope(payload: Any) -> Dict[str, Any]:
    """
    Validate a decoded JSON body against the result envelope.

    Expected shape: {"response": {"count": int, "items": [{"id": int, "title": str}, ...]}}

    Returns:
        Dict with "count" (int) and "items" (list of Entity)

    Raises:
        ApiError: If the body is a VK error envelope
        DecodeError: On any other shape mismatch
    """
    if not isinstance(payload, dict):
        raise DecodeError("Response body is not a JSON object")

    if "error" in payload:
        err = payload["error"] if isinstance(payload["error"], dict) else {}
        code = err.get("error_code")
        msg = err.get("error_msg", "unknown error")
        raise ApiError(f"VK API error {code}: {msg}", code=code, details={"error_code": code})

    body = payload.get("response")
    if not isinstance(body, dict):
        raise DecodeError("Missing 'response' object in envelope")

    count = body.get("count")
    if not isinstance(count, int) or isinstance(count, bool):
        raise DecodeError("Envelope 'count' is not an integer", {"count": count})

    items = body.get("items")
    if not isinstance(items, list):
        raise DecodeError("Envelope 'items' is not a list")

    return {"count": count, "items": [_decode_item(raw, i) for i, raw in enumerate(items)]}


class PageFetcher:
    """
    Issues one paginated request per call against a named API method.

    Holds the access token and a shared requests.Session; safe to call from
    several worker threads at once.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.vk.com/method/",
        api_version: str = "5.103",
        timeout: float = 15.0,
        country_id: int = 1,
        session: Optional[requests.Session] = None,
        pool_size: int = 10,
    ):
        self.token = token
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.api_version = api_version
        self.timeout = timeout
        self.country_id = country_id
        if session is None:
            session = requests.Session()
            # One keep-alive connection per worker
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=pool_size)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session

    def fetch_page(
        self,
        resource: str,
        offset: int,
        count: int,
        ctx: RunContext,
        **filters: Any,
    ) -> Page:
        """
        Fetch one page of a resource.

        Args:
            resource: API method name (e.g. database.getCities)
            offset: Index of the first item to return
            count: Requested page size
            ctx: Run context bounding the request timeout
            **filters: Extra resource-specific query parameters

        Raises:
            TransportError: Connection failure, timeout or HTTP error status
            DecodeError: Body is not the expected envelope
            DeadlineExceeded: The run was cancelled before the request
        """
        ctx.check()

        url = self.base_url + resource
        params = {
            "access_token": self.token,
            "v": self.api_version,
            "count": count,
            "offset": offset,
        }
        params.update(filters)
        # never log the token
        context = {"resource": resource, "offset": offset, "count": count}

        try:
            resp = self.session.get(url, params=params, timeout=ctx.clip_timeout(self.timeout))
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "HTTPError"
            raise TransportError(f"{resource} request failed ({status})", {**context, "status": status})
        except requests.exceptions.Timeout:
            raise TransportError(f"{resource} request timed out", context)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{resource} request error: {e}", context)

        try:
            payload = resp.json()
        except ValueError as e:
            raise DecodeError(f"{resource} returned a non-JSON body: {e}", context)

        try:
            decoded = decode_envelope(payload)
        except DecodeError as e:
            e.details = {**context, **e.details}
            raise

        return Page(items=decoded["items"], requested=count, offset=offset, total_count=decoded["count"])

    def fetch_regions(self, offset: int, count: int, ctx: RunContext, need_all: bool = False) -> Page:
        """Fetch a page of cities of the configured country."""
        filters: Dict[str, Any] = {"country_id": self.country_id}
        if need_all:
            filters["need_all"] = 1
        return self.fetch_page(REGIONS_RESOURCE, offset, count, ctx, **filters)

    def fetch_institutions(self, region_remote_id: int, offset: int, count: int, ctx: RunContext) -> Page:
        """Fetch a page of universities located in one city."""
        return self.fetch_page(INSTITUTIONS_RESOURCE, offset, count, ctx, city_id=region_remote_id)
