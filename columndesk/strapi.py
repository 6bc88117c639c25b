import asyncio
from functools import partial
from typing import Any, Dict, List, Optional, Tuple

import requests

from .errors import NotFoundError, TransportError
from .log import get_logger
from .models import LinkRecord

logger = get_logger(__name__)

# REST endpoints use the plural Content Type name
COLLECTIONS = {
    "articles": "articles",
    "columns": "columns",
    "video_episodes": "video-episodes",
    "events": "events",
}


def encode_params(params: Optional[Dict[str, Any]], prefix: str = "") -> List[Tuple[str, str]]:
    """
    Flatten nested query params into Strapi's bracket notation:
    {"filters": {"slug": {"$eq": "x"}}} -> [("filters[slug][$eq]", "x")]
    {"populate": ["links"]} -> [("populate[0]", "links")]
    """
    if params is None:
        return []
    pairs: List[Tuple[str, str]] = []
    if isinstance(params, dict):
        items = params.items()
    elif isinstance(params, (list, tuple)):
        items = enumerate(params)
    else:
        return [(prefix, _scalar(params))]

    for key, value in items:
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, (dict, list, tuple)):
            pairs.extend(encode_params(value, name))
        elif value is not None:
            pairs.append((name, _scalar(value)))
    return pairs


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def unwrap_entity(payload: Any) -> Optional[Dict[str, Any]]:
    """
    Return a flat entity dict from either response shape:
    - flat:   {"data": {"id": 1, "documentId": "abc", "title": ...}}
    - nested: {"data": {"id": 1, "attributes": {"title": ...}}}
    Accepts the bare entity as well.
    """
    if not isinstance(payload, dict):
        return None
    entity = payload["data"] if "data" in payload else payload
    if not isinstance(entity, dict):
        return None
    attrs = entity.get("attributes")
    if isinstance(attrs, dict):
        flat = {k: v for k, v in entity.items() if k != "attributes"}
        for key, value in attrs.items():
            flat.setdefault(key, value)
        return flat
    return dict(entity)


def unwrap_list(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    items = payload.get("data") or []
    if not isinstance(items, list):
        return []
    return [e for e in (unwrap_entity(item) for item in items) if e is not None]


def extract_links(entity: Optional[Dict[str, Any]]) -> List[LinkRecord]:
    if not entity:
        return []
    links = entity.get("links")
    if isinstance(links, dict):
        links = links.get("data")
    if not isinstance(links, list):
        return []
    return [LinkRecord.from_cms(raw) for raw in links]


def relation_id(value: Any) -> Optional[int]:
    """Id of a to-one relation in any of {"data": {"id"}}, {"id"} or bare int form."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, dict):
        inner = value.get("data", value)
        if isinstance(inner, dict) and inner.get("id") is not None:
            return inner["id"]
    return None


class StrapiClient:
    """Blocking REST client for the Strapi content API."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self._jwt: Optional[str] = None

    # ----- auth -----

    def set_token(self, token: Optional[str]):
        self._jwt = token

    def clear_token(self):
        self._jwt = None

    def _auth_headers(self) -> Dict[str, str]:
        token = self._jwt or self.api_token
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def login(self, identifier: str, password: str) -> Dict[str, Any]:
        body = self._request(
            "POST", "/auth/local", json={"identifier": identifier, "password": password}
        )
        self.set_token(body.get("jwt"))
        return body

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/users/me")

    # ----- CRUD -----

    def find(self, collection: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("GET", f"/{collection}", params=params)

    def find_one(
        self, collection: str, id: Any, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return self._request("GET", f"/{collection}/{id}", params=params, entity_id=id)

    def create(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/{collection}", json={"data": data})

    def update(self, collection: str, id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/{collection}/{id}", json={"data": data}, entity_id=id)

    def delete(self, collection: str, id: Any) -> None:
        self._request("DELETE", f"/{collection}/{id}", entity_id=id)

    # ----- transport -----

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        entity_id: Any = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        log = logger.with_context(method=method, url=url)
        log.debug(f"API call: {method} {path}")
        try:
            resp = self.session.request(
                method,
                url,
                params=encode_params(params),
                json=json,
                headers=self._auth_headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log.error(f"API transport error for {path}: {exc}")
            raise TransportError(str(exc)) from exc

        log.debug(f"API response for {path}", status=resp.status_code)

        if resp.status_code == 404:
            raise NotFoundError(f"{path} not found", identifier=entity_id)
        if resp.status_code == 401:
            self.clear_token()
        if resp.status_code >= 400:
            message, details = _error_message(resp)
            log.error(f"API error for {path}: {message}", status=resp.status_code)
            raise TransportError(message, status=resp.status_code, details=details)

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f"Invalid JSON from {path}", status=resp.status_code
            ) from exc


def _error_message(resp: requests.Response) -> Tuple[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}", None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or f"HTTP {resp.status_code}", error.get("details")
    return f"HTTP {resp.status_code}", None


async def run_blocking(fn, *args):
    """Run a blocking client call on the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(fn, *args))
