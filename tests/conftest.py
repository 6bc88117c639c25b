"""
Shared pytest fixtures.

FakeStrapi stands in for StrapiClient: same blocking method signatures,
in-memory column, records every call.
"""

import copy
from typing import Any, Dict, Iterable, List, Optional

import pytest

from columndesk.errors import NotFoundError
from columndesk.models import LinkRecord
from columndesk.protocol import ColumnLinkSync


def make_links(count: int, prefix: str = "http://example.com/") -> List[Dict[str, Any]]:
    return [
        {"label": f"Link {i}", "url": f"{prefix}{i}", "description": None, "publishDate": None}
        for i in range(count)
    ]


def link(label: str, url: str, **kwargs) -> LinkRecord:
    return LinkRecord(label=label, url=url, **kwargs)


class FakeStrapi:
    def __init__(
        self,
        entity: Dict[str, Any],
        missing: Iterable[Any] = (),
        nested: bool = False,
    ):
        self.entity = copy.deepcopy(entity)
        self.missing = {str(a) for a in missing}
        self.nested = nested
        self.calls: List[tuple] = []
        self.update_error: Optional[Exception] = None
        self.find_one_error_after_update: Optional[Exception] = None
        self.find_results: Dict[str, Dict[str, Any]] = {}
        self.created: List[tuple] = []
        self._updated = False

    def _shape(self) -> Dict[str, Any]:
        entity = copy.deepcopy(self.entity)
        if self.nested:
            attrs = {k: v for k, v in entity.items() if k not in ("id", "documentId")}
            return {"data": {"id": entity.get("id"), "attributes": attrs}}
        return {"data": entity}

    def find_one(self, collection, id, params=None):
        self.calls.append(("find_one", id))
        if str(id) in self.missing:
            raise NotFoundError(f"/{collection}/{id} not found", identifier=id)
        if self._updated and self.find_one_error_after_update is not None:
            raise self.find_one_error_after_update
        return self._shape()

    def update(self, collection, id, data):
        self.calls.append(("update", id, copy.deepcopy(data)))
        if str(id) in self.missing:
            raise NotFoundError(f"/{collection}/{id} not found", identifier=id)
        if self.update_error is not None:
            raise self.update_error
        self.entity.update(copy.deepcopy(data))
        self._updated = True
        return self._shape()

    def find(self, collection, params=None):
        self.calls.append(("find", collection, params))
        if collection in self.find_results:
            return self.find_results[collection]
        return {"data": [self._shape()["data"]], "meta": {}}

    def create(self, collection, data):
        self.created.append((collection, copy.deepcopy(data)))
        return {"data": {"id": 99, "documentId": "new-doc", **data}}

    def delete(self, collection, id):
        self.calls.append(("delete", collection, id))

    def login(self, identifier, password):
        return {"jwt": "token", "user": {"username": identifier}}

    def updates(self) -> List[tuple]:
        return [c for c in self.calls if c[0] == "update"]


@pytest.fixture
def column_entity() -> Dict[str, Any]:
    return {
        "id": 5,
        "documentId": "doc-5",
        "title": "Weekly reads",
        "slug": "weekly-reads",
        "links": [{"label": "A", "url": "http://a", "description": None, "publishDate": None}],
    }


@pytest.fixture
def fake_strapi(column_entity) -> FakeStrapi:
    return FakeStrapi(column_entity)


@pytest.fixture
def sync(fake_strapi) -> ColumnLinkSync:
    return ColumnLinkSync(fake_strapi, resync_wait=2.0, settle_delay=0)
