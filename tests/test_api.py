"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from columndesk import main
from columndesk.content import ContentService
from columndesk.errors import TransportError
from columndesk.protocol import ColumnLinkSync
from columndesk.session import SessionRegistry
from columndesk.storage import TutorialStore


@pytest.fixture
def api(monkeypatch, fake_strapi, tmp_path):
    sync = ColumnLinkSync(fake_strapi, settle_delay=0)
    monkeypatch.setattr(main, "client", fake_strapi)
    monkeypatch.setattr(main, "columns", sync)
    monkeypatch.setattr(main, "content", ContentService(fake_strapi, sync))
    monkeypatch.setattr(main, "sessions", SessionRegistry())
    monkeypatch.setattr(main, "tutorials", TutorialStore(tmp_path / "state.json"))
    with TestClient(main.app) as client:
        yield client


class TestColumnLinks:

    def test_get_links(self, api):
        resp = api.get("/api/columns/5/links")

        assert resp.status_code == 200
        body = resp.json()
        assert body["documentId"] == "doc-5"
        assert body["count"] == 1

    def test_append(self, api, fake_strapi):
        resp = api.post("/api/columns/5/links", json={"links": [
            {"label": "B", "url": "http://b", "publishDate": "2026-05-01T10:00:00Z"},
        ]})

        assert resp.status_code == 200
        body = resp.json()
        assert body["added"] == 1
        assert body["links"][1]["publishDate"] == "2026-05-01T10:00:00Z"
        assert len(fake_strapi.entity["links"]) == 2

    def test_conflict_is_409_with_count(self, api):
        resp = api.post("/api/columns/5/links", json={"links": [{"label": "A", "url": "HTTP://A/"}]})

        assert resp.status_code == 409
        assert resp.json()["count"] == 1

    def test_empty_batch_is_400(self, api):
        resp = api.post("/api/columns/5/links", json={"links": []})

        assert resp.status_code == 400
        assert resp.json()["error"] == "ValidationError"

    def test_unknown_column_is_404(self, api, fake_strapi):
        fake_strapi.missing.add("404")

        resp = api.post("/api/columns/404/links", json={"links": [{"label": "B", "url": "http://b"}]})

        assert resp.status_code == 404
        assert resp.json()["detail"] == "no valid identifier found for parent entity"

    def test_transport_error_is_502(self, api, fake_strapi):
        fake_strapi.update_error = TransportError("Bad Gateway", status=502)

        resp = api.post("/api/columns/5/links", json={"links": [{"label": "B", "url": "http://b"}]})

        assert resp.status_code == 502
        assert resp.json()["detail"] == "Bad Gateway"
        assert resp.json()["upstream_status"] == 502


class TestPendingBatch:

    def test_compose_and_submit(self, api):
        assert api.post("/api/columns/5/pending", json={"label": "B", "url": "http://b"}).json() == {"index": 0}
        api.patch("/api/columns/5/pending/0", json={"description": "Read this"})

        pending = api.get("/api/columns/5/pending").json()
        assert pending["pending"][0]["description"] == "Read this"

        resp = api.post("/api/columns/5/pending/submit")

        assert resp.status_code == 200
        assert [l["url"] for l in resp.json()["saved"]] == ["http://b"]
        assert api.get("/api/columns/5/pending").json()["pending"] == []

    def test_failed_submit_keeps_pending(self, api):
        api.post("/api/columns/5/pending", json={"label": "A", "url": "http://a"})

        resp = api.post("/api/columns/5/pending/submit")

        assert resp.status_code == 409
        assert len(api.get("/api/columns/5/pending").json()["pending"]) == 1

    def test_bad_index(self, api):
        assert api.patch("/api/columns/5/pending/3", json={"label": "x"}).status_code == 404
        assert api.delete("/api/columns/5/pending/0").status_code == 404


class TestColumns:

    def test_update_column(self, api, fake_strapi):
        resp = api.put("/api/columns/5", json={
            "title": "Weekly reads", "slug": "weekly-reads",
            "links": [{"label": "A", "url": "http://a"}, {"label": "B", "url": "http://b"}],
        })

        assert resp.status_code == 200
        assert len(resp.json()["data"]["links"]) == 2

    def test_create_column_slug_taken(self, api, fake_strapi):
        fake_strapi.find_results["columns"] = {"data": [{"id": 5, "slug": "weekly-reads"}]}

        resp = api.post("/api/columns", json={"title": "Again", "slug": "weekly-reads"})

        assert resp.status_code == 409


class TestEntries:

    def test_create_article(self, api, fake_strapi):
        fake_strapi.find_results["articles"] = {"data": []}

        resp = api.post("/api/articles", json={"title": "Hello", "slug": "hello", "isPremium": True})

        assert resp.status_code == 200
        assert fake_strapi.created[0][1]["isPremium"] is True

    def test_create_video_episode_validation(self, api):
        resp = api.post("/api/video-episodes", json={"title": "Ep", "slug": "ep"})

        assert resp.status_code == 422

    def test_unknown_collection(self, api):
        assert api.post("/api/widgets", json={"title": "x", "slug": "x"}).status_code == 404

    def test_delete_event(self, api, fake_strapi):
        resp = api.delete("/api/events/3")

        assert resp.status_code == 200
        assert ("delete", "events", "3") in fake_strapi.calls


class TestCalendarAndTutorials:

    def test_calendar_needs_year_with_month(self, api):
        assert api.get("/api/calendar?month=3").status_code == 400

    def test_calendar(self, api, fake_strapi):
        fake_strapi.find_results["articles"] = {"data": [
            {"id": 1, "title": "Hello", "publishDate": "2026-03-20T09:00:00Z"},
        ]}
        fake_strapi.find_results["columns"] = {"data": []}

        body = api.get("/api/calendar?year=2026&month=3").json()

        assert body["count"] == 1
        assert body["items"][0]["authorName"] == "No author"
        assert list(body["byDay"]) == ["2026-03-20"]

    def test_tutorial_flags(self, api):
        assert api.get("/api/tutorials/calendar").json()["completed"] is False
        api.post("/api/tutorials/calendar")
        assert api.get("/api/tutorials/calendar").json()["completed"] is True
        api.delete("/api/tutorials/calendar")
        assert api.get("/api/tutorials/calendar").json()["completed"] is False

    def test_login(self, api):
        resp = api.post("/api/login", json={"identifier": "editor", "password": "secret"})

        assert resp.json() == {"ok": True, "user": {"username": "editor"}}
