"""Tests for the HTTP surface (main.py)"""

import pytest
from fastapi.testclient import TestClient

from wikiscroll.core.settings import Settings
from wikiscroll.main import app, init_services


@pytest.fixture
def client(source):
    init_services(Settings(page_size=5), source=source)
    with TestClient(app) as c:
        yield c


class TestPages:
    """Tests for the HTML pages."""

    def test_home(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert 'id="feed"' in resp.text
        assert '<option value="physics"' in resp.text

    def test_about(self, client):
        resp = client.get("/about")
        assert resp.status_code == 200

    def test_blog(self, client):
        resp = client.get("/blog")
        assert resp.status_code == 200
        assert "10 Tips for Effective Wikipedia Research" in resp.text

    def test_static(self, client):
        assert client.get("/static/feed.js").status_code == 200

    def test_feed_script_ignores_older_snapshots(self, client):
        script = client.get("/static/feed.js").text
        assert "state.items.length < lastState.items.length" in script
        assert "feedEl.children.length > state.items.length" in script


class TestArticleApi:
    """Tests for the article proxy endpoints."""

    def test_categories(self, client):
        cats = client.get("/api/categories").json()
        assert cats[0] == {"id": "all", "name": "All"}
        assert {"id": "physics", "name": "Physics"} in cats

    def test_articles_by_category(self, client, source):
        resp = client.get("/api/articles/physics", params={"page": 2, "limit": 3})

        assert resp.status_code == 200
        assert [a["id"] for a in resp.json()] == [200, 201, 202]
        assert source.calls == [("category", "physics", 2)]

    def test_invalid_paging(self, client, source):
        source.errors[("category", "physics", 0)] = ValueError("page and page_size must be >= 1")

        assert client.get("/api/articles/physics", params={"page": 0}).status_code == 400

    def test_search(self, client, source):
        resp = client.get("/api/search", params={"q": "einstein"})

        assert resp.status_code == 200
        assert len(resp.json()) == 10
        assert source.calls == [("search", "einstein", 1)]

    def test_empty_search(self, client, source):
        assert client.get("/api/search", params={"q": "  "}).json() == []
        assert source.calls == []

    def test_details_not_found(self, client):
        assert client.get("/api/articles/details/42").status_code == 404


class TestFeedApi:
    """Tests for the feed session lifecycle."""

    def test_mount(self, client):
        d = client.post("/api/feed").json()

        assert len(d["state"]["items"]) == 5
        assert d["state"]["items"][0]["key"] == "100-0"
        assert d["state"]["loading"] is False
        assert d["sentinels"]["end_trigger_ref"] == "end:1:4"

    def test_state(self, client):
        session_id = client.post("/api/feed").json()["id"]

        d = client.get(f"/api/feed/{session_id}").json()

        assert d["id"] == session_id
        assert d["state"]["cursor"] == 1

    def test_unknown_session(self, client):
        assert client.get("/api/feed/nope").status_code == 404
        assert client.post("/api/feed/nope/more").status_code == 404

    def test_filter_search(self, client):
        session_id = client.post("/api/feed").json()["id"]

        d = client.post(f"/api/feed/{session_id}/filter", params={"q": "einstein"}).json()

        assert d["state"]["is_searching"] is True
        assert d["state"]["query"] == {"category": None, "search_text": "einstein"}
        assert d["state"]["generation"] == 2

    def test_filter_requires_exactly_one(self, client):
        session_id = client.post("/api/feed").json()["id"]
        url = f"/api/feed/{session_id}/filter"

        assert client.post(url).status_code == 400
        assert client.post(url, params={"category": "art", "q": "x"}).status_code == 400

    def test_more_and_home(self, client):
        session_id = client.post("/api/feed").json()["id"]
        client.post(f"/api/feed/{session_id}/filter", params={"category": "art"})

        d = client.post(f"/api/feed/{session_id}/more").json()
        assert len(d["state"]["items"]) == 10
        assert d["state"]["cursor"] == 2

        d = client.post(f"/api/feed/{session_id}/home").json()
        assert d["state"]["query"] == {"category": "all", "search_text": None}
        assert len(d["state"]["items"]) == 5

    def test_preload_then_more(self, client, source):
        session_id = client.post("/api/feed").json()["id"]

        d = client.post(f"/api/feed/{session_id}/preload").json()
        assert len(d["state"]["items"]) == 5

        d = client.post(f"/api/feed/{session_id}/more").json()
        assert len(d["state"]["items"]) == 10
        assert source.count("category", "all", 2) == 1

    def test_visibility_end_trigger(self, client):
        d = client.post("/api/feed").json()
        session_id = d["id"]
        ref = d["sentinels"]["end_trigger_ref"]

        d = client.post(
            f"/api/feed/{session_id}/visibility", params={"target": ref, "distance": 100}
        ).json()

        assert d["delivered"] == 1
        assert len(d["state"]["items"]) == 10
        assert d["sentinels"]["end_trigger_ref"] == "end:1:9"

    def test_visibility_stale_ref(self, client):
        session_id = client.post("/api/feed").json()["id"]

        d = client.post(
            f"/api/feed/{session_id}/visibility", params={"target": "end:9:9"}
        ).json()

        assert d["delivered"] == 0
        assert len(d["state"]["items"]) == 5

    def test_unmount(self, client):
        session_id = client.post("/api/feed").json()["id"]

        assert client.delete(f"/api/feed/{session_id}").json() == {"closed": True, "id": session_id}
        assert client.get(f"/api/feed/{session_id}").status_code == 404
        assert client.delete(f"/api/feed/{session_id}").status_code == 404
