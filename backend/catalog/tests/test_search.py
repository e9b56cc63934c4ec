import uuid

from elasticsearch import ConnectionError as SearchConnectionError

from catalog import search
from catalog.services import search_dispatch
from .conftest import client, admin_headers, ensure_auth_headers, jsonapi_body, make_isa, make_project


def auth_headers(client):
    headers, _ = ensure_auth_headers(client, email=f"search{uuid.uuid4()}@example.com")
    return headers


def token():
    return f"zq{uuid.uuid4().hex[:10]}"


def test_filter_search_term():
    assert search_dispatch.filter_search_term('yeast AND "glucose"') == "yeast AND glucose"
    assert search_dispatch.filter_search_term("a:b  (c)") == "a b c"
    assert search_dispatch.sanitize("<b>yeast</b> ") == "yeast"


def test_per_page_grows_with_type():
    class FakeQuery:
        def __init__(self, count):
            self._count = count

        def count(self):
            return self._count

    class FakeSession:
        def __init__(self, count):
            self._count = count

        def query(self, model):
            return FakeQuery(self._count)

    stype = search.resolve_type("projects")
    assert search.per_page_for(stype, FakeSession(5)) == 30
    assert search.per_page_for(stype, FakeSession(45)) == 45


def test_resolve_type_accepts_singular():
    assert search.resolve_type("Investigation").key == "investigations"
    assert search.resolve_type("studies").singular == "study"
    assert search.resolve_type("widgets") is None


def test_blank_query(client):
    resp = client.get("/api/search", params={"q": "  "})
    assert resp.status_code == 200
    meta = resp.json()["meta"]
    assert meta["error"] == "Query string is empty or blank"
    assert resp.json()["data"] == []


def test_invalid_search_type(client):
    resp = client.get("/api/search", params={"q": "yeast", "search_type": "widgets"})
    assert resp.json()["meta"]["error"] == "widgets is not a valid search type"


def test_search_projects_and_people(client):
    headers = auth_headers(client)
    word = token()
    client.put("/api/users/me", json={"full_name": f"Ada {word}"}, headers=headers)
    project = make_project(client, headers, title=f"Project {word}")

    resp = client.get("/api/search", params={"q": word}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    found = {(r["type"], r["id"]) for r in body["data"]}
    assert ("projects", project["id"]) in found
    assert any(kind == "people" for kind, _ in found)
    assert body["meta"]["notice"] == f"2 items matched '{word}' within their title or content."
    assert body["meta"]["search_query"] == word

    single = client.get("/api/search", params={"search_query": word, "search_type": "project"}, headers=headers)
    assert [r["id"] for r in single.json()["data"]] == [project["id"]]
    assert single.json()["meta"]["notice"] == f"1 item matched '{word}' within their title or content."


def test_no_matches_notice(client):
    word = token()
    resp = client.get("/api/search", params={"q": word})
    assert resp.json()["meta"]["notice"] == f"No matches found for '{word}'."


def test_json_all_excludes_samples_and_strains(client):
    headers = auth_headers(client)
    word = token()
    project = make_project(client, headers, title=f"Project {word}")
    strain = client.post(
        "/api/strains",
        json={"title": f"Strain {word}", "project_ids": [project["id"]], "sharing": {"scope": "everyone"}},
        headers=headers,
    ).json()

    everything = client.get("/api/search", params={"q": word}, headers=headers).json()["data"]
    assert all(r["type"] != "strains" for r in everything)

    strains = client.get("/api/search", params={"q": word, "search_type": "strains"}, headers=headers).json()["data"]
    assert [r["id"] for r in strains] == [strain["id"]]


def test_results_filtered_by_can_view(client):
    owner = auth_headers(client)
    word = token()
    project = make_project(client, owner)
    client.post(
        "/api/strains",
        json={"title": f"Hidden {word}", "project_ids": [project["id"]]},
        headers=owner,
    )
    mine = client.get("/api/search", params={"q": word, "search_type": "strains"}, headers=owner).json()["data"]
    assert len(mine) == 1

    stranger = auth_headers(client)
    theirs = client.get("/api/search", params={"q": word, "search_type": "strains"}, headers=stranger).json()["data"]
    assert theirs == []
    anonymous = client.get("/api/search", params={"q": word, "search_type": "strains"}).json()["data"]
    assert anonymous == []


def test_scaled_results(client):
    admin = admin_headers(client)
    scale_key = f"liver-{uuid.uuid4().hex[:6]}"
    scale = client.post("/api/scales", json={"key": scale_key, "title": "Liver"}, headers=admin).json()

    headers = auth_headers(client)
    word = token()
    project = make_project(client, headers, title=f"Project {word}")
    public = {"access": "view", "permissions": []}
    projects = {"projects": {"data": [{"id": project["id"], "type": "projects"}]}}
    first = client.post(
        "/api/investigations", json=jsonapi_body("investigations", {"title": f"Liver {word}", "policy": public}, projects), headers=headers
    ).json()["data"]
    client.post(
        "/api/investigations", json=jsonapi_body("investigations", {"title": f"Heart {word}", "policy": public}, projects), headers=headers
    )
    resp = client.put(
        f"/api/scales/assets/Investigation/{first['id']}", json={"scale_ids": [scale["id"]]}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json() == [scale["id"]]

    everything = client.get("/api/search", params={"q": word}, headers=headers).json()
    assert everything["meta"]["scales"]["all"] == 3
    # the project is not scalable and shows under every scale
    assert everything["meta"]["scales"][scale_key] == 2

    scaled = client.get("/api/search", params={"q": word, "scale": scale_key}, headers=headers).json()
    ids = {r["id"] for r in scaled["data"]}
    assert ids == {first["id"], project["id"]}
    assert scaled["meta"]["scale"] == scale_key


def test_unscalable_asset_rejects_scales(client):
    admin = admin_headers(client)
    scale = client.post("/api/scales", json={"key": f"k-{uuid.uuid4().hex[:6]}", "title": "K"}, headers=admin).json()
    headers = auth_headers(client)
    project = make_project(client, headers)
    strain = client.post("/api/strains", json={"title": "S", "project_ids": [project["id"]]}, headers=headers).json()
    resp = client.put(f"/api/scales/assets/Strain/{strain['id']}", json={"scale_ids": [scale["id"]]}, headers=headers)
    assert resp.status_code == 422


def test_facet_filters(client):
    headers = auth_headers(client)
    word = token()
    one = make_project(client, headers, title=f"One {word}")
    two = make_project(client, headers, title=f"Two {word}")
    make_isa(client, headers, one["id"], policy={"access": "view", "permissions": []})

    by_type = client.get("/api/search", params={"q": word, "filter[type]": "projects"}, headers=headers).json()["data"]
    assert {r["id"] for r in by_type} == {one["id"], two["id"]}

    by_project = client.get(
        "/api/search", params={"q": word, "filter[project]": two["id"]}, headers=headers
    ).json()["data"]
    assert [r["id"] for r in by_project] == [two["id"]]


def test_external_results_merged(client, monkeypatch):
    word = token()

    def fake_search(query, limit=5):
        return [{"id": "123", "title": f"PubMed {query}"}]

    monkeypatch.setattr("catalog.external.search_pubmed", fake_search)

    off = client.get("/api/search", params={"q": word, "include_external_search": "1"}).json()
    assert off["data"] == []

    monkeypatch.setenv("EXTERNAL_SEARCH_ENABLED", "1")
    on = client.get("/api/search", params={"q": word, "include_external_search": "1"}).json()
    assert on["meta"]["include_external_search"] is True
    assert on["data"] == [
        {"id": "123", "type": "publications", "attributes": {"title": f"PubMed {word}", "source": "pubmed"}}
    ]

    not_asked = client.get("/api/search", params={"q": word}).json()
    assert not_asked["data"] == []


def test_search_backend_down(client, monkeypatch):
    captured = []

    def refused(stype, keywords, db_session):
        raise SearchConnectionError("connection refused")

    monkeypatch.setattr("catalog.search.search_type", refused)
    monkeypatch.setattr("catalog.services.search_dispatch.sentry_sdk.capture_exception", captured.append)
    resp = client.get("/api/search", params={"q": "yeast"})
    assert resp.status_code == 200
    assert resp.json()["meta"]["error"] == search_dispatch.SERVICE_DOWN_MESSAGE
    assert resp.json()["data"] == []
    assert len(captured) == 1


def test_stale_index_hits_dropped(client, monkeypatch):
    monkeypatch.setattr("catalog.search.search_type", lambda stype, keywords, db_session: [None])
    resp = client.get("/api/search", params={"q": "ghost", "search_type": "projects"})
    assert resp.json()["data"] == []
    assert resp.json()["meta"]["notice"] == "No matches found for 'ghost'."


def test_search_disabled(client, monkeypatch):
    headers = auth_headers(client)
    word = token()
    make_project(client, headers, title=f"Project {word}")
    monkeypatch.setenv("SEARCH_ENABLED", "0")
    resp = client.get("/api/search", params={"q": word}, headers=headers)
    assert resp.json()["data"] == []
    assert resp.json()["meta"]["error"] is None


def test_search_is_logged(client):
    headers = auth_headers(client)
    word = token()
    client.get("/api/search", params={"q": word}, headers=headers)
    logs = client.get("/api/activity", params={"controller": "search"}, headers=headers).json()
    assert logs[0]["action"] == "search"
    assert logs[0]["details"]["search_query"] == word
