import uuid

from elasticsearch import NotFoundError

from catalog import models, search, tasks
from catalog.auth import get_password_hash
from .conftest import client, db_session, admin_headers


class FakeIndex:
    def __init__(self, hits=None):
        self.indexed = []
        self.deleted = []
        self.hits = hits or []
        self.ignored = None
        self.sizes = []

    def index(self, index, id, document):
        self.indexed.append((index, id, document))

    def options(self, ignore_status=None):
        self.ignored = ignore_status
        return self

    def delete(self, index, id):
        self.deleted.append((index, id))

    def search(self, index, query, size, ignore_unavailable=False):
        self.sizes.append(size)
        return {"hits": {"hits": [{"_id": h} for h in self.hits]}}


def test_programme_indexed_in_background(client, monkeypatch):
    fake = FakeIndex()
    monkeypatch.setattr("catalog.search.get_client", lambda: fake)
    resp = client.post("/api/programmes", json={"title": f"Prog {uuid.uuid4()}"}, headers=admin_headers(client))
    programme = resp.json()
    assert ("catalog_programmes", programme["id"]) in [(i, d) for i, d, _ in fake.indexed]
    document = next(doc for _, d, doc in fake.indexed if d == programme["id"])
    assert document["title"] == programme["title"]
    assert document["institutions"] == []


def test_reindex_unknown_type():
    assert tasks.reindex_records("widgets", [str(uuid.uuid4())]) == 0


def test_reindex_skips_missing_records(monkeypatch):
    fake = FakeIndex()
    monkeypatch.setattr("catalog.search.get_client", lambda: fake)
    assert tasks.reindex_records("projects", [str(uuid.uuid4())]) == 0
    assert fake.indexed == []


def test_removed_records_leave_index(client, monkeypatch):
    fake = FakeIndex()
    monkeypatch.setattr("catalog.search.get_client", lambda: fake)
    headers = admin_headers(client)
    institution = client.post("/api/institutions", json={"title": f"Inst {uuid.uuid4()}"}, headers=headers).json()
    project = client.post("/api/projects", json={"title": f"P {uuid.uuid4()}"}, headers=headers).json()
    strain = client.post("/api/strains", json={"title": "S", "project_ids": [project["id"]]}, headers=headers).json()
    assert ("catalog_institutions", institution["id"]) in [(i, d) for i, d, _ in fake.indexed]
    client.delete(f"/api/strains/{strain['id']}", headers=headers)
    assert fake.deleted == [("catalog_strains", strain["id"])]
    assert fake.ignored == 404


def test_index_hits_resolved_in_order(client, db_session, monkeypatch):
    headers = admin_headers(client)
    first = client.post("/api/projects", json={"title": f"A {uuid.uuid4()}"}, headers=headers).json()
    second = client.post("/api/projects", json={"title": f"B {uuid.uuid4()}"}, headers=headers).json()
    stale = str(uuid.uuid4())
    fake = FakeIndex(hits=[second["id"], stale, first["id"]])
    monkeypatch.setattr("catalog.search.get_client", lambda: fake)
    found = search.search_type(search.resolve_type("projects"), "anything", db_session)
    assert [r.id if r else None for r in found] == [uuid.UUID(second["id"]), None, uuid.UUID(first["id"])]


def test_auth_lookup_queue_is_batched(db_session, monkeypatch):
    users = [
        models.User(email=f"q{uuid.uuid4()}@example.com", hashed_password=get_password_hash("x"))
        for _ in range(tasks.AUTH_LOOKUP_BATCH_SIZE + 2)
    ]
    db_session.add_all(users)
    db_session.flush()
    for user in users:
        db_session.add(models.AuthLookupUpdateQueue(user_id=user.id))
    db_session.commit()

    runs = []
    original = tasks.process_auth_lookup_queue

    def counting():
        runs.append(1)
        return original()

    monkeypatch.setattr(tasks, "process_auth_lookup_queue", counting)
    processed = original()
    assert processed == tasks.AUTH_LOOKUP_BATCH_SIZE
    # the remainder is handed to a follow-up run
    assert len(runs) == 1
    db_session.expire_all()
    ids = [u.id for u in users]
    assert db_session.query(models.AuthLookupUpdateQueue).filter(
        models.AuthLookupUpdateQueue.user_id.in_(ids)
    ).count() == 0


class MissingNodeIndex(FakeIndex):
    def search(self, index, query, size, ignore_unavailable=False):
        if index == "catalog_nodes":
            raise NotFoundError("index_not_found_exception", meta=None, body={})
        return super().search(index, query, size, ignore_unavailable)


def test_missing_index_yields_no_hits(client, monkeypatch):
    headers = admin_headers(client)
    project = client.post("/api/projects", json={"title": f"Fresh {uuid.uuid4()}"}, headers=headers).json()
    fake = MissingNodeIndex(hits=[project["id"]])
    monkeypatch.setattr("catalog.search.get_client", lambda: fake)

    resp = client.get("/api/search", params={"q": "fresh", "search_type": "nodes"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == []
    assert resp.json()["meta"]["error"] is None

    projects = client.get("/api/search", params={"q": "fresh", "search_type": "projects"}, headers=headers)
    assert [r["id"] for r in projects.json()["data"]] == [project["id"]]

    everything = client.get("/api/search", params={"q": "fresh"}, headers=headers)
    assert everything.status_code == 200
    assert [r["id"] for r in everything.json()["data"]] == [project["id"]]


def test_page_size_capped_at_result_window():
    class FakeQuery:
        def count(self):
            return search.MAX_RESULT_WINDOW + 500

    class FakeSession:
        def query(self, model):
            return FakeQuery()

    assert search.per_page_for(search.resolve_type("strains"), FakeSession()) == search.MAX_RESULT_WINDOW
