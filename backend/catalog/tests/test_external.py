import uuid
from datetime import date

import requests

from catalog import external
from .conftest import client, make_project


def auth_headers(client):
    resp = client.post(
        "/api/auth/register",
        json={"email": f"{uuid.uuid4()}@ex.com", "password": "secret"},
    )
    token = resp.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


PUBMED_XML = b"""<?xml version="1.0"?>
<PubmedArticleSet>
  <PubmedArticle>
    <MedlineCitation>
      <PMID>12345</PMID>
      <Article>
        <Journal>
          <JournalIssue><PubDate><Year>2018</Year><Month>Mar</Month><Day>7</Day></PubDate></JournalIssue>
          <Title>Molecular Systems Biology</Title>
        </Journal>
        <ArticleTitle>Kinetic models of <i>yeast</i> glycolysis</ArticleTitle>
        <Abstract><AbstractText>First part.</AbstractText><AbstractText>Second part.</AbstractText></Abstract>
        <AuthorList>
          <Author><LastName>Doe</LastName><ForeName>Jane</ForeName></Author>
          <Author><LastName>Roe</LastName><Initials>J</Initials></Author>
        </AuthorList>
      </Article>
    </MedlineCitation>
    <PubmedData>
      <ArticleIdList><ArticleId IdType="doi">10.1000/msb.1</ArticleId></ArticleIdList>
    </PubmedData>
  </PubmedArticle>
</PubmedArticleSet>
"""


class FakeResponse:
    def __init__(self, status_code=200, content=b"", payload=None):
        self.status_code = status_code
        self.content = content
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


def test_pubmed_search(monkeypatch, client):
    headers = auth_headers(client)

    def fake_search(query, limit=5):
        return [
            {"id": "1", "title": "Article A"},
            {"id": "2", "title": "Article B"},
        ]

    monkeypatch.setattr("catalog.routes.external.search_pubmed", fake_search)
    resp = client.post(
        "/api/external/pubmed",
        json={"query": "cancer", "limit": 2},
        headers=headers,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert len(data) == 2
    assert data[0]["title"] == "Article A"


def test_pubmed_search_unreachable(monkeypatch, client):
    headers = auth_headers(client)

    def broken(query, limit=5):
        raise requests.ConnectionError("down")

    monkeypatch.setattr("catalog.routes.external.search_pubmed", broken)
    resp = client.post("/api/external/pubmed", json={"query": "cancer"}, headers=headers)
    assert resp.status_code == 502


def test_fetch_pubmed_parses_record(monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params))
        return FakeResponse(content=PUBMED_XML)

    monkeypatch.setattr("catalog.external.requests.get", fake_get)
    record = external.fetch_pubmed(12345)
    assert calls[0][0].endswith("efetch.fcgi")
    assert calls[0][1]["id"] == "12345"
    assert record["title"] == "Kinetic models of yeast glycolysis"
    assert record["abstract"] == "First part. Second part."
    assert record["journal"] == "Molecular Systems Biology"
    assert record["published_date"] == date(2018, 3, 7)
    assert record["authors"] == ["Jane Doe", "J Roe"]
    assert record["doi"] == "10.1000/msb.1"


def test_fetch_pubmed_missing_record(monkeypatch):
    monkeypatch.setattr(
        "catalog.external.requests.get",
        lambda url, params=None, timeout=None: FakeResponse(content=b"<PubmedArticleSet/>"),
    )
    try:
        external.fetch_pubmed(1)
    except external.ExternalServiceError as e:
        assert "No PubMed record" in str(e)
    else:
        raise AssertionError("expected ExternalServiceError")


def test_fetch_crossref(monkeypatch):
    seen = {}

    def fake_get(url, params=None, timeout=None):
        seen["url"] = url
        seen["params"] = params
        return FakeResponse(
            payload={
                "message": {
                    "title": ["A CrossRef paper"],
                    "container-title": ["PLoS ONE"],
                    "issued": {"date-parts": [[2015, 6]]},
                    "abstract": "<jats:p>Short.</jats:p>",
                    "author": [{"given": "Ann", "family": "Smith"}, {"family": "Consortium"}],
                }
            }
        )

    monkeypatch.setenv("CROSSREF_EMAIL", "curator@example.org")
    monkeypatch.setattr("catalog.external.requests.get", fake_get)
    record = external.fetch_crossref("https://doi.org/10.1371/journal.pone.1")
    assert seen["url"].endswith("/10.1371/journal.pone.1")
    assert seen["params"] == {"mailto": "curator@example.org"}
    assert record["doi"] == "10.1371/journal.pone.1"
    assert record["published_date"] == date(2015, 6, 1)
    assert record["abstract"] == "Short."
    assert record["authors"] == ["Ann Smith", "Consortium"]


def test_doi_lookup_not_found(monkeypatch, client):
    headers = auth_headers(client)
    monkeypatch.setattr(
        "catalog.external.requests.get",
        lambda url, params=None, timeout=None: FakeResponse(status_code=404),
    )
    resp = client.post("/api/external/doi", json={"doi": "10.9999/missing"}, headers=headers)
    assert resp.status_code == 502
    assert resp.json()["detail"] == "Unable to get result for DOI 10.9999/missing"


def test_pubmed_error_page_is_bad_gateway(monkeypatch, client):
    headers = auth_headers(client)
    project = make_project(client, headers)
    monkeypatch.setattr(
        "catalog.external.requests.get",
        lambda url, params=None, timeout=None: FakeResponse(content=b"<html><body>Service unavailable"),
    )
    resp = client.post(
        "/api/publications",
        json={"pubmed_id": 424242, "project_ids": [project["id"]]},
        headers=headers,
    )
    assert resp.status_code == 502
    assert resp.json()["detail"] == "PubMed returned an unreadable response"


def test_crossref_non_json_is_bad_gateway(monkeypatch, client):
    headers = auth_headers(client)
    monkeypatch.setattr(
        "catalog.external.requests.get",
        lambda url, params=None, timeout=None: FakeResponse(content=b"<html>maintenance</html>"),
    )
    resp = client.post("/api/external/doi", json={"doi": "10.9999/flaky"}, headers=headers)
    assert resp.status_code == 502
    assert resp.json()["detail"] == "CrossRef returned an unreadable response"
