import uuid
from datetime import date

from catalog import external
from .conftest import client, ensure_auth_headers, make_isa, make_project


def get_headers(client):
    headers, _ = ensure_auth_headers(client, email=f"{uuid.uuid4()}@ex.com")
    return headers


def fake_pubmed(pubmed_id):
    return {
        "pubmed_id": int(pubmed_id),
        "title": "Yeast glycolysis revisited",
        "abstract": "We model glycolysis.",
        "journal": "FEBS J",
        "published_date": date(2020, 3, 1),
        "authors": ["Jane Doe", "John Roe"],
        "doi": "10.1111/febs.1",
    }


def fake_crossref(doi):
    return {
        "doi": external.normalize_doi(doi),
        "title": "A DOI only paper",
        "abstract": None,
        "journal": "PLoS ONE",
        "published_date": date(2019, 1, 1),
        "authors": ["Ann Smith"],
    }


def test_normalize_doi():
    assert external.normalize_doi(" 10.1000/xyz ") == "10.1000/xyz"
    assert external.normalize_doi("DOI: 10.1000/xyz") == "10.1000/xyz"
    assert external.normalize_doi("doi:10.1000/xyz") == "10.1000/xyz"
    assert external.normalize_doi("https://doi.org/10.1000/xyz") == "10.1000/xyz"
    assert external.normalize_doi("http://dx.doi.org/10.1000/xyz") == "10.1000/xyz"
    assert external.normalize_doi("doi.org/10.1000/xyz") == "10.1000/xyz"


def test_create_from_pubmed(client, monkeypatch):
    monkeypatch.setattr("catalog.external.fetch_pubmed", fake_pubmed)
    headers = get_headers(client)
    project = make_project(client, headers)
    pubmed_id = uuid.uuid4().int % 10_000_000
    resp = client.post(
        "/api/publications",
        json={"pubmed_id": pubmed_id, "project_ids": [project["id"]]},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    publication = resp.json()
    assert publication["title"] == "Yeast glycolysis revisited"
    assert publication["authors"] == ["Jane Doe", "John Roe"]
    assert publication["published_date"] == "2020-03-01"
    assert publication["doi"] == "10.1111/febs.1"

    # publications are public by default
    assert client.get(f"/api/publications/{publication['id']}").status_code == 200

    dup = client.post(
        "/api/publications",
        json={"pubmed_id": pubmed_id, "project_ids": [project["id"]]},
        headers=headers,
    )
    assert dup.status_code == 422


def test_create_from_doi(client, monkeypatch):
    monkeypatch.setattr("catalog.external.fetch_crossref", fake_crossref)
    headers = get_headers(client)
    project = make_project(client, headers)
    doi = f"10.1371/journal.{uuid.uuid4().hex[:8]}"
    resp = client.post(
        "/api/publications",
        json={"doi": f"https://doi.org/{doi}", "project_ids": [project["id"]]},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["doi"] == doi
    assert resp.json()["journal"] == "PLoS ONE"

    dup = client.post(
        "/api/publications",
        json={"doi": f"DOI: {doi}", "project_ids": [project["id"]]},
        headers=headers,
    )
    assert dup.status_code == 422


def test_external_failure_is_bad_gateway(client, monkeypatch):
    def broken(pubmed_id):
        raise external.ExternalServiceError("Failed to reach PubMed")

    monkeypatch.setattr("catalog.external.fetch_pubmed", broken)
    headers = get_headers(client)
    project = make_project(client, headers)
    resp = client.post(
        "/api/publications",
        json={"pubmed_id": 42, "project_ids": [project["id"]]},
        headers=headers,
    )
    assert resp.status_code == 502


def test_manual_details_and_assay_links(client):
    owner = get_headers(client)
    project = make_project(client, owner)
    _, _, own_assay = make_isa(client, owner, project["id"])

    stranger = get_headers(client)
    stranger_project = make_project(client, stranger)
    _, _, foreign_assay = make_isa(client, stranger, stranger_project["id"])

    resp = client.post(
        "/api/publications",
        json={
            "title": "Unpublished notes",
            "authors": ["A. Author"],
            "project_ids": [project["id"]],
            "assay_ids": [own_assay, foreign_assay],
        },
        headers=owner,
    )
    assert resp.status_code == 201, resp.text
    publication = resp.json()
    # only the assay the submitter may edit is linked
    assert publication["assay_ids"] == [own_assay]

    assets = client.get(f"/api/assays/{own_assay}/assets", headers=owner).json()
    assert any(a["asset_id"] == publication["id"] and a["asset_type"] == "Publication" for a in assets)


def test_publication_needs_a_source(client):
    headers = get_headers(client)
    project = make_project(client, headers)
    resp = client.post("/api/publications", json={"project_ids": [project["id"]]}, headers=headers)
    assert resp.status_code == 422
    no_project = client.post("/api/publications", json={"title": "x", "project_ids": []}, headers=headers)
    assert no_project.status_code == 422
