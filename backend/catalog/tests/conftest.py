import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ.pop("ELASTICSEARCH_URL", None)
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from catalog.main import app
from catalog.database import Base, get_db
from catalog import models
from catalog.auth import get_password_hash

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "secret"


def _bootstrap_admin():
    # registration never grants admin rights
    db = TestingSessionLocal()
    try:
        db.add(
            models.User(
                email=ADMIN_EMAIL,
                hashed_password=get_password_hash(ADMIN_PASSWORD),
                full_name="Site Admin",
                is_admin=True,
            )
        )
        db.commit()
    finally:
        db.close()


_bootstrap_admin()


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_access_token(client, *, email: str | None = None, password: str = "secret"):
    """Register or log in ``email`` and return its token with the normalized email."""

    normalized_email = email or f"user-{uuid.uuid4()}@example.com"
    payload = {"email": normalized_email, "password": password}
    resp = client.post("/api/auth/register", json=payload)
    if resp.status_code == 200:
        data = resp.json()
    else:
        body = resp.json() if resp.headers.get("content-type", "").startswith("application/json") else {}
        if resp.status_code == 400 and body.get("detail") == "Email already registered":
            login_resp = client.post("/api/auth/login", json=payload)
            assert login_resp.status_code == 200, f"Login failed for existing user {normalized_email}: {login_resp.text}"
            data = login_resp.json()
        else:
            raise AssertionError(f"Unexpected auth bootstrap failure for {normalized_email}: {resp.status_code} {resp.text}")
    token = data.get("access_token")
    if not token:
        raise AssertionError(f"Authentication response missing token for {normalized_email}: {data}")
    return token, normalized_email


def ensure_auth_headers(client, *, email: str | None = None, password: str = "secret"):
    token, normalized_email = ensure_access_token(client, email=email, password=password)
    return {"Authorization": f"Bearer {token}"}, normalized_email


def admin_headers(client):
    resp = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def user_id(client, headers) -> str:
    return client.get("/api/users/me", headers=headers).json()["id"]


def make_project(client, headers, *, title: str | None = None):
    """Create a project with a fresh institution; the creator becomes a member."""

    institution = client.post(
        "/api/institutions",
        json={"title": f"Institute {uuid.uuid4()}", "country": "DE"},
        headers=headers,
    ).json()
    resp = client.post(
        "/api/projects",
        json={"title": title or f"Project {uuid.uuid4()}", "institution_id": institution["id"]},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    project = resp.json()
    project["institution_id"] = institution["id"]
    return project


def jsonapi_body(kind: str, attributes: dict, relationships: dict | None = None, resource_id: str | None = None):
    data = {"type": kind, "attributes": attributes}
    if relationships:
        data["relationships"] = relationships
    if resource_id:
        data["id"] = resource_id
    return {"data": data}


def make_isa(client, headers, project_id: str, *, policy: dict | None = None):
    """Create an investigation, study and assay chain; returns their ids."""

    projects = {"projects": {"data": [{"id": project_id, "type": "projects"}]}}
    attributes = {"title": "Inv"}
    if policy is not None:
        attributes["policy"] = policy
    inv = client.post("/api/investigations", json=jsonapi_body("investigations", attributes, projects), headers=headers)
    assert inv.status_code == 201, inv.text
    inv_id = inv.json()["data"]["id"]
    study = client.post(
        "/api/studies",
        json=jsonapi_body(
            "studies",
            {"title": "Study"},
            {**projects, "investigation": {"data": {"id": inv_id, "type": "investigations"}}},
        ),
        headers=headers,
    )
    assert study.status_code == 201, study.text
    study_id = study.json()["data"]["id"]
    assay = client.post(
        "/api/assays",
        json=jsonapi_body(
            "assays",
            {"title": "Assay", "assay_type_label": "Metabolomics", "technology_type_label": "Mass spectrometry"},
            {**projects, "study": {"data": {"id": study_id, "type": "studies"}}},
        ),
        headers=headers,
    )
    assert assay.status_code == 201, assay.text
    return inv_id, study_id, assay.json()["data"]["id"]
