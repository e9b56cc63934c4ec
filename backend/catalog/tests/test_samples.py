import uuid
from .conftest import client, ensure_auth_headers, make_project


def get_headers(client):
    headers, _ = ensure_auth_headers(client, email=f"{uuid.uuid4()}@ex.com")
    return headers


def make_sample_type(client, headers, **extra):
    payload = {
        "title": f"Culture {uuid.uuid4()}",
        "description": "Bacterial culture",
        "tags": ["microbiology"],
        "sample_attributes": [
            {"title": "name", "attribute_type": "String", "is_title": True, "required": True},
            {"title": "volume", "attribute_type": "Float", "unit_symbol": "ml", "required": True},
            {"title": "passages", "attribute_type": "Integer"},
            {"title": "collected", "attribute_type": "Date"},
            {"title": "sterile", "attribute_type": "Boolean"},
        ],
    }
    payload.update(extra)
    resp = client.post("/api/sample_types", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_sample_type_serializer(client):
    headers = get_headers(client)
    sample_type = make_sample_type(client, headers)
    assert sample_type["type"] == "sample_types"
    attributes = sample_type["attributes"]
    assert attributes["uploaded_template"] is False
    assert attributes["attribute_details"][0] == "name (String) *"
    assert attributes["attribute_details"][1] == "volume (Float) ( ml ) *"
    assert attributes["attribute_details"][2] == "passages (Integer)"
    relationships = sample_type["relationships"]
    assert relationships["samples"]["data"] == []
    assert len(relationships["sample_attributes"]["data"]) == 5
    assert relationships["linked_sample_attributes"]["data"] == []
    assert relationships["tags"]["data"] == [{"id": "microbiology", "type": "tags"}]

    shown = client.get(f"/api/sample_types/{sample_type['id']}").json()["data"]
    assert shown["id"] == sample_type["id"]


def test_sample_type_needs_one_title_attribute(client):
    headers = get_headers(client)
    resp = client.post(
        "/api/sample_types",
        json={"title": f"T {uuid.uuid4()}", "sample_attributes": [{"title": "a", "attribute_type": "String"}]},
        headers=headers,
    )
    assert resp.status_code == 422


def test_linked_sample_type(client):
    headers = get_headers(client)
    parent = make_sample_type(client, headers)
    child = make_sample_type(
        client,
        headers,
        sample_attributes=[
            {"title": "label", "attribute_type": "String", "is_title": True},
            {"title": "source", "attribute_type": "SEEK Sample", "linked_sample_type_id": parent["id"]},
        ],
    )
    linked = child["relationships"]["linked_sample_attributes"]["data"]
    assert len(linked) == 1
    # the parent cannot go while the child links it
    assert client.delete(f"/api/sample_types/{parent['id']}", headers=headers).status_code == 422


def test_sample_lifecycle(client):
    headers = get_headers(client)
    project = make_project(client, headers)
    sample_type = make_sample_type(client, headers)
    resp = client.post(
        "/api/samples",
        json={
            "sample_type_id": sample_type["id"],
            "data": {"name": "Culture A", "volume": "2.5", "passages": 3, "collected": "2024-05-01", "sterile": "true"},
            "project_ids": [project["id"]],
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    sample = resp.json()
    assert sample["title"] == "Culture A"
    assert sample["data"] == {
        "name": "Culture A",
        "volume": 2.5,
        "passages": 3,
        "collected": "2024-05-01",
        "sterile": True,
    }
    assert sample["project_ids"] == [project["id"]]
    assert sample["policy"]["sharing_scope"] == "private"

    # data is replaced as a whole
    upd = client.put(
        f"/api/samples/{sample['id']}",
        json={"data": {"name": "Culture B", "volume": 1}},
        headers=headers,
    )
    assert upd.status_code == 200
    assert upd.json()["title"] == "Culture B"
    assert upd.json()["data"]["passages"] is None

    listed = client.get("/api/samples", params={"sample_type_id": sample_type["id"]}, headers=headers).json()
    assert [s["id"] for s in listed] == [sample["id"]]

    assert client.delete(f"/api/samples/{sample['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/samples/{sample['id']}", headers=headers).status_code == 404


def test_sample_validation(client):
    headers = get_headers(client)
    sample_type = make_sample_type(client, headers)
    missing = client.post(
        "/api/samples",
        json={"sample_type_id": sample_type["id"], "data": {"name": "X"}},
        headers=headers,
    )
    assert missing.status_code == 422
    assert missing.json()["detail"] == "volume can't be blank"

    bad_int = client.post(
        "/api/samples",
        json={"sample_type_id": sample_type["id"], "data": {"name": "X", "volume": 1, "passages": "many"}},
        headers=headers,
    )
    assert bad_int.status_code == 422
    assert bad_int.json()["detail"] == "passages is not a valid Integer"

    unknown = client.post(
        "/api/samples",
        json={"sample_type_id": sample_type["id"], "data": {"name": "X", "volume": 1, "colour": "red"}},
        headers=headers,
    )
    assert unknown.status_code == 422


def test_private_sample_forbidden(client):
    owner = get_headers(client)
    sample_type = make_sample_type(client, owner)
    sample = client.post(
        "/api/samples",
        json={"sample_type_id": sample_type["id"], "data": {"name": "Secret", "volume": 1}},
        headers=owner,
    ).json()

    other = get_headers(client)
    assert client.get(f"/api/samples/{sample['id']}", headers=other).status_code == 403
    assert client.get(f"/api/samples/{sample['id']}").status_code == 403
    assert client.put(f"/api/samples/{sample['id']}", json={"title": "Mine"}, headers=other).status_code == 403
    assert client.delete(f"/api/samples/{sample['id']}", headers=other).status_code == 403


def test_shared_sample(client):
    owner = get_headers(client)
    sample_type = make_sample_type(client, owner)
    sample = client.post(
        "/api/samples",
        json={
            "sample_type_id": sample_type["id"],
            "data": {"name": "Shared", "volume": 1},
            "sharing": {"scope": "all_users", "access": "edit"},
        },
        headers=owner,
    ).json()
    other = get_headers(client)
    assert client.get(f"/api/samples/{sample['id']}").status_code == 403
    edited = client.put(f"/api/samples/{sample['id']}", json={"description": "checked"}, headers=other)
    assert edited.status_code == 200
    # editing does not grant the right to change sharing
    resharing = client.put(
        f"/api/samples/{sample['id']}", json={"sharing": {"scope": "everyone"}}, headers=other
    )
    assert resharing.status_code == 403
